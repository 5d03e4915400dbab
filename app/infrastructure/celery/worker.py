# app/infrastructure/celery/worker.py
import logging

from celery.signals import worker_ready, worker_shutdown
from celery.worker.control import inspect_command

from app.infrastructure.celery.celery_app import celery_app

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - [%(funcName)s] - %(message)s')

from app.application.use_cases.detect_drafts import DetectDraftsUseCase
from app.application.use_cases.dispatch_document import DocumentDispatcher
from app.application.use_cases.handle_terminal_response import HandleTerminalResponseUseCase
from app.application.use_cases.poll_manager import PollManager
from app.application.use_cases.process_submission import ProcessSubmissionUseCase
from app.domain.models.message import Message
from app.infrastructure.celery.broker_adapter import CeleryMessageBroker
from app.infrastructure.external.nubefact_adapter import NubefactAdapter
from app.infrastructure.external.webhook_notification_adapter import WebhookNotificationAdapter
from app.infrastructure.persistence.database import SessionLocal
from app.infrastructure.persistence.document_repository_adapter import SQLAlchemyDocumentRepository
from app.infrastructure.scheduling.threading_scheduler import ThreadingScheduler

# Dependencias compartidas por todas las tareas de este proceso
document_repo = SQLAlchemyDocumentRepository(SessionLocal)
dispatcher = DocumentDispatcher(CeleryMessageBroker(celery_app))
notification_service = WebhookNotificationAdapter()
gateway = NubefactAdapter()
poll_manager = PollManager(
    document_repo=document_repo,
    gateway=gateway,
    dispatcher=dispatcher,
    notification_service=notification_service,
    scheduler=ThreadingScheduler(),
)
detector = DetectDraftsUseCase(document_repo=document_repo, dispatcher=dispatcher)
submission_use_case = ProcessSubmissionUseCase(
    document_repo=document_repo,
    gateway=gateway,
    dispatcher=dispatcher,
    poll_manager=poll_manager,
    notification_service=notification_service,
)
terminal_response_use_case = HandleTerminalResponseUseCase(
    document_repo=document_repo,
    poll_manager=poll_manager,
    notification_service=notification_service,
)


@celery_app.task(name="tasks.detect_drafts")
def detect_drafts():
    try:
        queued = detector.execute()
        if queued:
            logging.info(f"Ciclo de detección: {queued} comprobantes encolados")
    except Exception:
        logging.error("¡ERROR! Falló el ciclo de detección.", exc_info=True)
        raise


@celery_app.task(name="tasks.process_submission")
def process_submission(message_data: dict):
    message = Message.model_validate(message_data)
    logging.info(f"[{message.document_id}] >>> INICIO DE LA TAREA ({message.family.value}).")
    try:
        submission_use_case.execute(message)
    except Exception:
        logging.error(f"[{message.document_id}] ¡ERROR! Se ha capturado una excepción.", exc_info=True)
        raise


@celery_app.task(name="tasks.handle_terminal_response")
def handle_terminal_response(message_data: dict):
    message = Message.model_validate(message_data)
    try:
        terminal_response_use_case.execute(message)
    except Exception:
        logging.error(f"[{message.document_id}] ¡ERROR! Falló el manejo de la respuesta final.", exc_info=True)
        raise


@celery_app.task(name="tasks.record_audit")
def record_audit(message_data: dict):
    message = Message.model_validate(message_data)
    logging.info(f"[{message.document_id}] Auditoría {message.family.value}: {message.status} (msgId: {message.message_id})")


@celery_app.task(name="tasks.force_poll_check")
def force_poll_check(document_id: int):
    if not poll_manager.check_now(document_id):
        logging.warning(f"[{document_id}] No se pudo forzar la verificación: no hay polling activo")


@inspect_command()
def active_pollings(state):
    """Pollings activos de este worker, para el endpoint de operador."""
    return [task.model_dump(mode="json") for task in poll_manager.active_tasks()]


@worker_ready.connect
def recover_pollings(sender=None, **kwargs):
    poll_manager.recover_pending_pollings()


@worker_shutdown.connect
def stop_pollings(sender=None, **kwargs):
    poll_manager.shutdown()


@inspect_command()
def detector_stats(state):
    """Estadísticas acumuladas del detector de este worker."""
    return detector.stats.model_dump(mode="json")
