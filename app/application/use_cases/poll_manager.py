# app/application/use_cases/poll_manager.py
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel

import config
from app.application.use_cases.dispatch_document import DocumentDispatcher
from app.domain.exceptions import GatewayError
from app.domain.families.registry import rules_for
from app.domain.models.document import DocumentFamily, DocumentState
from app.domain.models.gateway_response import CorrelationPayload, GatewayResponse
from app.domain.models.message import TerminalStatus, new_message_id
from app.domain.ports.document_repository import DocumentRepository
from app.domain.ports.notification import Notification
from app.domain.ports.scheduler import ScheduledTask, Scheduler
from app.domain.ports.submission_gateway import SubmissionGateway

logger = logging.getLogger(__name__)

TIMEOUT_REASON = "Timeout: No se pudieron obtener los enlaces después de {attempts} intentos"


class PollingTaskInfo(BaseModel):
    document_id: int
    family: DocumentFamily
    correlation_id: str
    attempts: int
    started_at: datetime
    elapsed_minutes: int


class PollingTask:
    """Estado en memoria de un comprobante que se está consultando."""

    def __init__(self, document_id: int, correlation_id: str, correlation: CorrelationPayload, started_at: datetime):
        self.document_id = document_id
        self.correlation_id = correlation_id
        self.correlation = correlation
        self.started_at = started_at
        self.attempts = 0
        self.handle: Optional[ScheduledTask] = None
        # Serializa la consulta programada y la forzada por el operador
        self.lock = threading.Lock()


class PollManager:
    """
    Mantiene una tarea de consulta por comprobante en vuelo. Consulta NubeFact
    cada `interval_seconds` hasta obtener los enlaces, un rechazo de SUNAT o
    agotar `max_attempts`. El mapa de tareas vive solo en memoria: al reiniciar
    se reconstruye con `recover_pending_pollings`.
    """

    def __init__(
        self,
        document_repo: DocumentRepository,
        gateway: SubmissionGateway,
        dispatcher: DocumentDispatcher,
        notification_service: Notification,
        scheduler: Scheduler,
        interval_seconds: float = config.POLLING_INTERVAL_SECONDS,
        max_attempts: int = config.POLLING_MAX_ATTEMPTS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.document_repo = document_repo
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.notification_service = notification_service
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts
        self.clock = clock
        self._tasks: Dict[int, PollingTask] = {}
        self._lock = threading.Lock()

    def start_polling(
        self,
        document_id: int,
        correlation: CorrelationPayload,
        correlation_id: Optional[str] = None,
        is_recovery: bool = False,
    ) -> bool:
        """Registra la tarea y programa la primera consulta de inmediato."""
        with self._lock:
            if document_id in self._tasks:
                logger.warning(f"[{document_id}] Ya existe polling activo")
                return False
            task = PollingTask(document_id, correlation_id or new_message_id(), correlation, self.clock())
            self._tasks[document_id] = task
        with task.lock:
            task.handle = self.scheduler.schedule(0, lambda: self._run_check(document_id))

        action = "Recuperando" if is_recovery else "Iniciando"
        logger.info(f"[{document_id}] {action} polling para {correlation.series}-{correlation.number}")
        return True

    def stop_polling(self, document_id: int) -> bool:
        """Cancela las consultas futuras. No interrumpe una consulta en curso ni toca la BD."""
        with self._lock:
            task = self._tasks.pop(document_id, None)
        if task is None:
            return False
        if task.handle:
            task.handle.cancel()
        logger.info(f"[{document_id}] Polling detenido")
        return True

    def check_now(self, document_id: int) -> bool:
        """Fuerza una consulta fuera de calendario. Retorna False si no hay polling activo."""
        task = self._tasks.get(document_id)
        if task is None:
            logger.warning(f"[{document_id}] No hay polling activo para forzar")
            return False
        logger.info(f"[{document_id}] Verificación forzada de polling")
        self._run_check(document_id)
        return True

    def recover_pending_pollings(self) -> int:
        """
        Se ejecuta una vez al iniciar el proceso: retoma el polling de cada
        comprobante que quedó IN_FLIGHT, con contador nuevo y nuevo id de correlación.
        """
        logger.info("Recuperando pollings pendientes desde la base de datos...")
        documents = self.document_repo.find_by_state(DocumentState.IN_FLIGHT)
        if not documents:
            logger.info("No hay pollings pendientes para recuperar")
            return 0

        recovered = 0
        for document in documents:
            try:
                correlation = rules_for(document.family).correlation(document)
                correlation_id = f"recovered-{document.id}-{new_message_id()}"
                if self.start_polling(document.id, correlation, correlation_id, is_recovery=True):
                    recovered += 1
            except Exception:
                logger.error(f"[{document.id}] Error recuperando polling", exc_info=True)
        logger.info(f"Recuperación completada: {recovered} pollings activos")
        return recovered

    def shutdown(self) -> None:
        """Detiene todas las tareas locales. Los comprobantes quedan IN_FLIGHT para recuperarse."""
        with self._lock:
            document_ids = list(self._tasks)
        logger.info(f"Deteniendo {len(document_ids)} pollings activos antes de shutdown...")
        for document_id in document_ids:
            self.stop_polling(document_id)

    def is_polling(self, document_id: int) -> bool:
        return document_id in self._tasks

    def active_tasks(self) -> List[PollingTaskInfo]:
        now = self.clock()
        with self._lock:
            tasks = list(self._tasks.values())
        return [
            PollingTaskInfo(
                document_id=task.document_id,
                family=task.correlation.family,
                correlation_id=task.correlation_id,
                attempts=task.attempts,
                started_at=task.started_at,
                elapsed_minutes=int((now - task.started_at).total_seconds() // 60),
            )
            for task in tasks
        ]

    def _run_check(self, document_id: int) -> None:
        task = self._tasks.get(document_id)
        if task is None:
            return
        with task.lock:
            if self._tasks.get(document_id) is not task:
                return
            finished = False
            try:
                finished = self._check(task)
            except Exception as e:
                logger.error(f"[{document_id}] Error en polling", exc_info=True)
                finished = task.attempts >= self.max_attempts
                if finished:
                    try:
                        self._finalize_failed(task, f"Error persistente en polling: {e}")
                    except Exception:
                        # Queda IN_FLIGHT; la recuperación o un nuevo start_polling lo retoman
                        logger.error(f"[{document_id}] No se pudo marcar como fallido", exc_info=True)
            finally:
                # Nunca dejar la tarea registrada sin una consulta programada
                if finished:
                    self.stop_polling(document_id)
                elif self._tasks.get(document_id) is task:
                    if task.handle:
                        task.handle.cancel()
                    task.handle = self.scheduler.schedule(self.interval_seconds, lambda: self._run_check(document_id))

    def _check(self, task: PollingTask) -> bool:
        """Un intento de consulta. Retorna True si el polling terminó."""
        task.attempts += 1
        document_id = task.document_id
        logger.debug(f"[{document_id}] Polling (intento {task.attempts}/{self.max_attempts})")

        document = self.document_repo.get(document_id)
        if document is None:
            logger.error(f"[{document_id}] Comprobante no encontrado en BD")
            return True
        if document.state.is_terminal:
            # Finalizado por otra vía (consumidor de respuestas)
            logger.info(f"[{document_id}] Ya está en estado {document.state.value}, deteniendo polling")
            return True
        if document.state != DocumentState.IN_FLIGHT:
            logger.warning(f"[{document_id}] Estado inesperado {document.state.value}, deteniendo polling")
            return True

        response: Optional[GatewayResponse] = None
        try:
            response = self.gateway.query_document(task.correlation)
        except GatewayError as e:
            logger.debug(f"[{document_id}] Error en consulta (se reintentará): {e}")

        if response is not None and not response.pending:
            if response.is_rejected:
                reason = f"Comprobante rechazado por SUNAT: {response.rejection_reason()}"
                logger.warning(f"[{document_id}] {reason}")
                self._finalize_failed(task, reason, response)
                return True
            if response.is_accepted and response.links.is_complete():
                logger.info(f"[{document_id}] Enlaces completos obtenidos")
                self._finalize_completed(task, response)
                return True
            links = response.links
            logger.debug(
                f"[{document_id}] Enlaces aún no disponibles "
                f"(pdf: {bool(links.pdf)}, xml: {bool(links.xml)}, cdr: {bool(links.cdr)})"
            )

        if task.attempts >= self.max_attempts:
            logger.error(f"[{document_id}] Máximo de intentos alcanzado ({self.max_attempts})")
            self._finalize_failed(task, TIMEOUT_REASON.format(attempts=task.attempts))
            return True
        return False

    def _finalize_completed(self, task: PollingTask, response: GatewayResponse) -> None:
        family = task.correlation.family
        if not self.document_repo.transition(
            task.document_id, DocumentState.IN_FLIGHT, DocumentState.COMPLETED, response=response,
        ):
            logger.info(f"[{task.document_id}] Ya fue finalizado por otra vía, no se sobrescribe")
            return
        logger.info(f"[{task.document_id}] Comprobante completado")
        self.notification_service.notify_completed(task.document_id, family, response.links)
        self.dispatcher.mark_terminal(
            task.document_id, family, TerminalStatus.SUCCESS, response.raw, task.correlation_id,
        )

    def _finalize_failed(self, task: PollingTask, reason: str, response: Optional[GatewayResponse] = None) -> None:
        if not self.document_repo.transition(
            task.document_id, DocumentState.IN_FLIGHT, DocumentState.FAILED, error=reason, response=response,
        ):
            logger.info(f"[{task.document_id}] Ya fue finalizado por otra vía, no se sobrescribe")
            return
        self.dispatcher.mark_terminal(
            task.document_id, task.correlation.family, TerminalStatus.ERROR,
            {"error": reason, "sunat_response": response.raw if response else None},
            task.correlation_id,
        )
