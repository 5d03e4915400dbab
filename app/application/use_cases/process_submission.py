# app/application/use_cases/process_submission.py
import json
import logging
import traceback
from typing import Any, Dict, Optional

from app.application.use_cases.dispatch_document import DocumentDispatcher
from app.application.use_cases.poll_manager import PollManager
from app.domain.exceptions import GatewayError
from app.domain.families.registry import rules_for
from app.domain.models.document import DocumentState
from app.domain.models.gateway_response import GatewayResponse
from app.domain.models.message import Message, TerminalStatus
from app.domain.ports.document_repository import DocumentRepository
from app.domain.ports.notification import Notification
from app.domain.ports.submission_gateway import SubmissionGateway

logger = logging.getLogger(__name__)


class ProcessSubmissionUseCase:
    """
    Consumidor de `{familia}-requests`. El paso QUEUED -> IN_FLIGHT es la única
    deduplicación del sistema: si no aplica, el mensaje es una re-entrega y se descarta.
    """

    def __init__(
        self,
        document_repo: DocumentRepository,
        gateway: SubmissionGateway,
        dispatcher: DocumentDispatcher,
        poll_manager: PollManager,
        notification_service: Notification,
    ):
        self.document_repo = document_repo
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.poll_manager = poll_manager
        self.notification_service = notification_service

    def execute(self, message: Message) -> None:
        document_id = message.document_id
        logger.info(f"[{document_id}] Procesando solicitud {message.message_id}")

        # Escritura anticipada: se marca IN_FLIGHT antes de llamar a NubeFact
        if not self.document_repo.transition(document_id, DocumentState.QUEUED, DocumentState.IN_FLIGHT):
            current = self.document_repo.get(document_id)
            state = current.state.value if current else "inexistente"
            logger.warning(f"[{document_id}] Ya fue procesado (estado: {state}), ignorando mensaje duplicado")
            return

        try:
            self._submit(message)
        except Exception as e:
            logger.error(f"[{document_id}] Error procesando solicitud", exc_info=True)
            error = {"message": str(e), "stack": traceback.format_exc()}
            self._fail(message, json.dumps(error, ensure_ascii=False), error)

    def _submit(self, message: Message) -> None:
        document_id = message.document_id
        try:
            response = self.gateway.create_document(message.family, message.payload)
        except GatewayError as e:
            logger.error(f"[{document_id}] Error en API generar comprobante: {e.payload}")
            self._fail(message, json.dumps(e.payload, default=str, ensure_ascii=False), e.payload)
            return

        if response.is_rejected:
            reason = f"Comprobante rechazado por SUNAT: {response.rejection_reason()}"
            self._fail(message, reason, {"error": reason, "sunat_response": response.raw}, response)
            return

        if response.links.is_complete():
            self._complete(message, response)
            return

        logger.info(f"[{document_id}] Respuesta sin enlaces completos, iniciando polling")
        self.dispatcher.mark_processing(document_id, message.family, message.message_id)
        correlation = rules_for(message.family).correlation_from_payload(message.payload)
        self.poll_manager.start_polling(document_id, correlation, correlation_id=message.message_id)

    def _complete(self, message: Message, response: GatewayResponse) -> None:
        document_id = message.document_id
        if not self.document_repo.transition(
            document_id, DocumentState.IN_FLIGHT, DocumentState.COMPLETED, response=response,
        ):
            logger.info(f"[{document_id}] Ya fue finalizado por otra vía")
            return
        logger.info(f"[{document_id}] Comprobante completado inmediatamente")
        self.notification_service.notify_completed(document_id, message.family, response.links)
        self.dispatcher.mark_terminal(
            document_id, message.family, TerminalStatus.SUCCESS, response.raw, message.message_id,
        )

    def _fail(
        self,
        message: Message,
        reason: str,
        error: Dict[str, Any],
        response: Optional[GatewayResponse] = None,
    ) -> None:
        document_id = message.document_id
        try:
            written = self.document_repo.transition(
                document_id, DocumentState.IN_FLIGHT, DocumentState.FAILED, error=reason, response=response,
            )
        except Exception:
            logger.error(f"[{document_id}] Error actualizando estado a FALLADO", exc_info=True)
            return
        if written:
            self.dispatcher.mark_failed(document_id, message.family, error, message.message_id)
