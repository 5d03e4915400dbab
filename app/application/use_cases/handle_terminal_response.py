# app/application/use_cases/handle_terminal_response.py
import json
import logging

from app.application.use_cases.poll_manager import PollManager
from app.domain.models.document import DocumentState
from app.domain.models.gateway_response import GatewayResponse
from app.domain.models.message import Message, TerminalStatus
from app.domain.ports.document_repository import DocumentRepository
from app.domain.ports.notification import Notification

logger = logging.getLogger(__name__)


class HandleTerminalResponseUseCase:
    """
    Consumidor de `{familia}-responses`. Es idempotente: si el comprobante ya
    está finalizado (por el polling o el worker) no escribe nada.
    """

    def __init__(self, document_repo: DocumentRepository, poll_manager: PollManager, notification_service: Notification):
        self.document_repo = document_repo
        self.poll_manager = poll_manager
        self.notification_service = notification_service

    def execute(self, message: Message) -> bool:
        """Retorna True solo si este mensaje fue el que escribió el estado final."""
        document_id = message.document_id
        logger.info(f"[{document_id}] Procesando respuesta {message.message_id}, estado: {message.status}")

        if message.status == TerminalStatus.SUCCESS.value:
            response = GatewayResponse.from_nubefact(message.payload.get("response") or {})
            if not (response.is_accepted and response.links.is_complete()):
                logger.debug(f"[{document_id}] Respuesta sin aceptación de SUNAT o sin todos los enlaces, se continúa el polling")
                return False
            written = self.document_repo.transition(
                document_id, DocumentState.IN_FLIGHT, DocumentState.COMPLETED, response=response,
            )
            if written:
                self.notification_service.notify_completed(document_id, message.family, response.links)
        elif message.status == TerminalStatus.ERROR.value:
            error = message.payload.get("response") or message.payload.get("error") or {}
            written = self.document_repo.transition(
                document_id, DocumentState.IN_FLIGHT, DocumentState.FAILED,
                error=json.dumps(error, default=str, ensure_ascii=False),
            )
        else:
            logger.warning(f"[{document_id}] Estado de respuesta desconocido: {message.status}")
            return False

        if not written:
            current = self.document_repo.get(document_id)
            if current is not None and current.state.is_terminal:
                logger.info(f"[{document_id}] Ya estaba finalizado ({current.state.value}), respuesta ignorada")
            else:
                logger.warning(f"[{document_id}] No está en vuelo, respuesta ignorada")
        self.poll_manager.stop_polling(document_id)
        return written
