# app/application/use_cases/dispatch_document.py
import logging
from typing import Any, Dict, Optional

from app.domain.models.document import DocumentFamily
from app.domain.models.message import Channel, Message, TerminalStatus, channel_name
from app.domain.ports.message_broker import MessageBroker

logger = logging.getLogger(__name__)


class DocumentDispatcher:
    """
    Publicador sin estado. Solo `submit` es necesario para el flujo; los demás
    mensajes son de auditoría y sus fallas no interrumpen el pipeline.
    """

    def __init__(self, broker: MessageBroker):
        self.broker = broker

    def submit(self, document_id: int, family: DocumentFamily, payload: Dict[str, Any]) -> Message:
        message = Message(document_id=document_id, family=family, payload=payload, status="queued")
        self.broker.publish(channel_name(family, Channel.REQUESTS), message)
        logger.info(f"[{document_id}] Solicitud publicada en {channel_name(family, Channel.REQUESTS)} (msgId: {message.message_id})")
        return message

    def mark_processing(self, document_id: int, family: DocumentFamily, correlation_id: str) -> None:
        self._publish_audit(
            Channel.PROCESSING,
            Message(document_id=document_id, family=family, status="processing",
                    payload={"correlation_id": correlation_id}),
        )

    def mark_terminal(
        self,
        document_id: int,
        family: DocumentFamily,
        status: TerminalStatus,
        response: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        payload = {"correlation_id": correlation_id, "response": response or {}}
        self._publish_audit(
            Channel.RESPONSES,
            Message(document_id=document_id, family=family, status=TerminalStatus(status).value, payload=payload),
        )

    def mark_failed(self, document_id: int, family: DocumentFamily, error: Dict[str, Any],
                    correlation_id: Optional[str] = None) -> None:
        self._publish_audit(
            Channel.FAILED,
            Message(document_id=document_id, family=family, status="failed",
                    payload={"correlation_id": correlation_id, "error": error}),
        )

    def _publish_audit(self, channel: Channel, message: Message) -> None:
        name = channel_name(message.family, channel)
        try:
            self.broker.publish(name, message)
            logger.info(f"[{message.document_id}] Mensaje publicado en {name}")
        except Exception:
            logger.warning(f"[{message.document_id}] No se pudo publicar en {name} (no crítico)", exc_info=True)
