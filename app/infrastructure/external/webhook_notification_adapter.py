# app/infrastructure/external/webhook_notification_adapter.py
import logging
from typing import Optional

import requests

import config
from app.domain.models.document import ArtifactLinks, DocumentFamily, DocumentState
from app.domain.ports.notification import Notification

logger = logging.getLogger(__name__)


class WebhookNotificationAdapter(Notification):
    """Avisa por HTTP POST que un comprobante quedó completado, con sus enlaces."""

    def __init__(self, url: Optional[str] = None, session: Optional[requests.Session] = None):
        self.url = url or config.NOTIFICATION_WEBHOOK_URL
        self.session = session or requests.Session()

    def notify_completed(self, document_id: int, family: DocumentFamily, links: ArtifactLinks) -> None:
        if not self.url:
            logger.debug(f"[{document_id}] Sin webhook configurado, no se notifica")
            return
        event = {
            "event": f"{DocumentFamily(family).value}-completed",
            "document_id": document_id,
            "state": DocumentState.COMPLETED.value,
            "enlace": links.public_url,
            "enlace_del_pdf": links.pdf,
            "enlace_del_xml": links.xml,
            "enlace_del_cdr": links.cdr,
        }
        try:
            response = self.session.post(self.url, json=event, timeout=config.NOTIFICATION_TIMEOUT_SECONDS)
            response.raise_for_status()
            logger.info(f"[{document_id}] Notificación de completado enviada")
        except requests.exceptions.RequestException as e:
            logger.warning(f"[{document_id}] No se pudo enviar la notificación: {e}")
