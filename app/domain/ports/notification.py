# app/domain/ports/notification.py
from abc import ABC, abstractmethod

from app.domain.models.document import ArtifactLinks, DocumentFamily


class Notification(ABC):
    """Puerto para avisar al cliente conectado que un comprobante quedó completado."""
    @abstractmethod
    def notify_completed(self, document_id: int, family: DocumentFamily, links: ArtifactLinks) -> None:
        """Envío 'fire-and-forget': las fallas se registran pero no se propagan."""
        pass
