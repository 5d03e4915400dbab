# app/domain/ports/message_broker.py
from abc import ABC, abstractmethod

from app.domain.models.message import Message


class MessageBroker(ABC):
    """Puerto hacia el broker de mensajes (entrega al menos una vez)."""

    @abstractmethod
    def publish(self, channel: str, message: Message) -> None:
        """Publica el mensaje en el canal, usando `message.partition_key` como clave."""
        pass
