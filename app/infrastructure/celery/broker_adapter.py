# app/infrastructure/celery/broker_adapter.py
import logging

from celery import Celery

from app.domain.models.message import Channel, Message
from app.domain.ports.message_broker import MessageBroker

logger = logging.getLogger(__name__)

# Tarea que consume cada tipo de canal
CHANNEL_TASKS = {
    Channel.REQUESTS: 'tasks.process_submission',
    Channel.PROCESSING: 'tasks.record_audit',
    Channel.RESPONSES: 'tasks.handle_terminal_response',
    Channel.FAILED: 'tasks.record_audit',
}


class CeleryMessageBroker(MessageBroker):
    """Publica cada mensaje como una tarea Celery en la cola homónima del canal."""

    def __init__(self, app: Celery):
        self.app = app

    def publish(self, channel: str, message: Message) -> None:
        kind = Channel(channel.rsplit('-', 1)[1])
        self.app.send_task(
            CHANNEL_TASKS[kind],
            args=[message.model_dump(mode='json')],
            queue=channel,
            task_id=message.message_id,
            headers={'partition_key': message.partition_key},
        )
        logger.debug(f"[{message.document_id}] Tarea {CHANNEL_TASKS[kind]} enviada a la cola {channel}")
