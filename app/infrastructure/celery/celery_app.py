# app/infrastructure/celery/celery_app.py
from celery import Celery
from kombu import Queue

import config
from app.domain.models.document import DocumentFamily
from app.domain.models.message import Channel, channel_name

# Una cola por canal: `invoice-requests`, `carrier-waybill-responses`, etc.
CHANNEL_QUEUES = [channel_name(family, channel) for family in DocumentFamily for channel in Channel]

celery_app = Celery(
    'tasks',
    broker=config.CELERY_BROKER_URL,
    backend=None  # No se usan resultados de tareas.
)

celery_app.conf.update(
    # Entrega al menos una vez: el mensaje se confirma solo al terminar la tarea
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_ignore_result=True,
    task_serializer='json',
    accept_content=['json'],
    # El PollManager vive en memoria: todas las tareas deben correr en el mismo proceso
    worker_pool='threads',
    task_default_queue='celery',
    task_queues=[Queue('celery')] + [Queue(name) for name in CHANNEL_QUEUES],
    beat_schedule={
        'detectar-borradores': {
            'task': 'tasks.detect_drafts',
            'schedule': float(config.DETECTOR_INTERVAL_SECONDS),
        },
    },
    timezone=config.GATEWAY_TIMEZONE,
)
