import threading

import requests

from app.domain.models.document import ArtifactLinks, DocumentFamily
from app.domain.models.message import Message
from app.infrastructure.celery.broker_adapter import CeleryMessageBroker
from app.infrastructure.external.webhook_notification_adapter import WebhookNotificationAdapter
from app.infrastructure.scheduling.threading_scheduler import ThreadingScheduler

LINKS = ArtifactLinks(public_url="https://x/cpe", pdf="https://x/a.pdf", xml="https://x/a.xml", cdr="https://x/a.cdr")


class RecordingSession:
    def __init__(self, error=None):
        self.error = error
        self.posts = []

    def post(self, url, json=None, timeout=None):
        self.posts.append((url, json))
        if self.error:
            raise self.error
        response = requests.Response()
        response.status_code = 200
        return response


class FakeCeleryApp:
    def __init__(self):
        self.sent = []

    def send_task(self, name, **kwargs):
        self.sent.append((name, kwargs))


def test_webhook_posts_completed_event():
    session = RecordingSession()
    WebhookNotificationAdapter(url="https://hooks.local/comprobantes", session=session).notify_completed(
        7, DocumentFamily.CARRIER_WAYBILL, LINKS,
    )

    [(url, event)] = session.posts
    assert url == "https://hooks.local/comprobantes"
    assert event["event"] == "carrier-waybill-completed"
    assert event["document_id"] == 7
    assert event["state"] == "completed"
    assert event["enlace_del_cdr"] == "https://x/a.cdr"


def test_webhook_failures_are_not_raised():
    session = RecordingSession(error=requests.exceptions.ConnectionError("sin red"))
    WebhookNotificationAdapter(url="https://hooks.local/comprobantes", session=session).notify_completed(
        7, DocumentFamily.INVOICE, LINKS,
    )
    assert len(session.posts) == 1


def test_webhook_without_url_does_nothing():
    session = RecordingSession()
    adapter = WebhookNotificationAdapter(url=None, session=session)
    adapter.url = None
    adapter.notify_completed(7, DocumentFamily.INVOICE, LINKS)
    assert session.posts == []


def test_celery_broker_routes_by_channel():
    app = FakeCeleryApp()
    message = Message(document_id=12, family=DocumentFamily.CREDIT_NOTE, payload={"serie": "FC01"})

    CeleryMessageBroker(app).publish("credit-note-requests", message)
    CeleryMessageBroker(app).publish("credit-note-failed", message)

    (name, kwargs), (audit_name, audit_kwargs) = app.sent
    assert name == "tasks.process_submission"
    assert kwargs["queue"] == "credit-note-requests"
    assert kwargs["headers"] == {"partition_key": "12"}
    assert kwargs["task_id"] == message.message_id
    assert Message.model_validate(kwargs["args"][0]) == message
    assert audit_name == "tasks.record_audit"
    assert audit_kwargs["queue"] == "credit-note-failed"


def test_threading_scheduler_runs_and_cancels():
    scheduler = ThreadingScheduler()
    ran = threading.Event()
    cancelled = threading.Event()

    scheduler.schedule(0, ran.set)
    scheduler.schedule(0.5, cancelled.set).cancel()

    assert ran.wait(2)
    assert not cancelled.wait(1)
