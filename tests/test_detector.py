from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.application.use_cases.detect_drafts import DetectDraftsUseCase
from app.domain.exceptions import DocumentNotFound, DocumentNotReady, InvalidStateTransition
from app.domain.models.document import DocumentFamily, DocumentState

from conftest import drive_to, make_invoice, make_outbound_waybill


def test_valid_draft_is_queued_and_published(repo, broker, detector):
    document = repo.add(make_invoice())

    assert detector.execute() == 1

    assert repo.get(document.id).state == DocumentState.QUEUED
    [message] = broker.messages("invoice-requests")
    assert message.document_id == document.id
    assert message.family == DocumentFamily.INVOICE
    assert message.partition_key == str(document.id)
    assert message.payload["operacion"] == "generar_comprobante"
    assert message.payload["total"] == "118.00"


def test_each_family_goes_to_its_own_channel(repo, broker, detector):
    repo.add(make_invoice())
    repo.add(make_outbound_waybill())

    assert detector.execute() == 2
    assert len(broker.messages("invoice-requests")) == 1
    assert len(broker.messages("outbound-waybill-requests")) == 1


def test_incomplete_draft_is_left_for_next_cycle(repo, broker, detector):
    document = repo.add(make_invoice(total=Decimal("150.00")))

    assert detector.execute() == 0

    assert repo.get(document.id).state == DocumentState.DRAFT
    assert broker.published == []
    assert detector.stats.total_detected == 1
    assert detector.stats.total_validated == 0


def test_queued_document_is_not_detected_twice(repo, broker, detector):
    repo.add(make_invoice())
    detector.execute()
    assert detector.execute() == 0
    assert len(broker.messages("invoice-requests")) == 1


def test_publish_failure_marks_document_failed(repo, broker, detector):
    document = repo.add(make_invoice())
    broker.failing_channels.add("invoice-requests")

    assert detector.execute() == 0

    loaded = repo.get(document.id)
    assert loaded.state == DocumentState.FAILED
    assert loaded.last_error.startswith("Error publicando solicitud")
    assert detector.stats.total_failed == 1


def test_transform_failure_marks_document_failed(repo, detector, monkeypatch):
    document = repo.add(make_invoice())

    def broken_transform(self, doc):
        raise KeyError("serie")

    monkeypatch.setattr("app.domain.families.invoice.InvoiceRules.transform", broken_transform)
    detector.execute()

    loaded = repo.get(document.id)
    assert loaded.state == DocumentState.FAILED
    assert loaded.last_error.startswith("Error en procesamiento")


def test_detect_one(repo, broker, detector):
    document = repo.add(make_invoice())
    assert detector.detect_one(document.id)
    assert len(broker.messages("invoice-requests")) == 1

    with pytest.raises(InvalidStateTransition):
        detector.detect_one(document.id)
    with pytest.raises(DocumentNotFound):
        detector.detect_one(999)


def test_detect_one_reports_validation_errors(repo, detector):
    document = repo.add(make_invoice(number=5, items=[]))
    with pytest.raises(DocumentNotReady) as excinfo:
        detector.detect_one(document.id)
    assert "debe tener al menos 1 item" in excinfo.value.errors


def test_stale_queued_document_is_republished_once_per_window(repo, broker, dispatcher):
    document = repo.add(make_invoice())
    drive_to(repo, document.id, DocumentState.QUEUED)
    now = datetime.now(timezone.utc)
    clock = [now]
    detector = DetectDraftsUseCase(repo, dispatcher, stale_after_seconds=300, clock=lambda: clock[0])

    # Recién encolado: se espera al worker
    detector.execute()
    assert broker.messages("invoice-requests") == []

    clock[0] = now + timedelta(minutes=6)
    detector.execute()
    detector.execute()

    [message] = broker.messages("invoice-requests")
    assert message.document_id == document.id
    assert message.payload["operacion"] == "generar_comprobante"
    assert repo.get(document.id).state == DocumentState.QUEUED
    assert detector.stats.total_republished == 1

    clock[0] = now + timedelta(minutes=12)
    detector.execute()
    assert len(broker.messages("invoice-requests")) == 2


def test_republished_duplicate_is_dropped_by_worker(repo, broker, dispatcher, submission, gateway):
    repo.add(make_invoice())
    clock = [datetime.now(timezone.utc)]
    detector = DetectDraftsUseCase(repo, dispatcher, stale_after_seconds=300, clock=lambda: clock[0])
    detector.execute()

    clock[0] += timedelta(minutes=6)
    detector.execute()
    first, second = broker.messages("invoice-requests")

    submission.execute(first)
    submission.execute(second)
    assert len(gateway.create_calls) == 1
