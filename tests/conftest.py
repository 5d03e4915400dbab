from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.application.use_cases.detect_drafts import DetectDraftsUseCase
from app.application.use_cases.dispatch_document import DocumentDispatcher
from app.application.use_cases.handle_terminal_response import HandleTerminalResponseUseCase
from app.application.use_cases.poll_manager import PollManager
from app.application.use_cases.process_submission import ProcessSubmissionUseCase
from app.domain.models.document import (
    ArtifactLinks, Document, DocumentFamily, DocumentState, Driver, LineItem, Party, RelatedDocument,
)
from app.domain.models.gateway_response import CorrelationPayload, GatewayResponse
from app.domain.models.message import Message
from app.domain.ports.message_broker import MessageBroker
from app.domain.ports.notification import Notification
from app.domain.ports.scheduler import ScheduledTask, Scheduler
from app.domain.ports.submission_gateway import SubmissionGateway
from app.infrastructure.persistence.document_repository_adapter import SQLAlchemyDocumentRepository
from app.infrastructure.persistence.models import Base


# --- Fakes de los puertos ---

class InMemoryBroker(MessageBroker):
    def __init__(self) -> None:
        self.published: List[Tuple[str, Message]] = []
        self.failing_channels: set = set()

    def publish(self, channel: str, message: Message) -> None:
        if channel in self.failing_channels:
            raise ConnectionError(f"broker no disponible para {channel}")
        self.published.append((channel, message))

    def messages(self, channel: str) -> List[Message]:
        return [m for c, m in self.published if c == channel]


class ScriptedGateway(SubmissionGateway):
    """Devuelve (o lanza) las respuestas programadas en orden; sin guion, queda pendiente."""

    def __init__(self) -> None:
        self.create_script: List[Any] = []
        self.query_script: List[Any] = []
        self.create_calls: List[Dict[str, Any]] = []
        self.query_calls: List[CorrelationPayload] = []

    def create_document(self, family: DocumentFamily, payload: Dict[str, Any]) -> GatewayResponse:
        self.create_calls.append(payload)
        return self._next(self.create_script, GatewayResponse.from_nubefact({}))

    def query_document(self, correlation: CorrelationPayload) -> GatewayResponse:
        self.query_calls.append(correlation)
        return self._next(self.query_script, GatewayResponse.waiting())

    @staticmethod
    def _next(script: List[Any], default: GatewayResponse) -> GatewayResponse:
        result = script.pop(0) if script else default
        if isinstance(result, Exception):
            raise result
        return result


class ManualTask(ScheduledTask):
    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.ran = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Nada corre hasta llamar `run_pending`, que ejecuta lo programado hasta ese momento."""

    def __init__(self) -> None:
        self.tasks: List[ManualTask] = []

    def schedule(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledTask:
        task = ManualTask(delay_seconds, callback)
        self.tasks.append(task)
        return task

    def pending(self) -> List[ManualTask]:
        return [t for t in self.tasks if not t.cancelled and not t.ran]

    def run_pending(self) -> int:
        due = self.pending()
        for task in due:
            task.ran = True
            task.callback()
        return len(due)


class RecordingNotifier(Notification):
    def __init__(self) -> None:
        self.calls: List[Tuple[int, DocumentFamily, ArtifactLinks]] = []

    def notify_completed(self, document_id: int, family: DocumentFamily, links: ArtifactLinks) -> None:
        self.calls.append((document_id, family, links))


# --- Datos de prueba ---

COMPLETE_BODY = {
    "enlace": "https://www.nubefact.com/cpe/abc123",
    "aceptada_por_sunat": True,
    "sunat_description": "La Factura numero F001-42, ha sido aceptada",
    "sunat_responsecode": "0",
    "enlace_del_pdf": "https://www.nubefact.com/cpe/abc123.pdf",
    "enlace_del_xml": "https://www.nubefact.com/cpe/abc123.xml",
    "enlace_del_cdr": "https://www.nubefact.com/cpe/abc123.cdr",
}

INCOMPLETE_BODY = {
    "enlace": "https://www.nubefact.com/cpe/abc123",
    "aceptada_por_sunat": False,
    "enlace_del_pdf": "https://www.nubefact.com/cpe/abc123.pdf",
    "enlace_del_xml": "https://www.nubefact.com/cpe/abc123.xml",
    "enlace_del_cdr": "",
}

REJECTED_BODY = {
    "aceptada_por_sunat": False,
    "sunat_description": "El numero de RUC del receptor no existe",
    "sunat_responsecode": "2017",
}


def make_invoice(series: str = "F001", number: int = 42, **overrides: Any) -> Document:
    data: Dict[str, Any] = dict(
        family=DocumentFamily.INVOICE,
        series=series,
        number=number,
        customer=Party(document_type="6", document_number="20100070970", name="Cliente Ejemplo S.A.C.",
                       address="Av. Arequipa 123, Lima"),
        issue_date=date(2024, 5, 10),
        currency=1,
        tax_percentage=Decimal("18"),
        total_taxable=Decimal("100.00"),
        total_tax=Decimal("18.00"),
        total=Decimal("118.00"),
        items=[
            LineItem(
                description="Servicio de acarreo",
                unit_of_measure="SERVICIO",
                quantity=Decimal("1"),
                unit_value=Decimal("100.00"),
                unit_price=Decimal("118.00"),
                tax_code=1,
                subtotal=Decimal("100.00"),
                tax=Decimal("18.00"),
                total=Decimal("118.00"),
            )
        ],
    )
    data.update(overrides)
    return Document(**data)


def make_outbound_waybill(number: int = 7, **overrides: Any) -> Document:
    data: Dict[str, Any] = dict(
        family=DocumentFamily.OUTBOUND_WAYBILL,
        series="T001",
        number=number,
        customer=Party(document_type="6", document_number="20100070970", name="Cliente Ejemplo S.A.C.",
                       address="Av. Arequipa 123, Lima"),
        issue_date=date(2024, 5, 10),
        transfer_start_date=date(2024, 5, 11),
        transfer_reason="01",
        package_count=3,
        transport_mode="02",
        gross_weight=Decimal("1500"),
        gross_weight_unit="KGM",
        vehicle_plate="ABC123",
        departure_ubigeo="150101",
        departure_address="Av. Colonial 456, Lima",
        arrival_ubigeo="070101",
        arrival_address="Av. Faucett 789, Callao",
        driver=Driver(document_type="1", document_number="45678912", first_names="Juan",
                      last_names="Pérez Quispe", licence="Q45678912"),
        related_documents=[RelatedDocument(type="01", series="F001", number=42)],
        items=[LineItem(description="Material de relleno", unit_of_measure="TNE", code="MAT-01",
                        quantity=Decimal("1.5"))],
    )
    data.update(overrides)
    return Document(**data)


def make_carrier_waybill(number: int = 9, **overrides: Any) -> Document:
    data: Dict[str, Any] = dict(
        family=DocumentFamily.CARRIER_WAYBILL,
        series="V001",
        number=number,
        customer=Party(document_type="6", document_number="20100070970", name="Remitente S.A.C.",
                       address="Av. Arequipa 123, Lima"),
        issue_date=date(2024, 5, 10),
        transfer_start_date=date(2024, 5, 11),
        gross_weight=Decimal("20"),
        gross_weight_unit="TNE",
        vehicle_plate="XYZ987",
        departure_ubigeo="150101",
        departure_address="Cantera Norte km 12",
        arrival_ubigeo="150102",
        arrival_address="Obra Av. Grau 100",
        driver=Driver(document_type="1", document_number="45678912", name="Juan Pérez Quispe",
                      first_names="Juan", last_names="Pérez Quispe", licence="Q45678912"),
        recipient=Party(document_type="6", document_number="20512345678", name="Constructora Andina S.A."),
        main_vehicle_tuc="15M21028061E",
        items=[LineItem(description="Desmonte", unit_of_measure="TNE", quantity=Decimal("20"))],
    )
    data.update(overrides)
    return Document(**data)


def drive_to(repo: SQLAlchemyDocumentRepository, document_id: int, target: DocumentState) -> None:
    """Lleva un borrador hasta `target` por el camino normal."""
    path = [DocumentState.DRAFT, DocumentState.QUEUED, DocumentState.IN_FLIGHT]
    for current, nxt in zip(path, path[1:]):
        assert repo.transition(document_id, current, nxt)
        if nxt == target:
            return


# --- Fixtures ---

@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def repo(session_factory):
    return SQLAlchemyDocumentRepository(session_factory)


@pytest.fixture
def broker():
    return InMemoryBroker()


@pytest.fixture
def gateway():
    return ScriptedGateway()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def dispatcher(broker):
    return DocumentDispatcher(broker)


@pytest.fixture
def poll_manager(repo, gateway, dispatcher, notifier, scheduler):
    return PollManager(
        document_repo=repo,
        gateway=gateway,
        dispatcher=dispatcher,
        notification_service=notifier,
        scheduler=scheduler,
        interval_seconds=30,
        max_attempts=720,
    )


@pytest.fixture
def detector(repo, dispatcher):
    return DetectDraftsUseCase(document_repo=repo, dispatcher=dispatcher)


@pytest.fixture
def submission(repo, gateway, dispatcher, poll_manager, notifier):
    return ProcessSubmissionUseCase(
        document_repo=repo,
        gateway=gateway,
        dispatcher=dispatcher,
        poll_manager=poll_manager,
        notification_service=notifier,
    )


@pytest.fixture
def terminal_consumer(repo, poll_manager, notifier):
    return HandleTerminalResponseUseCase(document_repo=repo, poll_manager=poll_manager, notification_service=notifier)


def queued_message(broker: InMemoryBroker, channel: str = "invoice-requests") -> Optional[Message]:
    messages = broker.messages(channel)
    return messages[-1] if messages else None
