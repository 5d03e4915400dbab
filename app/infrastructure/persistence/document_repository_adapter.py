# app/infrastructure/persistence/document_repository_adapter.py
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from app.domain.exceptions import DuplicateDocument
from app.domain.models.document import (
    ArtifactLinks, Document, DocumentFamily, DocumentState, Driver, Installment, LineItem, Party, RelatedDocument,
)
from app.domain.models.gateway_response import GatewayResponse
from app.domain.ports.document_repository import DocumentRepository
from app.domain.state_machine import ensure_transition
from .models import DocumentRecord, InstallmentRecord, LineItemRecord, RelatedDocumentRecord

logger = logging.getLogger(__name__)

# Columnas escalares que se copian tal cual entre el modelo y la tabla
_SCALAR_FIELDS = (
    "series", "number", "issue_date", "due_date", "service_date", "currency", "exchange_rate",
    "tax_percentage", "total_taxable", "total_tax", "total", "payment_condition", "payment_method",
    "observations", "purchase_order", "vehicle_plate", "note_type", "apply_detraction", "detraction_type",
    "detraction_percentage", "detraction_total", "detraction_payment_method", "transfer_reason", "package_count",
    "transport_mode", "transfer_start_date", "gross_weight", "gross_weight_unit", "departure_ubigeo",
    "departure_address", "arrival_ubigeo", "arrival_address", "main_vehicle_tuc",
    "accepted_by_authority", "authority_description", "authority_note", "authority_response_code",
    "last_error", "updated_at",
)

_CHILDREN = (
    selectinload(DocumentRecord.items),
    selectinload(DocumentRecord.related_documents),
    selectinload(DocumentRecord.installments),
)


def _state_column(state: DocumentState) -> Optional[str]:
    return None if state == DocumentState.DRAFT else state.value


def _state_filter(state: DocumentState):
    if state == DocumentState.DRAFT:
        return DocumentRecord.state.is_(None)
    return DocumentRecord.state == state.value


class SQLAlchemyDocumentRepository(DocumentRepository):
    """
    Almacén de comprobantes sobre SQLAlchemy. Cada operación abre su propia
    sesión porque el polling la invoca desde hilos distintos.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def add(self, document: Document) -> Document:
        try:
            with self._session() as session:
                record = self._to_record(document)
                session.add(record)
                session.flush()
                saved = self._to_domain(record)
        except IntegrityError as e:
            raise DuplicateDocument(f"Ya existe {document.family.value} {document.business_key}") from e
        logger.info(f"[{saved.id}] Comprobante {saved.business_key} registrado")
        return saved

    def get(self, document_id: int) -> Optional[Document]:
        with self._session() as session:
            record = session.query(DocumentRecord).options(*_CHILDREN).filter(DocumentRecord.id == document_id).first()
            return self._to_domain(record) if record else None

    def find_by_state(self, state: DocumentState) -> List[Document]:
        with self._session() as session:
            records = (
                session.query(DocumentRecord)
                .options(*_CHILDREN)
                .filter(_state_filter(state))
                .order_by(DocumentRecord.id)
                .all()
            )
            return [self._to_domain(r) for r in records]

    def transition(
        self,
        document_id: int,
        expected: DocumentState,
        target: DocumentState,
        error: Optional[str] = None,
        response: Optional[GatewayResponse] = None,
    ) -> bool:
        ensure_transition(expected, target)
        values: Dict[str, Any] = {"state": _state_column(target), "updated_at": datetime.now(timezone.utc)}
        if target == DocumentState.DRAFT:
            values.update(
                public_url=None, pdf_url=None, xml_url=None, cdr_url=None,
                accepted_by_authority=None, authority_description=None, authority_note=None,
                authority_response_code=None, last_error=None,
            )
        if response is not None:
            values.update(
                public_url=response.links.public_url,
                pdf_url=response.links.pdf,
                xml_url=response.links.xml,
                cdr_url=response.links.cdr,
                accepted_by_authority=response.accepted,
                authority_description=response.description,
                authority_note=response.note,
                authority_response_code=response.response_code,
            )
        if error is not None:
            values["last_error"] = error

        # Lectura y escritura en un solo UPDATE condicional
        statement = (
            update(DocumentRecord)
            .where(DocumentRecord.id == document_id, _state_filter(expected))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with self._session() as session:
            result = session.execute(statement)
            written = result.rowcount == 1

        if written:
            logger.debug(f"[{document_id}] Estado {expected.value} -> {target.value}")
        return written

    def count_by_state(self) -> Dict[DocumentState, int]:
        with self._session() as session:
            rows = session.query(DocumentRecord.state, func.count(DocumentRecord.id)).group_by(DocumentRecord.state).all()
        return {DocumentState(state) if state else DocumentState.DRAFT: count for state, count in rows}

    def _to_record(self, document: Document) -> DocumentRecord:
        record = DocumentRecord(
            family=document.family.value,
            state=_state_column(document.state),
            customer=document.customer.model_dump(mode="json", exclude_none=True),
            carrier=document.carrier.model_dump(mode="json", exclude_none=True) if document.carrier else None,
            driver=document.driver.model_dump(mode="json", exclude_none=True) if document.driver else None,
            recipient=document.recipient.model_dump(mode="json", exclude_none=True) if document.recipient else None,
            public_url=document.links.public_url,
            pdf_url=document.links.pdf,
            xml_url=document.links.xml,
            cdr_url=document.links.cdr,
        )
        for field in _SCALAR_FIELDS:
            setattr(record, field, getattr(document, field))
        record.items = [LineItemRecord(**item.model_dump(exclude={"id"})) for item in document.items]
        record.related_documents = [RelatedDocumentRecord(**r.model_dump()) for r in document.related_documents]
        record.installments = [InstallmentRecord(**i.model_dump()) for i in document.installments]
        return record

    def _to_domain(self, record: DocumentRecord) -> Document:
        data = {field: getattr(record, field) for field in _SCALAR_FIELDS}
        return Document(
            id=record.id,
            family=DocumentFamily(record.family),
            state=DocumentState(record.state) if record.state else DocumentState.DRAFT,
            customer=Party(**(record.customer or {})),
            carrier=Party(**record.carrier) if record.carrier else None,
            driver=Driver(**record.driver) if record.driver else None,
            recipient=Party(**record.recipient) if record.recipient else None,
            links=ArtifactLinks(
                public_url=record.public_url, pdf=record.pdf_url, xml=record.xml_url, cdr=record.cdr_url,
            ),
            items=[LineItem.model_validate(item) for item in record.items],
            related_documents=[RelatedDocument.model_validate(r) for r in record.related_documents],
            installments=[Installment.model_validate(i) for i in record.installments],
            **data,
        )
