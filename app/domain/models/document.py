# app/domain/models/document.py
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DocumentFamily(str, Enum):
    """Familias de comprobantes. Todas comparten el mismo ciclo de vida."""
    INVOICE = "invoice"
    CREDIT_NOTE = "credit-note"
    DEBIT_NOTE = "debit-note"
    OUTBOUND_WAYBILL = "outbound-waybill"
    CARRIER_WAYBILL = "carrier-waybill"


class DocumentState(str, Enum):
    DRAFT = "draft"
    QUEUED = "queued"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentState.COMPLETED, DocumentState.FAILED)


class LineItem(BaseModel):
    id: Optional[int] = None
    description: Optional[str] = None
    unit_of_measure: Optional[str] = None
    code: Optional[str] = None
    quantity: Decimal = Decimal("0")
    # Valor unitario sin impuestos y precio unitario con impuestos
    unit_value: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    tax_code: Optional[int] = None
    subtotal: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    total: Decimal = Decimal("0")

    model_config = ConfigDict(from_attributes=True)


class RelatedDocument(BaseModel):
    """Referencia a un comprobante previo (ej. la factura que acompaña una guía)."""
    type: str
    series: str
    number: int

    model_config = ConfigDict(from_attributes=True)


class Installment(BaseModel):
    number: int
    due_date: date
    amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class Party(BaseModel):
    """Cliente, transportista o destinatario."""
    document_type: Optional[str] = None
    document_number: Optional[str] = None
    name: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None


class Driver(BaseModel):
    document_type: Optional[str] = None
    document_number: Optional[str] = None
    name: Optional[str] = None
    first_names: Optional[str] = None
    last_names: Optional[str] = None
    licence: Optional[str] = None


class ArtifactLinks(BaseModel):
    public_url: Optional[str] = None
    pdf: Optional[str] = None
    xml: Optional[str] = None
    cdr: Optional[str] = None

    def is_complete(self) -> bool:
        """PDF, XML y CDR presentes y no vacíos."""
        return all(link and str(link).strip() for link in (self.pdf, self.xml, self.cdr))


class Document(BaseModel):
    """
    Comprobante electrónico (factura, nota o guía) junto con su estado
    dentro del pipeline de envío a NubeFact.
    """
    # Lo asigna el almacén al registrar el comprobante
    id: Optional[int] = None
    family: DocumentFamily
    series: str = ""
    number: int = 0
    state: DocumentState = DocumentState.DRAFT

    customer: Party = Field(default_factory=Party)
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    service_date: Optional[date] = None
    currency: Optional[int] = None
    exchange_rate: Optional[Decimal] = None
    tax_percentage: Optional[Decimal] = None
    total_taxable: Optional[Decimal] = None
    total_tax: Optional[Decimal] = None
    total: Optional[Decimal] = None
    payment_condition: Optional[str] = None
    payment_method: Optional[str] = None
    observations: Optional[str] = None
    purchase_order: Optional[str] = None
    vehicle_plate: Optional[str] = None
    # Tipo de nota de crédito/débito (catálogos 09 y 10)
    note_type: Optional[int] = None
    # Detracción (SPOT); catálogo 54 para el tipo
    apply_detraction: bool = False
    detraction_type: Optional[int] = None
    detraction_percentage: Optional[Decimal] = None
    detraction_total: Optional[Decimal] = None
    detraction_payment_method: Optional[int] = None

    items: List[LineItem] = Field(default_factory=list)
    related_documents: List[RelatedDocument] = Field(default_factory=list)
    installments: List[Installment] = Field(default_factory=list)

    # --- Campos propios de las guías de remisión ---
    transfer_reason: Optional[str] = None
    package_count: Optional[int] = None
    transport_mode: Optional[str] = None
    transfer_start_date: Optional[date] = None
    gross_weight: Optional[Decimal] = None
    gross_weight_unit: Optional[str] = None
    departure_ubigeo: Optional[str] = None
    departure_address: Optional[str] = None
    arrival_ubigeo: Optional[str] = None
    arrival_address: Optional[str] = None
    carrier: Optional[Party] = None
    driver: Optional[Driver] = None
    recipient: Optional[Party] = None
    main_vehicle_tuc: Optional[str] = None

    # --- Resultado de NubeFact / SUNAT ---
    links: ArtifactLinks = Field(default_factory=ArtifactLinks)
    accepted_by_authority: Optional[bool] = None
    authority_description: Optional[str] = None
    authority_note: Optional[str] = None
    authority_response_code: Optional[str] = None
    last_error: Optional[str] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def business_key(self) -> str:
        return f"{self.series}-{self.number}"
