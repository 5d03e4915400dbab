# app/infrastructure/persistence/models.py
from sqlalchemy import (
    JSON, Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class DocumentRecord(Base):
    __tablename__ = "comprobantes"
    __table_args__ = (UniqueConstraint("family", "series", "number", name="uq_comprobante_serie_numero"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    family = Column(String(32), nullable=False, index=True)
    series = Column(String(4), nullable=False)
    number = Column(Integer, nullable=False)
    # NULL = borrador
    state = Column(String(16), nullable=True, index=True)

    customer = Column(JSON, nullable=True)
    issue_date = Column(Date)
    due_date = Column(Date)
    service_date = Column(Date)
    currency = Column(Integer)
    exchange_rate = Column(Numeric(12, 4))
    tax_percentage = Column(Numeric(5, 2))
    total_taxable = Column(Numeric(14, 2))
    total_tax = Column(Numeric(14, 2))
    total = Column(Numeric(14, 2))
    payment_condition = Column(String(64))
    payment_method = Column(String(64))
    observations = Column(Text)
    purchase_order = Column(String(64))
    vehicle_plate = Column(String(16))
    note_type = Column(Integer)
    apply_detraction = Column(Boolean, nullable=False, default=False)
    detraction_type = Column(Integer)
    detraction_percentage = Column(Numeric(5, 2))
    detraction_total = Column(Numeric(14, 2))
    detraction_payment_method = Column(Integer)

    # Guías de remisión
    transfer_reason = Column(String(2))
    package_count = Column(Integer)
    transport_mode = Column(String(2))
    transfer_start_date = Column(Date)
    gross_weight = Column(Numeric(14, 3))
    gross_weight_unit = Column(String(3))
    departure_ubigeo = Column(String(6))
    departure_address = Column(String(255))
    arrival_ubigeo = Column(String(6))
    arrival_address = Column(String(255))
    carrier = Column(JSON, nullable=True)
    driver = Column(JSON, nullable=True)
    recipient = Column(JSON, nullable=True)
    main_vehicle_tuc = Column(String(15))

    # Resultado de NubeFact / SUNAT
    public_url = Column(Text)
    pdf_url = Column(Text)
    xml_url = Column(Text)
    cdr_url = Column(Text)
    accepted_by_authority = Column(Boolean)
    authority_description = Column(Text)
    authority_note = Column(Text)
    authority_response_code = Column(String(8))
    last_error = Column(Text)
    updated_at = Column(DateTime(timezone=True))

    items = relationship("LineItemRecord", order_by="LineItemRecord.id", cascade="all, delete-orphan")
    related_documents = relationship("RelatedDocumentRecord", cascade="all, delete-orphan")
    installments = relationship("InstallmentRecord", order_by="InstallmentRecord.number", cascade="all, delete-orphan")


class LineItemRecord(Base):
    __tablename__ = "comprobante_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(Integer, ForeignKey("comprobantes.id"), nullable=False, index=True)
    description = Column(Text)
    unit_of_measure = Column(String(32))
    code = Column(String(64))
    quantity = Column(Numeric(18, 6), nullable=False, default=0)
    unit_value = Column(Numeric(18, 6))
    unit_price = Column(Numeric(18, 6))
    tax_code = Column(Integer)
    subtotal = Column(Numeric(14, 2), nullable=False, default=0)
    tax = Column(Numeric(14, 2), nullable=False, default=0)
    total = Column(Numeric(14, 2), nullable=False, default=0)


class RelatedDocumentRecord(Base):
    __tablename__ = "comprobante_relacionados"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(Integer, ForeignKey("comprobantes.id"), nullable=False, index=True)
    type = Column(String(2), nullable=False)
    series = Column(String(4), nullable=False)
    number = Column(Integer, nullable=False)


class InstallmentRecord(Base):
    __tablename__ = "comprobante_cuotas"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(Integer, ForeignKey("comprobantes.id"), nullable=False, index=True)
    number = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
