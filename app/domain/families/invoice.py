# app/domain/families/invoice.py
from decimal import Decimal
from typing import Any, Dict, List

from app.domain.families.base import TOTAL_TOLERANCE, FamilyRules, tax_id_errors
from app.domain.families.formatting import amount, drop_empty, format_gateway_date, quantity, sunat_unit
from app.domain.models.document import Document, DocumentFamily


class InvoiceRules(FamilyRules):
    family = DocumentFamily.INVOICE
    type_code = 1
    series_prefixes = ("F",)
    create_operation = "generar_comprobante"
    query_operation = "consultar_comprobante"

    def validate_family(self, document: Document) -> List[str]:
        errors = []
        customer = document.customer
        if not customer.name:
            errors.append("cliente: falta denominación")
        errors.extend(tax_id_errors(customer, "cliente"))

        if document.currency not in (1, 2):
            errors.append("moneda debe ser 1 (PEN) o 2 (USD)")
        if document.total is None or document.total <= 0:
            errors.append("total debe ser mayor a 0")
        if document.tax_percentage is not None and not (0 <= document.tax_percentage <= 100):
            errors.append("porcentaje de IGV inválido")

        for index, item in enumerate(document.items, start=1):
            if not item.description:
                errors.append(f"item {index}: falta descripción")
            if not item.unit_of_measure:
                errors.append(f"item {index}: falta unidad de medida")
            if item.quantity <= 0:
                errors.append(f"item {index}: cantidad inválida")
            if item.unit_price is None or item.unit_price < 0:
                errors.append(f"item {index}: precio unitario inválido")
            if not item.tax_code:
                errors.append(f"item {index}: falta tipo de IGV")

        errors.extend(self._detraction_errors(document))
        errors.extend(self._totals_errors(document))
        return errors

    def _detraction_errors(self, document: Document) -> List[str]:
        if not document.apply_detraction:
            return []
        errors = []
        if not document.detraction_type:
            errors.append("detracción: falta tipo de detracción")
        if document.detraction_percentage is None or document.detraction_percentage <= 0:
            errors.append("detracción: porcentaje inválido")
        if document.detraction_total is None or document.detraction_total <= 0:
            errors.append("detracción: total inválido")
        return errors

    def _totals_errors(self, document: Document) -> List[str]:
        if document.total is None or not document.items:
            return []
        errors = []
        items_total = sum((item.total for item in document.items), Decimal("0"))
        if abs(items_total - document.total) > TOTAL_TOLERANCE:
            errors.append(f"total inconsistente: items suman {items_total}, registrado {document.total}")
        if document.total_taxable is not None:
            computed = document.total_taxable + (document.total_tax or Decimal("0"))
            if abs(computed - document.total) > TOTAL_TOLERANCE:
                errors.append(f"total inconsistente: calculado {computed}, registrado {document.total}")
        return errors

    def transform(self, document: Document) -> Dict[str, Any]:
        customer = document.customer
        payload = {
            "operacion": self.create_operation,
            "tipo_de_comprobante": self.type_code,
            "serie": document.series,
            "numero": document.number,
            "sunat_transaction": 1,
            "cliente_tipo_de_documento": customer.document_type,
            "cliente_numero_de_documento": customer.document_number,
            "cliente_denominacion": customer.name,
            "cliente_direccion": customer.address,
            "cliente_email": customer.email,
            "fecha_de_emision": format_gateway_date(document.issue_date),
            "fecha_de_vencimiento": format_gateway_date(document.due_date) if document.due_date else None,
            "fecha_de_servicio": format_gateway_date(document.service_date) if document.service_date else None,
            "moneda": document.currency,
            "tipo_de_cambio": amount(document.exchange_rate) if document.exchange_rate else None,
            "porcentaje_de_igv": amount(document.tax_percentage),
            "total_gravada": amount(document.total_taxable) if document.total_taxable else None,
            "total_igv": amount(document.total_tax) if document.total_tax else None,
            "total": amount(document.total),
            "observaciones": document.observations,
            "orden_compra_servicio": document.purchase_order,
            "placa_vehiculo": document.vehicle_plate,
            "condiciones_de_pago": document.payment_condition,
            "medio_de_pago": document.payment_method,
            "detraccion": True if document.apply_detraction else None,
            "detraccion_tipo": document.detraction_type,
            "detraccion_porcentaje": amount(document.detraction_percentage) if document.apply_detraction else None,
            "detraccion_total": amount(document.detraction_total) if document.apply_detraction else None,
            "medio_pago_detraccion": document.detraction_payment_method,
            "enviar_automaticamente_a_la_sunat": True,
            "enviar_automaticamente_al_cliente": False,
            "formato_de_pdf": "A4",
            "items": [
                drop_empty({
                    "unidad_de_medida": sunat_unit(item.unit_of_measure),
                    "codigo": item.code,
                    "descripcion": item.description,
                    "cantidad": quantity(item.quantity),
                    "valor_unitario": amount(item.unit_value if item.unit_value is not None else item.unit_price),
                    "precio_unitario": amount(item.unit_price),
                    "subtotal": amount(item.subtotal),
                    "tipo_de_igv": item.tax_code,
                    "igv": amount(item.tax),
                    "total": amount(item.total),
                    "anticipo_regularizacion": False,
                })
                for item in document.items
            ],
            "guias": [
                {"guia_tipo": related.type, "guia_serie_numero": f"{related.series}-{related.number}"}
                for related in document.related_documents
            ],
            "venta_al_credito": [
                {
                    "cuota": installment.number,
                    "fecha_de_pago": format_gateway_date(installment.due_date),
                    "importe": amount(installment.amount),
                }
                for installment in document.installments
            ],
        }
        payload.update(self.note_fields(document))
        return drop_empty(payload)

    def note_fields(self, document: Document) -> Dict[str, Any]:
        return {}


class _NoteRules(InvoiceRules):
    note_type_field: str

    def validate_family(self, document: Document) -> List[str]:
        errors = super().validate_family(document)
        if not document.related_documents:
            errors.append("nota: falta el comprobante que se modifica")
        if not document.note_type:
            errors.append("nota: falta tipo de nota")
        return errors

    def note_fields(self, document: Document) -> Dict[str, Any]:
        modified = document.related_documents[0]
        return {
            "documento_que_se_modifica_tipo": modified.type,
            "documento_que_se_modifica_serie": modified.series,
            "documento_que_se_modifica_numero": modified.number,
            self.note_type_field: document.note_type,
            # En las notas la referencia va en los campos anteriores, no como guía
            "guias": None,
        }


class CreditNoteRules(_NoteRules):
    family = DocumentFamily.CREDIT_NOTE
    type_code = 7
    series_prefixes = ("FC",)
    note_type_field = "tipo_de_nota_de_credito"


class DebitNoteRules(_NoteRules):
    family = DocumentFamily.DEBIT_NOTE
    type_code = 8
    series_prefixes = ("FD",)
    note_type_field = "tipo_de_nota_de_debito"
