# app/domain/families/waybill.py
from typing import Any, Dict, List

from app.domain.families.base import FamilyRules, tax_id_errors
from app.domain.families.formatting import amount, drop_empty, format_gateway_date, quantity
from app.domain.models.document import Document, DocumentFamily, Driver, Party

TRANSFER_REASONS = {"01", "02", "03", "04", "05", "06", "07", "08", "09", "13", "14", "17", "18"}
PUBLIC_TRANSPORT = "01"
PRIVATE_TRANSPORT = "02"
DRIVER_DOCUMENT_TYPES = {"0", "1", "4", "7"}
RECIPIENT_DOCUMENT_TYPES = {"0", "1", "4", "6", "7"}
WEIGHT_UNITS = {"KGM", "TNE"}


def _driver_errors(driver: Driver, require_name: bool) -> List[str]:
    errors = []
    if str(driver.document_type) not in DRIVER_DOCUMENT_TYPES:
        errors.append("conductor: tipo de documento inválido")
    if not driver.document_number:
        errors.append("conductor: falta número de documento")
    if require_name and not driver.name:
        errors.append("conductor: falta denominación")
    if not driver.first_names or not driver.last_names:
        errors.append("conductor: faltan nombres o apellidos")
    if not driver.licence or len(driver.licence) < 9:
        errors.append("conductor: número de licencia inválido")
    return errors


def _driver_fields(driver: Driver) -> Dict[str, Any]:
    return {
        "conductor_documento_tipo": driver.document_type,
        "conductor_documento_numero": driver.document_number,
        "conductor_denominacion": driver.name,
        "conductor_nombre": driver.first_names,
        "conductor_apellidos": driver.last_names,
        "conductor_numero_licencia": driver.licence,
    }


class _WaybillRules(FamilyRules):
    create_operation = "generar_guia"
    query_operation = "consultar_guia"

    def validate_family(self, document: Document) -> List[str]:
        errors = []
        customer = document.customer
        if not customer.document_type or not customer.name or not customer.address:
            errors.append("cliente: faltan datos")
        errors.extend(tax_id_errors(customer, "cliente"))
        if not document.transfer_start_date:
            errors.append("falta fecha de inicio de traslado")
        if not document.gross_weight or document.gross_weight <= 0:
            errors.append("peso bruto total inválido")
        if document.gross_weight_unit not in WEIGHT_UNITS:
            errors.append("unidad de peso bruto inválida")
        if not document.vehicle_plate or len(document.vehicle_plate) < 6:
            errors.append("placa inválida")
        for label, ubigeo, address in (
            ("partida", document.departure_ubigeo, document.departure_address),
            ("llegada", document.arrival_ubigeo, document.arrival_address),
        ):
            if not ubigeo or len(ubigeo) != 6 or not address:
                errors.append(f"datos de {label} incompletos")
        for index, item in enumerate(document.items, start=1):
            if not item.unit_of_measure or not item.description or item.quantity <= 0:
                errors.append(f"item {index}: inválido")
        errors.extend(self.validate_transport(document))
        return errors

    def validate_transport(self, document: Document) -> List[str]:
        return []

    def transport_fields(self, document: Document) -> Dict[str, Any]:
        return {}

    def transform(self, document: Document) -> Dict[str, Any]:
        customer = document.customer
        payload = {
            "operacion": self.create_operation,
            "tipo_de_comprobante": self.type_code,
            "serie": document.series,
            "numero": str(document.number),
            "cliente_tipo_de_documento": customer.document_type,
            "cliente_numero_de_documento": customer.document_number,
            "cliente_denominacion": customer.name,
            "cliente_direccion": customer.address,
            "cliente_email": customer.email,
            "fecha_de_emision": format_gateway_date(document.issue_date),
            "fecha_de_inicio_de_traslado": format_gateway_date(document.transfer_start_date),
            "peso_bruto_total": amount(document.gross_weight),
            "peso_bruto_unidad_de_medida": document.gross_weight_unit,
            "transportista_placa_numero": document.vehicle_plate,
            "punto_de_partida_ubigeo": document.departure_ubigeo,
            "punto_de_partida_direccion": document.departure_address,
            "punto_de_llegada_ubigeo": document.arrival_ubigeo,
            "punto_de_llegada_direccion": document.arrival_address,
            "observaciones": document.observations,
            "items": [
                drop_empty({
                    "unidad_de_medida": item.unit_of_measure,
                    "codigo": item.code,
                    "descripcion": item.description,
                    "cantidad": quantity(item.quantity),
                })
                for item in document.items
            ],
            "documento_relacionado": [
                {"tipo": related.type, "serie": related.series, "numero": str(related.number)}
                for related in document.related_documents
            ],
        }
        payload.update(self.transport_fields(document))
        payload = drop_empty(payload)
        # NubeFact exige estos campos aunque vayan vacíos
        payload.setdefault("cliente_email_1", "")
        payload.setdefault("cliente_email_2", "")
        return payload


class OutboundWaybillRules(_WaybillRules):
    """GRE Remitente: transporte público (transportista) o privado (conductor)."""
    family = DocumentFamily.OUTBOUND_WAYBILL
    type_code = 7
    series_prefixes = ("T",)

    def validate_transport(self, document: Document) -> List[str]:
        errors = []
        if document.transfer_reason not in TRANSFER_REASONS:
            errors.append("motivo de traslado inválido")
        if not document.package_count or document.package_count < 1:
            errors.append("falta número de bultos")
        if document.transport_mode == PUBLIC_TRANSPORT:
            carrier = document.carrier or Party()
            if str(carrier.document_type) != "6":
                errors.append("transportista: tipo de documento debe ser 6 (RUC)")
            errors.extend(tax_id_errors(carrier, "transportista"))
            if not carrier.name:
                errors.append("transportista: falta denominación")
        elif document.transport_mode == PRIVATE_TRANSPORT:
            errors.extend(_driver_errors(document.driver or Driver(), require_name=False))
        else:
            errors.append("tipo de transporte debe ser 01 o 02")
        return errors

    def transport_fields(self, document: Document) -> Dict[str, Any]:
        fields = {
            "motivo_de_traslado": document.transfer_reason,
            "numero_de_bultos": str(document.package_count),
            "tipo_de_transporte": document.transport_mode,
        }
        if document.transport_mode == PUBLIC_TRANSPORT and document.carrier:
            fields.update({
                "transportista_documento_tipo": document.carrier.document_type,
                "transportista_documento_numero": document.carrier.document_number,
                "transportista_denominacion": document.carrier.name,
            })
        # Los datos del conductor se envían siempre que existan
        if document.driver:
            fields.update(_driver_fields(document.driver))
        return fields


class CarrierWaybillRules(_WaybillRules):
    """GRE Transportista: conductor y destinatario siempre obligatorios."""
    family = DocumentFamily.CARRIER_WAYBILL
    type_code = 8
    series_prefixes = ("V",)

    def validate_transport(self, document: Document) -> List[str]:
        errors = []
        if not document.driver:
            errors.append("falta bloque de conductor")
        else:
            errors.extend(_driver_errors(document.driver, require_name=True))
        recipient = document.recipient
        if not recipient:
            errors.append("falta bloque de destinatario")
        else:
            if str(recipient.document_type) not in RECIPIENT_DOCUMENT_TYPES:
                errors.append("destinatario: tipo de documento inválido")
            if not recipient.document_number:
                errors.append("destinatario: falta número de documento")
            if not recipient.name:
                errors.append("destinatario: falta denominación")
        tuc = document.main_vehicle_tuc
        if tuc and not 10 <= len(tuc) <= 15:
            errors.append("TUC del vehículo principal con formato inválido")
        return errors

    def transport_fields(self, document: Document) -> Dict[str, Any]:
        fields = _driver_fields(document.driver)
        fields.update({
            "destinatario_documento_tipo": document.recipient.document_type,
            "destinatario_documento_numero": document.recipient.document_number,
            "destinatario_denominacion": document.recipient.name,
            "tuc_vehiculo_principal": document.main_vehicle_tuc,
        })
        return fields
