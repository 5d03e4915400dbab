# app/domain/families/base.py
import re
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List, Tuple

from app.domain.models.document import Document, DocumentFamily, Party
from app.domain.models.gateway_response import CorrelationPayload

TOTAL_TOLERANCE = Decimal("0.01")

# Longitud exigida por tipo de documento de identidad (catálogo 06 de SUNAT)
_TAX_ID_LENGTHS = {"6": 11, "1": 8}


class FamilyRules(ABC):
    """
    Reglas de una familia de comprobantes: cómo se valida el borrador y
    cómo se arma el payload para NubeFact. El resto del pipeline es común.
    """
    family: DocumentFamily
    type_code: int
    series_prefixes: Tuple[str, ...]
    create_operation: str
    query_operation: str

    def validate(self, document: Document) -> List[str]:
        """Lista de errores; vacía si el borrador está listo para enviarse."""
        errors = self._validate_common(document)
        errors.extend(self.validate_family(document))
        return errors

    @abstractmethod
    def validate_family(self, document: Document) -> List[str]:
        pass

    @abstractmethod
    def transform(self, document: Document) -> Dict[str, Any]:
        """Convierte el comprobante al payload de `generar_*`."""
        pass

    def correlation(self, document: Document) -> CorrelationPayload:
        return CorrelationPayload(
            family=self.family,
            type_code=self.type_code,
            series=document.series,
            number=document.number,
        )

    def correlation_from_payload(self, payload: Dict[str, Any]) -> CorrelationPayload:
        return CorrelationPayload(
            family=self.family,
            type_code=self.type_code,
            series=payload["serie"],
            number=int(payload["numero"]),
        )

    def query_payload(self, correlation: CorrelationPayload) -> Dict[str, Any]:
        return {
            "operacion": self.query_operation,
            "tipo_de_comprobante": correlation.type_code,
            "serie": correlation.series,
            "numero": correlation.number,
        }

    def _validate_common(self, document: Document) -> List[str]:
        errors = []
        series = document.series or ""
        if len(series) != 4:
            errors.append("serie debe tener 4 caracteres")
        elif not series.startswith(self.series_prefixes):
            errors.append(f"serie debe iniciar con {' o '.join(self.series_prefixes)}")
        if not document.number or document.number < 1:
            errors.append("numero debe ser mayor a 0")
        if not document.items:
            errors.append("debe tener al menos 1 item")
        if not document.issue_date:
            errors.append("fecha de emisión es requerida")
        return errors


def tax_id_errors(party: Party, label: str) -> List[str]:
    errors = []
    if not party.document_number:
        errors.append(f"{label}: falta número de documento")
        return errors
    expected = _TAX_ID_LENGTHS.get(str(party.document_type))
    if expected and not re.fullmatch(rf"\d{{{expected}}}", party.document_number):
        kind = "RUC" if expected == 11 else "DNI"
        errors.append(f"{label}: {kind} debe tener {expected} dígitos")
    return errors
