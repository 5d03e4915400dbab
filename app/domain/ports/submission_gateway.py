# app/domain/ports/submission_gateway.py
from abc import ABC, abstractmethod
from typing import Any, Dict

from app.domain.models.document import DocumentFamily
from app.domain.models.gateway_response import CorrelationPayload, GatewayResponse


class SubmissionGateway(ABC):
    """Puerto hacia el servicio externo de emisión (NubeFact)."""

    @abstractmethod
    def create_document(self, family: DocumentFamily, payload: Dict[str, Any]) -> GatewayResponse:
        """
        Envía el comprobante. Lanza GatewayRejected ante un error HTTP o de
        validación y GatewayUnavailable ante timeout o falla de red.
        """
        pass

    @abstractmethod
    def query_document(self, correlation: CorrelationPayload) -> GatewayResponse:
        """Consulta el estado actual. Retorna una respuesta `pending` si aún no está listo."""
        pass
