# app/domain/exceptions.py
from typing import Any, Dict, List, Optional


class FiscalPipelineError(Exception):
    """Error base del pipeline de comprobantes."""


class DocumentNotFound(FiscalPipelineError):
    def __init__(self, document_id: int):
        super().__init__(f"Comprobante {document_id} no encontrado")
        self.document_id = document_id


class DocumentNotReady(FiscalPipelineError):
    """El borrador todavía no cumple las validaciones de su familia."""

    def __init__(self, document_id: int, errors: List[str]):
        super().__init__(f"Comprobante {document_id} no es válido: {', '.join(errors)}")
        self.document_id = document_id
        self.errors = errors


class InvalidStateTransition(FiscalPipelineError):
    def __init__(self, current: Any, target: Any):
        super().__init__(f"Transición no permitida: {current} -> {target}")
        self.current = current
        self.target = target


class GatewayError(FiscalPipelineError):
    """Fallo al comunicarse con NubeFact. `payload` se guarda tal cual en el comprobante."""

    def __init__(self, message: str, status: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.status = status
        self.data = data

    @property
    def payload(self) -> Dict[str, Any]:
        return {"message": str(self), "status": self.status, "data": self.data}


class GatewayRejected(GatewayError):
    """NubeFact respondió con error HTTP o rechazó la validación del comprobante."""


class GatewayUnavailable(GatewayError):
    """Timeout o error de red; se puede reintentar."""


class DuplicateDocument(FiscalPipelineError):
    """Ya existe un comprobante con la misma serie y número en la familia."""
