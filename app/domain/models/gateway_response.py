# app/domain/models/gateway_response.py
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.domain.models.document import ArtifactLinks, DocumentFamily


class CorrelationPayload(BaseModel):
    """Datos mínimos (tipo, serie, número) para volver a consultar un comprobante."""
    family: DocumentFamily
    type_code: int
    series: str
    number: int

    model_config = ConfigDict(frozen=True)


class GatewayResponse(BaseModel):
    """
    Respuesta de NubeFact a `generar_*` o `consultar_*`, ya normalizada.
    `raw` conserva el cuerpo original tal cual llegó.
    """
    links: ArtifactLinks = Field(default_factory=ArtifactLinks)
    accepted: Optional[bool] = None
    description: Optional[str] = None
    note: Optional[str] = None
    response_code: Optional[str] = None
    soap_error: Optional[str] = None
    # True cuando NubeFact aún no tiene el comprobante listo (404/202 en la consulta)
    pending: bool = False
    raw: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_nubefact(cls, body: Dict[str, Any]) -> "GatewayResponse":
        def text(key: str) -> Optional[str]:
            value = body.get(key)
            if value is None:
                return None
            value = str(value).strip()
            return value or None

        return cls(
            links=ArtifactLinks(
                public_url=text("enlace"),
                pdf=text("enlace_del_pdf"),
                xml=text("enlace_del_xml"),
                cdr=text("enlace_del_cdr"),
            ),
            accepted=body.get("aceptada_por_sunat"),
            description=text("sunat_description"),
            note=text("sunat_note"),
            response_code=text("sunat_responsecode"),
            soap_error=text("sunat_soap_error"),
            raw=body,
        )

    @classmethod
    def waiting(cls) -> "GatewayResponse":
        return cls(pending=True)

    @property
    def is_rejected(self) -> bool:
        """Rechazo definitivo de SUNAT: no aceptado y con un motivo informado."""
        if self.pending or self.accepted is True:
            return False
        has_code = self.response_code is not None and self.response_code != "0"
        return bool(self.description or self.soap_error or has_code)

    @property
    def is_accepted(self) -> bool:
        return self.accepted is True

    def rejection_reason(self) -> str:
        parts = [p for p in (self.response_code, self.description, self.soap_error) if p]
        return " - ".join(parts) if parts else "Comprobante rechazado por SUNAT"
