# app/infrastructure/external/nubefact_adapter.py
import logging
from typing import Any, Dict, Optional

import requests

import config
from app.domain.exceptions import GatewayRejected, GatewayUnavailable
from app.domain.families.registry import rules_for
from app.domain.models.document import DocumentFamily
from app.domain.models.gateway_response import CorrelationPayload, GatewayResponse
from app.domain.ports.submission_gateway import SubmissionGateway

logger = logging.getLogger(__name__)

# Códigos con los que NubeFact indica que el comprobante aún no está listo
_PENDING_STATUSES = (202, 404)


class NubefactAdapter(SubmissionGateway):
    """
    Adaptador para la API de NubeFact. Un mismo endpoint recibe todas las
    operaciones (`generar_*` / `consultar_*`), que viajan en el campo `operacion`.
    """

    def __init__(self, session: Optional[requests.Session] = None):
        self.api_url = config.NUBEFACT_API_URL
        self.token = config.NUBEFACT_TOKEN
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"{config.NUBEFACT_AUTH_SCHEME} {self.token}",
            "Content-Type": "application/json",
        })

    def create_document(self, family: DocumentFamily, payload: Dict[str, Any]) -> GatewayResponse:
        logger.info(f"Llamando a NubeFact {payload.get('operacion')} para {payload.get('serie')}-{payload.get('numero')}")
        try:
            response = self.session.post(self.api_url, json=payload, timeout=config.CREATE_TIMEOUT_SECONDS)
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise GatewayRejected(str(e), status=e.response.status_code, data=self._body(e.response)) from e
        except requests.exceptions.RequestException as e:
            raise GatewayUnavailable(str(e)) from e
        return GatewayResponse.from_nubefact(self._body(response) or {})

    def query_document(self, correlation: CorrelationPayload) -> GatewayResponse:
        payload = rules_for(correlation.family).query_payload(correlation)
        try:
            response = self.session.post(self.api_url, json=payload, timeout=config.QUERY_TIMEOUT_SECONDS)
        except requests.exceptions.RequestException as e:
            raise GatewayUnavailable(str(e)) from e

        if response.status_code in _PENDING_STATUSES:
            logger.debug(f"{correlation.series}-{correlation.number} aún en proceso (HTTP {response.status_code})")
            return GatewayResponse.waiting()
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise GatewayRejected(str(e), status=response.status_code, data=self._body(response)) from e
        return GatewayResponse.from_nubefact(self._body(response) or {})

    @staticmethod
    def _body(response: Optional[requests.Response]) -> Any:
        """Cuerpo de la respuesta tal cual: JSON si se puede, si no el texto."""
        if response is None:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text
