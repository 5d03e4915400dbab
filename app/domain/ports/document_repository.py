# app/domain/ports/document_repository.py
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from app.domain.models.document import Document, DocumentState
from app.domain.models.gateway_response import GatewayResponse


class DocumentRepository(ABC):
    """
    Contrato del almacén de comprobantes. Todo cambio de estado pasa por
    `transition`, que solo escribe si el estado actual es el esperado.
    """

    @abstractmethod
    def add(self, document: Document) -> Document:
        """Guarda un comprobante nuevo. Lanza DuplicateDocument si la serie-número ya existe."""
        pass

    @abstractmethod
    def get(self, document_id: int) -> Optional[Document]:
        pass

    @abstractmethod
    def find_by_state(self, state: DocumentState) -> List[Document]:
        """Comprobantes en el estado indicado, con items y sub-entidades."""
        pass

    @abstractmethod
    def transition(
        self,
        document_id: int,
        expected: DocumentState,
        target: DocumentState,
        error: Optional[str] = None,
        response: Optional[GatewayResponse] = None,
    ) -> bool:
        """
        Lee y escribe el estado en una sola operación atómica.
        Retorna False (sin escribir nada) si el estado actual no es `expected`.
        Pasar a DRAFT limpia los enlaces y errores previos.
        """
        pass

    @abstractmethod
    def count_by_state(self) -> Dict[DocumentState, int]:
        pass
