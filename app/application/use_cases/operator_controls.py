# app/application/use_cases/operator_controls.py
import logging
from typing import Dict, List

from app.domain.exceptions import DocumentNotFound, InvalidStateTransition
from app.domain.models.document import DocumentState
from app.domain.ports.document_repository import DocumentRepository

logger = logging.getLogger(__name__)


class OperatorControls:
    """Acciones manuales del operador sobre comprobantes FALLADOS."""

    def __init__(self, document_repo: DocumentRepository):
        self.document_repo = document_repo

    def reset_failed(self, document_id: int) -> None:
        """FAILED -> DRAFT, limpiando enlaces y errores, para que el detector lo vuelva a tomar."""
        if self.document_repo.transition(document_id, DocumentState.FAILED, DocumentState.DRAFT):
            logger.info(f"[{document_id}] Reseteado para reintento")
            return
        document = self.document_repo.get(document_id)
        if document is None:
            raise DocumentNotFound(document_id)
        raise InvalidStateTransition(document.state, DocumentState.DRAFT)

    def reset_failed_batch(self, limit: int = 10) -> List[int]:
        """Resetea hasta `limit` comprobantes fallados. Retorna los ids reseteados."""
        reset = []
        for document in self.document_repo.find_by_state(DocumentState.FAILED)[:limit]:
            if self.document_repo.transition(document.id, DocumentState.FAILED, DocumentState.DRAFT):
                reset.append(document.id)
        logger.info(f"Reseteados {len(reset)} comprobantes fallados")
        return reset

    def stats(self) -> Dict[str, int]:
        counts = self.document_repo.count_by_state()
        return {state.value: counts.get(state, 0) for state in DocumentState}
