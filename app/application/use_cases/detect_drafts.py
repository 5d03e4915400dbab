# app/application/use_cases/detect_drafts.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

import config
from app.application.use_cases.dispatch_document import DocumentDispatcher
from app.domain.exceptions import DocumentNotFound, DocumentNotReady, InvalidStateTransition
from app.domain.families.registry import rules_for
from app.domain.models.document import Document, DocumentState
from app.domain.ports.document_repository import DocumentRepository

logger = logging.getLogger(__name__)


class DetectorStats(BaseModel):
    total_detected: int = 0
    total_validated: int = 0
    total_failed: int = 0
    total_republished: int = 0
    last_run: Optional[datetime] = None


class DetectDraftsUseCase:
    """
    Detector periódico: busca borradores completos, los transforma al formato
    de NubeFact, los pasa a QUEUED y los entrega al despachador.
    Un borrador que no pasa la validación se deja tal cual para el próximo ciclo.

    También vuelve a publicar los comprobantes que llevan más de
    `stale_after_seconds` en QUEUED (el proceso cayó antes de publicar, o la
    publicación falló y no se pudo marcar FALLADO). El worker descarta los
    duplicados con la transición QUEUED -> IN_FLIGHT.
    """

    def __init__(
        self,
        document_repo: DocumentRepository,
        dispatcher: DocumentDispatcher,
        stale_after_seconds: float = config.QUEUED_STALE_SECONDS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.document_repo = document_repo
        self.dispatcher = dispatcher
        self.stale_after = timedelta(seconds=stale_after_seconds)
        self.clock = clock
        self.stats = DetectorStats()
        # Última republicación por comprobante, para no publicar en cada ciclo
        self._republished: Dict[int, datetime] = {}

    def execute(self) -> int:
        """Ejecuta un ciclo completo. Retorna cuántos comprobantes se encolaron."""
        self.stats.last_run = self.clock()
        self.republish_stale_queued()
        drafts = self.document_repo.find_by_state(DocumentState.DRAFT)
        if not drafts:
            logger.debug("No se encontraron borradores pendientes")
            return 0

        logger.info(f"Encontrados {len(drafts)} borradores para validar")
        self.stats.total_detected += len(drafts)
        queued = 0
        for document in drafts:
            errors = rules_for(document.family).validate(document)
            if errors:
                logger.debug(f"[{document.id}] {document.business_key} no cumple validaciones: {', '.join(errors)}")
                continue
            try:
                if self._enqueue(document):
                    queued += 1
            except Exception:
                # Falla del almacén al marcar FALLADO; se reintenta en el próximo ciclo
                logger.error(f"[{document.id}] Error procesando borrador", exc_info=True)
        return queued

    def detect_one(self, document_id: int) -> bool:
        """Fuerza la detección de un borrador. Lanza DocumentNotReady si no es válido."""
        document = self.document_repo.get(document_id)
        if document is None:
            raise DocumentNotFound(document_id)
        if document.state != DocumentState.DRAFT:
            raise InvalidStateTransition(document.state, DocumentState.QUEUED)
        errors = rules_for(document.family).validate(document)
        if errors:
            raise DocumentNotReady(document_id, errors)
        return self._enqueue(document)

    def _enqueue(self, document: Document) -> bool:
        rules = rules_for(document.family)
        try:
            payload: Dict[str, Any] = rules.transform(document)
            if not self.document_repo.transition(document.id, DocumentState.DRAFT, DocumentState.QUEUED):
                # Otro detector lo tomó primero
                logger.info(f"[{document.id}] Ya no está en borrador, se omite")
                return False
        except Exception as e:
            logger.error(f"[{document.id}] Error preparando {document.business_key}: {e}", exc_info=True)
            self.stats.total_failed += 1
            self.document_repo.transition(
                document.id, DocumentState.DRAFT, DocumentState.FAILED,
                error=f"Error en procesamiento: {e}",
            )
            return False

        try:
            self.dispatcher.submit(document.id, document.family, payload)
        except Exception as e:
            logger.error(f"[{document.id}] No se pudo publicar la solicitud: {e}", exc_info=True)
            self.stats.total_failed += 1
            self.document_repo.transition(
                document.id, DocumentState.QUEUED, DocumentState.FAILED,
                error=f"Error publicando solicitud: {e}",
            )
            return False

        self.stats.total_validated += 1
        logger.info(f"[{document.id}] {document.business_key} encolado para envío a NubeFact")
        return True

    def republish_stale_queued(self) -> int:
        now = self.clock()
        queued = self.document_repo.find_by_state(DocumentState.QUEUED)
        queued_ids = {document.id for document in queued}
        for document_id in list(self._republished):
            if document_id not in queued_ids:
                del self._republished[document_id]

        republished = 0
        for document in queued:
            last_touch = self._republished.get(document.id) or _as_utc(document.updated_at)
            if last_touch is not None and now - last_touch < self.stale_after:
                continue
            try:
                payload = rules_for(document.family).transform(document)
                self.dispatcher.submit(document.id, document.family, payload)
            except Exception:
                logger.error(f"[{document.id}] No se pudo republicar la solicitud", exc_info=True)
                continue
            self._republished[document.id] = now
            self.stats.total_republished += 1
            republished += 1
            logger.warning(f"[{document.id}] {document.business_key} seguía en cola, solicitud republicada")
        return republished


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite devuelve fechas sin zona horaria
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
