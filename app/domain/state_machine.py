# app/domain/state_machine.py
from app.domain.exceptions import InvalidStateTransition
from app.domain.models.document import DocumentState

_ALLOWED = {
    DocumentState.DRAFT: {DocumentState.QUEUED, DocumentState.FAILED},
    # QUEUED -> FAILED solo cuando la solicitud no pudo publicarse
    DocumentState.QUEUED: {DocumentState.IN_FLIGHT, DocumentState.FAILED},
    DocumentState.IN_FLIGHT: {DocumentState.COMPLETED, DocumentState.FAILED},
    DocumentState.COMPLETED: set(),
    # Reinicio manual del operador
    DocumentState.FAILED: {DocumentState.DRAFT},
}


def can_transition(current: DocumentState, target: DocumentState) -> bool:
    return target in _ALLOWED[current]


def ensure_transition(current: DocumentState, target: DocumentState) -> None:
    if not can_transition(current, target):
        raise InvalidStateTransition(current, target)
