# app/infrastructure/api/routers/operator_router.py
from fastapi import APIRouter, Depends, HTTPException

from app.application.use_cases.detect_drafts import DetectDraftsUseCase
from app.application.use_cases.dispatch_document import DocumentDispatcher
from app.application.use_cases.operator_controls import OperatorControls
from app.domain.exceptions import DocumentNotFound, DocumentNotReady, InvalidStateTransition
from app.domain.ports.document_repository import DocumentRepository
# Importamos la instancia de Celery, no las tareas específicas
from app.infrastructure.celery.broker_adapter import CeleryMessageBroker
from app.infrastructure.celery.celery_app import celery_app

router = APIRouter(prefix="/api/v1/comprobantes", tags=["Comprobantes"])


def get_document_repo() -> DocumentRepository:
    from app.infrastructure.persistence.database import SessionLocal
    from app.infrastructure.persistence.document_repository_adapter import SQLAlchemyDocumentRepository
    return SQLAlchemyDocumentRepository(SessionLocal)


def get_dispatcher() -> DocumentDispatcher:
    return DocumentDispatcher(CeleryMessageBroker(celery_app))


@router.get("/estadisticas", summary="Cantidad de comprobantes por estado")
def pipeline_stats(repo: DocumentRepository = Depends(get_document_repo)):
    return OperatorControls(repo).stats()


@router.post("/{document_id}/detectar", status_code=202, summary="Forzar la detección de un borrador")
def force_detection(
    document_id: int,
    repo: DocumentRepository = Depends(get_document_repo),
    dispatcher: DocumentDispatcher = Depends(get_dispatcher),
):
    try:
        queued = DetectDraftsUseCase(repo, dispatcher).detect_one(document_id)
    except DocumentNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except DocumentNotReady as e:
        raise HTTPException(status_code=422, detail=e.errors)
    return {"status": "queued" if queued else "skipped", "document_id": document_id}


@router.post("/{document_id}/polling/verificar", status_code=202, summary="Forzar una consulta a NubeFact")
def force_poll_check(document_id: int):
    celery_app.send_task('tasks.force_poll_check', args=[document_id])
    return {"status": "check_requested", "document_id": document_id}


@router.get("/polling/activos", summary="Pollings activos en los workers")
def active_pollings():
    replies = celery_app.control.broadcast('active_pollings', reply=True, timeout=2.0) or []
    tasks = [task for reply in replies for worker_tasks in reply.values() for task in worker_tasks]
    return {"total": len(tasks), "tasks": tasks}


@router.get("/detector/estadisticas", summary="Estadísticas del detector en cada worker")
def detector_stats():
    replies = celery_app.control.broadcast('detector_stats', reply=True, timeout=2.0) or []
    workers = [{"worker": worker, **stats} for reply in replies for worker, stats in reply.items()]
    return {"total": len(workers), "workers": workers}


@router.post("/fallados/reintentar", summary="Devolver a borrador un lote de comprobantes FALLADOS")
def reset_failed_batch(limit: int = 10, repo: DocumentRepository = Depends(get_document_repo)):
    reset = OperatorControls(repo).reset_failed_batch(limit)
    return {"total": len(reset), "document_ids": reset}


@router.post("/{document_id}/reintentar", summary="Devolver un comprobante FALLADO a borrador")
def reset_failed(document_id: int, repo: DocumentRepository = Depends(get_document_repo)):
    try:
        OperatorControls(repo).reset_failed(document_id)
    except DocumentNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"status": "draft", "document_id": document_id}
