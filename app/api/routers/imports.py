"""
CSV bulk import endpoints: start, cancel and remove imports, read their progress.

Handlers are plain functions: they block on database work and on removal
workers, so FastAPI runs them in its threadpool and the event loop stays free
to serve cancellation and progress requests meanwhile.
"""
import logging

from fastapi import APIRouter, HTTPException

from app.api.schemas.imports import (
    ImportCreateRequest, ImportCreateResponse,
    ImportHistoryResponse, ImportStatusResponse
)
from app.domain.imports import history as import_history
from app.domain.imports.errors import FatalInputError, ImportPipelineError
from app.domain.imports.orchestrator import get_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["imports"])


@router.post("/imports", response_model=ImportCreateResponse)
def create_import(request: ImportCreateRequest):
    """
    Start importing an uploaded CSV file.

    Returns the new import history id immediately; rows are streamed and
    persisted in the background. Poll ``GET /import-history/{id}`` for progress.
    """
    try:
        return get_orchestrator().receive_import_create(request.to_content())
    except FatalInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Failed to start import: %s", e)
        raise HTTPException(status_code=500, detail=f"Failed to start import: {str(e)}")


@router.post("/imports/cancel", response_model=ImportStatusResponse)
def cancel_imports():
    """Cancel every running import worker."""
    return get_orchestrator().receive_import_cancel()


@router.get("/import-history/{import_history_id}", response_model=ImportHistoryResponse, response_model_by_alias=True)
def get_import_history_detail(import_history_id: str):
    record = import_history.find_import_history(import_history_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Import history {import_history_id} not found")
    return import_history.serialize_import_history(record)


@router.delete("/import-history/{import_history_id}", response_model=ImportStatusResponse)
def remove_import_history(import_history_id: str):
    """
    Mark an import as Removed and delete every record it created.

    The history itself is deleted once the removal workers have drained.
    """
    try:
        import_history.mark_removed(import_history_id)
        record = import_history.get_import_history(import_history_id)
        return get_orchestrator().receive_import_remove({
            "contentType": record["content_type"],
            "importHistoryId": import_history_id,
        })
    except FatalInputError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ImportPipelineError as e:
        raise HTTPException(status_code=500, detail=f"Failed to remove import: {str(e)}")
