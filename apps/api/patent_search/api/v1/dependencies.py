"""FastAPI dependencies for the query executor and the shared exporter."""
from __future__ import annotations

from fastapi import HTTPException, Request, status

from patent_search.core.logging import get_logger
from patent_search.services.export.engine import BulkExporter
from patent_search.services.storage.base import QueryExecutor

log = get_logger(__name__)


def get_executor(request: Request) -> QueryExecutor:
    """Executor created at startup and kept on the application state."""
    executor = getattr(request.app.state, "executor", None)
    if executor is None:
        log.error("Query executor requested before startup completed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Search backend not initialised",
        )
    return executor


def get_exporter(request: Request) -> BulkExporter:
    """
    One exporter per process, so its `exporting` flag rejects a second
    concurrent bulk export.
    """
    exporter = getattr(request.app.state, "exporter", None)
    if exporter is None:
        exporter = BulkExporter(get_executor(request))
        request.app.state.exporter = exporter
    return exporter
