from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from patent_search.api.v1.dependencies import get_executor, get_exporter
from patent_search.api.v1.schemas.query import ExportRequest, SearchRequest
from patent_search.api.v1.schemas.results import (
    AssigneesResponse,
    ErrorResponse,
    PatentItem,
    SearchResponse,
)
from patent_search.core.logging import get_logger
from patent_search.services.export.engine import ALL_FILTERED_FILENAME, BulkExporter
from patent_search.services.search.display import page_label, summarize_filter
from patent_search.services.search.session import SearchSession, SessionState
from patent_search.services.storage.base import QueryExecutor

router = APIRouter()
log = get_logger(__name__)


@router.post(
    "/search",
    response_model=SearchResponse,
    responses={
        422: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def search(
    req: SearchRequest,
    executor: QueryExecutor = Depends(get_executor),
) -> SearchResponse:
    """
    One page of patents matching the filter, newest filing date first.

    An empty filter (keyword shorter than 2 characters and nothing else
    set) returns an empty page without querying the backend.
    """
    flt = req.filter.to_filter()
    log.info(f"[SEARCH START] page={req.page} filter={flt}")

    session = SearchSession(executor)
    await session.submit(flt, page=req.page)

    if session.state is SessionState.FAILED:
        log.warning(f"[SEARCH END] Failed: {session.error}")
        raise session.error

    log.info(f"[SEARCH END] page={session.page} rows={len(session.result.rows)} total={session.result.total_count}")
    return SearchResponse(
        rows=[PatentItem.from_record(r) for r in session.result.rows],
        total_count=session.result.total_count,
        page=session.page,
        total_pages=session.total_pages,
        can_go_prev=session.can_go_prev,
        can_go_next=session.can_go_next,
        no_results=session.no_results,
        summary=summarize_filter(flt),
        label=page_label(session.page, session.total_pages, session.result.total_count),
    )


@router.post(
    "/export",
    response_class=Response,
    responses={
        200: {"content": {"text/csv": {}}},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def export_all(
    req: ExportRequest,
    exporter: BulkExporter = Depends(get_exporter),
) -> Response:
    """
    Every row matching the filter as a CSV attachment.

    Failures surface through the ExportFailed / ExportInProgress handlers.
    """
    flt = req.filter.to_filter()
    log.info(f"[EXPORT START] filter={flt}")
    text = await exporter.export_all(flt)
    log.info(f"[EXPORT END] {len(text)} chars")
    return Response(
        content=text,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{ALL_FILTERED_FILENAME}"'},
    )


@router.get("/assignees", response_model=AssigneesResponse)
async def assignees(executor: QueryExecutor = Depends(get_executor)) -> AssigneesResponse:
    """Distinct assignee names for the filter dropdown, A to Z."""
    session = SearchSession(executor)
    await session.load_assignees()
    return AssigneesResponse(assignees=session.assignees)
