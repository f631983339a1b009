from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from patent_search.core.errors import ExportFailed, ExportInProgress, QueryExecutionError, QueryFailed
from patent_search.core.logging import get_logger
from patent_search.services.export.engine import BulkExporter
from patent_search.services.export.savers import FileSaver
from patent_search.services.search.pagination import Paginator
from patent_search.services.search.policies import DEFAULT_POLICY, SearchPolicy
from patent_search.services.search.query import (
    SearchFilter,
    build_assignee_query,
    build_query,
    is_empty_search,
)
from patent_search.services.storage.base import PatentRecord, QueryExecutor

log = get_logger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class ResultPage:
    rows: Tuple[PatentRecord, ...] = ()
    total_count: int = 0
    page_number: int = 1

    @classmethod
    def empty(cls, page_number: int = 1) -> "ResultPage":
        return cls(rows=(), total_count=0, page_number=page_number)


def unique_assignees(names: List[Optional[str]]) -> List[str]:
    """Drop empty names and duplicates, then sort A to Z."""
    seen = set()
    out: List[str] = []
    for name in names:
        if not name or name in seen:
            continue
        seen.add(name)
        out.append(name)
    return sorted(out)


class SearchSession:
    """
    One user's interactive search: filter state, the current result page,
    pagination and the two export actions.

    Every fetch gets a sequence number; only the latest one may update the
    session, so an older response arriving late is dropped. The page number
    moves only after the fetch for that page succeeded.
    """

    def __init__(
        self,
        executor: QueryExecutor,
        *,
        policy: SearchPolicy = DEFAULT_POLICY,
        exporter: Optional[BulkExporter] = None,
    ):
        self.executor = executor
        self.policy = policy
        self.exporter = exporter or BulkExporter(executor, policy)
        self.paginator = Paginator(policy.page_size)

        self.filter = SearchFilter()
        self.state = SessionState.IDLE
        self.result = ResultPage.empty()
        self.error: Optional[QueryFailed] = None
        self.export_error: Optional[str] = None
        self.assignees: List[str] = []

        self._last_filter: Optional[SearchFilter] = None
        self._seq = 0
        self._closed = False
        self._assignee_task: Optional[asyncio.Task] = None

    @classmethod
    def open(cls, executor: QueryExecutor, **kwargs) -> "SearchSession":
        """
        Create a session and start loading the assignee list in the background.
        Must be called from a running event loop.
        """
        session = cls(executor, **kwargs)
        session._assignee_task = asyncio.get_running_loop().create_task(session.load_assignees())
        return session

    def close(self) -> None:
        """Tear the session down. Pending background results are discarded."""
        self._closed = True

    async def wait_for_assignees(self) -> List[str]:
        if self._assignee_task is not None:
            await self._assignee_task
        return self.assignees

    # ------------------------------------------------------------------
    # Derived state for the view
    # ------------------------------------------------------------------

    @property
    def loading(self) -> bool:
        return self.state is SessionState.LOADING

    @property
    def exporting(self) -> bool:
        return self.exporter.exporting

    @property
    def page(self) -> int:
        return self.paginator.page

    @property
    def total_pages(self) -> int:
        return self.paginator.total_pages()

    @property
    def can_go_prev(self) -> bool:
        return self.paginator.can_go_prev()

    @property
    def can_go_next(self) -> bool:
        return self.paginator.can_go_next()

    @property
    def error_message(self) -> Optional[str]:
        return self.error.user_message if self.error else None

    @property
    def no_results(self) -> bool:
        return (
            not self.loading
            and not self.result.rows
            and not is_empty_search(self.filter, self.policy)
        )

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def update_filter(self, **changes: str) -> SearchFilter:
        self.filter = self.filter.replace(**changes)
        return self.filter

    async def load_assignees(self) -> None:
        query = build_assignee_query(self.policy)
        try:
            result = await self.executor.execute(query)
        except QueryExecutionError:
            if self._closed:
                return
            log.exception("[SEARCH] Loading assignees failed")
            self.assignees = []
            return

        if self._closed:
            log.debug("[SEARCH] Session closed before assignees loaded, ignoring result")
            return
        self.assignees = unique_assignees([r.assignee for r in result.rows])
        log.info(f"[SEARCH] Loaded {len(self.assignees)} assignees")

    async def submit(self, flt: Optional[SearchFilter] = None, *, page: int = 1) -> ResultPage:
        """
        Run a new search with `flt` (or the current filter).

        It lands on page 1 unless `page` asks for a later one. That page is
        read with the same counted query; if the count shows it lies past
        the last page, page 1 is fetched instead.
        """
        if flt is not None:
            self.filter = flt
        snapshot = self.filter

        if is_empty_search(snapshot, self.policy):
            log.debug("[SEARCH] Empty filter, skipping fetch")
            self._seq += 1
            self._last_filter = None
            self.error = None
            self.paginator.reset()
            self.result = ResultPage.empty()
            self.state = SessionState.READY
            return self.result

        self._last_filter = snapshot
        return await self._fetch(snapshot, max(1, page))

    async def go_to_page(self, page: int) -> ResultPage:
        """Fetch another page of the last search; out-of-range targets are ignored."""
        if self._last_filter is None or not self.paginator.is_valid_target(page):
            log.debug(f"[SEARCH] Ignoring navigation to page {page}")
            return self.result
        return await self._fetch(self._last_filter, page)

    async def next_page(self) -> ResultPage:
        if not self.can_go_next:
            return self.result
        return await self.go_to_page(self.page + 1)

    async def prev_page(self) -> ResultPage:
        if not self.can_go_prev:
            return self.result
        return await self.go_to_page(self.page - 1)

    def reset(self) -> None:
        self._seq += 1
        self._last_filter = None
        self.filter = SearchFilter()
        self.result = ResultPage.empty()
        self.error = None
        self.paginator.reset()
        self.state = SessionState.IDLE

    async def _fetch(self, flt: SearchFilter, page: int) -> ResultPage:
        self._seq += 1
        seq = self._seq

        self.state = SessionState.LOADING
        self.error = None

        query = build_query(flt, count_mode=True, policy=self.policy).with_rows(
            self.paginator.range_for(page)
        )
        log.info(f"[SEARCH] Fetching page {page} (seq={seq})")

        try:
            fetched = await self.executor.execute(query)
        except QueryExecutionError as e:
            if seq != self._seq:
                log.debug(f"[SEARCH] Dropping stale failure (seq={seq})")
                return self.result
            log.exception(f"[SEARCH] Fetching page {page} failed")
            self.error = QueryFailed(str(e), page=page)
            self.paginator.commit(self.paginator.page, 0)
            self.result = ResultPage.empty(self.paginator.page)
            self.state = SessionState.FAILED
            return self.result

        if seq != self._seq:
            log.debug(f"[SEARCH] Dropping stale response (seq={seq})")
            return self.result

        total = fetched.count or 0
        if page > self.paginator.pages_for(total):
            log.info(f"[SEARCH] Page {page} is past the last page ({total} rows), showing page 1")
            return await self._fetch(flt, 1)

        self.paginator.commit(page, total)
        self.result = ResultPage(rows=fetched.rows, total_count=total, page_number=page)
        self.state = SessionState.READY
        log.info(f"[SEARCH] Page {page}: {len(fetched.rows)} rows of {total}")
        return self.result

    async def export_current_page(self, saver: FileSaver) -> bool:
        """Save the rows on screen. Does nothing when the page is empty."""
        return await self.exporter.save_rows(self.result.rows, saver)

    async def export_all(self, saver: FileSaver) -> bool:
        """
        Export every row matching the current filter.

        Returns False, with `export_error` set, when the export failed or
        another one is still running.
        """
        self.export_error = None
        try:
            await self.exporter.save_all(self.filter, saver)
        except ExportInProgress as e:
            log.warning("[EXPORT] Export requested while another is running")
            self.export_error = e.user_message
            return False
        except ExportFailed as e:
            self.export_error = e.user_message
            return False
        return True
