from __future__ import annotations

import math
from typing import Dict, Iterable, List, Sequence

from patent_search.core.errors import ExportFailed, ExportInProgress, QueryExecutionError
from patent_search.core.logging import get_logger
from patent_search.services.export import csv_codec
from patent_search.services.export.savers import FileSaver
from patent_search.services.search.policies import DEFAULT_POLICY, SearchPolicy
from patent_search.services.search.query import RowRange, SearchFilter, build_query
from patent_search.services.storage.base import PatentRecord, QueryExecutor

log = get_logger(__name__)

CHUNK_SIZE = DEFAULT_POLICY.export_chunk_size
CURRENT_PAGE_FILENAME = "patents_current_page.csv"
ALL_FILTERED_FILENAME = "patents_all_filtered.csv"


def flatten_record(record: PatentRecord) -> Dict[str, str]:
    """Export shape of a record: no abstract, missing assignee/date as ''."""
    return {
        "id": record.id,
        "patent_number": record.patent_number,
        "title": record.title,
        "assignee": record.assignee or "",
        "filing_date": record.filing_date or "",
    }


def chunk_ranges(count: int, chunk_size: int = CHUNK_SIZE) -> List[RowRange]:
    """Row windows that tile [0, count - 1] exactly, in order."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    if count <= 0:
        return []
    chunks = math.ceil(count / chunk_size)
    return [
        RowRange(i * chunk_size, min((i + 1) * chunk_size - 1, count - 1))
        for i in range(chunks)
    ]


class BulkExporter:
    """
    Exports every row matching a filter as CSV.

    The row count is read first, then the rows are read in fixed-size
    chunks, one request at a time, using the same query builder as the
    interactive search. Any failing request aborts the export; no partial
    CSV is ever returned.

    The count and the chunk reads are not taken from one snapshot of the
    store. Rows inserted or deleted between them shift the last chunk.
    """

    def __init__(self, executor: QueryExecutor, policy: SearchPolicy = DEFAULT_POLICY):
        self.executor = executor
        self.policy = policy
        self.exporting = False

    def export_rows(self, rows: Iterable[PatentRecord]) -> str:
        """CSV for rows that are already loaded, e.g. the current page."""
        return csv_codec.encode([flatten_record(r) for r in rows])

    async def export_all(self, flt: SearchFilter) -> str:
        if self.exporting:
            raise ExportInProgress("An export is already running")

        self.exporting = True
        try:
            return await self._export_all(flt)
        finally:
            self.exporting = False

    async def _export_all(self, flt: SearchFilter) -> str:
        log.info(f"[EXPORT] Starting bulk export for {flt}")

        base = build_query(flt, policy=self.policy)
        count_query = base.with_count().with_rows(RowRange.empty())
        try:
            result = await self.executor.execute(count_query)
        except QueryExecutionError as e:
            log.exception("[EXPORT] Count query failed")
            raise ExportFailed(f"Count query failed: {e}") from e

        count = result.count or 0
        if count <= 0:
            log.info("[EXPORT] No matching rows, producing empty CSV")
            return csv_codec.encode([])

        ranges = chunk_ranges(count, self.policy.export_chunk_size)
        log.info(f"[EXPORT] {count} rows in {len(ranges)} chunks of {self.policy.export_chunk_size}")

        buffer: List[Dict[str, str]] = []
        for index, rows in enumerate(ranges):
            query = base.with_rows(rows)
            try:
                chunk = await self.executor.execute(query)
            except QueryExecutionError as e:
                log.exception(f"[EXPORT] Chunk {index + 1}/{len(ranges)} failed")
                raise ExportFailed(f"Chunk {index} failed: {e}", chunk=index) from e

            buffer.extend(flatten_record(r) for r in chunk.rows)
            log.debug(f"[EXPORT] Chunk {index + 1}/{len(ranges)}: {len(chunk.rows)} rows")

        if len(buffer) != count:
            log.warning(f"[EXPORT] Row count changed during export: counted {count}, read {len(buffer)}")

        text = csv_codec.encode(buffer)
        log.info(f"[EXPORT] Bulk export complete: {len(buffer)} rows")
        return text

    async def save_all(self, flt: SearchFilter, saver: FileSaver) -> None:
        """Export everything matching `flt` and hand it to `saver`."""
        text = await self.export_all(flt)
        await saver.save(ALL_FILTERED_FILENAME, text)

    async def save_rows(self, rows: Sequence[PatentRecord], saver: FileSaver) -> bool:
        """Save already-loaded rows. Returns False (and saves nothing) when empty."""
        if not rows:
            return False
        await saver.save(CURRENT_PAGE_FILENAME, self.export_rows(rows))
        return True
