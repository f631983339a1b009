from __future__ import annotations

import gzip
import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from patent_search.core.errors import QueryExecutionError
from patent_search.core.logging import get_logger
from patent_search.services.search.query import (
    AnyFieldContains,
    Constraint,
    FieldEquals,
    FieldNotNull,
    FieldRange,
    QueryDescription,
)
from patent_search.services.storage.base import PatentRecord, QueryResult

log = get_logger(__name__)


def _open_text(path: Union[str, Path]):
    p = Path(path)
    if p.suffix == ".gz":
        return gzip.open(p, "rt", encoding="utf-8", errors="replace")
    return open(p, "rt", encoding="utf-8", errors="replace")


def iter_patent_jsonl(path: Union[str, Path]) -> Iterator[Dict[str, Any]]:
    """
    Iterate a JSONL / JSONL.GZ export of the patents table.
    Blank or broken lines are skipped.
    """
    with _open_text(path) as f:
        for line in f:
            line = (line or "").strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError:
                continue


def _matches(row: Mapping[str, Any], constraint: Constraint) -> bool:
    if isinstance(constraint, AnyFieldContains):
        needle = constraint.text.lower()
        return any(
            needle in str(row[f]).lower()
            for f in constraint.fields
            if row.get(f) is not None
        )
    if isinstance(constraint, FieldEquals):
        return row.get(constraint.field) == constraint.value
    if isinstance(constraint, FieldRange):
        value = row.get(constraint.field)
        if value is None:
            return False
        # ISO dates compare correctly as strings
        value = str(value)
        if constraint.gte is not None and value < constraint.gte:
            return False
        if constraint.lte is not None and value > constraint.lte:
            return False
        return True
    if isinstance(constraint, FieldNotNull):
        return row.get(constraint.field) is not None
    raise QueryExecutionError(f"Unsupported constraint: {constraint!r}", backend="memory")


class InMemoryExecutor:
    """
    Query executor over a list of patent rows held in process.

    Follows the same semantics as the remote backends: nulls never satisfy a
    range, sorting puts nulls last and breaks ties on `id`.
    """

    name = "memory"

    def __init__(self, rows: Optional[Iterable[Mapping[str, Any]]] = None):
        self._rows: List[Dict[str, Any]] = [dict(r) for r in (rows or [])]

    @classmethod
    def from_env(cls) -> "InMemoryExecutor":
        """
        Create an executor seeded from MEMORY_SEED_PATH (JSONL or JSONL.GZ).
        Without the variable the store starts empty.
        """
        seed_path = os.getenv("MEMORY_SEED_PATH")
        if not seed_path:
            log.info("[MEMORY] No MEMORY_SEED_PATH set, starting with an empty store")
            return cls()
        return cls.from_jsonl(seed_path)

    @classmethod
    def from_jsonl(cls, path: Union[str, Path]) -> "InMemoryExecutor":
        rows = list(iter_patent_jsonl(path))
        log.info(f"[MEMORY] Loaded {len(rows)} rows from {path}")
        return cls(rows)

    def __len__(self) -> int:
        return len(self._rows)

    def add(self, row: Mapping[str, Any]) -> None:
        self._rows.append(dict(row))

    async def execute(self, query: QueryDescription) -> QueryResult:
        matched = [
            row for row in self._rows
            if all(_matches(row, c) for c in query.constraints)
        ]

        key = query.ordering.field
        # Two passes keep the id tie-break ascending whatever the main direction
        matched.sort(key=lambda r: str(r.get("id", "")))
        present = [r for r in matched if r.get(key) is not None]
        missing = [r for r in matched if r.get(key) is None]
        present.sort(key=lambda r: str(r[key]), reverse=query.ordering.descending)
        ordered = present + missing

        if query.rows is not None:
            window = ordered[query.rows.start:query.rows.end + 1]
        else:
            window = ordered

        count = len(ordered) if query.count else None
        log.debug(
            f"[MEMORY] {len(query.constraints)} constraints -> "
            f"{len(ordered)} matches, returning {len(window)}"
        )
        return QueryResult(
            rows=tuple(PatentRecord.from_row(r) for r in window),
            count=count,
        )

    async def close(self) -> None:
        return None
