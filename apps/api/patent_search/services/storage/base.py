from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

from patent_search.services.search.query import QueryDescription


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


@dataclass(frozen=True)
class PatentRecord:
    """One patent row as returned by the store."""
    id: str
    patent_number: Optional[str] = None
    title: Optional[str] = None
    abstract: Optional[str] = None
    assignee: Optional[str] = None
    filing_date: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PatentRecord":
        """Build a record from a backend document, tolerating missing fields."""
        return cls(
            id=str(row.get("id", "")),
            patent_number=_as_text(row.get("patent_number")),
            title=_as_text(row.get("title")),
            abstract=_as_text(row.get("abstract")),
            assignee=_as_text(row.get("assignee")),
            filing_date=_as_text(row.get("filing_date")),
        )

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {
            "id": self.id,
            "patent_number": self.patent_number,
            "title": self.title,
            "abstract": self.abstract,
            "assignee": self.assignee,
            "filing_date": self.filing_date,
        }


@dataclass(frozen=True)
class QueryResult:
    """
    Rows for the requested window plus the exact match count.

    `count` is None unless the query asked for it.
    """
    rows: Tuple[PatentRecord, ...] = ()
    count: Optional[int] = None


class QueryExecutor(Protocol):
    """
    Narrow capability the search and export services depend on.

    Implementations raise QueryExecutionError when the backend fails.
    """

    name: str

    async def execute(self, query: QueryDescription) -> QueryResult:
        ...

    async def close(self) -> None:
        ...
