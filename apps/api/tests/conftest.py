import asyncio
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import pytest

from patent_search.core.errors import QueryExecutionError
from patent_search.services.search.query import QueryDescription
from patent_search.services.storage.base import QueryResult
from patent_search.services.storage.memory import InMemoryExecutor


@pytest.fixture
def anyio_backend():
    return "asyncio"


def make_patent(i: int, **overrides: Any) -> Dict[str, Any]:
    """Patent row number `i`; higher numbers are filed later."""
    row = {
        "id": f"p{i:05d}",
        "patent_number": f"US{10_000_000 + i}B2",
        "title": f"Patent {i}",
        "abstract": f"Abstract for patent {i}",
        "assignee": "Acme Corp",
        "filing_date": (date(2010, 1, 1) + timedelta(days=i)).isoformat(),
    }
    row.update(overrides)
    return row


class RecordingExecutor:
    """
    In-memory executor that keeps every query it receives.

    `fail_when(query, call_number)` returning True makes that call raise.
    """

    name = "recording"

    def __init__(
        self,
        rows: Iterable[Mapping[str, Any]] = (),
        fail_when: Optional[Callable[[QueryDescription, int], bool]] = None,
    ):
        self.inner = InMemoryExecutor(rows)
        self.queries: List[QueryDescription] = []
        self.fail_when = fail_when

    async def execute(self, query: QueryDescription) -> QueryResult:
        self.queries.append(query)
        if self.fail_when is not None and self.fail_when(query, len(self.queries)):
            raise QueryExecutionError("backend unavailable", backend=self.name)
        return await self.inner.execute(query)

    async def close(self) -> None:
        return None


class GatedExecutor(RecordingExecutor):
    """Holds selected calls until the test releases them."""

    def __init__(self, rows: Iterable[Mapping[str, Any]] = (), hold_calls: Iterable[int] = (1,), **kwargs):
        super().__init__(rows, **kwargs)
        self.hold_calls = set(hold_calls)
        self.gate = asyncio.Event()
        self.calls = 0

    async def execute(self, query: QueryDescription) -> QueryResult:
        self.calls += 1
        if self.calls in self.hold_calls:
            await self.gate.wait()
        return await super().execute(query)


@pytest.fixture
def patents() -> List[Dict[str, Any]]:
    rows = [make_patent(i) for i in range(1, 26)]
    rows[0]["title"] = "Solid-state battery electrode"
    rows[5]["abstract"] = "A lithium BATTERY pack with cooling"
    rows[9]["assignee"] = "Battery Works Inc"
    rows[12]["assignee"] = "Globex"
    rows[13]["assignee"] = None
    rows[14]["filing_date"] = None
    return rows
