import asyncio

import pytest

from conftest import GatedExecutor, RecordingExecutor, make_patent
from patent_search.services.export.engine import ALL_FILTERED_FILENAME, CURRENT_PAGE_FILENAME
from patent_search.services.export.savers import MemorySaver
from patent_search.services.search.query import RowRange, SearchFilter
from patent_search.services.search.session import SearchSession, SessionState, unique_assignees

pytestmark = pytest.mark.anyio


@pytest.mark.parametrize("keyword", ["", "a", "  b  "])
async def test_empty_filter_short_circuits_without_fetching(keyword):
    executor = RecordingExecutor([make_patent(1)])
    session = SearchSession(executor)

    page = await session.submit(SearchFilter(keyword=keyword))

    assert executor.queries == []
    assert session.state is SessionState.READY
    assert page.rows == ()
    assert page.total_count == 0
    assert session.no_results is False


async def test_submit_fetches_first_page_with_count(patents):
    executor = RecordingExecutor(patents)
    session = SearchSession(executor)

    page = await session.submit(SearchFilter(assignee="Acme Corp"))

    (query,) = executor.queries
    assert query.count is True
    assert query.rows == RowRange(0, 9)
    assert session.state is SessionState.READY
    assert page.page_number == 1
    assert page.total_count == 22
    assert len(page.rows) == 10
    assert session.total_pages == 3
    assert session.can_go_next and not session.can_go_prev


async def test_submit_can_land_on_a_later_page_with_one_query(patents):
    executor = RecordingExecutor(patents)
    session = SearchSession(executor)

    page = await session.submit(SearchFilter(assignee="Acme Corp"), page=3)

    (query,) = executor.queries
    assert query.count is True
    assert query.rows == RowRange(20, 29)
    assert page.page_number == 3
    assert len(page.rows) == 2
    assert session.page == 3
    assert session.total_pages == 3


async def test_submit_past_the_last_page_falls_back_to_first(patents):
    executor = RecordingExecutor(patents)
    session = SearchSession(executor)

    page = await session.submit(SearchFilter(assignee="Acme Corp"), page=9)

    assert [q.rows for q in executor.queries] == [RowRange(80, 89), RowRange(0, 9)]
    assert page.page_number == 1
    assert page.total_count == 22
    assert session.page == 1
    assert session.state is SessionState.READY


async def test_navigation_after_the_store_shrank_falls_back_to_first(patents):
    session = SearchSession(RecordingExecutor(patents))
    await session.submit(SearchFilter(assignee="Acme Corp"))
    session.executor = RecordingExecutor(patents[:5])

    page = await session.go_to_page(3)

    assert page.page_number == 1
    assert session.page == 1
    assert session.total_pages == 1


async def test_keyword_search_is_case_insensitive_across_fields(patents):
    session = SearchSession(RecordingExecutor(patents))

    page = await session.submit(SearchFilter(keyword="battery"))

    assert {r.id for r in page.rows} == {"p00001", "p00006", "p00010"}


async def test_go_to_page_moves_only_after_success(patents):
    executor = RecordingExecutor(patents)
    session = SearchSession(executor)
    await session.submit(SearchFilter(assignee="Acme Corp"))

    page = await session.go_to_page(3)

    assert executor.queries[-1].rows == RowRange(20, 29)
    assert session.page == 3
    assert page.page_number == 3
    assert len(page.rows) == 2
    assert session.can_go_prev and not session.can_go_next


async def test_out_of_range_navigation_is_ignored(patents):
    executor = RecordingExecutor(patents)
    session = SearchSession(executor)
    await session.submit(SearchFilter(assignee="Acme Corp"))

    await session.go_to_page(0)
    await session.go_to_page(4)
    await session.prev_page()

    assert len(executor.queries) == 1
    assert session.page == 1


async def test_go_to_page_before_any_search_is_ignored():
    executor = RecordingExecutor([make_patent(1)])
    session = SearchSession(executor)

    await session.go_to_page(2)

    assert executor.queries == []
    assert session.state is SessionState.IDLE


async def test_next_and_prev_page(patents):
    session = SearchSession(RecordingExecutor(patents))
    await session.submit(SearchFilter(assignee="Acme Corp"))

    await session.next_page()
    assert session.page == 2
    await session.prev_page()
    assert session.page == 1


async def test_failed_page_fetch_keeps_page_and_clears_results(patents):
    executor = RecordingExecutor(patents, fail_when=lambda q, n: n == 2)
    session = SearchSession(executor)
    await session.submit(SearchFilter(assignee="Acme Corp"))

    page = await session.go_to_page(2)

    assert session.state is SessionState.FAILED
    assert session.page == 1
    assert page.rows == ()
    assert page.total_count == 0
    assert session.error is not None
    assert session.error.page == 2
    assert session.error_message == "Search failed. Please try again."


async def test_new_search_clears_previous_error(patents):
    executor = RecordingExecutor(patents, fail_when=lambda q, n: n == 1)
    session = SearchSession(executor)

    await session.submit(SearchFilter(assignee="Acme Corp"))
    assert session.state is SessionState.FAILED

    await session.submit()
    assert session.state is SessionState.READY
    assert session.error is None
    assert session.result.total_count == 22


async def test_reset_clears_everything_without_fetching(patents):
    executor = RecordingExecutor(patents)
    session = SearchSession(executor)
    await session.submit(SearchFilter(keyword="patent", assignee="Acme Corp"))
    await session.go_to_page(2)

    session.reset()

    assert len(executor.queries) == 2
    assert session.filter == SearchFilter()
    assert session.result.rows == ()
    assert session.page == 1
    assert session.paginator.total_count == 0
    assert session.error is None
    assert session.state is SessionState.IDLE


async def test_no_results_flag(patents):
    session = SearchSession(RecordingExecutor(patents))

    await session.submit(SearchFilter(keyword="zeppelin"))

    assert session.result.rows == ()
    assert session.no_results is True


async def test_late_response_from_superseded_search_is_dropped(patents):
    executor = GatedExecutor(patents, hold_calls=(1,))
    session = SearchSession(executor)

    older = asyncio.create_task(session.submit(SearchFilter(assignee="Globex")))
    await asyncio.sleep(0)
    await session.submit(SearchFilter(keyword="battery"))

    executor.gate.set()
    await older

    assert {r.id for r in session.result.rows} == {"p00001", "p00006", "p00010"}
    assert session.state is SessionState.READY


async def test_search_and_export_see_the_same_rows():
    rows = [make_patent(i) for i in range(1, 41)]
    for i in range(0, 40, 3):
        rows[i]["title"] = f"Battery cell {i}"
    rows[4]["filing_date"] = "2019-12-31"
    executor = RecordingExecutor(rows)
    session = SearchSession(executor)
    flt = SearchFilter(keyword="battery", from_date="2010-01-05")
    session.update_filter(keyword=flt.keyword, from_date=flt.from_date)

    page = await session.submit()
    saver = MemorySaver()
    assert await session.export_all(saver) is True

    exported = saver.files[ALL_FILTERED_FILENAME].split("\n")[1:11]
    assert [line.split(",")[0].strip('"') for line in exported] == [r.id for r in page.rows]
    assert [line.split(",")[2].strip('"') for line in exported] == [r.title for r in page.rows]


async def test_export_uses_filter_snapshot_taken_at_start(patents):
    executor = GatedExecutor(patents, hold_calls=(1,))
    session = SearchSession(executor)
    session.update_filter(assignee="Globex")
    saver = MemorySaver()

    task = asyncio.create_task(session.export_all(saver))
    await asyncio.sleep(0)
    assert session.exporting is True
    session.update_filter(assignee="Acme Corp")
    executor.gate.set()

    assert await task is True
    lines = saver.files[ALL_FILTERED_FILENAME].split("\n")
    assert len(lines) == 2
    assert '"Globex"' in lines[1]
    assert session.exporting is False


async def test_export_failure_produces_no_file(patents):
    executor = RecordingExecutor(patents, fail_when=lambda q, n: q.count is False)
    session = SearchSession(executor)
    session.update_filter(assignee="Acme Corp")
    saver = MemorySaver()

    assert await session.export_all(saver) is False
    assert saver.files == {}
    assert session.export_error == "Export failed. Please try again."


async def test_export_current_page(patents):
    session = SearchSession(RecordingExecutor(patents))
    saver = MemorySaver()

    assert await session.export_current_page(saver) is False

    await session.submit(SearchFilter(assignee="Globex"))
    assert await session.export_current_page(saver) is True
    assert saver.files[CURRENT_PAGE_FILENAME].split("\n")[1].startswith('"p00013"')


def test_unique_assignees_dedupes_and_sorts():
    assert unique_assignees(["b", None, "a", "b", "", "c", "a"]) == ["a", "b", "c"]


async def test_open_loads_assignees_in_background(patents):
    session = SearchSession.open(RecordingExecutor(patents))

    assignees = await session.wait_for_assignees()

    assert assignees == ["Acme Corp", "Battery Works Inc", "Globex"]


async def test_closed_session_ignores_late_assignee_list(patents):
    executor = GatedExecutor(patents, hold_calls=(1,))
    session = SearchSession.open(executor)
    await asyncio.sleep(0)

    session.close()
    executor.gate.set()
    await session.wait_for_assignees()

    assert session.assignees == []


async def test_assignee_load_failure_leaves_empty_list(patents):
    session = SearchSession(RecordingExecutor(patents, fail_when=lambda q, n: True))

    await session.load_assignees()

    assert session.assignees == []
