from typing import Any, Dict, List

import pytest
from elasticsearch import TransportError

from patent_search.core.errors import QueryExecutionError
from patent_search.services.search.query import (
    KEYWORD_FIELDS,
    RowRange,
    SearchFilter,
    build_assignee_query,
    build_query,
)
from patent_search.services.storage.elasticsearch import INDEX_MAPPINGS, ElasticsearchExecutor
from patent_search.services.storage.schemas import ElasticsearchConfig

pytestmark = pytest.mark.anyio


class FakeElasticsearch:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests: List[Dict[str, Any]] = []
        self.closed = False

    async def search(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response

    async def close(self):
        self.closed = True


def _executor(client) -> ElasticsearchExecutor:
    cfg = ElasticsearchConfig(api_key="key", hosts=["http://localhost:9200"], index_name="patents")
    return ElasticsearchExecutor(cfg, client=client)


def test_config_requires_location_and_key():
    with pytest.raises(ValueError):
        ElasticsearchExecutor(ElasticsearchConfig(api_key="key"))
    with pytest.raises(ValueError):
        ElasticsearchExecutor(ElasticsearchConfig(api_key="", hosts=["http://localhost:9200"]))


def test_filter_translates_to_bool_filter_clauses():
    executor = _executor(FakeElasticsearch())
    flt = SearchFilter(keyword="li*ion", assignee="Acme Corp", from_date="2020-01-01", to_date="2020-12-31")

    request = executor.build_request(build_query(flt, count_mode=True).with_rows(RowRange(10, 19)))

    keyword, assignee, dates = request["query"]["bool"]["filter"]
    assert keyword["bool"]["minimum_should_match"] == 1
    assert keyword["bool"]["should"][0] == {
        "wildcard": {"title.raw": {"value": "*li\\*ion*", "case_insensitive": True}}
    }
    assert [next(iter(c["wildcard"])) for c in keyword["bool"]["should"]] == [
        "title.raw", "abstract.raw", "assignee.raw",
    ]
    assert assignee == {"term": {"assignee": "Acme Corp"}}
    assert dates == {"range": {"filing_date": {"gte": "2020-01-01", "lte": "2020-12-31"}}}
    assert request["sort"][0] == {"filing_date": {"order": "desc", "missing": "_last"}}
    assert request["from_"] == 10
    assert request["size"] == 10
    assert request["track_total_hits"] is True


def test_no_constraints_matches_all_and_omits_count():
    executor = _executor(FakeElasticsearch())

    request = executor.build_request(build_query(SearchFilter(keyword="a")).with_rows(RowRange(0, 999)))

    assert request["query"] == {"match_all": {}}
    assert "track_total_hits" not in request


def test_assignee_query_uses_exists_and_ascending_sort():
    request = _executor(FakeElasticsearch()).build_request(build_assignee_query())

    assert request["query"]["bool"]["filter"] == [{"exists": {"field": "assignee"}}]
    assert request["sort"][0] == {"assignee": {"order": "asc", "missing": "_last"}}
    assert request["source"] == ["assignee"]
    assert request["size"] == 500


async def test_execute_maps_hits_and_total():
    client = FakeElasticsearch(
        response={
            "hits": {
                "total": {"value": 42, "relation": "eq"},
                "hits": [
                    {"_id": "p1", "_source": {"title": "Cell", "filing_date": "2021-01-01", "assignee": None}},
                ],
            }
        }
    )

    result = await _executor(client).execute(build_query(SearchFilter(assignee="Acme Corp"), count_mode=True))

    assert result.count == 42
    assert result.rows[0].id == "p1"
    assert result.rows[0].title == "Cell"
    assert result.rows[0].assignee is None


async def test_transport_errors_become_query_execution_errors():
    executor = _executor(FakeElasticsearch(error=TransportError("cluster unavailable")))

    with pytest.raises(QueryExecutionError) as info:
        await executor.execute(build_query(SearchFilter(assignee="Acme Corp")))

    assert info.value.backend == "elasticsearch"


def test_index_mappings_cover_wildcard_clauses():
    request = _executor(FakeElasticsearch()).build_request(build_query(SearchFilter(keyword="cell")))
    (keyword_clause,) = request["query"]["bool"]["filter"]
    searched = [next(iter(c["wildcard"])) for c in keyword_clause["bool"]["should"]]

    props = INDEX_MAPPINGS["properties"]
    for path in searched:
        field, sub = path.split(".")
        assert props[field]["fields"][sub]["type"] == "wildcard"
    assert sorted(f.split(".")[0] for f in searched) == sorted(KEYWORD_FIELDS)
    # assignee equality runs as a term query on the keyword itself
    assert props["assignee"]["type"] == "keyword"
    assert props["filing_date"]["type"] == "date"


async def test_close_closes_client():
    client = FakeElasticsearch()

    await _executor(client).close()

    assert client.closed
