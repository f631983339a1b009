import os
from typing import Any, Dict, List, Optional

from elasticsearch import ApiError, AsyncElasticsearch, TransportError

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
from .base import PatentRecord, QueryResult
from .schemas import ElasticsearchConfig

log = get_logger(__name__)

# Substring matching runs against a `wildcard`-typed sub-field
SUBSTRING_SUBFIELD = "raw"
# Used when a query carries no row window
MAX_UNBOUNDED_ROWS = 10_000

# Index layout the queries below expect. Every field keyword search touches
# needs the wildcard sub-field; bulk export pages with from/size, so the
# index's max_result_window must cover the largest filtered set.
INDEX_MAPPINGS: Dict[str, Any] = {
    "properties": {
        "id": {"type": "keyword"},
        "patent_number": {"type": "keyword"},
        "title": {"type": "text", "fields": {SUBSTRING_SUBFIELD: {"type": "wildcard"}}},
        "abstract": {"type": "text", "fields": {SUBSTRING_SUBFIELD: {"type": "wildcard"}}},
        "assignee": {"type": "keyword", "fields": {SUBSTRING_SUBFIELD: {"type": "wildcard"}}},
        "filing_date": {"type": "date", "format": "strict_date"},
    }
}


def _escape_wildcard(text: str) -> str:
    return text.replace("\\", "\\\\").replace("*", "\\*").replace("?", "\\?")


class ElasticsearchExecutor:
    """
    Query executor backed by an Elasticsearch index of patent rows.

    Keyword search maps to case-insensitive wildcard queries, assignee to a
    term filter and the date bounds to a range filter.
    """

    name = "elasticsearch"

    def __init__(self, cfg: ElasticsearchConfig, client: Optional[AsyncElasticsearch] = None):
        if not cfg.cloud_id and not cfg.hosts:
            raise ValueError("Either cloud_id or hosts must be provided")
        if not cfg.api_key:
            raise ValueError("Missing ELASTICSEARCH_API_KEY")

        self.cfg = cfg

        if client is not None:
            self._client = client
        elif cfg.cloud_id:
            self._client = AsyncElasticsearch(
                cloud_id=cfg.cloud_id,
                api_key=cfg.api_key,
            )
        else:
            self._client = AsyncElasticsearch(
                hosts=cfg.hosts,
                api_key=cfg.api_key,
            )

    @classmethod
    def from_env(cls) -> "ElasticsearchExecutor":
        """Create ElasticsearchExecutor from environment variables."""
        return cls(
            ElasticsearchConfig(
                cloud_id=os.getenv("ELASTICSEARCH_CLOUD_ID", ""),
                hosts=os.getenv("ELASTICSEARCH_HOSTS", "").split(",") if os.getenv("ELASTICSEARCH_HOSTS") else None,
                api_key=os.getenv("ELASTICSEARCH_API_KEY", ""),
                index_name=os.getenv("ELASTICSEARCH_INDEX_NAME", "patents"),
            )
        )

    async def close(self) -> None:
        """Close the Elasticsearch client connection."""
        await self._client.close()

    def build_request(self, query: QueryDescription) -> Dict[str, Any]:
        """
        Translate a query description into keyword arguments for `search()`.
        """
        filters: List[Dict[str, Any]] = [self._constraint_clause(c) for c in query.constraints]

        order = "desc" if query.ordering.descending else "asc"
        request: Dict[str, Any] = {
            "index": self.cfg.index_name,
            "query": {"bool": {"filter": filters}} if filters else {"match_all": {}},
            "sort": [
                {query.ordering.field: {"order": order, "missing": "_last"}},
                {"id": {"order": "asc"}},
            ],
            "source": list(query.fields),
        }

        if query.rows is not None:
            request["from_"] = query.rows.start
            request["size"] = query.rows.size
        else:
            request["size"] = MAX_UNBOUNDED_ROWS

        if query.count:
            request["track_total_hits"] = True

        return request

    def _constraint_clause(self, constraint: Constraint) -> Dict[str, Any]:
        if isinstance(constraint, AnyFieldContains):
            value = f"*{_escape_wildcard(constraint.text)}*"
            return {
                "bool": {
                    "should": [
                        {
                            "wildcard": {
                                f"{field}.{SUBSTRING_SUBFIELD}": {
                                    "value": value,
                                    "case_insensitive": True,
                                }
                            }
                        }
                        for field in constraint.fields
                    ],
                    "minimum_should_match": 1,
                }
            }
        if isinstance(constraint, FieldEquals):
            return {"term": {constraint.field: constraint.value}}
        if isinstance(constraint, FieldRange):
            bounds: Dict[str, str] = {}
            if constraint.gte is not None:
                bounds["gte"] = constraint.gte
            if constraint.lte is not None:
                bounds["lte"] = constraint.lte
            return {"range": {constraint.field: bounds}}
        if isinstance(constraint, FieldNotNull):
            return {"exists": {"field": constraint.field}}
        raise QueryExecutionError(f"Unsupported constraint: {constraint!r}", backend=self.name)

    async def execute(self, query: QueryDescription) -> QueryResult:
        request = self.build_request(query)
        log.debug(f"[ELASTICSEARCH] Search request: {request}")

        try:
            response = await self._client.search(**request)
        except (ApiError, TransportError) as e:
            log.error(f"[ELASTICSEARCH] Search failed: {e}")
            raise QueryExecutionError(str(e), backend=self.name) from e

        hits = response["hits"]
        rows = tuple(
            PatentRecord.from_row({"id": hit["_id"], **hit.get("_source", {})})
            for hit in hits["hits"]
        )

        count: Optional[int] = None
        if query.count:
            count = int(hits["total"]["value"])

        log.info(f"[ELASTICSEARCH] Search complete: {len(rows)} rows, count={count}")
        return QueryResult(rows=rows, count=count)
