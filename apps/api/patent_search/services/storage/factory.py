from __future__ import annotations

from typing import List

from patent_search.core.logging import get_logger
from patent_search.core.settings import Settings
from patent_search.services.storage.base import QueryExecutor
from patent_search.services.storage.memory import InMemoryExecutor
from patent_search.services.storage.schemas import ElasticsearchConfig, MongoDBConfig

log = get_logger(__name__)

SUPPORTED_BACKENDS = ("elasticsearch", "mongodb", "memory")


def configuration_issues(settings: Settings) -> List[str]:
    """Describe what is missing for the selected backend. Empty means ready."""
    issues: List[str] = []
    backend = settings.search_backend

    if backend not in SUPPORTED_BACKENDS:
        issues.append(f"Unknown SEARCH_BACKEND '{backend}'")
    elif backend == "elasticsearch":
        if not settings.elasticsearch_cloud_id and not settings.elasticsearch_hosts:
            issues.append("Elasticsearch cloud id or hosts not configured")
        if not settings.elasticsearch_api_key:
            issues.append("Elasticsearch API key not configured")
    elif backend == "mongodb":
        if not settings.mongodb_uri:
            issues.append("MongoDB URI not configured")

    return issues


def create_executor(settings: Settings) -> QueryExecutor:
    """
    Build the query executor selected by SEARCH_BACKEND.

    Raises:
        ValueError: unknown backend or missing connection settings
    """
    backend = settings.search_backend
    log.info(f"Creating query executor for backend: {backend}")

    if backend == "elasticsearch":
        from patent_search.services.storage.elasticsearch import ElasticsearchExecutor

        return ElasticsearchExecutor(
            ElasticsearchConfig(
                api_key=settings.elasticsearch_api_key or "",
                cloud_id=settings.elasticsearch_cloud_id or "",
                hosts=settings.elasticsearch_hosts,
                index_name=settings.elasticsearch_index,
            )
        )

    if backend == "mongodb":
        from patent_search.services.storage.mongodb import MongoDBExecutor

        return MongoDBExecutor(
            MongoDBConfig(
                connection_string=settings.mongodb_uri or "",
                database_name=settings.mongodb_database,
                collection_name=settings.mongodb_collection,
            )
        )

    if backend == "memory":
        return InMemoryExecutor.from_env()

    raise ValueError(
        f"Unknown search backend '{backend}', expected one of {', '.join(SUPPORTED_BACKENDS)}"
    )
