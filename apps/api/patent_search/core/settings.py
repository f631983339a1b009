from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, Field
import os

class Settings(BaseModel):
    env: str = Field(default="dev")
    cors_allow_origins: List[str] = Field(default_factory=list)

    search_backend: str = Field(default="memory", description="elasticsearch|mongodb|memory")

    elasticsearch_cloud_id: Optional[str] = None
    elasticsearch_hosts: Optional[List[str]] = None
    elasticsearch_api_key: Optional[str] = None
    elasticsearch_index: str = Field(default="patents")

    mongodb_uri: Optional[str] = None
    mongodb_database: str = Field(default="patent_discovery")
    mongodb_collection: str = Field(default="patents")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    origins = os.getenv("CORS_ALLOW_ORIGINS", "")
    cors_allow_origins = [o.strip() for o in origins.split(",") if o.strip()]

    hosts = os.getenv("ELASTICSEARCH_HOSTS", "")
    elasticsearch_hosts = [h.strip() for h in hosts.split(",") if h.strip()] or None

    return Settings(
        env=os.getenv("ENV", "dev"),
        cors_allow_origins=cors_allow_origins,
        search_backend=os.getenv("SEARCH_BACKEND", "memory").strip().lower(),
        elasticsearch_cloud_id=os.getenv("ELASTICSEARCH_CLOUD_ID"),
        elasticsearch_hosts=elasticsearch_hosts,
        elasticsearch_api_key=os.getenv("ELASTICSEARCH_API_KEY"),
        elasticsearch_index=os.getenv("ELASTICSEARCH_INDEX_NAME", "patents"),
        mongodb_uri=os.getenv("MONGODB_URI"),
        mongodb_database=os.getenv("MONGODB_DATABASE", "patent_discovery"),
        mongodb_collection=os.getenv("MONGODB_COLLECTION", "patents"),
    )
