from typing import List, Optional
from dataclasses import dataclass


@dataclass
class ElasticsearchConfig:
    """Configuration for an Elasticsearch (Cloud or self-hosted) connection."""
    api_key: str
    cloud_id: str = ""
    hosts: Optional[List[str]] = None
    index_name: str = "patents"


@dataclass
class MongoDBConfig:
    """Configuration for the MongoDB collection holding patent rows."""
    connection_string: str
    database_name: str = "patent_discovery"
    collection_name: str = "patents"

    def __post_init__(self):
        if not self.connection_string:
            raise ValueError("MONGODB_URI environment variable is required")
