from __future__ import annotations

import os
import re
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

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
from patent_search.services.storage.schemas import MongoDBConfig

log = get_logger(__name__)


class MongoDBExecutor:
    """
    Query executor backed by a MongoDB collection of patent rows.

    Documents are expected to carry `filing_date` as an ISO `YYYY-MM-DD`
    string, so range bounds compare lexically like calendar dates.
    """

    name = "mongodb"

    def __init__(
        self,
        cfg: MongoDBConfig,
        collection: Optional[AsyncIOMotorCollection] = None,
    ):
        """
        Initialize MongoDB client.

        Args:
            cfg: Connection string, database and collection names
            collection: Pre-built collection, mainly for tests
        """
        self.cfg = cfg
        self.client: Optional[AsyncIOMotorClient] = None
        if collection is not None:
            self.collection = collection
            return
        self.client = AsyncIOMotorClient(cfg.connection_string)
        self.db: AsyncIOMotorDatabase = self.client[cfg.database_name]
        self.collection = self.db[cfg.collection_name]

    @classmethod
    def from_env(cls) -> "MongoDBExecutor":
        """
        Create MongoDB executor from environment variables.

        Expected environment variables:
        - MONGODB_URI: MongoDB connection string
        - MONGODB_DATABASE: Database name (default: patent_discovery)
        - MONGODB_COLLECTION: Collection name (default: patents)
        """
        return cls(
            MongoDBConfig(
                connection_string=os.getenv("MONGODB_URI", ""),
                database_name=os.getenv("MONGODB_DATABASE", "patent_discovery"),
                collection_name=os.getenv("MONGODB_COLLECTION", "patents"),
            )
        )

    def build_filter(self, query: QueryDescription) -> Dict[str, Any]:
        clauses = [self._constraint_clause(c) for c in query.constraints]
        if not clauses:
            return {}
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}

    def _constraint_clause(self, constraint: Constraint) -> Dict[str, Any]:
        if isinstance(constraint, AnyFieldContains):
            pattern = re.escape(constraint.text)
            return {
                "$or": [
                    {field: {"$regex": pattern, "$options": "i"}}
                    for field in constraint.fields
                ]
            }
        if isinstance(constraint, FieldEquals):
            return {constraint.field: constraint.value}
        if isinstance(constraint, FieldRange):
            bounds: Dict[str, str] = {}
            if constraint.gte is not None:
                bounds["$gte"] = constraint.gte
            if constraint.lte is not None:
                bounds["$lte"] = constraint.lte
            return {constraint.field: bounds}
        if isinstance(constraint, FieldNotNull):
            return {constraint.field: {"$ne": None}}
        raise QueryExecutionError(f"Unsupported constraint: {constraint!r}", backend=self.name)

    async def execute(self, query: QueryDescription) -> QueryResult:
        mongo_filter = self.build_filter(query)
        log.debug(f"[MONGODB] Filter: {mongo_filter}")

        direction = DESCENDING if query.ordering.descending else ASCENDING
        projection = {f: 1 for f in query.fields}
        projection["_id"] = 0

        try:
            count: Optional[int] = None
            if query.count:
                count = await self.collection.count_documents(mongo_filter)

            docs: List[Dict[str, Any]] = []
            if query.rows is None or query.rows.size > 0:
                cursor = self.collection.find(mongo_filter, projection).sort(
                    [(query.ordering.field, direction), ("id", ASCENDING)]
                )
                if query.rows is not None:
                    cursor = cursor.skip(query.rows.start).limit(query.rows.size)
                async for doc in cursor:
                    docs.append(doc)
        except PyMongoError as e:
            log.error(f"[MONGODB] Query failed: {e}")
            raise QueryExecutionError(str(e), backend=self.name) from e

        log.info(f"[MONGODB] Query complete: {len(docs)} rows, count={count}")
        return QueryResult(
            rows=tuple(PatentRecord.from_row(d) for d in docs),
            count=count,
        )

    async def close(self) -> None:
        """Close the MongoDB connection."""
        if self.client is not None:
            self.client.close()
