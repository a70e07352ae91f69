"""
Neo4j Document Store.

Each document is one ``(:Document {id, payload, updated_at})`` node. The
payload is stored as a JSON string since Neo4j properties cannot hold
nested maps. A uniqueness constraint on ``id`` backs the upsert.
"""

import json
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Sequence

import structlog
from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncSession
from neo4j.exceptions import ClientError, DriverError, Neo4jError

from docrepair.config.settings import StoreSettings
from docrepair.errors import TransportError
from docrepair.state import Document
from docrepair.store.base import DocumentStore

logger = structlog.get_logger(__name__)


class Neo4jDocumentStore(DocumentStore):
    """Document store on the Neo4j async driver."""

    SCHEMA_CONSTRAINTS = [
        "CREATE CONSTRAINT document_id IF NOT EXISTS FOR (d:Document) REQUIRE d.id IS UNIQUE",
    ]

    FIND_QUERY = "MATCH (d:Document {id: $id}) RETURN d.payload AS payload"

    UPSERT_QUERY = """
    MERGE (d:Document {id: $id})
    SET d.payload = $payload, d.updated_at = datetime()
    """

    DELETE_ALL_QUERY = "MATCH (d:Document) DETACH DELETE d RETURN count(d) AS deleted"

    COUNT_QUERY = "MATCH (d:Document) RETURN count(d) AS count"

    INSERT_MANY_QUERY = """
    UNWIND $rows AS row
    CREATE (d:Document {id: row.id, payload: row.payload, updated_at: datetime()})
    RETURN count(d) AS created
    """

    def __init__(self, settings: StoreSettings) -> None:
        self._driver: AsyncDriver | None = None
        self._settings = settings

    async def connect(self) -> None:
        """Establish connection to Neo4j database."""
        if self._driver is not None:
            return

        self._driver = AsyncGraphDatabase.driver(
            self._settings.uri,
            auth=(self._settings.username, self._settings.password.get_secret_value()),
            max_connection_pool_size=self._settings.max_connection_pool_size,
        )
        try:
            await self._driver.verify_connectivity()
        except (Neo4jError, DriverError, OSError) as e:
            self._driver = None
            raise TransportError(f"Cannot connect to Neo4j: {e}", operation="connect") from e
        logger.info("Connected to Neo4j", uri=self._settings.uri)

    async def close(self) -> None:
        if self._driver is not None:
            await self._driver.close()
            self._driver = None
            logger.info("Disconnected from Neo4j")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        if self._driver is None:
            await self.connect()

        assert self._driver is not None
        async with self._driver.session(database=self._settings.database) as session:
            yield session

    async def setup_schema(self) -> None:
        async with self.session() as session:
            for query in self.SCHEMA_CONSTRAINTS:
                try:
                    await session.run(query)
                    logger.info("Constraint created", query=query[:50])
                except ClientError as e:
                    if "already exists" not in str(e).lower():
                        raise TransportError(f"Constraint creation failed: {e}", operation="setup_schema") from e

    async def _single(self, operation: str, query: str, **params: Any) -> Any:
        try:
            async with self.session() as session:
                result = await session.run(query, params)
                return await result.single()
        except (Neo4jError, DriverError) as e:
            raise TransportError(f"Neo4j {operation} failed: {e}", operation=operation) from e

    async def find_by_id(self, document_id: str) -> Document | None:
        record = await self._single("find_by_id", self.FIND_QUERY, id=document_id)
        if record is None:
            return None
        return Document(document_id=document_id, fields=json.loads(record["payload"]))

    async def upsert_by_id(self, document: Document) -> None:
        await self._single(
            "upsert_by_id",
            self.UPSERT_QUERY,
            id=document.document_id,
            payload=json.dumps(document.fields, ensure_ascii=False, default=str),
        )
        logger.debug("Document upserted", document_id=document.document_id)

    async def delete_all(self) -> int:
        record = await self._single("delete_all", self.DELETE_ALL_QUERY)
        return record["deleted"] if record else 0

    async def count(self) -> int:
        record = await self._single("count", self.COUNT_QUERY)
        return record["count"] if record else 0

    async def insert_many(self, documents: Sequence[Document]) -> int:
        if not documents:
            return 0
        rows = [
            {"id": d.document_id, "payload": json.dumps(d.fields, ensure_ascii=False, default=str)}
            for d in documents
        ]
        record = await self._single("insert_many", self.INSERT_MANY_QUERY, rows=rows)
        return record["created"] if record else 0
