"""In-memory document store for tests and single-process runs."""

from typing import Sequence

from docrepair.errors import TransportError
from docrepair.state import Document
from docrepair.store.base import DocumentStore


class InMemoryDocumentStore(DocumentStore):
    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}

    async def find_by_id(self, document_id: str) -> Document | None:
        return self._documents.get(document_id)

    async def upsert_by_id(self, document: Document) -> None:
        self._documents[document.document_id] = document

    async def delete_all(self) -> int:
        deleted = len(self._documents)
        self._documents.clear()
        return deleted

    async def count(self) -> int:
        return len(self._documents)

    async def insert_many(self, documents: Sequence[Document]) -> int:
        duplicates = [d.document_id for d in documents if d.document_id in self._documents]
        if duplicates:
            raise TransportError(f"Duplicate document ids: {duplicates[:5]}", operation="insert_many")
        for document in documents:
            self._documents[document.document_id] = document
        return len(documents)
