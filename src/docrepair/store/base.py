"""
Document Store Interface.

The correction pipeline needs only ``upsert_by_id`` (last-write-wins on the
document id). Bulk delete and insert exist for the import workflow.
"""

from abc import ABC, abstractmethod
from typing import Sequence

from docrepair.state import Document


class DocumentStore(ABC):
    """Abstract base class for document persistence."""

    @abstractmethod
    async def find_by_id(self, document_id: str) -> Document | None:
        pass

    @abstractmethod
    async def upsert_by_id(self, document: Document) -> None:
        """Insert or replace the document stored under ``document.document_id``."""
        pass

    @abstractmethod
    async def delete_all(self) -> int:
        """Delete every document. Returns the number removed."""
        pass

    @abstractmethod
    async def count(self) -> int:
        pass

    @abstractmethod
    async def insert_many(self, documents: Sequence[Document]) -> int:
        """Insert a batch without upsert semantics. Returns the number inserted."""
        pass

    async def close(self) -> None:
        return None
