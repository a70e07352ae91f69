"""
Store Module.

Document persistence keyed on document id.
"""

from docrepair.store.base import DocumentStore
from docrepair.store.memory import InMemoryDocumentStore
from docrepair.store.neo4j_store import Neo4jDocumentStore

__all__ = ["DocumentStore", "InMemoryDocumentStore", "Neo4jDocumentStore"]
