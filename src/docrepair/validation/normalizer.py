"""
Record Normalization.

Turns raw import records into Documents before validation. Only generic
cleanup happens here; anything schema-specific belongs in the schema model.
"""

import uuid
from typing import Any, Iterable, Sequence

import structlog

from docrepair.state import DEFAULT_ID_FIELD, Document

logger = structlog.get_logger(__name__)


class RecordTransformer:
    """
    Raw record -> Document.

    The id is taken from ``id_field``, then the first non-empty fallback key,
    and generated as a last resort. Top-level strings are trimmed and
    ``None`` values dropped.
    """

    def __init__(
        self,
        id_field: str = DEFAULT_ID_FIELD,
        fallback_id_fields: Sequence[str] = (),
    ):
        self.id_field = id_field
        self.fallback_id_fields = list(fallback_id_fields)

    def _resolve_id(self, record: dict[str, Any]) -> str:
        for key in [self.id_field, *self.fallback_id_fields]:
            value = record.get(key)
            if value is not None and str(value).strip():
                return str(value).strip()

        generated = uuid.uuid4().hex
        logger.warning("Record has no identifier, generated one", document_id=generated)
        return generated

    def transform(self, record: Any) -> Document:
        if not isinstance(record, dict):
            raise ValueError(f"Record must be an object, got {type(record).__name__}")

        fields = {}
        for key, value in record.items():
            if key == self.id_field or value is None:
                continue
            fields[key] = value.strip() if isinstance(value, str) else value

        return Document(document_id=self._resolve_id(record), fields=fields)

    def transform_all(self, records: Iterable[Any]) -> tuple[list[Document], list[int]]:
        """Transform every record; returns documents and the indices that failed."""
        documents: list[Document] = []
        failed: list[int] = []

        for index, record in enumerate(records):
            try:
                documents.append(self.transform(record))
            except ValueError as e:
                logger.error("Failed to transform record", index=index, error=str(e))
                failed.append(index)

        return documents, failed
