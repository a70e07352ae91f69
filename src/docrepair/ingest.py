"""
Bulk Import and Diagnosis.

Import steps:
1. Read a JSON array of records
2. Transform and validate every record
3. Optionally delete all existing documents (verified empty)
4. Insert valid documents in batches (count verified when replacing)
5. Re-validate a sample of stored documents
6. Optionally enqueue correction jobs for the invalid ones

Diagnosis runs steps 1 and 2 only and reports error frequency.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from docrepair.errors import ImportFailedError
from docrepair.pipeline import CorrectionPipeline
from docrepair.state import Document, ValidationResult
from docrepair.store.base import DocumentStore
from docrepair.validation.normalizer import RecordTransformer
from docrepair.validation.schema_validator import Validator, summarize

logger = structlog.get_logger(__name__)

SAMPLE_SIZE = 10


@dataclass
class ImportReport:
    total_records: int = 0
    transform_failures: int = 0
    valid: int = 0
    invalid: int = 0
    deleted: int = 0
    inserted: int = 0
    enqueued: int = 0
    sample_checked: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_records": self.total_records,
            "transform_failures": self.transform_failures,
            "valid": self.valid,
            "invalid": self.invalid,
            "deleted": self.deleted,
            "inserted": self.inserted,
            "enqueued": self.enqueued,
            "sample_checked": self.sample_checked,
        }


@dataclass
class DiagnosisReport:
    total: int = 0
    transform_failures: int = 0
    valid: int = 0
    invalid: int = 0
    error_frequency: list[tuple[str, int]] = field(default_factory=list)
    first_failures: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "transform_failures": self.transform_failures,
            "valid": self.valid,
            "invalid": self.invalid,
            "error_frequency": [{"error": e, "count": n} for e, n in self.error_frequency],
            "first_failures": self.first_failures,
        }


def load_records(path: str | Path) -> list[Any]:
    """Read a JSON file holding an array of records."""
    path = Path(path)
    logger.info("Reading records file", path=str(path))

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ImportFailedError(f"Cannot read {path}: {e}") from e

    if not isinstance(data, list):
        raise ImportFailedError(f"{path} must contain an array of documents")

    logger.info("Records file read", total_records=len(data))
    return data


class DocumentImporter:
    """Import workflow over a store, a validator and a transformer."""

    def __init__(
        self,
        store: DocumentStore,
        validator: Validator,
        transformer: RecordTransformer | None = None,
        pipeline: CorrectionPipeline | None = None,
    ):
        self.store = store
        self.validator = validator
        self.transformer = transformer or RecordTransformer()
        self.pipeline = pipeline

    def _validate_all(
        self, documents: list[Document]
    ) -> list[tuple[Document, ValidationResult]]:
        return [(doc, self.validator.validate(doc)) for doc in documents]

    async def run(
        self,
        path: str | Path,
        replace: bool = True,
        batch_size: int = 100,
        enqueue_invalid: bool = False,
    ) -> ImportReport:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if enqueue_invalid and self.pipeline is None:
            raise ImportFailedError("enqueue_invalid requires a correction pipeline")

        records = load_records(path)
        documents, failed = self.transformer.transform_all(records)
        validated = self._validate_all(documents)

        valid = [doc for doc, result in validated if result.is_valid]
        invalid = [(doc, result) for doc, result in validated if not result.is_valid]

        report = ImportReport(
            total_records=len(records),
            transform_failures=len(failed),
            valid=len(valid),
            invalid=len(invalid),
        )
        summary = summarize(result for _, result in validated)
        logger.info(
            "Validation complete",
            total=summary["total"],
            valid=summary["valid"],
            invalid=summary["invalid"],
            top_errors=summary["error_frequency"][:5],
        )

        if not valid:
            raise ImportFailedError("No valid documents to import")

        if replace:
            report.deleted = await self._delete_existing()

        report.inserted = await self._insert(valid, batch_size, verify_count=replace)

        report.sample_checked = await self._verify_sample(valid[:SAMPLE_SIZE])

        if enqueue_invalid:
            for doc, result in invalid:
                await self.pipeline.enqueue(doc, result.errors)
                report.enqueued += 1

        logger.info("Import completed", **report.to_dict())
        return report

    async def _delete_existing(self) -> int:
        before = await self.store.count()
        if before == 0:
            logger.info("Store is already empty, skipping deletion")
            return 0

        deleted = await self.store.delete_all()
        after = await self.store.count()
        if after != 0:
            raise ImportFailedError(f"Deletion verification failed. Expected 0 documents, found {after}")

        logger.info("Existing documents deleted", deleted=deleted)
        return deleted

    async def _insert(self, documents: list[Document], batch_size: int, verify_count: bool) -> int:
        inserted = 0
        for start in range(0, len(documents), batch_size):
            batch = documents[start:start + batch_size]
            inserted += await self.store.insert_many(batch)
            logger.info(
                "Batch inserted",
                batch_number=start // batch_size + 1,
                batch_size=len(batch),
                total_inserted=inserted,
            )

        if verify_count:
            final = await self.store.count()
            if final != inserted:
                raise ImportFailedError(
                    f"Insertion verification failed. Expected {inserted} documents, found {final}"
                )
        return inserted

    async def _verify_sample(self, sample: list[Document]) -> int:
        failing: list[str] = []
        for doc in sample:
            stored = await self.store.find_by_id(doc.document_id)
            if stored is None or not self.validator.validate(stored).is_valid:
                failing.append(doc.document_id)

        if failing:
            logger.error("Stored sample failed re-validation", document_ids=failing)
            raise ImportFailedError(
                f"Sample verification failed for {len(failing)} of {len(sample)} documents: {failing}"
            )
        logger.info("Sample verification passed", checked=len(sample))
        return len(sample)

    def diagnose(self, path: str | Path, show_failures: int = 3) -> DiagnosisReport:
        records = load_records(path)
        documents, failed = self.transformer.transform_all(records)
        validated = self._validate_all(documents)
        summary = summarize(result for _, result in validated)

        first_failures = [
            {
                "document_id": doc.document_id,
                "errors": [str(e) for e in result.errors],
            }
            for doc, result in validated
            if not result.is_valid
        ][:show_failures]

        return DiagnosisReport(
            total=len(records),
            transform_failures=len(failed),
            valid=summary["valid"],
            invalid=summary["invalid"],
            error_frequency=summary["error_frequency"],
            first_failures=first_failures,
        )
