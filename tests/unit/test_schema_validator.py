"""
Unit Tests for Schema Validation and Record Normalization.
"""

from typing import Any

import pytest
from pydantic import BaseModel

from docrepair.errors import ConfigurationError
from docrepair.state import Document, ValidationIssue, ValidationResult
from docrepair.validation.normalizer import RecordTransformer
from docrepair.validation.schema_validator import SchemaValidator, load_schema_model, summarize


class Article(BaseModel):
    headline: str
    words: int


class TestSchemaValidator:
    """Test cases for SchemaValidator."""

    def test_valid_document(self, validator: SchemaValidator, valid_fields: dict[str, Any]) -> None:
        result = validator.validate(Document(document_id="q-1", fields=valid_fields))

        assert result.is_valid
        assert result.errors == []

    def test_invalid_document_maps_errors(self, validator: SchemaValidator, invalid_document: Document) -> None:
        result = validator.validate(invalid_document)

        assert not result.is_valid
        assert {e.field for e in result.errors} == {"difficulty", "tags"}

    def test_missing_field(self, validator: SchemaValidator) -> None:
        result = validator.validate(Document(document_id="q-1", fields={"difficulty": "Easy", "tags": ["x"]}))

        assert result.errors == [ValidationIssue(field="title", message="Field required")]

    def test_nested_location_is_dotted(self, validator: SchemaValidator) -> None:
        document = Document(document_id="q-1", fields={"title": "t", "difficulty": "Easy", "tags": ["ok", 3]})

        result = validator.validate(document)

        assert [e.field for e in result.errors] == ["tags.1"]

    def test_id_is_not_part_of_validated_payload(self) -> None:
        validator = SchemaValidator(Article)
        document = Document.from_record({"_id": "a-1", "headline": "h", "words": 3})

        assert validator.validate(document).is_valid


class TestLoadSchemaModel:
    """Test cases for load_schema_model."""

    def test_loads_model(self) -> None:
        assert load_schema_model(f"{__name__}:Article") is Article

    def test_from_path(self) -> None:
        assert SchemaValidator.from_path(f"{__name__}:Article").model is Article

    @pytest.mark.parametrize(
        "path",
        [
            "no_colon",
            ":Article",
            "module_that_does_not_exist_123:Model",
            f"{__name__}:Missing",
            f"{__name__}:summarize",
        ],
    )
    def test_bad_paths(self, path: str) -> None:
        with pytest.raises(ConfigurationError):
            load_schema_model(path)


class TestSummarize:
    """Test cases for summarize."""

    def test_frequency_sorted(self) -> None:
        tags = ValidationIssue(field="tags", message="too short")
        title = ValidationIssue(field="title", message="Field required")
        results = [
            ValidationResult.ok(),
            ValidationResult.failed([tags, title]),
            ValidationResult.failed([tags]),
        ]

        summary = summarize(results)

        assert summary["total"] == 3
        assert summary["valid"] == 1
        assert summary["invalid"] == 2
        assert summary["error_frequency"] == [("tags: too short", 2), ("title: Field required", 1)]


class TestRecordTransformer:
    """Test cases for RecordTransformer."""

    def test_id_lifted_out_of_fields(self) -> None:
        document = RecordTransformer().transform({"_id": "abc", "title": "x"})

        assert document.document_id == "abc"
        assert document.fields == {"title": "x"}

    def test_fallback_id_field(self) -> None:
        transformer = RecordTransformer(fallback_id_fields=["slug", "question_id"])

        document = transformer.transform({"question_id": "q-7", "title": "x"})

        assert document.document_id == "q-7"
        assert document.fields["question_id"] == "q-7"

    def test_generated_id(self) -> None:
        document = RecordTransformer().transform({"title": "x"})
        assert document.document_id

    def test_strings_trimmed_and_none_dropped(self) -> None:
        document = RecordTransformer().transform({"_id": " a ", "title": "  Two Sum ", "slug": None, "n": 3})

        assert document.document_id == "a"
        assert document.fields == {"title": "Two Sum", "n": 3}

    def test_transform_all_reports_failures(self) -> None:
        documents, failed = RecordTransformer().transform_all([{"_id": "a"}, "not a record", {"_id": "b"}])

        assert [d.document_id for d in documents] == ["a", "b"]
        assert failed == [1]
