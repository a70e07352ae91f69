"""
Schema Validation.

Validates document payloads against a pydantic model. The model is the
rule set: swap it (VALIDATION_SCHEMA_MODEL) to change what "valid" means.
"""

import importlib
from collections import Counter
from typing import Any, Iterable, Protocol

import structlog
from pydantic import BaseModel, ValidationError

from docrepair.errors import ConfigurationError
from docrepair.state import Document, ValidationIssue, ValidationResult

logger = structlog.get_logger(__name__)


class Validator(Protocol):
    """Validator boundary."""

    def validate(self, document: Document) -> ValidationResult: ...


def load_schema_model(path: str) -> type[BaseModel]:
    """
    Import a pydantic model from a ``"package.module:ClassName"`` path.

    Raises:
        ConfigurationError: path malformed, import failed, or not a BaseModel
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(f"Schema model must look like 'module:Class', got {path!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import schema module {module_name!r}: {e}") from e

    model = getattr(module, attr, None)
    if not (isinstance(model, type) and issubclass(model, BaseModel)):
        raise ConfigurationError(f"{path!r} is not a pydantic model")
    return model


def _issue_from_error(error: dict[str, Any]) -> ValidationIssue:
    location = ".".join(str(part) for part in error.get("loc", ()))
    return ValidationIssue(field=location or "(document)", message=error.get("msg", "invalid"))


class SchemaValidator:
    """
    Validate ``document.fields`` against a pydantic model.

    Example:
        validator = SchemaValidator(Question)
        result = validator.validate(document)
        if not result.is_valid:
            ...
    """

    def __init__(self, model: type[BaseModel]):
        self.model = model

    @classmethod
    def from_path(cls, path: str) -> "SchemaValidator":
        return cls(load_schema_model(path))

    def validate(self, document: Document) -> ValidationResult:
        try:
            self.model.model_validate(document.fields)
        except ValidationError as e:
            issues = [_issue_from_error(err) for err in e.errors()]
            logger.debug(
                "Document failed validation",
                document_id=document.document_id,
                error_count=len(issues),
            )
            return ValidationResult.failed(issues)
        return ValidationResult.ok()


def summarize(results: Iterable[ValidationResult]) -> dict[str, Any]:
    """Totals and error frequency, most frequent first."""
    valid = invalid = 0
    frequency: Counter[str] = Counter()

    for result in results:
        if result.is_valid:
            valid += 1
            continue
        invalid += 1
        frequency.update(str(error) for error in result.errors)

    return {
        "total": valid + invalid,
        "valid": valid,
        "invalid": invalid,
        "error_frequency": frequency.most_common(),
    }
