"""
Validation Module.

Pluggable validation and normalization policies.
"""

from docrepair.validation.normalizer import RecordTransformer
from docrepair.validation.schema_validator import (
    SchemaValidator,
    Validator,
    load_schema_model,
    summarize,
)

__all__ = [
    "RecordTransformer",
    "SchemaValidator",
    "Validator",
    "load_schema_model",
    "summarize",
]
