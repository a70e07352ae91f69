"""
Pytest Configuration and Shared Fixtures.

This module provides shared fixtures for testing the correction pipeline.
"""

from collections.abc import Callable
from typing import Any, Literal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage
from pydantic import BaseModel, Field

from docrepair.config.settings import Settings, get_settings
from docrepair.llm.provider import CorrectorResponse
from docrepair.queue.memory import InMemoryQueue
from docrepair.state import CorrectionJob, Document, ValidationIssue
from docrepair.store.memory import InMemoryDocumentStore
from docrepair.validation.schema_validator import SchemaValidator


# =============================================================================
# Test Doubles
# =============================================================================


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedCorrector:
    """Corrector double that replays a fixed list of responses."""

    def __init__(self, responses: list[CorrectorResponse]):
        self.responses = list(responses)
        self.budgets: list[int] = []
        self.documents: list[Document] = []

    async def correct(
        self,
        document: Document,
        errors: list[ValidationIssue],
        token_budget: int,
    ) -> CorrectorResponse:
        self.budgets.append(token_budget)
        self.documents.append(document)
        if not self.responses:
            raise AssertionError("ScriptedCorrector ran out of responses")
        return self.responses.pop(0)

    @property
    def call_count(self) -> int:
        return len(self.budgets)


class Question(BaseModel):
    """Document schema used across tests."""

    title: str = Field(..., min_length=1)
    difficulty: Literal["Easy", "Medium", "Hard"]
    tags: list[str] = Field(..., min_length=1)


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Provide test settings with in-memory backends."""
    with patch.dict(
        "os.environ",
        {
            "QUEUE_BACKEND": "memory",
            "STORE_BACKEND": "memory",
            "LLM_PROVIDER": "openai",
            "LLM_OPENAI_API_KEY": "test-api-key",
        },
    ):
        # Clear cache and get fresh settings
        get_settings.cache_clear()
        settings = get_settings()
    get_settings.cache_clear()
    return settings


# =============================================================================
# Mock LLM Fixtures
# =============================================================================


@pytest.fixture
def mock_llm() -> MagicMock:
    """Create a mock chat model whose bound calls return a configurable AIMessage."""
    llm = MagicMock(spec=BaseChatModel)
    llm.ainvoke = AsyncMock(return_value=AIMessage(content="OK"))
    llm.bind.return_value.ainvoke = AsyncMock(
        return_value=AIMessage(content="{}", response_metadata={"finish_reason": "stop"})
    )
    return llm


# =============================================================================
# Pipeline Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_queue(clock: FakeClock) -> InMemoryQueue:
    return InMemoryQueue(visibility_timeout=300, clock=clock)


@pytest.fixture
def memory_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def validator() -> SchemaValidator:
    return SchemaValidator(Question)


@pytest.fixture
def scripted_corrector() -> Callable[..., ScriptedCorrector]:
    """Factory: scripted_corrector(response, response, ...)."""

    def _make(*responses: CorrectorResponse) -> ScriptedCorrector:
        return ScriptedCorrector(list(responses))

    return _make


@pytest.fixture
def valid_fields() -> dict[str, Any]:
    return {"title": "Two Sum", "difficulty": "Easy", "tags": ["array"]}


@pytest.fixture
def invalid_document() -> Document:
    return Document(
        document_id="q-42",
        fields={"title": "Two Sum", "difficulty": "easy", "tags": []},
    )


@pytest.fixture
def sample_errors() -> list[ValidationIssue]:
    return [
        ValidationIssue(field="difficulty", message="Input should be 'Easy', 'Medium' or 'Hard'"),
        ValidationIssue(field="tags", message="List should have at least 1 item after validation, not 0"),
    ]


@pytest.fixture
def sample_job(invalid_document: Document, sample_errors: list[ValidationIssue]) -> CorrectionJob:
    return CorrectionJob.for_document(invalid_document, sample_errors)


@pytest.fixture
def make_job() -> Callable[[str], CorrectionJob]:
    """Factory for jobs with distinct document ids."""

    def _make(document_id: str) -> CorrectionJob:
        document = Document(document_id=document_id, fields={"title": document_id, "difficulty": "easy", "tags": []})
        return CorrectionJob.for_document(
            document,
            [ValidationIssue(field="difficulty", message="invalid")],
        )

    return _make
