"""
Generative Corrector Provider.

Builds a LangChain chat model for the configured provider and adapts it
to the corrector boundary used by the correction engine:

    correct(document, errors, token_budget) -> Success(raw_text) | Truncated | Failed(detail)

Supported providers: OpenAI, Anthropic, Azure OpenAI, local Ollama.
"""

import functools
import time
from dataclasses import dataclass
from typing import Any, Protocol

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage

from docrepair.config.settings import LLMSettings
from docrepair.errors import ConfigurationError
from docrepair.llm.prompts import CONNECTION_TEST_PROMPT, PromptBuilder, build_correction_messages
from docrepair.state import DEFAULT_ID_FIELD, AttemptOutcome, Document, ValidationIssue

logger = structlog.get_logger(__name__)

# Finish reasons that mean "ran out of output budget", per provider:
# OpenAI/Azure finish_reason, Anthropic stop_reason, Ollama done_reason.
TRUNCATION_REASONS = frozenset({"length", "max_tokens"})


@dataclass(frozen=True)
class CorrectorResponse:
    """Result of one call to the external corrector."""

    outcome: AttemptOutcome
    raw_text: str | None = None
    detail: str | None = None

    @classmethod
    def success(cls, raw_text: str) -> "CorrectorResponse":
        return cls(outcome=AttemptOutcome.SUCCESS, raw_text=raw_text)

    @classmethod
    def truncated(cls, detail: str | None = None) -> "CorrectorResponse":
        return cls(outcome=AttemptOutcome.TRUNCATED, detail=detail)

    @classmethod
    def failed(cls, detail: str) -> "CorrectorResponse":
        return cls(outcome=AttemptOutcome.FAILED, detail=detail)


class Corrector(Protocol):
    """External corrector boundary."""

    async def correct(
        self,
        document: Document,
        errors: list[ValidationIssue],
        token_budget: int,
    ) -> CorrectorResponse: ...


def _api_key(value: Any, provider: str) -> Any:
    if value is None:
        raise ConfigurationError(f"API key for provider {provider!r} is not configured")
    return value


def create_chat_model(settings: LLMSettings) -> BaseChatModel:
    """Create the LangChain chat model for the configured provider."""
    provider = settings.provider

    if provider == "openai":
        from langchain_openai import ChatOpenAI

        return ChatOpenAI(
            model=settings.model,
            temperature=settings.temperature,
            api_key=_api_key(settings.openai_api_key, provider),
            timeout=settings.request_timeout,
            max_retries=0,  # Redelivery is the retry mechanism
        )

    elif provider == "anthropic":
        from langchain_anthropic import ChatAnthropic

        return ChatAnthropic(
            model=settings.model,
            temperature=settings.temperature,
            api_key=_api_key(settings.anthropic_api_key, provider),
            timeout=settings.request_timeout,
            max_retries=0,
        )

    elif provider == "azure":
        from langchain_openai import AzureChatOpenAI

        if not settings.azure_openai_endpoint:
            raise ConfigurationError("LLM_AZURE_OPENAI_ENDPOINT is required for provider 'azure'")

        return AzureChatOpenAI(
            azure_deployment=settings.azure_openai_deployment or settings.model,
            azure_endpoint=settings.azure_openai_endpoint,
            api_version=settings.azure_openai_api_version,
            api_key=_api_key(settings.azure_openai_api_key, provider),
            temperature=settings.temperature,
            timeout=settings.request_timeout,
            max_retries=0,
        )

    elif provider == "local":
        from langchain_ollama import ChatOllama

        return ChatOllama(
            model=settings.model,
            base_url=settings.local_llm_base_url,
            temperature=settings.temperature,
        )

    raise ConfigurationError(f"Unsupported LLM provider: {provider}")


def _budget_kwargs(llm: BaseChatModel, token_budget: int) -> dict[str, Any]:
    # Ollama names the output cap differently
    if type(llm).__name__ == "ChatOllama":
        return {"num_predict": token_budget}
    return {"max_tokens": token_budget}


def _finish_reason(metadata: dict[str, Any]) -> str | None:
    for key in ("finish_reason", "stop_reason", "done_reason"):
        if metadata.get(key):
            return str(metadata[key])
    return None


def _text_content(content: Any) -> str:
    if isinstance(content, str):
        return content
    # Content blocks (Anthropic)
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class ChatModelCorrector:
    """
    Corrector backed by a LangChain chat model.

    Every failure of the call itself (network, auth, refusal, empty answer)
    is reported as ``FAILED``; only a length stop is ``TRUNCATED``.
    """

    def __init__(
        self,
        llm: BaseChatModel,
        prompt_builder: PromptBuilder | None = None,
        id_field: str = DEFAULT_ID_FIELD,
    ):
        self.llm = llm
        self.prompt_builder = prompt_builder or functools.partial(
            build_correction_messages, id_field=id_field
        )

    async def correct(
        self,
        document: Document,
        errors: list[ValidationIssue],
        token_budget: int,
    ) -> CorrectorResponse:
        messages: list[BaseMessage] = self.prompt_builder(document, errors)
        bound = self.llm.bind(**_budget_kwargs(self.llm, token_budget))

        start_time = time.time()
        try:
            response = await bound.ainvoke(messages)
        except Exception as e:
            logger.warning(
                "Corrector call failed",
                token_budget=token_budget,
                error_type=type(e).__name__,
                error=str(e),
            )
            return CorrectorResponse.failed(f"{type(e).__name__}: {e}")

        metadata = getattr(response, "response_metadata", None) or {}
        finish_reason = _finish_reason(metadata)

        logger.debug(
            "Corrector response received",
            token_budget=token_budget,
            finish_reason=finish_reason,
            latency_ms=round((time.time() - start_time) * 1000, 2),
        )

        if finish_reason in TRUNCATION_REASONS:
            return CorrectorResponse.truncated(f"finish_reason={finish_reason}")

        text = _text_content(response.content)
        if not text.strip():
            return CorrectorResponse.failed(f"No content in corrector response. Finish reason: {finish_reason}")

        return CorrectorResponse.success(text)


async def ping(llm: BaseChatModel) -> bool:
    """Connection test: ask the model to answer 'OK'."""
    try:
        response = await llm.ainvoke([HumanMessage(content=CONNECTION_TEST_PROMPT)])
    except Exception as e:
        logger.error("LLM connection test failed", error=str(e))
        return False

    success = "OK" in _text_content(response.content).upper()
    logger.info("LLM connection test", success=success)
    return success
