"""
Component Wiring.

Builds pipeline components from Settings. Nothing here is cached; the
CLI builds each component once per process.
"""

from docrepair.config.settings import QueueSettings, Settings
from docrepair.correction.engine import CorrectionEngine
from docrepair.errors import ConfigurationError
from docrepair.llm.provider import ChatModelCorrector, create_chat_model
from docrepair.observability.metrics import ConsumerMetrics
from docrepair.pipeline import CorrectionPipeline
from docrepair.queue.base import QueuePort
from docrepair.queue.consumer import QueueConsumer
from docrepair.queue.memory import InMemoryQueue
from docrepair.queue.sqs import SQSQueue
from docrepair.reliability.backoff import BackoffPolicy
from docrepair.reliability.dead_letter_queue import (
    DeadLetterSink,
    FileDeadLetterSink,
    InMemoryDeadLetterSink,
)
from docrepair.store.base import DocumentStore
from docrepair.store.memory import InMemoryDocumentStore
from docrepair.store.neo4j_store import Neo4jDocumentStore
from docrepair.validation.normalizer import RecordTransformer
from docrepair.validation.schema_validator import SchemaValidator


def build_queue(settings: QueueSettings) -> QueuePort:
    if settings.backend == "memory":
        return InMemoryQueue(visibility_timeout=settings.visibility_timeout)
    return SQSQueue.from_settings(settings)


def build_store(settings: Settings) -> DocumentStore:
    if settings.store.backend == "memory":
        return InMemoryDocumentStore()
    return Neo4jDocumentStore(settings.store)


def build_validator(settings: Settings) -> SchemaValidator:
    if not settings.validation.schema_model:
        raise ConfigurationError("VALIDATION_SCHEMA_MODEL must name a pydantic model as 'module:Class'")
    return SchemaValidator.from_path(settings.validation.schema_model)


def build_transformer(settings: Settings) -> RecordTransformer:
    return RecordTransformer(
        id_field=settings.store.id_field,
        fallback_id_fields=settings.validation.fallback_id_fields,
    )


def build_engine(settings: Settings) -> CorrectionEngine:
    corrector = ChatModelCorrector(
        create_chat_model(settings.llm),
        id_field=settings.store.id_field,
    )
    return CorrectionEngine(
        corrector,
        ladder=settings.llm.token_ladder,
        id_field=settings.store.id_field,
    )


def build_pipeline(
    settings: Settings,
    queue: QueuePort,
    store: DocumentStore,
    with_engine: bool = True,
) -> CorrectionPipeline:
    return CorrectionPipeline(
        queue=queue,
        engine=build_engine(settings) if with_engine else None,
        validator=build_validator(settings),
        store=store,
    )


def build_dead_letter_sink(settings: Settings) -> DeadLetterSink:
    if settings.observability.dead_letter_dir:
        return FileDeadLetterSink(settings.observability.dead_letter_dir)
    return InMemoryDeadLetterSink()


def build_consumer(
    settings: Settings,
    queue: QueuePort,
    pipeline: CorrectionPipeline,
    dead_letters: DeadLetterSink | None = None,
) -> QueueConsumer:
    queue_settings = settings.queue
    return QueueConsumer(
        queue,
        pipeline.handlers,
        max_attempts=queue_settings.max_attempts,
        backoff=BackoffPolicy.from_settings(queue_settings),
        visibility_ceiling=queue_settings.visibility_timeout,
        batch_size=min(queue_settings.max_messages, queue_settings.concurrency),
        wait_time=queue_settings.wait_time_seconds,
        dead_letters=dead_letters or build_dead_letter_sink(settings),
        metrics=ConsumerMetrics(),
        poll_error_pause=queue_settings.poll_error_pause_seconds,
    )
