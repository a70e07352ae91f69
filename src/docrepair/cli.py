"""`docrepair` command line interface."""

import asyncio
import json
import signal
from pathlib import Path
from typing import Any

import structlog
import typer
from pydantic import ValidationError

from docrepair import factory
from docrepair.config.settings import Settings, get_settings
from docrepair.errors import DocRepairError
from docrepair.ingest import DocumentImporter, load_records
from docrepair.llm.provider import create_chat_model, ping
from docrepair.observability.logging import configure_logging

logger = structlog.get_logger(__name__)

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Validate documents and repair invalid ones through a queue-backed corrector.",
)


def _load_settings() -> Settings:
    try:
        settings = get_settings()
    except ValidationError as e:
        typer.echo(f"error: invalid configuration:\n{e}", err=True)
        raise typer.Exit(code=2)

    configure_logging(level=settings.log_level, format=settings.observability.log_format)
    return settings


def _run(coro: Any) -> Any:
    try:
        return asyncio.run(coro)
    except DocRepairError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))


async def _worker(settings: Settings) -> None:
    queue = factory.build_queue(settings.queue)
    store = factory.build_store(settings)
    pipeline = factory.build_pipeline(settings, queue, store)
    consumer = factory.build_consumer(settings, queue, pipeline)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, consumer.stop)
        except NotImplementedError:
            # Signal handlers are unavailable on some platforms; Ctrl+C still cancels
            pass

    try:
        await consumer.run()
    finally:
        await queue.close()
        await store.close()


@app.command(help="Run the queue consumer until SIGINT/SIGTERM.")
def worker() -> None:
    settings = _load_settings()
    _run(_worker(settings))


async def _import(
    settings: Settings,
    path: Path,
    replace: bool,
    batch_size: int,
    enqueue_invalid: bool,
) -> dict[str, Any]:
    store = factory.build_store(settings)
    queue = factory.build_queue(settings.queue) if enqueue_invalid else None
    validator = factory.build_validator(settings)
    pipeline = (
        factory.build_pipeline(settings, queue, store, with_engine=False) if queue is not None else None
    )

    importer = DocumentImporter(
        store,
        validator,
        transformer=factory.build_transformer(settings),
        pipeline=pipeline,
    )
    try:
        report = await importer.run(
            path,
            replace=replace,
            batch_size=batch_size,
            enqueue_invalid=enqueue_invalid,
        )
    finally:
        await store.close()
        if queue is not None:
            await queue.close()
    return report.to_dict()


@app.command(name="import", help="Import a JSON array of documents into the store.")
def import_(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file with an array of records."),
    replace: bool = typer.Option(True, "--replace/--append", help="Delete existing documents first."),
    batch_size: int = typer.Option(100, min=1, help="Documents per insert batch."),
    enqueue_invalid: bool = typer.Option(False, help="Enqueue correction jobs for invalid documents."),
) -> None:
    settings = _load_settings()
    _echo_json(_run(_import(settings, path, replace, batch_size, enqueue_invalid)))


@app.command(help="Transform and validate a JSON file without writing anything.")
def diagnose(
    path: Path = typer.Argument(..., exists=True, dir_okay=False),
    show_failures: int = typer.Option(3, min=0, help="Failures to print in detail."),
) -> None:
    settings = _load_settings()
    try:
        importer = DocumentImporter(
            factory.build_store(settings),
            factory.build_validator(settings),
            transformer=factory.build_transformer(settings),
        )
        report = importer.diagnose(path, show_failures=show_failures)
    except DocRepairError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"Total records: {report.total}")
    typer.echo(f"Valid: {report.valid}")
    typer.echo(f"Invalid: {report.invalid}")
    typer.echo(f"Transform failures: {report.transform_failures}")
    for failure in report.first_failures:
        typer.echo(f"\n=== Document {failure['document_id']} FAILED ===")
        for error in failure["errors"]:
            typer.echo(f"  - {error}")
    typer.echo("\nError frequency:")
    for error, count in report.error_frequency:
        typer.echo(f"  {count}x - {error}")


async def _stats(settings: Settings) -> dict[str, int]:
    queue = factory.build_queue(settings.queue)
    try:
        return (await queue.stats()).to_dict()
    finally:
        await queue.close()


@app.command(help="Show approximate queue depth.")
def stats() -> None:
    settings = _load_settings()
    _echo_json(_run(_stats(settings)))


@app.command(name="check-llm", help="Ask the configured model to answer 'OK'.")
def check_llm() -> None:
    settings = _load_settings()
    try:
        llm = create_chat_model(settings.llm)
    except DocRepairError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)

    if not asyncio.run(ping(llm)):
        typer.echo("LLM connection test failed", err=True)
        raise typer.Exit(code=1)
    typer.echo("LLM connection OK")


async def _enqueue(settings: Settings, path: Path) -> dict[str, int]:
    queue = factory.build_queue(settings.queue)
    store = factory.build_store(settings)
    pipeline = factory.build_pipeline(settings, queue, store, with_engine=False)
    transformer = factory.build_transformer(settings)

    documents, failed = transformer.transform_all(load_records(path))
    enqueued = 0
    try:
        for document in documents:
            if await pipeline.submit(document, persist_valid=False) is not None:
                enqueued += 1
    finally:
        await queue.close()
        await store.close()

    return {
        "documents": len(documents),
        "transform_failures": len(failed),
        "enqueued": enqueued,
    }


@app.command(help="Validate documents and enqueue the invalid ones; the store is not touched.")
def enqueue(path: Path = typer.Argument(..., exists=True, dir_okay=False)) -> None:
    settings = _load_settings()
    _echo_json(_run(_enqueue(settings, path)))


if __name__ == "__main__":
    app()
