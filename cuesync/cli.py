"""Cuesync CLI entry point.

Provides command-line access to capsule extraction, immediate sync,
analytics and platform configuration. ``--trace`` prints OpenTelemetry spans
to the console and ``sync --metrics`` prints the Prometheus exposition.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Coroutine, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

import typer
from typing_extensions import Annotated

from cuesync import __version__
from cuesync.config import CuesyncConfig, get_config
from cuesync.engine import CuesyncEngine
from cuesync.errors import CuesyncError
from cuesync.models.capsule import ConversationTurn
from cuesync.models.sync import SyncResult, TimeRange
from cuesync.observability import prometheus_metrics, tracing

logger = logging.getLogger(__name__)

T = TypeVar("T")

app = typer.Typer(
    name="cuesync",
    help="Cuesync - context extraction and cross-platform sync engine",
    add_completion=False,
)

ConfigOption = Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose output")]
UserMessage = Annotated[str, typer.Argument(help="User message of the turn")]
AssistantOption = Annotated[
    str, typer.Option("--assistant", "-a", help="Assistant reply of the turn")
]
SourceOption = Annotated[
    str, typer.Option("--source", "-s", help="Platform the turn came from")
]
UserIdOption = Annotated[str, typer.Option("--user-id", help="Owning user id")]
TraceOption = Annotated[
    bool, typer.Option("--trace", help="Print OpenTelemetry spans to the console")
]


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def load_config(config_path: str) -> CuesyncConfig:
    return get_config(config_path or None)


def create_engine(config: CuesyncConfig) -> CuesyncEngine:
    """Engine used by the commands."""
    return CuesyncEngine.from_config(config)


@contextmanager
def _telemetry(enabled: bool, config: CuesyncConfig) -> Iterator[None]:
    if not enabled:
        yield
        return
    tracing.setup_telemetry(
        service_name="cuesync-cli",
        environment=config.environment,
        enable_console_export=True,
    )
    try:
        yield
    finally:
        tracing.shutdown_telemetry()


def _run(coro: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coro)
    except CuesyncError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1) from e


def _format_result(result: SyncResult) -> str:
    if result.success:
        return f"✅ {result.target_platform}: score {result.context_preservation_score}"
    error = result.error
    reason = f"{error.kind.value}: {error.message}" if error else "unknown error"
    return f"❌ {result.target_platform}: {reason}"


@app.command()
def extract(
    message: UserMessage,
    assistant: AssistantOption = "",
    source: SourceOption = "chatgpt",
    user_id: UserIdOption = "cli",
    config: ConfigOption = "",
    verbose: VerboseOption = False,
    trace: TraceOption = False,
) -> None:
    """Extract a context capsule from one turn and print it as JSON."""
    _configure_logging(verbose)
    turn = ConversationTurn(
        user_message=message,
        assistant_message=assistant,
        source_platform=source,
        user_id=user_id,
    )
    cfg = load_config(config)
    engine = create_engine(cfg)

    async def _extract() -> str:
        async with engine:
            capsule = await engine.extract_capsule(turn)
            return capsule.model_dump_json(indent=2)

    with _telemetry(trace, cfg):
        typer.echo(_run(_extract()))


@app.command()
def sync(
    message: UserMessage,
    assistant: AssistantOption = "",
    source: SourceOption = "chatgpt",
    user_id: UserIdOption = "cli",
    config: ConfigOption = "",
    verbose: VerboseOption = False,
    trace: TraceOption = False,
    show_metrics: Annotated[
        bool, typer.Option("--metrics", help="Print Prometheus metrics after the sync")
    ] = False,
) -> None:
    """Extract a capsule from one turn and deliver it to every other platform."""
    _configure_logging(verbose)
    turn = ConversationTurn(
        user_message=message,
        assistant_message=assistant,
        source_platform=source,
        user_id=user_id,
    )
    cfg = load_config(config)
    engine = create_engine(cfg)

    async def _sync() -> tuple[str, str, list[SyncResult]]:
        async with engine:
            capsule = await engine.extract_capsule(turn)
            results = await engine.sync_now(capsule)
            return capsule.id, capsule.sync_status.value, results

    with _telemetry(trace, cfg):
        capsule_id, status, results = _run(_sync())
    typer.echo(f"Capsule {capsule_id}: {status}")
    for result in results:
        typer.echo(f"  {_format_result(result)}")
    if show_metrics:
        typer.echo("")
        typer.echo(prometheus_metrics.generate_metrics().decode("utf-8"))
    if status == "failed":
        raise typer.Exit(code=2)


@app.command()
def analytics(
    time_range: Annotated[
        TimeRange, typer.Option("--range", "-r", help="Analytics window")
    ] = TimeRange.DAY,
    config: ConfigOption = "",
    verbose: VerboseOption = False,
    trace: TraceOption = False,
) -> None:
    """Print sync statistics for a time window as JSON."""
    _configure_logging(verbose)
    cfg = load_config(config)
    engine = create_engine(cfg)

    async def _summarize() -> str:
        async with engine:
            stats = await engine.get_analytics(time_range)
            return stats.model_dump_json(indent=2)

    with _telemetry(trace, cfg):
        typer.echo(_run(_summarize()))


@app.command()
def platforms(config: ConfigOption = "") -> None:
    """List configured target platforms."""
    cfg = load_config(config)
    typer.echo("Configured platforms:")
    typer.echo("")
    for name, platform in cfg.platforms.items():
        caps = platform.capabilities
        typer.echo(f"  {name}: {platform.display_name}")
        typer.echo(f"    Model: {platform.model} ({platform.api_style} API)")
        typer.echo(f"    API key variable: {platform.api_key_env or '-'}")
        typer.echo(f"    Max context: {caps.max_context_length} tokens")
        typer.echo(f"    Rate limit: {caps.requests_per_minute} requests/min")
        flags = [
            label
            for label, enabled in (
                ("code", caps.supports_code_generation),
                ("multimodal", caps.supports_multimodal),
                ("creative", caps.supports_creative_formatting),
            )
            if enabled
        ]
        typer.echo(f"    Capabilities: {', '.join(flags) or 'none'}")
        typer.echo("")


@app.command()
def version() -> None:
    """Show cuesync version information."""
    typer.echo(f"Cuesync version: {__version__}")


@app.command()
def info(config: ConfigOption = "") -> None:
    """Show cuesync configuration summary."""
    cfg = load_config(config)
    typer.echo("Cuesync - context extraction and cross-platform sync engine")
    typer.echo("")
    typer.echo(f"Environment: {cfg.environment}")
    typer.echo(f"Platforms: {', '.join(cfg.platforms) or 'none'}")
    typer.echo(f"Analysis platform: {cfg.extraction.analysis_platform or 'heuristics only'}")
    typer.echo(f"Store: {cfg.store.path}")
    typer.echo(
        f"Queue: batches of {cfg.queue.batch_size}, "
        f"{cfg.queue.inter_batch_delay_seconds}s apart"
    )
    typer.echo(f"Metrics: {'enabled' if cfg.metrics_enabled else 'disabled'}")
    typer.echo("")
    typer.echo(json.dumps(cfg.scoring.model_dump(), indent=2))


def main() -> None:
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
