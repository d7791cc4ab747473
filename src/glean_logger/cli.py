"""CLI entry point for glean-logger.

This module provides the Typer-based CLI with commands:
- glean-logger validate: Validate configuration
- glean-logger send: Log one message and deliver it to the collector
- glean-logger flush-stored: Re-send locally stored entries
- glean-logger logs: Show locally stored entries
- glean-logger clear: Delete locally stored entries
- glean-logger redact: Redact a JSON document
- glean-logger ingest: Feed a batch file through the collector handler

Exit codes:
- 0: Success
- 1: Configuration error
- 2: Delivery failure
- 3: Invalid input
- 4: Fatal error
"""

from __future__ import annotations

import asyncio
import json
import sys
from enum import IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer

from glean_logger import __version__
from glean_logger.collector import handle_ingest
from glean_logger.config import load_settings
from glean_logger.config.loader import ConfigError
from glean_logger.facade import ClientLogger
from glean_logger.logging import configure_logging, get_logger
from glean_logger.redaction import PRESET_NAMES, PolicyError, RedactionPolicyBuilder, redact
from glean_logger.store import LocalLogStore
from glean_logger.transport import ClientTransport, LogEntry, LogLevel

if TYPE_CHECKING:
    from glean_logger.config.schema import Settings


class ExitCode(IntEnum):
    """CLI exit codes."""

    SUCCESS = 0
    CONFIG_ERROR = 1
    DELIVERY_FAILURE = 2
    INVALID_INPUT = 3
    FATAL_ERROR = 4


app = typer.Typer(
    name="glean-logger",
    help="glean-logger - redacted, batched log delivery to a collector.",
    add_completion=False,
    no_args_is_help=True,
)

ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Path to configuration file.",
    ),
]

VerboseOption = Annotated[
    bool,
    typer.Option(
        "--verbose",
        "-v",
        help="Enable debug logging.",
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"glean-logger {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """glean-logger - redacted, batched log delivery to a collector."""


def _fail(message: str, code: ExitCode) -> typer.Exit:
    typer.echo(typer.style(f"✗ {message}", fg=typer.colors.RED), err=True)
    return typer.Exit(code)


def _load(config: Path | None, *, required: bool = False) -> Settings:
    try:
        return load_settings(config, required=required)
    except ConfigError as e:
        raise _fail(str(e), ExitCode.CONFIG_ERROR) from e


def _open_store(settings: Settings) -> LocalLogStore | None:
    path = settings.storage.get_path()
    if not path.exists():
        typer.echo(typer.style(f"No log store found at {path}", fg=typer.colors.YELLOW))
        return None
    return LocalLogStore(path, settings.storage.max_entries)


def _parse_json(text: str, what: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as e:
        raise _fail(f"Invalid JSON in {what}: {e}", ExitCode.INVALID_INPUT) from e


@app.command()
def validate(
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Validate configuration without sending anything.

    Loads the configuration file, expands environment variables, and
    validates against the schema. Exits with code 0 if valid, or code 1
    if there are errors.
    """
    configure_logging(verbose=verbose, json_output=False)

    settings = _load(config, required=True)
    try:
        settings.redaction.build_policy()
    except PolicyError as e:
        raise _fail(f"Invalid redaction settings: {e}", ExitCode.CONFIG_ERROR) from e

    typer.echo(typer.style("✓ Configuration is valid", fg=typer.colors.GREEN))

    if verbose:
        transport = settings.transport
        typer.echo("\nConfiguration summary:")
        typer.echo(f"  Endpoint: {transport.base_url}{transport.endpoint}")
        typer.echo(f"  Batching: {transport.batching.mode.value}")
        if transport.retry.enabled:
            typer.echo(f"  Retries: {transport.retry.max_retries}")
        else:
            typer.echo("  Retries: disabled")
        typer.echo(f"  Redaction preset: {settings.redaction.preset}")
        if settings.storage.enabled:
            typer.echo(f"  Local store: {settings.storage.get_path()}")

    raise typer.Exit(ExitCode.SUCCESS)


@app.command()
def send(
    message: Annotated[str, typer.Argument(help="Message to log.")],
    level: Annotated[
        LogLevel,
        typer.Option(
            "--level",
            "-l",
            help="Severity of the entry.",
        ),
    ] = LogLevel.INFO,
    context: Annotated[
        str | None,
        typer.Option(
            "--context",
            help="Structured context as a JSON object.",
        ),
    ] = None,
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Log one message and deliver it to the collector.

    The context is redacted with the configured policy before it is
    printed, stored or sent.
    """
    configure_logging(verbose=verbose)
    settings = _load(config)

    fields = _parse_json(context, "--context") if context else None
    if fields is not None and not isinstance(fields, dict):
        raise _fail("--context must be a JSON object", ExitCode.INVALID_INPUT)

    async def _send() -> ClientTransport:
        transport = ClientTransport(settings.transport.model_copy(update={"flush_on_exit": False}))
        client_logger = ClientLogger.from_settings(settings, transport)
        client_logger.log(level, message, fields)
        await client_logger.aclose()
        return transport

    transport = asyncio.run(_send())
    if transport.stats.dropped_batches:
        raise _fail(f"Delivery to {transport.endpoint} failed", ExitCode.DELIVERY_FAILURE)

    typer.echo(typer.style(f"✓ Sent to {transport.endpoint}", fg=typer.colors.GREEN))
    raise typer.Exit(ExitCode.SUCCESS)


@app.command("flush-stored")
def flush_stored(
    clear: Annotated[
        bool,
        typer.Option(
            "--clear",
            help="Delete stored entries once they are delivered.",
        ),
    ] = False,
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Send every locally stored entry to the collector in one batch."""
    configure_logging(verbose=verbose)
    log = get_logger("glean_logger.cli")
    settings = _load(config)

    store = _open_store(settings)
    if store is None:
        raise typer.Exit(ExitCode.SUCCESS)

    try:
        entries = store.read_all()
        if not entries:
            typer.echo("No stored log entries.")
            raise typer.Exit(ExitCode.SUCCESS)

        async def _flush() -> ClientTransport:
            transport = ClientTransport(settings.transport.model_copy(update={"flush_on_exit": False}))
            for entry in entries:
                transport.enqueue(entry)
            await transport.flush()
            await transport.destroy()
            return transport

        transport = asyncio.run(_flush())
        if transport.stats.dropped_entries:
            raise _fail(
                f"{transport.stats.dropped_entries} entries could not be delivered",
                ExitCode.DELIVERY_FAILURE,
            )

        log.info("Stored entries delivered", count=len(entries), endpoint=transport.endpoint)
        typer.echo(typer.style(f"✓ Delivered {len(entries)} entries", fg=typer.colors.GREEN))
        if clear:
            store.clear()
    finally:
        store.close()

    raise typer.Exit(ExitCode.SUCCESS)


@app.command()
def logs(
    limit: Annotated[
        int,
        typer.Option(
            "--limit",
            "-n",
            help="Maximum entries to show (most recent).",
        ),
    ] = 50,
    level: Annotated[
        LogLevel | None,
        typer.Option(
            "--level",
            "-l",
            help="Only show entries at or above this level.",
        ),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Print entries as JSON lines.",
        ),
    ] = False,
    config: ConfigOption = None,
) -> None:
    """Show locally stored log entries, oldest first."""
    settings = _load(config)
    store = _open_store(settings)
    if store is None:
        raise typer.Exit(ExitCode.SUCCESS)

    try:
        entries = store.read_all()
        evicted = store.evicted_count()
    finally:
        store.close()

    if level is not None:
        entries = [entry for entry in entries if entry.level.at_least(level)]
    entries = entries[-limit:] if limit > 0 else entries

    if not entries:
        typer.echo("No stored log entries.")
        raise typer.Exit(ExitCode.SUCCESS)

    if as_json:
        for entry in entries:
            typer.echo(json.dumps(entry.to_wire()))
        raise typer.Exit(ExitCode.SUCCESS)

    header = f"Stored logs ({len(entries)} entries"
    if evicted:
        header += f", {evicted} older evicted"
    typer.echo(typer.style(header + ")", bold=True))
    typer.echo("─" * 60)
    for entry in entries:
        _echo_entry(entry)

    raise typer.Exit(ExitCode.SUCCESS)


def _echo_entry(entry: LogEntry) -> None:
    color = {
        LogLevel.WARN: typer.colors.YELLOW,
        LogLevel.ERROR: typer.colors.RED,
        LogLevel.FATAL: typer.colors.RED,
    }.get(entry.level)
    stamp = entry.created_at.isoformat(timespec="milliseconds")
    header = f"[{stamp}] {entry.level.value.upper():5} ({entry.source.value})"
    typer.echo(f"{typer.style(header, fg=color, bold=True)} {entry.message}")
    if entry.context:
        typer.echo(f"  {json.dumps(entry.context)}")


@app.command()
def clear(
    config: ConfigOption = None,
) -> None:
    """Delete all locally stored log entries."""
    settings = _load(config)
    store = _open_store(settings)
    if store is None:
        raise typer.Exit(ExitCode.SUCCESS)

    try:
        removed = store.clear()
    finally:
        store.close()

    typer.echo(f"Removed {removed} stored log entries.")
    raise typer.Exit(ExitCode.SUCCESS)


@app.command("redact")
def redact_command(
    path: Annotated[
        Path | None,
        typer.Argument(help="JSON file to redact (default: stdin)."),
    ] = None,
    preset: Annotated[
        str | None,
        typer.Option(
            "--preset",
            "-p",
            help=f"Policy preset ({', '.join(PRESET_NAMES)}); default from config.",
        ),
    ] = None,
    config: ConfigOption = None,
) -> None:
    """Print a JSON document with sensitive data redacted."""
    try:
        if preset is not None:
            policy = RedactionPolicyBuilder.preset(preset).build()
        else:
            policy = _load(config).redaction.build_policy()
    except PolicyError as e:
        raise _fail(str(e), ExitCode.CONFIG_ERROR) from e

    if path is None:
        text, source = sys.stdin.read(), "stdin"
    else:
        try:
            text, source = path.read_text(encoding="utf-8"), str(path)
        except OSError as e:
            raise _fail(f"Cannot read {path}: {e}", ExitCode.INVALID_INPUT) from e

    document = _parse_json(text, source)
    typer.echo(json.dumps(redact(document, policy), indent=2, default=str))
    raise typer.Exit(ExitCode.SUCCESS)


@app.command()
def ingest(
    path: Annotated[Path, typer.Argument(help="JSON file holding a {\"logs\": [...]} batch.")],
    log_dir: Annotated[
        Path | None,
        typer.Option(
            "--log-dir",
            help="Directory for daily log files (default: config, $LOG_DIR, ./_logs).",
        ),
    ] = None,
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Validate a batch file and append it to the collector's daily log."""
    configure_logging(verbose=verbose)
    settings = _load(config)

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise _fail(f"Cannot read {path}: {e}", ExitCode.INVALID_INPUT) from e

    payload = _parse_json(text, str(path))
    status, body = handle_ingest(payload, log_dir or settings.collector.log_dir)

    if status == 400:
        raise _fail(body["error"], ExitCode.INVALID_INPUT)
    if status != 200:
        raise _fail(body["error"], ExitCode.FATAL_ERROR)

    typer.echo(typer.style(f"✓ Ingested {body['count']} entries", fg=typer.colors.GREEN))
    raise typer.Exit(ExitCode.SUCCESS)
