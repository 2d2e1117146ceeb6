from __future__ import annotations

import logging
import sys
import time
from importlib import resources
from pathlib import Path

import typer
from rich.console import Console

from . import __version__
from .table.coordinator import DEFAULT_PERIOD_S
from .table.registry import Registry
from .transport.base import ProtocolClient, TransportError
from .transport.dummy import DummyClient, load_fixture_properties
from .transport.indi_tcp import IndiTcpClient, IndiTcpConfig
from .ui.app import TableApp
from .ui.keys import KeyReader, raw_terminal
from .ui.renderer import RichTableRenderer
from .ui.summary import render_snapshot

app = typer.Typer(
    add_completion=False,
    invoke_without_command=True,
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)

_DRY_RUN_ENDPOINT = "dry-run fixture"


def _load_default_fixture_text() -> tuple[str | None, str | None]:
    """Load the bundled demo fixture JSON text."""

    try:
        resource = resources.files("indi_table_explorer.fixtures").joinpath("demo_devices.json")
        return (resource.read_text(encoding="utf-8"), "packaged:demo_devices.json")
    except (FileNotFoundError, ModuleNotFoundError):
        fallback = Path(__file__).resolve().parent / "fixtures" / "demo_devices.json"
        if fallback.exists():
            return (fallback.read_text(encoding="utf-8"), str(fallback))
        return (None, None)


def _configure_logging(log_file: Path | None) -> None:
    root = logging.getLogger()
    if log_file is None:
        # Keep log records off the live screen.
        root.addHandler(logging.NullHandler())
        return
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=str(log_file),
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
    )


def _make_client(
    *,
    host: str,
    port: int,
    dry_run: bool,
    fixture: Path | None,
    trace_file: Path | None,
) -> tuple[ProtocolClient, str]:
    if fixture is not None:
        if not fixture.exists():
            typer.echo(f"Fixture not found: {fixture}", err=True)
            raise typer.Exit(2)
        try:
            return (DummyClient(fixture), _DRY_RUN_ENDPOINT)
        except ValueError as exc:
            typer.echo(f"Invalid fixture: {fixture} ({exc})", err=True)
            raise typer.Exit(2) from exc
    if dry_run:
        text, source = _load_default_fixture_text()
        if text is None:
            typer.echo("Default dry-run fixture is unavailable; pass --fixture.", err=True)
            raise typer.Exit(2)
        try:
            props = load_fixture_properties(text)
        except ValueError as exc:
            typer.echo(f"Invalid fixture: {source} ({exc})", err=True)
            raise typer.Exit(2) from exc
        return (DummyClient(properties=props), _DRY_RUN_ENDPOINT)
    try:
        config = IndiTcpConfig(host=host, port=port, trace_path=trace_file)
        client = IndiTcpClient(config)
    except ValueError as exc:
        typer.echo(f"Invalid connection settings: {exc}", err=True)
        raise typer.Exit(2) from exc
    return (client, client.endpoint)


def _can_launch_interactive(console: Console) -> bool:
    return (
        console.is_terminal
        and sys.stdin.isatty()
        and sys.stdout.isatty()
        and sys.platform != "win32"
    )


def _collect_snapshot(client: ProtocolClient, *, wait_s: float) -> Registry:
    registry = Registry(client)
    try:
        client.start(registry)
    except TransportError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc
    try:
        deadline = time.monotonic() + wait_s
        while time.monotonic() < deadline and not client.quit_requested:
            time.sleep(0.05)
    finally:
        client.close()
    return registry


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        help="Print version and exit.",
        is_eager=True,
    ),
) -> None:
    if version:
        typer.echo(f"indi-table-explorer {__version__}")
        raise typer.Exit(0)


@app.command()
def watch(
    host: str = typer.Option(  # noqa: B008
        "127.0.0.1",
        "--host",
        envvar="INDI_TABLE_EXPLORER_HOST",
        help="INDI server host (TCP).",
    ),
    port: int = typer.Option(  # noqa: B008
        7624,
        "--port",
        envvar="INDI_TABLE_EXPLORER_PORT",
        help="INDI server port (TCP).",
    ),
    refresh: float = typer.Option(  # noqa: B008
        DEFAULT_PERIOD_S,
        "--refresh",
        help="Table refresh period in seconds.",
    ),
    dry_run: bool = typer.Option(  # noqa: B008
        False,
        "--dry-run",
        help="Show the bundled demo devices instead of connecting to a server.",
    ),
    fixture: Path | None = typer.Option(  # noqa: B008
        None,
        "--fixture",
        help="Replay properties from a JSON fixture instead of connecting to a server.",
    ),
    log_file: Path | None = typer.Option(  # noqa: B008
        None,
        "--log-file",
        help="Write debug logging to this file.",
    ),
    trace_file: Path | None = typer.Option(  # noqa: B008
        None,
        "--trace-file",
        envvar="INDI_TABLE_EXPLORER_TRACE_PATH",
        help="Write an INDI message trace to this file.",
    ),
) -> None:
    """Show a live, editable table of every INDI property element."""

    if refresh <= 0:
        typer.echo(f"Invalid --refresh {refresh!r}: must be > 0", err=True)
        raise typer.Exit(2)
    _configure_logging(log_file)
    client, endpoint = _make_client(
        host=host,
        port=port,
        dry_run=dry_run,
        fixture=fixture,
        trace_file=trace_file,
    )

    console = Console()
    if not _can_launch_interactive(console):
        typer.echo("Live table requires a TTY terminal; printing a snapshot instead.", err=True)
        registry = _collect_snapshot(client, wait_s=1.0)
        render_snapshot(console, registry, endpoint=endpoint)
        raise typer.Exit(0)

    renderer = RichTableRenderer(console, title=f"indi-table-explorer @ {endpoint}")
    table_app = TableApp(client, renderer, KeyReader(), period_s=refresh)
    try:
        table_app.connect()
    except TransportError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc

    started = False
    try:
        with renderer, raw_terminal():
            started = table_app.start_rendering()
            if started:
                table_app.run()
            else:
                table_app.shut_down()
    except KeyboardInterrupt:
        table_app.shut_down()

    if not started:
        typer.echo("Could not start the table render thread.", err=True)
        raise typer.Exit(1)
    if table_app.coordinator.failed:
        typer.echo("Table render loop failed; rerun with --log-file for details.", err=True)
        raise typer.Exit(1)
    if table_app.flags.connection_lost:
        typer.echo(f"Connection lost ({endpoint}).", err=True)
        raise typer.Exit(1)


@app.command()
def snapshot(
    host: str = typer.Option(  # noqa: B008
        "127.0.0.1",
        "--host",
        envvar="INDI_TABLE_EXPLORER_HOST",
        help="INDI server host (TCP).",
    ),
    port: int = typer.Option(  # noqa: B008
        7624,
        "--port",
        envvar="INDI_TABLE_EXPLORER_PORT",
        help="INDI server port (TCP).",
    ),
    wait: float = typer.Option(  # noqa: B008
        2.0,
        "--wait",
        help="Seconds to collect property definitions before printing.",
    ),
    dry_run: bool = typer.Option(  # noqa: B008
        False,
        "--dry-run",
        help="Use the bundled demo devices instead of connecting to a server.",
    ),
    fixture: Path | None = typer.Option(  # noqa: B008
        None,
        "--fixture",
        help="Replay properties from a JSON fixture instead of connecting to a server.",
    ),
    log_file: Path | None = typer.Option(  # noqa: B008
        None,
        "--log-file",
        help="Write debug logging to this file.",
    ),
    trace_file: Path | None = typer.Option(  # noqa: B008
        None,
        "--trace-file",
        envvar="INDI_TABLE_EXPLORER_TRACE_PATH",
        help="Write an INDI message trace to this file.",
    ),
) -> None:
    """Print every known property element once and exit."""

    if wait < 0:
        typer.echo(f"Invalid --wait {wait!r}: must be >= 0", err=True)
        raise typer.Exit(2)
    _configure_logging(log_file)
    client, endpoint = _make_client(
        host=host,
        port=port,
        dry_run=dry_run,
        fixture=fixture,
        trace_file=trace_file,
    )
    registry = _collect_snapshot(client, wait_s=wait)
    render_snapshot(Console(), registry, endpoint=endpoint)
