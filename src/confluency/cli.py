"""Confluency client core CLI.

Commands:
  status              - Show the persisted user data initialization status
  reset-status        - Clear the persisted initialization status
  config              - Show the effective configuration
  check-connectivity  - Probe the network the way the client does
"""

import asyncio
from datetime import UTC, datetime
import sys

from rich.console import Console
from rich.table import Table
import typer

from confluency.core.config import Settings, get_settings
from confluency.core.logging_config import setup_logging
from confluency.models.initialization import InitializationStatus
from confluency.services.connectivity import HttpConnectivityMonitor
from confluency.services.status_store import PersistentStatusStore
from confluency.storage import create_key_value_store

app = typer.Typer(
    name="confluency",
    help="Inspect and manage the Confluency client core state",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)

console = Console()

STATUS_STYLES = {
    InitializationStatus.SUCCESS: "green",
    InitializationStatus.IN_PROGRESS: "cyan",
    InitializationStatus.FAILED: "red",
    InitializationStatus.REQUIRES_RETRY: "yellow",
    InitializationStatus.UNKNOWN: "dim",
}


def _status_store(settings: Settings) -> PersistentStatusStore:
    return PersistentStatusStore(create_key_value_store(settings), key=settings.init_status_key)


def _mask(value: str) -> str:
    if not value:
        return "Not set"
    if len(value) <= 8:
        return "***"
    return f"{value[:4]}...{value[-4:]}"


@app.command()
def status() -> None:
    """Show the persisted initialization status."""
    settings = get_settings()
    record = asyncio.run(_status_store(settings).load())

    if record is None:
        console.print("No persisted initialization status", style="yellow")
        return

    recorded_at = datetime.fromtimestamp(record.timestamp / 1000, tz=UTC)
    table = Table(title="User Data Initialization")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Status", f"[{STATUS_STYLES[record.status]}]{record.status.value}[/]")
    table.add_row("Error", record.error or "-")
    table.add_row("Recorded at", recorded_at.isoformat())
    table.add_row("Sequence", str(record.sequence))
    console.print(table)


@app.command("reset-status")
def reset_status(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Clear the persisted initialization status."""
    if not yes:
        typer.confirm("Clear the persisted initialization status?", abort=True)
    settings = get_settings()
    asyncio.run(_status_store(settings).clear())
    console.print("Initialization status cleared", style="green")


@app.command()
def config() -> None:
    """Show the effective configuration."""
    settings = get_settings()
    table = Table(title="Confluency Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    rows = [
        ("Environment", settings.environment),
        ("Log level", settings.log_level),
        ("Storage backend", settings.storage_backend),
        ("Storage path", settings.storage_path),
        ("Redis URL", _mask(settings.redis_url)),
        ("Status key", settings.init_status_key),
        ("Supabase URL", settings.supabase_url or "Not set"),
        ("Supabase anon key", _mask(settings.supabase_anon_key)),
        ("Tutor API", settings.tutor_api_url),
        ("Navigation debounce", f"{settings.navigation_debounce_ms}ms"),
        (
            "Navigation retries",
            f"{settings.navigation_max_attempts} x {settings.navigation_retry_base_delay_ms}ms",
        ),
        ("Collaborator timeout", f"{settings.collaborator_timeout_seconds}s"),
        ("Mock services", str(settings.should_use_mock_services())),
    ]
    for name, value in rows:
        table.add_row(name, value)
    console.print(table)


@app.command("check-connectivity")
def check_connectivity(
    url: str | None = typer.Option(None, "--url", help="Probe URL (defaults to the configured one)"),
    timeout: float | None = typer.Option(None, "--timeout", help="Probe timeout in seconds"),
) -> None:
    """Probe connectivity and exit non-zero when offline."""
    settings = get_settings()
    probe_url = url or settings.connectivity_probe_url or settings.tutor_api_url
    monitor = HttpConnectivityMonitor(
        probe_url, timeout=timeout or settings.connectivity_probe_timeout_seconds
    )
    snapshot = asyncio.run(monitor.fetch())

    if snapshot.is_offline:
        reason = "disconnected" if not snapshot.is_connected else "internet unreachable"
        console.print(f"Offline ({reason}) probing {probe_url}", style="red")
        raise typer.Exit(code=1)
    console.print(f"Online via {probe_url}", style="green")


def main() -> None:
    """CLI entry point."""
    setup_logging()
    try:
        app()
    except KeyboardInterrupt:
        console.print("\nInterrupted by user", style="yellow")
        sys.exit(130)


if __name__ == "__main__":
    main()
