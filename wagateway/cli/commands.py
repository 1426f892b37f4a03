"""CLI commands for wagateway."""

import sys
from pathlib import Path
from typing import Any

import httpx
import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from wagateway import __logo__, __version__

app = typer.Typer(
    name="wagateway",
    help=f"{__logo__} wagateway - HTTP gateway for a WhatsApp session",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"{__logo__} wagateway v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-v", callback=version_callback, is_eager=True),
) -> None:
    """wagateway - HTTP gateway for a WhatsApp session."""


def _load(config_path: Path | None):
    from wagateway.config.loader import load_config

    return load_config(config_path)


def _make_client(base_url: str, token: str | None) -> httpx.Client:
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return httpx.Client(base_url=base_url, headers=headers, timeout=60.0)


def _request(method: str, path: str, url: str | None, config_path: Path | None, **kwargs: Any) -> httpx.Response:
    config = _load(config_path)
    base_url = url or f"http://127.0.0.1:{config.server.port}"
    try:
        with _make_client(base_url, config.server.auth_token) as client:
            return client.request(method, path, **kwargs)
    except httpx.HTTPError as e:
        console.print(f"[red]Gateway not reachable at {base_url}:[/red] {e}")
        raise typer.Exit(1)


def _fail_on_error(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        data = {}
    if response.is_error:
        error = data.get("error", f"HTTP {response.status_code}")
        details = data.get("details", response.text)
        console.print(f"[red]{error}:[/red] {details}")
        raise typer.Exit(1)
    return data


# ============================================================================
# Setup
# ============================================================================


@app.command()
def onboard(
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Write a default configuration file."""
    from wagateway.config.loader import get_config_path, save_config
    from wagateway.config.schema import Config

    path = config_path or get_config_path()
    if path.exists():
        console.print(f"[yellow]Config already exists at {path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config(), path)
    console.print(f"[green]✓[/green] Created config at {path}")
    console.print("\nNext steps:")
    console.print("  1. Start the WhatsApp bridge and set [cyan]session.bridgeUrl[/cyan]")
    console.print("  2. Run: [cyan]wagateway serve[/cyan] and scan the QR code")


@app.command("reset-session")
def reset_session(
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete stored session credentials so the next start pairs again."""
    from wagateway.session.credentials import CredentialStore

    config = _load(config_path)
    store = CredentialStore(config.session.auth_path)
    if not store.auth_dir.exists():
        console.print(f"[yellow]No stored credentials at {store.auth_dir}[/yellow]")
        return
    if not yes and not typer.confirm(f"Delete credentials in {store.auth_dir}?"):
        raise typer.Exit()
    store.clear()
    console.print(f"[green]✓[/green] Removed credentials from {store.auth_dir}")


# ============================================================================
# Server
# ============================================================================


@app.command()
def serve(
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
    host: str | None = typer.Option(None, "--host", help="Listen address"),
    port: int | None = typer.Option(None, "--port", "-p", help="Listen port"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
) -> None:
    """Run the gateway in the foreground."""
    from wagateway.api.server import run_server
    from wagateway.app.bootstrap import build_runtime

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")

    config = _load(config_path)
    if host:
        config.server.host = host
    if port:
        config.server.port = port

    console.print(f"{__logo__} Starting wagateway on {config.server.host}:{config.server.port}...")
    console.print(f"[green]✓[/green] Bridge: {config.session.bridge_url}")
    console.print(f"[green]✓[/green] Duplicate protection: {config.dedup.window_seconds:g}s cooldown")

    runtime = build_runtime(config)
    try:
        run_server(runtime)
    except KeyboardInterrupt:
        console.print("\nShutting down...")


# ============================================================================
# Client commands
# ============================================================================


@app.command()
def status(
    url: str | None = typer.Option(None, "--url", help="Gateway base URL"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Show session and duplicate-cache status of a running gateway."""
    data = _fail_on_error(_request("GET", "/status", url, config_path))
    protection = data.get("duplicate_protection", {})
    session = data.get("session", {})
    user = session.get("user") or {}
    last = session.get("last_disconnect") or {}

    table = Table(title="WhatsApp Gateway")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    connected = "[green]yes[/green]" if data.get("connected") else "[red]no[/red]"
    table.add_row("Connected", connected)
    table.add_row("Status", str(data.get("status", "-")))
    table.add_row("Retries", f"{data.get('retry_count', 0)}/{data.get('max_retries', 0)}")
    table.add_row("Account", str(user.get("name") or user.get("id") or "-"))
    table.add_row("Last disconnect", str(last.get("reason") or "-"))
    table.add_row("Cooldown", str(protection.get("cooldown", "-")))
    table.add_row("Tracked messages", str(protection.get("tracked_messages", 0)))
    console.print(table)


@app.command()
def send(
    number: str = typer.Argument(..., help="Phone number (digits) or full address"),
    message: str = typer.Argument(..., help="Message text"),
    url: str | None = typer.Option(None, "--url", help="Gateway base URL"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Send a message through a running gateway."""
    data = _fail_on_error(
        _request("POST", "/send", url, config_path, json={"number": number, "message": message})
    )
    if data.get("duplicate"):
        console.print(f"[yellow]Duplicate blocked[/yellow] for {data.get('to')} (cooldown {data.get('cooldown')})")
        return
    console.print(f"[green]✓[/green] Message sent to {data.get('to')}")


@app.command("clear-duplicates")
def clear_duplicates(
    url: str | None = typer.Option(None, "--url", help="Gateway base URL"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Clear the duplicate cache of a running gateway."""
    data = _fail_on_error(_request("DELETE", "/clear-duplicates", url, config_path))
    console.print(f"[green]✓[/green] Duplicate cache cleared ({data.get('previous_entries', 0)} entries)")


if __name__ == "__main__":
    app()
