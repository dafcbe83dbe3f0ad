"""
Main CLI application using Typer.
"""

import json
import logging
from itertools import groupby
from pathlib import Path
from typing import Annotated, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.audit_logger import AuditLogger
from ..adapters.authenticator import IdentityAuthenticator, MockAuthenticator
from ..adapters.backend_client import BackendClient
from ..adapters.mock_backend_client import MockBackendClient
from ..config import AppConfig, get_default_config_path
from ..domain.access import authorize_route
from ..domain.exceptions import AvailabilityError
from ..domain.models import CollisionMode, Role, Session
from ..services.availability import AvailabilityService, error_payload

app = typer.Typer(
    name="medavail",
    help="Check provider appointment availability on the imaging platform",
    add_completion=False
)

console = Console()

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path], mock: bool) -> AppConfig:
    """Load the YAML config; mock mode runs on defaults when none exists."""
    config_path = config_file or get_default_config_path()
    if mock and not config_path.exists():
        logger.debug("No config at %s, using defaults in mock mode", config_path)
        return AppConfig()
    return AppConfig.load_from_yaml(config_path)


def _default_range(tz: str, start: Optional[str], end: Optional[str]) -> tuple[str, str]:
    """Expand YYYY-MM-DD options (or today + 7 days) into ISO date-times."""
    now = pendulum.now(tz)
    start_dt = pendulum.from_format(start, "YYYY-MM-DD", tz=tz) if start else now.start_of("day")
    end_dt = pendulum.from_format(end, "YYYY-MM-DD", tz=tz).end_of("day") if end else start_dt.add(days=7).end_of("day")
    return start_dt.to_iso8601_string(), end_dt.to_iso8601_string()


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
):
    _configure_logging(verbose)


@app.command()
def availability(
    provider_id: Annotated[str, typer.Argument(help="Provider user id")],
    config_file: Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")] = None,
    start: Annotated[Optional[str], typer.Option("--start", help="Start date (YYYY-MM-DD)")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="End date (YYYY-MM-DD)")] = None,
    overlap: Annotated[bool, typer.Option("--overlap", help="Block slots that overlap a booking, not only exact matches")] = False,
    mock: Annotated[bool, typer.Option("--mock", help="Use bundled mock data and skip sign-in")] = False,
    as_json: Annotated[bool, typer.Option("--json", help="Print the JSON response payload")] = False,
):
    """
    Show open appointment slots for a provider.

    Examples:

        medavail availability prov-radiology-01 --mock

        medavail availability prov-radiology-01 --start 2026-11-02 --end 2026-11-06
    """
    try:
        config = _load_config(config_file, mock)
        start_iso, end_iso = _default_range(config.timezone, start, end)

        if mock:
            authenticator = MockAuthenticator(role=Role.PATIENT)
            backend = MockBackendClient()
            audit = AuditLogger()
        else:
            authenticator = IdentityAuthenticator(
                client_id=config.client_id,
                tenant_id=config.tenant_id,
                authority_url=config.get_authority_url(),
                scopes=config.scopes,
            )
            backend = BackendClient(config.backend_url, authenticator.get_access_token())
            audit = AuditLogger(sink=backend)

        service = AvailabilityService(
            providers=backend,
            appointments=backend,
            audit=audit,
            default_working_hours=config.to_working_hours(),
            max_range_days=config.defaults.max_range_days,
            collision_mode=CollisionMode.OVERLAP if overlap else CollisionMode.EXACT,
        )

        result = service.check_availability(
            session=authenticator.get_session(),
            provider_id=provider_id,
            start_date=start_iso,
            end_date=end_iso,
        )
    except (AvailabilityError, FileNotFoundError, ValueError) as e:
        if as_json and isinstance(e, AvailabilityError):
            status, body = error_payload(e)
            console.print_json(json.dumps({"status": status, **body}))
        else:
            console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if as_json:
        console.print_json(json.dumps(result.to_dict()))
        return

    hours = result.working_hours
    console.print(
        f"\n[bold cyan]{result.provider_name}[/bold cyan] "
        f"({hours.start}:00 - {hours.end}:00, {hours.slot_duration_minutes} min, {hours.timezone})\n"
    )

    if not result.slots:
        console.print("[yellow]⚠ No open slots in this range.[/yellow]\n")
        return

    for day, day_slots in groupby(result.slots, key=lambda slot: slot.timestamp.date()):
        times = ", ".join(slot.timestamp.format("HH:mm") for slot in day_slots)
        console.print(f"  [bold]{day.format('ddd, YYYY-MM-DD')}[/bold]  {times}")
    console.print(f"\n[green]✓ {len(result.slots)} open slot(s)[/green]\n")


@app.command()
def check_access(
    path: Annotated[str, typer.Argument(help="Route to check, e.g. /provider/patients")],
    role: Annotated[Optional[Role], typer.Option("--role", case_sensitive=False, help="Caller role")] = None,
    anonymous: Annotated[bool, typer.Option("--anonymous", help="Check as a signed-out visitor")] = False,
    cycle: Annotated[int, typer.Option("--cycle", help="Role redirects already performed")] = 0,
):
    """
    Show whether a role may open a route, or where it is redirected.
    """
    session = None if anonymous else Session(user_id="cli-user", role=role)
    decision = authorize_route(path, session, cycle=cycle)

    if decision.allowed:
        console.print(f"[green]✓ allowed[/green] {path}")
    else:
        console.print(f"[yellow]→ redirect[/yellow] {path} → {decision.redirect_to}")


@app.command()
def list_providers():
    """
    List providers in the bundled mock data.
    """
    providers = MockBackendClient().list_providers()

    if not providers:
        console.print("[yellow]No providers in the mock data.[/yellow]")
        return

    table = Table(title="Mock providers", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold yellow")
    table.add_column("Name")
    table.add_column("Working hours", style="dim")

    for provider in providers:
        table.add_row(provider.id, provider.name, json.dumps(provider.working_hours) if provider.working_hours else "default")

    console.print()
    console.print(table)
    console.print()


@app.command()
def test_auth(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file"),
    force: bool = typer.Option(False, "--force", help="Force re-authentication"),
):
    """
    Test sign-in with the identity provider.
    """
    try:
        config = AppConfig.load_from_yaml(config_file or get_default_config_path())

        authenticator = IdentityAuthenticator(
            client_id=config.client_id,
            tenant_id=config.tenant_id,
            authority_url=config.get_authority_url(),
            scopes=config.scopes,
        )
        authenticator.get_access_token(force_refresh=force)
        session = authenticator.get_session()

        console.print(Panel.fit(
            f"[bold green]✓ Signed in[/bold green]\n\n"
            f"[bold]User:[/bold] {session.name or session.user_id}\n"
            f"[bold]Role:[/bold] {session.role.value if session.role else 'not synced'}\n"
            f"[bold]Token cache:[/bold] {authenticator.cache_backend}",
            title="✓ Connection test"
        ))
        if authenticator.insecure_storage_warning:
            console.print(f"[yellow]{authenticator.insecure_storage_warning}[/yellow]")

    except (AvailabilityError, FileNotFoundError, ValueError) as e:
        console.print(f"\n[bold red]✗ Error:[/bold red] {e}\n")
        raise typer.Exit(1)


@app.command()
def clear_cache(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """
    Clear the authentication token cache.
    """
    try:
        config = AppConfig.load_from_yaml(config_file or get_default_config_path())
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    IdentityAuthenticator(client_id=config.client_id, tenant_id=config.tenant_id).clear_cache()
    console.print("\n[green]✓ Token cache cleared.[/green]")
    console.print("You will need to sign in again on the next call.\n")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]medavail[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
