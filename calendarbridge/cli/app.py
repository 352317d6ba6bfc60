"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..adapters.factory import build_connection_store
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import CalendarBridgeError
from ..services.booking_service import BookingDetails, BookingService

app = typer.Typer(
    name="calendarbridge",
    help="Book, reschedule and cancel appointments on connected Google, Outlook and Calendly calendars",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")
]
BusinessOption = Annotated[str, typer.Option("--business", "-b", help="Business ID owning the calendar connection")]
ProgramOption = Annotated[Optional[str], typer.Option("--program", "-p", help="Program ID (falls back to the business-wide connection)")]
DurationOption = Annotated[Optional[int], typer.Option("--duration", "-d", help="Appointment duration in minutes")]


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config_path = config_file or get_default_config_path()
    config = AppConfig.load_from_yaml(config_path)
    _configure_logging(config.log_level)
    return config


def _build_service(ctx: typer.Context, config_file: Optional[Path]) -> BookingService:
    config = _load_config(config_file)
    service = BookingService.from_config(config, build_connection_store(config))
    ctx.call_on_close(service.close)
    return service


def _fail(exc: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {exc}")
    raise typer.Exit(1)


@app.command()
def check(
    ctx: typer.Context,
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    time: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    business: BusinessOption,
    program: ProgramOption = None,
    duration: DurationOption = None,
    config_file: ConfigOption = None,
):
    """
    Check whether a slot is free and list alternatives if it is taken.

    Examples:

        calendarbridge check 2024-06-10 14:00 --business biz-1
        calendarbridge check 2024-06-10 14:00 -b biz-1 --duration 60
    """
    try:
        service = _build_service(ctx, config_file)
        result = service.check_availability(
            business_id=business,
            program_id=program,
            date=date,
            time=time,
            duration_minutes=duration,
        )
    except (CalendarBridgeError, FileNotFoundError, ValueError) as e:
        _fail(e)

    slot = result.requested
    console.print()
    if result.available:
        console.print(
            f"[bold green]✓ {slot.date} {slot.time} is available[/bold green] "
            f"({slot.duration_minutes} min, {result.provider.value})"
        )
    else:
        console.print(f"[yellow]⚠ {slot.date} {slot.time} is already booked.[/yellow]")
        if not result.alternatives:
            console.print("No free alternatives found in the search window.")
        else:
            console.print("\n[bold]Next available slots:[/bold]")
            for alternative in result.alternatives:
                console.print(f"  {alternative.date} {alternative.time}")
    console.print()


@app.command()
def book(
    ctx: typer.Context,
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    time: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    business: BusinessOption,
    program: ProgramOption = None,
    duration: DurationOption = None,
    patient: Annotated[Optional[str], typer.Option("--patient", help="Patient name")] = None,
    service_name: Annotated[Optional[str], typer.Option("--service", help="Requested service")] = None,
    phone: Annotated[Optional[str], typer.Option("--phone", help="Caller phone number")] = None,
    email: Annotated[Optional[str], typer.Option("--email", help="Caller email address")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Free-form notes")] = None,
    config_file: ConfigOption = None,
):
    """
    Create an appointment in the connected calendar.
    """
    try:
        service = _build_service(ctx, config_file)
        result = service.create_booking(
            business_id=business,
            program_id=program,
            date=date,
            time=time,
            duration_minutes=duration,
            details=BookingDetails(
                patient_name=patient,
                service=service_name,
                phone=phone,
                email=email,
                notes=notes,
            ),
        )
    except (CalendarBridgeError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"\n[bold green]✓ Booked[/bold green] event [bold]{result.event_id}[/bold] ({result.provider.value})")
    console.print(f"   {result.start.to_iso8601_string()} - {result.end.to_iso8601_string()}")
    if result.event_link:
        console.print(f"   {result.event_link}")
    console.print()


@app.command()
def reschedule(
    ctx: typer.Context,
    event_id: Annotated[str, typer.Argument(help="Vendor event ID")],
    new_date: Annotated[str, typer.Argument(help="New date (YYYY-MM-DD)")],
    new_time: Annotated[str, typer.Argument(help="New start time (HH:MM)")],
    business: BusinessOption,
    program: ProgramOption = None,
    duration: DurationOption = None,
    config_file: ConfigOption = None,
):
    """
    Move an existing appointment to a new date and time.
    """
    try:
        service = _build_service(ctx, config_file)
        result = service.reschedule_booking(
            business_id=business,
            program_id=program,
            event_id=event_id,
            new_date=new_date,
            new_time=new_time,
            duration_minutes=duration,
        )
    except (CalendarBridgeError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"\n[bold green]✓ Rescheduled[/bold green] event [bold]{result.event_id}[/bold]")
    console.print(f"   {result.start.to_iso8601_string()} - {result.end.to_iso8601_string()}\n")


@app.command()
def cancel(
    ctx: typer.Context,
    event_id: Annotated[str, typer.Argument(help="Vendor event ID")],
    business: BusinessOption,
    program: ProgramOption = None,
    reason: Annotated[Optional[str], typer.Option("--reason", "-r", help="Cancellation reason")] = None,
    config_file: ConfigOption = None,
):
    """
    Cancel an appointment.
    """
    try:
        service = _build_service(ctx, config_file)
        result = service.cancel_booking(
            business_id=business,
            program_id=program,
            event_id=event_id,
            reason=reason,
        )
    except (CalendarBridgeError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(
        f"\n[bold green]✓ Cancelled[/bold green] event [bold]{result.event_id}[/bold] "
        f"({result.method.value}, {result.provider.value})\n"
    )


@app.command()
def connections(
    business: Annotated[Optional[str], typer.Option("--business", "-b", help="Only show this business")] = None,
    config_file: ConfigOption = None,
):
    """
    List stored calendar connections.
    """
    try:
        config = _load_config(config_file)
        store = build_connection_store(config)
        rows = store.list_connections(business)
    except (FileNotFoundError, ValueError) as e:
        _fail(e)

    if not rows:
        console.print("[yellow]No calendar connections found.[/yellow]")
        return

    table = Table(
        title="Calendar connections",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("ID", style="bold yellow")
    table.add_column("Business")
    table.add_column("Program")
    table.add_column("Provider")
    table.add_column("Calendar", style="dim")
    table.add_column("Active")
    table.add_column("Token expires", style="dim")

    for connection in rows:
        table.add_row(
            connection.id,
            connection.business_id,
            connection.program_id or "-",
            connection.provider.value,
            connection.calendar_id,
            "yes" if connection.is_active else "no",
            connection.token_expires_at.to_iso8601_string(),
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def serve(
    ctx: typer.Context,
    host: Annotated[str, typer.Option("--host", help="Interface to bind")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", help="Port to listen on")] = 8000,
    config_file: ConfigOption = None,
):
    """
    Run the HTTP API.
    """
    import uvicorn

    from ..api.app import create_app

    try:
        service = _build_service(ctx, config_file)
    except (FileNotFoundError, ValueError) as e:
        _fail(e)

    uvicorn.run(create_app(service), host=host, port=port, log_config=None)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]calendarbridge[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
