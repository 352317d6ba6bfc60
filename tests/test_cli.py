"""
Tests for the command-line interface.
"""

import json
from unittest.mock import MagicMock

import pendulum
from rich.console import Console
from typer.testing import CliRunner

from calendarbridge import __version__
from calendarbridge.cli import app as cli
from calendarbridge.domain.exceptions import ProviderCapabilityUnsupported
from calendarbridge.domain.models import CancelMethod, ProviderTag, Slot
from calendarbridge.services.booking_service import AvailabilityResult, CancellationResult

runner = CliRunner()


def _write_config(tmp_path, make_connection):
    (tmp_path / "connections.json").write_text(
        json.dumps([
            make_connection().to_record(),
            make_connection(id="conn-2", business_id="biz-2", provider=ProviderTag.OUTLOOK).to_record(),
        ]),
        encoding="utf-8",
    )
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "log_level: WARNING\nstorage:\n  backend: memory\n  connections_file: connections.json\n",
        encoding="utf-8",
    )
    return config_path


def test_version():
    result = runner.invoke(cli.app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_connections_lists_rows(tmp_path, make_connection, monkeypatch):
    monkeypatch.setattr(cli, "console", Console(width=200))
    config_path = _write_config(tmp_path, make_connection)

    result = runner.invoke(cli.app, ["connections", "--config", str(config_path), "--business", "biz-2"])

    assert result.exit_code == 0
    assert "conn-2" in result.output
    assert "outlook" in result.output
    assert "conn-1" not in result.output


def test_missing_config_exits_with_error(tmp_path):
    result = runner.invoke(cli.app, ["connections", "--config", str(tmp_path / "missing.yaml")])

    assert result.exit_code == 1
    assert "Config file not found" in result.output


def test_check_prints_alternatives(monkeypatch):
    service = MagicMock()
    service.check_availability.return_value = AvailabilityResult(
        available=False,
        requested=Slot(date=pendulum.date(2024, 6, 10), time="14:00", duration_minutes=30),
        provider=ProviderTag.GOOGLE,
        alternatives=[Slot(date=pendulum.date(2024, 6, 10), time="15:00", duration_minutes=30)],
    )
    monkeypatch.setattr(cli, "_build_service", lambda ctx, config_file: service)

    result = runner.invoke(cli.app, ["check", "2024-06-10", "14:00", "--business", "biz-1"])

    assert result.exit_code == 0
    assert "already booked" in result.output
    assert "2024-06-10 15:00" in result.output
    service.check_availability.assert_called_once_with(
        business_id="biz-1",
        program_id=None,
        date="2024-06-10",
        time="14:00",
        duration_minutes=None,
    )


def test_book_reports_domain_errors(monkeypatch):
    service = MagicMock()
    service.create_booking.side_effect = ProviderCapabilityUnsupported("calendly", "event creation")
    monkeypatch.setattr(cli, "_build_service", lambda ctx, config_file: service)

    result = runner.invoke(cli.app, ["book", "2024-06-10", "14:00", "-b", "biz-1", "--patient", "Jane Doe"])

    assert result.exit_code == 1
    assert "does not support event creation" in result.output
    assert service.create_booking.call_args.kwargs["details"].patient_name == "Jane Doe"


def test_cancel(monkeypatch):
    service = MagicMock()
    service.cancel_booking.return_value = CancellationResult(
        event_id="evt-1", method=CancelMethod.DELETED, provider=ProviderTag.CALENDLY
    )
    monkeypatch.setattr(cli, "_build_service", lambda ctx, config_file: service)

    result = runner.invoke(cli.app, ["cancel", "evt-1", "-b", "biz-1", "--reason", "No show"])

    assert result.exit_code == 0
    assert "deleted" in result.output
    assert service.cancel_booking.call_args.kwargs["reason"] == "No show"


def test_service_is_closed_after_command(tmp_path, make_connection, monkeypatch):
    """The HTTP session behind the service is released when the command ends."""
    service = MagicMock()
    service.cancel_booking.return_value = CancellationResult(
        event_id="evt-1", method=CancelMethod.MARKED_CANCELLED, provider=ProviderTag.GOOGLE
    )
    monkeypatch.setattr(cli.BookingService, "from_config", lambda config, store: service)
    config_path = _write_config(tmp_path, make_connection)

    result = runner.invoke(cli.app, ["cancel", "evt-1", "-b", "biz-1", "--config", str(config_path)])

    assert result.exit_code == 0
    service.close.assert_called_once_with()
