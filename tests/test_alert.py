from __future__ import annotations

import logging
import socket
from datetime import datetime, timedelta, timezone

import pytest

from monovisor import AlertDeliveryError, AlertDispatcher, ExitRecord, MailConfig
from monovisor.alert import SmtpTransport, compose, render_subject
from monovisor.events import format_timestamp

pytestmark = pytest.mark.anyio

ZONE = timezone(timedelta(hours=-7))


def _record(**overrides) -> ExitRecord:
    values = dict(
        program_name="worker",
        exit_code=7,
        unexpected=True,
        start_time=datetime(2006, 1, 2, 15, 4, 5, tzinfo=ZONE),
        exit_time=datetime(2006, 1, 2, 15, 4, 7, tzinfo=ZONE),
        lifetime=2.0,
        retry=1,
        restart=True,
    )
    values.update(overrides)
    return ExitRecord(**values)


def _mail(**overrides) -> MailConfig:
    values = dict(
        enabled=True,
        server="smtp.example.com:25",
        username="ops@example.com",
        receivers=("a@example.com", "b@example.com"),
    )
    values.update(overrides)
    return MailConfig(**values)


def test_timestamps_are_rfc1123_with_numeric_zone():
    assert format_timestamp(datetime(2006, 1, 2, 15, 4, 5, tzinfo=ZONE)) == "Mon, 02 Jan 2006 15:04:05 -0700"


def test_subject_substitutes_program_name():
    assert render_subject("$program_name unexpected exit", "worker") == "worker unexpected exit"
    assert render_subject("[$program_name] $program_name down", "db") == "[db] db down"
    assert render_subject("no token", "db") == "no token"


def test_compose_includes_every_exit_fact():
    message = compose(_mail(), _record())

    assert message["Subject"] == "worker unexpected exit"
    assert message["From"] == "ops@example.com"
    assert message["To"] == "a@example.com, b@example.com"
    assert message.get_content().splitlines() == [
        "ExitCode: 7",
        "StartTime: Mon, 02 Jan 2006 15:04:05 -0700",
        "ExitTime: Mon, 02 Jan 2006 15:04:07 -0700",
        "Retry: 1",
        "Restart: true",
    ]


def test_compose_prefers_explicit_sender():
    message = compose(_mail(sender="bot@example.com"), _record())

    assert message["From"] == "bot@example.com"


def test_compose_encodes_non_ascii_subjects():
    message = compose(_mail(subject="$program_name 异常退出"), _record())

    assert "=?utf-8?" in message.as_string()
    assert str(message["Subject"]) == "worker 异常退出"


async def test_dispatch_delivers_unexpected_exits(transport):
    async with AlertDispatcher(_mail(), transport=transport) as dispatcher:
        assert dispatcher.dispatch(_record()) is True

    assert len(transport.sent) == 1
    config, message = transport.sent[0]
    assert config.server == "smtp.example.com:25"
    assert "ExitCode: 7" in message.get_content()


async def test_expected_exits_are_not_alerted(transport):
    async with AlertDispatcher(_mail(), transport=transport) as dispatcher:
        assert dispatcher.dispatch(_record(unexpected=False, exit_code=0)) is False

    assert transport.sent == []


async def test_disabled_dispatcher_sends_nothing(transport):
    async with AlertDispatcher(_mail(enabled=False), transport=transport) as dispatcher:
        assert dispatcher.dispatch(_record()) is False

    assert transport.sent == []


async def test_dispatch_requires_start(transport):
    dispatcher = AlertDispatcher(_mail(), transport=transport)

    with pytest.raises(RuntimeError):
        dispatcher.dispatch(_record())


async def test_delivery_failure_is_logged_and_swallowed(failing_transport, caplog):
    with caplog.at_level(logging.ERROR, logger="monovisor"):
        async with AlertDispatcher(_mail(), transport=failing_transport) as dispatcher:
            dispatcher.dispatch(_record())

    assert failing_transport.sent == []
    assert any("notification mail fail" in r.getMessage() for r in caplog.records)


def test_compose_rejects_multiline_subjects():
    with pytest.raises(AlertDeliveryError, match="compose"):
        compose(_mail(subject="$program_name\ndown"), _record())


async def test_composition_failure_is_logged_and_swallowed(transport, caplog):
    with caplog.at_level(logging.ERROR, logger="monovisor"):
        async with AlertDispatcher(_mail(subject="$program_name\ndown"), transport=transport) as dispatcher:
            assert dispatcher.dispatch(_record()) is True

    assert transport.sent == []
    assert any("notification mail fail" in r.getMessage() for r in caplog.records)


async def test_exit_with_error_does_not_wrap_the_error(transport):
    with pytest.raises(KeyError) as excinfo:
        async with AlertDispatcher(_mail(), transport=transport) as dispatcher:
            dispatcher.dispatch(_record())
            raise KeyError("boom")

    assert type(excinfo.value) is KeyError
    assert len(transport.sent) == 1


def _closed_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_smtp_transport_wraps_connection_errors():
    config = _mail(server=f"127.0.0.1:{_closed_port()}", timeout=2.0)

    with pytest.raises(AlertDeliveryError):
        SmtpTransport().send(config, compose(config, _record()))
