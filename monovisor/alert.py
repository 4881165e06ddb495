from __future__ import annotations

"""
Unexpected-exit notifications.

The dispatcher turns an `ExitRecord` into an email and delivers it in the
background. Delivery never blocks the supervision loop: `dispatch(...)`
schedules the send on the dispatcher's own task group and returns.
"""

import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

import anyio
import anyio.abc
import anyio.to_thread

from .config import MailConfig
from .events import ExitRecord
from .exceptions import AlertDeliveryError

logger = logging.getLogger(__name__)

PROGRAM_NAME_TOKEN = "$program_name"
DEFAULT_SMTP_PORT = 25


class Transport(Protocol):
    """Blocking delivery of a composed message. Runs in a worker thread."""

    def send(self, config: MailConfig, message: EmailMessage) -> None: ...


class SmtpTransport:
    """
    Delivers messages through an SMTP relay.

    STARTTLS is used when the server offers it; login is attempted when a
    username is configured.
    """

    def send(self, config: MailConfig, message: EmailMessage) -> None:
        host, _, port = config.server.partition(":")
        try:
            with smtplib.SMTP(host, int(port or DEFAULT_SMTP_PORT), timeout=config.timeout) as smtp:
                smtp.ehlo()
                if smtp.has_extn("starttls"):
                    smtp.starttls()
                    smtp.ehlo()
                if config.username:
                    smtp.login(config.username, config.password)
                smtp.send_message(message, from_addr=config.from_addr, to_addrs=list(config.receivers))
        except (smtplib.SMTPException, OSError, ValueError) as e:
            raise AlertDeliveryError(str(e)) from e


def render_subject(template: str, program_name: str) -> str:
    return template.replace(PROGRAM_NAME_TOKEN, program_name)


def compose(config: MailConfig, record: ExitRecord) -> EmailMessage:
    """
    Build the notification for `record`.

    The body lists ExitCode, StartTime, ExitTime, Retry and Restart, one per
    line, with RFC 1123 timestamps. Header values the message refuses, such
    as a subject with a line break, raise `AlertDeliveryError`.
    """
    message = EmailMessage()
    try:
        message["From"] = config.from_addr
        message["To"] = ", ".join(config.receivers)
        message["Subject"] = render_subject(config.subject, record.program_name)
    except ValueError as e:
        raise AlertDeliveryError(f"compose notification mail fail: {e}") from e
    message.set_content(record.summary())
    return message


class AlertDispatcher:
    """
    Fire-and-forget delivery of unexpected-exit alerts.

    Lifecycle
    ---------
    - `start()` opens the task group alerts run in.
    - `dispatch(record)` schedules one delivery and returns immediately.
    - `aclose()` waits for in-flight deliveries (each bounded by the SMTP
      timeout) and closes the task group.

    Delivery failures are logged and swallowed.
    """

    def __init__(self, config: MailConfig, transport: Transport | None = None) -> None:
        self.config = config
        self._transport: Transport = transport or SmtpTransport()
        self._tg: anyio.abc.TaskGroup | None = None

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    async def start(self) -> None:
        if self._tg is not None:
            return
        self._tg = await anyio.create_task_group().__aenter__()

    def dispatch(self, record: ExitRecord) -> bool:
        """
        Schedule an alert for `record`.

        Returns
        -------
        bool
            True if a delivery was scheduled. Expected exits and a disabled
            dispatcher schedule nothing.
        """
        if not (self.enabled and record.unexpected):
            return False
        if self._tg is None:
            raise RuntimeError("AlertDispatcher is not running. Did you call await dispatcher.start()?")

        self._tg.start_soon(self._deliver, record)
        return True

    async def _deliver(self, record: ExitRecord) -> None:
        try:
            message = compose(self.config, record)
            await anyio.to_thread.run_sync(self._transport.send, self.config, message)
        except AlertDeliveryError as e:
            logger.error("send process unexpected exit notification mail fail: %s", e)
            return
        logger.info("send process unexpected exit notification mail success")

    async def aclose(self) -> None:
        if self._tg is None:
            return
        tg = self._tg
        self._tg = None
        await tg.__aexit__(None, None, None)

    async def __aenter__(self) -> AlertDispatcher:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
