from __future__ import annotations

import logging
import sys
from typing import Annotated

from sayer import Argument, Option, Sayer, error, info

from monovisor.config import DEFAULT_BACKUPS, DEFAULT_MAX_BYTES, DEFAULT_SUBJECT, build_config
from monovisor.exceptions import BadConfig, BadPath, SpawnFailure
from monovisor.supervisor import Supervisor

help = """
monovisor: supervise a single program.

**Run one child, rotate its logs, restart it by policy**

The child command follows the options, after a `--` separator:

    monovisor run --stdout-logfile app.log -- python app.py --port 8000
"""

LOG_FORMAT = "[monovisor] %(levelname)s %(message)s"

app = Sayer(
    name="monovisor",
    help=help,
)


class StderrHandler(logging.StreamHandler):
    """A stream handler that always writes to the current `sys.stderr`."""

    @property  # type: ignore[override]
    def stream(self):
        return sys.stderr

    @stream.setter
    def stream(self, value) -> None:
        pass


def configure_logging(level: str) -> None:
    """
    Send monovisor's own log records to stderr.

    Repeated calls adjust the level without stacking handlers.
    """
    logger = logging.getLogger("monovisor")
    try:
        logger.setLevel(level.upper())
    except ValueError:
        raise BadConfig(f"unknown log level {level!r}") from None
    if not any(isinstance(h, StderrHandler) for h in logger.handlers):
        handler = StderrHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)


@app.command()
async def run(
    command: Annotated[list[str], Argument(nargs=-1, required=False, help="Program and its arguments")],
    process_name: Annotated[
        str,
        Option(help="Name used in alerts. Defaults to the basename of the command file."),
    ] = "",
    stdout_logfile: Annotated[
        str,
        Option(help="Put process stdout in this file. Empty discards the output."),
    ] = "",
    stdout_logfile_maxbytes: Annotated[
        str,
        Option(help="Size at which the stdout log rotates (KB, MB and GB suffixes). 0 means unlimited."),
    ] = DEFAULT_MAX_BYTES,
    stdout_logfile_backups: Annotated[
        int,
        Option(help="Number of rotated stdout logs to keep. 0 keeps none."),
    ] = DEFAULT_BACKUPS,
    stderr_logfile: Annotated[
        str,
        Option(help="Put process stderr in this file. Empty discards the output."),
    ] = "",
    stderr_logfile_maxbytes: Annotated[
        str,
        Option(help="Size at which the stderr log rotates (KB, MB and GB suffixes). 0 means unlimited."),
    ] = DEFAULT_MAX_BYTES,
    stderr_logfile_backups: Annotated[
        int,
        Option(help="Number of rotated stderr logs to keep. 0 keeps none."),
    ] = DEFAULT_BACKUPS,
    autorestart: Annotated[
        str,
        Option(help='Restart mode: "true", "false" or "unexpected".'),
    ] = "unexpected",
    exitcodes: Annotated[
        str,
        Option(help="Comma-separated exit codes treated as expected."),
    ] = "0",
    startretries: Annotated[
        int,
        Option(help="Consecutive failed starts before giving up."),
    ] = 3,
    startsecs: Annotated[
        int,
        Option(help="Seconds the program must stay up for a start to count as successful."),
    ] = 1,
    mail_alert: Annotated[
        bool,
        Option(help="Send an email when the program exits unexpectedly."),
    ] = False,
    mail_server: Annotated[str, Option(help="SMTP server, host[:port].")] = "",
    mail_username: Annotated[str, Option(help="SMTP account username.")] = "",
    mail_password: Annotated[str, Option(help="SMTP account password.")] = "",
    mail_sender: Annotated[str, Option(help="Sender address. Defaults to the username.")] = "",
    mail_receivers: Annotated[str, Option(help="Comma-separated receiver addresses.")] = "",
    mail_subject: Annotated[
        str,
        Option(help='Subject line. "$program_name" is replaced with the process name.'),
    ] = DEFAULT_SUBJECT,
    log_level: Annotated[str, Option(help="Level of monovisor's own messages.")] = "INFO",
) -> None:
    """
    Start the program and keep it running according to the restart policy.

    Exit Codes:
        0: The program exited and the policy chose not to restart it.
        1: Bad configuration, the program could not be started, or a log
           file could not be opened.
    """
    try:
        configure_logging(log_level)
        config = build_config(
            command or (),
            process_name=process_name,
            stdout_logfile=stdout_logfile,
            stdout_logfile_maxbytes=stdout_logfile_maxbytes,
            stdout_logfile_backups=stdout_logfile_backups,
            stderr_logfile=stderr_logfile,
            stderr_logfile_maxbytes=stderr_logfile_maxbytes,
            stderr_logfile_backups=stderr_logfile_backups,
            autorestart=autorestart,
            exitcodes=exitcodes,
            startretries=startretries,
            startsecs=startsecs,
            mail_alert=mail_alert,
            mail_server=mail_server,
            mail_username=mail_username,
            mail_password=mail_password,
            mail_sender=mail_sender,
            mail_receivers=mail_receivers,
            mail_subject=mail_subject,
        )
    except BadConfig as e:
        error(str(e))
        raise SystemExit(1) from None

    supervisor = Supervisor(config)
    try:
        record = await supervisor.run()
    except (SpawnFailure, BadPath) as e:
        error(str(e))
        raise SystemExit(1) from None

    info(f"{config.program_name} exited with code {record.exit_code}, not restarting")


def main() -> None:
    app()
