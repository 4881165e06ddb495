from __future__ import annotations
"""
Restart policy primitives for monovisor.

After every child exit the supervisor classifies the exit code and asks the
restart policy what to do next. Children that die before surviving the grace
period count as failed starts; too many of those in a row and the supervisor
gives up, whatever the restart mode says.

This module defines:
- the restart mode enum
- the restart policy (expected codes, grace period, retry cap)
- the exit classifier and the decision rule
"""

from collections.abc import Collection
from dataclasses import dataclass, field
from enum import Enum

from .exceptions import BadConfig

DEFAULT_EXPECTED_CODES: frozenset[int] = frozenset({0})


class RestartMode(str, Enum):
    """
    When the supervisor restarts an exited child.

    ALWAYS
        Restart unconditionally, whatever the exit code.
    NEVER
        Run the child once.
    UNEXPECTED
        Restart only when the exit code is not one of the expected codes.

    The values are the strings accepted on the command line.
    """

    ALWAYS = "true"
    NEVER = "false"
    UNEXPECTED = "unexpected"

    @classmethod
    def parse(cls, raw: str) -> RestartMode:
        """
        Parse an `autorestart` value.

        Raises
        ------
        BadConfig
            If `raw` is not one of "true", "false" or "unexpected".
        """
        try:
            return cls(raw)
        except ValueError:
            choices = ", ".join(repr(m.value) for m in cls)
            raise BadConfig(f"invalid autorestart value {raw!r}, expected one of {choices}") from None


@dataclass(frozen=True, slots=True)
class RestartPolicy:
    """
    Defines how the supervisor reacts to child exits.

    Parameters
    ----------
    mode:
        ALWAYS/NEVER/UNEXPECTED.
    expected_codes:
        Exit codes considered a normal termination.
    start_secs:
        Grace period in seconds. A child that lives at least this long is
        considered successfully started and resets the retry counter.
    start_retries:
        Number of consecutive short-lived exits after which the supervisor
        stops restarting.
    """

    mode: RestartMode = RestartMode.UNEXPECTED
    expected_codes: frozenset[int] = field(default=DEFAULT_EXPECTED_CODES)
    start_secs: float = 1.0
    start_retries: int = 3


@dataclass(frozen=True, slots=True)
class Decision:
    """
    Outcome of the decision rule for one exit.

    Attributes
    ----------
    restart:
        Whether another child should be spawned.
    retry:
        The retry counter after this exit.
    """

    restart: bool
    retry: int


def is_unexpected(exit_code: int, expected_codes: Collection[int]) -> bool:
    """
    Return True if `exit_code` is not an expected exit.

    An empty set behaves like the default: only 0 is expected.
    """
    if not expected_codes:
        return exit_code != 0
    return exit_code not in expected_codes


def decide(policy: RestartPolicy, *, unexpected: bool, lifetime: float, retry: int) -> Decision:
    """
    Apply the restart policy to one child exit.

    Parameters
    ----------
    policy:
        The active restart policy.
    unexpected:
        Result of the exit classifier.
    lifetime:
        Seconds between spawn and exit.
    retry:
        The retry counter before this exit.
    """
    if policy.mode is RestartMode.ALWAYS:
        should_try_restart = True
    elif policy.mode is RestartMode.UNEXPECTED:
        should_try_restart = unexpected
    else:
        should_try_restart = False

    if not should_try_restart:
        return Decision(restart=False, retry=retry)

    retry = retry + 1 if lifetime < policy.start_secs else 0
    return Decision(restart=retry < policy.start_retries, retry=retry)
