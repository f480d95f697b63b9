"""Time travel experiment: shifts the system clock by an offset."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from decimal import Decimal
from fractions import Fraction

from chaosos.spec import (
    ActionSpec,
    ErrorCode,
    ExecContext,
    Executor,
    ExperimentError,
    ExpFlag,
    ExpModel,
    ModelSpec,
    Response,
)

logger = logging.getLogger(__name__)

TRAVEL_TIME_BIN = "chaos_timetravel"
SYSTEM_PROCESS = "system/process"

_DATE_FORMAT = "%m/%d/%Y %H:%M:%S"
_MAX_NANOSECONDS = 2**63 - 1

_UNIT_NANOSECONDS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

_EXAMPLE = """
# Time travel 5 minutes and 30 seconds into the future
blade create time travel --offset 5m30s
"""


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``-1h2m3.5s``; units are ns, us, ms, s, m and h."""
    body = text
    negative = False
    if body and body[0] in "+-":
        negative = body[0] == "-"
        body = body[1:]
    if body == "0":
        return timedelta(0)
    if not body:
        raise ValueError(f'time: invalid duration "{text}"')
    total = Fraction(0)
    pos = 0
    while pos < len(body):
        match = _COMPONENT.match(body, pos)
        if match is None:
            raise ValueError(f'time: invalid duration "{text}"')
        total += Fraction(Decimal(match.group(1))) * _UNIT_NANOSECONDS[match.group(2)]
        pos = match.end()
    nanoseconds = int(total)
    if nanoseconds > _MAX_NANOSECONDS:
        raise ValueError(f'time: invalid duration "{text}"')
    duration = timedelta(microseconds=nanoseconds // 1000)
    return -duration if negative else duration


def _check(response: Response) -> Response:
    if not response.success:
        raise ExperimentError(response.code or ErrorCode.OS_CMD_EXEC_FAILED, response.err)
    return response


class TravelTimeExecutor(Executor):
    """Moves the system clock and optionally disables NTP synchronisation."""

    name = "travel"

    def exec(self, uid: str, ctx: ExecContext, model: ExpModel) -> Response:
        self.channel.require_commands(ctx, ["date", "timedatectl"])
        offset = model.action_flags.get("offset", "")
        disable_ntp_value = model.action_flags.get("disableNtp", "")
        if not offset:
            logger.error("offset is nil")
            raise ExperimentError.from_code(ErrorCode.PARAMETER_LESS, "offset")
        disable_ntp = disable_ntp_value in ("true", "")
        if ctx.destroy:
            return self._stop(ctx)
        return self._start(ctx, offset, disable_ntp)

    def _stop(self, ctx: ExecContext) -> Response:
        _check(self.channel.run(ctx, "timedatectl", "set-ntp true"))
        return _check(self.channel.run(ctx, "hwclock", "--hctosys"))

    def _start(self, ctx: ExecContext, offset: str, disable_ntp: bool) -> Response:
        try:
            duration = parse_duration(offset)
        except ValueError as err:
            logger.error("offset is invalid")
            raise ExperimentError.from_code(
                ErrorCode.PARAMETER_INVALID, "offset", offset, err
            ) from err
        target_time = (datetime.now() + duration).strftime(_DATE_FORMAT)
        if disable_ntp:
            _check(self.channel.run(ctx, "timedatectl", "set-ntp false"))
        return _check(self.channel.run(ctx, "date", f'-s "{target_time}" '))


def new_travel_time_action_spec() -> ActionSpec:
    """The ``time travel`` action."""
    return ActionSpec(
        name="travel",
        short_desc="Time Travel",
        default_long_desc="Modify system time to fake processes",
        matchers=[],
        flags=[
            ExpFlag(name="offset", desc="Travel time offset, for example: -1d2h3m50s"),
            ExpFlag(
                name="disableNtp",
                desc="Whether to disable Network Time Protocol to synchronize time",
            ),
        ],
        executor=TravelTimeExecutor(),
        example=_EXAMPLE,
        programs=[TRAVEL_TIME_BIN],
        categories=[SYSTEM_PROCESS],
        aliases=["k"],
    )


def new_time_command_spec() -> ModelSpec:
    """The ``time`` experiment model."""
    return ModelSpec(
        name="time",
        short_desc="Time experiment",
        long_desc="Time experiment",
        flags=[],
        actions=[new_travel_time_action_spec()],
    )