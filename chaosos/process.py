"""Process experiments: kill processes, or pause and resume them."""

from __future__ import annotations

import logging

from chaosos.spec import (
    EXCLUDE_PROCESS_KEY,
    ActionSpec,
    Channel,
    ErrorCode,
    ExecContext,
    Executor,
    ExperimentError,
    ExpFlag,
    ExpModel,
    ModelSpec,
    Response,
    parse_integer_list,
    remove_duplicates,
)

logger = logging.getLogger(__name__)

KILL_PROCESS_BIN = "chaos_killprocess"
STOP_PROCESS_BIN = "chaos_stopprocess"
SYSTEM_PROCESS = "system/process"

_LOCAL_PORT_DESC = (
    "Local service ports. Separate multiple ports with commas (,) or connector "
    "representing ranges, for example: 80,8000-8080"
)

_KILL_EXAMPLE = """
# Kill the process that contains the SimpleHTTPServer keyword
blade create process kill --process SimpleHTTPServer

# Kill the Java process
blade create process kill --process-cmd java

# Specifies the semaphore and local port to kill the process
blade c process kill --local-port 8080 --signal 15

# Return success even if the process not found
blade c process kill --process demo --ignore-not-found"""

_STOP_EXAMPLE = """
# Pause the process that contains the "SimpleHTTPServer" keyword
blade create process stop --process SimpleHTTPServer

# Pause the Java process
blade create process stop --process-cmd java

# Return success even if the process not found
blade create process stop --process demo --ignore-not-found"""

_LOOKUP_ERRORS = (ExperimentError, OSError)


def _check(response: Response) -> Response:
    if not response.success:
        raise ExperimentError(response.code or ErrorCode.OS_CMD_EXEC_FAILED, response.err)
    return response


def _matcher_flags() -> list[ExpFlag]:
    return [
        ExpFlag(name="process", desc="Process name"),
        ExpFlag(name="process-cmd", desc="Process name in command"),
        ExpFlag(name="count", desc="Limit count, 0 means unlimited"),
        ExpFlag(name="local-port", desc=_LOCAL_PORT_DESC),
        ExpFlag(name="signal", desc="Killing process signal, such as 9,15"),
        ExpFlag(name="exclude-process", desc="Exclude process"),
    ]


def check_process_invalid(
    ctx: ExecContext, process: str, process_cmd: str, local_ports: str, channel: Channel
) -> None:
    """Raise unless at least one process matches the given matcher."""
    pids: list[str] = []
    name = ""
    parameter = ""
    if process:
        try:
            pids = channel.pids_by_process_name(ctx, process)
        except _LOOKUP_ERRORS as err:
            error = ExperimentError.from_code(ErrorCode.PROCESS_ID_BY_NAME_FAILED, process, err)
            logger.error(error.message)
            raise error from err
        name, parameter = process, "process"
    elif process_cmd:
        try:
            pids = channel.pids_by_process_cmd(ctx, process_cmd)
        except _LOOKUP_ERRORS as err:
            error = ExperimentError.from_code(
                ErrorCode.PROCESS_ID_BY_NAME_FAILED, process_cmd, err
            )
            logger.error(error.message)
            raise error from err
        name, parameter = process_cmd, "process-cmd"
    elif local_ports:
        try:
            ports = parse_integer_list("local-port", local_ports)
        except ValueError as err:
            raise ExperimentError.from_code(
                ErrorCode.PARAMETER_ILLEGAL, "local-port", local_ports, err
            ) from err
        try:
            pids = channel.pids_by_local_ports(ctx, ports)
        except _LOOKUP_ERRORS:
            pids = []
        name, parameter = local_ports, "local-port"
    if not pids:
        raise ExperimentError.from_code(ErrorCode.PARAMETER_INVALID_PRO_NAME, parameter, name)


def get_pids(ctx: ExecContext, channel: Channel, model: ExpModel) -> list[str]:
    """Pids matched by the model's flags, without duplicates and limited by ``count``.

    Returns an empty list only when ``ignore-not-found`` is set and nothing matched.
    """
    flags = model.action_flags
    count_value = flags.get("count", "")
    process = flags.get("process", "")
    process_cmd = flags.get("process-cmd", "")
    local_ports = flags.get("local-port", "")
    exclude_process = flags.get("exclude-process", "")
    ignore_not_found = flags.get("ignore-not-found", "") == "true"

    if not process and not process_cmd and not local_ports:
        logger.error("less process, process-cmd and local-port, less process matcher")
        raise ExperimentError.from_code(ErrorCode.PARAMETER_LESS, "process|process-cmd|local-port")

    ctx = ctx.with_value(EXCLUDE_PROCESS_KEY, f"blade,{exclude_process}")
    if not ignore_not_found:
        check_process_invalid(ctx, process, process_cmd, local_ports, channel)

    count = 0
    if count_value:
        try:
            count = int(count_value)
        except ValueError as err:
            error = ExperimentError.from_code(
                ErrorCode.PARAMETER_ILLEGAL, "count", count_value, err
            )
            logger.error(error.message)
            raise error from err

    pids: list[str] = []
    name = ""
    if process:
        try:
            pids = channel.pids_by_process_name(ctx, process)
        except _LOOKUP_ERRORS as err:
            raise ExperimentError(
                ErrorCode.OS_CMD_EXEC_FAILED, f"get pids by processname err, {err}"
            ) from err
        name = process
    elif process_cmd:
        try:
            pids = channel.pids_by_process_cmd(ctx, process_cmd)
        except _LOOKUP_ERRORS as err:
            raise ExperimentError(
                ErrorCode.OS_CMD_EXEC_FAILED, f"get pids by processcmdname err, {err}"
            ) from err
        name = process_cmd
    else:
        try:
            ports = parse_integer_list("local-port", local_ports)
        except ValueError as err:
            raise ExperimentError(
                ErrorCode.PARAMETER_ILLEGAL, f"illegal parameter local-port, {err}"
            ) from err
        try:
            pids = channel.pids_by_local_ports(ctx, ports)
        except _LOOKUP_ERRORS as err:
            raise ExperimentError(
                ErrorCode.PARAMETER_ILLEGAL, f"illegal parameter ports, {err}"
            ) from err

    if not pids:
        if ignore_not_found:
            return []
        raise ExperimentError(ErrorCode.OS_CMD_EXEC_FAILED, f"{name} process not found")

    pids = remove_duplicates(pids)
    if count > 0:
        pids = pids[:count]
    return pids


class KillProcessExecutor(Executor):
    """Sends a signal to the matched processes."""

    name = "kill"

    def exec(self, uid: str, ctx: ExecContext, model: ExpModel) -> Response:
        if ctx.destroy:
            return Response.ok(uid)
        pids = get_pids(ctx, self.channel, model)
        if not pids:
            return Response.ok()
        signal = model.action_flags.get("signal", "")
        if not signal:
            logger.error("less signal flag value")
            raise ExperimentError.from_code(ErrorCode.PARAMETER_LESS, "signal")
        return _check(self.channel.run(ctx, "kill", f"-{signal} {' '.join(pids)}"))


class StopProcessExecutor(Executor):
    """Pauses the matched processes; destroying the experiment resumes them."""

    name = "stop"

    def exec(self, uid: str, ctx: ExecContext, model: ExpModel) -> Response:
        pids = get_pids(ctx, self.channel, model)
        if not pids:
            return Response.ok()
        signal = "CONT" if ctx.destroy else "STOP"
        return _check(self.channel.run(ctx, "kill", f"-{signal} {' '.join(pids)}"))


def new_kill_process_action_spec() -> ActionSpec:
    """The ``process kill`` action."""
    return ActionSpec(
        name="kill",
        short_desc="Kill process",
        default_long_desc="Kill process by process id or process name",
        matchers=_matcher_flags(),
        flags=[],
        executor=KillProcessExecutor(),
        example=_KILL_EXAMPLE,
        programs=[KILL_PROCESS_BIN],
        categories=[SYSTEM_PROCESS],
        aliases=["k"],
    )


def new_stop_process_action_spec() -> ActionSpec:
    """The ``process stop`` action."""
    return ActionSpec(
        name="stop",
        short_desc="process fake death",
        default_long_desc="process fake death by process id or process name",
        matchers=_matcher_flags(),
        flags=[],
        executor=StopProcessExecutor(),
        example=_STOP_EXAMPLE,
        programs=[STOP_PROCESS_BIN],
        categories=[SYSTEM_PROCESS],
        aliases=["f"],
    )


def new_process_command_spec() -> ModelSpec:
    """The ``process`` experiment model."""
    return ModelSpec(
        name="process",
        short_desc="Process experiment",
        long_desc="Process experiment, for example, kill process",
        flags=[
            ExpFlag(
                name="ignore-not-found",
                desc="Ignore process that cannot be found",
                no_args=True,
            )
        ],
        actions=[new_kill_process_action_spec(), new_stop_process_action_spec()],
    )