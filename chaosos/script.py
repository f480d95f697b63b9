"""Script experiments: inject a delay or an early exit into a shell function."""

from __future__ import annotations

import contextlib
import logging
import struct

from chaosos.spec import (
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
)

logger = logging.getLogger(__name__)

SYSTEM_SCRIPT = "system/script"
BAK_FILE_SUFFIX = "_chaosblade.bak"
_REQUIRED_COMMANDS = ("cat", "rm", "sed", "awk", "rm")

_DELAY_EXAMPLE = """
# Add commands to the script "start0() { sleep 10.000000 ...}"
blade create script delay --time 10000 --file test.sh --function-name start0"""

_EXIT_EXAMPLE = """
# Add commands to the script "start0() { echo this-is-error-message; exit 1; ... }"
blade create script exit --exit-code 1 --exit-message this-is-error-message --file test.sh --function-name start0"""


def _check(response: Response) -> Response:
    if not response.success:
        raise ExperimentError(response.code or ErrorCode.OS_CMD_EXEC_FAILED, response.err)
    return response


def backup_file_path(script_file: str) -> str:
    """Path of the backup copy kept while an experiment is running."""
    return script_file + BAK_FILE_SUFFIX


def back_up_script(ctx: ExecContext, channel: Channel, script_file: str) -> Response:
    """Copy the script to its backup path; fail if a backup already exists."""
    bak_file = backup_file_path(script_file)
    if channel.file_exists(ctx, bak_file):
        raise ExperimentError.from_code(ErrorCode.BACKFILE_EXISTS, bak_file)
    return _check(channel.run(ctx, "cat", f"{script_file} > {bak_file}"))


def recover_script(ctx: ExecContext, channel: Channel, script_file: str) -> Response:
    """Restore the script from its backup and remove the backup."""
    bak_file = backup_file_path(script_file)
    if not channel.file_exists(ctx, bak_file):
        raise ExperimentError.from_code(ErrorCode.FILE_NOT_EXIST, bak_file)
    _check(channel.run(ctx, "cat", f"{bak_file} > {script_file}"))
    return _check(channel.run(ctx, "rm", f"-rf {bak_file}"))


def insert_content_into_script(
    ctx: ExecContext, channel: Channel, function_name: str, new_content: str, script_file: str
) -> Response:
    """Insert ``new_content`` on the line after the definition of ``function_name``."""
    response = _check(
        channel.run(ctx, "awk", f"'/{function_name} *\\(\\) *\\{{/{{print NR}}' {script_file}")
    )
    result = str(response.result or "").strip()
    line_numbers = result.split("\n")
    if len(line_numbers) > 1:
        raise ExperimentError.from_code(
            ErrorCode.PARAMETER_ILLEGAL,
            "function-name",
            function_name,
            "the function name must be unique in the script",
        )
    if not line_numbers[0].strip():
        raise ExperimentError.from_code(
            ErrorCode.PARAMETER_ILLEGAL,
            "function-name",
            function_name,
            "cannot find the function name in the script",
        )
    line_number = line_numbers[0]
    return _check(channel.run(ctx, "sed", f"-i '{line_number} a {new_content}' {script_file}"))


def _inject(ctx: ExecContext, channel: Channel, script_file: str, function_name: str,
            content: str) -> Response:
    back_up_script(ctx, channel, script_file)
    try:
        return insert_content_into_script(ctx, channel, function_name, content, script_file)
    except ExperimentError:
        with contextlib.suppress(ExperimentError):
            recover_script(ctx, channel, script_file)
        raise


def _to_float32(value: float) -> float:
    return struct.unpack("f", struct.pack("f", value))[0]


class ScriptDelayExecutor(Executor):
    """Makes a shell function sleep before running its body."""

    name = "delay"

    def exec(self, uid: str, ctx: ExecContext, model: ExpModel) -> Response:
        channel: Channel = self.channel
        channel.require_commands(ctx, _REQUIRED_COMMANDS)
        flags = model.action_flags
        script_file = flags.get("file", "")
        if not script_file:
            logger.error("file is nil")
            raise ExperimentError.from_code(ErrorCode.PARAMETER_LESS, "file")
        if not channel.file_exists(ctx, script_file):
            logger.error("`%s`, file is invalid. it not found", script_file)
            raise ExperimentError.from_code(
                ErrorCode.PARAMETER_INVALID, "file", script_file, "it is not found"
            )
        if ctx.destroy:
            return recover_script(ctx, channel, script_file)
        function_name = flags.get("function-name", "")
        if not function_name:
            logger.error("function-name")
            raise ExperimentError.from_code(ErrorCode.PARAMETER_LESS, "function-name")
        delay = flags.get("time", "")
        if not delay:
            logger.error("time")
            raise ExperimentError.from_code(ErrorCode.PARAMETER_LESS, "time")
        try:
            millis = int(delay)
        except ValueError as err:
            logger.error("time %s it must be a positive integer", delay)
            raise ExperimentError.from_code(
                ErrorCode.PARAMETER_ILLEGAL, "time", delay, "ti must be a positive integer"
            ) from err
        seconds = _to_float32(_to_float32(float(millis)) / 1000.0)
        return _inject(ctx, channel, script_file, function_name, f"sleep {seconds:.6f}")


class ScriptExitExecutor(Executor):
    """Makes a shell function print a message and exit with a code."""

    name = "exit"

    def exec(self, uid: str, ctx: ExecContext, model: ExpModel) -> Response:
        channel: Channel = self.channel
        channel.require_commands(ctx, _REQUIRED_COMMANDS)
        flags = model.action_flags
        script_file = flags.get("file", "")
        if not script_file:
            logger.error("file is nil")
            raise ExperimentError.from_code(ErrorCode.PARAMETER_LESS, "file")
        if not channel.file_exists(ctx, script_file):
            logger.error("`%s`, file is invalid. it not found", script_file)
            raise ExperimentError.from_code(
                ErrorCode.PARAMETER_ILLEGAL, "file", script_file, "the file is not found"
            )
        if ctx.destroy:
            return recover_script(ctx, channel, script_file)
        function_name = flags.get("function-name", "")
        if not function_name:
            logger.error("function-name is nil")
            raise ExperimentError.from_code(ErrorCode.PARAMETER_LESS, "function-name")
        exit_message = flags.get("exit-message", "")
        exit_code = flags.get("exit-code", "") or "1"
        content = f'echo "{exit_message}";' if exit_message else ""
        content = f"{content}exit {exit_code}"
        return _inject(ctx, channel, script_file, function_name, content)


def new_script_delay_action_spec() -> ActionSpec:
    """The ``script delay`` action."""
    return ActionSpec(
        name="delay",
        short_desc="Script executed delay",
        default_long_desc="Sleep in script",
        matchers=[],
        flags=[ExpFlag(name="time", desc="sleep time, unit is millisecond", required=True)],
        executor=ScriptDelayExecutor(),
        example=_DELAY_EXAMPLE,
        categories=[SYSTEM_SCRIPT],
    )


def new_script_exit_action_spec() -> ActionSpec:
    """The ``script exit`` action."""
    return ActionSpec(
        name="exit",
        short_desc="Exit script",
        default_long_desc="Exit script with specify message and code",
        matchers=[],
        flags=[
            ExpFlag(name="exit-code", desc="Exit code"),
            ExpFlag(name="exit-message", desc="Exit message"),
        ],
        executor=ScriptExitExecutor(),
        example=_EXIT_EXAMPLE,
        categories=[SYSTEM_SCRIPT],
    )


def new_script_command_spec() -> ModelSpec:
    """The ``script`` experiment model."""
    return ModelSpec(
        name="script",
        short_desc="Script chaos experiment",
        long_desc="Script chaos experiment",
        flags=[
            ExpFlag(
                name="file",
                desc="Script file full path",
                required=True,
                required_when_destroyed=True,
            ),
            ExpFlag(name="function-name", desc="function name in shell", required=True),
        ],
        actions=[new_script_delay_action_spec(), new_script_exit_action_spec()],
    )