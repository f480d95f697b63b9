"""Systemd experiment: stops a running service and starts it again on destroy."""

from __future__ import annotations

import logging
import os

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

STOP_SYSTEMD_BIN = "chaos_stopsystemd"
SYSTEM_SYSTEMD = "system/systemd"

_EXAMPLE = """
 # Stop the service test
 blade create systemd stop --service test"""


def _check(response: Response) -> Response:
    if not response.success:
        raise ExperimentError(response.code or ErrorCode.OS_CMD_EXEC_FAILED, response.err)
    return response


def check_service_invalid(ctx: ExecContext, service: str, channel: Channel) -> None:
    """Raise unless systemctl exists and ``service`` is running."""
    if not channel.is_command_available(ctx, "systemctl"):
        logger.error(ErrorCode.COMMAND_SYSTEMCTL_NOT_FOUND.value)
        raise ExperimentError.from_code(ErrorCode.COMMAND_SYSTEMCTL_NOT_FOUND)
    response = channel.run(
        ctx, "systemctl", f"status \"{service}\" | grep 'Active' | grep 'running'"
    )
    if not response.success:
        error = ExperimentError.from_code(ErrorCode.SYSTEMD_NOT_FOUND, service, response.err)
        logger.error(error.message)
        raise error


class StopSystemdExecutor(Executor):
    """Stops a systemd service; destroying the experiment starts it again."""

    name = "stop"

    def exec(self, uid: str, ctx: ExecContext, model: ExpModel) -> Response:
        channel: Channel = self.channel
        service = model.action_flags.get("service", "")
        if not service:
            logger.error("less service name")
            raise ExperimentError.from_code(ErrorCode.PARAMETER_LESS, "service")
        if ctx.destroy:
            return _check(channel.run(ctx, "systemctl", f"start {service}"))
        check_service_invalid(ctx, service, channel)
        program = os.path.join(channel.script_path(), STOP_SYSTEMD_BIN)
        return _check(channel.run(ctx, program, f"--service {service}"))


def new_stop_systemd_action_spec() -> ActionSpec:
    """The ``systemd stop`` action."""
    return ActionSpec(
        name="stop",
        short_desc="Stop systemd",
        default_long_desc="Stop system by service name",
        matchers=[ExpFlag(name="service", desc="Service name")],
        flags=[],
        executor=StopSystemdExecutor(),
        example=_EXAMPLE,
        programs=[STOP_SYSTEMD_BIN],
        categories=[SYSTEM_SYSTEMD],
        aliases=["s"],
    )


def new_systemd_command_spec() -> ModelSpec:
    """The ``systemd`` experiment model."""
    return ModelSpec(
        name="systemd",
        short_desc="Systemd experiment",
        long_desc="Systemd experiment, for example, stop systemd",
        flags=[
            ExpFlag(
                name="ignore-not-found",
                desc="Ignore systemd that cannot be found",
                no_args=True,
            )
        ],
        actions=[new_stop_systemd_action_spec()],
    )