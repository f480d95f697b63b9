"""Core experiment types: flags, models, contexts, responses, channels and executors."""

from __future__ import annotations

import logging
import os
import shutil
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

BLADE_VERSION = "latest"

TRUE = "true"
LOCAL_CHANNEL = "local"
NSEXEC_CHANNEL = "nsexec"
EXCLUDE_PROCESS_KEY = "excludeProcess"


class ErrorCode(Enum):
    """Failure kinds, each carrying its message template."""

    OS_CMD_EXEC_FAILED = "{0}"
    PARAMETER_LESS = "less parameter: `{0}`"
    PARAMETER_ILLEGAL = "illegal `{0}` parameter value: `{1}`. {2}"
    PARAMETER_INVALID = "invalid `{0}` parameter value: `{1}`. {2}"
    PARAMETER_INVALID_PRO_NAME = "invalid parameter `{0}`, `{1}` process not found"
    PROCESS_ID_BY_NAME_FAILED = "`{0}`: get process id by name failed, {1}"
    FORBIDDEN = "no permission to perform the operation"
    BACKFILE_EXISTS = "`{0}`: backup file exists, an experiment may be running"
    FILE_NOT_EXIST = "`{0}`: file does not exist"
    COMMAND_NOT_FOUND = "`{0}`: command not found"
    COMMAND_SYSTEMCTL_NOT_FOUND = "`systemctl`: command not found"
    SYSTEMD_NOT_FOUND = "`{0}`: systemd service not found, {1}"
    COMMAND_SS_NOT_FOUND = "`ss`: command not found"


class ExperimentError(Exception):
    """Raised when an experiment cannot be created or destroyed."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    @classmethod
    def from_code(cls, code: ErrorCode, *args: Any) -> "ExperimentError":
        return cls(code, code.value.format(*args))


@dataclass
class Response:
    """Outcome of a command run through a channel."""

    success: bool = True
    result: Any = None
    err: str = ""
    code: ErrorCode | None = None

    @classmethod
    def ok(cls, result: Any = None) -> "Response":
        return cls(success=True, result=result)


@dataclass
class ExpFlag:
    name: str
    desc: str = ""
    default: str = ""
    required: bool = False
    required_when_destroyed: bool = False
    no_args: bool = False


@dataclass
class ExpModel:
    target: str
    action_name: str
    action_flags: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ExecContext:
    """Immutable execution context passed to executors and channels."""

    uid: str = ""
    destroy: bool = False
    values: Mapping[str, Any] = field(default_factory=dict)

    def with_value(self, key: str, value: Any) -> "ExecContext":
        return replace(self, values={**self.values, key: value})


class Channel(ABC):
    """Runs commands on behalf of an executor."""

    @abstractmethod
    def run(self, ctx: ExecContext, command: str, args: str) -> Response:
        """Run ``command`` with the shell argument string ``args``."""

    def is_command_available(self, ctx: ExecContext, command: str) -> bool:
        return shutil.which(command) is not None

    def require_commands(self, ctx: ExecContext, commands: Iterable[str]) -> None:
        for command in commands:
            if not self.is_command_available(ctx, command):
                raise ExperimentError.from_code(ErrorCode.COMMAND_NOT_FOUND, command)

    def file_exists(self, ctx: ExecContext, path: str) -> bool:
        return self.run(ctx, "test", f"-e {path}").success

    @abstractmethod
    def pids_by_process_name(self, ctx: ExecContext, name: str) -> list[str]:
        """Pids of processes whose name matches ``name``."""

    @abstractmethod
    def pids_by_process_cmd(self, ctx: ExecContext, name: str) -> list[str]:
        """Pids of processes whose command line contains ``name``."""

    @abstractmethod
    def pids_by_local_ports(self, ctx: ExecContext, ports: list[str]) -> list[str]:
        """Pids of processes listening on the given local ports."""

    def script_path(self) -> str:
        return os.path.dirname(os.path.abspath(sys.argv[0]))


class Executor(ABC):
    """Carries out one experiment action through a channel."""

    name = ""

    def __init__(self, channel: Channel | None = None) -> None:
        self.channel = channel

    @abstractmethod
    def exec(self, uid: str, ctx: ExecContext, model: ExpModel) -> Response:
        """Create or destroy the experiment described by ``model``."""


@dataclass
class ActionSpec:
    name: str
    short_desc: str
    default_long_desc: str
    matchers: list[ExpFlag] = field(default_factory=list)
    flags: list[ExpFlag] = field(default_factory=list)
    executor: Executor | None = None
    example: str = ""
    programs: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    aliases: list[str] = field(default_factory=list)
    long_desc: str = ""
    process_hang: bool = False

    def long_description(self) -> str:
        return self.long_desc or self.default_long_desc


@dataclass
class ModelSpec:
    name: str
    short_desc: str
    long_desc: str
    flags: list[ExpFlag] = field(default_factory=list)
    actions: list[ActionSpec] = field(default_factory=list)


UID_FLAG = ExpFlag(name="uid", desc="uid", default="")
DEBUG_FLAG = ExpFlag(name="debug", desc="debug", default="")
CHANNEL_FLAG = ExpFlag(name="channel", desc="channel", default="local")
NS_TARGET_FLAG = ExpFlag(name="ns_target", desc="target pid", default="")
NS_PID_FLAG = ExpFlag(name="ns_pid", desc="pid namespace", default="false")
NS_MNT_FLAG = ExpFlag(name="ns_mnt", desc="mnt namespace", default="false")
NS_NET_FLAG = ExpFlag(name="ns_net", desc="net namespace", default="false")


def parse_integer_list(flag_name: str, value: str) -> list[str]:
    """Expand a list such as ``80,8000-8080`` into individual numbers as strings."""
    numbers: list[str] = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            bounds = part.split("-")
            if len(bounds) != 2:
                raise ValueError(f"illegal {flag_name} value: {part}")
            try:
                start, end = int(bounds[0]), int(bounds[1])
            except ValueError as err:
                raise ValueError(f"illegal {flag_name} value: {part}, {err}") from err
            if start > end:
                raise ValueError(f"illegal {flag_name} range: {part}")
            numbers.extend(str(n) for n in range(start, end + 1))
        else:
            try:
                numbers.append(str(int(part)))
            except ValueError as err:
                raise ValueError(f"illegal {flag_name} value: {part}, {err}") from err
    return numbers


def remove_duplicates(items: Iterable[str]) -> list[str]:
    """Drop repeated items, keeping the first occurrence of each."""
    return list(dict.fromkeys(items))