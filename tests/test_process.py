import pytest

from chaosos.process import (
    KillProcessExecutor,
    StopProcessExecutor,
    check_process_invalid,
    get_pids,
    new_kill_process_action_spec,
    new_process_command_spec,
    new_stop_process_action_spec,
)
from chaosos.spec import (
    EXCLUDE_PROCESS_KEY,
    Channel,
    ErrorCode,
    ExecContext,
    ExperimentError,
    ExpModel,
    Response,
)


class FakeChannel(Channel):
    def __init__(self, by_name=None, by_cmd=None, by_ports=None, fail_run=False):
        self.by_name = by_name or {}
        self.by_cmd = by_cmd or {}
        self.by_ports = by_ports or []
        self.fail_run = fail_run
        self.calls = []
        self.port_queries = []
        self.contexts = []

    def run(self, ctx, command, args):
        self.calls.append((command, args))
        if self.fail_run:
            return Response(success=False, err="boom")
        return Response.ok("")

    def is_command_available(self, ctx, command):
        return True

    def pids_by_process_name(self, ctx, name):
        self.contexts.append(ctx)
        return list(self.by_name.get(name, []))

    def pids_by_process_cmd(self, ctx, name):
        self.contexts.append(ctx)
        return list(self.by_cmd.get(name, []))

    def pids_by_local_ports(self, ctx, ports):
        self.port_queries.append(list(ports))
        return list(self.by_ports)


def model(action, **flags):
    return ExpModel(target="process", action_name=action, action_flags=dict(flags))


def test_kill_sends_signal_to_deduplicated_pids():
    channel = FakeChannel(by_name={"java": ["10", "11", "10"]})
    result = KillProcessExecutor(channel).exec("u", ExecContext(), model("kill", process="java", signal="9"))
    assert result.success
    assert channel.calls == [("kill", "-9 10 11")]


def test_kill_count_limits_pids():
    channel = FakeChannel(by_cmd={"java": ["1", "2", "3"]})
    KillProcessExecutor(channel).exec(
        "u", ExecContext(), model("kill", **{"process-cmd": "java", "signal": "15", "count": "2"})
    )
    assert channel.calls == [("kill", "-15 1 2")]


def test_kill_destroy_returns_uid_without_running():
    channel = FakeChannel(by_name={"java": ["1"]})
    result = KillProcessExecutor(channel).exec(
        "abc", ExecContext(destroy=True), model("kill", process="java", signal="9")
    )
    assert result.result == "abc"
    assert channel.calls == []


def test_kill_without_signal_raises():
    channel = FakeChannel(by_name={"java": ["1"]})
    with pytest.raises(ExperimentError) as info:
        KillProcessExecutor(channel).exec("u", ExecContext(), model("kill", process="java"))
    assert info.value.code is ErrorCode.PARAMETER_LESS
    assert "signal" in info.value.message


def test_missing_matchers_raise_parameter_less():
    with pytest.raises(ExperimentError) as info:
        get_pids(ExecContext(), FakeChannel(), model("kill", signal="9"))
    assert info.value.code is ErrorCode.PARAMETER_LESS
    assert "process|process-cmd|local-port" in info.value.message


def test_not_found_raises_invalid_process_name():
    with pytest.raises(ExperimentError) as info:
        get_pids(ExecContext(), FakeChannel(), model("kill", process="ghost"))
    assert info.value.code is ErrorCode.PARAMETER_INVALID_PRO_NAME
    assert "ghost" in info.value.message


def test_ignore_not_found_succeeds_without_running():
    channel = FakeChannel()
    result = KillProcessExecutor(channel).exec(
        "u", ExecContext(), model("kill", process="ghost", signal="9", **{"ignore-not-found": "true"})
    )
    assert result.success
    assert channel.calls == []


def test_illegal_count_raises():
    channel = FakeChannel(by_name={"java": ["1"]})
    with pytest.raises(ExperimentError) as info:
        get_pids(ExecContext(), channel, model("kill", process="java", count="many"))
    assert info.value.code is ErrorCode.PARAMETER_ILLEGAL
    assert "many" in info.value.message


def test_local_port_range_is_expanded():
    channel = FakeChannel(by_ports=["42"])
    pids = get_pids(ExecContext(), channel, model("kill", **{"local-port": "80-82"}))
    assert pids == ["42"]
    assert channel.port_queries[-1] == ["80", "81", "82"]


def test_exclude_process_is_passed_in_context():
    channel = FakeChannel(by_name={"java": ["1"]})
    get_pids(ExecContext(), channel, model("kill", process="java", **{"exclude-process": "agent"}))
    assert all(ctx.values[EXCLUDE_PROCESS_KEY] == "blade,agent" for ctx in channel.contexts)


def test_check_process_invalid_illegal_local_port():
    with pytest.raises(ExperimentError) as info:
        check_process_invalid(ExecContext(), "", "", "abc", FakeChannel())
    assert info.value.code is ErrorCode.PARAMETER_ILLEGAL


def test_check_process_invalid_passes_when_found():
    channel = FakeChannel(by_cmd={"nginx": ["7"]})
    assert check_process_invalid(ExecContext(), "", "nginx", "", channel) is None
    assert len(channel.contexts) == 1


def test_stop_pauses_and_destroy_resumes():
    channel = FakeChannel(by_name={"java": ["5", "6"]})
    executor = StopProcessExecutor(channel)
    executor.exec("u", ExecContext(), model("stop", process="java"))
    executor.exec("u", ExecContext(destroy=True), model("stop", process="java"))
    assert channel.calls == [("kill", "-STOP 5 6"), ("kill", "-CONT 5 6")]


def test_run_failure_raises():
    channel = FakeChannel(by_name={"java": ["5"]}, fail_run=True)
    with pytest.raises(ExperimentError) as info:
        StopProcessExecutor(channel).exec("u", ExecContext(), model("stop", process="java"))
    assert info.value.message == "boom"


def test_specs():
    spec = new_process_command_spec()
    assert [action.name for action in spec.actions] == ["kill", "stop"]
    assert [flag.name for flag in spec.flags] == ["ignore-not-found"]
    assert new_kill_process_action_spec().aliases == ["k"]
    stop = new_stop_process_action_spec()
    assert stop.aliases == ["f"]
    assert stop.programs == ["chaos_stopprocess"]
    assert stop.long_description() == "process fake death by process id or process name"
    assert [flag.name for flag in stop.matchers] == [
        "process", "process-cmd", "count", "local-port", "signal", "exclude-process"
    ]