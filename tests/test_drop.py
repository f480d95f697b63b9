import pytest

from chaosos.drop import (
    DROP_NETWORK_BIN,
    NetworkDropExecutor,
    build_iptables_args,
    new_drop_action_spec,
)
from chaosos.spec import (
    Channel,
    ErrorCode,
    ExecContext,
    ExperimentError,
    ExpModel,
    Response,
)


class FakeChannel(Channel):
    def __init__(self, failing=(), missing=()):
        self.calls = []
        self.failing = failing
        self.missing = set(missing)

    def run(self, ctx, command, args):
        self.calls.append((command, args))
        line = f"{command} {args}"
        if any(marker in line for marker in self.failing):
            return Response(success=False, err="boom")
        return Response.ok("")

    def is_command_available(self, ctx, command):
        return command not in self.missing

    def pids_by_process_name(self, ctx, name):
        return []

    def pids_by_process_cmd(self, ctx, name):
        return []

    def pids_by_local_ports(self, ctx, ports):
        return []


def _executor(channel):
    return NetworkDropExecutor(channel)


def _model(**flags):
    return ExpModel("network", "drop", {k.replace("_", "-"): v for k, v in flags.items()})


def test_build_args_source_ip():
    args = build_iptables_args("-A", "INPUT", "tcp", "10.10.10.10", "", "", "", "")
    assert args == "-A INPUT -p tcp -s 10.10.10.10 -j DROP"


def test_build_args_multiport_and_single_port():
    multi = build_iptables_args("-A", "INPUT", "udp", "", "", "", "80,81", "")
    single = build_iptables_args("-A", "INPUT", "udp", "", "", "80", "", "")
    assert "-m multiport --dports 80,81" in multi
    assert "--sport 80" in single
    assert "multiport" not in single


def test_build_args_string_pattern_order():
    args = build_iptables_args("-A", "OUTPUT", "tcp", "", "", "", "80", "baidu.com")
    assert args.index("--dport 80") < args.index("-m string --string baidu.com --algo bm")
    assert args.endswith("-j DROP")


def test_start_inbound_only_adds_input_rules():
    channel = FakeChannel()
    _executor(channel).exec("uid", ExecContext(), _model(source_ip="10.10.10.10", network_traffic="in"))
    assert [c for c, _ in channel.calls] == ["iptables", "iptables"]
    assert all(args.startswith("-A INPUT") for _, args in channel.calls)
    assert [a.split()[3] for _, a in channel.calls] == ["tcp", "udp"]


def test_start_both_directions_by_default():
    channel = FakeChannel()
    _executor(channel).exec("uid", ExecContext(), _model(destination_port="80"))
    flows = [args.split()[1] for _, args in channel.calls]
    assert flows == ["INPUT", "INPUT", "OUTPUT", "OUTPUT"]


def test_start_without_matchers_raises():
    channel = FakeChannel()
    with pytest.raises(ExperimentError) as info:
        _executor(channel).exec("uid", ExecContext(), _model(network_traffic="in"))
    assert info.value.code is ErrorCode.OS_CMD_EXEC_FAILED
    assert info.value.message == "must specify ip or port or string flag"
    assert channel.calls == []


def test_destroy_deletes_matching_rules():
    create = FakeChannel()
    destroy = FakeChannel()
    model = _model(source_port="8080", network_traffic="out")
    _executor(create).exec("uid", ExecContext(), model)
    _executor(destroy).exec("uid", ExecContext(destroy=True), model)
    assert [a.replace("-A ", "-D ", 1) for _, a in create.calls] == [a for _, a in destroy.calls]


def test_failure_rolls_back_and_raises():
    channel = FakeChannel(failing=("-A INPUT -p tcp",))
    with pytest.raises(ExperimentError):
        _executor(channel).exec("uid", ExecContext(), _model(source_ip="1.2.3.4", network_traffic="in"))
    assert any(args.startswith("-D INPUT") for _, args in channel.calls)


def test_missing_iptables_raises():
    channel = FakeChannel(missing=("iptables",))
    with pytest.raises(ExperimentError) as info:
        _executor(channel).exec("uid", ExecContext(), _model(source_ip="1.2.3.4"))
    assert info.value.code is ErrorCode.COMMAND_NOT_FOUND


def test_action_spec():
    spec = new_drop_action_spec()
    assert spec.name == "drop"
    assert spec.programs == [DROP_NETWORK_BIN]
    assert [f.name for f in spec.matchers] == [
        "source-ip",
        "destination-ip",
        "source-port",
        "destination-port",
        "string-pattern",
        "network-traffic",
    ]
    assert spec.long_description() == "Drop network data"