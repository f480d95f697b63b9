"""Network drop experiment: drops matching packets with iptables rules."""

from __future__ import annotations

import contextlib
import logging

from chaosos.spec import (
    ActionSpec,
    Channel,
    ErrorCode,
    ExecContext,
    Executor,
    ExperimentError,
    ExpFlag,
    ExpModel,
    Response,
)

logger = logging.getLogger(__name__)

DROP_NETWORK_BIN = "chaos_dropnetwork"
SYSTEM_NETWORK = "system/network"

APPEND = "-A"
DELETE = "-D"
PROTOCOLS = ("tcp", "udp")

_EXAMPLE = """
# Block incoming connection from the source ip 10.10.10.10
blade create network drop --source-ip 10.10.10.10 --network-traffic in

# Block incoming connection to the destination ip 10.10.10.10
blade create network drop --destination-ip 10.10.10.10 --network-traffic in

# Block incoming connection from the port 80
blade create network drop --source-port 80 --network-traffic in

# Block incoming connection to the port 80 and 81
blade create network drop --destination-port 80,81 --network-traffic in

# Block outgoing connection to the port 80
blade create network drop --destination-port 80 --network-traffic out

# Block outgoing connection to the specific domain
blade create network drop --string-pattern baidu.com --network-traffic out

# Block outgoing connection to the specific domain on port 80
blade create network drop --destination-port 80 --string-pattern baidu.com --network-traffic out
"""


def _port_match(port: str, direction: str) -> str:
    if "," in port:
        return f"-m multiport --{direction}s {port}"
    return f"--{direction} {port}"


def build_iptables_args(
    operation: str,
    net_flow: str,
    protocol: str,
    source_ip: str,
    destination_ip: str,
    source_port: str,
    destination_port: str,
    string_pattern: str,
) -> str:
    """The iptables argument string for one chain and protocol."""
    parts = [f"{operation} {net_flow} -p {protocol}"]
    if source_ip:
        parts.append(f"-s {source_ip}")
    if destination_ip:
        parts.append(f"-d {destination_ip}")
    if source_port:
        parts.append(_port_match(source_port, "sport"))
    if destination_port:
        parts.append(_port_match(destination_port, "dport"))
    if string_pattern:
        parts.append(f"-m string --string {string_pattern} --algo bm")
    parts.append("-j DROP")
    return " ".join(parts)


def _net_flows(network_traffic: str) -> list[str]:
    if network_traffic == "in":
        return ["INPUT"]
    if network_traffic == "out":
        return ["OUTPUT"]
    return ["INPUT", "OUTPUT"]


def _check(response: Response) -> Response:
    if not response.success:
        raise ExperimentError(response.code or ErrorCode.OS_CMD_EXEC_FAILED, response.err)
    return response


class NetworkDropExecutor(Executor):
    """Adds or removes iptables DROP rules for tcp and udp traffic."""

    name = "drop"

    def exec(self, uid: str, ctx: ExecContext, model: ExpModel) -> Response:
        channel: Channel = self.channel
        channel.require_commands(ctx, ["iptables"])
        flags = model.action_flags
        matchers = (
            flags.get("source-ip", ""),
            flags.get("destination-ip", ""),
            flags.get("source-port", ""),
            flags.get("destination-port", ""),
            flags.get("string-pattern", ""),
        )
        network_traffic = flags.get("network-traffic", "")
        if ctx.destroy:
            return self._stop(ctx, matchers, network_traffic)
        return self._start(ctx, matchers, network_traffic)

    def _start(
        self, ctx: ExecContext, matchers: tuple[str, ...], network_traffic: str
    ) -> Response:
        if not any(matchers):
            raise ExperimentError(
                ErrorCode.OS_CMD_EXEC_FAILED, "must specify ip or port or string flag"
            )
        response = Response.ok()
        for net_flow in _net_flows(network_traffic):
            for protocol in PROTOCOLS:
                args = build_iptables_args(APPEND, net_flow, protocol, *matchers)
                response = self.channel.run(ctx, "iptables", args)
                if not response.success:
                    with contextlib.suppress(ExperimentError):
                        self._stop(ctx, matchers, network_traffic)
                    return _check(response)
        return response

    def _stop(
        self, ctx: ExecContext, matchers: tuple[str, ...], network_traffic: str
    ) -> Response:
        response = Response.ok()
        for net_flow in _net_flows(network_traffic):
            for protocol in PROTOCOLS:
                args = build_iptables_args(DELETE, net_flow, protocol, *matchers)
                response = _check(self.channel.run(ctx, "iptables", args))
        return response


def new_drop_action_spec() -> ActionSpec:
    """The ``network drop`` action."""
    return ActionSpec(
        name="drop",
        short_desc="Drop experiment",
        default_long_desc="Drop network data",
        matchers=[
            ExpFlag(name="source-ip", desc="The source ip address of packet"),
            ExpFlag(name="destination-ip", desc="The destination ip address of packet"),
            ExpFlag(name="source-port", desc="The source port of packet"),
            ExpFlag(name="destination-port", desc="The destination port of packet"),
            ExpFlag(name="string-pattern", desc="The string that is contained in the packet"),
            ExpFlag(name="network-traffic", desc="The direction of network traffic"),
        ],
        flags=[],
        executor=NetworkDropExecutor(),
        example=_EXAMPLE,
        programs=[DROP_NETWORK_BIN],
        categories=[SYSTEM_NETWORK],
    )