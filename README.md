# chaosos

`chaosos` describes and carries out fault-injection experiments on a Linux
host. Each experiment is an *action* of a *model*, for example `network drop`,
`process kill` or `time travel`. An experiment is created, and later destroyed
to undo what it did.

The package never runs anything on its own. Every shell command an
experiment needs goes through a `chaosos.spec.Channel` that you provide, so
the same experiments can be run locally, over a remote connection, or against
a recording stand-in in tests.

## Experiments

| Module               | Model     | Actions          | Executors                                   |
|----------------------|-----------|------------------|---------------------------------------------|
| `chaosos.drop`       | `network` | `drop`           | `NetworkDropExecutor`                       |
| `chaosos.process`    | `process` | `kill`, `stop`   | `KillProcessExecutor`, `StopProcessExecutor` |
| `chaosos.script`     | `script`  | `delay`, `exit`  | `ScriptDelayExecutor`, `ScriptExitExecutor` |
| `chaosos.systemd`    | `systemd` | `stop`           | `StopSystemdExecutor`                       |
| `chaosos.timetravel` | `time`    | `travel`         | `TravelTimeExecutor`                        |

- **network drop** adds `iptables` DROP rules for tcp and udp traffic in the
  `INPUT` and/or `OUTPUT` chains (`--network-traffic in|out`), matching on
  source or destination ip, port (a comma list becomes a multiport match) and
  a string pattern. Destroying deletes the same rules.
  `build_iptables_args` gives the argument string for one chain and protocol.
- **process kill** sends a signal to processes found by name, by command line
  or by local port, limited by `count` and filtered by `exclude-process`.
  **process stop** sends `STOP`, and `CONT` when destroyed. With
  `ignore-not-found` set, finding nothing is not an error.
- **script delay / exit** back up a shell script to
  `<file>_chaosblade.bak`, then insert `sleep <seconds>` or
  `echo "<message>";exit <code>` after the line that defines the named
  function. Destroying restores the script from the backup.
- **systemd stop** checks that the service is running, then runs the
  `chaos_stopsystemd` program from `Channel.script_path()`; destroying runs
  `systemctl start`.
- **time travel** sets the clock to now plus an offset with `date -s`,
  disabling NTP first unless `disableNtp` is `false`. Destroying re-enables
  NTP and runs `hwclock --hctosys`. `parse_duration` reads offsets such as
  `5m30s` or `-1h2m3.5s` (units `ns`, `us`, `ms`, `s`, `m`, `h`).

Each module also has `new_..._action_spec()` / `new_..._command_spec()`
functions that return `ActionSpec` and `ModelSpec` descriptions: names,
aliases, descriptions, flags with their defaults, examples and categories.

## Usage

Subclass `Channel`. `run` and the three pid lookups must be provided;
`is_command_available` defaults to a local `PATH` lookup and `file_exists`
runs `test -e` through `run`.

```python
from chaosos.drop import NetworkDropExecutor
from chaosos.spec import Channel, ExecContext, ExperimentError, ExpModel, Response


class PrintingChannel(Channel):
    """Shows each command instead of running it."""

    def run(self, ctx, command, args):
        print(command, args)
        return Response.ok("")

    def is_command_available(self, ctx, command):
        return True

    def pids_by_process_name(self, ctx, name):
        return []

    def pids_by_process_cmd(self, ctx, name):
        return []

    def pids_by_local_ports(self, ctx, ports):
        return []


executor = NetworkDropExecutor(channel=PrintingChannel())
model = ExpModel(
    target="network",
    action_name="drop",
    action_flags={"destination-port": "80,81", "network-traffic": "in"},
)

executor.exec("uid-1", ExecContext(uid="uid-1"), model)               # create
executor.exec("uid-1", ExecContext(uid="uid-1", destroy=True), model)  # destroy

try:
    executor.exec("uid-1", ExecContext(), ExpModel("network", "drop"))
except ExperimentError as err:
    print(err.code, err.message)
```

Executors return a `Response` when they succeed. When a flag is missing or
illegal, a command is not available, a process or service cannot be found,
or a command run through the channel fails, they raise `ExperimentError`,
whose `code` is an `ErrorCode` and whose `message` says what went wrong.

`chaosos.spec` also provides `ExecContext.with_value` for passing extra
values to a channel, `parse_integer_list` for port lists such as
`80,8000-8080`, and `remove_duplicates`.

## What this package does not do

- It has no `tc`/netem experiments: there is no network delay, loss,
  duplicate, corrupt or reorder action, and no dns (`/etc/hosts`) action.
- It has no registry that collects all models or looks up an executor by
  model and action name; import the executor you need from its module.
- It has no command-line program; experiments are started from Python code.

## Requirements

Python 3.10 or later, with no third-party dependencies. The commands that the
experiments issue (`iptables`, `kill`, `cat`, `awk`, `sed`, `systemctl`,
`date`, `timedatectl`, `hwclock` and others) must exist wherever your channel
runs them, and most experiments need root privileges there.