# cdagent

`cdagent` contains the building blocks of a synchronisation agent for
GitOps-style continuous delivery. The agent runs next to a workload cluster,
watches `Application` and `AppProject` resources there, and exchanges
create, update and delete events with a central principal.

The package is a library with no dependencies outside the standard library.
It has no command of its own; you wire its parts together in your own program.

## What is inside

| Module                | Purpose                                                                   |
|-----------------------|---------------------------------------------------------------------------|
| `cdagent.clock`       | `StandardClock` and a `SeededClock` whose time you set, for tests         |
| `cdagent.checkpoint`  | `Checkpoint` and `Step`: measure the time of named steps                  |
| `cdagent.auth`        | `Methods` registry of auth `Method`s, `AuthSubject`, `parse_auth_subject` |
| `cdagent.backend`     | Selectors, `DeletionPropagation` and the backend errors                   |
| `cdagent.kubernetes`  | `ApplicationBackend` and `AppProjectBackend` storage backends             |
| `cdagent.cli`         | Logging setup, log-level and log-format parsing, port validation, version printing |
| `cdagent.options`     | `AgentMode` and the agent options `with_mode`, `with_remote`, `with_allowed_namespaces` |
| `cdagent.inbound`     | `InboundHandler`: applies events received from the principal              |
| `cdagent.agent`       | `Agent`: connection state and the outbound send queue                     |

## Timing work with a checkpoint

```python
from datetime import datetime, timedelta, timezone

from cdagent.checkpoint import Checkpoint
from cdagent.clock import SeededClock

clock = SeededClock(datetime(2023, 12, 12, 0, 1, tzinfo=timezone.utc))
cp = Checkpoint("bar", clock)

cp.start("step1")
clock.at(clock.now() + timedelta(seconds=1))
cp.start("step2")          # starting a step ends the one before it
clock.at(clock.now() + timedelta(seconds=1))
cp.end()

print(cp.num_steps())      # 2
print(cp)
# checkpoint bar duration=2.000s (steps: step1=1.000s, step2=1.000s)
```

A step that is still running is left out of the text form, and its own
duration is zero. Without a clock, a checkpoint uses `StandardClock`.

## Registering authentication methods

```python
from cdagent.auth import Method, Methods, parse_auth_subject


class StaticAuth(Method):
    def init(self):
        pass

    def authenticate(self, credentials):
        return credentials["clientid"]


methods = Methods()
methods.register_method("userpass", StaticAuth())
methods.method("userpass")     # the registered method
methods.method("unknown")      # None
methods.names()                # ["userpass"]
```

Registering a second method under a name already in use raises `ValueError`.
`parse_auth_subject('{"clientID": "agent-1", "mode": "managed"}')` returns an
`AuthSubject` with `client_id` and `mode` set from those two fields.

## Storage backends

`ApplicationBackend` and `AppProjectBackend` in `cdagent.kubernetes` store
resources, given as plain dictionaries, through a client you supply. The
client needs `applications(namespace)` and `app_projects(namespace)` methods
returning an object with `list`, `create`, `get`, `delete`, `update` and
`patch`; an empty namespace addresses all namespaces. An optional informer
with `start()` and `wait_for_sync(timeout)` backs `start_informer` and
`ensure_synced`.

- `ApplicationBackend.list(selector)` lists every namespace in
  `selector.namespaces`, or all namespaces when none are given.
  `AppProjectBackend.list` always lists the backend's own namespace.
- `delete` uses `DeletionPropagation.FOREGROUND` when no propagation is
  given and raises `ValueError` for an unknown one.
- `patch` sends a JSON patch; `supports_patch()` reports the flag the
  backend was built with.

`cdagent.backend` defines `NotFoundError` and `AlreadyExistsError`, both
subclasses of `BackendError`, for clients and managers to raise.

## Command-line helpers

`cdagent.cli` holds the helpers an entry point needs:

- `init_logging()` sends warnings and above to standard error and everything
  else to standard output, formatted as JSON.
- `string_to_log_level(name)` accepts `fatal`, `error`, `warning`, `info`,
  `debug` and `trace`, in any case, and raises `ValueError` on anything else.
  `available_log_levels()` lists the level names, `panic` included.
- `log_formatter("json")` gives a JSON formatter, `"text"` a `key=value` one.
- `valid_port(num)` raises `ValueError` for a number below 0 or above 65536.
- `print_version(version, "json-indent")` prints version information as
  `text`, `json`, `json-indent` or `yaml`, falling back to text with a
  warning for an unknown format.
- `fatal(msg, *args)` writes a `[FATAL]:` message to standard error and
  exits with status 1; `fatal_with_exit_code` takes the status.

## Agent modes

An agent runs in one of two modes, chosen with `with_mode`:

- `autonomous` (the default) — the workload cluster owns the applications;
  local changes are queued as spec updates, incoming create events are
  discarded with `EventDiscardedError`, and incoming updates only update
  operations.
- `managed` — the principal owns the applications; incoming events create,
  update and delete them locally, and local changes are queued as status
  updates.

Any other mode name makes `with_mode` raise `ValueError`.

When an incoming event names a resource that already exists with a different
source UID, `InboundHandler` deletes the existing resource and creates the
incoming one in its place; with a matching UID it updates the existing one.
Deletions use background propagation.

## What the package does not do

The package holds no network code and no data store of its own. It does not
connect to a principal, run an event stream, or provide the send queues,
event emitter, resource managers or cluster client. `Agent` and
`InboundHandler` take these as objects you pass in, and `Agent` refuses to
be built without a remote. There is no command-line program to run.

## Running the tests

Install the `test` extra and run `pytest` from the project directory.