"""The agent: keeps local Applications in step with a remote principal."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional, Protocol

from cdagent.cli import TRACE
from cdagent.inbound import EventType, InboundHandler
from cdagent.options import AgentMode

Resource = dict[str, Any]

DEFAULT_QUEUE_NAME = "default"
WAIT_FOR_SYNCED = 10.0

_log = logging.getLogger("cdagent.agent")


class _SendQueue(Protocol):
    def add(self, item: Any) -> None: ...

    def __len__(self) -> int: ...


class _Queues(Protocol):
    def create(self, name: str) -> None: ...

    def send_q(self, name: str) -> Optional[_SendQueue]: ...


class _Remote(Protocol):
    def client_id(self) -> str: ...

    def set_client_mode(self, mode: AgentMode) -> None: ...


class _Emitter(Protocol):
    def application_event(self, event_type: EventType, app: Resource) -> Any: ...


class _Manager(Protocol):
    def start_backend(self, stop: threading.Event) -> None: ...

    def ensure_synced(self, timeout: float) -> None: ...

    def is_managed(self, name: str) -> bool: ...

    def manage(self, name: str) -> None: ...

    def is_change_ignored(self, name: str, resource_version: str) -> bool: ...


def _metadata(obj: Resource) -> dict[str, Any]:
    return obj.get("metadata") or {}


def _qualified_name(obj: Resource) -> str:
    meta = _metadata(obj)
    name = meta.get("name", "") or ""
    namespace = meta.get("namespace", "") or ""
    return f"{namespace}/{name}" if namespace else name


def _resource_version(obj: Resource) -> str:
    return _metadata(obj).get("resourceVersion", "") or ""


class Agent:
    """Synchronises Application resources between this cluster and a principal.

    Options produced by :mod:`cdagent.options` are passed as extra positional
    arguments. A remote must be configured by one of them.
    """

    def __init__(
        self,
        namespace: str,
        app_manager: _Manager,
        project_manager: _Manager,
        emitter: _Emitter,
        queues: _Queues,
        *args: Callable[["Agent"], None],
    ) -> None:
        self.namespace = namespace
        self.app_manager = app_manager
        self.project_manager = project_manager
        self.emitter = emitter
        self.queues = queues
        self.mode = AgentMode.AUTONOMOUS
        self.remote: Optional[_Remote] = None
        self.allowed_namespaces: list[str] = []
        self._connected = False
        self._connected_lock = threading.Lock()
        self._watch_lock = threading.Lock()
        self._stop_event: Optional[threading.Event] = None

        for option in args:
            option(self)

        if self.remote is None:
            raise ValueError("remote not defined")

        try:
            self.queues.create(DEFAULT_QUEUE_NAME)
        except Exception as err:
            raise RuntimeError(f"unable to create default queue: {err}") from err

        if self.mode not in (AgentMode.AUTONOMOUS, AgentMode.MANAGED):
            raise ValueError(f"unexpected agent mode: {self.mode}")

    @property
    def inbound(self) -> InboundHandler:
        """A handler applying incoming events with the agent's current settings."""
        return InboundHandler(
            self.namespace, self.mode, self.app_manager, self.project_manager
        )

    def start(self) -> None:
        """Start the backends in the background and wait for applications to sync."""
        _log.info(
            "Starting agent (ns=%s, allowed_namespaces=%s, mode=%s)",
            self.namespace,
            self.allowed_namespaces,
            self.mode,
        )
        self._stop_event = threading.Event()
        for label, manager in (
            ("Application", self.app_manager),
            ("AppProject", self.project_manager),
        ):
            threading.Thread(
                target=self._run_backend,
                args=(label, manager, self._stop_event),
                daemon=True,
            ).start()

        if self.remote is not None:
            self.remote.set_client_mode(self.mode)

        try:
            self.app_manager.ensure_synced(WAIT_FOR_SYNCED)
        except Exception as err:
            raise RuntimeError(f"failed to sync applications: {err}") from err

    @staticmethod
    def _run_backend(label: str, manager: _Manager, stop: threading.Event) -> None:
        try:
            manager.start_backend(stop)
        except Exception:
            _log.exception("%s backend has exited non-successfully", label)
        else:
            _log.info("%s backend has exited", label)

    def stop(self) -> None:
        """Signal all background work to stop; raise if the agent never started."""
        _log.info("Stopping agent")
        if self._stop_event is None:
            raise RuntimeError("could not stop agent: agent has not started")
        self._stop_event.set()
        _log.info("Stopped")

    def is_connected(self) -> bool:
        """Whether the agent is connected to the principal."""
        with self._connected_lock:
            return self.remote is not None and self._connected

    def set_connected(self, connected: bool) -> None:
        with self._connected_lock:
            self._connected = connected

    def _send_queue(self) -> Optional[_SendQueue]:
        q = self.queues.send_q(self.remote.client_id())
        if q is None:
            _log.error("Default queue disappeared!")
        return q

    def add_app_creation_to_queue(self, app: Resource) -> None:
        """Queue a create event for a newly observed application."""
        qname = _qualified_name(app)
        _log.debug("New app event for %s", qname)

        if not self.is_connected():
            _log.log(TRACE, "Agent is not connected, ignoring this event")
            return
        if self.app_manager.is_managed(qname):
            _log.log(TRACE, "App %s is already managed", qname)
            return
        try:
            self.app_manager.manage(qname)
        except Exception as err:
            _log.log(TRACE, "Could not manage app %s: %s", qname, err)
            return

        q = self._send_queue()
        if q is None:
            return
        q.add(self.emitter.application_event(EventType.CREATE, app))
        _log.debug("Added app create event to send queue (len=%d)", len(q))

    def add_app_update_to_queue(self, old: Resource, new: Resource) -> None:
        """Queue an update event; its type depends on the agent's mode."""
        qname = _qualified_name(new)
        version = _resource_version(new)
        with self._watch_lock:
            if self.app_manager.is_change_ignored(qname, version):
                _log.debug("Ignoring this change for resource version %s", version)
                return
            if not self.is_connected():
                _log.log(TRACE, "Agent is not connected, ignoring this event")
                return
            if not self.app_manager.is_managed(qname):
                _log.log(TRACE, "App %s is not managed", qname)
                return

            q = self._send_queue()
            if q is None:
                return

            if self.mode == AgentMode.MANAGED:
                event_type = EventType.STATUS_UPDATE
            else:
                event_type = EventType.SPEC_UPDATE
            q.add(self.emitter.application_event(event_type, new))
            _log.debug(
                "Added event of type %s to send queue (len=%d)", event_type, len(q)
            )

    def add_app_deletion_to_queue(self, app: Resource) -> None:
        """Queue a delete event for an application that went away."""
        qname = _qualified_name(app)
        _log.debug("Delete app event for %s", qname)

        if not self.is_connected():
            _log.log(TRACE, "Agent is not connected, ignoring this event")
            return
        if not self.app_manager.is_managed(qname):
            _log.log(TRACE, "App %s is not managed", qname)

        q = self._send_queue()
        if q is None:
            return
        q.add(self.emitter.application_event(EventType.DELETE, app))
        _log.debug("Added app delete event to send queue (len=%d)", len(q))