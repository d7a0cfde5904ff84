"""Processing of events that arrive from the principal over the event stream."""

from __future__ import annotations

import enum
import logging
from typing import Any, Callable, Optional, Protocol

from cdagent.backend import AlreadyExistsError, DeletionPropagation, NotFoundError
from cdagent.cli import TRACE
from cdagent.options import AgentMode

Resource = dict[str, Any]

LAST_APPLIED_ANNOTATION = "kubectl.kubernetes.io/last-applied-configuration"

_log = logging.getLogger("cdagent.agent")


class EventDiscardedError(Exception):
    """The event was deliberately not acted upon."""


class EventTarget(str, enum.Enum):
    """The kind of resource an event is about."""

    APPLICATION = "application"
    APP_PROJECT = "appproject"
    EVENT_ACK = "eventProcessed"

    def __str__(self) -> str:
        return self.value


class EventType(str, enum.Enum):
    """What happened to the resource an event is about."""

    CREATE = "create"
    DELETE = "delete"
    SPEC_UPDATE = "update"
    STATUS_UPDATE = "update-status"
    PROCESSED = "processed"

    def __str__(self) -> str:
        return self.value


class _ResourceManager(Protocol):
    def compare_source_uid(self, incoming: Resource) -> tuple[bool, bool]: ...

    def is_managed(self, name: str) -> bool: ...

    def is_change_ignored(self, name: str, resource_version: str) -> bool: ...

    def create(self, obj: Resource) -> Resource: ...

    def delete(
        self, namespace: str, obj: Resource, deletion_propagation: DeletionPropagation
    ) -> None: ...

    def unmanage(self, name: str) -> None: ...


class _AppManager(_ResourceManager, Protocol):
    def update_managed_app(self, app: Resource) -> Resource: ...

    def update_operation(self, app: Resource) -> Resource: ...


class _ProjectManager(_ResourceManager, Protocol):
    def update_app_project(self, project: Resource) -> Resource: ...


def _metadata(obj: Resource) -> dict[str, Any]:
    meta = obj.get("metadata")
    if meta is None:
        meta = obj["metadata"] = {}
    return meta


def _name(obj: Resource) -> str:
    return _metadata(obj).get("name", "") or ""


def _qualified_name(obj: Resource) -> str:
    namespace = _metadata(obj).get("namespace", "") or ""
    return f"{namespace}/{_name(obj)}" if namespace else _name(obj)


def _resource_version(obj: Resource) -> str:
    return _metadata(obj).get("resourceVersion", "") or ""


def _drop_last_applied(obj: Resource) -> None:
    annotations = _metadata(obj).get("annotations")
    if annotations:
        annotations.pop(LAST_APPLIED_ANNOTATION, None)


def _logged(action: Callable[[Resource], Any], obj: Resource, message: str) -> Any:
    try:
        return action(obj)
    except Exception as err:
        _log.error("%s: %s", message, err)
        raise


class InboundHandler:
    """Applies events received from the principal to the local resources.

    An event is any object with ``target``, ``type`` and ``resource`` attributes,
    ``resource`` being the Application or AppProject it carries.
    """

    def __init__(
        self,
        namespace: str,
        mode: AgentMode,
        app_manager: _AppManager,
        project_manager: _ProjectManager,
    ) -> None:
        self.namespace = namespace
        self.mode = mode
        self.app_manager = app_manager
        self.project_manager = project_manager

    def process_incoming_event(self, ev: Any) -> None:
        """Dispatch an event by its target; raise ValueError for an unknown one."""
        if ev.target == EventTarget.APPLICATION:
            self.process_incoming_application(ev)
        elif ev.target == EventTarget.APP_PROJECT:
            self.process_incoming_app_project(ev)
        else:
            raise ValueError(f"unknown event target: {ev.target}")

    def process_incoming_application(self, ev: Any) -> None:
        incoming: Resource = ev.resource
        exists, uid_match = self.app_manager.compare_source_uid(incoming)

        if ev.type == EventType.CREATE:
            if exists:
                if uid_match:
                    _log.debug("Create event for an existing app; updating it")
                    self.update_application(incoming)
                    return
                _log.debug("App exists with a different source UID; deleting it")
                self.delete_application(incoming)
            _logged(self.create_application, incoming, "Error creating application")
        elif ev.type == EventType.SPEC_UPDATE:
            if not exists:
                _log.debug("Update event for an unknown app; creating it")
                self.create_application(incoming)
                return
            if not uid_match:
                _log.debug("Source UID mismatch; replacing the existing app")
                self.delete_application(incoming)
                self.create_application(incoming)
                return
            _logged(self.update_application, incoming, "Error updating application")
        elif ev.type == EventType.DELETE:
            _logged(self.delete_application, incoming, "Error deleting application")
        else:
            _log.warning("Received an unknown event: %s. Protocol mismatch?", ev.type)

    def process_incoming_app_project(self, ev: Any) -> None:
        incoming: Resource = ev.resource
        exists, uid_match = self.project_manager.compare_source_uid(incoming)

        if ev.type == EventType.CREATE:
            if exists:
                if uid_match:
                    _log.debug("Create event for an existing appProject; updating it")
                    self.update_app_project(incoming)
                    return
                _log.debug("AppProject exists with a different source UID; deleting it")
                self.delete_app_project(incoming)
            _logged(self.create_app_project, incoming, "Error creating appproject")
        elif ev.type == EventType.SPEC_UPDATE:
            if not exists:
                _log.debug("Update event for an unknown appProject; creating it")
                self.create_app_project(incoming)
                return
            if not uid_match:
                _log.debug("Source UID mismatch; replacing the existing appProject")
                self.delete_app_project(incoming)
                self.create_app_project(incoming)
                return
            _logged(self.update_app_project, incoming, "Error updating appproject")
        elif ev.type == EventType.DELETE:
            _logged(self.delete_app_project, incoming, "Error deleting appproject")
        else:
            _log.warning("Received an unknown event: %s. Protocol mismatch?", ev.type)

    def create_application(self, incoming: Resource) -> Optional[Resource]:
        """Create an Application; returns None if it already existed."""
        _metadata(incoming)["namespace"] = self.namespace
        qname = _qualified_name(incoming)

        if self.mode != AgentMode.MANAGED:
            _log.log(TRACE, "Discarding create of %s: agent not in managed mode", qname)
            raise EventDiscardedError(
                "cannot create application: agent is not in managed mode"
            )
        if self.app_manager.is_managed(qname):
            _log.log(TRACE, "Discarding create of %s: already managed", qname)
            raise EventDiscardedError(f"application {qname} is already managed")

        _log.info("Creating application %s on behalf of an incoming event", qname)
        _drop_last_applied(incoming)
        try:
            return self.app_manager.create(incoming)
        except AlreadyExistsError:
            _log.debug("application %s already exists", qname)
            return None

    def update_application(self, incoming: Resource) -> Resource:
        _metadata(incoming)["namespace"] = self.namespace
        qname = _qualified_name(incoming)
        version = _resource_version(incoming)

        if self.app_manager.is_change_ignored(qname, version):
            _log.log(TRACE, "Discarding update of %s: version %s seen", qname, version)
            raise EventDiscardedError(
                f"the version {version} has already been seen by this agent"
            )

        _log.info("Updating application %s", qname)
        if self.mode == AgentMode.MANAGED:
            return self.app_manager.update_managed_app(incoming)
        if self.mode == AgentMode.AUTONOMOUS:
            return self.app_manager.update_operation(incoming)
        raise ValueError(f"unknown operation mode: {self.mode}")

    def delete_application(self, app: Resource) -> None:
        _metadata(app)["namespace"] = self.namespace
        qname = _qualified_name(app)

        if not self.app_manager.is_managed(qname):
            raise LookupError(f"application {qname} is not managed")

        _log.info("Deleting application %s", qname)
        try:
            self.app_manager.delete(self.namespace, app, DeletionPropagation.BACKGROUND)
        except NotFoundError:
            _log.debug("application %s not found, perhaps already deleted", qname)
            return
        try:
            self.app_manager.unmanage(qname)
        except Exception as err:
            _log.warning("Could not unmanage app %s: %s", qname, err)

    def create_app_project(self, incoming: Resource) -> Resource:
        _metadata(incoming)["namespace"] = self.namespace
        name = _name(incoming)

        if self.mode != AgentMode.MANAGED:
            _log.log(TRACE, "Discarding create of %s: agent not in managed mode", name)
            raise EventDiscardedError(
                "cannot create appproject: agent is not in managed mode"
            )
        if self.app_manager.is_managed(name):
            _log.log(TRACE, "Discarding create of %s: already managed", name)
            raise EventDiscardedError(f"appproject {name} is already managed")

        _log.info("Creating AppProject %s on behalf of an incoming event", name)
        _drop_last_applied(incoming)
        try:
            return self.project_manager.create(incoming)
        except AlreadyExistsError:
            _log.debug("appProject %s already exists", name)
            raise

    def update_app_project(self, incoming: Resource) -> Resource:
        _metadata(incoming)["namespace"] = self.namespace
        name = _name(incoming)
        version = _resource_version(incoming)

        if self.app_manager.is_change_ignored(name, version):
            _log.log(TRACE, "Discarding update of %s: version %s seen", name, version)
            raise EventDiscardedError(
                f"the version {version} has already been seen by this agent"
            )

        _log.info("Updating appProject %s", name)
        return self.project_manager.update_app_project(incoming)

    def delete_app_project(self, project: Resource) -> None:
        _metadata(project)["namespace"] = self.namespace
        name = _name(project)

        if not self.project_manager.is_managed(name):
            raise LookupError(f"appProject {name} is not managed")

        _log.info("Deleting appProject %s", name)
        try:
            self.project_manager.delete(
                self.namespace, project, DeletionPropagation.BACKGROUND
            )
        except NotFoundError:
            _log.debug("appProject %s not found, perhaps already deleted", name)
            return
        try:
            self.project_manager.unmanage(name)
        except Exception as err:
            _log.warning("Could not unmanage appProject %s: %s", name, err)