"""Application and AppProject backends that store resources on a Kubernetes cluster."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional, Protocol, Union

from cdagent.backend import AppProjectSelector, ApplicationSelector, DeletionPropagation

Resource = dict[str, Any]

JSON_PATCH_TYPE = "application/json-patch+json"
FIELD_MANAGER = "foo"


class ResourceInterface(Protocol):
    """Namespaced operations on one kind of custom resource."""

    def list(self) -> list[Resource]: ...

    def create(self, obj: Resource, field_manager: str) -> Resource: ...

    def get(self, name: str) -> Resource: ...

    def delete(self, name: str, propagation_policy: str) -> None: ...

    def update(self, obj: Resource) -> Resource: ...

    def patch(self, name: str, patch_type: str, patch: bytes) -> Resource: ...


class AppClient(Protocol):
    """A client giving access to Application and AppProject resources.

    An empty namespace addresses all namespaces.
    """

    def applications(self, namespace: str) -> ResourceInterface: ...

    def app_projects(self, namespace: str) -> ResourceInterface: ...


class Informer(Protocol):
    """Watches resources on the cluster and keeps a local cache of them."""

    def start(self) -> None: ...

    def wait_for_sync(self, timeout: float) -> None: ...


def _namespace_of(obj: Resource) -> str:
    return (obj.get("metadata") or {}).get("namespace", "") or ""


def _propagation_policy(
    deletion_propagation: Optional[Union[DeletionPropagation, str]],
) -> str:
    if deletion_propagation is None:
        return DeletionPropagation.FOREGROUND.value
    try:
        return DeletionPropagation(deletion_propagation).value
    except ValueError:
        raise ValueError(
            f"unexpected propagationPolicy value: '{deletion_propagation}'"
        ) from None


def _seconds(timeout: Union[timedelta, float, int]) -> float:
    if isinstance(timeout, timedelta):
        return timeout.total_seconds()
    return float(timeout)


class ApplicationBackend:
    """Stores Application resources on the local cluster."""

    def __init__(
        self,
        app_client: Optional[AppClient],
        namespace: str,
        informer: Optional[Informer],
        use_patch: bool,
    ) -> None:
        self._app_client = app_client
        self._informer = informer
        self.namespace = namespace
        self._use_patch = use_patch

    def _resources(self, namespace: str) -> ResourceInterface:
        return self._app_client.applications(namespace)

    def list(self, selector: Optional[ApplicationSelector] = None) -> list[Resource]:
        """List Applications, restricted to the selector's namespaces if any."""
        namespaces = selector.namespaces if selector is not None else []
        if not namespaces:
            return list(self._resources("").list())
        result: list[Resource] = []
        for ns in namespaces:
            result.extend(self._resources(ns).list())
        return result

    def create(self, app: Resource) -> Resource:
        return self._resources(_namespace_of(app)).create(app, FIELD_MANAGER)

    def get(self, name: str, namespace: str) -> Resource:
        return self._resources(namespace).get(name)

    def delete(
        self,
        name: str,
        namespace: str,
        deletion_propagation: Optional[Union[DeletionPropagation, str]] = None,
    ) -> None:
        """Delete an Application; without a propagation given, foreground is used."""
        policy = _propagation_policy(deletion_propagation)
        self._resources(namespace).delete(name, policy)

    def update(self, app: Resource) -> Resource:
        return self._resources(_namespace_of(app)).update(app)

    def patch(self, name: str, namespace: str, patch: bytes) -> Resource:
        """Apply a JSON patch to the named Application."""
        return self._resources(namespace).patch(name, JSON_PATCH_TYPE, patch)

    def supports_patch(self) -> bool:
        return self._use_patch

    def start_informer(self) -> None:
        self._informer.start()

    def ensure_synced(self, timeout: Union[timedelta, float, int]) -> None:
        """Wait until the informer has synced, at most ``timeout`` (seconds or timedelta)."""
        self._informer.wait_for_sync(_seconds(timeout))


class AppProjectBackend:
    """Stores AppProject resources on the local cluster."""

    def __init__(
        self,
        app_client: Optional[AppClient],
        namespace: str,
        informer: Optional[Informer],
        use_patch: bool,
    ) -> None:
        self._app_client = app_client
        self._informer = informer
        self.namespace = namespace
        self._use_patch = use_patch

    def _resources(self, namespace: str) -> ResourceInterface:
        return self._app_client.app_projects(namespace)

    def list(self, selector: Optional[AppProjectSelector] = None) -> list[Resource]:
        """List AppProjects in the backend's own namespace."""
        return list(self._resources(self.namespace).list())

    def create(self, project: Resource) -> Resource:
        return self._resources(_namespace_of(project)).create(project, FIELD_MANAGER)

    def get(self, name: str, namespace: str) -> Resource:
        return self._resources(namespace).get(name)

    def delete(
        self,
        name: str,
        namespace: str,
        deletion_propagation: Optional[Union[DeletionPropagation, str]] = None,
    ) -> None:
        """Delete an AppProject; without a propagation given, foreground is used."""
        policy = _propagation_policy(deletion_propagation)
        self._resources(namespace).delete(name, policy)

    def update(self, project: Resource) -> Resource:
        return self._resources(_namespace_of(project)).update(project)

    def patch(self, name: str, namespace: str, patch: bytes) -> Resource:
        """Apply a JSON patch to the named AppProject."""
        return self._resources(namespace).patch(name, JSON_PATCH_TYPE, patch)

    def supports_patch(self) -> bool:
        return self._use_patch

    def start_informer(self) -> None:
        self._informer.start()

    def ensure_synced(self, timeout: Union[timedelta, float, int]) -> None:
        """Wait until the informer has synced, at most ``timeout`` (seconds or timedelta)."""
        self._informer.wait_for_sync(_seconds(timeout))