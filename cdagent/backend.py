"""Shared types for Application and AppProject storage backends."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


@dataclass
class ApplicationSelector:
    """Restricts which Applications a listing returns.

    Only ``namespaces`` is currently honoured.
    """

    labels: dict[str, str] = field(default_factory=dict)
    names: list[str] = field(default_factory=list)
    namespaces: list[str] = field(default_factory=list)
    projects: list[str] = field(default_factory=list)


@dataclass
class AppProjectSelector:
    """Restricts which AppProjects a listing returns.

    Only ``namespaces`` is currently honoured.
    """

    labels: dict[str, str] = field(default_factory=dict)
    namespaces: list[str] = field(default_factory=list)
    names: list[str] = field(default_factory=list)


class DeletionPropagation(str, enum.Enum):
    """How a deletion propagates to the dependents of an object."""

    ORPHAN = "Orphan"
    BACKGROUND = "Background"
    FOREGROUND = "Foreground"


class BackendError(Exception):
    """Base class for errors raised by a backend."""


class NotFoundError(BackendError):
    """The requested resource does not exist."""

    def __init__(self, resource: str, name: str) -> None:
        super().__init__(f'{resource} "{name}" not found')
        self.resource = resource
        self.name = name


class AlreadyExistsError(BackendError):
    """A resource with the same identity already exists."""

    def __init__(self, resource: str, name: str) -> None:
        super().__init__(f'{resource} "{name}" already exists')
        self.resource = resource
        self.name = name