"""Authentication method registry and related types."""

from __future__ import annotations

import abc
import json
import threading
from dataclasses import dataclass
from typing import Optional

Credentials = dict[str, str]


@dataclass
class AuthSubject:
    """The subject of an authenticated client."""

    client_id: str = ""
    mode: str = ""


class Method(abc.ABC):
    """Interface implemented by all authentication methods."""

    @abc.abstractmethod
    def init(self) -> None:
        """Prepare the method for use."""

    @abc.abstractmethod
    def authenticate(self, credentials: Credentials) -> str:
        """Authenticate and return the client ID, raising on failure."""


class Methods:
    """A thread-safe registry of authentication methods."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._methods: dict[str, Method] = {}

    def register_method(self, name: str, method: Method) -> None:
        """Register ``method`` under ``name``; raise if the name is taken."""
        with self._lock:
            if name in self._methods:
                raise ValueError(f"auth method {name} already registered")
            self._methods[name] = method

    def names(self) -> list[str]:
        with self._lock:
            return list(self._methods)

    def method(self, name: str) -> Optional[Method]:
        """The method registered under ``name``, or None."""
        with self._lock:
            return self._methods.get(name)


_SUBJECT_FIELDS = {"clientid": "client_id", "mode": "mode"}


def parse_auth_subject(subject: str) -> AuthSubject:
    """Parse a JSON-encoded subject such as ``{"clientID": ..., "mode": ...}``."""
    data = json.loads(subject)
    result = AuthSubject()
    if data is None:
        return result
    if not isinstance(data, dict):
        raise ValueError("auth subject must be a JSON object")
    for key, value in data.items():
        attr = _SUBJECT_FIELDS.get(key.lower())
        if attr is None or value is None:
            continue
        if not isinstance(value, str):
            raise ValueError(f"auth subject field {key} must be a string")
        setattr(result, attr, value)
    return result