"""Agent operating modes and the options used to configure an agent."""

from __future__ import annotations

import enum
from typing import Any, Callable

AgentOption = Callable[[Any], None]


class AgentMode(str, enum.Enum):
    """The mode an agent operates in."""

    UNKNOWN = "unknown"
    AUTONOMOUS = "autonomous"
    MANAGED = "managed"

    def __str__(self) -> str:
        return self.value


def with_allowed_namespaces(*args: str) -> AgentOption:
    """Set the namespaces the agent is allowed to work in."""
    namespaces = list(args)

    def apply(agent: Any) -> None:
        agent.allowed_namespaces = list(namespaces)

    return apply


def with_remote(remote: Any) -> AgentOption:
    """Set the remote principal the agent connects to."""

    def apply(agent: Any) -> None:
        agent.remote = remote

    return apply


def with_mode(mode: str) -> AgentOption:
    """Set the agent's mode from its name; raise ValueError for an unknown one."""

    def apply(agent: Any) -> None:
        if mode == "autonomous":
            agent.mode = AgentMode.AUTONOMOUS
        elif mode == "managed":
            agent.mode = AgentMode.MANAGED
        else:
            agent.mode = AgentMode.UNKNOWN
            raise ValueError(
                f"unknown agent mode: {mode}. Must be one of: managed,autonomous"
            )

    return apply