"""Building blocks for a GitOps synchronisation agent: clocks, checkpoints, auth, backends and event handling."""

__version__ = "0.1.0"

__all__ = [
    "agent",
    "auth",
    "backend",
    "checkpoint",
    "cli",
    "clock",
    "inbound",
    "kubernetes",
    "options",
]