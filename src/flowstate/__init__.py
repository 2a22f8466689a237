"""FlowState package bootstrap.

FlowState is a client-resident application-state engine: a single versioned
snapshot of application data, serialized mutations, change notifications, a
TTL cache and a durable offline action queue.
"""

from __future__ import annotations

__all__ = ["__version__"]
__version__ = "0.3.0"
