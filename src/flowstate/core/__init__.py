"""Core package initializer for FlowState.

The engine lives in :mod:`flowstate.core.engine`; configuration and logging
helpers live in :mod:`flowstate.core.settings`.
"""

from __future__ import annotations

__all__ = ["__doc__"]
