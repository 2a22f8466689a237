"""
History entry definition.

Each committed mutation leaves one :class:`HistoryEntry` in the scheduler's
bounded ring. Entries are diagnostics only: they are never used for replay.
"""

from __future__ import annotations

from dataclasses import dataclass

from .snapshot import Snapshot


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """
    Immutable record of one commit.

    Attributes
    ----------
    timestamp : float
        Clock time (seconds) at which the commit was published.
    previous : Snapshot
        The snapshot that was current before the commit.
    current : Snapshot
        The snapshot the commit published.
    changed : tuple[str, ...]
        Top-level field names that differ between the two.
    """

    timestamp: float
    previous: Snapshot
    current: Snapshot
    changed: tuple[str, ...] = ()
