# src/core/snapshot_protocol.py
from __future__ import annotations

from typing import Protocol, runtime_checkable

from src.cardcast.snapshot import Snapshot


@runtime_checkable
class SnapshotReader(Protocol):
    async def fetch_snapshot(self, url: str) -> Snapshot:
        """
        Read the state embedded in a scorecard page and return it as a Snapshot:
          course_name, layout_name, end_date, is_finished,
          entry_ids, user_ids, unlinked_player_ids, holes
        Raise SnapshotError when the page has no usable state.
        """
        ...
