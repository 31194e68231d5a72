# src/cardcast/assembler.py
from __future__ import annotations

import logging
from typing import List, Sequence

from src.core.dates import parse_round_date
from src.core.models import PlayerName, ScorecardRecord, ScorecardResult

from .records import IdentityPools, RoundEntry
from .snapshot import Snapshot

logger = logging.getLogger(__name__)


def _player_name(identities: IdentityPools, entity_id: str) -> PlayerName:
    record = identities.find(entity_id)
    if record is None:
        logger.debug("assemble: no identity for id=%s, using placeholder", entity_id)
        return PlayerName.unknown()
    return PlayerName(name=record.name, username=record.username)


def assemble_entries(identities: IdentityPools, entries: Sequence[RoundEntry]) -> List[ScorecardRecord]:
    """
    Join round entries with the identity pools.

    Entry order is kept as given (subscription arrival order). Every participant
    ref yields exactly one player; ids missing from both pools become
    PlayerName.unknown() rather than failing the scorecard.
    """
    records: List[ScorecardRecord] = []
    for entry in entries:
        players = [_player_name(identities, ref.object_id) for ref in entry.participant_refs]
        records.append(ScorecardRecord(total=entry.total_score, players=players, holes=list(entry.hole_scores)))
    return records


def assemble(snapshot: Snapshot, identities: IdentityPools, entries: Sequence[RoundEntry]) -> ScorecardResult:
    return ScorecardResult(
        course_name=snapshot.course_name,
        layout_name=snapshot.layout_name,
        date=parse_round_date(snapshot.end_date),
        entries=assemble_entries(identities, entries),
        number_of_holes=len(snapshot.holes) or None,
        layout_par=snapshot.layout_par,
        layout_distance=snapshot.layout_distance,
        url=snapshot.url,
    )
