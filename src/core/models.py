from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


UNKNOWN_PLAYER_NAME = "unknown"


@dataclass(frozen=True)
class PlayerName:
    name: str
    username: str

    @classmethod
    def unknown(cls) -> "PlayerName":
        return cls(name=UNKNOWN_PLAYER_NAME, username=UNKNOWN_PLAYER_NAME)


@dataclass
class ScorecardRecord:
    total: int
    players: List[PlayerName] = field(default_factory=list)
    # Strokes per hole, in hole order
    holes: List[int] = field(default_factory=list)


@dataclass
class ScorecardResult:
    course_name: str
    layout_name: str
    date: Optional[datetime]
    entries: List[ScorecardRecord] = field(default_factory=list)
    number_of_holes: Optional[int] = None
    layout_par: Optional[int] = None
    layout_distance: Optional[int] = None
    url: Optional[str] = None
