# src/cardcast/records.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import ProtocolError

ACCOUNT_CLASS = "_User"
UNLINKED_CLASS = "_Player"


@dataclass(frozen=True)
class IdentityRecord:
    id: str
    name: str
    username: str
    full_name: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "IdentityRecord":
        try:
            return cls(
                id=payload["_id"],
                name=payload.get("name") or "",
                username=payload.get("username") or "",
                full_name=payload.get("fullName"),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ProtocolError(f"Malformed identity record: {payload!r}") from e


@dataclass
class IdentityPools:
    """Registered accounts and unlinked participants returned by one method call."""
    accounts: Dict[str, IdentityRecord] = field(default_factory=dict)
    unlinked: Dict[str, IdentityRecord] = field(default_factory=dict)

    @classmethod
    def from_result(cls, result: Any, request_id: Optional[str] = None) -> "IdentityPools":
        if not isinstance(result, dict):
            raise ProtocolError(f"Identity result is not an object: {result!r}", request_id)
        users = result.get("users") or []
        players = result.get("players") or []
        if not isinstance(users, list) or not isinstance(players, list):
            raise ProtocolError("Identity result users/players must be lists", request_id)
        pools = cls()
        for payload in users:
            record = IdentityRecord.from_payload(payload)
            pools.accounts[record.id] = record
        for payload in players:
            record = IdentityRecord.from_payload(payload)
            pools.unlinked[record.id] = record
        return pools

    def find(self, entity_id: str) -> Optional[IdentityRecord]:
        return self.accounts.get(entity_id) or self.unlinked.get(entity_id)


@dataclass(frozen=True)
class EntityRef:
    object_id: str
    class_name: Optional[str] = None

    @classmethod
    def from_pointer(cls, pointer: Any, default_class: Optional[str] = None) -> "EntityRef":
        if not isinstance(pointer, dict) or not isinstance(pointer.get("objectId"), str):
            raise ProtocolError(f"Malformed entity pointer: {pointer!r}")
        return cls(object_id=pointer["objectId"], class_name=pointer.get("className", default_class))


@dataclass
class RoundEntry:
    total_score: int
    # Accounts first, then unlinked participants
    participant_refs: List[EntityRef] = field(default_factory=list)
    hole_scores: List[int] = field(default_factory=list)

    @classmethod
    def from_fields(cls, fields: Dict[str, Any]) -> "RoundEntry":
        total = fields.get("totalScore")
        if isinstance(total, bool) or not isinstance(total, (int, float)):
            raise ProtocolError(f"Scorecard entry without a totalScore: {fields!r}")

        refs = [EntityRef.from_pointer(p, ACCOUNT_CLASS) for p in fields.get("users") or []]
        refs += [EntityRef.from_pointer(p, UNLINKED_CLASS) for p in fields.get("players") or []]

        holes: List[int] = []
        for hole in fields.get("holeScores") or []:
            strokes = hole.get("strokes") if isinstance(hole, dict) else None
            holes.append(int(strokes) if isinstance(strokes, (int, float)) else 0)

        return cls(total_score=int(total), participant_refs=refs, hole_scores=holes)
