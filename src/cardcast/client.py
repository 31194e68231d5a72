# src/cardcast/client.py
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from src.core.models import ScorecardResult
from src.core.snapshot_protocol import SnapshotReader

from .assembler import assemble
from .errors import UnfinishedRoundError
from .records import IdentityPools, RoundEntry
from .session import DEFAULT_SYNC_URL, CardCastSession
from .snapshot import HttpSnapshotReader, scorecard_url

logger = logging.getLogger(__name__)

IDENTITY_METHOD = "users.getCardCastUsersAndPlayers"
ENTRIES_PUBLICATION = "cardcastEntries"
ENTRY_COLLECTION = "ScorecardEntry"


def _env_float(name: str, default: float) -> float:
    v = os.environ.get(name)
    if v is None or v.strip() == "":
        return default
    try:
        return float(v)
    except ValueError:
        raise RuntimeError(f"Env var {name} must be a number, got {v!r}")


@dataclass(frozen=True)
class CardCastConfig:
    sync_url: str = DEFAULT_SYNC_URL
    open_timeout: float = 10.0
    request_timeout: float = 20.0
    http_timeout: float = 20.0

    @classmethod
    def from_env(cls) -> "CardCastConfig":
        return cls(
            sync_url=os.environ.get("CARDCAST_SYNC_URL") or DEFAULT_SYNC_URL,
            open_timeout=_env_float("CARDCAST_OPEN_TIMEOUT", cls.open_timeout),
            request_timeout=_env_float("CARDCAST_REQUEST_TIMEOUT", cls.request_timeout),
            http_timeout=_env_float("CARDCAST_HTTP_TIMEOUT", cls.http_timeout),
        )


async def get_users_and_players(session: CardCastSession, user_ids: Sequence[str],
                                player_ids: Sequence[str]) -> IdentityPools:
    result = await session.call(IDENTITY_METHOD, [{"userIds": list(user_ids), "playerIds": list(player_ids)}])
    return IdentityPools.from_result(result)


async def get_entries(session: CardCastSession, entry_ids: Sequence[str]) -> List[RoundEntry]:
    """Entries come back in arrival order, not in the order of entry_ids."""
    replies = await session.subscribe(ENTRIES_PUBLICATION, entry_ids, collection=ENTRY_COLLECTION)
    return [RoundEntry.from_fields(fields) for fields in replies]


class CardCastClient:
    """
    Fetches a finished scorecard: snapshot first, then one socket session that
    runs the identity call and the entries subscription side by side.
    A fresh session is opened per fetch.
    """

    def __init__(
        self,
        config: CardCastConfig | None = None,
        reader: SnapshotReader | None = None,
        session_factory: Optional[Callable[[CardCastConfig], CardCastSession]] = None,
    ):
        self.config = config or CardCastConfig()
        self.reader = reader or HttpSnapshotReader(timeout=self.config.http_timeout)
        self.session_factory = session_factory or _default_session

    async def fetch_scorecard(self, id_or_url: str) -> ScorecardResult:
        url = scorecard_url(id_or_url)
        snapshot = await self.reader.fetch_snapshot(url)
        if snapshot.url is None:
            snapshot.url = url
        if not snapshot.is_finished:
            logger.info("fetch_scorecard: %s is not finished, not opening a session", url)
            raise UnfinishedRoundError(url)

        async with self.session_factory(self.config) as session:
            identities, entries = await asyncio.gather(
                get_users_and_players(session, snapshot.user_ids, snapshot.unlinked_player_ids),
                get_entries(session, snapshot.entry_ids),
            )

        result = assemble(snapshot, identities, entries)
        logger.info("fetch_scorecard: %s at %s with %s entries", url, result.course_name, len(result.entries))
        return result


def _default_session(config: CardCastConfig) -> CardCastSession:
    return CardCastSession(
        sync_url=config.sync_url,
        open_timeout=config.open_timeout,
        request_timeout=config.request_timeout,
    )
