# src/cardcast/snapshot.py
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Any, Dict, List, Optional

import httpx

from .errors import SnapshotError

logger = logging.getLogger(__name__)

SCORECARD_BASE_URL = "https://udisc.com/scorecards"
STATE_MARKER = "window.__PRELOADED_STATE__"
_SCORECARD_ID = re.compile(r"^[A-Za-z0-9]+$")


def scorecard_url(id_or_url: str) -> str:
    """Accept either a bare scorecard id or a full scorecard URL."""
    value = (id_or_url or "").strip()
    if value.startswith("http://") or value.startswith("https://"):
        return value
    if not _SCORECARD_ID.match(value):
        raise SnapshotError(f"Not a scorecard id or URL: {id_or_url!r}")
    return f"{SCORECARD_BASE_URL}/{value}"


@dataclass(frozen=True)
class Hole:
    par: Optional[int] = None
    distance: Optional[int] = None


@dataclass
class Snapshot:
    course_name: str
    layout_name: str
    end_date: Optional[str]
    is_finished: bool
    entry_ids: List[str] = field(default_factory=list)
    user_ids: List[str] = field(default_factory=list)
    unlinked_player_ids: List[str] = field(default_factory=list)
    holes: List[Hole] = field(default_factory=list)
    url: Optional[str] = None

    @property
    def layout_par(self) -> Optional[int]:
        pars = [h.par for h in self.holes if h.par is not None]
        return sum(pars) if pars else None

    @property
    def layout_distance(self) -> Optional[int]:
        distances = [h.distance for h in self.holes if h.distance is not None]
        return sum(distances) if distances else None


class _ScriptCollector(HTMLParser):
    """Collects the text of every inline <script> element."""

    def __init__(self) -> None:
        super().__init__()
        self._in_script = False
        self._chunks: List[str] = []
        self.scripts: List[str] = []

    def handle_starttag(self, tag, attrs):
        if tag == "script":
            self._in_script = True
            self._chunks = []

    def handle_data(self, data):
        if self._in_script:
            self._chunks.append(data)

    def handle_endtag(self, tag):
        if tag == "script" and self._in_script:
            self.scripts.append("".join(self._chunks))
            self._in_script = False


def _object_ids(pointers: Any) -> List[str]:
    ids: List[str] = []
    for p in pointers or []:
        if isinstance(p, dict) and isinstance(p.get("objectId"), str):
            ids.append(p["objectId"])
        else:
            logger.warning("snapshot: skipping malformed pointer %r", p)
    return ids


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def extract_state(html: str) -> Dict[str, Any]:
    collector = _ScriptCollector()
    collector.feed(html or "")
    for text in collector.scripts:
        stripped = text.strip()
        if not stripped.startswith(STATE_MARKER):
            continue
        payload = stripped[len(STATE_MARKER):].lstrip()
        if payload.startswith("="):
            payload = payload[1:]
        payload = payload.strip().rstrip(";")
        try:
            state = json.loads(payload)
        except ValueError as e:
            raise SnapshotError("Preloaded state is not valid JSON") from e
        if not isinstance(state, dict):
            raise SnapshotError("Preloaded state is not an object")
        return state
    raise SnapshotError("No preloaded state script found in page")


def parse_snapshot(html: str, url: Optional[str] = None) -> Snapshot:
    state = extract_state(html)
    scorecard = (state.get("scorecards") or {}).get("scorecard")
    if not isinstance(scorecard, dict):
        raise SnapshotError("Preloaded state has no scorecard")

    holes = [
        Hole(par=_as_int(h.get("par")), distance=_as_int(h.get("distance")))
        for h in scorecard.get("holes") or []
        if isinstance(h, dict)
    ]
    return Snapshot(
        course_name=scorecard.get("courseName") or "",
        layout_name=scorecard.get("layoutName") or "",
        end_date=scorecard.get("endDate"),
        is_finished=bool(scorecard.get("isFinished")),
        entry_ids=_object_ids(scorecard.get("entries")),
        user_ids=_object_ids(scorecard.get("users")),
        unlinked_player_ids=_object_ids(scorecard.get("unlinkedPlayers")),
        holes=holes,
        url=url,
    )


async def fetch_snapshot(url: str, http: Optional[httpx.AsyncClient] = None, timeout: float = 20.0) -> Snapshot:
    """
    Fetch a scorecard page and parse the state embedded in it.
    An httpx.AsyncClient may be passed in to reuse connections (and in tests,
    a client wired to a mock transport).
    """
    url = scorecard_url(url)
    logger.info("Fetching scorecard snapshot %s", url)
    try:
        if http is None:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                response = await client.get(url)
        else:
            response = await http.get(url)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise SnapshotError(f"Could not fetch {url}: {e}") from e

    snapshot = parse_snapshot(response.text, url=url)
    logger.debug("snapshot: course=%s finished=%s entries=%s users=%s unlinked=%s",
                 snapshot.course_name, snapshot.is_finished, len(snapshot.entry_ids),
                 len(snapshot.user_ids), len(snapshot.unlinked_player_ids))
    return snapshot


class HttpSnapshotReader:
    def __init__(self, http: Optional[httpx.AsyncClient] = None, timeout: float = 20.0):
        self.http = http
        self.timeout = timeout

    async def fetch_snapshot(self, url: str) -> Snapshot:
        return await fetch_snapshot(url, http=self.http, timeout=self.timeout)
