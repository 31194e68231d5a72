import asyncio
import json

import httpx
import pytest

from src.cardcast.errors import SnapshotError
from src.cardcast.snapshot import (
    HttpSnapshotReader,
    extract_state,
    fetch_snapshot,
    parse_snapshot,
    scorecard_url,
)
from src.core.snapshot_protocol import SnapshotReader

STATE = {
    "courseDirectory": {},
    "scorecards": {
        "scorecard": {
            "courseName": "Maple Hill",
            "layoutName": "Gold",
            "endDate": "2024-05-04T18:22:11.123Z",
            "isFinished": True,
            "entries": [
                {"__type": "Pointer", "className": "ScorecardEntry", "objectId": "E1"},
                {"__type": "Pointer", "className": "ScorecardEntry", "objectId": "E2"},
            ],
            "users": [{"__type": "Pointer", "className": "_User", "objectId": "U1"}],
            "unlinkedPlayers": [{"__type": "Pointer", "className": "_Player", "objectId": "P1"}],
            "holes": [{"par": 3, "distance": 310, "name": "1"}, {"par": 4, "distance": 402, "name": "2"}],
        }
    },
}


def page(state=STATE, suffix=";"):
    return (
        "<html><head><script src=\"/app.js\"></script>"
        "<script>window.dataLayer = [];</script>"
        f"<script>\n  window.__PRELOADED_STATE__ = {json.dumps(state)}{suffix}\n</script>"
        "</head><body><h1>Scorecard</h1></body></html>"
    )


def test_scorecard_url_from_id():
    assert scorecard_url("zMdj5shY4o") == "https://udisc.com/scorecards/zMdj5shY4o"


def test_scorecard_url_passes_urls_through():
    url = "https://udisc.com/scorecards/A3A4OqNSkN"
    assert scorecard_url(url) == url


def test_scorecard_url_rejects_junk():
    with pytest.raises(SnapshotError):
        scorecard_url("not a card!")


def test_parse_snapshot():
    snapshot = parse_snapshot(page(), url="https://udisc.com/scorecards/abc")
    assert snapshot.course_name == "Maple Hill"
    assert snapshot.layout_name == "Gold"
    assert snapshot.end_date == "2024-05-04T18:22:11.123Z"
    assert snapshot.is_finished is True
    assert snapshot.entry_ids == ["E1", "E2"]
    assert snapshot.user_ids == ["U1"]
    assert snapshot.unlinked_player_ids == ["P1"]
    assert snapshot.layout_par == 7
    assert snapshot.layout_distance == 712
    assert snapshot.url == "https://udisc.com/scorecards/abc"


def test_state_without_trailing_semicolon():
    assert extract_state(page(suffix="")) == STATE


def test_unfinished_round_is_reported():
    state = json.loads(json.dumps(STATE))
    state["scorecards"]["scorecard"]["isFinished"] = False
    assert parse_snapshot(page(state)).is_finished is False


def test_page_without_state_raises():
    with pytest.raises(SnapshotError):
        parse_snapshot("<html><script>var x = 1;</script></html>")


def test_state_without_scorecard_raises():
    with pytest.raises(SnapshotError):
        parse_snapshot(page({"scorecards": {}}))


def test_broken_state_json_raises():
    with pytest.raises(SnapshotError):
        extract_state("<script>window.__PRELOADED_STATE__ = {oops</script>")


def test_fetch_snapshot_over_http():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, text=page())

    async def body():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            return await fetch_snapshot("abc123", http=http)

    snapshot = asyncio.run(body())
    assert seen == ["https://udisc.com/scorecards/abc123"]
    assert snapshot.entry_ids == ["E1", "E2"]
    assert snapshot.url == "https://udisc.com/scorecards/abc123"


def test_fetch_snapshot_http_error_becomes_snapshot_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="not found")

    async def body():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            await fetch_snapshot("missing", http=http)

    with pytest.raises(SnapshotError):
        asyncio.run(body())


def test_http_reader_satisfies_reader_protocol():
    assert isinstance(HttpSnapshotReader(), SnapshotReader)
