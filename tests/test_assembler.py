from datetime import datetime, timezone

import pytest

from src.cardcast.assembler import assemble, assemble_entries
from src.cardcast.errors import ProtocolError
from src.cardcast.records import EntityRef, IdentityPools, IdentityRecord, RoundEntry
from src.cardcast.snapshot import Hole, Snapshot
from src.core.models import PlayerName


def pools():
    return IdentityPools.from_result({
        "users": [
            {"_id": "U1", "name": "Kyle", "fullName": "Kyle K", "username": "k1"},
            {"_id": "U2", "name": "Ana", "username": "ana"},
        ],
        "players": [
            {"_id": "P1", "name": "Guest Bob", "username": ""},
        ],
    })


def test_identity_pools_are_split():
    p = pools()
    assert set(p.accounts) == {"U1", "U2"}
    assert set(p.unlinked) == {"P1"}
    assert p.accounts["U1"].full_name == "Kyle K"


def test_identity_result_must_be_an_object():
    with pytest.raises(ProtocolError):
        IdentityPools.from_result(["U1"])


def test_identity_record_requires_id():
    with pytest.raises(ProtocolError):
        IdentityRecord.from_payload({"name": "No Id"})


def test_round_entry_puts_accounts_before_unlinked():
    entry = RoundEntry.from_fields({
        "totalScore": 58,
        "players": [{"__type": "Pointer", "className": "_Player", "objectId": "P1"}],
        "users": [{"__type": "Pointer", "className": "_User", "objectId": "U2"}],
        "holeScores": [{"strokes": 3, "changeVersion": 1}, {"strokes": 4, "changeVersion": 2}],
    })
    assert [r.object_id for r in entry.participant_refs] == ["U2", "P1"]
    assert entry.hole_scores == [3, 4]
    assert entry.total_score == 58


def test_round_entry_without_total_is_a_protocol_error():
    with pytest.raises(ProtocolError):
        RoundEntry.from_fields({"users": [], "players": []})


def test_unknown_id_becomes_placeholder():
    entries = [RoundEntry(total_score=40, participant_refs=[EntityRef("U1"), EntityRef("ghost")])]
    records = assemble_entries(pools(), entries)
    assert records[0].players == [PlayerName("Kyle", "k1"), PlayerName("unknown", "unknown")]


def test_player_count_matches_participants_even_when_all_miss():
    entries = [RoundEntry(total_score=40, participant_refs=[EntityRef("x"), EntityRef("y"), EntityRef("z")])]
    records = assemble_entries(IdentityPools(), entries)
    assert len(records[0].players) == 3
    assert all(p == PlayerName.unknown() for p in records[0].players)


def test_accounts_are_looked_up_before_unlinked():
    identities = IdentityPools(
        accounts={"X": IdentityRecord(id="X", name="Account", username="acc")},
        unlinked={"X": IdentityRecord(id="X", name="Unlinked", username="")},
    )
    records = assemble_entries(identities, [RoundEntry(total_score=1, participant_refs=[EntityRef("X")])])
    assert records[0].players == [PlayerName("Account", "acc")]


def test_entry_order_is_preserved():
    entries = [RoundEntry(total_score=t) for t in (61, 49, 55)]
    assert [r.total for r in assemble_entries(pools(), entries)] == [61, 49, 55]


def test_assemble_end_to_end_scenario():
    snapshot = Snapshot(
        course_name="Maple Hill",
        layout_name="Gold",
        end_date="2024-05-04T18:22:11.123Z",
        is_finished=True,
        entry_ids=["E1", "E2"],
        user_ids=["U1"],
        holes=[Hole(par=3, distance=300), Hole(par=4, distance=420)],
        url="https://udisc.com/scorecards/abc",
    )
    identities = IdentityPools.from_result({"users": [{"_id": "U1", "name": "Kyle", "username": "k1"}], "players": []})
    entries = [
        RoundEntry.from_fields({"totalScore": 33, "users": [{"objectId": "U1"}], "players": []}),
        RoundEntry.from_fields({"totalScore": 41, "users": [], "players": []}),
    ]

    result = assemble(snapshot, identities, entries)

    assert result.course_name == "Maple Hill"
    assert result.layout_name == "Gold"
    assert result.date == datetime(2024, 5, 4, 18, 22, 11, 123000, tzinfo=timezone.utc)
    assert [(e.total, e.players) for e in result.entries] == [
        (33, [PlayerName(name="Kyle", username="k1")]),
        (41, []),
    ]
    assert result.number_of_holes == 2
    assert result.layout_par == 7
    assert result.layout_distance == 720
    assert result.url == "https://udisc.com/scorecards/abc"
