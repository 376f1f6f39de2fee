"""Result entry via the API: winners advance, stale downstream results are cleared."""
import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from tourney.models.match import Match
from tourney.models.tournament import Tournament
from tourney.services import bracket_service
from tourney.services.bracket_service import MatchResultUpdate


def _find(matches, round_number, position):
    return next(m for m in matches if m["round"] == round_number and m["position"] == position)


@pytest.fixture
def four_player(client: TestClient):
    """Semis (P1 v P4), (P2 v P3)."""
    data = client.post(
        "/api/tournaments",
        json={"name": "Four", "participants": [{"name": f"P{i}", "seed": i} for i in range(1, 5)]},
    ).json()
    ids = {p["name"]: p["id"] for p in data["participants"]}
    return {"tournament_id": data["id"], "ids": ids, "matches": data["matches"]}


def _patch(client, tid, match_id, **body):
    return client.patch(f"/api/tournaments/{tid}/matches/{match_id}", json=body)


def _matches(client, tid):
    return client.get(f"/api/tournaments/{tid}/matches").json()


def test_winner_advances_into_final(client: TestClient, four_player):
    tid, ids = four_player["tournament_id"], four_player["ids"]
    semi0 = _find(four_player["matches"], 1, 0)

    resp = _patch(client, tid, semi0["id"], winner_id=ids["P1"], red_score="10", blue_score="4")
    assert resp.status_code == 200
    body = resp.json()
    assert body["match"]["result_type"] == "SCORE"
    assert body["match"]["red_score"] == "10"
    assert body["cascaded_count"] == 1

    final = _find(_matches(client, tid), 0, 0)
    assert final["red_competitor_id"] == ids["P1"]
    assert final["blue_competitor_id"] is None
    assert final["result_type"] == "PENDING"


def test_changing_semifinal_winner_clears_final(client: TestClient, session: Session, four_player):
    tid, ids = four_player["tournament_id"], four_player["ids"]
    semi0 = _find(four_player["matches"], 1, 0)
    semi1 = _find(four_player["matches"], 1, 1)
    final = _find(four_player["matches"], 0, 0)

    _patch(client, tid, semi0["id"], winner_id=ids["P1"])
    _patch(client, tid, semi1["id"], winner_id=ids["P2"])
    resp = _patch(client, tid, final["id"], winner_id=ids["P1"], result_type="KO")
    assert resp.json()["match"]["result_type"] == "KO"

    resp = _patch(client, tid, semi0["id"], winner_id=ids["P4"])
    assert resp.status_code == 200
    assert final["id"] in resp.json()["updated_match_ids"]

    stored = session.get(Match, final["id"])
    session.refresh(stored)
    assert stored.red_competitor_id == ids["P4"]
    assert stored.blue_competitor_id == ids["P2"]
    assert stored.winner_id is None
    assert stored.result_type == "PENDING"


def test_clearing_result_removes_competitor_downstream(client: TestClient, four_player):
    tid, ids = four_player["tournament_id"], four_player["ids"]
    semi0 = _find(four_player["matches"], 1, 0)

    _patch(client, tid, semi0["id"], winner_id=ids["P1"])
    resp = _patch(client, tid, semi0["id"], winner_id=None, red_score="1")
    assert resp.status_code == 200
    assert resp.json()["match"]["result_type"] == "PENDING"
    assert resp.json()["match"]["red_score"] is None

    final = _find(_matches(client, tid), 0, 0)
    assert final["red_competitor_id"] is None


def test_non_score_result_drops_scores(client: TestClient, four_player):
    tid, ids = four_player["tournament_id"], four_player["ids"]
    semi0 = _find(four_player["matches"], 1, 0)

    resp = _patch(client, tid, semi0["id"], winner_id=ids["P4"], result_type="DQ", red_score="3")
    assert resp.json()["match"]["result_type"] == "DQ"
    assert resp.json()["match"]["red_score"] is None


def test_winner_must_be_in_match(client: TestClient, four_player):
    tid, ids = four_player["tournament_id"], four_player["ids"]
    semi0 = _find(four_player["matches"], 1, 0)

    resp = _patch(client, tid, semi0["id"], winner_id=ids["P2"])
    assert resp.status_code == 422
    assert _find(_matches(client, tid), 0, 0)["red_competitor_id"] is None


def test_ties_need_tournament_setting(client: TestClient, four_player):
    tid, ids = four_player["tournament_id"], four_player["ids"]
    semi0 = _find(four_player["matches"], 1, 0)

    resp = _patch(client, tid, semi0["id"], winner_id=ids["P1"], result_type="TIE")
    assert resp.status_code == 422

    client.put(f"/api/tournaments/{tid}", json={"allow_ties": True})
    resp = _patch(client, tid, semi0["id"], winner_id=ids["P1"], result_type="TIE")
    assert resp.status_code == 200
    assert resp.json()["match"]["result_type"] == "TIE"


def test_unknown_result_type_rejected(client: TestClient, four_player):
    semi0 = _find(four_player["matches"], 1, 0)
    resp = _patch(client, four_player["tournament_id"], semi0["id"], winner_id=None, result_type="FORFEIT")
    assert resp.status_code == 422


def test_match_must_belong_to_tournament(client: TestClient, four_player):
    other = client.post(
        "/api/tournaments",
        json={"name": "Other", "participants": [{"name": "X"}, {"name": "Y"}]},
    ).json()
    semi0 = _find(four_player["matches"], 1, 0)

    assert _patch(client, other["id"], semi0["id"], winner_id=None).status_code == 404
    assert _patch(client, 999, semi0["id"], winner_id=None).status_code == 404


def test_corrupted_tree_is_not_persisted(client: TestClient, session: Session, four_player):
    tid, ids = four_player["tournament_id"], four_player["ids"]
    semi0 = _find(four_player["matches"], 1, 0)

    row = session.get(Match, semi0["id"])
    row.next_match_id = "does-not-exist"
    session.add(row)
    session.commit()

    resp = _patch(client, tid, semi0["id"], winner_id=ids["P1"])
    assert resp.status_code == 500

    session.refresh(row)
    assert row.winner_id is None


def test_bye_winner_is_seated_in_next_round(client: TestClient):
    data = client.post(
        "/api/tournaments",
        json={"name": "Five", "participants": [{"name": f"P{i}", "seed": i} for i in range(1, 6)]},
    ).json()
    ids = {p["name"]: p["id"] for p in data["participants"]}

    opener = _find(data["matches"], 2, 0)
    assert opener["red_competitor_id"] == ids["P1"]
    assert opener["blue_competitor_id"] is None
    assert opener["result_type"] == "WALKOVER"
    assert opener["winner_id"] == ids["P1"]

    semi0 = _find(data["matches"], 1, 0)
    assert (semi0["red_competitor_id"], semi0["blue_competitor_id"]) == (ids["P1"], ids["P2"])


def test_reset_restores_pending_bracket(client: TestClient, four_player):
    tid, ids = four_player["tournament_id"], four_player["ids"]
    semi0 = _find(four_player["matches"], 1, 0)
    semi1 = _find(four_player["matches"], 1, 1)
    final = _find(four_player["matches"], 0, 0)
    _patch(client, tid, semi0["id"], winner_id=ids["P1"])
    _patch(client, tid, semi1["id"], winner_id=ids["P3"])
    _patch(client, tid, final["id"], winner_id=ids["P3"])

    resp = client.post(f"/api/tournaments/{tid}/bracket/reset")
    assert resp.status_code == 200
    matches = resp.json()
    assert all(m["result_type"] == "PENDING" and m["winner_id"] is None for m in matches)

    reset_final = _find(matches, 0, 0)
    assert reset_final["red_competitor_id"] is None
    assert reset_final["blue_competitor_id"] is None
    assert _find(matches, 1, 0)["red_competitor_id"] == ids["P1"]
    assert _find(matches, 1, 0)["blue_competitor_id"] == ids["P4"]
    assert _find(matches, 1, 1)["red_competitor_id"] == ids["P2"]


def test_reset_reseats_byes(client: TestClient):
    data = client.post(
        "/api/tournaments",
        json={"name": "Three", "participants": [{"name": f"P{i}", "seed": i} for i in range(1, 4)]},
    ).json()
    tid = data["id"]

    matches = client.post(f"/api/tournaments/{tid}/bracket/reset").json()
    opener = _find(matches, 1, 0)
    assert opener["result_type"] == "WALKOVER"
    assert _find(matches, 0, 0)["red_competitor_id"] == opener["winner_id"]


def test_regenerate_discards_results(client: TestClient, four_player):
    tid, ids = four_player["tournament_id"], four_player["ids"]
    semi0 = _find(four_player["matches"], 1, 0)
    _patch(client, tid, semi0["id"], winner_id=ids["P1"])

    resp = client.post(f"/api/tournaments/{tid}/bracket/regenerate")
    assert resp.status_code == 200
    matches = resp.json()
    assert len(matches) == 3
    assert semi0["id"] not in {m["id"] for m in matches}
    assert all(m["winner_id"] is None for m in matches)


def test_regenerate_without_roster(client: TestClient):
    tid = client.post("/api/tournaments", json={"name": "Empty"}).json()["id"]
    assert client.post(f"/api/tournaments/{tid}/bracket/regenerate").status_code == 422


def test_result_sees_commits_from_other_sessions(session: Session, db_engine, four_player):
    """A match row cached before another session's commit is reloaded."""
    tid, ids = four_player["tournament_id"], four_player["ids"]
    semi0 = _find(four_player["matches"], 1, 0)
    final = _find(four_player["matches"], 0, 0)

    cached_final = session.get(Match, final["id"])
    assert cached_final.red_competitor_id is None

    with Session(db_engine) as other:
        bracket_service.apply_match_result(
            other, other.get(Tournament, tid), semi0["id"], MatchResultUpdate(winner_id=ids["P1"])
        )

    outcome = bracket_service.apply_match_result(
        session, session.get(Tournament, tid), final["id"], MatchResultUpdate(winner_id=ids["P1"])
    )
    assert outcome.match.red_competitor_id == ids["P1"]
    assert outcome.match.winner_id == ids["P1"]
    assert cached_final.winner_id == ids["P1"]
