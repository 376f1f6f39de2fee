from fastapi.testclient import TestClient

from tourney.models.tournament import Tournament
from tourney.services import bracket_service


def _roster(n):
    return [{"name": f"Player {i}", "seed": i} for i in range(1, n + 1)]


def test_create_tournament_generates_bracket(client: TestClient):
    """Creating a tournament with 5 participants yields an 8-slot bracket"""
    response = client.post(
        "/api/tournaments",
        json={"name": "Spring Open", "sport": "judo", "participants": _roster(5)},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "Spring Open"
    assert data["sport"] == "judo"
    assert data["format"] == "single-elimination"
    assert len(data["participants"]) == 5
    assert len(data["matches"]) == 7

    labels = {m["round"]: m["round_label"] for m in data["matches"]}
    assert labels == {0: "Final", 1: "Semifinals", 2: "Quarterfinals"}

    walkovers = [m for m in data["matches"] if m["result_type"] == "WALKOVER"]
    assert len(walkovers) == 3


def test_create_tournament_without_participants(client: TestClient):
    response = client.post("/api/tournaments", json={"name": "Empty Cup"})
    assert response.status_code == 201
    data = response.json()
    assert data["participants"] == []
    assert data["matches"] == []


def test_single_participant_rejected(client: TestClient):
    response = client.post(
        "/api/tournaments",
        json={"name": "Lonely Cup", "participants": _roster(1)},
    )
    assert response.status_code == 422
    assert client.get("/api/tournaments").json() == []


def test_tournament_name_required(client: TestClient):
    response = client.post("/api/tournaments", json={"name": "   "})
    assert response.status_code == 422


def test_only_single_elimination_supported(client: TestClient):
    response = client.post(
        "/api/tournaments",
        json={"name": "RR", "format": "round-robin", "participants": _roster(4)},
    )
    assert response.status_code == 422


def test_get_and_list_tournaments(client: TestClient):
    created = client.post("/api/tournaments", json={"name": "Cup", "participants": _roster(4)}).json()

    response = client.get(f"/api/tournaments/{created['id']}")
    assert response.status_code == 200
    assert response.json()["matches"] == created["matches"]

    listing = client.get("/api/tournaments").json()
    assert [t["id"] for t in listing] == [created["id"]]
    assert "matches" not in listing[0]


def test_get_missing_tournament(client: TestClient):
    assert client.get("/api/tournaments/999").status_code == 404


def test_update_settings_keeps_bracket(client: TestClient):
    created = client.post("/api/tournaments", json={"name": "Cup", "participants": _roster(4)}).json()

    response = client.put(
        f"/api/tournaments/{created['id']}",
        json={"name": "Renamed Cup", "allow_ties": True},
    )
    assert response.status_code == 200
    assert response.json()["name"] == "Renamed Cup"
    assert response.json()["allow_ties"] is True

    after = client.get(f"/api/tournaments/{created['id']}").json()
    assert [m["id"] for m in after["matches"]] == [m["id"] for m in created["matches"]]


def test_delete_tournament(client: TestClient):
    created = client.post("/api/tournaments", json={"name": "Cup", "participants": _roster(4)}).json()

    assert client.delete(f"/api/tournaments/{created['id']}").status_code == 204
    assert client.get(f"/api/tournaments/{created['id']}").status_code == 404
    assert client.delete(f"/api/tournaments/{created['id']}").status_code == 404


def test_delete_tournament_drops_its_lock(client: TestClient):
    created = client.post("/api/tournaments", json={"name": "Cup", "participants": _roster(4)}).json()
    assert created["id"] in bracket_service._tournament_locks

    client.delete(f"/api/tournaments/{created['id']}")
    assert created["id"] not in bracket_service._tournament_locks


def test_timestamps_are_timezone_aware():
    tournament = Tournament(name="Cup")
    assert tournament.created_at.tzinfo is not None
    assert tournament.updated_at.tzinfo is not None


def test_health(client: TestClient):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
