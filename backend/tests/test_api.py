"""HTTP surface: routing, payloads and error mapping."""
from fastapi.testclient import TestClient
from sqlmodel import Session, select

from courtside.models.knockout import KnockoutMatch
from courtside.models.match import Match
from tests.factories import complete_group_stage, make_category


def test_health(client: TestClient):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_group_flow(client: TestClient, session: Session):
    fixtures = make_category(session, "MD", [4])
    response = client.post("/api/groups/MD/generate")
    assert response.status_code == 200
    assert response.json()["created"] == 6

    match = session.exec(select(Match)).first()
    response = client.post(f"/api/matches/group/{match.id}/score", json={"games": [{"home_points": 21, "away_points": 9}]})
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "COMPLETED"
    assert body["winner_team_id"] == match.home_team_id
    assert "schedule_change" in body

    group, _ = fixtures[0]
    standings = client.get(f"/api/groups/{group.id}/standings").json()
    assert len(standings["rows"]) == 4
    assert standings["rows"][0]["team_id"] == match.home_team_id


def test_invalid_score_maps_to_400(client: TestClient, session: Session):
    make_category(session, "MD", [2])
    client.post("/api/groups/MD/generate")
    match = session.exec(select(Match)).one()
    response = client.post(f"/api/matches/group/{match.id}/score", json={"games": [{"home_points": 20, "away_points": 20}]})
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "INVALID_SCORE"


def test_negative_points_rejected_by_payload_validation(client: TestClient, session: Session):
    make_category(session, "MD", [2])
    client.post("/api/groups/MD/generate")
    match = session.exec(select(Match)).one()
    response = client.post(f"/api/matches/group/{match.id}/score", json={"games": [{"home_points": -1, "away_points": 21}]})
    assert response.status_code == 422


def test_schedule_board_and_auto_fill(client: TestClient, session: Session):
    make_category(session, "MD", [4, 4])
    client.post("/api/groups/MD/generate")

    state = client.get("/api/schedule/GROUP").json()
    assert len(state["courts"]) == 5
    assert len(state["eligible"]) == 12

    signature = client.get("/api/schedule/GROUP/signature").json()
    response = client.post("/api/schedule/GROUP/auto", json={"enabled": True})
    assert response.status_code == 200
    assert len(response.json()["auto_fill"]["assigned"]) == 4
    assert client.get("/api/schedule/GROUP/signature").json()["assignments"] != signature["assignments"]


def test_manual_assign_conflicts(client: TestClient, session: Session):
    make_category(session, "MD", [4])
    client.post("/api/groups/MD/generate")
    match = session.exec(select(Match)).first()
    payload = {"court_id": "C1", "match_type": "GROUP", "match_id": match.id}

    assert client.post("/api/schedule/GROUP/assign", json=payload).status_code == 200
    again = client.post("/api/schedule/GROUP/assign", json={**payload, "court_id": "C2"})
    assert again.status_code == 409
    assert again.json()["detail"]["error"] == "ALREADY_ASSIGNED"

    locked = client.post("/api/schedule/GROUP/courts/C3/lock")
    assert locked.json()["is_locked"] is True

    released = client.post("/api/schedule/GROUP/back-to-queue", json={"court_id": "C1"})
    assert released.status_code == 200
    assert released.json()["released_match_key"] == f"GROUP:{match.id}"


def test_match_type_must_belong_to_stage(client: TestClient, session: Session):
    make_category(session, "MD", [2])
    client.post("/api/groups/MD/generate")
    match = session.exec(select(Match)).one()
    response = client.post("/api/schedule/KNOCKOUT/block", json={"match_type": "GROUP", "match_id": match.id})
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "WRONG_STAGE"


def test_block_and_force_routes(client: TestClient, session: Session):
    make_category(session, "MD", [4])
    client.post("/api/groups/MD/generate")
    first, second = session.exec(select(Match)).all()[:2]

    forced = client.post("/api/schedule/GROUP/force", json={"match_type": "GROUP", "match_id": first.id})
    assert forced.status_code == 200
    state = client.get("/api/schedule/GROUP").json()
    assert state["eligible"][0]["match_id"] == first.id
    assert state["eligible"][0]["forced_rank"] == 1

    blocked = client.post("/api/schedule/GROUP/block", json={"match_type": "GROUP", "match_id": second.id})
    assert blocked.status_code == 200
    assert [b["match_id"] for b in client.get("/api/schedule/GROUP").json()["blocked"]] == [second.id]
    assert client.post("/api/schedule/GROUP/unblock", json={"match_type": "GROUP", "match_id": second.id}).json()[
        "removed"
    ]
    assert client.post("/api/schedule/GROUP/force/reset").json()["removed"] == 1


def test_knockout_routes(client: TestClient, session: Session):
    complete_group_stage(session, "MD", [4, 4, 4, 4])

    missing = client.post("/api/knockout/MD/generate", json={"series": "A"})
    assert missing.status_code == 400
    assert missing.json()["detail"]["error"] == "MISSING_SERIES_SPLIT"

    split = client.post("/api/knockout/MD/series-split")
    assert split.json()["series_a"] == 8

    full = client.post("/api/knockout/MD/generate-full")
    assert full.status_code == 200
    exists = client.post("/api/knockout/MD/generate-full")
    assert exists.status_code == 409

    qf = session.exec(
        select(KnockoutMatch).where(KnockoutMatch.series == "A", KnockoutMatch.round_no == 2, KnockoutMatch.match_no == 1)
    ).one()
    scored = client.post(f"/api/matches/knockout/{qf.id}/score", json={"games": [{"home_points": 21, "away_points": 11}]})
    assert scored.status_code == 200
    assert scored.json()["winner_team_id"] == qf.home_team_id

    not_final = client.post(f"/api/matches/knockout/{qf.id}/best-of-3", json={"enabled": True})
    assert not_final.status_code == 400

    assert client.post("/api/knockout/MD/sync").json()["updated"] == 0
    cleared = client.delete("/api/knockout/MD")
    assert cleared.json()["deleted_matches"] == 14


def test_group_lock_routes(client: TestClient, session: Session):
    make_category(session, "MD", [2])
    client.post("/api/groups/MD/generate")
    assert client.post("/api/groups/MD/lock").json()["locked"] is True
    refused = client.delete("/api/groups/MD/matches")
    assert refused.status_code == 400
    assert client.post("/api/groups/MD/unlock").json()["locked"] is False
    assert client.delete("/api/groups/MD/matches").json()["deleted"] == 1


def test_knockout_seed_toggle_route(client: TestClient, session: Session):
    fixtures = make_category(session, "MD", [2])
    team = fixtures[0][1][1]
    response = client.post(f"/api/teams/{team.id}/knockout-seed", json={"enabled": True})
    assert response.status_code == 200
    assert response.json()["is_knockout_seed"] is True
    assert client.post("/api/teams/999/knockout-seed", json={"enabled": True}).status_code == 404
