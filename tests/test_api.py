import pytest
from fastapi.testclient import TestClient

from fantasy_live.main import app
from fantasy_live.db import get_db
from fantasy_live.deps.scheduler import get_scheduler
from fantasy_live.services.scheduler import MatchScheduler


@pytest.fixture
def sched(session_factory, fake_fetch):
    return MatchScheduler(session_factory=session_factory, fetch_snapshot=fake_fetch,
                          settle_kwargs={"retry_delay": 0})


@pytest.fixture
def client(session_factory, sched):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_scheduler] = lambda: sched
    # no context manager: startup (create_all on the real engine, timers) stays off
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def match(factory):
    return factory.match(provider_match_id="5001", status="live")


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True


def test_unknown_match_is_404(client):
    assert client.post("/matches/999/update").status_code == 404
    assert client.post("/matches/999/finalize-contests").status_code == 404
    assert client.get("/matches/999/live").status_code == 404
    assert client.get("/matches/999/lineup").status_code == 404
    assert client.get("/matches/999/balls").status_code == 404
    assert client.get("/matches/999/stats").status_code == 404


def test_update_then_read_projections(client, match):
    r = client.post(f"/matches/{match.id}/update")
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["detail"]["balls_added"] == 3

    live = client.get(f"/matches/{match.id}/live").json()
    assert live["team_a_score"] == "59/1"
    assert live["recent_overs"] == "4 6 W"
    assert live["last_wicket"].startswith("Kiran Keeper")

    balls = client.get(f"/matches/{match.id}/balls").json()
    assert [b["sequence"] for b in balls] == [1, 2, 3]
    assert [b["over"] for b in balls] == ["0.1", "0.2", "0.3"]
    recent = client.get(f"/matches/{match.id}/balls", params={"recent": 2}).json()
    assert [b["sequence"] for b in recent] == [2, 3]

    stats = client.get(f"/matches/{match.id}/stats").json()
    assert stats[0]["name"] == "Rohan Batter"
    assert stats[0]["points"] == 70
    assert stats[-1]["points"] == -2


def test_sync_balls_force_is_repeatable(client, match):
    first = client.post(f"/matches/{match.id}/sync-balls", params={"force": 1}).json()
    second = client.post(f"/matches/{match.id}/sync-balls", params={"force": 1}).json()
    assert first["detail"]["total"] == second["detail"]["total"] == 3
    plain = client.post(f"/matches/{match.id}/sync-balls").json()
    assert plain["detail"]["skipped"] == 3


def test_sync_balls_conflicts_with_running_poll(client, sched, match):
    sched._in_flight.add(match.id)
    r = client.post(f"/matches/{match.id}/sync-balls", params={"force": 1})
    assert r.status_code == 409
    sched._in_flight.discard(match.id)
    assert client.post(f"/matches/{match.id}/sync-balls", params={"force": 1}).status_code == 200


def test_lineup_routes(client, match):
    r = client.get(f"/matches/{match.id}/lineup")
    assert r.status_code == 200
    assert r.json()["available"] is True
    r = client.post(f"/matches/{match.id}/lineup/refresh")
    assert len(r.json()["team_a"]) == 2


def test_finalize_contests_route(client, match):
    r = client.post(f"/matches/{match.id}/finalize-contests")
    assert r.status_code == 200
    assert r.json()["ok"] is True


def test_update_contest_points_route(client, match):
    r = client.post(f"/matches/{match.id}/update-contest-points")
    assert r.json() == {"ok": True, "match_id": match.id, "detail": None}


def test_settlement_routes_empty(client):
    assert client.get("/settlement/failures").json() == []
    assert client.get("/settlement/missed-prizes").json() == []
    assert client.post("/settlement/failures/replay").json() == {"checked": 0, "resolved": 0, "still_failing": 0}
    assert client.post("/settlement/reconcile").json()["matches"] == []


def test_scheduler_status_route(client):
    st = client.get("/scheduler/status").json()
    assert st["running"] is False
    assert st["tracked"] == []
