import pytest

from fantasy_live.services.leaderboard import (
    team_points,
    update_contest_entry_points,
    update_live_contest_points,
)
from fantasy_live import crud, models


@pytest.fixture
def squad(factory):
    match = factory.match()
    players = [factory.player(name=n) for n in ("cap", "vice", "p3", "p4")]
    for p, pts in zip(players, (70, 41, 2, 5)):
        factory.stat(match, p, pts)
    return match, players


def test_captain_and_vice_multipliers(db, factory, squad):
    match, (cap, vice, p3, p4) = squad
    user = factory.user()
    team = factory.team(user, match, [(cap, True, False), (vice, False, True), (p3, False, False), (p4, False, False)])
    pts = team_points(db, team.id, crud.points_by_player(db, match.id))
    assert pts == 2 * 70 + 1.5 * 41 + 2 + 5


def test_player_without_stats_counts_zero(db, factory, squad):
    match, (cap, *_rest) = squad
    bench = factory.player(name="bench")
    team = factory.team(factory.user(), match, [(cap, False, False), (bench, True, False)])
    assert team_points(db, team.id, crud.points_by_player(db, match.id)) == 70


def test_update_recomputes_every_entry(db, factory, squad):
    match, (cap, vice, p3, p4) = squad
    c1 = factory.contest(match, "Mega", {1: 100})
    c2 = factory.contest(match, "Head to Head", {1: 90})
    u1, u2 = factory.user(), factory.user()
    t1 = factory.team(u1, match, [(cap, True, False), (vice, False, True)])
    t2 = factory.team(u2, match, [(p3, True, False), (p4, False, True)])
    e1 = factory.entry(c1, t1, u1)
    e2 = factory.entry(c1, t2, u2)
    e3 = factory.entry(c2, t1, u1)

    out = update_contest_entry_points(db, match.id)
    assert out["contests"] == 2
    assert out["entries"] == 3
    assert out["failed"] == 0

    db.expire_all()
    assert e1.points == 201.5
    assert e2.points == 4 + 7.5
    assert e3.points == 201.5


def test_update_follows_new_stats(db, factory, squad):
    match, (cap, *_rest) = squad
    c = factory.contest(match, prizes={1: 10})
    u = factory.user()
    e = factory.entry(c, factory.team(u, match, [(cap, True, False)]), u)
    update_contest_entry_points(db, match.id)
    stat = db.query(models.PlayerStatistic).filter_by(match_id=match.id, player_id=cap.id).one()
    stat.points = 80
    db.commit()
    update_contest_entry_points(db, match.id)
    db.expire_all()
    assert e.points == 160


def test_update_live_contest_points_unknown_match(db):
    assert update_live_contest_points(db, 9999) is False


def test_update_live_contest_points_ok(db, factory, squad):
    match, _ = squad
    assert update_live_contest_points(db, match.id) is True
