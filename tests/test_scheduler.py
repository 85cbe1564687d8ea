import asyncio
import threading
from datetime import datetime, timedelta

import pytest

from fantasy_live import crud, models
from fantasy_live.services.scheduler import MatchScheduler

from conftest import FakeFetcher


async def wait_for_poll(sched, match_id):
    for _ in range(500):
        if match_id in sched.last_poll:
            return
        await asyncio.sleep(0.01)


def make_scheduler(session_factory, fetch, **kw):
    kw.setdefault("settle_kwargs", {"retry_delay": 0})
    return MatchScheduler(session_factory=session_factory, fetch_snapshot=fetch, **kw)


def _finished(snapshot):
    snapshot["status"] = "Finished"
    snapshot["note"] = "Mumbai won by 10 runs"
    return snapshot


@pytest.fixture
def fantasy_match(db, factory):
    """Live match whose roster players exist, with one contest entry (101 C, 201 VC)."""
    match = factory.match(provider_match_id="5001", status="live")
    bat = factory.player(provider_player_id="101", name="Rohan Batter", role="BAT")
    bowl = factory.player(provider_player_id="201", name="Sam Bowler", role="BOWL")
    contest = factory.contest(match, "Mega Contest", {1: 1000})
    user = factory.user()
    team = factory.team(user, match, [(bat, True, False), (bowl, False, True)])
    entry = factory.entry(contest, team, user)
    return match, contest, entry


def test_poll_once_runs_the_pipeline(db, session_factory, fake_fetch, fantasy_match):
    match, contest, entry = fantasy_match
    sched = make_scheduler(session_factory, fake_fetch)

    assert asyncio.run(sched.poll_once(match.id)) is True
    assert fake_fetch.calls == ["5001"]

    db.expire_all()
    assert crud.count_ball_events(db, match.id) == 3
    assert match.summary.team_a_score == "59/1"
    assert match.team_a_name == "Mumbai"
    assert entry.points == 2 * 70 + 1.5 * 41
    assert match.status == "live"

    last = sched.last_poll[match.id]
    assert last["balls_added"] == 3
    assert last["completed"] is False


def test_poll_of_unknown_match_is_not_ok(session_factory, fake_fetch):
    sched = make_scheduler(session_factory, fake_fetch)
    assert asyncio.run(sched.poll_once(9999)) is False
    assert fake_fetch.calls == []


def test_provider_error_is_not_fatal(db, session_factory, fantasy_match):
    match, _, _ = fantasy_match
    sched = make_scheduler(session_factory, FakeFetcher(error=RuntimeError("provider down")))
    assert asyncio.run(sched.poll_once(match.id)) is False
    assert "provider down" in sched.last_poll[match.id]["error"]
    assert match.id not in sched._in_flight


def test_empty_snapshot_is_not_ok(session_factory, fantasy_match):
    match, _, _ = fantasy_match
    sched = make_scheduler(session_factory, FakeFetcher(None))
    assert asyncio.run(sched.poll_once(match.id)) is False
    assert sched.last_poll[match.id]["error"] == "no snapshot"


def test_overlapping_polls_are_skipped(session_factory, snapshot, fantasy_match):
    match, _, _ = fantasy_match
    entered, release = threading.Event(), threading.Event()

    class SlowFetcher(FakeFetcher):
        def __call__(self, provider_match_id, **kw):
            entered.set()
            release.wait(5)
            return super().__call__(provider_match_id, **kw)

    fetch = SlowFetcher(snapshot)
    sched = make_scheduler(session_factory, fetch)

    async def scenario():
        first = asyncio.create_task(sched.poll_once(match.id))
        await asyncio.to_thread(entered.wait, 5)
        assert sched.status()["in_flight"] == [match.id]
        second = await sched.poll_once(match.id)
        release.set()
        return await first, second

    first, second = asyncio.run(scenario())
    assert (first, second) == (True, False)
    assert len(fetch.calls) == 1


def test_completion_settles_exactly_once(db, session_factory, snapshot, fantasy_match):
    match, contest, entry = fantasy_match
    fetch = FakeFetcher(_finished(snapshot))
    sched = make_scheduler(session_factory, fetch)

    async def scenario():
        await sched.poll_once(match.id)
        # provider keeps reporting the finished match; the sweep runs too
        await sched.poll_once(match.id)
        await sched.settle_completed_matches()

    asyncio.run(scenario())

    db.expire_all()
    assert match.status == "completed"
    assert match.result == "Mumbai won by 10 runs"
    assert match.end_time is not None
    assert match.result_settled is True
    assert entry.rank == 1
    assert contest.settlement_status == "paid"
    wins = db.query(models.Transaction).filter_by(type=models.CONTEST_WIN).all()
    assert len(wins) == 1
    assert sched.settled == {match.id}


def test_settle_once_respects_durable_flag(db, session_factory, fake_fetch, factory):
    match = factory.match(status="completed", result_settled=True)
    sched = make_scheduler(session_factory, fake_fetch)
    assert asyncio.run(sched.settle_once(match.id)) is False
    assert match.id in sched.settled


def test_sweep_settles_completed_matches_after_restart(db, session_factory, fake_fetch, factory):
    match = factory.match(status="completed")
    contest = factory.contest(match, prizes={1: 100})
    factory.entry_with_points(match, contest, 10, datetime(2026, 10, 19))
    sched = make_scheduler(session_factory, fake_fetch)

    settled = asyncio.run(sched.settle_completed_matches())
    assert settled == [match.id]
    db.expire_all()
    assert match.result_settled is True
    assert contest.settlement_status == "paid"


def test_promote_due_matches(db, session_factory, fake_fetch, factory):
    due = factory.match(provider_match_id="1", status="upcoming",
                        start_time=datetime.utcnow() - timedelta(minutes=5))
    later = factory.match(provider_match_id="2", status="upcoming",
                          start_time=datetime.utcnow() + timedelta(hours=2))
    sched = make_scheduler(session_factory, fake_fetch)
    tracked = []
    sched.track = tracked.append

    promoted = asyncio.run(sched.promote_due_matches())
    assert promoted == [due.id]
    assert due.id in tracked
    assert later.id not in tracked

    db.expire_all()
    assert due.status == "live"
    assert later.status == "upcoming"


def test_status_never_moves_backwards(db, factory):
    match = factory.match(status="completed")
    assert crud.advance_match_status(db, match, "live") is False
    assert crud.advance_match_status(db, match, "bogus") is False
    assert match.status == "completed"


def test_stop_cancels_timer_and_polls_once_more(session_factory, fantasy_match):
    match, _, _ = fantasy_match
    fetch = FakeFetcher(None)
    sched = make_scheduler(session_factory, fetch, live_poll_sec=3600)

    async def scenario():
        sched.track(match.id)
        assert sched.track(match.id) is False
        await wait_for_poll(sched, match.id)
        assert sched.tracked == [match.id]
        was_tracked = await sched.stop(match.id)
        await sched.shutdown()
        return was_tracked

    assert asyncio.run(scenario()) is True
    assert sched.tracked == []
    # one tick from the timer, one final poll from stop()
    assert len(fetch.calls) == 2


def test_start_tracks_live_matches_and_shutdown_cancels(session_factory, fantasy_match):
    match, _, _ = fantasy_match
    fetch = FakeFetcher(None)
    sched = make_scheduler(session_factory, fetch, live_poll_sec=3600)

    async def idle():
        return []

    sched.promote_due_matches = idle
    sched.settle_completed_matches = idle
    sched.refresh_upcoming_lineups = idle
    sched.refresh_live_points = idle

    async def scenario():
        await sched.start()
        await wait_for_poll(sched, match.id)
        snapshot = sched.status()
        await sched.shutdown()
        return snapshot

    status = asyncio.run(scenario())
    assert status["running"] is True
    assert status["tracked"] == [match.id]
    assert sched.running is False
    assert sched.tracked == []
    assert len(fetch.calls) == 1


def test_trigger_contest_finalization_completes_and_settles(db, session_factory, fake_fetch, fantasy_match, snapshot):
    match, contest, entry = fantasy_match
    sched = make_scheduler(session_factory, fake_fetch)

    async def scenario():
        await sched.poll_once(match.id)
        return await sched.trigger_contest_finalization(match.id)

    assert asyncio.run(scenario()) is True
    db.expire_all()
    assert match.status == "completed"
    assert match.result_settled is True
    assert entry.rank == 1
    assert entry.win_amount == 1000


def test_trigger_contest_finalization_unknown_match(session_factory, fake_fetch):
    sched = make_scheduler(session_factory, fake_fetch)
    assert asyncio.run(sched.trigger_contest_finalization(31337)) is False


def test_lineup_sweep_refreshes_matches_near_start(db, session_factory, fake_fetch, factory):
    soon = factory.match(provider_match_id="1", status="upcoming",
                         start_time=datetime.utcnow() + timedelta(hours=1))
    factory.match(provider_match_id="2", status="upcoming",
                  start_time=datetime.utcnow() + timedelta(days=2))
    sched = make_scheduler(session_factory, fake_fetch, lineup_lead_hours=3)

    refreshed = asyncio.run(sched.refresh_upcoming_lineups())
    assert refreshed == [soon.id]
    assert fake_fetch.calls == ["1"]


def test_status_reports_provider_diagnostics(session_factory, fake_fetch):
    sched = make_scheduler(session_factory, fake_fetch)
    st = sched.status()
    assert st["running"] is False
    assert st["tracked"] == []
    assert "provider" in st and "status" in st["provider"]


def test_abandoned_match_stops_polling_without_settling(db, session_factory, snapshot, factory):
    match = factory.match(provider_match_id="5001", status="live")
    contest = factory.contest(match, "Mega Contest", {1: 1000, 2: 500})
    for i in range(3):
        factory.entry_with_points(match, contest, 0, datetime(2026, 10, 19, 12, i))
    snapshot["status"] = "Aban."
    snapshot["note"] = "Match abandoned due to rain"
    sched = make_scheduler(session_factory, FakeFetcher(snapshot))

    async def scenario():
        sched.track(match.id)
        await wait_for_poll(sched, match.id)
        swept = await sched.settle_completed_matches()
        forced = await sched.trigger_contest_finalization(match.id)
        return swept, forced

    swept, forced = asyncio.run(scenario())
    assert (swept, forced) == ([], False)
    assert sched.last_poll[match.id]["abandoned"] is True
    assert sched.tracked == []
    assert sched.settled == set()

    db.expire_all()
    assert match.status == "abandoned"
    assert match.result == "Match abandoned due to rain"
    assert not match.result_settled
    assert db.query(models.Transaction).filter_by(type=models.CONTEST_WIN).count() == 0
    assert all(e.win_amount is None for e in contest.entries)


def test_abandoned_match_never_returns_to_live_or_completed(db, factory):
    match = factory.match(status="abandoned")
    assert crud.advance_match_status(db, match, "live") is False
    assert crud.advance_match_status(db, match, "completed") is False
    assert match.status == "abandoned"


def test_ball_sync_is_refused_while_a_poll_runs(db, session_factory, snapshot, fantasy_match):
    match, _, _ = fantasy_match
    entered, release = threading.Event(), threading.Event()

    class SlowFetcher(FakeFetcher):
        def __call__(self, provider_match_id, **kw):
            entered.set()
            release.wait(5)
            return super().__call__(provider_match_id, **kw)

    sched = make_scheduler(session_factory, SlowFetcher(snapshot))

    async def scenario():
        poll = asyncio.create_task(sched.poll_once(match.id))
        await asyncio.to_thread(entered.wait, 5)
        refused = await sched.sync_balls(match.id, force=True)
        release.set()
        await poll
        return refused, await sched.sync_balls(match.id, force=True)

    refused, resync = asyncio.run(scenario())
    assert refused is None
    assert resync["total"] == 3
    assert sched.status()["in_flight"] == []

    db.expire_all()
    events = crud.get_ball_events(db, match.id)
    assert [e.sequence for e in events] == [1, 2, 3]
    assert len({e.provider_ball_id for e in events}) == 3


def test_sync_balls_unknown_match(session_factory, fake_fetch):
    sched = make_scheduler(session_factory, fake_fetch)
    assert asyncio.run(sched.sync_balls(4242)) == {"ok": False, "error": "unknown match"}


def test_explicit_zero_intervals_are_kept(session_factory, fake_fetch):
    sched = make_scheduler(session_factory, fake_fetch, live_poll_sec=0, lineup_lead_hours=0)
    assert sched.live_poll_sec == 0
    assert sched.lineup_lead_hours == 0
