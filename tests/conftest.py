import os

# must be in place before fantasy_live.db builds its engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "0"
os.environ.setdefault("SPORTMONKS_API_KEY", "test-key")

import copy
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fantasy_live.db import Base
from fantasy_live import models
from fantasy_live.services import sportmonks


SAMPLE_SNAPSHOT = {
    "id": 5001,
    "status": "1st Innings",
    "note": "",
    "starting_at": "2026-10-19T14:00:00.000000Z",
    "localteam": {"id": 10, "name": "Mumbai", "code": "MUM"},
    "visitorteam": {"id": 20, "name": "Chennai", "code": "CHE"},
    "lineup": [
        {"id": 101, "fullname": "Rohan Batter", "team_id": 10, "position": "Batsman",
         "captain": True, "wicketkeeper": False, "substitute": False, "image_path": None},
        {"id": 102, "fullname": "Kiran Keeper", "team_id": 10, "position": "Wicketkeeper Batsman",
         "captain": False, "wicketkeeper": True, "substitute": False, "image_path": None},
        {"id": 201, "fullname": "Sam Bowler", "team_id": 20, "position": "Bowler",
         "captain": False, "wicketkeeper": False, "substitute": False, "image_path": None},
        {"id": 202, "fullname": "Ali Rounder", "team_id": 20, "position": "Allrounder",
         "captain": True, "wicketkeeper": False, "substitute": False, "image_path": None},
    ],
    "batting": [
        {"batsman_id": 101, "scoreboard": "S1", "score": 54, "ball": 36, "four_x": 6, "six_x": 2, "rate": 150},
        {"batsman_id": 102, "scoreboard": "S1", "score": 0, "ball": 3, "four_x": 0, "six_x": 0, "rate": 0,
         "catch_stump_player_id": 202, "bowling_player_id": 201},
        {"batsman_id": 103, "batsman": {"id": 103, "fullname": "Extra Player"}, "scoreboard": "S1",
         "score": 5, "ball": 4, "four_x": 0, "six_x": 0, "rate": 125},
    ],
    "bowling": [
        {"bowler_id": 201, "scoreboard": "S1", "overs": 4, "medians": 1, "runs": 20, "wickets": 1, "rate": 5.0},
        {"bowler_id": 202, "scoreboard": "S1", "overs": 2, "medians": 0, "runs": 30, "wickets": 0, "rate": 15.0},
    ],
    "balls": [
        {"id": 3, "scoreboard": "S1", "team_id": 10, "batsman_id": 102, "bowler_id": 201,
         "batsmanout_id": 102, "catchstump_id": 202,
         "score": {"name": "Catch Out", "runs": 0, "four": False, "six": False, "is_wicket": True}},
        {"id": 1, "scoreboard": "S1", "team_id": 10, "batsman_id": 101, "bowler_id": 201,
         "score": {"name": "4 Runs", "runs": 4, "four": True, "six": False, "is_wicket": False}},
        {"id": 2, "scoreboard": "S1", "team_id": 10, "batsman_id": 101, "bowler_id": 201,
         "score": {"name": "6 Runs", "runs": 6, "four": False, "six": True, "is_wicket": False}},
    ],
    "runs": [{"team_id": 10, "inning": 1, "score": 59, "wickets": 1, "overs": 7.0}],
    "scoreboards": [],
    "toss": 10,
    "elected": "batting",
}

# fantasy points the sample produces per provider player id
SAMPLE_POINTS = {"101": 70.0, "102": -2.0, "201": 41.0, "202": 2.0, "103": 5.0}


@pytest.fixture
def snapshot():
    return copy.deepcopy(SAMPLE_SNAPSHOT)


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture(autouse=True)
def _clear_provider_cache():
    sportmonks.clear_cache()
    yield
    sportmonks.clear_cache()


class Factory:
    def __init__(self, db):
        self.db = db
        self._seq = 0

    def _next(self):
        self._seq += 1
        return self._seq

    def match(self, provider_match_id="5001", status="live", start_time=None, **kw):
        m = models.Match(
            provider_match_id=str(provider_match_id),
            name=kw.pop("name", "Mumbai vs Chennai"),
            status=status,
            start_time=start_time or datetime.utcnow() - timedelta(hours=1),
            **kw,
        )
        self.db.add(m)
        self.db.commit()
        return m

    def player(self, provider_player_id=None, name=None, role="UNKNOWN"):
        n = self._next()
        p = models.Player(
            provider_player_id=str(provider_player_id or f"p{n}"),
            name=name or f"Player {n}",
            role=role,
        )
        self.db.add(p)
        self.db.commit()
        return p

    def stat(self, match, player, points):
        s = models.PlayerStatistic(match_id=match.id, player_id=player.id, points=points)
        self.db.add(s)
        self.db.commit()
        return s

    def user(self, balance="0"):
        n = self._next()
        u = models.User(name=f"user{n}", email=f"user{n}@example.com", wallet_balance=Decimal(balance))
        self.db.add(u)
        self.db.commit()
        return u

    def team(self, user, match, picks):
        """picks: list of (player, is_captain, is_vice_captain)"""
        t = models.FantasyTeam(user_id=user.id, match_id=match.id, name=f"{user.name} XI")
        self.db.add(t)
        self.db.flush()
        for player, cap, vice in picks:
            self.db.add(models.FantasyTeamPlayer(
                team_id=t.id, player_id=player.id, is_captain=cap, is_vice_captain=vice,
            ))
        self.db.commit()
        return t

    def contest(self, match, name="Mega Contest", prizes=None):
        c = models.Contest(match_id=match.id, name=name, entry_fee=Decimal("50"),
                           total_prize=sum(Decimal(str(v)) for v in (prizes or {}).values()),
                           winner_count=len(prizes or {}))
        self.db.add(c)
        self.db.flush()
        for rank, prize in (prizes or {}).items():
            self.db.add(models.PrizeBreakup(contest_id=c.id, rank=rank, prize=Decimal(str(prize))))
        self.db.commit()
        return c

    def entry(self, contest, team, user, created_at=None):
        e = models.ContestEntry(contest_id=contest.id, fantasy_team_id=team.id, user_id=user.id,
                                created_at=created_at or datetime.utcnow())
        self.db.add(e)
        self.db.commit()
        return e

    def entry_with_points(self, match, contest, points, created_at):
        """One user, one single-player team whose player is worth `points`."""
        u = self.user()
        p = self.player()
        self.stat(match, p, points)
        t = self.team(u, match, [(p, False, False)])
        return self.entry(contest, t, u, created_at=created_at)


@pytest.fixture
def factory(db):
    return Factory(db)


class FakeFetcher:
    """Stands in for the provider client; records calls."""

    def __init__(self, snapshot=None, error=None):
        self.snapshot = snapshot
        self.error = error
        self.calls = []

    def __call__(self, provider_match_id, **kw):
        self.calls.append(provider_match_id)
        if self.error:
            raise self.error
        return copy.deepcopy(self.snapshot) if self.snapshot else None


@pytest.fixture
def fake_fetch(snapshot):
    return FakeFetcher(snapshot)
