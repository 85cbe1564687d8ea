# fantasy_live/schemas.py
from datetime import datetime
from typing import Any
from pydantic import BaseModel

# ---- Balls ----
class BallEventOut(BaseModel):
    sequence: int
    over: str
    provider_ball_id: str | None = None
    runs: int
    is_four: bool
    is_six: bool
    is_wicket: bool
    wicket_type: str | None = None
    batsman_id: str | None = None
    bowler_id: str | None = None
    out_batsman_id: str | None = None
    inning: int
    created_at: datetime | None = None

    class Config:
        from_attributes = True  # pydantic v2

# ---- Player statistics ----
class PlayerStatOut(BaseModel):
    player_id: int
    provider_player_id: str
    name: str
    role: str
    runs: int
    balls: int
    fours: int
    sixes: int
    is_out: bool
    strike_rate: float
    wickets: int
    overs: float
    maidens: int
    runs_conceded: int
    economy: float
    bowled_lbw: int
    catches: int
    stumpings: int
    direct_run_outs: int
    indirect_run_outs: int
    run_outs: int
    points: float

# ---- Live scorecard ----
class BatsmanLine(BaseModel):
    name: str
    score: str

class BowlerLine(BaseModel):
    name: str
    figures: str

class LiveMatchOut(BaseModel):
    match_id: int
    status: str
    team_a_name: str
    team_b_name: str
    team_a_score: str
    team_b_score: str
    overs: str
    current_innings: int
    current_batsmen: list[BatsmanLine] = []
    current_bowler: BowlerLine | None = None
    last_wicket: str
    recent_overs: str
    last_updated: str | None = None

# ---- Lineup ----
class LineupPlayer(BaseModel):
    id: str
    name: str
    role: str
    team_id: str | None = None
    captain: bool = False
    wicketkeeper: bool = False
    image: str | None = None

class LineupOut(BaseModel):
    available: bool
    team_a: list[LineupPlayer] = []
    team_b: list[LineupPlayer] = []
    substitutes: list[LineupPlayer] = []
    toss_winner: str | None = None
    is_toss_complete: bool = False
    last_updated: str | None = None

# ---- Settlement ----
class FailureRecordOut(BaseModel):
    id: int
    kind: str | None = None
    user_id: int | None = None
    contest_id: int | None = None
    entry_id: int | None = None
    rank: int | None = None
    amount: float | None = None
    error: str | None = None
    attempts: int | None = None
    created_at: datetime | None = None
    resolved_at: datetime | None = None
    resolution: str | None = None

    class Config:
        from_attributes = True  # pydantic v2

class MissedPrizeOut(BaseModel):
    contest_id: int
    contest_name: str
    entry_id: int
    user_id: int
    rank: int
    expected_prize: float
    win_amount: float | None = None

class TriggerOut(BaseModel):
    ok: bool
    match_id: int
    detail: dict[str, Any] | None = None
