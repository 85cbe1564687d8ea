from sqlalchemy import (
    Column, BigInteger, Integer, String, Numeric, DateTime, ForeignKey,
    UniqueConstraint, Index, Boolean, Float, Text, JSON, text
)
from sqlalchemy.orm import relationship
from datetime import datetime
from .db import Base

# BIGINT keys on Postgres; SQLite only autoincrements INTEGER PRIMARY KEY
PK = BigInteger().with_variant(Integer(), "sqlite")

MATCH_STATUSES = ("upcoming", "live", "completed")
# terminal like completed, but contests are never settled
ABANDONED = "abandoned"
CONTEST_WIN = "contest_win"


class Player(Base):
    __tablename__ = "players"

    id = Column(PK, primary_key=True)
    provider_player_id = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    role = Column(String, default="UNKNOWN")  # BAT | BOWL | AR | WK | UNKNOWN
    provider_team_id = Column(String, nullable=True, index=True)
    team_name = Column(String, nullable=True)
    image = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Match(Base):
    __tablename__ = "matches"

    id = Column(PK, primary_key=True)
    provider_match_id = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    status = Column(String, default="upcoming", index=True)  # upcoming | live | completed | abandoned
    start_time = Column(DateTime, index=True)
    end_time = Column(DateTime, nullable=True)
    result = Column(String, nullable=True)

    team_a_provider_id = Column(String, nullable=True)
    team_a_name = Column(String, nullable=True)
    team_b_provider_id = Column(String, nullable=True)
    team_b_name = Column(String, nullable=True)

    # Settlement
    result_settled = Column(Boolean, default=False, index=True)
    settled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    stats = relationship("PlayerStatistic", back_populates="match", cascade="all, delete-orphan")
    balls = relationship("BallEvent", back_populates="match", cascade="all, delete-orphan")
    summary = relationship("MatchSummary", back_populates="match", uselist=False, cascade="all, delete-orphan")
    lineup = relationship("MatchLineup", back_populates="match", uselist=False, cascade="all, delete-orphan")
    contests = relationship("Contest", back_populates="match")

    def as_dict(self):
        return {
            "id": self.id,
            "provider_match_id": self.provider_match_id,
            "name": self.name,
            "status": self.status,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "result": self.result,
            "result_settled": bool(self.result_settled),
        }


class PlayerStatistic(Base):
    __tablename__ = "player_statistics"

    id = Column(PK, primary_key=True)
    match_id = Column(BigInteger, ForeignKey("matches.id", ondelete="CASCADE"), index=True, nullable=False)
    player_id = Column(BigInteger, ForeignKey("players.id", ondelete="CASCADE"), index=True, nullable=False)

    # Batting
    runs = Column(Integer, default=0)
    balls = Column(Integer, default=0)
    fours = Column(Integer, default=0)
    sixes = Column(Integer, default=0)
    is_out = Column(Boolean, default=False)
    strike_rate = Column(Float, default=0.0)

    # Bowling
    wickets = Column(Integer, default=0)
    overs = Column(Float, default=0.0)
    maidens = Column(Integer, default=0)
    runs_conceded = Column(Integer, default=0)
    economy = Column(Float, default=0.0)
    bowled_lbw = Column(Integer, default=0)

    # Fielding
    catches = Column(Integer, default=0)
    stumpings = Column(Integer, default=0)
    direct_run_outs = Column(Integer, default=0)
    indirect_run_outs = Column(Integer, default=0)

    points = Column(Float, default=0.0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    match = relationship("Match", back_populates="stats")
    player = relationship("Player")

    __table_args__ = (
        UniqueConstraint("match_id", "player_id", name="uq_player_stat_row"),
    )

    @property
    def run_outs(self) -> int:
        return (self.direct_run_outs or 0) + (self.indirect_run_outs or 0)


class BallEvent(Base):
    __tablename__ = "ball_events"

    id = Column(PK, primary_key=True)
    match_id = Column(BigInteger, ForeignKey("matches.id", ondelete="CASCADE"), index=True, nullable=False)
    sequence = Column(Integer, nullable=False)       # 1-based, gap-free per match
    over = Column(String, nullable=False)            # cricket notation derived from sequence, e.g. "3.4"
    provider_ball_id = Column(String, nullable=True)
    team_id = Column(String, nullable=True)
    batsman_id = Column(String, nullable=True)
    bowler_id = Column(String, nullable=True)
    out_batsman_id = Column(String, nullable=True)
    runs = Column(Integer, default=0)
    is_four = Column(Boolean, default=False)
    is_six = Column(Boolean, default=False)
    is_wicket = Column(Boolean, default=False)
    wicket_type = Column(String, nullable=True)
    inning = Column(Integer, default=1)
    raw = Column(JSON)
    created_at = Column(DateTime, default=datetime.utcnow)

    match = relationship("Match", back_populates="balls")

    __table_args__ = (
        UniqueConstraint("match_id", "sequence", name="uq_ball_sequence"),
        Index("ix_ball_events_match_provider", "match_id", "provider_ball_id"),
    )


class MatchSummary(Base):
    __tablename__ = "match_summaries"

    id = Column(PK, primary_key=True)
    match_id = Column(BigInteger, ForeignKey("matches.id", ondelete="CASCADE"), unique=True, nullable=False)
    team_a_score = Column(String, default="")
    team_b_score = Column(String, default="")
    overs = Column(String, default="")
    current_innings = Column(Integer, default=1)
    status = Column(String, nullable=True)  # provider's free-text status
    raw_snapshot = Column(JSON)
    last_updated = Column(DateTime, default=datetime.utcnow)

    match = relationship("Match", back_populates="summary")


class MatchLineup(Base):
    __tablename__ = "match_lineups"

    id = Column(PK, primary_key=True)
    match_id = Column(BigInteger, ForeignKey("matches.id", ondelete="CASCADE"), unique=True, nullable=False)
    team_a_players = Column(JSON, default=list)
    team_b_players = Column(JSON, default=list)
    substitutes = Column(JSON, default=list)
    toss_winner = Column(String, nullable=True)
    is_toss_complete = Column(Boolean, default=False)
    last_updated = Column(DateTime, default=datetime.utcnow)

    match = relationship("Match", back_populates="lineup")


class User(Base):
    __tablename__ = "users"

    id = Column(PK, primary_key=True)
    name = Column(String, nullable=True)
    email = Column(String, unique=True, index=True, nullable=True)
    wallet_balance = Column(Numeric(12, 2), default=0, server_default="0", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class FantasyTeam(Base):
    __tablename__ = "fantasy_teams"

    id = Column(PK, primary_key=True)
    user_id = Column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    match_id = Column(BigInteger, ForeignKey("matches.id", ondelete="CASCADE"), index=True, nullable=False)
    name = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    players = relationship("FantasyTeamPlayer", back_populates="team", cascade="all, delete-orphan")


class FantasyTeamPlayer(Base):
    __tablename__ = "fantasy_team_players"

    id = Column(PK, primary_key=True)
    team_id = Column(BigInteger, ForeignKey("fantasy_teams.id", ondelete="CASCADE"), index=True, nullable=False)
    player_id = Column(BigInteger, ForeignKey("players.id", ondelete="CASCADE"), index=True, nullable=False)
    is_captain = Column(Boolean, default=False)
    is_vice_captain = Column(Boolean, default=False)

    team = relationship("FantasyTeam", back_populates="players")

    __table_args__ = (
        UniqueConstraint("team_id", "player_id", name="uq_team_player"),
    )


class Contest(Base):
    __tablename__ = "contests"

    id = Column(PK, primary_key=True)
    match_id = Column(BigInteger, ForeignKey("matches.id", ondelete="CASCADE"), index=True, nullable=False)
    name = Column(String, nullable=False)
    entry_fee = Column(Numeric(12, 2), default=0)
    total_prize = Column(Numeric(12, 2), default=0)
    winner_count = Column(Integer, default=0)
    settlement_status = Column(String, default="pending", index=True)  # pending | ranked | paid
    settled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    match = relationship("Match", back_populates="contests")
    entries = relationship("ContestEntry", back_populates="contest", cascade="all, delete-orphan")
    prizes = relationship("PrizeBreakup", back_populates="contest", cascade="all, delete-orphan")


class ContestEntry(Base):
    __tablename__ = "contest_entries"

    id = Column(PK, primary_key=True)
    contest_id = Column(BigInteger, ForeignKey("contests.id", ondelete="CASCADE"), index=True, nullable=False)
    fantasy_team_id = Column(BigInteger, ForeignKey("fantasy_teams.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = Column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    points = Column(Float, default=0.0)
    rank = Column(Integer, nullable=True)
    win_amount = Column(Numeric(12, 2), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    contest = relationship("Contest", back_populates="entries")
    fantasy_team = relationship("FantasyTeam")
    user = relationship("User")


class PrizeBreakup(Base):
    __tablename__ = "prize_breakups"

    id = Column(PK, primary_key=True)
    contest_id = Column(BigInteger, ForeignKey("contests.id", ondelete="CASCADE"), index=True, nullable=False)
    rank = Column(Integer, nullable=False)
    prize = Column(Numeric(12, 2), nullable=False)

    contest = relationship("Contest", back_populates="prizes")

    __table_args__ = (
        UniqueConstraint("contest_id", "rank", name="uq_prize_rank"),
    )


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(PK, primary_key=True)
    user_id = Column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)  # signed
    type = Column(String, index=True, nullable=False)  # contest_win | deposit | withdrawal | entry_fee
    status = Column(String, default="completed", index=True)
    reference = Column(String, nullable=True)
    contest_id = Column(BigInteger, ForeignKey("contests.id", ondelete="SET NULL"), nullable=True)
    rank = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        # at most one completed contest_win per (user, contest, rank)
        Index(
            "uq_contest_win_once",
            "user_id", "contest_id", "rank",
            unique=True,
            postgresql_where=text("type = 'contest_win' AND status = 'completed'"),
            sqlite_where=text("type = 'contest_win' AND status = 'completed'"),
        ),
    )


class FailureRecord(Base):
    __tablename__ = "failure_records"

    id = Column(PK, primary_key=True)
    kind = Column(String, default="contest_win", index=True)
    user_id = Column(BigInteger, index=True)
    contest_id = Column(BigInteger, index=True)
    entry_id = Column(BigInteger, index=True)
    rank = Column(Integer)
    amount = Column(Numeric(12, 2))
    error = Column(Text)
    attempts = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    resolved_at = Column(DateTime, nullable=True, index=True)
    resolution = Column(String, nullable=True)  # paid | already_settled
