from sqlalchemy.orm import Session
from datetime import datetime, timezone
from . import models

STATUS_ORDER = {s: i for i, s in enumerate(models.MATCH_STATUSES)}
STATUS_ORDER[models.ABANDONED] = STATUS_ORDER["completed"]


def utcnow() -> datetime:
    # naive UTC, matching the DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


# -------- Matches --------
def get_match(db: Session, match_id: int):
    return db.query(models.Match).filter(models.Match.id == match_id).first()

def get_matches_by_status(db: Session, status: str):
    return db.query(models.Match).filter(models.Match.status == status).order_by(models.Match.id).all()

def create_match(db: Session, provider_match_id: str, name: str = "", start_time: datetime = None,
                 status: str = "upcoming", **extra):
    m = models.Match(
        provider_match_id=str(provider_match_id),
        name=name,
        start_time=start_time,
        status=status,
        **extra,
    )
    db.add(m)
    db.commit()
    db.refresh(m)
    return m

def advance_match_status(db: Session, match: models.Match, status: str) -> bool:
    """
    Move a match forward along upcoming -> live -> completed (or abandoned).
    Backward, sideways or unknown transitions are ignored; returns True when the status changed.
    """
    if status not in STATUS_ORDER:
        return False
    current = STATUS_ORDER.get(match.status or "upcoming", 0)
    if STATUS_ORDER[status] <= current:
        return False
    match.status = status
    if STATUS_ORDER[status] == STATUS_ORDER["completed"] and not match.end_time:
        match.end_time = utcnow()
    db.commit()
    return True


# -------- Players --------
def get_player_by_provider_id(db: Session, provider_player_id: str):
    return (
        db.query(models.Player)
        .filter(models.Player.provider_player_id == str(provider_player_id))
        .one_or_none()
    )

def ensure_player(db: Session, provider_player_id: str, name: str, role: str = "UNKNOWN",
                  provider_team_id: str = None, image: str = None):
    p = get_player_by_provider_id(db, provider_player_id)
    if p:
        return p
    p = models.Player(
        provider_player_id=str(provider_player_id),
        name=name or "Unknown Player",
        role=role or "UNKNOWN",
        provider_team_id=str(provider_team_id) if provider_team_id else None,
        image=image,
    )
    db.add(p)
    db.flush()
    return p


# -------- Player statistics --------
def upsert_player_statistic(db: Session, match_id: int, player_id: int, values: dict) -> bool:
    """Overwrite the (match, player) row with cumulative values. Returns True if anything changed."""
    s = (
        db.query(models.PlayerStatistic)
        .filter_by(match_id=match_id, player_id=player_id)
        .one_or_none()
    )
    changed = False
    if s:
        for k, v in values.items():
            if getattr(s, k) != v:
                setattr(s, k, v)
                changed = True
        if changed:
            s.updated_at = utcnow()
    else:
        s = models.PlayerStatistic(match_id=match_id, player_id=player_id, **values)
        db.add(s)
        changed = True
    db.commit()
    return changed

def get_match_statistics(db: Session, match_id: int):
    return (
        db.query(models.PlayerStatistic)
        .filter(models.PlayerStatistic.match_id == match_id)
        .all()
    )

def points_by_player(db: Session, match_id: int) -> dict:
    rows = (
        db.query(models.PlayerStatistic.player_id, models.PlayerStatistic.points)
        .filter(models.PlayerStatistic.match_id == match_id)
        .all()
    )
    return {pid: float(pts or 0.0) for pid, pts in rows}


# -------- Summary --------
def upsert_match_summary(db: Session, match_id: int, **fields):
    s = db.query(models.MatchSummary).filter_by(match_id=match_id).one_or_none()
    if s:
        for k, v in fields.items():
            setattr(s, k, v)
        s.last_updated = utcnow()
    else:
        s = models.MatchSummary(match_id=match_id, last_updated=utcnow(), **fields)
        db.add(s)
    db.commit()
    return s


# -------- Balls --------
def count_ball_events(db: Session, match_id: int) -> int:
    return db.query(models.BallEvent).filter(models.BallEvent.match_id == match_id).count()

def get_ball_events(db: Session, match_id: int, limit: int = None, latest_first: bool = False):
    q = db.query(models.BallEvent).filter(models.BallEvent.match_id == match_id)
    q = q.order_by(models.BallEvent.sequence.desc() if latest_first else models.BallEvent.sequence.asc())
    if limit:
        q = q.limit(limit)
    return q.all()


# -------- Contests --------
def get_contests_for_match(db: Session, match_id: int):
    return (
        db.query(models.Contest)
        .filter(models.Contest.match_id == match_id)
        .order_by(models.Contest.id)
        .all()
    )

def get_contest_entries(db: Session, contest_id: int):
    # creation order is the settlement tie-break
    return (
        db.query(models.ContestEntry)
        .filter(models.ContestEntry.contest_id == contest_id)
        .order_by(models.ContestEntry.created_at.asc(), models.ContestEntry.id.asc())
        .all()
    )

def prize_table(db: Session, contest_id: int) -> dict:
    rows = db.query(models.PrizeBreakup).filter(models.PrizeBreakup.contest_id == contest_id).all()
    return {r.rank: r.prize for r in rows}

def get_team_players(db: Session, fantasy_team_id: int):
    return (
        db.query(models.FantasyTeamPlayer)
        .filter(models.FantasyTeamPlayer.team_id == fantasy_team_id)
        .order_by(models.FantasyTeamPlayer.id)
        .all()
    )


# -------- Wallet ledger --------
def contest_win_reference(contest: models.Contest, rank: int) -> str:
    return f"Contest Win: {contest.name} (#{contest.id}) - Rank {rank}"

def find_contest_win(db: Session, user_id: int, contest_id: int, rank: int):
    return (
        db.query(models.Transaction)
        .filter_by(user_id=user_id, contest_id=contest_id, rank=rank, type=models.CONTEST_WIN, status="completed")
        .first()
    )

def unresolved_failures(db: Session):
    return (
        db.query(models.FailureRecord)
        .filter(models.FailureRecord.resolved_at.is_(None))
        .order_by(models.FailureRecord.created_at.asc(), models.FailureRecord.id.asc())
        .all()
    )
