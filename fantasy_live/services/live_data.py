# fantasy_live/services/live_data.py
"""
Read-only projections for the live scorecard widget.

Scores come from MatchSummary, the ticker from stored BallEvents, and
batsmen/bowler/last wicket from the raw snapshot kept on the summary.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .. import crud, models
from .summary import innings_number
from .stats import batting_is_out

logger = logging.getLogger(__name__)


def ball_symbol(ev: models.BallEvent) -> str:
    if ev.is_wicket:
        return "W"
    if ev.is_six:
        return "6"
    if ev.is_four:
        return "4"
    return str(ev.runs or 0)


def format_batsman_score(row: Optional[dict]) -> str:
    if not row:
        return "0 (0)"
    if row.get("from_lineup") or (row.get("score") in (None, "") and row.get("ball") in (None, "")):
        return "batting"
    text = f"{row.get('score') or 0} ({row.get('ball') or 0})"
    if row.get("four_x"):
        text += f", {row['four_x']}x4"
    if row.get("six_x"):
        text += f", {row['six_x']}x6"
    return text


def format_bowler_figures(row: Optional[dict]) -> str:
    if not row:
        return "0/0 (0.0)"
    overs = float(row.get("overs") or 0)
    whole = int(overs)
    balls = int(round((overs - whole) * 10))
    return f"{row.get('wickets') or 0}/{row.get('runs') or 0} ({whole}.{balls})"


def _row_pid(row: dict, *keys: str) -> Optional[str]:
    for k in keys:
        v = row.get(k)
        if isinstance(v, dict):
            v = v.get("id")
        if v not in (None, ""):
            return str(v)
    return None


def _resolve_name(db: Session, raw: dict, row: dict, obj_key: str, pid: Optional[str], label: str) -> str:
    obj = row.get(obj_key)
    if isinstance(obj, dict) and (obj.get("fullname") or obj.get("name")):
        return obj.get("fullname") or obj.get("name")
    for p in raw.get("lineup") or []:
        if pid and str(p.get("id")) == pid:
            return p.get("fullname") or p.get("name") or label
    if pid:
        player = crud.get_player_by_provider_id(db, pid)
        if player:
            return player.name
    return f"{label} {pid or 'Unknown'}"


def _current_rows(rows: List[dict], innings: int) -> List[dict]:
    return [r for r in rows if innings_number(r.get("scoreboard")) == innings]


def active_batsmen(raw: dict, innings: int) -> List[dict]:
    batting = raw.get("batting") or []
    live = sorted((b for b in batting if b.get("active")), key=lambda b: b.get("sort") or 0)
    if live:
        return live[:2]

    current = _current_rows(batting, innings)
    not_out = [b for b in current if not batting_is_out(b)]
    if not_out:
        return sorted(not_out, key=lambda b: b.get("sort") or 0, reverse=True)[:2]

    # nothing batted yet: first two names of the batting side
    batting_team = None
    runs = sorted(raw.get("runs") or [], key=lambda r: int(r.get("inning") or 0))
    if runs:
        batting_team = runs[-1].get("team_id")
    side = [p for p in raw.get("lineup") or [] if batting_team is not None and p.get("team_id") == batting_team]
    return [{"player_id": p.get("id"), "batsman": {"fullname": p.get("fullname")}, "from_lineup": True} for p in side[:2]]


def active_bowler(raw: dict, innings: int) -> Optional[dict]:
    bowling = raw.get("bowling") or []
    for b in bowling:
        if b.get("active"):
            return b
    current = _current_rows(bowling, innings) or bowling
    if not current:
        return None
    return sorted(current, key=lambda b: (b.get("sort") or 0, float(b.get("overs") or 0)), reverse=True)[0]


def last_wicket_text(db: Session, raw: dict, match_id: int) -> str:
    ev = (
        db.query(models.BallEvent)
        .filter(models.BallEvent.match_id == match_id, models.BallEvent.is_wicket.is_(True))
        .order_by(models.BallEvent.sequence.desc())
        .first()
    )
    if not ev:
        return "No wickets yet"
    ball = ev.raw or {}
    out_id = ev.out_batsman_id or ev.batsman_id
    dismissed = next(
        (b for b in raw.get("batting") or [] if _row_pid(b, "batsman_id", "player_id", "batsman") == out_id),
        None,
    )
    if dismissed:
        name = _resolve_name(db, raw, dismissed, "batsman", out_id, "Batsman")
        score = format_batsman_score(dismissed)
    else:
        name = _resolve_name(db, raw, ball, "batsmanout", out_id, "Batsman")
        score = "0 (0)"
    wicket_type = ev.wicket_type or "out"
    bowler = ball.get("bowler") if isinstance(ball.get("bowler"), dict) else None
    bowler_name = (bowler or {}).get("fullname") or (bowler or {}).get("name")
    if not bowler_name and ev.bowler_id:
        p = crud.get_player_by_provider_id(db, ev.bowler_id)
        bowler_name = p.name if p else None
    text = f"{name} {score} - {wicket_type}"
    if bowler_name:
        text += f" b {bowler_name}"
    return text


def get_recent_balls(db: Session, match_id: int, count: int = 6) -> List[models.BallEvent]:
    """Most recent deliveries in chronological order."""
    latest = crud.get_ball_events(db, match_id, limit=count, latest_first=True)
    return list(reversed(latest))


def get_live_match_data(db: Session, match_id: int) -> Optional[Dict[str, Any]]:
    match = crud.get_match(db, match_id)
    if not match:
        return None

    summary = match.summary
    raw = (summary.raw_snapshot if summary else None) or {}
    innings = (summary.current_innings if summary else None) or 1

    data: Dict[str, Any] = {
        "match_id": match.id,
        "status": match.status,
        "team_a_name": match.team_a_name or (raw.get("localteam") or {}).get("name") or "Team A",
        "team_b_name": match.team_b_name or (raw.get("visitorteam") or {}).get("name") or "Team B",
        "team_a_score": (summary.team_a_score if summary else "") or "0/0",
        "team_b_score": (summary.team_b_score if summary else "") or "Yet to bat",
        "overs": (summary.overs if summary else "") or "0.0",
        "current_innings": innings,
        "current_batsmen": [],
        "current_bowler": None,
        "last_wicket": "No wickets yet",
        "recent_overs": " ".join(ball_symbol(b) for b in get_recent_balls(db, match.id)),
        "last_updated": summary.last_updated.isoformat() if summary and summary.last_updated else None,
    }
    if not raw:
        return data

    for row in active_batsmen(raw, innings):
        pid = _row_pid(row, "batsman_id", "player_id", "batsman")
        data["current_batsmen"].append({
            "name": _resolve_name(db, raw, row, "batsman", pid, "Batsman"),
            "score": format_batsman_score(row),
        })

    bowler = active_bowler(raw, innings)
    if bowler:
        pid = _row_pid(bowler, "bowler_id", "player_id", "bowler")
        data["current_bowler"] = {
            "name": _resolve_name(db, raw, bowler, "bowler", pid, "Bowler"),
            "figures": format_bowler_figures(bowler),
        }

    data["last_wicket"] = last_wicket_text(db, raw, match.id)
    return data
