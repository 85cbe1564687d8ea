# fantasy_live/services/balls.py
"""
Ball event sequencer.

The provider's delivery list can arrive out of order and repeat deliveries
across polls. Sequence numbers are assigned here, per match, 1..N without
gaps; a stored event's sequence is never rewritten except by a forced resync,
which rebuilds the whole match timeline.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .. import crud, models
from .summary import innings_number

logger = logging.getLogger(__name__)


def over_notation(sequence: int) -> str:
    n = int(sequence) - 1
    return f"{n // 6}.{n % 6 + 1}"


def provider_ball_id(ball: dict) -> Optional[str]:
    bid = ball.get("id")
    if bid in (None, ""):
        return None
    return str(bid)


def order_balls(balls: List[dict]) -> List[dict]:
    """Ascending numeric provider id when every ball has one; otherwise feed order."""
    balls = [b for b in balls or [] if isinstance(b, dict)]
    try:
        return sorted(balls, key=lambda b: int(str(b.get("id"))))
    except (TypeError, ValueError):
        return list(balls)


def classify(ball: dict) -> Dict[str, Any]:
    score = ball.get("score")
    if isinstance(score, dict):
        runs = int(score.get("runs") or 0)
        is_four = bool(score.get("four"))
        is_six = bool(score.get("six"))
        is_wicket = bool(score.get("is_wicket") or score.get("out"))
    else:
        try:
            runs = int(score or 0)
        except (TypeError, ValueError):
            runs = 0
        is_six = bool(ball.get("is_six"))
        is_four = bool(ball.get("is_boundary")) and not is_six
        is_wicket = bool(ball.get("is_wicket"))

    wicket_type = ball.get("wicket_type")
    if is_wicket and not wicket_type and isinstance(score, dict):
        wicket_type = score.get("name")

    def _ref(key_id: str, key_obj: str) -> Optional[str]:
        v = ball.get(key_id)
        if v in (None, "") and isinstance(ball.get(key_obj), dict):
            v = ball[key_obj].get("id")
        return str(v) if v not in (None, "") else None

    return {
        "runs": runs,
        "is_four": is_four,
        "is_six": is_six,
        "is_wicket": is_wicket,
        "wicket_type": wicket_type if is_wicket else None,
        "batsman_id": _ref("batsman_id", "batsman"),
        "bowler_id": _ref("bowler_id", "bowler"),
        "out_batsman_id": _ref("batsmanout_id", "batsmanout"),
        "team_id": str(ball["team_id"]) if ball.get("team_id") not in (None, "") else None,
        "inning": innings_number(ball.get("scoreboard")),
    }


def sequence_balls(db: Session, match: models.Match, snapshot: dict, force: bool = False) -> Dict[str, Any]:
    """
    Persist the deliveries of a snapshot that are new for this match.
    force=True discards every stored event of the match and renumbers from 1.
    """
    balls = order_balls(snapshot.get("balls") or [])
    out = {"ok": True, "added": 0, "skipped": 0, "failed": 0, "total": 0}

    if force:
        removed = (
            db.query(models.BallEvent)
            .filter(models.BallEvent.match_id == match.id)
            .delete(synchronize_session=False)
        )
        db.commit()
        logger.info("match %s: forced resync removed %s ball events", match.id, removed)
        existing = set()
        next_seq = 1
    else:
        existing = {
            pid for (pid,) in db.query(models.BallEvent.provider_ball_id)
            .filter(models.BallEvent.match_id == match.id, models.BallEvent.provider_ball_id.isnot(None))
            .all()
        }
        next_seq = crud.count_ball_events(db, match.id) + 1

    for ball in balls:
        bid = provider_ball_id(ball)
        if bid is not None and bid in existing:
            out["skipped"] += 1
            continue
        try:
            ev = models.BallEvent(
                match_id=match.id,
                sequence=next_seq,
                over=over_notation(next_seq),
                provider_ball_id=bid,
                raw=ball,
                **classify(ball),
            )
            db.add(ev)
            db.commit()
        except Exception:
            db.rollback()
            out["failed"] += 1
            logger.exception("match %s: ball %s insert failed at sequence %s", match.id, bid, next_seq)
            continue
        if bid is not None:
            existing.add(bid)
        next_seq += 1
        out["added"] += 1

    out["total"] = next_seq - 1
    out["ok"] = out["failed"] == 0
    logger.info(
        "match %s: balls added=%s skipped=%s failed=%s total=%s%s",
        match.id, out["added"], out["skipped"], out["failed"], out["total"], " (forced)" if force else "",
    )
    return out
