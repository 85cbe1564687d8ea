# fantasy_live/services/leaderboard.py
from __future__ import annotations
import logging
from typing import Dict

from sqlalchemy.orm import Session

from .. import crud
from .points import multiplier

logger = logging.getLogger(__name__)


def team_points(db: Session, fantasy_team_id: int, player_points: Dict[int, float]) -> float:
    """Sum of player points with captain x2 and vice-captain x1.5."""
    total = 0.0
    for tp in crud.get_team_players(db, fantasy_team_id):
        total += player_points.get(tp.player_id, 0.0) * multiplier(tp.is_captain, tp.is_vice_captain)
    return total


def update_contest_entry_points(db: Session, match_id: int) -> Dict[str, int]:
    """
    Full recompute of ContestEntry.points for every contest on the match.
    Safe to run on every poll; an entry that fails is rolled back and skipped.
    """
    player_points = crud.points_by_player(db, match_id)
    out = {"contests": 0, "entries": 0, "updated": 0, "failed": 0}

    for contest in crud.get_contests_for_match(db, match_id):
        out["contests"] += 1
        for entry in crud.get_contest_entries(db, contest.id):
            out["entries"] += 1
            try:
                pts = team_points(db, entry.fantasy_team_id, player_points)
                if entry.points != pts:
                    entry.points = pts
                    db.commit()
                out["updated"] += 1
            except Exception:
                db.rollback()
                out["failed"] += 1
                logger.exception("contest %s: points update failed for entry %s", contest.id, entry.id)

    logger.info(
        "match %s: leaderboard contests=%s entries=%s failed=%s",
        match_id, out["contests"], out["entries"], out["failed"],
    )
    return out


def update_live_contest_points(db: Session, match_id: int) -> bool:
    if not crud.get_match(db, match_id):
        return False
    out = update_contest_entry_points(db, match_id)
    return out["failed"] == 0
