# fantasy_live/services/lineup.py
from __future__ import annotations
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from .. import crud, models
from . import sportmonks
from .points import role_from_position

logger = logging.getLogger(__name__)

SnapshotFetcher = Callable[..., Optional[dict]]


def _entry(p: dict) -> Dict[str, Any]:
    return {
        "id": str(p.get("id")),
        "name": p.get("fullname") or "Unknown Player",
        "role": "WK" if p.get("wicketkeeper") else role_from_position(p.get("position")),
        "team_id": str(p.get("team_id")) if p.get("team_id") is not None else None,
        "captain": bool(p.get("captain")),
        "wicketkeeper": bool(p.get("wicketkeeper")),
        "image": p.get("image_path"),
    }


def lineup_payload(row: Optional[models.MatchLineup]) -> Dict[str, Any]:
    if row is None or not (row.team_a_players or row.team_b_players):
        return {"available": False, "team_a": [], "team_b": [], "substitutes": []}
    return {
        "available": True,
        "team_a": row.team_a_players or [],
        "team_b": row.team_b_players or [],
        "substitutes": row.substitutes or [],
        "toss_winner": row.toss_winner,
        "is_toss_complete": bool(row.is_toss_complete),
        "last_updated": row.last_updated.isoformat() if row.last_updated else None,
    }


def store_lineup(db: Session, match: models.Match, snapshot: dict) -> Optional[models.MatchLineup]:
    """Split the snapshot roster into sides/substitutes and upsert MatchLineup. None when no roster yet."""
    roster = snapshot.get("lineup") or []
    if not roster:
        return None

    home_id = match.team_a_provider_id or str((snapshot.get("localteam") or {}).get("id") or "")
    team_a, team_b, subs = [], [], []
    for p in roster:
        e = _entry(p)
        if p.get("substitute"):
            subs.append(e)
        elif e["team_id"] == home_id:
            team_a.append(e)
        else:
            team_b.append(e)
        # keep the player table in step with the announced roster
        player = crud.ensure_player(db, e["id"], e["name"], role=e["role"],
                                    provider_team_id=e["team_id"], image=e["image"])
        if (player.role or "UNKNOWN") == "UNKNOWN" and e["role"] != "UNKNOWN":
            player.role = e["role"]

    toss = snapshot.get("toss")
    row = db.query(models.MatchLineup).filter_by(match_id=match.id).one_or_none()
    if row is None:
        row = models.MatchLineup(match_id=match.id)
        db.add(row)
    row.team_a_players = team_a
    row.team_b_players = team_b
    row.substitutes = subs
    row.toss_winner = str(toss) if toss else None
    row.is_toss_complete = bool(toss)
    row.last_updated = crud.utcnow()
    db.commit()
    logger.info("match %s: lineup stored (%s / %s, %s subs)", match.id, len(team_a), len(team_b), len(subs))
    return row


def refresh_lineup(db: Session, match_id: int, fetch_snapshot: SnapshotFetcher = None) -> Optional[Dict[str, Any]]:
    """Always refetch. None for an unknown match; {"available": False} until the provider has a roster."""
    match = crud.get_match(db, match_id)
    if not match:
        return None
    fetch_snapshot = fetch_snapshot or sportmonks.fetch_match_snapshot
    snapshot = fetch_snapshot(match.provider_match_id)
    if not snapshot:
        return lineup_payload(match.lineup)
    row = store_lineup(db, match, snapshot)
    return lineup_payload(row or match.lineup)


def get_match_lineup(db: Session, match_id: int, fetch_snapshot: SnapshotFetcher = None) -> Optional[Dict[str, Any]]:
    match = crud.get_match(db, match_id)
    if not match:
        return None
    if match.lineup and match.lineup.is_toss_complete:
        return lineup_payload(match.lineup)
    return refresh_lineup(db, match_id, fetch_snapshot)
