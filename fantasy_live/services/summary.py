# fantasy_live/services/summary.py
from __future__ import annotations
import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from .. import crud, models

logger = logging.getLogger(__name__)


def innings_number(tag) -> int:
    # scoreboard tags look like "S1", "S2"; some feeds send plain numbers
    if tag is None:
        return 1
    text = str(tag).strip().upper().lstrip("S")
    try:
        return max(1, int(text))
    except ValueError:
        return 1


def derive_summary(snapshot: dict) -> Dict[str, object]:
    """Team score strings, overs and current innings from runs[] (scoreboards[] totals as fallback)."""
    home = (snapshot.get("localteam") or {}).get("id")
    away = (snapshot.get("visitorteam") or {}).get("id")
    scores: Dict[str, str] = {}
    overs: Optional[str] = None
    current = 1

    runs = snapshot.get("runs") or []
    if runs:
        for r in runs:
            scores[str(r.get("team_id"))] = f"{r.get('score', 0)}/{r.get('wickets', 0)}"
        latest = max(runs, key=lambda r: int(r.get("inning") or 0))
        current = int(latest.get("inning") or 1)
        overs = str(latest.get("overs") or "0")
    else:
        totals = [s for s in snapshot.get("scoreboards") or [] if s.get("type") == "total"]
        for s in totals:
            scores[str(s.get("team_id"))] = f"{s.get('total', 0)}/{s.get('wickets', 0)}"
        if totals:
            latest = max(totals, key=lambda s: innings_number(s.get("scoreboard")))
            current = innings_number(latest.get("scoreboard"))
            overs = str(latest.get("overs") or "0")

    return {
        "team_a_score": scores.get(str(home), ""),
        "team_b_score": scores.get(str(away), ""),
        "overs": overs or "0",
        "current_innings": current,
        "status": snapshot.get("status") or "",
    }


def update_match_summary(db: Session, match: models.Match, snapshot: dict) -> models.MatchSummary:
    fields = derive_summary(snapshot)
    s = crud.upsert_match_summary(db, match.id, raw_snapshot=snapshot, **fields)

    # fill team names the import path may not have had
    home = snapshot.get("localteam") or {}
    away = snapshot.get("visitorteam") or {}
    touched = False
    if home.get("id") and not match.team_a_provider_id:
        match.team_a_provider_id, match.team_a_name = str(home["id"]), home.get("name")
        touched = True
    if away.get("id") and not match.team_b_provider_id:
        match.team_b_provider_id, match.team_b_name = str(away["id"]), away.get("name")
        touched = True
    if touched:
        db.commit()

    logger.debug("match %s summary: %s | %s (%s ov)", match.id, fields["team_a_score"], fields["team_b_score"], fields["overs"])
    return s
