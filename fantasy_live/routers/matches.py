# fantasy_live/routers/matches.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from .. import crud, models
from ..schemas import BallEventOut, PlayerStatOut, LiveMatchOut, LineupOut, TriggerOut
from ..deps.scheduler import get_scheduler
from ..services.scheduler import MatchScheduler
from ..services.leaderboard import update_live_contest_points
from ..services.live_data import get_live_match_data, get_recent_balls
from ..services.lineup import get_match_lineup, refresh_lineup

router = APIRouter(prefix="/matches", tags=["matches"])


def _match_or_404(db: Session, match_id: int) -> models.Match:
    m = crud.get_match(db, match_id)
    if not m:
        raise HTTPException(status_code=404, detail="Match not found")
    return m


# ---- operator triggers ----
@router.post("/{match_id}/update", response_model=TriggerOut)
async def update_match(match_id: int, db: Session = Depends(get_db),
                       sched: MatchScheduler = Depends(get_scheduler)):
    _match_or_404(db, match_id)
    ok = await sched.trigger_match_update(match_id)
    return {"ok": ok, "match_id": match_id, "detail": sched.last_poll.get(match_id)}


@router.post("/{match_id}/finalize-contests", response_model=TriggerOut)
async def finalize_contests(match_id: int, db: Session = Depends(get_db),
                            sched: MatchScheduler = Depends(get_scheduler)):
    _match_or_404(db, match_id)
    ok = await sched.trigger_contest_finalization(match_id)
    return {"ok": ok, "match_id": match_id}


@router.post("/{match_id}/update-contest-points", response_model=TriggerOut)
def update_contest_points(match_id: int, db: Session = Depends(get_db)):
    _match_or_404(db, match_id)
    return {"ok": update_live_contest_points(db, match_id), "match_id": match_id}


@router.post("/{match_id}/sync-balls", response_model=TriggerOut)
async def sync_balls(match_id: int, force: int = Query(0, ge=0, le=1), db: Session = Depends(get_db),
                     sched: MatchScheduler = Depends(get_scheduler)):
    _match_or_404(db, match_id)
    res = await sched.sync_balls(match_id, force=bool(force))
    if res is None:
        raise HTTPException(status_code=409, detail="Poll in progress for this match, try again")
    return {"ok": res["ok"], "match_id": match_id, "detail": res}


# ---- read projections ----
@router.get("/{match_id}/live", response_model=LiveMatchOut)
def live(match_id: int, db: Session = Depends(get_db)):
    data = get_live_match_data(db, match_id)
    if data is None:
        raise HTTPException(status_code=404, detail="Match not found")
    return data


@router.get("/{match_id}/lineup", response_model=LineupOut)
def lineup(match_id: int, db: Session = Depends(get_db), sched: MatchScheduler = Depends(get_scheduler)):
    data = get_match_lineup(db, match_id, fetch_snapshot=sched.fetch_snapshot)
    if data is None:
        raise HTTPException(status_code=404, detail="Match not found")
    return data


@router.post("/{match_id}/lineup/refresh", response_model=LineupOut)
def lineup_refresh(match_id: int, db: Session = Depends(get_db), sched: MatchScheduler = Depends(get_scheduler)):
    data = refresh_lineup(db, match_id, fetch_snapshot=sched.fetch_snapshot)
    if data is None:
        raise HTTPException(status_code=404, detail="Match not found")
    return data


@router.get("/{match_id}/balls", response_model=List[BallEventOut])
def balls(match_id: int, recent: int = Query(0, ge=0, le=120), db: Session = Depends(get_db)):
    _match_or_404(db, match_id)
    if recent:
        return get_recent_balls(db, match_id, count=recent)
    return crud.get_ball_events(db, match_id)


@router.get("/{match_id}/stats", response_model=List[PlayerStatOut])
def stats(match_id: int, db: Session = Depends(get_db)):
    _match_or_404(db, match_id)
    rows = (
        db.query(models.PlayerStatistic, models.Player)
        .join(models.Player, models.Player.id == models.PlayerStatistic.player_id)
        .filter(models.PlayerStatistic.match_id == match_id)
        .order_by(models.PlayerStatistic.points.desc(), models.Player.name.asc())
        .all()
    )
    out = []
    for s, p in rows:
        out.append({
            "player_id": p.id,
            "provider_player_id": p.provider_player_id,
            "name": p.name,
            "role": p.role or "UNKNOWN",
            "runs": s.runs or 0, "balls": s.balls or 0, "fours": s.fours or 0, "sixes": s.sixes or 0,
            "is_out": bool(s.is_out), "strike_rate": s.strike_rate or 0.0,
            "wickets": s.wickets or 0, "overs": s.overs or 0.0, "maidens": s.maidens or 0,
            "runs_conceded": s.runs_conceded or 0, "economy": s.economy or 0.0,
            "bowled_lbw": s.bowled_lbw or 0,
            "catches": s.catches or 0, "stumpings": s.stumpings or 0,
            "direct_run_outs": s.direct_run_outs or 0, "indirect_run_outs": s.indirect_run_outs or 0,
            "run_outs": s.run_outs,
            "points": s.points or 0.0,
        })
    return out
