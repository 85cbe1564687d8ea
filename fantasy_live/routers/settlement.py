# fantasy_live/routers/settlement.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models
from ..schemas import FailureRecordOut, MissedPrizeOut
from ..deps.scheduler import get_scheduler
from ..services.scheduler import MatchScheduler
from ..services.settlement import replay_failures, audit_missed_prizes, reconcile_completed_matches

router = APIRouter(tags=["settlement"])


@router.get("/settlement/failures", response_model=List[FailureRecordOut])
def failures(include_resolved: int = Query(0, ge=0, le=1), db: Session = Depends(get_db)):
    q = db.query(models.FailureRecord)
    if not include_resolved:
        q = q.filter(models.FailureRecord.resolved_at.is_(None))
    return q.order_by(models.FailureRecord.created_at.desc(), models.FailureRecord.id.desc()).all()


@router.post("/settlement/failures/replay")
def failures_replay(db: Session = Depends(get_db)):
    return replay_failures(db)


@router.get("/settlement/missed-prizes", response_model=List[MissedPrizeOut])
def missed_prizes(db: Session = Depends(get_db)):
    return audit_missed_prizes(db)


@router.post("/settlement/reconcile")
def reconcile(db: Session = Depends(get_db), sched: MatchScheduler = Depends(get_scheduler)):
    return reconcile_completed_matches(db, **sched.settle_kwargs)


@router.get("/scheduler/status")
def scheduler_status(sched: MatchScheduler = Depends(get_scheduler)):
    return sched.status()
