# fantasy_live/deps/scheduler.py
from fastapi import HTTPException, Request

from ..services.scheduler import MatchScheduler


def get_scheduler(request: Request) -> MatchScheduler:
    sched = getattr(request.app.state, "scheduler", None)
    if sched is None:
        raise HTTPException(status_code=503, detail="Scheduler not initialised")
    return sched
