# fantasy_live/services/scheduler.py
"""
Match lifecycle scheduler.

One asyncio task per tracked live match fires a poll every LIVE_POLL_SEC;
four sweep tasks promote due matches, settle completed ones, refresh
lineups and recompute live leaderboards. Blocking work (HTTP + SQLAlchemy)
runs in worker threads, each call with its own session.

Polls of the same match never overlap: a tick that finds the previous poll
still running is skipped.
"""
from __future__ import annotations
import asyncio
import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Set

from .. import crud, models
from ..db import SessionLocal
from ..settings import settings
from . import sportmonks
from .stats import ingest_player_stats
from .summary import update_match_summary
from .balls import sequence_balls
from .leaderboard import update_contest_entry_points
from .lineup import refresh_lineup
from .settlement import finalize_match_contests

logger = logging.getLogger(__name__)


class MatchScheduler:
    def __init__(
        self,
        session_factory: Callable = None,
        fetch_snapshot: Callable[[str], Optional[dict]] = None,
        live_poll_sec: float = None,
        promote_sweep_sec: float = None,
        completed_sweep_sec: float = None,
        lineup_sweep_sec: float = None,
        points_sweep_sec: float = None,
        lineup_lead_hours: float = None,
        settle_kwargs: Optional[Dict[str, Any]] = None,
    ):
        self.session_factory = session_factory or SessionLocal
        self.fetch_snapshot = fetch_snapshot or sportmonks.fetch_match_snapshot
        self.live_poll_sec = settings.LIVE_POLL_SEC if live_poll_sec is None else live_poll_sec
        self.promote_sweep_sec = settings.PROMOTE_SWEEP_SEC if promote_sweep_sec is None else promote_sweep_sec
        self.completed_sweep_sec = settings.COMPLETED_SWEEP_SEC if completed_sweep_sec is None else completed_sweep_sec
        self.lineup_sweep_sec = settings.LINEUP_SWEEP_SEC if lineup_sweep_sec is None else lineup_sweep_sec
        self.points_sweep_sec = settings.POINTS_SWEEP_SEC if points_sweep_sec is None else points_sweep_sec
        self.lineup_lead_hours = settings.LINEUP_LEAD_HOURS if lineup_lead_hours is None else lineup_lead_hours
        self.settle_kwargs = settle_kwargs or {}

        self._timers: Dict[int, asyncio.Task] = {}   # match id -> poll loop
        self._sweeps: List[asyncio.Task] = []
        self._pending: Set[asyncio.Task] = set()     # spawned polls, kept referenced until done
        self._in_flight: Set[int] = set()
        self._settling: Set[int] = set()
        self.settled: Set[int] = set()
        self.last_poll: Dict[int, Dict[str, Any]] = {}
        self.running = False

    # ---------------- lifecycle ----------------
    async def start(self) -> None:
        if self.running:
            return
        self.running = True
        live = await asyncio.to_thread(self._match_ids_with_status, "live")
        for match_id in live:
            self.track(match_id)
        self._sweeps = [
            asyncio.create_task(self._every(self.promote_sweep_sec, self.promote_due_matches, "promote")),
            asyncio.create_task(self._every(self.completed_sweep_sec, self.settle_completed_matches, "completed")),
            asyncio.create_task(self._every(self.lineup_sweep_sec, self.refresh_upcoming_lineups, "lineup")),
            asyncio.create_task(self._every(self.points_sweep_sec, self.refresh_live_points, "points")),
        ]
        logger.info("scheduler started: %s live matches tracked", len(live))

    async def shutdown(self) -> None:
        self.running = False
        tasks = list(self._timers.values()) + self._sweeps
        for t in tasks:
            t.cancel()
        # in-flight polls are allowed to finish
        await asyncio.gather(*tasks, *self._pending, return_exceptions=True)
        self._timers.clear()
        self._sweeps = []
        logger.info("scheduler stopped")

    def track(self, match_id: int) -> bool:
        if match_id in self._timers:
            return False
        self._timers[match_id] = asyncio.create_task(self._poll_loop(match_id))
        logger.info("match %s: polling every %ss", match_id, self.live_poll_sec)
        return True

    def untrack(self, match_id: int) -> bool:
        task = self._timers.pop(match_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    async def stop(self, match_id: int) -> bool:
        """Cancel the match's timer, then one last best-effort poll."""
        was_tracked = self.untrack(match_id)
        await self.poll_once(match_id)
        return was_tracked

    @property
    def tracked(self) -> List[int]:
        return sorted(self._timers)

    # ---------------- timers ----------------
    async def _poll_loop(self, match_id: int) -> None:
        while True:
            if match_id in self._in_flight:
                logger.info("match %s: previous poll still running, tick skipped", match_id)
            else:
                task = asyncio.create_task(self.poll_once(match_id))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)
            await asyncio.sleep(self.live_poll_sec)

    async def _every(self, period: float, fn, name: str) -> None:
        while True:
            try:
                await fn()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("%s sweep failed", name)
            await asyncio.sleep(period)

    # ---------------- polling ----------------
    async def poll_once(self, match_id: int) -> bool:
        """
        Fetch -> stats -> summary -> balls -> leaderboard for one match.
        Never raises; True when the poll made forward progress.
        """
        if match_id in self._in_flight:
            logger.info("match %s: poll already in flight, skipped", match_id)
            return False
        self._in_flight.add(match_id)
        try:
            outcome = await asyncio.to_thread(self._poll_sync, match_id)
        except Exception as e:
            logger.exception("match %s: poll failed", match_id)
            outcome = {"ok": False, "error": repr(e)}
        finally:
            self._in_flight.discard(match_id)

        outcome["at"] = crud.utcnow().isoformat()
        self.last_poll[match_id] = outcome
        if outcome.get("abandoned"):
            self.untrack(match_id)
        elif outcome.get("completed"):
            self.untrack(match_id)
            await self.settle_once(match_id)
        return bool(outcome.get("ok"))

    def _poll_sync(self, match_id: int) -> Dict[str, Any]:
        with self.session_factory() as db:
            match = crud.get_match(db, match_id)
            if not match:
                return {"ok": False, "error": "unknown match"}

            snapshot = self.fetch_snapshot(match.provider_match_id)
            if not snapshot:
                logger.warning("match %s: no snapshot this tick", match_id)
                return {"ok": False, "error": "no snapshot"}

            stats = ingest_player_stats(db, match, snapshot)
            try:
                update_match_summary(db, match, snapshot)
            except Exception:
                db.rollback()
                logger.exception("match %s: summary upsert failed", match_id)
            balls = sequence_balls(db, match, snapshot)
            board = update_contest_entry_points(db, match.id) if stats["changed"] else None

            abandoned = sportmonks.is_void(snapshot)
            completed = not abandoned and sportmonks.is_finished(snapshot)
            if abandoned:
                match.result = snapshot.get("note") or snapshot.get("status")
                db.commit()
                crud.advance_match_status(db, match, models.ABANDONED)
                logger.warning("match %s: abandoned (%s), contests left unsettled", match_id, match.result)
            elif completed:
                match.result = sportmonks.result_summary(snapshot)
                db.commit()
                crud.advance_match_status(db, match, "completed")
                logger.info("match %s: provider reports completion (%s)", match_id, match.result)

            out = {
                "ok": bool(stats["ok"] or balls["added"]),
                "players_written": stats["written"],
                "players_failed": stats["failed"],
                "players_changed": stats["changed"],
                "balls_added": balls["added"],
                "balls_skipped": balls["skipped"],
                "entries_updated": board["updated"] if board else 0,
                "completed": completed,
                "abandoned": abandoned,
            }
            logger.info("match %s poll: %s", match_id, out)
            return out

    # ---------------- settlement ----------------
    async def settle_once(self, match_id: int, force: bool = False) -> bool:
        """Settle a completed match at most once per process and once per durable result_settled flag."""
        if match_id in self._settling or (match_id in self.settled and not force):
            return False
        self._settling.add(match_id)
        try:
            outcome = await asyncio.to_thread(self._settle_sync, match_id, force)
        except Exception:
            logger.exception("match %s: settlement failed", match_id)
            return False
        finally:
            self._settling.discard(match_id)
        if outcome in ("settled", "already"):
            self.settled.add(match_id)
        return outcome == "settled"

    def _settle_sync(self, match_id: int, force: bool) -> str:
        with self.session_factory() as db:
            match = crud.get_match(db, match_id)
            if not match:
                return "missing"
            if match.result_settled and not force:
                return "already"
            summary = finalize_match_contests(db, match_id, **self.settle_kwargs)
            logger.info("match %s: settlement done, %s contests, %s failed payouts",
                        match_id, len(summary["contests"]), summary["failed"])
            return "settled"

    # ---------------- sweeps ----------------
    def _match_ids_with_status(self, status: str) -> List[int]:
        with self.session_factory() as db:
            return [m.id for m in crud.get_matches_by_status(db, status)]

    def _promote_sync(self) -> List[int]:
        now = crud.utcnow()
        promoted = []
        with self.session_factory() as db:
            due = (
                db.query(models.Match)
                .filter(models.Match.status == "upcoming", models.Match.start_time <= now)
                .all()
            )
            for m in due:
                if crud.advance_match_status(db, m, "live"):
                    promoted.append(m.id)
        return promoted

    async def promote_due_matches(self) -> List[int]:
        promoted = await asyncio.to_thread(self._promote_sync)
        for match_id in promoted:
            logger.info("match %s: start time reached, now live", match_id)
            self.track(match_id)
        for match_id in await asyncio.to_thread(self._match_ids_with_status, "live"):
            self.track(match_id)
        return promoted

    def _unsettled_completed_sync(self) -> List[int]:
        with self.session_factory() as db:
            rows = (
                db.query(models.Match.id)
                .filter(models.Match.status == "completed")
                .filter((models.Match.result_settled.is_(False)) | (models.Match.result_settled.is_(None)))
                .all()
            )
            return [r[0] for r in rows]

    async def settle_completed_matches(self) -> List[int]:
        completed = set(await asyncio.to_thread(self._match_ids_with_status, "completed"))
        for match_id in [m for m in self.tracked if m in completed]:
            logger.info("match %s: completed but still polled, stopping", match_id)
            await self.stop(match_id)
        settled = []
        for match_id in await asyncio.to_thread(self._unsettled_completed_sync):
            if await self.settle_once(match_id):
                settled.append(match_id)
        return settled

    def _lineup_sync(self) -> List[int]:
        now = crud.utcnow()
        horizon = now + timedelta(hours=self.lineup_lead_hours)
        refreshed = []
        with self.session_factory() as db:
            soon = (
                db.query(models.Match)
                .filter(models.Match.status.in_(("upcoming", "live")))
                .filter(models.Match.start_time <= horizon)
                .all()
            )
            for m in soon:
                if m.lineup and m.lineup.is_toss_complete:
                    continue
                try:
                    res = refresh_lineup(db, m.id, fetch_snapshot=self.fetch_snapshot)
                except Exception:
                    db.rollback()
                    logger.exception("match %s: lineup refresh failed", m.id)
                    continue
                if res and res.get("available"):
                    refreshed.append(m.id)
        return refreshed

    async def refresh_upcoming_lineups(self) -> List[int]:
        return await asyncio.to_thread(self._lineup_sync)

    def _points_sync(self, match_ids: List[int]) -> int:
        done = 0
        with self.session_factory() as db:
            for match_id in match_ids:
                try:
                    update_contest_entry_points(db, match_id)
                    done += 1
                except Exception:
                    db.rollback()
                    logger.exception("match %s: points refresh failed", match_id)
        return done

    async def refresh_live_points(self) -> int:
        return await asyncio.to_thread(self._points_sync, self.tracked)

    # ---------------- manual triggers ----------------
    async def trigger_match_update(self, match_id: int) -> bool:
        return await self.poll_once(match_id)

    async def sync_balls(self, match_id: int, force: bool = False) -> Optional[Dict[str, Any]]:
        """
        Operator ball sync (force=True rebuilds the timeline). Holds the same
        per-match slot as a poll; None when a poll of the match is running.
        """
        if match_id in self._in_flight:
            logger.info("match %s: poll in flight, ball sync refused", match_id)
            return None
        self._in_flight.add(match_id)
        try:
            return await asyncio.to_thread(self._sync_balls_sync, match_id, force)
        finally:
            self._in_flight.discard(match_id)

    def _sync_balls_sync(self, match_id: int, force: bool) -> Dict[str, Any]:
        with self.session_factory() as db:
            match = crud.get_match(db, match_id)
            if not match:
                return {"ok": False, "error": "unknown match"}
            snapshot = self.fetch_snapshot(match.provider_match_id)
            if not snapshot:
                return {"ok": False, "error": "no snapshot"}
            return sequence_balls(db, match, snapshot, force=force)

    async def trigger_contest_finalization(self, match_id: int) -> bool:
        """Operator force-settle for a match whose completion was never observed."""
        def _complete() -> bool:
            with self.session_factory() as db:
                match = crud.get_match(db, match_id)
                if not match:
                    return False
                if match.status == models.ABANDONED:
                    logger.warning("match %s: abandoned, refusing to settle", match_id)
                    return False
                crud.advance_match_status(db, match, "completed")
                return True

        if not await asyncio.to_thread(_complete):
            return False
        self.untrack(match_id)
        return await self.settle_once(match_id, force=True)

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "tracked": self.tracked,
            "in_flight": sorted(self._in_flight),
            "settled": sorted(self.settled),
            "last_poll": {str(k): v for k, v in self.last_poll.items()},
            "provider": dict(sportmonks.LAST_HTTP),
        }
