# fantasy_live/services/settlement.py
"""
Post-match settlement: rank entries, map ranks to prizes, credit wallets.

A payout's idempotency key is (user, contest, rank), held by the contest_id and
rank columns of a completed contest_win transaction; the reference string only
describes it. The wallet credit, the entry's win_amount and the transaction
row commit together or not at all. Payouts that still fail after the retry
bound land in failure_records.
"""
from __future__ import annotations
import time
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from .. import crud, models
from ..errors import PayoutError, PayoutVerificationError
from ..settings import settings
from .leaderboard import team_points

logger = logging.getLogger(__name__)

PAID = "paid"
ALREADY_SETTLED = "already_settled"


def _money(v) -> Decimal:
    return Decimal(str(v or 0)).quantize(Decimal("0.01"))


# ---------------- Ranking ----------------
def rank_entries(db: Session, contest: models.Contest, player_points: Dict[int, float]) -> List[models.ContestEntry]:
    """
    Final points + 1-based ranks for every entry of a contest.
    Ties keep creation order (entries are loaded by created_at, id and the sort is stable).
    """
    entries = crud.get_contest_entries(db, contest.id)
    for e in entries:
        e.points = team_points(db, e.fantasy_team_id, player_points)
    ordered = sorted(entries, key=lambda e: e.points, reverse=True)

    prizes = crud.prize_table(db, contest.id)
    for rank, e in enumerate(ordered, start=1):
        e.rank = rank
        if rank not in prizes and e.win_amount is None:
            e.win_amount = Decimal("0.00")
    if contest.settlement_status == "pending":
        contest.settlement_status = "ranked"
    db.commit()
    return ordered


# ---------------- Payout ----------------
def _stage_payout(db: Session, contest: models.Contest, entry: models.ContestEntry,
                  rank: int, amount: Decimal, reference: str) -> None:
    # wallet credit as an in-database increment so concurrent writers can't lose it
    updated = (
        db.query(models.User)
        .filter(models.User.id == entry.user_id)
        .update(
            {models.User.wallet_balance: func.coalesce(models.User.wallet_balance, 0) + amount},
            synchronize_session=False,
        )
    )
    if updated != 1:
        raise PayoutError(f"user {entry.user_id} not found")
    entry.win_amount = amount
    db.add(models.Transaction(
        user_id=entry.user_id,
        amount=amount,
        type=models.CONTEST_WIN,
        status="completed",
        reference=reference,
        contest_id=contest.id,
        rank=rank,
    ))


def process_winner(db: Session, contest: models.Contest, entry: models.ContestEntry,
                   rank: int, amount) -> str:
    """
    Pay one winner exactly once. Returns "paid" or "already_settled"; raises PayoutError.
    An existing completed transaction only gets the entry's win_amount repaired.
    """
    amount = _money(amount)
    reference = crud.contest_win_reference(contest, rank)

    existing = crud.find_contest_win(db, entry.user_id, contest.id, rank)
    if existing:
        if entry.win_amount is None or _money(entry.win_amount) != amount:
            entry.win_amount = amount
            db.commit()
            logger.info("contest %s: repaired win_amount for entry %s (rank %s)", contest.id, entry.id, rank)
        return ALREADY_SETTLED

    try:
        _stage_payout(db, contest, entry, rank, amount, reference)
        db.commit()
    except IntegrityError as e:
        # someone else committed the same (user, contest, rank) first
        db.rollback()
        if crud.find_contest_win(db, entry.user_id, contest.id, rank):
            return process_winner(db, contest, entry, rank, amount)
        raise PayoutError(f"integrity error paying entry {entry.id}: {e}") from e
    except PayoutError:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        raise PayoutError(f"payout for entry {entry.id} failed: {e}") from e

    if not crud.find_contest_win(db, entry.user_id, contest.id, rank):
        raise PayoutVerificationError(f"transaction for entry {entry.id} missing after commit ({reference})")
    logger.info("contest %s: credited %s to user %s for rank %s", contest.id, amount, entry.user_id, rank)
    return PAID


def record_failure(db: Session, contest: models.Contest, entry: models.ContestEntry, rank: int,
                   amount, error: str, attempts: int) -> Optional[int]:
    """Write a FailureRecord from its own session so it survives whatever state `db` is in."""
    try:
        with Session(bind=db.get_bind()) as fdb:
            rec = models.FailureRecord(
                kind=models.CONTEST_WIN,
                user_id=entry.user_id,
                contest_id=contest.id,
                entry_id=entry.id,
                rank=rank,
                amount=_money(amount),
                error=error,
                attempts=attempts,
            )
            fdb.add(rec)
            fdb.commit()
            return rec.id
    except Exception:
        # the dead-letter write itself failed: the log line is all that's left
        logger.critical(
            "UNRECORDED PAYOUT FAILURE user=%s contest=%s entry=%s rank=%s amount=%s error=%s",
            entry.user_id, contest.id, entry.id, rank, amount, error, exc_info=True,
        )
        return None


def pay_winner(db: Session, contest: models.Contest, entry: models.ContestEntry, rank: int, amount,
               max_retries: int = None, retry_delay: float = None,
               sleep: Callable[[float], None] = time.sleep) -> Optional[str]:
    """process_winner with a bounded retry; a FailureRecord once retries run out (returns None)."""
    # at least one attempt, whatever the bound
    max_retries = max(1, settings.SETTLEMENT_MAX_RETRIES if max_retries is None else max_retries)
    retry_delay = settings.SETTLEMENT_RETRY_DELAY_SEC if retry_delay is None else retry_delay

    last_error = None
    for attempt in range(1, max_retries + 1):
        try:
            return process_winner(db, contest, entry, rank, amount)
        except Exception as e:
            db.rollback()
            last_error = repr(e)
            logger.warning(
                "contest %s: payout attempt %s/%s for entry %s failed: %s",
                contest.id, attempt, max_retries, entry.id, last_error,
            )
            if attempt < max_retries:
                sleep(retry_delay)

    rec_id = record_failure(db, contest, entry, rank, amount, last_error, max_retries)
    logger.error("contest %s: payout for entry %s dead-lettered (failure record %s)", contest.id, entry.id, rec_id)
    return None


# ---------------- Contest / match ----------------
def settle_contest(db: Session, contest: models.Contest, player_points: Dict[int, float], **retry) -> Dict[str, Any]:
    out = {"contest_id": contest.id, "entries": 0, "winners": 0, PAID: 0, ALREADY_SETTLED: 0, "failed": 0}
    if contest.settlement_status == "paid":
        logger.info("contest %s already paid, skipping", contest.id)
        out["skipped"] = True
        return out

    ordered = rank_entries(db, contest, player_points)
    out["entries"] = len(ordered)
    prizes = crud.prize_table(db, contest.id)

    for entry in ordered:
        prize = prizes.get(entry.rank)
        if prize is None or _money(prize) <= 0:
            continue
        out["winners"] += 1
        result = pay_winner(db, contest, entry, entry.rank, prize, **retry)
        if result is None:
            out["failed"] += 1
        else:
            out[result] += 1

    if out["failed"] == 0:
        contest.settlement_status = "paid"
        contest.settled_at = crud.utcnow()
        db.commit()
    logger.info(
        "contest %s settled: entries=%s winners=%s paid=%s already=%s failed=%s",
        contest.id, out["entries"], out["winners"], out[PAID], out[ALREADY_SETTLED], out["failed"],
    )
    return out


def finalize_match_contests(db: Session, match_id: int, **retry) -> Optional[Dict[str, Any]]:
    """
    Settle every contest of a match. Best-effort: a contest or payout failing
    never stops the others. Returns None for an unknown match.
    """
    match = crud.get_match(db, match_id)
    if not match:
        return None
    if match.status == models.ABANDONED:
        logger.warning("match %s: abandoned, contests are not settled", match.id)
        return {"match_id": match.id, "contests": [], "failed": 0, "abandoned": True}

    player_points = crud.points_by_player(db, match.id)
    summary = {"match_id": match.id, "contests": [], "failed": 0}
    for contest in crud.get_contests_for_match(db, match.id):
        try:
            res = settle_contest(db, contest, player_points, **retry)
        except Exception:
            db.rollback()
            logger.exception("match %s: settlement of contest %s aborted", match.id, contest.id)
            res = {"contest_id": contest.id, "error": True, "failed": 1}
        summary["failed"] += res.get("failed", 0)
        summary["contests"].append(res)

    match.result_settled = True
    match.settled_at = crud.utcnow()
    db.commit()
    return summary


# ---------------- Repair ----------------
def replay_failures(db: Session) -> Dict[str, int]:
    """One more attempt for every unresolved FailureRecord through the idempotent payout step."""
    out = {"checked": 0, "resolved": 0, "still_failing": 0}
    for rec in crud.unresolved_failures(db):
        out["checked"] += 1
        contest = db.get(models.Contest, rec.contest_id)
        entry = db.get(models.ContestEntry, rec.entry_id)
        if contest is None or entry is None:
            rec.error = "contest or entry no longer exists"
            rec.attempts = (rec.attempts or 0) + 1
            db.commit()
            out["still_failing"] += 1
            continue
        try:
            result = process_winner(db, contest, entry, rec.rank, rec.amount)
        except Exception as e:
            db.rollback()
            rec.error = repr(e)
            rec.attempts = (rec.attempts or 0) + 1
            db.commit()
            out["still_failing"] += 1
            logger.warning("failure record %s still failing: %s", rec.id, e)
            continue
        rec.resolved_at = crud.utcnow()
        rec.resolution = result
        db.commit()
        out["resolved"] += 1
        _mark_paid_if_complete(db, contest)

    logger.info("failure replay: %s", out)
    return out


def _mark_paid_if_complete(db: Session, contest: models.Contest) -> None:
    pending = (
        db.query(models.FailureRecord)
        .filter(models.FailureRecord.contest_id == contest.id, models.FailureRecord.resolved_at.is_(None))
        .count()
    )
    if pending == 0 and not audit_missed_prizes(db, contest_id=contest.id) and contest.settlement_status == "ranked":
        contest.settlement_status = "paid"
        contest.settled_at = crud.utcnow()
        db.commit()


def audit_missed_prizes(db: Session, contest_id: int = None) -> List[Dict[str, Any]]:
    """Ranked entries of completed matches whose rank has a prize but whose win_amount is unset or zero."""
    q = (
        db.query(models.ContestEntry, models.PrizeBreakup, models.Contest)
        .join(models.Contest, models.Contest.id == models.ContestEntry.contest_id)
        .join(models.Match, models.Match.id == models.Contest.match_id)
        .join(
            models.PrizeBreakup,
            (models.PrizeBreakup.contest_id == models.ContestEntry.contest_id)
            & (models.PrizeBreakup.rank == models.ContestEntry.rank),
        )
        .filter(models.Match.status == "completed")
        .filter(models.PrizeBreakup.prize > 0)
        .filter((models.ContestEntry.win_amount.is_(None)) | (models.ContestEntry.win_amount == 0))
    )
    if contest_id is not None:
        q = q.filter(models.ContestEntry.contest_id == contest_id)
    return [
        {
            "contest_id": c.id,
            "contest_name": c.name,
            "entry_id": e.id,
            "user_id": e.user_id,
            "rank": e.rank,
            "expected_prize": float(p.prize),
            "win_amount": float(e.win_amount) if e.win_amount is not None else None,
        }
        for e, p, c in q.order_by(models.ContestEntry.contest_id, models.ContestEntry.rank).all()
    ]


def reconcile_completed_matches(db: Session, **retry) -> Dict[str, Any]:
    """
    Cron repair: finalize completed matches that still have unpaid contests or
    missed prizes, then replay the dead-letter queue.
    """
    missed = {row["contest_id"] for row in audit_missed_prizes(db)}
    unpaid = (
        db.query(models.Contest.match_id)
        .join(models.Match, models.Match.id == models.Contest.match_id)
        .filter(models.Match.status == "completed")
        .filter((models.Contest.settlement_status != "paid") | (models.Contest.id.in_(sorted(missed))))
        .distinct()
        .all()
    )
    out = {"matches": [], "replay": None}
    for (match_id,) in unpaid:
        # paid contests with missed prizes get another full pass
        for c in crud.get_contests_for_match(db, match_id):
            if c.id in missed and c.settlement_status == "paid":
                c.settlement_status = "ranked"
        db.commit()
        res = finalize_match_contests(db, match_id, **retry)
        out["matches"].append({"match_id": match_id, "failed": (res or {}).get("failed", 0)})
    out["replay"] = replay_failures(db)
    logger.info("reconcile: %s matches refinalized", len(out["matches"]))
    return out
