# fantasy_live/services/stats.py
"""
Snapshot -> per-player statistics and fantasy points.

Batting and bowling lines from the provider are cumulative, so each poll
overwrites the stored row. Fielding credits are recounted from the full
ball list every time for the same reason.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from .. import crud, models
from .points import calculate_total_points, role_from_position, overs_to_decimal

logger = logging.getLogger(__name__)

STAT_FIELDS = (
    "runs", "balls", "fours", "sixes", "is_out", "strike_rate",
    "wickets", "overs", "maidens", "runs_conceded", "economy", "bowled_lbw",
    "catches", "stumpings", "direct_run_outs", "indirect_run_outs",
)


def _blank(pid: str, name: str = "Unknown Player", team_id=None, role: str = "UNKNOWN", image=None) -> dict:
    return {
        "provider_player_id": pid,
        "name": name,
        "team_id": team_id,
        "role": role,
        "image": image,
        "runs": 0, "balls": 0, "fours": 0, "sixes": 0, "is_out": False, "strike_rate": 0.0,
        "wickets": 0, "overs": 0.0, "maidens": 0, "runs_conceded": 0, "economy": 0.0,
        "bowled_lbw": 0,
        "catches": 0, "stumpings": 0, "direct_run_outs": 0, "indirect_run_outs": 0,
    }


def _pid(*candidates) -> Optional[str]:
    for c in candidates:
        if isinstance(c, dict):
            c = c.get("id")
        if c not in (None, "", 0):
            return str(c)
    return None


def _int(v) -> int:
    try:
        return int(float(v or 0))
    except (TypeError, ValueError):
        return 0


def _float(v) -> float:
    try:
        return float(v or 0)
    except (TypeError, ValueError):
        return 0.0


def _add_overs(a: float, b: float) -> float:
    balls = round(overs_to_decimal(a) * 6) + round(overs_to_decimal(b) * 6)
    return balls // 6 + (balls % 6) / 10.0


def _name_of(obj: Any) -> Optional[str]:
    if isinstance(obj, dict):
        return obj.get("fullname") or obj.get("name")
    return None


def wicket_kind(ball: dict) -> str:
    """Lower-cased dismissal text for a delivery ("" when not a wicket)."""
    score = ball.get("score")
    if isinstance(score, str):
        return score.lower()
    if isinstance(score, dict):
        name = score.get("name") or ""
        if score.get("is_wicket") or score.get("out") or ball.get("wicket_type"):
            return (ball.get("wicket_type") or name).lower()
        return ""
    return (ball.get("wicket_type") or "").lower()


def _is_bowled_or_lbw(kind: str) -> bool:
    if "lbw" in kind:
        return True
    return "bowled" in kind and "catch" not in kind and "caught" not in kind


def batting_is_out(entry: dict) -> bool:
    result = entry.get("result") if isinstance(entry.get("result"), dict) else {}
    return bool(
        entry.get("out_by")
        or result.get("is_wicket")
        or entry.get("bowling_player_id")
        or entry.get("catch_stump_player_id")
        or entry.get("runout_by_id")
    )


def _batting_line(entry: dict) -> dict:
    runs, balls = _int(entry.get("score")), _int(entry.get("ball"))
    is_out = batting_is_out(entry)
    sr = _float(entry.get("rate")) or (round(runs / balls * 100.0, 2) if balls else 0.0)
    return {
        "runs": runs, "balls": balls,
        "fours": _int(entry.get("four_x")), "sixes": _int(entry.get("six_x")),
        "is_out": is_out, "strike_rate": sr,
    }


def _bowling_line(entry: dict) -> dict:
    overs = _float(entry.get("overs"))
    conceded = _int(entry.get("runs"))
    played = overs_to_decimal(overs)
    econ = _float(entry.get("rate")) or (round(conceded / played, 2) if played else 0.0)
    return {
        "wickets": _int(entry.get("wickets")),
        "overs": overs,
        "maidens": _int(entry.get("medians", entry.get("maidens"))),
        "runs_conceded": conceded,
        "economy": econ,
    }


def extract_player_stats(snapshot: dict) -> Dict[str, dict]:
    """
    Pure pass over a snapshot; returns provider player id -> accumulator.
    Players seen only in batting/bowling/fielding data are added on the fly.
    """
    acc: Dict[str, dict] = {}

    def slot(pid: str, name: Optional[str] = None) -> dict:
        if pid not in acc:
            acc[pid] = _blank(pid, name or "Unknown Player")
        elif name and acc[pid]["name"] == "Unknown Player":
            acc[pid]["name"] = name
        return acc[pid]

    # 1) roster
    for p in snapshot.get("lineup") or []:
        pid = _pid(p.get("id"))
        if not pid:
            logger.debug("lineup row without id skipped")
            continue
        role = "WK" if p.get("wicketkeeper") else role_from_position(p.get("position"))
        acc[pid] = _blank(pid, p.get("fullname") or "Unknown Player", p.get("team_id"), role, p.get("image_path"))

    # 2) batting, one line per innings scoreboard
    batting: Dict[str, Dict[str, dict]] = {}
    for entry in snapshot.get("batting") or []:
        pid = _pid(entry.get("batsman_id"), entry.get("player_id"), entry.get("batsman"))
        if not pid:
            logger.warning("batting row without player id skipped")
            continue
        slot(pid, _name_of(entry.get("batsman")))
        batting.setdefault(pid, {})[str(entry.get("scoreboard") or "S1")] = _batting_line(entry)

    for pid, innings in batting.items():
        s = acc[pid]
        for line in innings.values():
            s["runs"] += line["runs"]
            s["balls"] += line["balls"]
            s["fours"] += line["fours"]
            s["sixes"] += line["sixes"]
            s["is_out"] = s["is_out"] or line["is_out"]
        s["strike_rate"] = (
            round(s["runs"] / s["balls"] * 100.0, 2) if len(innings) > 1 and s["balls"]
            else next(iter(innings.values()))["strike_rate"]
        )

    # 3) bowling
    bowling: Dict[str, Dict[str, dict]] = {}
    for entry in snapshot.get("bowling") or []:
        pid = _pid(entry.get("bowler_id"), entry.get("player_id"), entry.get("bowler"))
        if not pid:
            logger.warning("bowling row without player id skipped")
            continue
        slot(pid, _name_of(entry.get("bowler")))
        bowling.setdefault(pid, {})[str(entry.get("scoreboard") or "S1")] = _bowling_line(entry)

    for pid, spells in bowling.items():
        s = acc[pid]
        for line in spells.values():
            s["wickets"] += line["wickets"]
            s["overs"] = _add_overs(s["overs"], line["overs"])
            s["maidens"] += line["maidens"]
            s["runs_conceded"] += line["runs_conceded"]
        played = overs_to_decimal(s["overs"])
        s["economy"] = (
            round(s["runs_conceded"] / played, 2) if len(spells) > 1 and played
            else next(iter(spells.values()))["economy"]
        )

    # 4) fielding + bowled/lbw tally from the delivery list
    for ball in snapshot.get("balls") or []:
        kind = wicket_kind(ball)

        catcher = ball.get("catch")
        if isinstance(catcher, dict) and _pid(catcher):
            slot(_pid(catcher), _name_of(catcher))["catches"] += 1
        elif ball.get("catchstump_id") and "catch" in kind:
            slot(str(ball["catchstump_id"]))["catches"] += 1

        keeper = ball.get("stumped")
        if isinstance(keeper, dict) and _pid(keeper):
            slot(_pid(keeper), _name_of(keeper))["stumpings"] += 1
        elif ball.get("catchstump_id") and "stump" in kind:
            slot(str(ball["catchstump_id"]))["stumpings"] += 1

        runout = ball.get("runout")
        if isinstance(runout, list) and runout:
            fielders = [f for f in runout if _pid(f)]
            for i, f in enumerate(fielders):
                key = "direct_run_outs" if i == 0 else "indirect_run_outs"
                slot(_pid(f), _name_of(f))[key] += 1
        elif ball.get("runout_by_id"):
            slot(str(ball["runout_by_id"]))["direct_run_outs"] += 1

        if kind and _is_bowled_or_lbw(kind):
            bowler = _pid(ball.get("bowler"), ball.get("bowler_id"))
            if bowler:
                slot(bowler, _name_of(ball.get("bowler")))["bowled_lbw"] += 1

    return acc


def ingest_player_stats(db: Session, match: models.Match, snapshot: dict) -> Dict[str, Any]:
    """
    Resolve players, compute points and upsert one PlayerStatistic per player.
    One player failing is rolled back and logged; the rest still land.
    ok is True when at least one row was written.
    """
    acc = extract_player_stats(snapshot)
    out = {"ok": False, "players": len(acc), "written": 0, "failed": 0, "changed": 0}
    if not acc:
        logger.info("match %s: snapshot carried no player data yet", match.id)
        return out

    for pid, line in acc.items():
        try:
            player = crud.ensure_player(
                db, pid, line["name"], role=line["role"],
                provider_team_id=line["team_id"], image=line["image"],
            )
            if (player.role or "UNKNOWN") == "UNKNOWN" and line["role"] != "UNKNOWN":
                player.role = line["role"]
            role = player.role or "UNKNOWN"

            values = {k: line[k] for k in STAT_FIELDS}
            values["points"] = calculate_total_points(
                runs=line["runs"], balls=line["balls"], fours=line["fours"], sixes=line["sixes"],
                is_out=line["is_out"],
                wickets=line["wickets"], overs=line["overs"], maidens=line["maidens"],
                runs_conceded=line["runs_conceded"], bowled_lbw=line["bowled_lbw"],
                catches=line["catches"], stumpings=line["stumpings"],
                direct_run_outs=line["direct_run_outs"], indirect_run_outs=line["indirect_run_outs"],
                role=role,
            )
            if crud.upsert_player_statistic(db, match.id, player.id, values):
                out["changed"] += 1
            out["written"] += 1
        except Exception:
            db.rollback()
            out["failed"] += 1
            logger.exception("match %s: stats upsert failed for provider player %s", match.id, pid)

    out["ok"] = out["written"] > 0
    logger.info(
        "match %s: stats written=%s failed=%s changed=%s",
        match.id, out["written"], out["failed"], out["changed"],
    )
    return out
