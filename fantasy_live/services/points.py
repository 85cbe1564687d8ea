# fantasy_live/services/points.py
"""
Fantasy scoring rules.

Everything here is pure: same inputs, same points. The extractor stores the
result per (match, player); the leaderboard applies captain/vice multipliers.
"""
from __future__ import annotations
from typing import Optional, Tuple

# ---------------- Roles ----------------
ROLES = ("BAT", "BOWL", "AR", "WK", "UNKNOWN")

# Provider position text -> role. Order matters: "Wicketkeeper Batsman" is WK.
ROLE_VOCABULARY: Tuple[Tuple[str, str], ...] = (
    ("keep", "WK"),
    ("all", "AR"),
    ("bowl", "BOWL"),
    ("bat", "BAT"),
)

DUCK_ROLES = {"BAT", "AR", "WK"}
ECONOMY_ROLES = {"BOWL", "AR", "UNKNOWN"}


def role_from_position(position: Optional[str]) -> str:
    text = (position or "").strip().lower()
    if not text:
        return "UNKNOWN"
    if text.upper() in ROLES:
        return text.upper()
    for needle, role in ROLE_VOCABULARY:
        if needle in text:
            return role
    return "UNKNOWN"


# ---------------- Point values ----------------
RUN = 1.0
FOUR_BONUS = 1.0
SIX_BONUS = 2.0
HALF_CENTURY = 4.0
CENTURY = 8.0
DUCK = -2.0
SR_MIN_BALLS = 20

WICKET = 25.0
LBW_BOWLED = 8.0
MAIDEN = 12.0
THREE_WICKETS = 4.0
FOUR_WICKETS = 8.0
FIVE_WICKETS = 16.0
ECON_MIN_OVERS = 2.0

CATCH = 8.0
STUMPING = 12.0
RUN_OUT_DIRECT = 12.0
RUN_OUT_INDIRECT = 6.0

CAPTAIN_MULTIPLIER = 2.0
VICE_CAPTAIN_MULTIPLIER = 1.5


def overs_to_decimal(overs: float) -> float:
    """Cricket notation (3.4 = three overs and four balls) -> 3.666..."""
    overs = float(overs or 0.0)
    whole = int(overs)
    balls = int(round((overs - whole) * 10))
    return whole + balls / 6.0


def calculate_batting_points(runs: int, balls: int, fours: int, sixes: int,
                             is_out: bool, role: str = "UNKNOWN") -> float:
    runs, balls = int(runs or 0), int(balls or 0)
    points = runs * RUN
    points += int(fours or 0) * FOUR_BONUS
    points += int(sixes or 0) * SIX_BONUS

    if runs >= 100:
        points += CENTURY
    elif runs >= 50:
        points += HALF_CENTURY

    if is_out and runs == 0 and balls > 0 and (role or "").upper() in DUCK_ROLES:
        points += DUCK

    if balls >= SR_MIN_BALLS:
        sr = runs / balls * 100.0
        if sr > 120:
            points += 2.0
        elif sr > 100:
            points += 1.0
        elif 60 <= sr < 70:
            points -= 2.0
        elif 70 <= sr < 80:
            points -= 1.0
    return points


def calculate_bowling_points(wickets: int, overs: float, maidens: int, runs_conceded: int,
                             bowled_lbw: int, role: str = "UNKNOWN") -> float:
    wickets = int(wickets or 0)
    points = wickets * WICKET
    points += int(bowled_lbw or 0) * LBW_BOWLED
    points += int(maidens or 0) * MAIDEN

    if wickets >= 5:
        points += FIVE_WICKETS
    elif wickets >= 4:
        points += FOUR_WICKETS
    elif wickets >= 3:
        points += THREE_WICKETS

    played = overs_to_decimal(overs)
    if played >= ECON_MIN_OVERS and (role or "UNKNOWN").upper() in ECONOMY_ROLES:
        econ = int(runs_conceded or 0) / played
        if econ < 5:
            points += 6.0
        elif econ < 6:
            points += 4.0
        elif econ < 7:
            points += 2.0
        elif econ > 11:
            points -= 6.0
        elif econ > 10:
            points -= 4.0
        elif econ > 9:
            points -= 2.0
    return points


def calculate_fielding_points(catches: int, stumpings: int, direct_run_outs: int,
                              indirect_run_outs: int) -> float:
    return (
        int(catches or 0) * CATCH
        + int(stumpings or 0) * STUMPING
        + int(direct_run_outs or 0) * RUN_OUT_DIRECT
        + int(indirect_run_outs or 0) * RUN_OUT_INDIRECT
    )


def calculate_total_points(
    runs: int = 0, balls: int = 0, fours: int = 0, sixes: int = 0, is_out: bool = False,
    wickets: int = 0, overs: float = 0.0, maidens: int = 0, runs_conceded: int = 0,
    bowled_lbw: int = 0,
    catches: int = 0, stumpings: int = 0, direct_run_outs: int = 0, indirect_run_outs: int = 0,
    role: str = "UNKNOWN",
) -> float:
    return (
        calculate_batting_points(runs, balls, fours, sixes, is_out, role)
        + calculate_bowling_points(wickets, overs, maidens, runs_conceded, bowled_lbw, role)
        + calculate_fielding_points(catches, stumpings, direct_run_outs, indirect_run_outs)
    )


def multiplier(is_captain: bool, is_vice_captain: bool) -> float:
    if is_captain:
        return CAPTAIN_MULTIPLIER
    if is_vice_captain:
        return VICE_CAPTAIN_MULTIPLIER
    return 1.0
