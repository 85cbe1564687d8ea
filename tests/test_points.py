import pytest

from fantasy_live.services.points import (
    calculate_batting_points,
    calculate_bowling_points,
    calculate_fielding_points,
    calculate_total_points,
    multiplier,
    overs_to_decimal,
    role_from_position,
)


@pytest.mark.parametrize("position,role", [
    ("Batsman", "BAT"),
    ("Opening Batter", "BAT"),
    ("Bowler", "BOWL"),
    ("Allrounder", "AR"),
    ("Batting Allrounder", "AR"),
    ("Wicketkeeper Batsman", "WK"),
    ("wk", "WK"),
    ("", "UNKNOWN"),
    (None, "UNKNOWN"),
    ("Coach", "UNKNOWN"),
])
def test_role_from_position(position, role):
    assert role_from_position(position) == role


def test_overs_to_decimal_uses_six_ball_overs():
    assert overs_to_decimal(4) == 4.0
    assert overs_to_decimal(3.4) == pytest.approx(3 + 4 / 6)
    assert overs_to_decimal(0.0) == 0.0
    assert overs_to_decimal(None) == 0.0


def test_half_century_with_boundaries_and_strike_rate_bonus():
    # 54 runs + 6 fours + 2 sixes*2 + 50 bonus + SR 150 bonus
    assert calculate_batting_points(54, 36, 6, 2, False, "BAT") == 70


def test_century_bonus_replaces_half_century():
    pts = calculate_batting_points(100, 19, 0, 0, False, "BAT")
    assert pts == 108


def test_strike_rate_needs_twenty_balls():
    assert calculate_batting_points(10, 19, 0, 0, False, "BAT") == 10
    # 13 off 20 -> SR 65 -> -2
    assert calculate_batting_points(13, 20, 0, 0, False, "BAT") == 11
    # 15 off 20 -> SR 75 -> -1
    assert calculate_batting_points(15, 20, 0, 0, False, "BAT") == 14
    # 22 off 20 -> SR 110 -> +1
    assert calculate_batting_points(22, 20, 0, 0, False, "BAT") == 23
    # 18 off 20 -> SR 90 -> no change
    assert calculate_batting_points(18, 20, 0, 0, False, "BAT") == 18


def test_duck_penalty_depends_on_role():
    assert calculate_batting_points(0, 3, 0, 0, True, "BAT") == -2
    assert calculate_batting_points(0, 3, 0, 0, True, "WK") == -2
    assert calculate_batting_points(0, 3, 0, 0, True, "AR") == -2
    assert calculate_batting_points(0, 3, 0, 0, True, "BOWL") == 0
    # out without facing a ball, or not out on zero
    assert calculate_batting_points(0, 0, 0, 0, True, "BAT") == 0
    assert calculate_batting_points(0, 5, 0, 0, False, "BAT") == 0


def test_bowling_wicket_hauls():
    assert calculate_bowling_points(1, 0, 0, 0, 0) == 25
    assert calculate_bowling_points(3, 0, 0, 0, 0) == 79
    assert calculate_bowling_points(4, 0, 0, 0, 0) == 108
    assert calculate_bowling_points(5, 0, 0, 0, 0) == 141


def test_bowled_lbw_and_maidens():
    assert calculate_bowling_points(2, 0, 1, 0, 2) == 50 + 16 + 12


def test_economy_bands():
    # 4 overs
    assert calculate_bowling_points(0, 4, 0, 16, 0, "BOWL") == 6    # 4.0
    assert calculate_bowling_points(0, 4, 0, 22, 0, "BOWL") == 4    # 5.5
    assert calculate_bowling_points(0, 4, 0, 26, 0, "BOWL") == 2    # 6.5
    assert calculate_bowling_points(0, 4, 0, 32, 0, "BOWL") == 0    # 8.0
    assert calculate_bowling_points(0, 4, 0, 38, 0, "BOWL") == -2   # 9.5
    assert calculate_bowling_points(0, 4, 0, 42, 0, "BOWL") == -4   # 10.5
    assert calculate_bowling_points(0, 4, 0, 48, 0, "BOWL") == -6   # 12.0


def test_economy_needs_two_overs_and_a_bowling_role():
    assert calculate_bowling_points(0, 1.5, 0, 2, 0, "BOWL") == 0
    assert calculate_bowling_points(0, 2, 0, 8, 0, "AR") == 6
    assert calculate_bowling_points(0, 2, 0, 8, 0, "UNKNOWN") == 6
    assert calculate_bowling_points(0, 2, 0, 8, 0, "BAT") == 0
    assert calculate_bowling_points(0, 2, 0, 30, 0, "WK") == 0


def test_economy_uses_balls_not_decimal_overs():
    # 2.3 overs is 2.5 real overs: 14 runs -> 5.6 econ (+4), not 6.09 (+2)
    assert calculate_bowling_points(0, 2.3, 0, 14, 0, "BOWL") == 4


def test_fielding():
    assert calculate_fielding_points(2, 1, 1, 1) == 16 + 12 + 12 + 6
    assert calculate_fielding_points(0, 0, 0, 0) == 0


def test_total_is_sum_of_parts():
    total = calculate_total_points(
        runs=30, balls=10, fours=3, sixes=1,
        wickets=1, overs=4, maidens=0, runs_conceded=32,
        catches=1, role="AR",
    )
    assert total == (30 + 3 + 2) + (25 + 0) + 8


@pytest.mark.parametrize("cap,vice,expected", [
    (True, False, 2.0),
    (False, True, 1.5),
    (False, False, 1.0),
    (True, True, 2.0),
])
def test_multiplier(cap, vice, expected):
    assert multiplier(cap, vice) == expected
