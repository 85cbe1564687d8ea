from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

ROOT = Path(__file__).resolve().parents[1]

TABLES = {
    "players", "matches", "player_statistics", "ball_events", "match_summaries", "match_lineups",
    "users", "fantasy_teams", "fantasy_team_players", "contests", "contest_entries",
    "prize_breakups", "transactions", "failure_records",
}


def _config(url):
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "alembic"))
    cfg.set_main_option("sqlalchemy.url", url)
    return cfg


def test_upgrade_and_downgrade(tmp_path):
    url = f"sqlite:///{tmp_path / 'migrate.db'}"
    cfg = _config(url)

    command.upgrade(cfg, "head")
    engine = create_engine(url)
    insp = inspect(engine)
    assert TABLES <= set(insp.get_table_names())
    win_once = {ix["name"]: ix for ix in insp.get_indexes("transactions")}["uq_contest_win_once"]
    assert win_once["column_names"] == ["user_id", "contest_id", "rank"]
    assert win_once["unique"]
    wallet = {c["name"]: c for c in insp.get_columns("users")}["wallet_balance"]
    assert wallet["nullable"] is False
    assert "uq_ball_sequence" in {uc["name"] for uc in insp.get_unique_constraints("ball_events")}

    command.downgrade(cfg, "base")
    assert TABLES.isdisjoint(inspect(engine).get_table_names())
    engine.dispose()
