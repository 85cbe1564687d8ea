"""create live ingestion + settlement tables

Revision ID: 5c1e7a9d2f40
Revises:
Create Date: 2026-10-19 10:12:31.118204
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "5c1e7a9d2f40"
down_revision = None
branch_labels = None
depends_on = None

PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    # --- players ---
    op.create_table(
        "players",
        sa.Column("id", PK, primary_key=True),
        sa.Column("provider_player_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=True, server_default="UNKNOWN"),
        sa.Column("provider_team_id", sa.String(), nullable=True),
        sa.Column("team_name", sa.String(), nullable=True),
        sa.Column("image", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_players_provider_player_id", "players", ["provider_player_id"], unique=True)
    op.create_index("ix_players_provider_team_id", "players", ["provider_team_id"])

    # --- matches ---
    op.create_table(
        "matches",
        sa.Column("id", PK, primary_key=True),
        sa.Column("provider_match_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=True, server_default="upcoming"),
        sa.Column("start_time", sa.DateTime(), nullable=True),
        sa.Column("end_time", sa.DateTime(), nullable=True),
        sa.Column("result", sa.String(), nullable=True),
        sa.Column("team_a_provider_id", sa.String(), nullable=True),
        sa.Column("team_a_name", sa.String(), nullable=True),
        sa.Column("team_b_provider_id", sa.String(), nullable=True),
        sa.Column("team_b_name", sa.String(), nullable=True),
        sa.Column("result_settled", sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column("settled_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_matches_provider_match_id", "matches", ["provider_match_id"], unique=True)
    op.create_index("ix_matches_status", "matches", ["status"])
    op.create_index("ix_matches_start_time", "matches", ["start_time"])
    op.create_index("ix_matches_result_settled", "matches", ["result_settled"])

    # --- player_statistics ---
    op.create_table(
        "player_statistics",
        sa.Column("id", PK, primary_key=True),
        sa.Column("match_id", sa.BigInteger(), sa.ForeignKey("matches.id", ondelete="CASCADE"), nullable=False),
        sa.Column("player_id", sa.BigInteger(), sa.ForeignKey("players.id", ondelete="CASCADE"), nullable=False),
        sa.Column("runs", sa.Integer(), server_default="0"),
        sa.Column("balls", sa.Integer(), server_default="0"),
        sa.Column("fours", sa.Integer(), server_default="0"),
        sa.Column("sixes", sa.Integer(), server_default="0"),
        sa.Column("is_out", sa.Boolean(), server_default=sa.false()),
        sa.Column("strike_rate", sa.Float(), server_default="0"),
        sa.Column("wickets", sa.Integer(), server_default="0"),
        sa.Column("overs", sa.Float(), server_default="0"),
        sa.Column("maidens", sa.Integer(), server_default="0"),
        sa.Column("runs_conceded", sa.Integer(), server_default="0"),
        sa.Column("economy", sa.Float(), server_default="0"),
        sa.Column("bowled_lbw", sa.Integer(), server_default="0"),
        sa.Column("catches", sa.Integer(), server_default="0"),
        sa.Column("stumpings", sa.Integer(), server_default="0"),
        sa.Column("direct_run_outs", sa.Integer(), server_default="0"),
        sa.Column("indirect_run_outs", sa.Integer(), server_default="0"),
        sa.Column("points", sa.Float(), server_default="0"),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("match_id", "player_id", name="uq_player_stat_row"),
    )
    op.create_index("ix_player_statistics_match_id", "player_statistics", ["match_id"])
    op.create_index("ix_player_statistics_player_id", "player_statistics", ["player_id"])

    # --- ball_events ---
    op.create_table(
        "ball_events",
        sa.Column("id", PK, primary_key=True),
        sa.Column("match_id", sa.BigInteger(), sa.ForeignKey("matches.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("over", sa.String(), nullable=False),
        sa.Column("provider_ball_id", sa.String(), nullable=True),
        sa.Column("team_id", sa.String(), nullable=True),
        sa.Column("batsman_id", sa.String(), nullable=True),
        sa.Column("bowler_id", sa.String(), nullable=True),
        sa.Column("out_batsman_id", sa.String(), nullable=True),
        sa.Column("runs", sa.Integer(), server_default="0"),
        sa.Column("is_four", sa.Boolean(), server_default=sa.false()),
        sa.Column("is_six", sa.Boolean(), server_default=sa.false()),
        sa.Column("is_wicket", sa.Boolean(), server_default=sa.false()),
        sa.Column("wicket_type", sa.String(), nullable=True),
        sa.Column("inning", sa.Integer(), server_default="1"),
        sa.Column("raw", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("match_id", "sequence", name="uq_ball_sequence"),
    )
    op.create_index("ix_ball_events_match_id", "ball_events", ["match_id"])
    op.create_index("ix_ball_events_match_provider", "ball_events", ["match_id", "provider_ball_id"])

    # --- match_summaries / match_lineups ---
    op.create_table(
        "match_summaries",
        sa.Column("id", PK, primary_key=True),
        sa.Column("match_id", sa.BigInteger(), sa.ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("team_a_score", sa.String(), server_default=""),
        sa.Column("team_b_score", sa.String(), server_default=""),
        sa.Column("overs", sa.String(), server_default=""),
        sa.Column("current_innings", sa.Integer(), server_default="1"),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("raw_snapshot", sa.JSON(), nullable=True),
        sa.Column("last_updated", sa.DateTime(), nullable=True),
    )
    op.create_table(
        "match_lineups",
        sa.Column("id", PK, primary_key=True),
        sa.Column("match_id", sa.BigInteger(), sa.ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("team_a_players", sa.JSON(), nullable=True),
        sa.Column("team_b_players", sa.JSON(), nullable=True),
        sa.Column("substitutes", sa.JSON(), nullable=True),
        sa.Column("toss_winner", sa.String(), nullable=True),
        sa.Column("is_toss_complete", sa.Boolean(), server_default=sa.false()),
        sa.Column("last_updated", sa.DateTime(), nullable=True),
    )

    # --- users / fantasy teams ---
    op.create_table(
        "users",
        sa.Column("id", PK, primary_key=True),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("wallet_balance", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "fantasy_teams",
        sa.Column("id", PK, primary_key=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("match_id", sa.BigInteger(), sa.ForeignKey("matches.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_fantasy_teams_user_id", "fantasy_teams", ["user_id"])
    op.create_index("ix_fantasy_teams_match_id", "fantasy_teams", ["match_id"])

    op.create_table(
        "fantasy_team_players",
        sa.Column("id", PK, primary_key=True),
        sa.Column("team_id", sa.BigInteger(), sa.ForeignKey("fantasy_teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("player_id", sa.BigInteger(), sa.ForeignKey("players.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_captain", sa.Boolean(), server_default=sa.false()),
        sa.Column("is_vice_captain", sa.Boolean(), server_default=sa.false()),
        sa.UniqueConstraint("team_id", "player_id", name="uq_team_player"),
    )
    op.create_index("ix_fantasy_team_players_team_id", "fantasy_team_players", ["team_id"])
    op.create_index("ix_fantasy_team_players_player_id", "fantasy_team_players", ["player_id"])

    # --- contests ---
    op.create_table(
        "contests",
        sa.Column("id", PK, primary_key=True),
        sa.Column("match_id", sa.BigInteger(), sa.ForeignKey("matches.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("entry_fee", sa.Numeric(12, 2), server_default="0"),
        sa.Column("total_prize", sa.Numeric(12, 2), server_default="0"),
        sa.Column("winner_count", sa.Integer(), server_default="0"),
        sa.Column("settlement_status", sa.String(), server_default="pending"),
        sa.Column("settled_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_contests_match_id", "contests", ["match_id"])
    op.create_index("ix_contests_settlement_status", "contests", ["settlement_status"])

    op.create_table(
        "contest_entries",
        sa.Column("id", PK, primary_key=True),
        sa.Column("contest_id", sa.BigInteger(), sa.ForeignKey("contests.id", ondelete="CASCADE"), nullable=False),
        sa.Column("fantasy_team_id", sa.BigInteger(), sa.ForeignKey("fantasy_teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("points", sa.Float(), server_default="0"),
        sa.Column("rank", sa.Integer(), nullable=True),
        sa.Column("win_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_contest_entries_contest_id", "contest_entries", ["contest_id"])
    op.create_index("ix_contest_entries_fantasy_team_id", "contest_entries", ["fantasy_team_id"])
    op.create_index("ix_contest_entries_user_id", "contest_entries", ["user_id"])
    op.create_index("ix_contest_entries_created_at", "contest_entries", ["created_at"])

    op.create_table(
        "prize_breakups",
        sa.Column("id", PK, primary_key=True),
        sa.Column("contest_id", sa.BigInteger(), sa.ForeignKey("contests.id", ondelete="CASCADE"), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("prize", sa.Numeric(12, 2), nullable=False),
        sa.UniqueConstraint("contest_id", "rank", name="uq_prize_rank"),
    )
    op.create_index("ix_prize_breakups_contest_id", "prize_breakups", ["contest_id"])

    # --- wallet ledger ---
    op.create_table(
        "transactions",
        sa.Column("id", PK, primary_key=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), server_default="completed"),
        sa.Column("reference", sa.String(), nullable=True),
        sa.Column("contest_id", sa.BigInteger(), sa.ForeignKey("contests.id", ondelete="SET NULL"), nullable=True),
        sa.Column("rank", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_transactions_user_id", "transactions", ["user_id"])
    op.create_index("ix_transactions_type", "transactions", ["type"])
    op.create_index("ix_transactions_status", "transactions", ["status"])
    op.create_index("ix_transactions_created_at", "transactions", ["created_at"])
    # one completed contest_win per (user, contest, rank)
    op.create_index(
        "uq_contest_win_once",
        "transactions",
        ["user_id", "contest_id", "rank"],
        unique=True,
        postgresql_where=sa.text("type = 'contest_win' AND status = 'completed'"),
        sqlite_where=sa.text("type = 'contest_win' AND status = 'completed'"),
    )

    # --- dead letters ---
    op.create_table(
        "failure_records",
        sa.Column("id", PK, primary_key=True),
        sa.Column("kind", sa.String(), server_default="contest_win"),
        sa.Column("user_id", sa.BigInteger(), nullable=True),
        sa.Column("contest_id", sa.BigInteger(), nullable=True),
        sa.Column("entry_id", sa.BigInteger(), nullable=True),
        sa.Column("rank", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("resolution", sa.String(), nullable=True),
    )
    op.create_index("ix_failure_records_kind", "failure_records", ["kind"])
    op.create_index("ix_failure_records_user_id", "failure_records", ["user_id"])
    op.create_index("ix_failure_records_contest_id", "failure_records", ["contest_id"])
    op.create_index("ix_failure_records_entry_id", "failure_records", ["entry_id"])
    op.create_index("ix_failure_records_created_at", "failure_records", ["created_at"])
    op.create_index("ix_failure_records_resolved_at", "failure_records", ["resolved_at"])


def downgrade() -> None:
    op.drop_index("uq_contest_win_once", table_name="transactions")
    for table in (
        "failure_records",
        "transactions",
        "prize_breakups",
        "contest_entries",
        "contests",
        "fantasy_team_players",
        "fantasy_teams",
        "users",
        "match_lineups",
        "match_summaries",
        "ball_events",
        "player_statistics",
        "matches",
        "players",
    ):
        op.drop_table(table)
