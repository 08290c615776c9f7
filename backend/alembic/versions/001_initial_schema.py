"""Initial schema: roster, groups, matches, knockout brackets, court scheduling

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_ONLY = sa.text("status = 'ACTIVE'")


def upgrade() -> None:
    # Roster
    op.create_table(
        "player",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "team",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("category_code", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("is_knockout_seed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_team_category_code", "team", ["category_code"])
    op.create_table(
        "teammember",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("team_id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["team_id"], ["team.id"]),
        sa.ForeignKeyConstraint(["player_id"], ["player.id"]),
        sa.UniqueConstraint("team_id", "player_id", name="uq_teammember_team_player"),
    )

    # Groups
    op.create_table(
        "group_",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("category_code", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("category_code", "name", name="uq_group_category_name"),
    )
    op.create_table(
        "groupteam",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("team_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["group_id"], ["group_.id"]),
        sa.ForeignKeyConstraint(["team_id"], ["team.id"]),
        sa.UniqueConstraint("team_id", name="uq_groupteam_team"),
    )
    op.create_table(
        "groupstagelock",
        sa.Column("category_code", sa.String(), nullable=False),
        sa.Column("locked", sa.Boolean(), nullable=False),
        sa.Column("locked_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("category_code"),
    )

    # Group matches
    op.create_table(
        "match",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("category_code", sa.String(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("stage", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("home_team_id", sa.Integer(), nullable=True),
        sa.Column("away_team_id", sa.Integer(), nullable=True),
        sa.Column("winner_team_id", sa.Integer(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["group_id"], ["group_.id"]),
        sa.ForeignKeyConstraint(["home_team_id"], ["team.id"]),
        sa.ForeignKeyConstraint(["away_team_id"], ["team.id"]),
        sa.ForeignKeyConstraint(["winner_team_id"], ["team.id"]),
        sa.UniqueConstraint("group_id", "home_team_id", "away_team_id", name="uq_match_group_pair"),
    )
    op.create_index("ix_match_category_code", "match", ["category_code"])
    op.create_index("ix_match_completed_at", "match", ["completed_at"])
    op.create_table(
        "gamescore",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("match_id", sa.String(), nullable=False),
        sa.Column("game_no", sa.Integer(), nullable=False),
        sa.Column("home_points", sa.Integer(), nullable=False),
        sa.Column("away_points", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["match_id"], ["match.id"]),
        sa.UniqueConstraint("match_id", "game_no", name="uq_gamescore_match_game"),
    )

    # Knockout brackets
    op.create_table(
        "knockoutmatch",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("category_code", sa.String(), nullable=False),
        sa.Column("series", sa.String(), nullable=False),
        sa.Column("round_no", sa.Integer(), nullable=False),
        sa.Column("match_no", sa.Integer(), nullable=False),
        sa.Column("is_published", sa.Boolean(), nullable=False),
        sa.Column("is_best_of_3", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("home_team_id", sa.Integer(), nullable=True),
        sa.Column("away_team_id", sa.Integer(), nullable=True),
        sa.Column("winner_team_id", sa.Integer(), nullable=True),
        sa.Column("next_match_id", sa.String(), nullable=True),
        sa.Column("next_slot", sa.Integer(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["home_team_id"], ["team.id"]),
        sa.ForeignKeyConstraint(["away_team_id"], ["team.id"]),
        sa.ForeignKeyConstraint(["winner_team_id"], ["team.id"]),
        sa.ForeignKeyConstraint(["next_match_id"], ["knockoutmatch.id"]),
        sa.UniqueConstraint(
            "category_code", "series", "round_no", "match_no", name="uq_knockout_category_series_round_match"
        ),
    )
    op.create_index("ix_knockoutmatch_category_code", "knockoutmatch", ["category_code"])
    op.create_index("ix_knockoutmatch_completed_at", "knockoutmatch", ["completed_at"])
    op.create_table(
        "knockoutgamescore",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("knockout_match_id", sa.String(), nullable=False),
        sa.Column("game_no", sa.Integer(), nullable=False),
        sa.Column("home_points", sa.Integer(), nullable=False),
        sa.Column("away_points", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["knockout_match_id"], ["knockoutmatch.id"]),
        sa.UniqueConstraint("knockout_match_id", "game_no", name="uq_knockoutgame_match_game"),
    )
    op.create_table(
        "knockoutseed",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("category_code", sa.String(), nullable=False),
        sa.Column("series", sa.String(), nullable=False),
        sa.Column("team_id", sa.Integer(), nullable=False),
        sa.Column("seed_no", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["team_id"], ["team.id"]),
        sa.UniqueConstraint("category_code", "series", "seed_no", name="uq_seed_category_series_no"),
        sa.UniqueConstraint("category_code", "series", "team_id", name="uq_seed_category_series_team"),
    )
    op.create_table(
        "seriesqualifier",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("category_code", sa.String(), nullable=False),
        sa.Column("series", sa.String(), nullable=False),
        sa.Column("team_id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("group_rank", sa.Integer(), nullable=False),
        sa.Column("avg_points_against", sa.Float(), nullable=False),
        sa.Column("global_rank", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["team_id"], ["team.id"]),
        sa.ForeignKeyConstraint(["group_id"], ["group_.id"]),
        sa.UniqueConstraint("category_code", "team_id", name="uq_qualifier_category_team"),
    )
    op.create_table(
        "categoryconfig",
        sa.Column("category_code", sa.String(), nullable=False),
        sa.Column("second_chance_enabled", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("category_code"),
    )
    op.create_table(
        "randomdrawrecord",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("draw_key", sa.String(), nullable=False),
        sa.Column("draw_type", sa.String(), nullable=False),
        sa.Column("category_code", sa.String(), nullable=True),
        sa.Column("series", sa.String(), nullable=True),
        sa.Column("round_no", sa.Integer(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_randomdrawrecord_draw_key", "randomdrawrecord", ["draw_key"], unique=True)

    # Court scheduling
    op.create_table(
        "courtstate",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("court_id", sa.String(), nullable=False),
        sa.Column("stage", sa.String(), nullable=False),
        sa.Column("is_locked", sa.Boolean(), nullable=False),
        sa.Column("lock_note", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("court_id", "stage", name="uq_courtstate_court_stage"),
    )
    op.create_table(
        "courtassignment",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("court_id", sa.String(), nullable=False),
        sa.Column("stage", sa.String(), nullable=False),
        sa.Column("match_type", sa.String(), nullable=True),
        sa.Column("group_match_id", sa.String(), nullable=True),
        sa.Column("knockout_match_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("assigned_at", sa.DateTime(), nullable=False),
        sa.Column("cleared_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["group_match_id"], ["match.id"]),
        sa.ForeignKeyConstraint(["knockout_match_id"], ["knockoutmatch.id"]),
    )
    op.create_index("ix_courtassignment_court_id", "courtassignment", ["court_id"])
    op.create_index("ix_courtassignment_status", "courtassignment", ["status"])
    # At most one ACTIVE row per court and per match within a stage
    for name, column in (
        ("uq_assignment_active_court", "court_id"),
        ("uq_assignment_active_group_match", "group_match_id"),
        ("uq_assignment_active_knockout_match", "knockout_match_id"),
    ):
        op.create_index(
            name,
            "courtassignment",
            [column, "stage"],
            unique=True,
            sqlite_where=ACTIVE_ONLY,
            postgresql_where=ACTIVE_ONLY,
        )
    op.create_table(
        "forcedpriority",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("match_type", sa.String(), nullable=False),
        sa.Column("match_id", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("match_type", "match_id", name="uq_forced_match"),
    )
    op.create_table(
        "blockedmatch",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("match_type", sa.String(), nullable=False),
        sa.Column("match_id", sa.String(), nullable=False),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("match_type", "match_id", name="uq_blocked_match"),
    )
    op.create_table(
        "scheduleconfig",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("stage", sa.String(), nullable=False),
        sa.Column("auto_schedule_enabled", sa.Boolean(), nullable=False),
        sa.Column("last_batch_json", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("stage"),
    )
    op.create_table(
        "scheduleactionlog",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("stage", sa.String(), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_scheduleactionlog_stage", "scheduleactionlog", ["stage"])


def downgrade() -> None:
    op.drop_table("scheduleactionlog")
    op.drop_table("scheduleconfig")
    op.drop_table("blockedmatch")
    op.drop_table("forcedpriority")
    op.drop_table("courtassignment")
    op.drop_table("courtstate")
    op.drop_table("randomdrawrecord")
    op.drop_table("categoryconfig")
    op.drop_table("seriesqualifier")
    op.drop_table("knockoutseed")
    op.drop_table("knockoutgamescore")
    op.drop_table("knockoutmatch")
    op.drop_table("gamescore")
    op.drop_table("match")
    op.drop_table("groupstagelock")
    op.drop_table("groupteam")
    op.drop_table("group_")
    op.drop_table("teammember")
    op.drop_table("team")
    op.drop_table("player")
