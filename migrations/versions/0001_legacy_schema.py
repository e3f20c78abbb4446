"""Legacy schema.

This revision captures the schema that existed before suggestions were folded
into ``features``: a features table without lifecycle columns, the transcript
/ pain point / mapping tables, and the two side tables that held AI
suggestions and their quotes.

Existing databases created before Alembic should be stamped to this revision
(``python -m interview_analyzer.db_bootstrap migrate`` does that automatically).
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_legacy_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Features (user-authored; lifecycle columns arrive in 0002)
    op.create_table(
        "features",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Text(), nullable=False, server_default="default"),
        sa.Column("feature_name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("is_suggestion", sa.Boolean(), server_default=sa.false()),
    )
    op.create_index("idx_features_user_id", "features", ["user_id"])

    # Transcripts
    op.create_table(
        "transcripts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Text(), nullable=False, server_default="default"),
        sa.Column("transcript_text", sa.Text(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("idx_transcripts_user_id", "transcripts", ["user_id"])

    # Pain points
    op.create_table(
        "pain_points",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("transcript_id", sa.Integer(), sa.ForeignKey("transcripts.id", ondelete="CASCADE")),
        sa.Column("pain_point", sa.Text(), nullable=False),
        sa.Column("quote", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("idx_pain_points_transcript_id", "pain_points", ["transcript_id"])

    # Feature mappings (by name, no FK to features)
    op.create_table(
        "feature_mappings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("pain_point_id", sa.Integer(), sa.ForeignKey("pain_points.id", ondelete="CASCADE")),
        sa.Column("feature_name", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("idx_feature_mappings_pain_point_id", "feature_mappings", ["pain_point_id"])

    # Per-transcript AI summaries of known features
    op.create_table(
        "transcript_feature_summaries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("transcript_id", sa.Integer(), sa.ForeignKey("transcripts.id", ondelete="CASCADE")),
        sa.Column("feature_name", sa.Text(), nullable=False),
        sa.Column("ai_summary", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index(
        "idx_transcript_feature_summaries_transcript_id",
        "transcript_feature_summaries",
        ["transcript_id"],
    )

    # Suggestions + their quotes (replaced by features.status in 0002)
    op.create_table(
        "transcript_feature_suggestions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("transcript_id", sa.Integer(), sa.ForeignKey("transcripts.id", ondelete="CASCADE")),
        sa.Column("feature_name", sa.Text(), nullable=False),
        sa.Column("ai_summary", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("status", sa.Text(), server_default="pending"),
        sa.Column("pain_points_count", sa.Integer(), server_default="1"),
    )
    op.create_index(
        "idx_transcript_feature_suggestions_transcript_id",
        "transcript_feature_suggestions",
        ["transcript_id"],
    )

    op.create_table(
        "feature_suggestion_quotes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "suggestion_id",
            sa.Integer(),
            sa.ForeignKey("transcript_feature_suggestions.id", ondelete="CASCADE"),
        ),
        sa.Column("quote", sa.Text(), nullable=False),
        sa.Column("pain_point", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index(
        "idx_feature_suggestion_quotes_suggestion_id",
        "feature_suggestion_quotes",
        ["suggestion_id"],
    )


def downgrade() -> None:
    op.drop_table("feature_suggestion_quotes")
    op.drop_table("transcript_feature_suggestions")
    op.drop_table("transcript_feature_summaries")
    op.drop_table("feature_mappings")
    op.drop_table("pain_points")
    op.drop_table("transcripts")
    op.drop_table("features")
