"""Normalized feature keys and the pending-suggestion uniqueness index.

Adds:
- features.feature_key / feature_mappings.feature_key (whitespace-collapsed,
  casefolded name) used for every name-based join
- transcript_feature_summaries.is_suggestion
- uq_features_pending_key: one pending suggestion per (user_id, feature_key)
- ck_features_status: status limited to pending, active and archived

Duplicate pending rows that older writers could leave behind are collapsed
into the most recently updated row before the unique index is built.
"""

from __future__ import annotations

from collections import defaultdict

from alembic import op
import sqlalchemy as sa

from interview_analyzer.utils.feature_keys import normalize_feature_key


revision = "0003_feature_keys"
down_revision = "0002_unify_feature_suggestions"
branch_labels = None
depends_on = None

PENDING_ONLY = sa.text("status = 'pending'")
STATUS_CHECK = "ck_features_status"
VALID_STATUS = "status IN ('pending', 'active', 'archived')"


def _has_column(bind, table: str, column: str) -> bool:
    return any(c["name"] == column for c in sa.inspect(bind).get_columns(table))


def _backfill_keys(bind, table: str) -> None:
    rows = bind.execute(sa.text(f"SELECT id, feature_name FROM {table} WHERE feature_key IS NULL")).fetchall()
    for row in rows:
        bind.execute(
            sa.text(f"UPDATE {table} SET feature_key = :key WHERE id = :id"),
            {"key": normalize_feature_key(row.feature_name), "id": row.id},
        )


def _collapse_pending_duplicates(bind) -> None:
    rows = bind.execute(
        sa.text(
            "SELECT id, user_id, feature_key, pain_points_count, updated_at "
            "FROM features WHERE status = 'pending'"
        )
    ).fetchall()

    groups = defaultdict(list)
    for row in rows:
        groups[(row.user_id, row.feature_key)].append(row)

    for duplicates in groups.values():
        if len(duplicates) < 2:
            continue
        keeper = max(duplicates, key=lambda r: (r.updated_at is not None, r.updated_at or "", r.id))
        total = sum(r.pain_points_count if r.pain_points_count is not None else 1 for r in duplicates)
        bind.execute(
            sa.text("UPDATE features SET pain_points_count = :total WHERE id = :id"),
            {"total": total, "id": keeper.id},
        )
        for row in duplicates:
            if row.id != keeper.id:
                bind.execute(sa.text("DELETE FROM features WHERE id = :id"), {"id": row.id})


def upgrade() -> None:
    bind = op.get_bind()

    if not _has_column(bind, "features", "feature_key"):
        op.add_column("features", sa.Column("feature_key", sa.Text(), nullable=True))
    if not _has_column(bind, "feature_mappings", "feature_key"):
        op.add_column("feature_mappings", sa.Column("feature_key", sa.Text(), nullable=True))
    if not _has_column(bind, "transcript_feature_summaries", "is_suggestion"):
        op.add_column(
            "transcript_feature_summaries",
            sa.Column("is_suggestion", sa.Boolean(), nullable=False, server_default=sa.false()),
        )

    _backfill_keys(bind, "features")
    _backfill_keys(bind, "feature_mappings")
    _collapse_pending_duplicates(bind)

    # Unrecognized statuses can only have been written by hand; retire them
    bind.execute(sa.text("UPDATE features SET status = 'active' WHERE status IS NULL"))
    bind.execute(sa.text(f"UPDATE features SET status = 'archived' WHERE NOT ({VALID_STATUS})"))

    with op.batch_alter_table("features") as batch_op:
        batch_op.alter_column("feature_key", existing_type=sa.Text(), nullable=False)
        batch_op.create_check_constraint(STATUS_CHECK, VALID_STATUS)
    with op.batch_alter_table("feature_mappings") as batch_op:
        batch_op.alter_column("feature_key", existing_type=sa.Text(), nullable=False)

    op.create_index(
        "uq_features_pending_key",
        "features",
        ["user_id", "feature_key"],
        unique=True,
        sqlite_where=PENDING_ONLY,
        postgresql_where=PENDING_ONLY,
    )
    op.create_index("idx_feature_mappings_feature_key", "feature_mappings", ["feature_key"])


def downgrade() -> None:
    bind = op.get_bind()

    op.drop_index("idx_feature_mappings_feature_key", table_name="feature_mappings")
    op.drop_index("uq_features_pending_key", table_name="features")

    if _has_column(bind, "transcript_feature_summaries", "is_suggestion"):
        with op.batch_alter_table("transcript_feature_summaries") as batch_op:
            batch_op.drop_column("is_suggestion")
    if _has_column(bind, "feature_mappings", "feature_key"):
        with op.batch_alter_table("feature_mappings") as batch_op:
            batch_op.drop_column("feature_key")
    has_check = any(c.get("name") == STATUS_CHECK for c in sa.inspect(bind).get_check_constraints("features"))
    has_key = _has_column(bind, "features", "feature_key")
    if has_check or has_key:
        with op.batch_alter_table("features") as batch_op:
            if has_check:
                batch_op.drop_constraint(STATUS_CHECK, type_="check")
            if has_key:
                batch_op.drop_column("feature_key")
