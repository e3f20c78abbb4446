"""Unification of the legacy suggestion tables into ``features``.

Older databases kept AI suggestions in two side tables,
``transcript_feature_suggestions`` (one row per transcript and suggested
name) and ``feature_suggestion_quotes`` (its quotes). The current design keeps
every feature, suggested or user-authored, in ``features`` with a ``status``,
and every quote in ``pain_points`` + ``feature_mappings``.

``migrate_feature_suggestions`` moves the old design onto the new one and
``rollback_feature_suggestions`` moves pending suggestions back. Reviewed
suggestions (active or archived) keep their ``features`` row across a
rollback; their origin transcript, count and status are recorded in the
legacy table as well, and the next migrate links them up again. Both take a
connection that is already inside a transaction (Alembic's, or the caller's
``engine.begin()``) and never commit themselves, so a failure anywhere leaves
the schema exactly as it was.

Rollback is lossy once new data has been written after migrating: quotes
recorded later stay in ``pain_points``, and suggestions whose origin
transcript was deleted stay in ``features`` without a status.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy.engine import Connection

logger = logging.getLogger(__name__)

LEGACY_SUGGESTIONS_TABLE = "transcript_feature_suggestions"
LEGACY_QUOTES_TABLE = "feature_suggestion_quotes"
TRANSCRIPT_FK_NAME = "fk_features_transcript_id"
UNIFIED_COLUMNS = ("status", "transcript_id", "pain_points_count")

# config.attributes keys the unification revision reports its counts under
MIGRATION_RESULT_KEY = "feature_suggestions_migration"
ROLLBACK_RESULT_KEY = "feature_suggestions_rollback"


@dataclass
class MigrationResult:
    features_migrated: int = 0
    features_relinked: int = 0
    quotes_migrated: int = 0
    columns_added: int = 0
    already_migrated: bool = False

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RollbackResult:
    suggestions_restored: int = 0
    reviewed_recorded: int = 0
    columns_dropped: int = 0
    already_rolled_back: bool = False

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _operations(connection: Connection, operations: Any = None) -> Any:
    """Use the running Alembic ``op`` when given, else bind one to ``connection``."""
    if operations is not None:
        return operations
    return Operations(MigrationContext.configure(connection))


def _has_table(connection: Connection, table: str) -> bool:
    return sa.inspect(connection).has_table(table)


def _has_column(connection: Connection, table: str, column: str) -> bool:
    """Check if a column exists in a table (works for both SQLite and PostgreSQL)."""
    return any(c["name"] == column for c in sa.inspect(connection).get_columns(table))


def _add_unified_columns(connection: Connection, ops: Any) -> int:
    added = 0
    if not _has_column(connection, "features", "status"):
        with ops.batch_alter_table("features") as batch_op:
            batch_op.add_column(sa.Column("status", sa.Text(), server_default="active"))
        added += 1

    if not _has_column(connection, "features", "transcript_id"):
        # FK added as its own constraint so PostgreSQL gets ALTER ... ADD CONSTRAINT
        # and SQLite rebuilds the table with it
        with ops.batch_alter_table("features") as batch_op:
            batch_op.add_column(sa.Column("transcript_id", sa.Integer(), nullable=True))
            batch_op.create_foreign_key(
                TRANSCRIPT_FK_NAME,
                "transcripts",
                ["transcript_id"],
                ["id"],
                ondelete="SET NULL",
            )
        added += 1

    if not _has_column(connection, "features", "pain_points_count"):
        with ops.batch_alter_table("features") as batch_op:
            batch_op.add_column(sa.Column("pain_points_count", sa.Integer(), nullable=True))
        added += 1

    return added


REVIEWED_STATUSES = {"approved": "active", "archived": "archived"}


def _relink_reviewed_suggestions(connection: Connection) -> int:
    """Give suggestion rows without an origin the first matching reviewed legacy row.

    These are the rows the copy step skipped because the feature already
    existed, such as suggestions reviewed before a rollback.
    """
    candidates = connection.execute(
        sa.text(
            """
            SELECT f.id AS feature_id, tfs.transcript_id, tfs.pain_points_count, tfs.status
            FROM features f
            JOIN transcripts t ON t.user_id = f.user_id
            JOIN transcript_feature_suggestions tfs
              ON tfs.transcript_id = t.id AND tfs.feature_name = f.feature_name
            WHERE f.is_suggestion = :is_suggestion
              AND f.transcript_id IS NULL
              AND tfs.status IN ('approved', 'archived')
            ORDER BY tfs.id
            """
        ),
        {"is_suggestion": True},
    ).fetchall()

    linked = set()
    for row in candidates:
        if row.feature_id in linked:
            continue
        connection.execute(
            sa.text(
                "UPDATE features SET transcript_id = :transcript_id, pain_points_count = :count, status = :status "
                "WHERE id = :id"
            ),
            {
                "transcript_id": row.transcript_id,
                "count": row.pain_points_count,
                "status": REVIEWED_STATUSES[row.status],
                "id": row.feature_id,
            },
        )
        linked.add(row.feature_id)
    return len(linked)


def migrate_feature_suggestions(connection: Connection, operations: Any = None) -> MigrationResult:
    """Fold the legacy suggestion tables into ``features``.

    Safe to run repeatedly: columns are only added when missing, and once the
    legacy tables are gone the data steps are skipped.
    """
    ops = _operations(connection, operations)
    result = MigrationResult()

    logger.info("Step 1: adding status/transcript_id/pain_points_count to features")
    result.columns_added = _add_unified_columns(connection, ops)

    logger.info("Step 2: marking existing features active")
    connection.execute(sa.text("UPDATE features SET status = 'active' WHERE status IS NULL"))

    if not _has_table(connection, LEGACY_SUGGESTIONS_TABLE):
        logger.info("%s does not exist; migration already completed or not needed", LEGACY_SUGGESTIONS_TABLE)
        result.already_migrated = True
        return result

    logger.info("Step 3: copying suggestions into features")
    copied = connection.execute(
        sa.text(
            """
            INSERT INTO features (
                user_id, feature_name, description, status, is_suggestion,
                transcript_id, pain_points_count, created_at, updated_at
            )
            SELECT
                t.user_id,
                tfs.feature_name,
                tfs.ai_summary,
                CASE
                    WHEN tfs.status = 'approved' THEN 'active'
                    WHEN tfs.status = 'archived' THEN 'archived'
                    ELSE 'pending'
                END,
                :is_suggestion,
                tfs.transcript_id,
                tfs.pain_points_count,
                tfs.created_at,
                tfs.created_at
            FROM transcript_feature_suggestions tfs
            JOIN transcripts t ON tfs.transcript_id = t.id
            WHERE NOT EXISTS (
                SELECT 1 FROM features f
                WHERE f.feature_name = tfs.feature_name
                  AND f.user_id = t.user_id
                  AND f.is_suggestion = :is_suggestion
            )
            ORDER BY tfs.id
            """
        ),
        {"is_suggestion": True},
    )
    result.features_migrated = max(copied.rowcount or 0, 0)
    logger.info("Migrated %s feature suggestions", result.features_migrated)

    result.features_relinked = _relink_reviewed_suggestions(connection)
    logger.info("Linked %s existing suggestions to their origin transcript", result.features_relinked)

    logger.info("Step 4: moving suggestion quotes into pain_points")
    quotes = connection.execute(
        sa.text(
            """
            SELECT fsq.quote, fsq.pain_point, tfs.transcript_id, tfs.feature_name
            FROM feature_suggestion_quotes fsq
            JOIN transcript_feature_suggestions tfs ON fsq.suggestion_id = tfs.id
            JOIN transcripts t ON tfs.transcript_id = t.id
            ORDER BY fsq.id
            """
        )
    ).fetchall()

    for quote in quotes:
        pain_point_id = connection.execute(
            sa.text(
                "INSERT INTO pain_points (transcript_id, pain_point, quote) "
                "VALUES (:transcript_id, :pain_point, :quote) RETURNING id"
            ),
            {"transcript_id": quote.transcript_id, "pain_point": quote.pain_point, "quote": quote.quote},
        ).scalar_one()
        connection.execute(
            sa.text("INSERT INTO feature_mappings (pain_point_id, feature_name) VALUES (:pain_point_id, :feature_name)"),
            {"pain_point_id": pain_point_id, "feature_name": quote.feature_name},
        )
    result.quotes_migrated = len(quotes)
    logger.info("Migrated %s quotes to pain_points", result.quotes_migrated)

    logger.info("Step 5: dropping legacy tables")
    ops.drop_table(LEGACY_QUOTES_TABLE)
    ops.drop_table(LEGACY_SUGGESTIONS_TABLE)

    return result


def create_legacy_suggestion_tables(connection: Connection, operations: Any = None) -> None:
    """Create the two legacy suggestion tables if they are absent."""
    ops = _operations(connection, operations)

    if not _has_table(connection, LEGACY_SUGGESTIONS_TABLE):
        ops.create_table(
            LEGACY_SUGGESTIONS_TABLE,
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("transcript_id", sa.Integer(), sa.ForeignKey("transcripts.id", ondelete="CASCADE")),
            sa.Column("feature_name", sa.Text(), nullable=False),
            sa.Column("ai_summary", sa.Text(), nullable=False),
            sa.Column("status", sa.Text(), server_default="pending"),
            sa.Column("pain_points_count", sa.Integer(), server_default="1"),
            sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        )
        ops.create_index(
            "idx_transcript_feature_suggestions_transcript_id",
            LEGACY_SUGGESTIONS_TABLE,
            ["transcript_id"],
        )

    if not _has_table(connection, LEGACY_QUOTES_TABLE):
        ops.create_table(
            LEGACY_QUOTES_TABLE,
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column(
                "suggestion_id",
                sa.Integer(),
                sa.ForeignKey(f"{LEGACY_SUGGESTIONS_TABLE}.id", ondelete="CASCADE"),
            ),
            sa.Column("quote", sa.Text(), nullable=False),
            sa.Column("pain_point", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        )
        ops.create_index(
            "idx_feature_suggestion_quotes_suggestion_id",
            LEGACY_QUOTES_TABLE,
            ["suggestion_id"],
        )


def rollback_feature_suggestions(connection: Connection, operations: Any = None) -> RollbackResult:
    """Move pending AI suggestions back into the legacy tables.

    Recreates the legacy tables, copies every pending suggestion that still
    has an origin transcript back, deletes those rows from ``features`` and
    drops the columns the migration added. Quotes stay in ``pain_points``.
    """
    ops = _operations(connection, operations)
    result = RollbackResult()

    if not _has_column(connection, "features", "status"):
        logger.info("features.status does not exist; rollback already completed or not needed")
        create_legacy_suggestion_tables(connection, ops)
        result.already_rolled_back = True
        return result

    logger.info("Recreating legacy suggestion tables")
    create_legacy_suggestion_tables(connection, ops)

    restored = connection.execute(
        sa.text(
            """
            INSERT INTO transcript_feature_suggestions (
                transcript_id, feature_name, ai_summary, status, pain_points_count, created_at
            )
            SELECT
                transcript_id,
                feature_name,
                COALESCE(description, ''),
                status,
                pain_points_count,
                created_at
            FROM features
            WHERE status = 'pending' AND is_suggestion = :is_suggestion AND transcript_id IS NOT NULL
            ORDER BY id
            """
        ),
        {"is_suggestion": True},
    )
    result.suggestions_restored = max(restored.rowcount or 0, 0)

    connection.execute(
        sa.text(
            "DELETE FROM features "
            "WHERE status = 'pending' AND is_suggestion = :is_suggestion AND transcript_id IS NOT NULL"
        ),
        {"is_suggestion": True},
    )
    logger.info("Moved %s pending suggestions back to %s", result.suggestions_restored, LEGACY_SUGGESTIONS_TABLE)

    reviewed = connection.execute(
        sa.text(
            """
            INSERT INTO transcript_feature_suggestions (
                transcript_id, feature_name, ai_summary, status, pain_points_count, created_at
            )
            SELECT
                transcript_id,
                feature_name,
                COALESCE(description, ''),
                CASE WHEN status = 'active' THEN 'approved' ELSE status END,
                pain_points_count,
                created_at
            FROM features
            WHERE status <> 'pending' AND is_suggestion = :is_suggestion AND transcript_id IS NOT NULL
            ORDER BY id
            """
        ),
        {"is_suggestion": True},
    )
    result.reviewed_recorded = max(reviewed.rowcount or 0, 0)
    logger.info("Recorded origin of %s reviewed suggestions in %s", result.reviewed_recorded, LEGACY_SUGGESTIONS_TABLE)

    present = [c for c in UNIFIED_COLUMNS if _has_column(connection, "features", c)]
    with ops.batch_alter_table("features") as batch_op:
        for column in present:
            batch_op.drop_column(column)
    result.columns_dropped = len(present)

    return result
