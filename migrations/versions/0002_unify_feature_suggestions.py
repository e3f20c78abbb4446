"""Unify feature suggestions into the features table.

Adds ``status``, ``transcript_id`` and ``pain_points_count`` to ``features``,
copies rows from ``transcript_feature_suggestions`` /
``feature_suggestion_quotes`` into ``features`` / ``pain_points`` /
``feature_mappings``, then drops the side tables.

The downgrade moves pending suggestions back. It is unsafe once new data has
been written after upgrading (see ``interview_analyzer.schema_store``).

Both directions record their summary counts in ``config.attributes`` so the
admin CLI can report them.
"""

from __future__ import annotations

from alembic import context, op

from interview_analyzer.schema_store import (
    MIGRATION_RESULT_KEY,
    ROLLBACK_RESULT_KEY,
    migrate_feature_suggestions,
    rollback_feature_suggestions,
)


# revision identifiers, used by Alembic.
revision = "0002_unify_feature_suggestions"
down_revision = "0001_legacy_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    result = migrate_feature_suggestions(op.get_bind(), op)
    context.config.attributes[MIGRATION_RESULT_KEY] = result


def downgrade() -> None:
    result = rollback_feature_suggestions(op.get_bind(), op)
    context.config.attributes[ROLLBACK_RESULT_KEY] = result
