"""Schema Store tests: legacy suggestion tables folded into ``features`` and back.

Each test builds a file-backed SQLite database at the legacy revision with
Alembic, seeds it with raw SQL the way the old writer stored suggestions,
then drives ``migrate_schema`` / ``rollback_schema`` / the admin CLI.
"""

import pytest
import sqlalchemy as sa

from interview_analyzer.db_bootstrap import (
    LEGACY_REVISION,
    _alembic_config,
    main,
    migrate_schema,
    rollback_schema,
)
from interview_analyzer.db_config import create_engine_for_url
from interview_analyzer.exceptions import MigrationError
from interview_analyzer.schema_store import migrate_feature_suggestions

pytestmark = [pytest.mark.integration]

LEGACY_ROWS = [
    "INSERT INTO transcripts (id, user_id, transcript_text, summary) VALUES "
    "(1, 'default', 'first call', 'First'), (2, 'default', 'second call', NULL)",
    "INSERT INTO features (user_id, feature_name, description) VALUES ('default', 'Dashboard', 'Main dashboard')",
    "INSERT INTO pain_points (id, transcript_id, pain_point, quote) VALUES (1, 1, 'Slow', 'It is slow')",
    "INSERT INTO feature_mappings (pain_point_id, feature_name) VALUES (1, 'Dashboard')",
    "INSERT INTO transcript_feature_suggestions "
    "(id, transcript_id, feature_name, ai_summary, status, pain_points_count, created_at) VALUES "
    "(1, 1, 'Export PDF', 'PDF exports', 'pending', 1, '2024-01-01 10:00:00'), "
    "(2, 1, 'SSO', 'Single sign-on', 'approved', 1, '2024-01-01 10:00:00'), "
    "(3, 2, 'export pdf', 'PDF exports again', 'pending', 2, '2024-02-01 10:00:00')",
    "INSERT INTO feature_suggestion_quotes (suggestion_id, quote, pain_point) VALUES "
    "(1, 'q1', 'p1'), (1, 'q2', 'p2'), (2, 'q3', 'p3'), (3, 'q4', 'p4')",
]


@pytest.fixture()
def legacy_url(request, tmp_path):
    """A SQLite database at the legacy revision, seeded with suggestions and quotes."""
    if request.config.getoption("--backend") != "sqlite":
        pytest.skip("schema store tests build their own SQLite database files")

    from alembic import command

    url = f"sqlite:///{tmp_path / 'legacy.db'}"
    command.upgrade(_alembic_config(url), LEGACY_REVISION)

    engine = create_engine_for_url(url)
    with engine.begin() as conn:
        for statement in LEGACY_ROWS:
            conn.execute(sa.text(statement))
    engine.dispose()
    return url


@pytest.fixture()
def db(legacy_url):
    """Run ad-hoc SQL against the test database; every call opens a fresh connection."""
    engine = create_engine_for_url(legacy_url)

    class _Db:
        def tables(self):
            return set(sa.inspect(engine).get_table_names())

        def columns(self, table):
            return {c["name"] for c in sa.inspect(engine).get_columns(table)}

        def rows(self, sql, **params):
            with engine.connect() as conn:
                return conn.execute(sa.text(sql), params).fetchall()

        def scalar(self, sql, **params):
            with engine.connect() as conn:
                return conn.execute(sa.text(sql), params).scalar()

        def execute(self, sql):
            with engine.begin() as conn:
                conn.execute(sa.text(sql))

    yield _Db()
    engine.dispose()


class TestMigrate:
    def test_migrate_folds_legacy_suggestions_into_features(self, legacy_url, db):
        result = migrate_schema(legacy_url)

        assert result.features_migrated == 3
        assert result.quotes_migrated == 4
        assert result.columns_added == 3
        assert result.already_migrated is False

        assert "transcript_feature_suggestions" not in db.tables()
        assert "feature_suggestion_quotes" not in db.tables()
        assert {"status", "transcript_id", "pain_points_count", "feature_key"} <= db.columns("features")
        assert "is_suggestion" in db.columns("transcript_feature_summaries")

        features = db.rows(
            "SELECT feature_name, feature_key, status, is_suggestion, transcript_id, pain_points_count "
            "FROM features ORDER BY id"
        )
        assert [(f.feature_name, f.status, bool(f.is_suggestion)) for f in features] == [
            ("Dashboard", "active", False),
            ("SSO", "active", True),
            ("export pdf", "pending", True),
        ]
        # Case-variant pending rows collapse onto the most recent one with summed counts
        pending = features[2]
        assert (pending.feature_key, pending.transcript_id, pending.pain_points_count) == ("export pdf", 2, 3)

    def test_migrated_status_column_only_accepts_known_values(self, legacy_url, db):
        migrate_schema(legacy_url)

        with pytest.raises(sa.exc.IntegrityError):
            db.execute("UPDATE features SET status = 'deleted' WHERE feature_name = 'Dashboard'")

        assert db.scalar("SELECT status FROM features WHERE feature_name = 'Dashboard'") == "active"

    def test_migrated_quotes_become_pain_points_with_keys(self, legacy_url, db):
        migrate_schema(legacy_url)

        assert db.scalar("SELECT COUNT(*) FROM pain_points") == 5
        assert db.scalar("SELECT COUNT(*) FROM feature_mappings WHERE feature_key IS NULL") == 0
        mapped = db.rows(
            "SELECT fm.feature_name, fm.feature_key, pp.transcript_id FROM feature_mappings fm "
            "JOIN pain_points pp ON fm.pain_point_id = pp.id WHERE fm.feature_key = 'export pdf' ORDER BY fm.id"
        )
        assert [(m.feature_name, m.transcript_id) for m in mapped] == [
            ("Export PDF", 1),
            ("Export PDF", 1),
            ("export pdf", 2),
        ]

    def test_migrate_is_idempotent(self, legacy_url, db):
        migrate_schema(legacy_url)

        again = migrate_schema(legacy_url)

        assert again.already_migrated is True
        assert (again.features_migrated, again.quotes_migrated) == (0, 0)
        assert db.scalar("SELECT COUNT(*) FROM features") == 3
        assert db.scalar("SELECT COUNT(*) FROM pain_points") == 5

    def test_untracked_legacy_database_is_stamped_first(self, legacy_url, db):
        db.execute("DROP TABLE alembic_version")

        result = migrate_schema(legacy_url)

        assert result.features_migrated == 3
        assert db.scalar("SELECT version_num FROM alembic_version") == "0003_feature_keys"

    def test_failure_leaves_legacy_schema_untouched(self, legacy_url, db):
        db.execute(
            "CREATE TRIGGER fail_pain_point_insert BEFORE INSERT ON pain_points "
            "BEGIN SELECT RAISE(ABORT, 'pain point insert failed'); END"
        )

        with pytest.raises(MigrationError) as exc_info:
            migrate_schema(legacy_url)

        assert exc_info.value.command == "migrate"
        assert "status" not in db.columns("features")
        assert db.scalar("SELECT COUNT(*) FROM features") == 1
        assert db.scalar("SELECT COUNT(*) FROM transcript_feature_suggestions") == 3
        assert db.scalar("SELECT COUNT(*) FROM feature_suggestion_quotes") == 4
        assert db.scalar("SELECT COUNT(*) FROM pain_points") == 1
        assert db.scalar("SELECT version_num FROM alembic_version") == LEGACY_REVISION

    def test_unification_step_rolls_back_with_callers_transaction(self, legacy_url, db):
        db.execute(
            "CREATE TRIGGER fail_pain_point_insert BEFORE INSERT ON pain_points "
            "BEGIN SELECT RAISE(ABORT, 'pain point insert failed'); END"
        )
        engine = create_engine_for_url(legacy_url)
        try:
            with pytest.raises(sa.exc.DBAPIError):
                with engine.begin() as conn:
                    migrate_feature_suggestions(conn)
        finally:
            engine.dispose()

        assert "status" not in db.columns("features")
        assert db.scalar("SELECT COUNT(*) FROM features") == 1
        assert "transcript_feature_suggestions" in db.tables()


class TestRollback:
    def test_rollback_restores_pending_suggestions(self, legacy_url, db):
        migrate_schema(legacy_url)

        result = rollback_schema(legacy_url)

        assert result.suggestions_restored == 1
        assert result.reviewed_recorded == 1
        assert result.columns_dropped == 3
        assert result.already_rolled_back is False
        assert {"status", "transcript_id", "pain_points_count", "feature_key"}.isdisjoint(db.columns("features"))
        assert "feature_key" not in db.columns("feature_mappings")

        restored = db.rows(
            "SELECT transcript_id, feature_name, status, pain_points_count FROM transcript_feature_suggestions ORDER BY id"
        )
        assert [tuple(r) for r in restored] == [(2, "export pdf", "pending", 3), (1, "SSO", "approved", 1)]
        assert [r.feature_name for r in db.rows("SELECT feature_name FROM features ORDER BY id")] == ["Dashboard", "SSO"]
        assert db.scalar("SELECT version_num FROM alembic_version") == LEGACY_REVISION

    def test_migrate_rollback_migrate_round_trip(self, legacy_url, db):
        def feature_rows():
            return [
                tuple(r)
                for r in db.rows(
                    "SELECT user_id, feature_name, feature_key, description, status, is_suggestion, "
                    "transcript_id, pain_points_count, created_at, updated_at FROM features ORDER BY feature_key"
                )
            ]

        migrate_schema(legacy_url)
        before = feature_rows()
        rollback_schema(legacy_url)

        result = migrate_schema(legacy_url)

        assert result.features_migrated == 1
        assert result.features_relinked == 1
        assert result.quotes_migrated == 0
        assert feature_rows() == before
        assert db.scalar("SELECT COUNT(*) FROM feature_mappings WHERE feature_key = 'export pdf'") == 3

    def test_round_trip_keeps_archived_suggestions_archived(self, legacy_url, db):
        migrate_schema(legacy_url)
        db.execute("UPDATE features SET status = 'archived' WHERE feature_name = 'SSO'")
        before = db.rows("SELECT status, transcript_id, pain_points_count FROM features WHERE feature_name = 'SSO'")

        rollback_schema(legacy_url)
        migrate_schema(legacy_url)

        after = db.rows("SELECT status, transcript_id, pain_points_count FROM features WHERE feature_name = 'SSO'")
        assert [tuple(r) for r in after] == [tuple(r) for r in before] == [("archived", 1, 1)]

    def test_rollback_on_legacy_schema_is_a_no_op(self, legacy_url, db):
        result = rollback_schema(legacy_url)

        assert result.already_rolled_back is True
        assert db.scalar("SELECT COUNT(*) FROM transcript_feature_suggestions") == 3


class TestAdminCli:
    def test_migrate_command_reports_counts(self, legacy_url, capsys):
        assert main(["migrate", "--database-url", legacy_url]) == 0

        out = capsys.readouterr().out
        assert "Migrated 3 suggestions and 4 quotes" in out

    def test_second_migrate_reports_nothing_to_do(self, legacy_url, capsys):
        main(["migrate", "--database-url", legacy_url])
        capsys.readouterr()

        assert main(["migrate", "--database-url", legacy_url]) == 0
        assert "Already migrated" in capsys.readouterr().out

    def test_rollback_command_reports_restored_count(self, legacy_url, capsys):
        main(["migrate", "--database-url", legacy_url])

        assert main(["rollback", "--database-url", legacy_url]) == 0
        assert "Restored 1 pending suggestions" in capsys.readouterr().out

    def test_failed_migrate_exits_non_zero(self, legacy_url, db, capsys):
        db.execute(
            "CREATE TRIGGER fail_pain_point_insert BEFORE INSERT ON pain_points "
            "BEGIN SELECT RAISE(ABORT, 'pain point insert failed'); END"
        )

        assert main(["migrate", "--database-url", legacy_url]) == 1
        assert "migrate failed" in capsys.readouterr().out
        assert "status" not in db.columns("features")

    def test_bootstrap_if_missing_creates_head_schema(self, request, tmp_path, capsys):
        if request.config.getoption("--backend") != "sqlite":
            pytest.skip("builds its own SQLite database file")
        url = f"sqlite:///{tmp_path / 'fresh.db'}"

        assert main(["bootstrap-if-missing", "--database-url", url]) == 0
        assert "Database created successfully" in capsys.readouterr().out

        engine = create_engine_for_url(url)
        try:
            inspector = sa.inspect(engine)
            assert "feature_key" in {c["name"] for c in inspector.get_columns("features")}
            assert "transcript_feature_suggestions" not in inspector.get_table_names()
            assert "uq_features_pending_key" in {i["name"] for i in inspector.get_indexes("features")}
        finally:
            engine.dispose()

        assert main(["bootstrap-if-missing", "--database-url", url]) == 0
        assert "Database already has" in capsys.readouterr().out
