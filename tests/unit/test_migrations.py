"""
Unit tests for additive schema migrations.

Tests cover:
- Legacy database brought to the current schema with backfills
- Second run applies nothing and issues no write statements
- A failing step does not stop later steps
- Expired invitation purge
"""

import pytest

from tracker.datastore.store import (
    LiveStore,
    MigrationRunner,
    MigrationStep,
    SchemaInitializer,
)
from tracker.datastore.store.migrations import DEFAULT_STEPS

WRITE_PREFIXES = ("INSERT", "UPDATE", "DELETE", "REPLACE", "ALTER", "CREATE", "DROP")


@pytest.fixture
def legacy_store(data_dir, legacy_database):
    """Live store opened on a legacy database with the schema applied."""
    db_path = legacy_database(data_dir / "time_tracker.db")
    store = LiveStore(db_path, wal_mode=False)
    store.open()
    SchemaInitializer(store).initialize()
    yield store
    store.close()


def _rows(store, sql):
    return [tuple(row) for row in store.execute(sql)]


class TestLegacyMigration:
    """Tests for migrating a legacy database."""

    @pytest.fixture
    def report(self, legacy_store):
        return MigrationRunner(legacy_store).run()

    def test_all_steps_succeed(self, report):
        assert report.ok
        assert report.failed == {}

    def test_tasks_columns(self, legacy_store, report):
        columns = legacy_store.column_names("tasks")

        for column in ("user_id", "project_id", "status", "completed_at", "display_order"):
            assert column in columns

    def test_tasks_backfilled(self, legacy_store, report):
        """Tasks get the default owner, the owner's first project and creation order."""
        rows = _rows(
            legacy_store,
            "SELECT id, user_id, project_id, status, display_order FROM tasks ORDER BY id",
        )

        assert rows == [
            (1, 1, 1, "todo", 0),
            (2, 1, 1, "todo", 1),
            (3, 1, 1, "todo", 2),
        ]
        assert legacy_store.has_index("idx_tasks_display_order")

    def test_first_user_promoted(self, legacy_store, report):
        rows = _rows(legacy_store, "SELECT id, is_admin, password_hash FROM users ORDER BY id")

        assert rows == [(1, 1, None), (2, 0, None)]

    def test_settings_scoped(self, legacy_store, report):
        columns = legacy_store.column_names("settings")

        assert "user_id" in columns
        assert "project_id" in columns

    def test_project_owners_are_members(self, legacy_store, report):
        rows = _rows(
            legacy_store,
            "SELECT project_id, user_id FROM project_members ORDER BY project_id",
        )

        assert rows == [(1, 1), (2, 1), (3, 2)]

    def test_project_settings_seeded(self, legacy_store, report):
        """Integration keys are copied to every project; other keys are not."""
        rows = _rows(
            legacy_store,
            "SELECT project_id, key, value FROM project_settings ORDER BY project_id, key",
        )

        assert len(rows) == 6
        assert (1, "azure_devops_org", "contoso") in rows
        assert (3, "azure_devops_project", "Tracker") in rows
        assert all(key != "theme" for _, key, _ in rows)

    def test_checklist_order(self, legacy_store, report):
        rows = _rows(legacy_store, "SELECT title, display_order FROM checklist_items ORDER BY id")

        assert rows == [("Outline", 0), ("Draft", 1)]

    def test_releases_backfilled(self, legacy_store, report):
        """Releases are ordered by start date within the owner's project."""
        rows = _rows(
            legacy_store,
            "SELECT id, project_id, status, display_order FROM releases ORDER BY id",
        )

        assert rows == [(1, 1, "active", 1), (2, 1, "active", 0)]

    def test_release_work_items_backfilled(self, legacy_store, report):
        rows = _rows(legacy_store, "SELECT project_id, task_id FROM release_work_items")

        assert rows == [(1, None)]

    def test_expired_invitations_purged(self, legacy_store, report):
        rows = _rows(legacy_store, "SELECT token_hash FROM user_invitations")

        assert rows == [("pending",)]

    def test_data_preserved(self, legacy_store, report):
        assert _rows(legacy_store, "SELECT COUNT(*) FROM time_entries") == [(2,)]
        assert _rows(legacy_store, "SELECT description FROM day_offs") == [("Christmas",)]

    def test_foreign_keys_consistent(self, legacy_store, report):
        assert _rows(legacy_store, "PRAGMA foreign_key_check") == []


class TestMigrationIdempotence:
    """Re-running migrations against an up-to-date schema."""

    @pytest.mark.parametrize("source", ["fresh", "legacy"])
    def test_second_run_issues_no_writes(self, request, source):
        """Only introspection reads happen once the schema is current."""
        store = request.getfixturevalue("initialized_store" if source == "fresh" else "legacy_store")
        MigrationRunner(store).run()
        before = store.schema_dump()

        statements: list[str] = []
        with store.locked() as conn:
            conn.set_trace_callback(statements.append)
        try:
            report = MigrationRunner(store).run()
        finally:
            with store.locked() as conn:
                conn.set_trace_callback(None)

        writes = [s for s in statements if s.lstrip().upper().startswith(WRITE_PREFIXES)]
        assert writes == []
        assert report.applied == []
        assert statements
        assert store.schema_dump() == before

    def test_fresh_schema_applies_only_late_indexes(self, store):
        """A new database already has every column; only indexes and tables are added."""
        SchemaInitializer(store).initialize()
        report = MigrationRunner(store).run()

        assert report.ok
        assert "users.is_admin" not in report.applied
        assert "project_settings" in report.applied
        assert store.has_index("idx_tasks_project")


class TestMigrationIsolation:
    """A failing step is reported and later steps still run."""

    def test_failure_does_not_stop_later_steps(self, initialized_store):
        calls: list[str] = []

        def broken(store):
            calls.append("broken")
            with store.transaction() as conn:
                conn.execute("CREATE TABLE half_done (x INTEGER)")
                conn.execute("ALTER TABLE missing_table ADD COLUMN y INTEGER")
            return True

        def later(store):
            calls.append("later")
            return False

        report = MigrationRunner(
            initialized_store,
            steps=[MigrationStep("broken", broken), MigrationStep("later", later)],
        ).run()

        assert calls == ["broken", "later"]
        assert "broken" in report.failed
        assert not report.ok
        assert not initialized_store.has_table("half_done")

    def test_report_to_dict(self, initialized_store):
        def broken(store):
            raise RuntimeError("disk on fire")

        report = MigrationRunner(
            initialized_store,
            steps=[
                MigrationStep("noop", lambda store: False),
                MigrationStep("touch", lambda store: True),
                MigrationStep("broken", broken),
            ],
        ).run()

        assert report.to_dict() == {
            "applied": ["touch"],
            "failed": {"broken": "disk on fire"},
        }

    def test_default_step_names_unique(self):
        names = [step.name for step in DEFAULT_STEPS]

        assert len(names) == len(set(names))
        assert names[-1] == "user_invitations.purge_expired"


class TestInvitationPurge:
    """Expired invitation tokens are removed on every run."""

    def test_purges_newly_expired(self, initialized_store):
        store = initialized_store
        store.execute("INSERT INTO users (name, email) VALUES ('Ada', 'ada@example.com')")
        store.execute(
            "INSERT INTO user_invitations (user_id, token_hash, expires_at) VALUES (1, 'old', 1)"
        )

        report = MigrationRunner(store).run()

        assert "user_invitations.purge_expired" in report.applied
        assert store.execute("SELECT COUNT(*) FROM user_invitations")[0][0] == 0
