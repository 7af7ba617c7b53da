"""
Additive schema migrations for the live store.

Databases created by older releases are missing columns, tables and
indexes that the current application expects. Each MigrationStep inspects
the live schema and applies its change only when the change is missing.
There is no version stamp; the schema itself is the source of truth.

Invariants:
    - Steps are additive only (ADD COLUMN, CREATE TABLE/INDEX, backfills)
    - A step that finds nothing to do issues no write statements
    - A failing step is rolled back, logged, and does not stop later steps
    - Backfills run in the same transaction as the column they fill

How to change safely:
    - Append new steps to DEFAULT_STEPS; never reorder existing ones
    - Guard every write with an introspection check
    - Give new NOT NULL columns a DEFAULT so ADD COLUMN succeeds on old rows
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from .connection import LiveStore

logger = logging.getLogger(__name__)

# Settings keys of the work-item integration, copied per project
PROJECT_SETTING_KEY_PREFIX = "azure_devops"


@dataclass(frozen=True)
class MigrationStep:
    """A single additive schema change.

    Attributes:
        name: Stable step name used in logs and reports
        run: Callable that inspects the store and applies the change if
            needed. Returns True when anything was written.
    """

    name: str
    run: Callable[[LiveStore], bool]


@dataclass
class MigrationReport:
    """Outcome of one migration pass.

    Attributes:
        applied: Names of steps that changed the schema or data
        failed: Step name -> error message for steps that raised
    """

    applied: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {"applied": list(self.applied), "failed": dict(self.failed)}


def _missing_column(store: LiveStore, table: str, column: str) -> bool:
    return store.has_table(table) and column not in store.column_names(table)


def _add_column(conn: sqlite3.Connection, table: str, definition: str) -> None:
    conn.execute(f"ALTER TABLE {table} ADD COLUMN {definition}")


def _create_index(store: LiveStore, name: str, ddl: str) -> bool:
    if store.has_index(name):
        return False
    with store.transaction() as conn:
        conn.execute(ddl)
    return True


# --- tasks ---


def migrate_tasks_user_id(store: LiveStore) -> bool:
    changed = False
    if _missing_column(store, "tasks", "user_id"):
        with store.transaction() as conn:
            _add_column(conn, "tasks", "user_id INTEGER NOT NULL DEFAULT 1")
        changed = True
    return _create_index(
        store, "idx_tasks_user", "CREATE INDEX idx_tasks_user ON tasks(user_id)"
    ) or changed


def migrate_tasks_project_id(store: LiveStore) -> bool:
    changed = False
    if _missing_column(store, "tasks", "project_id"):
        with store.transaction() as conn:
            _add_column(conn, "tasks", "project_id INTEGER")
            # Existing tasks belong to their owner's first project
            conn.execute(
                "UPDATE tasks SET project_id = "
                "(SELECT MIN(p.id) FROM projects p WHERE p.user_id = tasks.user_id) "
                "WHERE project_id IS NULL"
            )
        changed = True
    return _create_index(
        store,
        "idx_tasks_project",
        "CREATE INDEX idx_tasks_project ON tasks(project_id)",
    ) or changed


def migrate_tasks_status(store: LiveStore) -> bool:
    if not _missing_column(store, "tasks", "status"):
        return False
    with store.transaction() as conn:
        _add_column(conn, "tasks", "status TEXT NOT NULL DEFAULT 'todo'")
    return True


def migrate_tasks_completed_at(store: LiveStore) -> bool:
    if not _missing_column(store, "tasks", "completed_at"):
        return False
    with store.transaction() as conn:
        _add_column(conn, "tasks", "completed_at DATETIME")
    return True


def migrate_tasks_display_order(store: LiveStore) -> bool:
    changed = False
    if _missing_column(store, "tasks", "display_order"):
        with store.transaction() as conn:
            _add_column(conn, "tasks", "display_order INTEGER")
            # Zero-based position in creation order within (user, project)
            conn.execute(
                "UPDATE tasks SET display_order = ("
                "SELECT COUNT(*) FROM tasks t2 "
                "WHERE t2.user_id = tasks.user_id "
                "AND t2.project_id IS tasks.project_id "
                "AND (t2.created_at < tasks.created_at "
                "OR (t2.created_at IS tasks.created_at AND t2.id < tasks.id)))"
            )
        changed = True
    return _create_index(
        store,
        "idx_tasks_display_order",
        "CREATE INDEX idx_tasks_display_order ON tasks(user_id, project_id, display_order)",
    ) or changed


# --- users ---


def migrate_users_password_hash(store: LiveStore) -> bool:
    if not _missing_column(store, "users", "password_hash"):
        return False
    with store.transaction() as conn:
        _add_column(conn, "users", "password_hash TEXT")
    return True


def migrate_users_is_admin(store: LiveStore) -> bool:
    if not _missing_column(store, "users", "is_admin"):
        return False
    with store.transaction() as conn:
        _add_column(conn, "users", "is_admin INTEGER NOT NULL DEFAULT 0")
        conn.execute("UPDATE users SET is_admin = 1 WHERE id = (SELECT MIN(id) FROM users)")
    return True


# --- settings and projects ---


def migrate_settings_scope(store: LiveStore) -> bool:
    added = [
        column
        for column in ("user_id", "project_id")
        if _missing_column(store, "settings", column)
    ]
    if not added:
        return False
    with store.transaction() as conn:
        for column in added:
            _add_column(conn, "settings", f"{column} INTEGER")
    return True


def backfill_project_owners(store: LiveStore) -> bool:
    """Every project owner is a member of their own project."""
    if not (store.has_table("projects") and store.has_table("project_members")):
        return False

    orphan_query = (
        "FROM projects p WHERE NOT EXISTS ("
        "SELECT 1 FROM project_members m "
        "WHERE m.project_id = p.id AND m.user_id = p.user_id)"
    )
    with store.locked() as conn:
        if conn.execute(f"SELECT 1 {orphan_query} LIMIT 1").fetchone() is None:
            return False
        with store.transaction() as tx:
            tx.execute(
                "INSERT INTO project_members (project_id, user_id, added_by_user_id) "
                f"SELECT p.id, p.user_id, p.user_id {orphan_query}"
            )
    return True


def create_project_settings(store: LiveStore) -> bool:
    """Create per-project settings and seed them from the global settings."""
    if store.has_table("project_settings"):
        return False

    with store.transaction() as conn:
        conn.execute(
            """
            CREATE TABLE project_settings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id INTEGER NOT NULL,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE,
                UNIQUE(project_id, key)
            )
            """
        )
        conn.execute(
            "CREATE INDEX idx_project_settings_project ON project_settings(project_id)"
        )
        conn.execute(
            "INSERT OR IGNORE INTO project_settings (project_id, key, value) "
            "SELECT p.id, s.key, s.value FROM projects p "
            "JOIN settings s ON s.key LIKE ? ESCAPE '\\' "
            "AND (s.user_id IS NULL OR s.user_id = p.user_id)",
            (PROJECT_SETTING_KEY_PREFIX.replace("_", "\\_") + "%",),
        )
    return True


def migrate_checklist_display_order(store: LiveStore) -> bool:
    if not _missing_column(store, "checklist_items", "display_order"):
        return False
    with store.transaction() as conn:
        _add_column(conn, "checklist_items", "display_order INTEGER NOT NULL DEFAULT 0")
        conn.execute(
            "UPDATE checklist_items SET display_order = ("
            "SELECT COUNT(*) FROM checklist_items c2 "
            "WHERE c2.task_id = checklist_items.task_id AND c2.id < checklist_items.id)"
        )
    return True


# --- releases ---


def migrate_releases(store: LiveStore) -> bool:
    changed = False

    if _missing_column(store, "releases", "project_id"):
        with store.transaction() as conn:
            _add_column(conn, "releases", "project_id INTEGER")
            conn.execute(
                "UPDATE releases SET project_id = "
                "(SELECT MIN(p.id) FROM projects p WHERE p.user_id = releases.user_id) "
                "WHERE project_id IS NULL"
            )
        changed = True

    if _missing_column(store, "releases", "status"):
        with store.transaction() as conn:
            _add_column(conn, "releases", "status TEXT NOT NULL DEFAULT 'active'")
        changed = True

    if _missing_column(store, "releases", "display_order"):
        with store.transaction() as conn:
            _add_column(conn, "releases", "display_order INTEGER")
            conn.execute(
                "UPDATE releases SET display_order = ("
                "SELECT COUNT(*) FROM releases r2 "
                "WHERE r2.user_id = releases.user_id "
                "AND r2.project_id IS releases.project_id "
                "AND (r2.start_date < releases.start_date "
                "OR (r2.start_date = releases.start_date AND r2.id < releases.id)))"
            )
        changed = True

    return changed


def migrate_release_work_items(store: LiveStore) -> bool:
    changed = False

    if _missing_column(store, "release_work_items", "project_id"):
        with store.transaction() as conn:
            _add_column(conn, "release_work_items", "project_id INTEGER")
            conn.execute(
                "UPDATE release_work_items SET project_id = "
                "(SELECT r.project_id FROM releases r "
                "WHERE r.id = release_work_items.release_id) "
                "WHERE project_id IS NULL"
            )
        changed = True

    if _missing_column(store, "release_work_items", "task_id"):
        with store.transaction() as conn:
            _add_column(conn, "release_work_items", "task_id INTEGER")
        changed = True

    return changed


# --- housekeeping ---


def purge_expired_invitations(store: LiveStore) -> bool:
    """Delete invitation tokens whose expiry has passed."""
    if not store.has_table("user_invitations"):
        return False

    condition = "expires_at <= CAST(strftime('%s', 'now') AS INTEGER)"
    with store.locked() as conn:
        expired = conn.execute(
            f"SELECT COUNT(*) FROM user_invitations WHERE {condition}"
        ).fetchone()[0]
        if not expired:
            return False
        with store.transaction() as tx:
            tx.execute(f"DELETE FROM user_invitations WHERE {condition}")

    logger.info(f"Purged {expired} expired invitation(s)", extra={"count": expired})
    return True


DEFAULT_STEPS: tuple[MigrationStep, ...] = (
    MigrationStep("tasks.user_id", migrate_tasks_user_id),
    MigrationStep("tasks.project_id", migrate_tasks_project_id),
    MigrationStep("tasks.status", migrate_tasks_status),
    MigrationStep("tasks.completed_at", migrate_tasks_completed_at),
    MigrationStep("tasks.display_order", migrate_tasks_display_order),
    MigrationStep("users.password_hash", migrate_users_password_hash),
    MigrationStep("users.is_admin", migrate_users_is_admin),
    MigrationStep("settings.scope", migrate_settings_scope),
    MigrationStep("project_members.owners", backfill_project_owners),
    MigrationStep("project_settings", create_project_settings),
    MigrationStep("checklist_items.display_order", migrate_checklist_display_order),
    MigrationStep("releases", migrate_releases),
    MigrationStep("release_work_items", migrate_release_work_items),
    MigrationStep("user_invitations.purge_expired", purge_expired_invitations),
)


class MigrationRunner:
    """Runs every migration step against the live store.

    Example:
        >>> report = MigrationRunner(store).run()
        >>> report.failed
        {}
    """

    def __init__(
        self,
        store: LiveStore,
        steps: Sequence[MigrationStep] | None = None,
    ) -> None:
        self.store = store
        self.steps = tuple(steps) if steps is not None else DEFAULT_STEPS

    def run(self) -> MigrationReport:
        """Apply all steps in order.

        Step failures are logged and recorded in the report; the remaining
        steps still run.
        """
        report = MigrationReport()

        for step in self.steps:
            try:
                applied = step.run(self.store)
            except Exception as e:
                logger.error(
                    f"Migration step failed: {step.name}: {e}",
                    exc_info=True,
                    extra={"step": step.name},
                )
                report.failed[step.name] = str(e)
                continue

            if applied:
                logger.info(f"Applied migration step: {step.name}", extra={"step": step.name})
                report.applied.append(step.name)

        logger.info(
            "Migrations complete",
            extra={"applied": len(report.applied), "failed": len(report.failed)},
        )
        return report
