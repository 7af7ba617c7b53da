"""
Declarative schema for the time-tracker live store.

SchemaInitializer applies the full target schema with CREATE ... IF NOT
EXISTS statements on every startup. On a fresh database this produces the
current schema directly; on an existing database it only adds tables and
indexes that are missing. Columns introduced after a table was first
shipped are added by the migration runner, not here.

Invariants:
    - Every statement is CREATE ... IF NOT EXISTS (re-running is a no-op)
    - Indexes declared here reference only columns present in every
      historical revision of their table
    - Must run before MigrationRunner

How to change safely:
    - New table: add it to TABLES (and a migration step if it needs a backfill)
    - New column on an existing table: add it to the CREATE TABLE below AND
      add a migration step that ALTERs older databases
    - Index on a new column: create it in the migration step, not in INDEXES

Table schema (abridged):
    users(id, name, email UNIQUE, password_hash, is_admin, created_at)
    user_invitations(id, user_id -> users, token_hash, expires_at, used_at)
    projects(id, user_id -> users, name, created_at, updated_at)
    project_members(id, project_id -> projects, user_id -> users, added_by_user_id)
    project_settings(id, project_id -> projects, key, value)
    settings(id, key UNIQUE, value, user_id, project_id)
    tasks(id, user_id, project_id, title, type, status, external_id,
          external_source, display_order, completed_at, created_at)
    time_entries(id, task_id -> tasks, date, hours, UNIQUE(task_id, date))
    day_offs(id, date UNIQUE, description)
    blockers(id, user_id, project_id, task_id -> tasks, comment, severity, ...)
    checklist_items(id, user_id, project_id, task_id -> tasks, title, ...)
    releases(id, user_id, project_id, name, start_date, end_date, status, ...)
    release_work_items(id, user_id, project_id, release_id -> releases, ...)
    release_work_item_children(id, project_id, parent_external_id,
                               child_external_id, ...)
"""

from __future__ import annotations

import logging

from .connection import LiveStore

logger = logging.getLogger(__name__)

TABLES: dict[str, str] = {
    "users": """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT,
            is_admin INTEGER NOT NULL DEFAULT 0,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            CHECK(is_admin IN (0, 1))
        )
    """,
    "user_invitations": """
        CREATE TABLE IF NOT EXISTS user_invitations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            token_hash TEXT NOT NULL UNIQUE,
            expires_at INTEGER NOT NULL,
            used_at INTEGER,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
        )
    """,
    "projects": """
        CREATE TABLE IF NOT EXISTS projects (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
        )
    """,
    "project_members": """
        CREATE TABLE IF NOT EXISTS project_members (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            project_id INTEGER NOT NULL,
            user_id INTEGER NOT NULL,
            added_by_user_id INTEGER,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
            UNIQUE(project_id, user_id)
        )
    """,
    "settings": """
        CREATE TABLE IF NOT EXISTS settings (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            key TEXT NOT NULL UNIQUE,
            value TEXT NOT NULL,
            user_id INTEGER,
            project_id INTEGER,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "tasks": """
        CREATE TABLE IF NOT EXISTS tasks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL DEFAULT 1,
            project_id INTEGER,
            title TEXT NOT NULL,
            type TEXT NOT NULL DEFAULT 'task',
            status TEXT NOT NULL DEFAULT 'todo',
            external_id TEXT,
            external_source TEXT,
            display_order INTEGER,
            completed_at DATETIME,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            CHECK(type IN ('task', 'bug'))
        )
    """,
    "time_entries": """
        CREATE TABLE IF NOT EXISTS time_entries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            task_id INTEGER NOT NULL,
            date TEXT NOT NULL,
            hours REAL NOT NULL DEFAULT 0,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE,
            UNIQUE(task_id, date)
        )
    """,
    "day_offs": """
        CREATE TABLE IF NOT EXISTS day_offs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            date TEXT NOT NULL UNIQUE,
            description TEXT,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "blockers": """
        CREATE TABLE IF NOT EXISTS blockers (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            project_id INTEGER,
            task_id INTEGER NOT NULL,
            comment TEXT NOT NULL,
            severity TEXT NOT NULL DEFAULT 'medium',
            is_resolved INTEGER NOT NULL DEFAULT 0,
            resolved_at DATETIME,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE,
            CHECK(severity IN ('low', 'medium', 'high', 'critical'))
        )
    """,
    "checklist_items": """
        CREATE TABLE IF NOT EXISTS checklist_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            project_id INTEGER,
            task_id INTEGER NOT NULL,
            title TEXT NOT NULL,
            is_completed INTEGER NOT NULL DEFAULT 0,
            display_order INTEGER NOT NULL DEFAULT 0,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE
        )
    """,
    "releases": """
        CREATE TABLE IF NOT EXISTS releases (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            project_id INTEGER,
            name TEXT NOT NULL,
            start_date TEXT NOT NULL,
            end_date TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'active',
            display_order INTEGER,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "release_work_items": """
        CREATE TABLE IF NOT EXISTS release_work_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            project_id INTEGER,
            release_id INTEGER NOT NULL,
            task_id INTEGER,
            title TEXT NOT NULL,
            external_id TEXT,
            external_source TEXT,
            work_item_type TEXT,
            state TEXT,
            tags TEXT,
            display_order INTEGER NOT NULL DEFAULT 0,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (release_id) REFERENCES releases(id) ON DELETE CASCADE
        )
    """,
    "release_work_item_children": """
        CREATE TABLE IF NOT EXISTS release_work_item_children (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            project_id INTEGER NOT NULL,
            parent_external_id INTEGER NOT NULL,
            child_external_id INTEGER NOT NULL,
            title TEXT NOT NULL,
            work_item_type TEXT,
            state TEXT,
            assigned_to TEXT,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(project_id, child_external_id)
        )
    """,
}

# Indexes over columns every revision of the table has had
INDEXES: tuple[str, ...] = (
    "CREATE INDEX IF NOT EXISTS idx_type ON tasks(type)",
    "CREATE INDEX IF NOT EXISTS idx_created_at ON tasks(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_external_id ON tasks(external_id)",
    "CREATE INDEX IF NOT EXISTS idx_date ON time_entries(date)",
    "CREATE INDEX IF NOT EXISTS idx_task_date ON time_entries(task_id, date)",
    "CREATE INDEX IF NOT EXISTS idx_dayoff_date ON day_offs(date)",
    "CREATE INDEX IF NOT EXISTS idx_invitations_user ON user_invitations(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_projects_user ON projects(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_project_members_user ON project_members(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_blockers_task ON blockers(task_id)",
    "CREATE INDEX IF NOT EXISTS idx_checklist_task ON checklist_items(task_id)",
    "CREATE INDEX IF NOT EXISTS idx_work_items_release ON release_work_items(release_id)",
    "CREATE INDEX IF NOT EXISTS idx_work_item_children_parent "
    "ON release_work_item_children(project_id, parent_external_id)",
)


class SchemaInitializer:
    """Applies the declarative target schema to the live store.

    Example:
        >>> SchemaInitializer(store).initialize()
    """

    def __init__(self, store: LiveStore) -> None:
        self.store = store

    def initialize(self) -> None:
        """Create every missing table and index.

        Runs in one transaction so a crash never leaves half the tables
        created.
        """
        with self.store.transaction() as conn:
            for ddl in TABLES.values():
                conn.execute(ddl)
            for ddl in INDEXES:
                conn.execute(ddl)

        logger.info(
            "Schema initialized",
            extra={"tables": len(TABLES), "indexes": len(INDEXES)},
        )
