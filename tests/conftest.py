"""
Shared fixtures for the tracker datastore tests.

legacy_database builds a database as an early release of the application
left it: tasks without ownership or ordering columns, users without
credentials, no membership or per-project settings tables.
"""

import sqlite3
import tempfile
from pathlib import Path

import pytest

from tracker.datastore.store import LiveStore, MigrationRunner, SchemaInitializer

LEGACY_SCHEMA = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE user_invitations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    token_hash TEXT NOT NULL UNIQUE,
    expires_at INTEGER NOT NULL,
    used_at INTEGER,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);
CREATE TABLE projects (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);
CREATE TABLE settings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    key TEXT NOT NULL UNIQUE,
    value TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE tasks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'task',
    external_id TEXT,
    external_source TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    CHECK(type IN ('task', 'bug'))
);
CREATE TABLE time_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id INTEGER NOT NULL,
    date TEXT NOT NULL,
    hours REAL NOT NULL DEFAULT 0,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE,
    UNIQUE(task_id, date)
);
CREATE TABLE day_offs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    date TEXT NOT NULL UNIQUE,
    description TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE checklist_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    project_id INTEGER,
    task_id INTEGER NOT NULL,
    title TEXT NOT NULL,
    is_completed INTEGER NOT NULL DEFAULT 0,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE
);
CREATE TABLE releases (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    start_date TEXT NOT NULL,
    end_date TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE release_work_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    release_id INTEGER NOT NULL,
    title TEXT NOT NULL,
    external_id TEXT,
    external_source TEXT,
    work_item_type TEXT,
    state TEXT,
    tags TEXT,
    display_order INTEGER NOT NULL DEFAULT 0,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (release_id) REFERENCES releases(id) ON DELETE CASCADE
);
"""

LEGACY_ROWS = """
INSERT INTO users (id, name, email) VALUES (1, 'Ada', 'ada@example.com');
INSERT INTO users (id, name, email) VALUES (2, 'Linus', 'linus@example.com');
INSERT INTO projects (id, user_id, name) VALUES (1, 1, 'Alpha');
INSERT INTO projects (id, user_id, name) VALUES (2, 1, 'Beta');
INSERT INTO projects (id, user_id, name) VALUES (3, 2, 'Gamma');
INSERT INTO settings (key, value) VALUES ('azure_devops_org', 'contoso');
INSERT INTO settings (key, value) VALUES ('azure_devops_project', 'Tracker');
INSERT INTO settings (key, value) VALUES ('theme', 'dark');
INSERT INTO tasks (id, title, type, created_at) VALUES (1, 'Write docs', 'task', '2024-01-01 09:00:00');
INSERT INTO tasks (id, title, type, created_at) VALUES (2, 'Fix login', 'bug', '2024-01-02 09:00:00');
INSERT INTO tasks (id, title, type, created_at) VALUES (3, 'Ship it', 'task', '2024-01-03 09:00:00');
INSERT INTO time_entries (task_id, date, hours) VALUES (1, '2024-01-01', 2.5);
INSERT INTO time_entries (task_id, date, hours) VALUES (2, '2024-01-02', 1.0);
INSERT INTO day_offs (date, description) VALUES ('2024-12-25', 'Christmas');
INSERT INTO checklist_items (user_id, task_id, title) VALUES (1, 1, 'Outline');
INSERT INTO checklist_items (user_id, task_id, title) VALUES (1, 1, 'Draft');
INSERT INTO releases (id, user_id, name, start_date, end_date) VALUES (1, 1, 'R2', '2024-03-01', '2024-03-31');
INSERT INTO releases (id, user_id, name, start_date, end_date) VALUES (2, 1, 'R1', '2024-02-01', '2024-02-29');
INSERT INTO release_work_items (user_id, release_id, title) VALUES (1, 1, 'Login page');
INSERT INTO user_invitations (user_id, token_hash, expires_at) VALUES (2, 'expired', 1000);
INSERT INTO user_invitations (user_id, token_hash, expires_at) VALUES (2, 'pending', 4102444800);
"""


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def legacy_database():
    """Factory writing a legacy-revision database to the given path."""

    def build(path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(path))
        try:
            conn.executescript(LEGACY_SCHEMA)
            conn.executescript(LEGACY_ROWS)
            conn.commit()
        finally:
            conn.close()
        return path

    return build


@pytest.fixture
def store(data_dir):
    """Open live store in the temporary data directory."""
    live = LiveStore(data_dir / "time_tracker.db", wal_mode=False)
    live.open()
    yield live
    live.close()


@pytest.fixture
def initialized_store(data_dir):
    """Live store with the current schema applied."""
    live = LiveStore(data_dir / "time_tracker.db", wal_mode=False)
    live.open()
    SchemaInitializer(live).initialize()
    MigrationRunner(live).run()
    yield live
    live.close()
