"""
Tracker Datastore Test Suite.

This package contains:
- unit/: Unit tests (single component against a temporary SQLite file)
- integration/: Integration tests (startup sequence, CLI, HTTP API)
"""
