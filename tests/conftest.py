"""Shared fixtures: default settings for every test, and a small SQLite database."""

import os
import sqlite3
import tempfile

import pytest

# Keep sessions and logs of the app under test out of the home directory
os.environ.setdefault('SQLPEEK_DATA_DIR', tempfile.mkdtemp(prefix='sqlpeek-tests-'))

from sqlpeek.config import reset_configuration  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_configuration(monkeypatch):
    for name in list(os.environ):
        if name.startswith('SQLPEEK_') and name != 'SQLPEEK_DATA_DIR':
            monkeypatch.delenv(name)
    reset_configuration()
    yield
    reset_configuration()


@pytest.fixture
def temp_db():
    """Create a temporary SQLite database with users, orders and secrets."""
    fd, path = tempfile.mkstemp(suffix='.db')
    os.close(fd)
    with sqlite3.connect(path) as conn:
        conn.execute('CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, email TEXT, password TEXT)')
        conn.execute("INSERT INTO users VALUES (1, 'Alice', 'alice@example.com', 'hunter2')")
        conn.execute("INSERT INTO users VALUES (2, 'Bob', 'bob@example.com', 'swordfish')")
        conn.execute(
            'CREATE TABLE orders (id INTEGER PRIMARY KEY, '
            'user_id INTEGER REFERENCES users(id), total REAL)'
        )
        conn.execute("INSERT INTO orders VALUES (1, 1, 9.5)")
        conn.execute("INSERT INTO orders VALUES (2, 1, 20.0)")
        conn.execute('CREATE TABLE secrets (id INTEGER PRIMARY KEY, value TEXT)')
        conn.execute("INSERT INTO secrets VALUES (1, 'classified')")
    conn.close()
    yield path
    os.unlink(path)
