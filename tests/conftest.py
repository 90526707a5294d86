"""Shared fixtures: an in-memory stand-in for psycopg2 connections."""

import pytest


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self.closed = False

    def execute(self, query, params=None):
        self.conn.executed.append((" ".join(query.split()), params))

    def fetchone(self):
        return self.conn.rows.pop(0) if self.conn.rows else None

    def fetchall(self):
        rows, self.conn.rows = self.conn.rows, []
        return rows

    def close(self):
        self.closed = True


class FakeConnection:
    """Records executed SQL; fetches return the queued rows in order."""

    def __init__(self, rows=None):
        self.rows = list(rows or [])
        self.executed = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False
        self.autocommit = True

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True


@pytest.fixture
def fake_db():
    """Returns (get_db_connection, connections) where rows are queued via queue()."""
    state = {"rows": [], "connections": []}

    def get_db_connection():
        conn = FakeConnection(state["rows"])
        state["rows"] = []
        state["connections"].append(conn)
        return conn

    def queue(*rows):
        state["rows"].extend(rows)

    get_db_connection.queue = queue
    get_db_connection.connections = state["connections"]
    return get_db_connection
