"""Shared helpers for tests that need a real or stubbed database."""

from contextlib import asynccontextmanager
from typing import Any, List, Optional, Sequence
from unittest.mock import MagicMock

from sqlalchemy import text

from table_fetch.clients.sql import SQLClient


def execute_statements(client: SQLClient, *statements: str) -> None:
    """Run DDL/DML directly on the client's engine."""
    with client.engine.begin() as connection:
        for statement in statements:
            connection.execute(text(statement))


def fetch_ids(client: SQLClient, query: str) -> List[Any]:
    with client.engine.connect() as connection:
        return [row[0] for row in connection.execute(text(query))]


class StubSQLClient(SQLClient):
    """SQL client that answers every count query with a fixed row."""

    def __init__(self, row: Optional[Sequence[Any]] = None, error: Optional[Exception] = None):
        super().__init__()
        self.row = row
        self.error = error
        self.queries: List[str] = []
        self.connections_opened = 0
        self.connections_closed = 0

    @asynccontextmanager
    async def connection(self):
        self.connections_opened += 1
        try:
            yield MagicMock()
        finally:
            self.connections_closed += 1

    async def fetch_one(self, connection, query, timeout=None):
        self.queries.append(query)
        if self.error:
            raise self.error
        return self.row
