from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

import pytest

from daedlib.clients import QuerySource, TableSource
from daedlib.errors import QueryError
from daedlib.registry import ConnectionRegistry, ProfileInputs
from daedlib.vault import CredentialVault


@pytest.fixture(autouse=True)
def daedalus_home(tmp_path, monkeypatch) -> Path:
    """Keep every test away from the real ~/.daedalus-cli and XDG settings."""
    home = tmp_path / "home"
    monkeypatch.setenv("DAEDALUS_HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("XDG_CONFIG_DIRS", str(tmp_path / "xdg-dirs"))
    monkeypatch.delenv("DAEDALUS_CONFIG", raising=False)
    return home


@pytest.fixture
def vault(daedalus_home) -> CredentialVault:
    v = CredentialVault(daedalus_home / "key.bin")
    v.initialize()
    return v


@pytest.fixture
def registry(daedalus_home, vault) -> ConnectionRegistry:
    return ConnectionRegistry(daedalus_home / "config.json", vault)


@pytest.fixture
def saved_registry(registry) -> ConnectionRegistry:
    registry.add(ProfileInputs(host="h", port=5432, database="d", username="u", password="p", name="mydb"))
    return registry


def make_rows(count: int, width: int = 2) -> List[List[str]]:
    return [[str(i)] + [f"r{i}c{c}" for c in range(1, width)] for i in range(count)]


class FakeConnection:
    def __init__(self, database: str) -> None:
        self.database = database
        self.closed = False


class FakeDriver:
    """In-memory stand-in for daedlib.clients."""

    def __init__(self) -> None:
        self.tables: Dict[str, Tuple[Sequence[str], Sequence[Sequence[str]]]] = {}
        self.queries: Dict[str, object] = {}
        self.connect_error: Optional[Exception] = None
        self.fail_offsets: Set[int] = set()
        self.gates: Dict[tuple, asyncio.Event] = {}
        self.calls: List[tuple] = []
        self.closed: List[FakeConnection] = []

    async def connect(self, host, port, database, username, password, timeout=10):
        self.calls.append(("connect", host, port, database, username, password))
        if self.connect_error is not None:
            raise self.connect_error
        return FakeConnection(database)

    async def list_tables(self, conn):
        return sorted(self.tables)

    async def count_rows(self, conn, table):
        if table not in self.tables:
            return None
        return len(self.tables[table][1])

    async def close(self, conn):
        conn.closed = True
        self.closed.append(conn)

    async def fetch_page(self, conn, source, limit, offset):
        self.calls.append(("fetch_page", source, limit, offset))
        gate = self.gates.get((source, offset))
        if gate is not None:
            await gate.wait()
        if offset in self.fail_offsets:
            raise QueryError("server closed the connection unexpectedly")

        if isinstance(source, TableSource):
            if source.table not in self.tables:
                raise QueryError(f'relation "{source.table}" does not exist')
            columns, rows = self.tables[source.table]
        else:
            assert isinstance(source, QuerySource)
            result = self.queries.get(source.sql)
            if result is None:
                raise QueryError(f'syntax error at or near "{source.sql.split()[0]}"')
            if isinstance(result, Exception):
                raise result
            columns, rows = result
        return list(columns), [list(r) for r in rows[offset:offset + limit]]


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()
