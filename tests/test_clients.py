from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from daedlib import clients
from daedlib.clients import QuerySource, TableSource


class RecordingCursor:
    def __init__(self, columns, rows):
        self.description = [SimpleNamespace(name=c) for c in columns]
        self.rows = rows
        self.executed = []
        self.statusmessage = None
        self.rowcount = -1

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, query):
        self.executed.append(query.as_string(None))

    async def fetchall(self):
        return self.rows


class RecordingConnection:
    def __init__(self, columns=("?column?",), rows=((1,),)):
        self.cur = RecordingCursor(list(columns), [list(r) for r in rows])

    def cursor(self):
        return self.cur


def _fetch(conn, source, limit=21, offset=0):
    return asyncio.run(clients.fetch_page(conn, source, limit, offset))


@pytest.mark.parametrize(
    "text",
    [
        "select 1 -- one",
        "select 1; -- note",
        "select 1;",
        "select 1\n-- trailing\n",
    ],
)
def test_wrapped_query_survives_trailing_comments(text):
    conn = RecordingConnection()
    columns, rows = _fetch(conn, QuerySource(text))
    assert columns == ["?column?"]
    assert rows == [["1"]]

    (executed,) = conn.cur.executed
    lines = executed.splitlines()
    assert lines[0] == "SELECT * FROM ("
    assert lines[-1].startswith(") AS daedalus_page LIMIT")
    assert "OFFSET" in lines[-1]
    # The user's statement sits on its own lines with no terminator left inside
    inner = "\n".join(lines[1:-1])
    assert inner.lstrip().startswith("select 1")
    assert ";" not in inner


def test_quoted_comment_marker_is_left_alone():
    conn = RecordingConnection()
    _fetch(conn, QuerySource("select 'a; -- b'"))
    assert "select 'a; -- b'" in conn.cur.executed[0]


def test_table_fetch_quotes_identifier():
    conn = RecordingConnection(columns=("id", "payload"), rows=((1, None), (2, b"\x01\xff")))
    columns, rows = _fetch(conn, TableSource("Weird Table"), limit=3, offset=6)
    assert columns == ["id", "payload"]
    assert rows == [["1", "NULL"], ["2", "\\x01ff"]]
    assert '"Weird Table"' in conn.cur.executed[0]


def test_statement_kind():
    assert clients.statement_kind("  (SELECT 1)") == "select"
    assert clients.statement_kind("EXPLAIN select 1") == "explain"
    assert clients.statement_kind("update t set a = 1;") == "update"
    assert clients.statement_kind("   ") == ""
