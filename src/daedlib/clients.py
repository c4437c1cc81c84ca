"""Async PostgreSQL access used by the paginator, the TUI and ``ping``.

Every function takes or returns a psycopg ``AsyncConnection``. psycopg is
imported lazily so the rest of the library (and its tests) load without it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union

from .errors import DatabaseConnectionError, QueryError

logger = logging.getLogger(__name__)

NULL_TEXT = "NULL"

# Statements that produce rows and can be wrapped in a LIMIT/OFFSET sub-select
_WRAPPABLE = ("select", "with", "values", "table")
# Statements that produce rows but cannot be used as a sub-select
_ROW_RETURNING = ("show", "explain")
# A closing `;`, optionally followed by a line comment without quotes
_TERMINATOR = re.compile(r";\s*(--[^\n']*)?$")


@dataclass(frozen=True)
class TableSource:
    """Browse every row of one table."""

    table: str

    def describe(self) -> str:
        return self.table


@dataclass(frozen=True)
class QuerySource:
    """Page through the result of an ad-hoc statement."""

    sql: str

    def describe(self) -> str:
        return self.sql


PageSource = Union[TableSource, QuerySource]


def statement_kind(sql: str) -> str:
    """Leading keyword of a statement, lower-cased; "" for an empty statement."""
    stripped = sql.strip().lstrip("(").strip()
    if not stripped:
        return ""
    return stripped.split(None, 1)[0].lower().rstrip(";")


def _strip_terminator(sql: str) -> str:
    """Drop a trailing `;`, along with a `--` comment that follows it."""
    return _TERMINATOR.sub("", sql.strip()).strip()


def _cell_text(value: Any) -> str:
    if value is None:
        return NULL_TEXT
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "\\x" + bytes(value).hex()
    return str(value)


def _rows_as_text(rows: Sequence[Sequence[Any]]) -> List[List[str]]:
    return [[_cell_text(v) for v in row] for row in rows]


def _column_names(description: Any) -> List[str]:
    if not description:
        return []
    return [col.name for col in description]


async def connect(
    host: str,
    port: int,
    database: str,
    username: str,
    password: str,
    timeout: int = 10,
) -> Any:
    """Open an autocommit connection; any failure becomes DatabaseConnectionError."""
    import psycopg  # local import: optional for tests

    logger.info("Connecting to %s:%d/%s as %s", host, port, database, username)
    try:
        conn = await psycopg.AsyncConnection.connect(
            host=host,
            port=port,
            dbname=database,
            user=username,
            password=password,
            connect_timeout=timeout,
            autocommit=True,
        )
    except (psycopg.Error, OSError) as e:
        raise DatabaseConnectionError(f"Failed to connect to database: {e}") from e
    logger.info("Connected to %s:%d/%s", host, port, database)
    return conn


async def close(conn: Any) -> None:
    """Close a connection, logging rather than raising on failure."""
    import psycopg

    try:
        await conn.close()
    except (psycopg.Error, OSError) as e:
        logger.warning("Error while closing connection: %s", e)


async def list_tables(conn: Any) -> List[str]:
    """Base tables and views of the public schema, sorted by name."""
    import psycopg

    try:
        async with conn.cursor() as cur:
            await cur.execute(
                "SELECT table_name FROM information_schema.tables "
                "WHERE table_schema = 'public' ORDER BY table_name"
            )
            rows = await cur.fetchall()
    except psycopg.OperationalError as e:
        raise DatabaseConnectionError(f"Failed to query tables: {e}") from e
    except psycopg.Error as e:
        raise QueryError(f"Failed to query tables: {e}") from e
    return [row[0] for row in rows]


async def count_rows(conn: Any, table: str) -> Optional[int]:
    """Exact row count of a table, or None when it cannot be determined."""
    import psycopg
    from psycopg import sql

    try:
        async with conn.cursor() as cur:
            await cur.execute(sql.SQL("SELECT COUNT(*) FROM {}").format(sql.Identifier(table)))
            row = await cur.fetchone()
    except psycopg.Error as e:
        logger.info("Row count for %s unavailable: %s", table, e)
        return None
    return int(row[0]) if row else None


async def fetch_page(
    conn: Any,
    source: PageSource,
    limit: int,
    offset: int,
) -> Tuple[List[str], List[List[str]]]:
    """Fetch at most ``limit`` rows starting at ``offset``.

    Returns ``(columns, rows)`` with every cell rendered as text.
    """
    import psycopg

    try:
        if isinstance(source, TableSource):
            return await _fetch_table(conn, source.table, limit, offset)
        return await _fetch_query(conn, source.sql, limit, offset)
    except psycopg.OperationalError as e:
        raise DatabaseConnectionError(str(e).strip()) from e
    except psycopg.Error as e:
        raise QueryError(str(e).strip()) from e


async def _fetch_table(conn: Any, table: str, limit: int, offset: int) -> Tuple[List[str], List[List[str]]]:
    from psycopg import sql

    query = sql.SQL("SELECT * FROM {} LIMIT {} OFFSET {}").format(
        sql.Identifier(table), sql.Literal(limit), sql.Literal(offset)
    )
    logger.debug("Fetching %s limit=%d offset=%d", table, limit, offset)
    async with conn.cursor() as cur:
        await cur.execute(query)
        rows = await cur.fetchall()
        return _column_names(cur.description), _rows_as_text(rows)


async def _fetch_query(conn: Any, text: str, limit: int, offset: int) -> Tuple[List[str], List[List[str]]]:
    from psycopg import sql

    body = _strip_terminator(text)
    kind = statement_kind(body)

    async with conn.cursor() as cur:
        if kind in _WRAPPABLE:
            query = sql.SQL("SELECT * FROM (\n{}\n) AS daedalus_page LIMIT {} OFFSET {}").format(
                sql.SQL(body), sql.Literal(limit), sql.Literal(offset)
            )
            await cur.execute(query)
            rows = await cur.fetchall()
            return _column_names(cur.description), _rows_as_text(rows)

        if kind in _ROW_RETURNING:
            await cur.execute(sql.SQL(body))
            rows = await cur.fetchall()
            return _column_names(cur.description), _rows_as_text(rows[offset:offset + limit])

        # Side-effecting statement: run it once, report the outcome on page 0 only
        if offset > 0:
            return ["status"], []
        logger.info("Executing %s statement", kind.upper() or "empty")
        await cur.execute(sql.SQL(body))
        if cur.description:
            rows = await cur.fetchall()
            return _column_names(cur.description), _rows_as_text(rows[:limit])
        status = cur.statusmessage or kind.upper()
        affected = cur.rowcount if cur.rowcount is not None and cur.rowcount >= 0 else 0
        return ["status"], [[f"{status} ({affected} rows affected)"]]
