"""Windowed access to a table or query result of unknown total size."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Optional, Tuple

from . import clients
from .clients import PageSource
from .errors import DatabaseConnectionError, FetchError, QueryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResultWindow:
    """One fetched page of rows, all cells as text."""

    source: PageSource
    columns: Tuple[str, ...]
    rows: Tuple[Tuple[str, ...], ...]
    page_index: int
    page_size: int
    has_more: bool
    total_rows: Optional[int] = None

    @property
    def identity(self) -> Tuple[PageSource, int]:
        return (self.source, self.page_index)

    @property
    def first_row_number(self) -> int:
        """1-based number of the first row of this page in the whole result."""
        return self.page_index * self.page_size + 1

    @property
    def total_pages(self) -> Optional[int]:
        if self.total_rows is None:
            return None
        return max(1, -(-self.total_rows // self.page_size))

    def cell(self, row_index: int, field_index: int) -> Optional[str]:
        if not (0 <= row_index < len(self.rows)):
            return None
        row = self.rows[row_index]
        if not (0 <= field_index < len(row)):
            return None
        return row[field_index]


class Paginator:
    """Translate page requests into bounded fetches.

    ``has_more`` uses a sentinel row: each fetch asks the driver for
    ``page_size + 1`` rows and drops the extra one.
    """

    def __init__(self, page_size: int, driver: Any = clients) -> None:
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self.page_size = page_size
        self.driver = driver

    async def fetch(self, conn: Any, source: PageSource, page_index: int) -> ResultWindow:
        page_index = max(0, page_index)
        offset = page_index * self.page_size
        try:
            columns, rows = await self.driver.fetch_page(conn, source, self.page_size + 1, offset)
        except (QueryError, DatabaseConnectionError) as e:
            logger.warning("Fetch of page %d from %s failed: %s", page_index, source.describe(), e)
            raise FetchError(str(e)) from e

        has_more = len(rows) > self.page_size
        rows = rows[: self.page_size]
        logger.debug(
            "Fetched page %d of %s: %d rows, has_more=%s",
            page_index, source.describe(), len(rows), has_more,
        )
        return ResultWindow(
            source=source,
            columns=tuple(columns),
            rows=tuple(tuple(r) for r in rows),
            page_index=page_index,
            page_size=self.page_size,
            has_more=has_more,
        )

    async def next_page(self, conn: Any, window: ResultWindow) -> ResultWindow:
        """Fetch the following page; returns ``window`` itself when there is none."""
        if not window.has_more:
            return window
        return await self.fetch(conn, window.source, window.page_index + 1)

    async def previous_page(self, conn: Any, window: ResultWindow) -> ResultWindow:
        """Fetch the preceding page; returns ``window`` itself on page 0."""
        if window.page_index == 0:
            return window
        return await self.fetch(conn, window.source, window.page_index - 1)

    async def with_total(self, conn: Any, window: ResultWindow) -> ResultWindow:
        """Attach the exact row count to a table window when the driver can count."""
        if window.total_rows is not None or not isinstance(window.source, clients.TableSource):
            return window
        count_rows = getattr(self.driver, "count_rows", None)
        if count_rows is None:
            return window
        total = await count_rows(conn, window.source.table)
        if total is None:
            return window
        return replace(window, total_rows=total)
