"""Navigation state for the TUI: one frozen variant per screen."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Tuple, Union

from daedlib.paginator import ResultWindow

from .field_detail import FieldDetailView


@dataclass(frozen=True)
class CursorPosition:
    row_index: int = 0
    field_index: int = 0
    scroll_offset: int = 0

    def clamped(self, window: ResultWindow) -> "CursorPosition":
        """Pull the indices back inside ``window``; (0, 0) for an empty window."""
        max_row = max(0, len(window.rows) - 1)
        max_field = max(0, len(window.columns) - 1)
        return CursorPosition(
            row_index=min(max(0, self.row_index), max_row),
            field_index=min(max(0, self.field_index), max_field),
            scroll_offset=max(0, self.scroll_offset),
        )

    def moved(self, window: ResultWindow, rows: int = 0, fields: int = 0) -> "CursorPosition":
        return CursorPosition(
            row_index=self.row_index + rows,
            field_index=self.field_index + fields,
            scroll_offset=self.scroll_offset,
        ).clamped(window)


@dataclass(frozen=True)
class Session:
    """An open database connection and the tables it exposes."""

    name: str
    handle: Any = field(repr=False)
    tables: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ConnectionSelect:
    connections: Tuple[str, ...] = ()
    selected: int = 0


@dataclass(frozen=True)
class TableList:
    connection: Session
    selected: int = 0


@dataclass(frozen=True)
class TableBrowse:
    connection: Session
    table: str
    window: ResultWindow
    cursor: CursorPosition = CursorPosition()


@dataclass(frozen=True)
class QueryInput:
    connection: Session
    draft_text: str = ""
    edit_cursor: int = 0
    error: Optional[str] = None
    # State to go back to on escape; None means the table list
    return_to: Optional["NavigationState"] = None


@dataclass(frozen=True)
class QueryResults:
    connection: Session
    query: str
    window: ResultWindow
    cursor: CursorPosition = CursorPosition()


GridState = Union[TableBrowse, QueryResults]


@dataclass(frozen=True)
class FieldDetail:
    return_to: GridState
    column: str
    view: FieldDetailView

    @property
    def value(self) -> str:
        return self.view.value

    @property
    def scroll_offset(self) -> int:
        return self.view.scroll_offset


NavigationState = Union[
    ConnectionSelect, TableList, TableBrowse, QueryInput, QueryResults, FieldDetail
]


def state_tag(state: NavigationState) -> str:
    if isinstance(state, ConnectionSelect):
        return "connections"
    if isinstance(state, TableList):
        return "tables"
    if isinstance(state, TableBrowse):
        return "table"
    if isinstance(state, QueryInput):
        return "query"
    if isinstance(state, QueryResults):
        return "results"
    if isinstance(state, FieldDetail):
        return "detail"
    raise TypeError(f"not a navigation state: {state!r}")


def get_breadcrumb(state: NavigationState) -> str:
    """Generate breadcrumb string for the current context."""
    if isinstance(state, FieldDetail):
        return f"{get_breadcrumb(state.return_to)} > {state.column}"
    parts = []
    connection = getattr(state, "connection", None)
    if connection is not None:
        parts.append(connection.name)
    if isinstance(state, TableBrowse):
        parts.append(state.table)
    elif isinstance(state, QueryInput):
        parts.append("query")
    elif isinstance(state, QueryResults):
        parts.append("results")
    return " > ".join(parts) if parts else "daedalus"
