"""Turn a navigation state into rich renderables for the content area."""

from __future__ import annotations

from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .models.navigation_state import (
    ConnectionSelect,
    FieldDetail,
    GridState,
    NavigationState,
    QueryInput,
    QueryResults,
    TableBrowse,
    TableList,
)

DEFAULT_MAX_COL_WIDTH = 40
SELECTED_STYLE = "bold black on green"
ROW_STYLE = "on blue"
CELL_STYLE = "bold reverse"


def truncate(value: str, max_width: int) -> str:
    value = value.replace("\n", " ")
    if max_width > 3 and len(value) > max_width:
        return value[: max_width - 3] + "..."
    return value


def _pick_list(title: str, items, selected: int, empty_message: str) -> RenderableType:
    if not items:
        return Panel(Text(empty_message, style="italic"), title=title)
    table = Table(show_header=False, box=None, expand=True, pad_edge=False)
    table.add_column("name")
    for i, item in enumerate(items):
        table.add_row(item, style=SELECTED_STYLE if i == selected else None)
    return Panel(table, title=title)


def grid_title(state: GridState) -> str:
    window = state.window
    if isinstance(state, TableBrowse):
        title = f"Table: {state.table} (Page {window.page_index + 1}"
    else:
        title = f"Query (Page {window.page_index + 1}"
    if window.total_pages is not None:
        title += f" of {window.total_pages}"
    elif window.has_more:
        title += "+"
    return title + ")"


def _grid(state: GridState, max_col_width: int) -> RenderableType:
    window = state.window
    cursor = state.cursor
    if not window.columns:
        return Panel(Text("No rows returned", style="italic"), title=grid_title(state))

    table = Table(title=grid_title(state), expand=False, show_lines=False)
    table.add_column("#", justify="right", style="dim")
    for col in window.columns:
        table.add_column(truncate(col, max_col_width), no_wrap=True)

    for r, row in enumerate(window.rows):
        cells = [Text(str(window.first_row_number + r))]
        for f, value in enumerate(row):
            style = CELL_STYLE if (r == cursor.row_index and f == cursor.field_index) else ""
            cells.append(Text(truncate(value, max_col_width), style=style))
        table.add_row(*cells, style=ROW_STYLE if r == cursor.row_index else None)

    if not window.rows:
        return Group(table, Text("No rows on this page", style="italic"))
    return table


def _query_editor(state: QueryInput) -> RenderableType:
    draft = state.draft_text
    pos = min(max(0, state.edit_cursor), len(draft))
    text = Text(draft[:pos])
    text.append(draft[pos] if pos < len(draft) else " ", style="reverse")
    text.append(draft[pos + 1:])
    parts = [Panel(text, title=f"SQL - {state.connection.name}")]
    if state.error:
        parts.append(Text(state.error, style="bold red"))
    return Group(*parts)


def _field_detail(state: FieldDetail) -> RenderableType:
    view = state.view
    first = view.scroll_offset + 1
    last = min(view.total_lines, view.scroll_offset + max(1, view.viewport_height))
    title = f"{state.column} (lines {first}-{last} of {view.total_lines})"
    return Panel(Text("\n".join(view.visible_lines())), title=title)


def render_state(state: NavigationState, max_col_width: int = DEFAULT_MAX_COL_WIDTH) -> RenderableType:
    if isinstance(state, ConnectionSelect):
        return _pick_list(
            "Select Connection",
            state.connections,
            state.selected,
            "No saved connections. Add one with: daedalus add-conn <url>",
        )
    if isinstance(state, TableList):
        return _pick_list(
            f"Tables - {state.connection.name}",
            state.connection.tables,
            state.selected,
            "No tables in the public schema",
        )
    if isinstance(state, (TableBrowse, QueryResults)):
        return _grid(state, max_col_width)
    if isinstance(state, QueryInput):
        return _query_editor(state)
    if isinstance(state, FieldDetail):
        return _field_detail(state)
    raise TypeError(f"unknown navigation state: {state!r}")


def help_text(state: NavigationState) -> str:
    if isinstance(state, ConnectionSelect):
        return "↑↓ navigate, Enter connect, Esc/q quit"
    if isinstance(state, TableList):
        return "↑↓ navigate, Enter open, ':' query, 'c'/Esc connections, 'q' quit"
    if isinstance(state, (TableBrowse, QueryResults)):
        return (
            "↑↓←→ move, PgUp/PgDn page, Enter view field, ':' query, "
            "'t'/Esc tables, 'c' connections, 'q' quit"
        )
    if isinstance(state, QueryInput):
        return "Type SQL, Enter run, Esc back, Ctrl+C quit"
    if isinstance(state, FieldDetail):
        return "↑↓ scroll, PgUp/PgDn page, Esc/Enter back, 'q' quit"
    return ""
