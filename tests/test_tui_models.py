from __future__ import annotations

import pytest
from rich.console import Console

from daedlib.clients import QuerySource, TableSource
from daedlib.paginator import ResultWindow
from daedtui.keys import EventKind, InputEvent, translate
from daedtui.models.field_detail import FieldDetailView
from daedtui.models.navigation_state import (
    ConnectionSelect,
    CursorPosition,
    FieldDetail,
    QueryInput,
    QueryResults,
    Session,
    TableBrowse,
    TableList,
)
from daedtui.render import grid_title, help_text, render_state, truncate


def _text(renderable) -> str:
    console = Console(record=True, width=120, color_system=None)
    console.print(renderable)
    return console.export_text()


def _window(rows, columns=("id", "name"), page_index=0, has_more=False, total_rows=None, source=None):
    return ResultWindow(
        source or TableSource("users"),
        tuple(columns),
        tuple(tuple(r) for r in rows),
        page_index,
        3,
        has_more,
        total_rows,
    )


SESSION = Session(name="mydb", handle=object(), tables=("orders", "users"))


# Key translation


@pytest.mark.parametrize(
    "key, character, expected",
    [
        ("up", None, EventKind.UP),
        ("k", "k", EventKind.UP),
        ("j", "j", EventKind.DOWN),
        ("h", "h", EventKind.LEFT),
        ("l", "l", EventKind.RIGHT),
        ("escape", None, EventKind.BACK),
        ("enter", "\r", EventKind.ENTER),
        ("pagedown", None, EventKind.PAGE_DOWN),
        ("colon", ":", EventKind.QUERY_MODE),
        ("c", "c", EventKind.CONNECTIONS),
        ("t", "t", EventKind.TABLES),
        ("q", "q", EventKind.QUIT),
        ("ctrl+c", None, EventKind.QUIT),
    ],
)
def test_translate_navigation_keys(key, character, expected):
    assert translate(key, character) == InputEvent(expected)


def test_translate_unbound_keys():
    assert translate("x", "x") is None
    assert translate("f1", None) is None


def test_shortcuts_become_text_while_typing():
    assert translate("q", "q", text_entry=True) == InputEvent(EventKind.TEXT, "q")
    assert translate("colon", ":", text_entry=True) == InputEvent(EventKind.TEXT, ":")
    assert translate("escape", None, text_entry=True) == InputEvent(EventKind.BACK)
    assert translate("backspace", None, text_entry=True) == InputEvent(EventKind.BACKSPACE)
    assert translate("ctrl+c", None, text_entry=True) == InputEvent(EventKind.QUIT)


# Field detail scrolling


def test_field_detail_scroll_bounds():
    view = FieldDetailView("\n".join(f"line {i}" for i in range(10)), viewport_height=4)
    assert view.total_lines == 10
    assert view.max_offset == 6

    assert view.scrolled(-1).scroll_offset == 0
    assert view.scrolled(3).scroll_offset == 3
    assert view.scrolled(100).scroll_offset == 6
    assert view.paged(1).scroll_offset == 4
    assert view.to_bottom().visible_lines() == ["line 6", "line 7", "line 8", "line 9"]
    assert view.to_bottom().to_top().scroll_offset == 0


def test_field_detail_short_value_never_scrolls():
    view = FieldDetailView("one line", viewport_height=5)
    assert view.max_offset == 0
    assert view.scrolled(2).scroll_offset == 0
    assert FieldDetailView("").lines == [""]


def test_field_detail_wraps_long_lines():
    view = FieldDetailView("abcdefghij", viewport_height=2, wrap_width=4)
    assert view.lines == ["abcd", "efgh", "ij"]
    assert view.to_bottom().scroll_offset == 1


def test_resize_keeps_offset_in_range():
    view = FieldDetailView("\n".join("x" * 10), viewport_height=2).to_bottom()
    assert view.scroll_offset == 8
    grown = view.resized(8)
    assert grown.scroll_offset == 2
    assert grown.viewport_height == 8


# Rendering


def test_connection_list_marks_empty_state():
    out = _text(render_state(ConnectionSelect()))
    assert "No saved connections" in out
    assert "daedalus add-conn" in out


def test_table_list_shows_tables():
    out = _text(render_state(TableList(SESSION, selected=1)))
    assert "Tables - mydb" in out
    assert "orders" in out and "users" in out


def test_grid_titles():
    browse = TableBrowse(SESSION, "users", _window([["1", "a"]], total_rows=7, page_index=1))
    assert grid_title(browse) == "Table: users (Page 2 of 3)"

    more = QueryResults(SESSION, "SELECT 1", _window([["1", "a"]], has_more=True, source=QuerySource("SELECT 1")))
    assert grid_title(more) == "Query (Page 1+)"

    last = QueryResults(SESSION, "SELECT 1", _window([["1", "a"]], source=QuerySource("SELECT 1")))
    assert grid_title(last) == "Query (Page 1)"


def test_grid_numbers_rows_and_truncates():
    window = _window([["1", "x" * 80], ["2", "line one\nline two"]], page_index=1)
    out = _text(render_state(TableBrowse(SESSION, "users", window, CursorPosition(1, 1)), max_col_width=20))
    assert "Table: users (Page 2)" in out
    assert "x" * 17 + "..." in out
    assert "x" * 21 not in out
    assert "line one line two" in out
    # Page 2 of a 3-row page size starts at row 4
    assert " 4 " in out and " 5 " in out


def test_grid_without_columns():
    window = _window([], columns=(), source=QuerySource("CREATE TABLE x ()"))
    out = _text(render_state(QueryResults(SESSION, "CREATE TABLE x ()", window)))
    assert "No rows returned" in out


def test_query_editor_shows_error():
    state = QueryInput(SESSION, draft_text="SELEC 1", edit_cursor=7, error="syntax error at or near \"SELEC\"")
    out = _text(render_state(state))
    assert "SQL - mydb" in out
    assert "SELEC 1" in out
    assert "syntax error" in out


def test_field_detail_title_counts_lines():
    origin = TableBrowse(SESSION, "users", _window([["1", "a"]]))
    view = FieldDetailView("\n".join(str(i) for i in range(30)), viewport_height=10).scrolled(5)
    out = _text(render_state(FieldDetail(origin, "name", view)))
    assert "name (lines 6-15 of 30)" in out


def test_truncate():
    assert truncate("short", 10) == "short"
    assert truncate("abcdefghijkl", 10) == "abcdefg..."
    assert truncate("a\nb", 10) == "a b"


def test_help_text_per_screen():
    assert "quit" in help_text(ConnectionSelect())
    assert "Enter run" in help_text(QueryInput(SESSION))
    assert "PgUp/PgDn" in help_text(TableBrowse(SESSION, "users", _window([])))
