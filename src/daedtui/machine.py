"""Navigation state machine driving the TUI.

Input is handled synchronously on the UI thread. Database work runs as an
asyncio task; at most one such task is live, and each carries the generation
number it was started under. Any transition that changes what is on screen
bumps the generation, so a slow result that arrives after the user moved on
is dropped instead of overwriting the newer state.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from daedlib import clients
from daedlib.clients import QuerySource, TableSource
from daedlib.errors import DaedalusError, format_error_message
from daedlib.paginator import Paginator, ResultWindow
from daedlib.registry import ConnectionRegistry

from .keys import EventKind, InputEvent
from .models.field_detail import DEFAULT_VIEWPORT_HEIGHT, FieldDetailView
from .models.navigation_state import (
    ConnectionSelect,
    CursorPosition,
    FieldDetail,
    GridState,
    NavigationState,
    QueryInput,
    QueryResults,
    Session,
    TableBrowse,
    TableList,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NavigationStateMachine:
    def __init__(
        self,
        registry: ConnectionRegistry,
        paginator: Paginator,
        driver: Any = clients,
        connect_timeout: int = 10,
        viewport_height: int = DEFAULT_VIEWPORT_HEIGHT,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self.registry = registry
        self.paginator = paginator
        self.driver = driver
        self.connect_timeout = connect_timeout
        self.viewport_height = viewport_height
        self.viewport_width: Optional[int] = None
        self.on_change = on_change

        self.state: NavigationState = ConnectionSelect(tuple(registry.names()))
        self.banner: Optional[str] = None
        self.running = True
        self.loading = False

        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._session: Optional[Session] = None
        self._drafts: Dict[str, str] = {}
        self._background: set = set()

    @property
    def generation(self) -> int:
        return self._generation

    # -- state bookkeeping -------------------------------------------------

    def _set_state(self, state: NavigationState, supersede: bool = True) -> None:
        """Install ``state``; ``supersede`` marks a change of what is displayed."""
        if supersede:
            self._cancel_pending()
            self._generation += 1
            self.loading = False
        self.state = state

    def _cancel_pending(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            logger.debug("Cancelling in-flight fetch (generation %d)", self._generation)
            task.cancel()

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change()

    def _start_fetch(
        self,
        work: Callable[[], Awaitable[T]],
        on_success: Callable[[T], None],
        on_error: Callable[[DaedalusError], None],
        on_discard: Optional[Callable[[T], None]] = None,
    ) -> asyncio.Task:
        """Run ``work`` as the single in-flight fetch, superseding any earlier one."""
        self._cancel_pending()
        self._generation += 1
        generation = self._generation
        self.loading = True

        async def runner() -> None:
            try:
                result = await work()
            except DaedalusError as e:
                if generation != self._generation:
                    logger.debug("Dropping stale failure from generation %d: %s", generation, e)
                    return
                self._task = None
                self.loading = False
                on_error(e)
            except Exception as e:  # never let a fetch take the UI down
                logger.exception("Unexpected error during fetch")
                if generation != self._generation:
                    return
                self._task = None
                self.loading = False
                self.banner = f"Unexpected error: {e}"
            else:
                if generation != self._generation:
                    logger.debug("Dropping stale result from generation %d", generation)
                    if on_discard is not None:
                        on_discard(result)
                    return
                self._task = None
                self.loading = False
                on_success(result)
            self._notify()

        task = asyncio.get_running_loop().create_task(runner())
        self._task = task
        return task

    async def wait_idle(self) -> None:
        """Wait for the in-flight fetch, if any, to finish or be cancelled."""
        task = self._task
        if task is not None and not task.done():
            await asyncio.wait({task})

    def _fail(self, operation: str, context: Optional[Dict[str, Any]] = None) -> Callable[[DaedalusError], None]:
        def handler(error: DaedalusError) -> None:
            logger.warning("%s failed: %s", operation, error)
            self.banner = format_error_message(operation, error, context)
        return handler

    # -- sessions ----------------------------------------------------------

    async def open_session(self, name: str) -> Session:
        """Resolve ``name``, connect and load its table names."""
        profile = self.registry.resolve(name)
        handle = await self.driver.connect(
            profile.host,
            profile.port,
            profile.database,
            profile.username,
            profile.password,
            self.connect_timeout,
        )
        try:
            tables = await self.driver.list_tables(handle)
        except BaseException:
            await self.driver.close(handle)
            raise
        logger.info("Opened session '%s' with %d tables", name, len(tables))
        return Session(name=name, handle=handle, tables=tuple(tables))

    def enter_session(self, session: Session) -> None:
        """Show the table list of an already opened session."""
        if self._session is not None and self._session is not session:
            self._close_later(self._session)
        self._session = session
        self._set_state(TableList(connection=session))

    def _close_later(self, session: Session) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No event loop to close session '%s'", session.name)
            return
        task = loop.create_task(self.driver.close(session.handle))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _leave_session(self) -> None:
        if self._session is not None:
            self._close_later(self._session)
            self._session = None
        self._set_state(ConnectionSelect(tuple(self.registry.names())))

    async def shutdown(self) -> None:
        """Cancel any fetch and close the open connection."""
        self._cancel_pending()
        self._generation += 1
        if self._session is not None:
            await self.driver.close(self._session.handle)
            self._session = None
        if self._background:
            await asyncio.wait(set(self._background))

    def quit(self) -> None:
        self._cancel_pending()
        self.running = False

    def set_viewport(self, height: int, width: Optional[int] = None) -> None:
        self.viewport_height = max(1, height)
        self.viewport_width = width
        state = self.state
        if isinstance(state, FieldDetail):
            self._set_state(
                replace(state, view=state.view.resized(self.viewport_height, width)),
                supersede=False,
            )

    # -- input ---------------------------------------------------------------

    def dispatch(self, event: InputEvent) -> Optional[asyncio.Task]:
        """Apply one input event; returns the fetch task it started, if any."""
        if event.kind is EventKind.QUIT:
            self.quit()
            return None

        self.banner = None
        state = self.state
        if isinstance(state, ConnectionSelect):
            return self._on_connection_select(state, event)
        if isinstance(state, TableList):
            return self._on_table_list(state, event)
        if isinstance(state, (TableBrowse, QueryResults)):
            return self._on_grid(state, event)
        if isinstance(state, QueryInput):
            return self._on_query_input(state, event)
        if isinstance(state, FieldDetail):
            return self._on_field_detail(state, event)
        raise TypeError(f"unknown navigation state: {state!r}")

    def _on_connection_select(self, state: ConnectionSelect, event: InputEvent) -> Optional[asyncio.Task]:
        count = len(state.connections)
        kind = event.kind
        if kind in (EventKind.UP, EventKind.DOWN) and count:
            step = -1 if kind is EventKind.UP else 1
            self._set_state(replace(state, selected=(state.selected + step) % count), supersede=False)
        elif kind is EventKind.ENTER and count:
            name = state.connections[min(state.selected, count - 1)]
            return self._start_fetch(
                lambda: self.open_session(name),
                self.enter_session,
                self._fail("connect", {"connection": name}),
                on_discard=self._close_later,
            )
        elif kind is EventKind.BACK:
            self.quit()
        return None

    def _on_table_list(self, state: TableList, event: InputEvent) -> Optional[asyncio.Task]:
        session = state.connection
        count = len(session.tables)
        kind = event.kind
        if kind in (EventKind.UP, EventKind.DOWN) and count:
            step = -1 if kind is EventKind.UP else 1
            self._set_state(replace(state, selected=(state.selected + step) % count), supersede=False)
        elif kind is EventKind.ENTER and count:
            return self._open_table(session, session.tables[min(state.selected, count - 1)])
        elif kind is EventKind.QUERY_MODE:
            self._open_query_input(session, self._drafts.get(session.name, ""), state)
        elif kind in (EventKind.BACK, EventKind.CONNECTIONS):
            self._leave_session()
        return None

    def _open_table(self, session: Session, table: str) -> asyncio.Task:
        async def load() -> ResultWindow:
            window = await self.paginator.fetch(session.handle, TableSource(table), 0)
            return await self.paginator.with_total(session.handle, window)

        def show(window: ResultWindow) -> None:
            self._set_state(TableBrowse(session, table, window, CursorPosition().clamped(window)))

        return self._start_fetch(load, show, self._fail("load table data", {"table": table}))

    def _open_query_input(self, session: Session, draft: str, origin: NavigationState) -> None:
        self._set_state(
            QueryInput(connection=session, draft_text=draft, edit_cursor=len(draft), return_to=origin)
        )

    def _table_list_for(self, state: GridState) -> TableList:
        session = state.connection
        selected = 0
        if isinstance(state, TableBrowse) and state.table in session.tables:
            selected = session.tables.index(state.table)
        return TableList(connection=session, selected=selected)

    def _on_grid(self, state: GridState, event: InputEvent) -> Optional[asyncio.Task]:
        window = state.window
        cursor = state.cursor
        kind = event.kind
        last_row = len(window.rows) - 1

        if kind is EventKind.LEFT:
            self._move(state, cursor.moved(window, fields=-1))
        elif kind is EventKind.RIGHT:
            self._move(state, cursor.moved(window, fields=1))
        elif kind is EventKind.UP:
            self._move(state, cursor.moved(window, rows=-1))
        elif kind is EventKind.DOWN:
            if cursor.row_index < last_row:
                self._move(state, cursor.moved(window, rows=1))
            elif window.has_more:
                return self._change_page(state, forward=True)
        elif kind is EventKind.HOME:
            self._move(state, replace(cursor, row_index=0).clamped(window))
        elif kind is EventKind.END:
            self._move(state, replace(cursor, row_index=last_row).clamped(window))
        elif kind is EventKind.PAGE_DOWN:
            if window.has_more:
                return self._change_page(state, forward=True)
        elif kind is EventKind.PAGE_UP:
            if window.page_index > 0:
                return self._change_page(state, forward=False)
        elif kind is EventKind.ENTER:
            value = window.cell(cursor.row_index, cursor.field_index)
            if value is not None:
                view = FieldDetailView(value, viewport_height=self.viewport_height, wrap_width=self.viewport_width)
                self._set_state(FieldDetail(return_to=state, column=window.columns[cursor.field_index], view=view))
        elif kind is EventKind.QUERY_MODE:
            if isinstance(state, QueryResults):
                draft = state.query
            else:
                draft = self._drafts.get(state.connection.name, "")
            self._open_query_input(state.connection, draft, state)
        elif kind in (EventKind.BACK, EventKind.TABLES):
            self._set_state(self._table_list_for(state))
        elif kind is EventKind.CONNECTIONS:
            self._leave_session()
        return None

    def _move(self, state: GridState, cursor: CursorPosition) -> None:
        if cursor != state.cursor:
            self._set_state(replace(state, cursor=cursor), supersede=False)

    def _change_page(self, state: GridState, forward: bool) -> asyncio.Task:
        handle = state.connection.handle
        window = state.window

        async def load() -> ResultWindow:
            if forward:
                page = await self.paginator.next_page(handle, window)
            else:
                page = await self.paginator.previous_page(handle, window)
            if page.total_rows is None and window.total_rows is not None:
                page = replace(page, total_rows=window.total_rows)
            return page

        def show(page: ResultWindow) -> None:
            current = self.state
            if not isinstance(current, (TableBrowse, QueryResults)):
                return
            self._set_state(replace(current, window=page, cursor=CursorPosition().clamped(page)))

        return self._start_fetch(load, show, self._fail("load page"))

    def _on_query_input(self, state: QueryInput, event: InputEvent) -> Optional[asyncio.Task]:
        draft = state.draft_text
        pos = min(max(0, state.edit_cursor), len(draft))
        kind = event.kind

        if kind is EventKind.TEXT and event.text:
            self._edit(state, draft[:pos] + event.text + draft[pos:], pos + len(event.text))
        elif kind is EventKind.BACKSPACE:
            if pos > 0:
                self._edit(state, draft[:pos - 1] + draft[pos:], pos - 1)
        elif kind is EventKind.DELETE:
            if pos < len(draft):
                self._edit(state, draft[:pos] + draft[pos + 1:], pos)
        elif kind is EventKind.LEFT:
            self._edit(state, draft, max(0, pos - 1))
        elif kind is EventKind.RIGHT:
            self._edit(state, draft, min(len(draft), pos + 1))
        elif kind is EventKind.HOME:
            self._edit(state, draft, 0)
        elif kind is EventKind.END:
            self._edit(state, draft, len(draft))
        elif kind is EventKind.ENTER:
            return self._submit_query(state)
        elif kind is EventKind.BACK:
            origin = state.return_to
            if origin is None:
                origin = TableList(connection=state.connection)
            self._set_state(origin)
        return None

    def _edit(self, state: QueryInput, draft: str, edit_cursor: int) -> None:
        self._drafts[state.connection.name] = draft
        self._set_state(
            replace(state, draft_text=draft, edit_cursor=edit_cursor, error=None),
            supersede=False,
        )

    def _submit_query(self, state: QueryInput) -> Optional[asyncio.Task]:
        query = state.draft_text.strip()
        if not query:
            self._set_state(replace(state, error="Query is empty"), supersede=False)
            return None

        session = state.connection
        self._drafts[session.name] = state.draft_text

        def show(window: ResultWindow) -> None:
            self._set_state(QueryResults(session, query, window, CursorPosition().clamped(window)))

        def fail(error: DaedalusError) -> None:
            logger.warning("Query failed: %s", error)
            current = self.state
            if isinstance(current, QueryInput):
                self._set_state(replace(current, error=str(error)), supersede=False)

        return self._start_fetch(
            lambda: self.paginator.fetch(session.handle, QuerySource(query), 0),
            show,
            fail,
        )

    def _on_field_detail(self, state: FieldDetail, event: InputEvent) -> Optional[asyncio.Task]:
        view = state.view
        kind = event.kind
        if kind is EventKind.UP:
            view = view.scrolled(-1)
        elif kind is EventKind.DOWN:
            view = view.scrolled(1)
        elif kind is EventKind.PAGE_UP:
            view = view.paged(-1)
        elif kind is EventKind.PAGE_DOWN:
            view = view.paged(1)
        elif kind is EventKind.HOME:
            view = view.to_top()
        elif kind is EventKind.END:
            view = view.to_bottom()
        elif kind in (EventKind.BACK, EventKind.ENTER):
            self._set_state(state.return_to)
            return None
        if view != state.view:
            self._set_state(replace(state, view=view), supersede=False)
        return None
