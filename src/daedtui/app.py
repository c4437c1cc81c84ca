"""Main TUI application: a thin textual shell around the navigation state machine."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from textual import events
from textual.app import App, ComposeResult
from textual.containers import Vertical
from textual.widgets import Header, Static

from daedlib.config import AppConfig
from daedlib.errors import DaedalusError
from daedlib.paginator import Paginator
from daedlib.registry import ConnectionRegistry
from daedlib.vault import CredentialVault

from .keys import translate
from .machine import NavigationStateMachine
from .models.navigation_state import QueryInput, Session, get_breadcrumb
from .render import help_text, render_state

logger = logging.getLogger(__name__)

# Header, banner and help lines plus panel borders
CHROME_HEIGHT = 6


class TUIApp(App):
    """Full-screen PostgreSQL navigator."""

    TITLE = "daedalus"
    SUB_TITLE = "PostgreSQL Navigator"

    CSS = """
    Screen {
        layout: vertical;
    }

    Header {
        dock: top;
    }

    #banner {
        height: 1;
        color: red;
    }

    #content {
        height: 1fr;
    }

    #help {
        dock: bottom;
        height: 1;
        text-style: italic;
    }
    """

    def __init__(self, machine: NavigationStateMachine, session: Optional[Session] = None):
        super().__init__()
        self.machine = machine
        self.machine.on_change = self.refresh_view
        self.initial_session = session

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Header()
            yield Static("", id="banner")
            yield Static("", id="content")
            yield Static("", id="help")

    def on_mount(self) -> None:
        if self.initial_session is not None:
            self.machine.enter_session(self.initial_session)
        self._update_viewport()
        self.refresh_view()
        logger.info("TUI mounted in state %s", type(self.machine.state).__name__)

    def on_resize(self, event: events.Resize) -> None:
        self._update_viewport()
        self.refresh_view()

    def _update_viewport(self) -> None:
        width, height = self.size
        self.machine.set_viewport(max(1, height - CHROME_HEIGHT), max(10, width - 4))

    def on_key(self, event: events.Key) -> None:
        text_entry = isinstance(self.machine.state, QueryInput)
        nav_event = translate(event.key, event.character, text_entry=text_entry)
        if nav_event is None:
            return
        event.prevent_default()
        event.stop()

        try:
            self.machine.dispatch(nav_event)
        except DaedalusError as e:
            logger.error("Event %s failed: %s", nav_event.kind.value, e)
            self.machine.banner = str(e)
        if not self.machine.running:
            self.exit()
            return
        self.refresh_view()

    def refresh_view(self) -> None:
        """Repaint banner, content and help from the machine's current state."""
        state = self.machine.state
        self.sub_title = get_breadcrumb(state)

        if self.machine.banner:
            banner = self.machine.banner
        elif self.machine.loading:
            banner = "Loading..."
        else:
            banner = ""

        try:
            self.query_one("#banner", Static).update(banner)
            self.query_one("#content", Static).update(render_state(state))
            self.query_one("#help", Static).update(help_text(state))
        except Exception as e:  # widgets not mounted yet or already gone
            logger.debug("Skipping refresh: %s", e)

    async def on_unmount(self) -> None:
        await self.machine.shutdown()


def build_machine(config: AppConfig) -> NavigationStateMachine:
    vault = CredentialVault(config.key_path)
    vault.initialize()
    registry = ConnectionRegistry(config.registry_path, vault)
    return NavigationStateMachine(
        registry,
        Paginator(config.page_size),
        connect_timeout=config.connect_timeout,
    )


def configure_file_logging(config: AppConfig) -> None:
    # The terminal belongs to textual, so logs go to a file
    log_file = config.effective_log_file
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        handlers=[logging.FileHandler(log_file, mode="a")],
        force=True,
    )
    logging.getLogger("psycopg").setLevel(logging.WARNING)
    logger.info("Starting TUI, debug log at: %s", log_file)


async def run_tui_async(machine: NavigationStateMachine, session: Optional[Session] = None) -> None:
    app = TUIApp(machine, session=session)
    await app.run_async()


def run_tui(config: AppConfig) -> None:
    """Entry point for running the TUI from the connection list."""
    configure_file_logging(config)
    machine = build_machine(config)
    asyncio.run(run_tui_async(machine))
