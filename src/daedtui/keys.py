"""Translate textual key names into navigation events."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class EventKind(Enum):
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"
    ENTER = "enter"
    BACK = "back"
    PAGE_UP = "page_up"
    PAGE_DOWN = "page_down"
    HOME = "home"
    END = "end"
    QUERY_MODE = "query_mode"
    CONNECTIONS = "connections"
    TABLES = "tables"
    QUIT = "quit"
    TEXT = "text"
    BACKSPACE = "backspace"
    DELETE = "delete"


@dataclass(frozen=True)
class InputEvent:
    kind: EventKind
    text: Optional[str] = None


# Keys with the same meaning on every screen
SPECIAL_KEYS = {
    "up": EventKind.UP,
    "down": EventKind.DOWN,
    "left": EventKind.LEFT,
    "right": EventKind.RIGHT,
    "enter": EventKind.ENTER,
    "escape": EventKind.BACK,
    "pageup": EventKind.PAGE_UP,
    "pagedown": EventKind.PAGE_DOWN,
    "home": EventKind.HOME,
    "end": EventKind.END,
    "ctrl+c": EventKind.QUIT,
    "backspace": EventKind.BACKSPACE,
    "delete": EventKind.DELETE,
}

# Single-character shortcuts, ignored while typing a query
SHORTCUTS = {
    "k": EventKind.UP,
    "j": EventKind.DOWN,
    "h": EventKind.LEFT,
    "l": EventKind.RIGHT,
    ":": EventKind.QUERY_MODE,
    "c": EventKind.CONNECTIONS,
    "t": EventKind.TABLES,
    "q": EventKind.QUIT,
}


def translate(key: str, character: Optional[str] = None, text_entry: bool = False) -> Optional[InputEvent]:
    """Map a key press to an event, or None when the key means nothing here."""
    kind = SPECIAL_KEYS.get(key)
    if kind is not None:
        return InputEvent(kind)

    if character is None or len(character) != 1 or not character.isprintable():
        return None

    if text_entry:
        return InputEvent(EventKind.TEXT, character)

    kind = SHORTCUTS.get(character)
    return InputEvent(kind) if kind is not None else None
