"""Scroll state for viewing one long cell value."""

from __future__ import annotations

import textwrap
from dataclasses import dataclass, replace
from typing import List, Optional

DEFAULT_VIEWPORT_HEIGHT = 20


@dataclass(frozen=True)
class FieldDetailView:
    """Full text of a cell plus a line-based scroll offset.

    Lines longer than ``wrap_width`` are folded so that scrolling counts the
    lines actually drawn. The originating ResultWindow is never touched.
    """

    value: str
    viewport_height: int = DEFAULT_VIEWPORT_HEIGHT
    scroll_offset: int = 0
    wrap_width: Optional[int] = None

    @property
    def lines(self) -> List[str]:
        raw = self.value.splitlines() or [""]
        if not self.wrap_width or self.wrap_width <= 0:
            return raw
        out: List[str] = []
        for line in raw:
            out.extend(
                textwrap.wrap(
                    line,
                    width=self.wrap_width,
                    replace_whitespace=False,
                    drop_whitespace=False,
                )
                or [""]
            )
        return out

    @property
    def total_lines(self) -> int:
        return len(self.lines)

    @property
    def max_offset(self) -> int:
        return max(0, self.total_lines - max(1, self.viewport_height))

    def _at(self, offset: int) -> "FieldDetailView":
        return replace(self, scroll_offset=min(max(0, offset), self.max_offset))

    def scrolled(self, delta: int) -> "FieldDetailView":
        return self._at(self.scroll_offset + delta)

    def paged(self, pages: int) -> "FieldDetailView":
        return self.scrolled(pages * max(1, self.viewport_height))

    def to_top(self) -> "FieldDetailView":
        return self._at(0)

    def to_bottom(self) -> "FieldDetailView":
        return self._at(self.max_offset)

    def resized(self, viewport_height: int, wrap_width: Optional[int] = None) -> "FieldDetailView":
        resized = replace(self, viewport_height=max(1, viewport_height), wrap_width=wrap_width)
        return resized._at(resized.scroll_offset)

    def visible_lines(self) -> List[str]:
        start = self.scroll_offset
        return self.lines[start:start + max(1, self.viewport_height)]
