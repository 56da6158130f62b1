"""Contextual row menu — at most one open menu per page.

The controller is owned by the page (or list) and passed explicitly to
whatever renders rows.  Coordinates are viewport pixels.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable

from marketplace_console.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rect:
    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    def contains(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.top <= y <= self.bottom


@dataclass(frozen=True)
class MenuPosition:
    """Fixed-position offsets: distance from viewport top and right edge."""
    top: float
    right: float


@dataclass(frozen=True)
class MenuAnchor:
    trigger_id: str
    position: MenuPosition
    anchor_rect: Rect
    menu_rect: Rect | None = None


def position_for(anchor_rect: Rect, viewport_width: float, gap: float) -> MenuPosition:
    """Menu opens just below the trigger, right-aligned with it."""
    return MenuPosition(top=anchor_rect.bottom + gap, right=viewport_width - anchor_rect.right)


class MenuController:
    """Holds the single open ``MenuAnchor`` of a page."""

    def __init__(
        self,
        viewport_width: float,
        *,
        gap: float | None = None,
        on_change: Callable[[MenuAnchor | None], Any] | None = None,
    ):
        self.viewport_width = viewport_width
        self.gap = settings.menu_gap_px if gap is None else gap
        self.on_change = on_change
        self.anchor: MenuAnchor | None = None

    @property
    def is_open(self) -> bool:
        return self.anchor is not None

    @property
    def open_id(self) -> str | None:
        return self.anchor.trigger_id if self.anchor else None

    def _set(self, anchor: MenuAnchor | None) -> None:
        if anchor == self.anchor:
            return
        self.anchor = anchor
        if self.on_change is not None:
            self.on_change(anchor)

    def open(self, trigger_id: str, anchor_rect: Rect) -> MenuAnchor:
        """Open the menu for ``trigger_id``, replacing any open menu."""
        anchor = MenuAnchor(
            trigger_id=trigger_id,
            position=position_for(anchor_rect, self.viewport_width, self.gap),
            anchor_rect=anchor_rect,
        )
        if self.anchor is not None and self.anchor.trigger_id != trigger_id:
            logger.debug("Menu %s replaced by %s", self.anchor.trigger_id, trigger_id)
            self._set(None)
        self._set(anchor)
        return anchor

    def toggle(self, trigger_id: str, anchor_rect: Rect) -> MenuAnchor | None:
        """Trigger click: closes the menu if it is already open for this row."""
        if self.open_id == trigger_id:
            self.close()
            return None
        return self.open(trigger_id, anchor_rect)

    def close(self) -> None:
        self._set(None)

    def set_menu_bounds(self, menu_rect: Rect) -> None:
        """Record the rendered menu bounds used for outside-click detection."""
        if self.anchor is None:
            return
        self._set(MenuAnchor(
            trigger_id=self.anchor.trigger_id,
            position=self.anchor.position,
            anchor_rect=self.anchor.anchor_rect,
            menu_rect=menu_rect,
        ))

    def on_click(self, x: float, y: float) -> bool:
        """Document click.  Returns True if it closed the menu.

        Clicks on the menu itself or on its trigger are left to those
        handlers.
        """
        if self.anchor is None:
            return False
        inside_menu = self.anchor.menu_rect is not None and self.anchor.menu_rect.contains(x, y)
        if inside_menu or self.anchor.anchor_rect.contains(x, y):
            return False
        self.close()
        return True

    def select(self, item: str) -> str | None:
        """Menu item chosen: close and return the row the menu belonged to."""
        trigger_id = self.open_id
        if trigger_id is not None:
            logger.debug("Menu item %s selected for %s", item, trigger_id)
        self.close()
        return trigger_id

    def on_resize(self, viewport_width: float) -> None:
        # The anchor no longer matches the trigger's position.
        self.viewport_width = viewport_width
        self.close()

    def on_scroll(self) -> None:
        self.close()
