"""Cursor bookkeeping for incremental listing loads."""

import logging
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class PageState(str, Enum):
    IDLE = "idle"
    HAS_MORE = "has_more"
    EXHAUSTED = "exhausted"


class CursorManager:
    """Tracks the continuation cursor and whether another page may be fetched.

    ``Idle`` until the first page of a query lands, then ``HasMore`` while
    full pages keep arriving with a cursor, and ``Exhausted`` once a short
    page or a null cursor shows the end of the stream.
    """

    def __init__(self, page_size: int):
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.page_size = page_size
        self.state = PageState.IDLE
        self.cursor: Optional[str] = None
        self.in_flight = False

    @property
    def has_more(self) -> bool:
        return self.state is PageState.HAS_MORE

    @property
    def exhausted(self) -> bool:
        return self.state is PageState.EXHAUSTED

    def reset(self) -> None:
        """Forget the cursor; called whenever the base query changes."""
        self.state = PageState.IDLE
        self.cursor = None
        self.in_flight = False

    def record_page(self, count: int, cursor: Optional[str]) -> None:
        """Update the state from a freshly fetched page."""
        self.cursor = cursor
        if count >= self.page_size and cursor is not None:
            self.state = PageState.HAS_MORE
        else:
            self.state = PageState.EXHAUSTED
        logger.debug(
            "Recorded page",
            extra={"page_count": count, "page_state": self.state.value},
        )

    def seed_from_cache(self, count: int) -> None:
        """Seed the state from a cached first page, which carries no cursor."""
        self.cursor = None
        self.state = PageState.HAS_MORE if count >= self.page_size else PageState.EXHAUSTED

    def mark_exhausted(self) -> None:
        self.state = PageState.EXHAUSTED
        self.cursor = None

    def begin_load(self) -> bool:
        """Claim the right to fetch the next page.

        Returns False, without changing anything, when there is nothing more
        to load or another load is already in flight.
        """
        if self.in_flight or self.state is not PageState.HAS_MORE:
            return False
        self.in_flight = True
        return True

    def end_load(self) -> None:
        self.in_flight = False
