"""Short-window suppression of repeated mirror creation.

One edit on the master card can arrive as several near-simultaneous
notifications (``addLabelToCard`` plus ``updateCard``, or a redelivery).
Both would try to create the same mirror before either read-before-write
check sees the other's card.  The first attempt for a
``(master, list, "create")`` key wins; repeats inside the window are
dropped.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)

CREATE = "create"


class SuppressionWindow:
    """Remembers recent create attempts for *window* seconds."""

    def __init__(self, window: float = 30.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.window = window
        self._clock = clock
        self._attempts: dict[tuple[str, str, str], float] = {}

    def should_suppress_create(self, master_id: str, list_id: str) -> bool:
        """Return True if a create for this pair was attempted recently.

        Records the attempt when it is let through.  Expired entries are
        evicted first, so there is no separate cleanup timer.
        """
        now = self._clock()
        self._evict(now)

        key = (master_id, list_id, CREATE)
        if key in self._attempts:
            logger.info("Suppressing duplicate create of %s in list %s", master_id, list_id)
            return True
        self._attempts[key] = now
        return False

    def _evict(self, now: float) -> None:
        expired = [k for k, t in self._attempts.items() if now - t > self.window]
        for key in expired:
            del self._attempts[key]

    def __len__(self) -> int:
        return len(self._attempts)
