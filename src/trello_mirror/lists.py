"""Label name -> mirror list mapping.

Trello has no notion of "the list for label X", so the mapping is a
naming convention: the mirror list for a label is the board list whose
name equals the label name exactly.  The board's list set is cached for a
short window; lists created here are appended to the cache in memory
instead of forcing a re-fetch.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from trello_mirror.gateway import RemoteError, TrelloGateway
from trello_mirror.models import MirrorList

logger = logging.getLogger(__name__)


class ListCache:
    """The board's list set plus the time it was fetched."""

    def __init__(self, ttl: float = 30.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._lists: list[MirrorList] = []
        self._fetched_at: float | None = None

    def is_stale(self) -> bool:
        if self._fetched_at is None:
            return True
        return self._clock() - self._fetched_at > self.ttl

    def replace(self, lists: list[MirrorList]) -> None:
        self._lists = list(lists)
        self._fetched_at = self._clock()

    def append(self, mirror_list: MirrorList) -> None:
        """Add a freshly created list without touching the fetch time."""
        self._lists.append(mirror_list)

    def find(self, name: str) -> MirrorList | None:
        for lst in self._lists:
            if lst.name == name:
                return lst
        return None

    def get(self, list_id: str) -> MirrorList | None:
        for lst in self._lists:
            if lst.id == list_id:
                return lst
        return None

    def all(self) -> list[MirrorList]:
        return list(self._lists)


class ListResolver:
    """Resolves (and lazily creates) the mirror list for a label name."""

    def __init__(self, gateway: TrelloGateway, cache: ListCache, board_id: str) -> None:
        self.gateway = gateway
        self.cache = cache
        self.board_id = board_id
        self._creating: dict[str, asyncio.Task] = {}
        self._refreshing: asyncio.Task | None = None

    async def refresh(self) -> bool:
        """Re-fetch the board's lists if the cache is stale.

        Returns False when the cache holds no fresh copy of the board,
        i.e. the fetch failed.  The previous lists are kept in that case.
        """
        if self.cache.is_stale():
            # At most one fetch in flight.
            if self._refreshing is None or self._refreshing.done():
                self._refreshing = asyncio.ensure_future(self._fetch())
            await self._refreshing
        return not self.cache.is_stale()

    async def _fetch(self) -> None:
        try:
            raw = await self.gateway.get_board_lists(self.board_id)
        except RemoteError as exc:
            logger.warning("Could not fetch lists for board %s: %s", self.board_id, exc)
            return
        self.cache.replace([MirrorList.from_api(item) for item in raw])
        logger.debug("Cached %d lists for board %s", len(raw), self.board_id)

    async def lists(self) -> list[MirrorList]:
        await self.refresh()
        return self.cache.all()

    async def lookup(self, label_name: str) -> MirrorList | None:
        """Find the list for *label_name* without creating it."""
        await self.refresh()
        return self.cache.find(label_name)

    async def resolve_or_create(self, label_name: str) -> MirrorList | None:
        """Return the list for *label_name*, creating it at the board's end.

        Returns ``None`` if creation fails, or if the board's lists could
        not be read; callers skip the label.
        """
        fresh = await self.refresh()
        existing = self.cache.find(label_name)
        if existing is not None:
            return existing
        if not fresh:
            # A failed read is not a miss: the list may well exist.
            logger.warning("Lists for board %s unavailable, not creating %r",
                           self.board_id, label_name)
            return None

        # Concurrent callers for the same name share one creation request.
        task = self._creating.get(label_name)
        if task is None or task.done():
            task = asyncio.ensure_future(self._create(label_name))
            self._creating[label_name] = task
        return await task

    async def _create(self, label_name: str) -> MirrorList | None:
        try:
            raw = await self.gateway.create_list(self.board_id, label_name)
        except RemoteError as exc:
            logger.warning("Could not create list %r: %s", label_name, exc)
            return None

        created = MirrorList.from_api(raw)
        self.cache.append(created)
        logger.info("Created mirror list %r (%s)", created.name, created.id)
        return created

    def name_for(self, list_id: str) -> str | None:
        lst = self.cache.get(list_id)
        return lst.name if lst else None
