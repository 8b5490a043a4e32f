"""Mirror reconciliation.

Given the current state of a master card, make the board hold exactly one
mirror per label name: create the missing ones, refresh the stale ones,
delete the ones whose label is gone.  Every write is preceded by a fresh
read of the target list, and every create is gated by the
:class:`~trello_mirror.suppressor.SuppressionWindow`.

Each external step catches :class:`~trello_mirror.gateway.RemoteError`
locally, so one label's failure never blocks the others.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from trello_mirror.config import MirrorSettings
from trello_mirror.gateway import RemoteError, TrelloGateway
from trello_mirror.lists import ListCache, ListResolver
from trello_mirror.locator import MirrorLocator
from trello_mirror.models import MasterCard, MirrorCard, MirrorList, SyncReport
from trello_mirror.suppressor import SuppressionWindow

logger = logging.getLogger(__name__)

NOT_FOUND = 404


class ReconciliationEngine:
    """Applies master-card changes to the mirror lists.

    Parameters
    ----------
    prune_on_update:
        Delete mirrors whose label is no longer on the card during a full
        update, and collapse duplicate mirrors in one list.
    serialize_per_card:
        Run operations for the same master card one at a time.  Stronger
        than the suppression window, at the cost of holding a lock per card.
    """

    def __init__(
        self,
        gateway: TrelloGateway,
        resolver: ListResolver,
        locator: MirrorLocator,
        suppressor: SuppressionWindow,
        *,
        prune_on_update: bool = True,
        serialize_per_card: bool = False,
    ) -> None:
        self.gateway = gateway
        self.resolver = resolver
        self.locator = locator
        self.suppressor = suppressor
        self.prune_on_update = prune_on_update
        self.serialize_per_card = serialize_per_card
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @classmethod
    def build(
        cls,
        gateway: TrelloGateway,
        settings: MirrorSettings,
        *,
        clock: Callable[[], float] = time.monotonic,
        cache: ListCache | None = None,
        suppressor: SuppressionWindow | None = None,
    ) -> "ReconciliationEngine":
        """Wire an engine and its collaborators from *settings*."""
        cache = cache or ListCache(ttl=settings.cache_ttl, clock=clock)
        resolver = ListResolver(gateway, cache, settings.board_id)
        locator = MirrorLocator(gateway, resolver, settings.master_list_id)
        return cls(
            gateway,
            resolver,
            locator,
            suppressor or SuppressionWindow(window=settings.suppress_window, clock=clock),
            prune_on_update=settings.prune_on_update,
            serialize_per_card=settings.serialize_per_card,
        )

    # ------------------------------------------------------------------
    # Event operations
    # ------------------------------------------------------------------

    async def on_card_created(self, card_id: str) -> SyncReport:
        report = SyncReport(card_id)
        async with self._card_scope(card_id):
            existing = await self.locator.find_mirrors(card_id)
            if existing:
                # Redelivered creation event: the card is already mirrored.
                logger.info("Card %s already has %d mirror(s), skipping", card_id, len(existing))
                report.skipped += 1
                report.mirrors = len(existing)
                return report

            card = await self._fetch(card_id)
            if card is None:
                return report
            report.card_name = card.name

            names = card.label_names()
            if not names:
                logger.info("Card %r has no labels, nothing to mirror", card.name)
                return report

            for name in names:
                mirror_list = await self.resolver.resolve_or_create(name)
                if mirror_list is None:
                    report.skipped += 1
                    continue
                await self._ensure_mirror(card_id, mirror_list, report, card)
        return report

    async def on_card_updated(self, card_id: str) -> SyncReport:
        async with self._card_scope(card_id):
            return await self._reconcile(card_id)

    async def sync_card(self, card_id: str) -> SyncReport:
        """Full reconciliation of one card, on demand."""
        logger.info("Manual sync requested for card %s", card_id)
        return await self.on_card_updated(card_id)

    async def on_label_added(self, card_id: str, label_name: str) -> SyncReport:
        report = SyncReport(card_id)
        async with self._card_scope(card_id):
            mirror_list = await self.resolver.resolve_or_create(label_name)
            if mirror_list is None:
                report.skipped += 1
                return report
            await self._ensure_mirror(card_id, mirror_list, report)
        return report

    async def on_label_removed(self, card_id: str, label_name: str) -> SyncReport:
        report = SyncReport(card_id)
        async with self._card_scope(card_id):
            mirror_list = await self.resolver.lookup(label_name)
            if mirror_list is None:
                logger.info("No list named %r, nothing to unmirror", label_name)
                return report
            for mirror in await self.locator.find_in_list(mirror_list.id, card_id):
                if await self._delete(mirror):
                    report.deleted += 1
        return report

    async def on_card_deleted(self, card_id: str) -> SyncReport:
        report = SyncReport(card_id)
        async with self._card_scope(card_id):
            mirrors = await self.locator.find_mirrors(card_id)
            logger.info("Master card %s deleted, removing %d mirror(s)", card_id, len(mirrors))
            for mirror in mirrors:
                if await self._delete(mirror):
                    report.deleted += 1
        return report

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def _reconcile(self, card_id: str) -> SyncReport:
        report = SyncReport(card_id)
        card = await self._fetch(card_id)
        if card is None:
            return report
        report.card_name = card.name

        mirrors = await self.locator.find_mirrors(card_id)
        if self.prune_on_update:
            mirrors = await self._prune(card, mirrors, report)

        for mirror in mirrors:
            if mirror.matches(card):
                continue
            if await self._update(mirror, card):
                report.updated += 1

        held = {m.list_id for m in mirrors}
        for name in card.label_names():
            mirror_list = await self.resolver.resolve_or_create(name)
            if mirror_list is None:
                report.skipped += 1
                continue
            if mirror_list.id in held:
                continue
            await self._ensure_mirror(card_id, mirror_list, report, card)

        report.mirrors = len(mirrors) + report.created
        return report

    async def _prune(
        self, card: MasterCard, mirrors: list[MirrorCard], report: SyncReport
    ) -> list[MirrorCard]:
        """Delete mirrors for labels no longer on *card*, and duplicates."""
        wanted = set(card.label_names())
        kept: list[MirrorCard] = []
        seen: set[str] = set()
        for mirror in mirrors:
            list_name = self.resolver.name_for(mirror.list_id)
            if mirror.list_id in seen:
                reason = "duplicate"
            elif list_name is not None and list_name not in wanted:
                reason = f"label {list_name!r} removed"
            else:
                kept.append(mirror)
                seen.add(mirror.list_id)
                continue
            logger.info("Dropping mirror %s of %r (%s)", mirror.id, card.name, reason)
            if await self._delete(mirror):
                report.deleted += 1
        return kept

    async def _ensure_mirror(
        self,
        card_id: str,
        mirror_list: MirrorList,
        report: SyncReport,
        card: MasterCard | None = None,
    ) -> None:
        """Create the mirror of *card_id* in *mirror_list* unless one exists."""
        if await self.locator.find_in_list(mirror_list.id, card_id):
            report.skipped += 1
            return

        if card is None:
            card = await self._fetch(card_id)
            if card is None:
                return
            report.card_name = card.name

        if self.suppressor.should_suppress_create(card_id, mirror_list.id):
            report.skipped += 1
            return

        if await self._create(card, mirror_list) is not None:
            report.created += 1
        else:
            report.skipped += 1

    # ------------------------------------------------------------------
    # Remote steps
    # ------------------------------------------------------------------

    async def _fetch(self, card_id: str) -> MasterCard | None:
        try:
            return MasterCard.from_api(await self.gateway.get_card(card_id))
        except RemoteError as exc:
            logger.warning("Could not fetch master card %s: %s", card_id, exc)
            return None

    async def _create(self, card: MasterCard, mirror_list: MirrorList) -> MirrorCard | None:
        try:
            raw = await self.gateway.create_card(mirror_list.id, card.name, card.mirror_desc())
        except RemoteError as exc:
            logger.warning("Could not mirror %r into %r: %s", card.name, mirror_list.name, exc)
            return None
        logger.info("Mirrored %r into list %r", card.name, mirror_list.name)
        return MirrorCard.from_api({"idList": mirror_list.id, **raw})

    async def _update(self, mirror: MirrorCard, card: MasterCard) -> bool:
        try:
            await self.gateway.update_card(mirror.id, card.name, card.mirror_desc())
        except RemoteError as exc:
            logger.warning("Could not update mirror %s: %s", mirror.id, exc)
            return False
        logger.info("Updated mirror %s of %r", mirror.id, card.name)
        return True

    async def _delete(self, mirror: MirrorCard) -> bool:
        try:
            await self.gateway.delete_card(mirror.id)
        except RemoteError as exc:
            if exc.status == NOT_FOUND:
                logger.info("Mirror %s already gone", mirror.id)
            else:
                logger.warning("Could not delete mirror %s: %s", mirror.id, exc)
            return False
        logger.info("Deleted mirror %s", mirror.id)
        return True

    @asynccontextmanager
    async def _card_scope(self, card_id: str) -> AsyncIterator[None]:
        if not self.serialize_per_card:
            yield
            return
        lock = self._locks.get(card_id)
        if lock is None:
            lock = self._locks[card_id] = asyncio.Lock()
        self._lock_users[card_id] = self._lock_users.get(card_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            # Drop the lock once nobody holds or waits on it.
            self._lock_users[card_id] -= 1
            if not self._lock_users[card_id]:
                del self._lock_users[card_id]
                del self._locks[card_id]
