"""Find mirror cards by their back-reference tag.

Trello has no foreign key between a mirror and its master, so mirrors are
found by scanning every non-master list and filtering descriptions.  Cost
is lists x cards, which is fine for the board sizes this runs against and
the list cache keeps repeated scans cheap.

Lookups never fail the caller: "lookup failed" and "no mirrors" are
treated the same way.
"""

from __future__ import annotations

import logging

from trello_mirror.gateway import RemoteError, TrelloGateway
from trello_mirror.lists import ListResolver
from trello_mirror.models import MirrorCard, references

logger = logging.getLogger(__name__)


class MirrorLocator:
    def __init__(self, gateway: TrelloGateway, resolver: ListResolver, master_list_id: str) -> None:
        self.gateway = gateway
        self.resolver = resolver
        self.master_list_id = master_list_id

    async def find_mirrors(self, master_id: str) -> list[MirrorCard]:
        """All mirrors of *master_id* across every non-master list."""
        found: list[MirrorCard] = []
        try:
            for lst in await self.resolver.lists():
                if lst.id == self.master_list_id:
                    continue
                found.extend(await self._scan(lst.id, master_id))
        except RemoteError as exc:
            logger.warning("Mirror lookup for %s failed: %s", master_id, exc)
            return []
        return found

    async def find_in_list(self, list_id: str, master_id: str) -> list[MirrorCard]:
        """Mirrors of *master_id* in one list, read fresh from Trello."""
        try:
            return await self._scan(list_id, master_id)
        except RemoteError as exc:
            logger.warning("Mirror lookup for %s in list %s failed: %s", master_id, list_id, exc)
            return []

    async def _scan(self, list_id: str, master_id: str) -> list[MirrorCard]:
        cards = await self.gateway.get_list_cards(list_id)
        return [
            MirrorCard.from_api({"idList": list_id, **card})
            for card in cards
            if references(card.get("desc"), master_id)
        ]
