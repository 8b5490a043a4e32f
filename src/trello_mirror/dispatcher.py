"""Routes inbound Trello change events to the reconciliation engine.

The contract with Trello is "always acknowledge": a non-2xx answer makes
Trello redeliver, and redelivery only adds duplicate-mirror risk.  So
malformed payloads, foreign lists and internal failures all end in an
outcome the HTTP layer answers with 200.  Failures are visible in the log.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from trello_mirror.engine import ReconciliationEngine
from trello_mirror.events import (
    ADD_LABEL,
    CREATE_CARD,
    DELETE_CARD,
    KNOWN_TYPES,
    REMOVE_LABEL,
    UPDATE_CARD,
    Action,
    WebhookPayload,
)
from trello_mirror.models import SyncReport

logger = logging.getLogger(__name__)


@dataclass
class DispatchOutcome:
    """What happened to one notification."""

    event_type: str | None = None
    card_id: str | None = None
    routed: bool = False
    reason: str = ""
    report: SyncReport | None = None
    error: str | None = None


class NotificationDispatcher:
    def __init__(self, engine: ReconciliationEngine, master_list_id: str) -> None:
        self.engine = engine
        self.master_list_id = master_list_id

    async def dispatch(self, payload: Any) -> DispatchOutcome:
        """Handle one webhook body.  Never raises."""
        logger.debug("Webhook payload: %r", payload)
        if not isinstance(payload, dict):
            return DispatchOutcome(reason="no payload")

        try:
            parsed = WebhookPayload.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Ignoring malformed notification: %s", exc.error_count())
            return DispatchOutcome(reason="malformed")

        action = parsed.action
        if action is None:
            return DispatchOutcome(reason="no action")

        outcome = DispatchOutcome(event_type=action.type)
        if action.type not in KNOWN_TYPES:
            outcome.reason = "ignored type"
            return outcome

        card = action.data.card
        if card is None:
            logger.warning("%s notification without a card, ignoring", action.type)
            outcome.reason = "malformed"
            return outcome
        outcome.card_id = card.id

        if not self.concerns_master(action):
            outcome.reason = "not master list"
            return outcome

        try:
            outcome.report = await self._route(action, card.id)
        except Exception as exc:
            logger.exception("Failed to handle %s for card %s", action.type, card.id)
            outcome.error = str(exc)
            outcome.reason = "error"
            return outcome

        outcome.routed = outcome.report is not None
        if not outcome.routed:
            outcome.reason = "malformed"
        return outcome

    def concerns_master(self, action: Action) -> bool:
        return self.master_list_id in action.data.list_ids()

    async def _route(self, action: Action, card_id: str) -> SyncReport | None:
        logger.info("Handling %s for card %s", action.type, card_id)
        if action.type == CREATE_CARD:
            return await self.engine.on_card_created(card_id)
        if action.type == UPDATE_CARD:
            return await self.engine.on_card_updated(card_id)
        if action.type == DELETE_CARD:
            return await self.engine.on_card_deleted(card_id)

        label = action.data.label
        if label is None or not label.name:
            logger.warning("%s for card %s carries no label name", action.type, card_id)
            return None
        if action.type == ADD_LABEL:
            return await self.engine.on_label_added(card_id, label.name)
        if action.type == REMOVE_LABEL:
            return await self.engine.on_label_removed(card_id, label.name)
        return None
