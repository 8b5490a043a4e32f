"""Pydantic models for the subset of Trello webhook payloads we consume."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

CREATE_CARD = "createCard"
UPDATE_CARD = "updateCard"
ADD_LABEL = "addLabelToCard"
REMOVE_LABEL = "removeLabelFromCard"
DELETE_CARD = "deleteCard"

KNOWN_TYPES = {CREATE_CARD, UPDATE_CARD, ADD_LABEL, REMOVE_LABEL, DELETE_CARD}


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RefModel(_Lenient):
    id: str
    name: Optional[str] = None


class LabelModel(_Lenient):
    id: Optional[str] = None
    name: Optional[str] = None
    color: Optional[str] = None


class ActionData(_Lenient):
    card: Optional[RefModel] = None
    list: Optional[RefModel] = None
    list_after: Optional[RefModel] = Field(default=None, alias="listAfter")
    list_before: Optional[RefModel] = Field(default=None, alias="listBefore")
    label: Optional[LabelModel] = None

    def list_ids(self) -> set[str]:
        """Every list id the event mentions."""
        return {ref.id for ref in (self.list, self.list_after, self.list_before) if ref}


class Action(_Lenient):
    type: str
    data: ActionData = Field(default_factory=ActionData)


class WebhookPayload(_Lenient):
    action: Optional[Action] = None
