"""Board objects the mirror engine reads and writes.

Everything here is a thin view over Trello JSON.  The only linkage
between a mirror card and its master is the back-reference tag embedded
in the mirror's description.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

TAG_PREFIX = "[AUTO-SYNCED FROM MASTER - MASTER_ID:"
TAG_SUFFIX = "]"


def backref_tag(master_id: str) -> str:
    """Return the literal tag that marks a mirror of *master_id*."""
    return f"{TAG_PREFIX}{master_id}{TAG_SUFFIX}"


def backref_marker(master_id: str) -> str:
    """Substring searched for in mirror descriptions.

    Includes the closing bracket so ``abc`` never matches a mirror of ``abcd``.
    """
    return f"MASTER_ID:{master_id}{TAG_SUFFIX}"


def mirror_description(master_desc: str, master_id: str) -> str:
    """Master description followed by the back-reference tag."""
    tag = backref_tag(master_id)
    if not master_desc:
        return tag
    return f"{master_desc}\n\n{tag}"


def references(desc: str | None, master_id: str) -> bool:
    return bool(desc) and backref_marker(master_id) in desc


@dataclass(frozen=True)
class Label:
    id: str
    name: str
    color: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Label":
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name") or "",
            color=data.get("color"),
        )


@dataclass
class MasterCard:
    """A card on the master list, as returned by ``GET /cards/{id}``."""

    id: str
    name: str
    desc: str = ""
    list_id: str | None = None
    labels: list[Label] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "MasterCard":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            desc=data.get("desc") or "",
            list_id=data.get("idList"),
            labels=[Label.from_api(lbl) for lbl in data.get("labels") or []],
        )

    def label_names(self) -> list[str]:
        """Distinct non-empty label names, in the order Trello returned them."""
        seen: list[str] = []
        for label in self.labels:
            if label.name and label.name not in seen:
                seen.append(label.name)
        return seen

    def mirror_desc(self) -> str:
        return mirror_description(self.desc, self.id)


@dataclass(frozen=True)
class MirrorList:
    id: str
    name: str
    board_id: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "MirrorList":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            board_id=data.get("idBoard"),
        )


@dataclass
class MirrorCard:
    id: str
    list_id: str
    name: str
    desc: str

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "MirrorCard":
        return cls(
            id=str(data["id"]),
            list_id=str(data.get("idList", "")),
            name=data.get("name") or "",
            desc=data.get("desc") or "",
        )

    def matches(self, master: MasterCard) -> bool:
        """True if this mirror already carries the master's content."""
        return self.name == master.name and self.desc == master.mirror_desc()


@dataclass
class SyncReport:
    """Counts of what one reconciliation call did."""

    card_id: str
    card_name: str | None = None
    created: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    mirrors: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "card_id": self.card_id,
            "card_name": self.card_name,
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "skipped": self.skipped,
            "mirrors": self.mirrors,
        }
