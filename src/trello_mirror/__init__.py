"""Trello Mirror - keeps one mirror list per label in sync with a master list."""

from trello_mirror.config import ConfigError, MirrorSettings
from trello_mirror.gateway import RemoteError, TrelloGateway
from trello_mirror.lists import ListCache, ListResolver
from trello_mirror.locator import MirrorLocator
from trello_mirror.suppressor import SuppressionWindow
from trello_mirror.engine import ReconciliationEngine
from trello_mirror.dispatcher import DispatchOutcome, NotificationDispatcher
from trello_mirror.models import (
    Label,
    MasterCard,
    MirrorCard,
    MirrorList,
    SyncReport,
    backref_tag,
    mirror_description,
)

__all__ = [
    "ConfigError",
    "MirrorSettings",
    "RemoteError",
    "TrelloGateway",
    "ListCache",
    "ListResolver",
    "MirrorLocator",
    "SuppressionWindow",
    "ReconciliationEngine",
    "DispatchOutcome",
    "NotificationDispatcher",
    "Label",
    "MasterCard",
    "MirrorCard",
    "MirrorList",
    "SyncReport",
    "backref_tag",
    "mirror_description",
]
__version__ = "0.1.0"
