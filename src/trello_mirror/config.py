"""Runtime settings for the mirror service.

Settings are read from environment variables.  Credentials never live in
code or on disk; they come from ``TRELLO_API_KEY`` / ``TRELLO_TOKEN``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Mapping

DEFAULT_API_BASE = "https://api.trello.com/1"

_TRUTHY = {"1", "true", "yes", "on"}


class ConfigError(Exception):
    """Raised when required settings are missing or malformed."""


def _flag(value: str | None, default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUTHY


def _number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


@dataclass
class MirrorSettings:
    """Everything the service needs to talk to one Trello board."""

    api_key: str = ""
    token: str = ""
    board_id: str = ""
    master_list_id: str = ""
    api_base: str = DEFAULT_API_BASE
    webhook_url: str | None = None

    cache_ttl: float = 30.0
    suppress_window: float = 30.0
    pacing_delay: float = 0.1
    retry_backoff: float = 1.0
    request_timeout: float = 30.0

    prune_on_update: bool = True
    serialize_per_card: bool = False

    port: int = 8080
    log_level: str = "INFO"

    # Fields that must be non-empty before the service can run.
    REQUIRED = {
        "api_key": "TRELLO_API_KEY",
        "token": "TRELLO_TOKEN",
        "board_id": "TRELLO_BOARD_ID",
        "master_list_id": "TRELLO_MASTER_LIST_ID",
    }

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "MirrorSettings":
        """Build settings from *env* (defaults to ``os.environ``)."""
        env = os.environ if env is None else env
        return cls(
            api_key=env.get("TRELLO_API_KEY", ""),
            token=env.get("TRELLO_TOKEN", ""),
            board_id=env.get("TRELLO_BOARD_ID", ""),
            master_list_id=env.get("TRELLO_MASTER_LIST_ID", ""),
            api_base=env.get("TRELLO_API_BASE") or DEFAULT_API_BASE,
            webhook_url=env.get("MIRROR_WEBHOOK_URL") or None,
            cache_ttl=_number(env, "MIRROR_CACHE_TTL", 30.0),
            suppress_window=_number(env, "MIRROR_SUPPRESS_WINDOW", 30.0),
            pacing_delay=_number(env, "MIRROR_PACING_DELAY", 0.1),
            retry_backoff=_number(env, "MIRROR_RETRY_BACKOFF", 1.0),
            request_timeout=_number(env, "MIRROR_REQUEST_TIMEOUT", 30.0),
            prune_on_update=_flag(env.get("MIRROR_PRUNE_ON_UPDATE"), True),
            serialize_per_card=_flag(env.get("MIRROR_SERIALIZE_PER_CARD"), False),
            port=int(_number(env, "PORT", 8080)),
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )

    def missing(self, *names: str) -> list[str]:
        """Return env var names for required fields that are empty.

        With no *names*, every required field is checked.
        """
        wanted = names or tuple(self.REQUIRED)
        return [self.REQUIRED[n] for n in wanted if not getattr(self, n)]

    def validate(self, *names: str) -> "MirrorSettings":
        """Raise :class:`ConfigError` if required settings are missing."""
        missing = self.missing(*names)
        if missing:
            raise ConfigError(
                "Missing required environment variables: " + ", ".join(missing)
            )
        return self

    def redacted(self) -> dict[str, object]:
        """Settings as a dict with credentials masked, for logging."""
        out: dict[str, object] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in ("api_key", "token") and value:
                value = value[:4] + "..."
            out[f.name] = value
        return out
