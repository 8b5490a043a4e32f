"""One-time webhook registration for the mirror board.

Usage::

    trello-mirror-register \
        [--callback-url https://example.com/api/webhook] \
        [--board-id <board>] [--description TEXT]

Defaults come from ``MIRROR_WEBHOOK_URL`` and ``TRELLO_BOARD_ID``.  A
webhook that already exists for the same callback and board counts as
success.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any

import httpx

from trello_mirror.config import MirrorSettings
from trello_mirror.gateway import RemoteError, TrelloGateway

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "Trello Mirror Webhook - Card Updates"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def is_already_registered(exc: RemoteError) -> bool:
    return exc.status == 400 and "already exists" in exc.body_text().lower()


async def register(
    gateway: TrelloGateway, callback_url: str, board_id: str, description: str
) -> dict[str, Any] | None:
    """Register the webhook.  Returns the new webhook, or ``None`` if it existed."""
    try:
        hook = await gateway.register_webhook(callback_url, board_id, description)
    except RemoteError as exc:
        if is_already_registered(exc):
            logger.info("Webhook already exists for this board and URL")
            return None
        raise
    logger.info("Webhook registered: %s -> %s", hook.get("id"), hook.get("callbackURL"))
    return hook


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Register the mirror webhook with Trello")
    p.add_argument("--callback-url", default=None, help="defaults to $MIRROR_WEBHOOK_URL")
    p.add_argument("--board-id", default=None, help="defaults to $TRELLO_BOARD_ID")
    p.add_argument("--description", default=DEFAULT_DESCRIPTION)
    return p.parse_args(argv)


def main(
    argv: list[str] | None = None,
    *,
    settings: MirrorSettings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    logging.basicConfig(level=logging.INFO, format="  %(message)s")
    args = parse_args(argv)
    settings = settings or MirrorSettings.from_env()

    callback_url = args.callback_url or settings.webhook_url
    board_id = args.board_id or settings.board_id
    missing = settings.missing("api_key", "token")
    if not callback_url:
        missing.append("MIRROR_WEBHOOK_URL")
    if not board_id:
        missing.append("TRELLO_BOARD_ID")
    if missing:
        logger.error("Missing required settings: %s", ", ".join(missing))
        return EXIT_CONFIG

    logger.info("Registering webhook for board %s -> %s", board_id, callback_url)

    async def _run() -> None:
        async with TrelloGateway.from_settings(settings, transport=transport) as gateway:
            await register(gateway, callback_url, board_id, args.description)

    try:
        asyncio.run(_run())
    except RemoteError as exc:
        logger.error("Failed to register webhook (status %s): %s", exc.status, exc.body)
        return EXIT_FAILED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
