"""Run the webhook server: ``python -m trello_mirror [--host H] [--port P]``."""

from __future__ import annotations

import argparse
import logging
import sys

from trello_mirror.config import ConfigError, MirrorSettings


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Trello mirror webhook server")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=None, help="defaults to $PORT or 8080")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    import uvicorn

    from trello_mirror.server import create_app

    args = parse_args(argv)
    settings = MirrorSettings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger = logging.getLogger("trello_mirror")

    try:
        app = create_app(settings)
    except ConfigError as exc:
        logger.error("%s", exc)
        return 2

    logger.info("Settings: %s", settings.redacted())
    uvicorn.run(app, host=args.host, port=args.port or settings.port, log_level="warning")
    return 0


if __name__ == "__main__":
    sys.exit(main())
