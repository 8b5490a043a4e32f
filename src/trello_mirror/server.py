"""
Trello Mirror - webhook server

FastAPI app that receives Trello board webhooks and keeps per-label
mirror lists in sync with the master list.

Endpoints:
    GET  /                       -> service status
    GET|HEAD /api/webhook        -> readiness probe (Trello checks this on registration)
    POST /api/webhook            -> change notification, always answered 200
    POST /test-sync/{card_id}    -> reconcile one master card on demand
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from trello_mirror.config import MirrorSettings
from trello_mirror.dispatcher import NotificationDispatcher
from trello_mirror.engine import ReconciliationEngine
from trello_mirror.gateway import TrelloGateway

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/api/webhook"
ACK = {"message": "OK", "received": True}


def create_app(
    settings: Optional[MirrorSettings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Optional[Callable[[], float]] = None,
) -> FastAPI:
    """Build the webhook app.

    ``transport`` and ``clock`` are for tests: they route Trello calls to
    an in-process fake and drive the cache/suppression windows.
    """
    settings = (settings or MirrorSettings.from_env()).validate()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with TrelloGateway.from_settings(settings, transport=transport) as gateway:
            extra = {"clock": clock} if clock else {}
            engine = ReconciliationEngine.build(gateway, settings, **extra)
            app.state.engine = engine
            app.state.dispatcher = NotificationDispatcher(engine, settings.master_list_id)
            logger.info("Monitoring master list %s on board %s",
                        settings.master_list_id, settings.board_id)
            yield

    app = FastAPI(
        title="Trello Mirror",
        description="Mirrors master-list cards into one list per label",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "HEAD", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    # =========================================================================
    # Status
    # =========================================================================

    @app.get("/")
    async def status():
        return {
            "message": "Trello Mirror Webhook Server is running!",
            "endpoints": {"webhook": WEBHOOK_PATH},
        }

    # =========================================================================
    # Webhook
    # =========================================================================

    @app.api_route(WEBHOOK_PATH, methods=["GET", "HEAD"])
    async def webhook_ready():
        return {"message": "Webhook endpoint is running!", "status": "ready"}

    @app.options(WEBHOOK_PATH)
    async def webhook_options():
        return Response(status_code=200)

    @app.post(WEBHOOK_PATH)
    async def webhook(request: Request):
        payload: Any = None
        body = await request.body()
        if body:
            try:
                payload = await request.json()
            except ValueError:
                logger.warning("Webhook body is not JSON (%d bytes), ignoring", len(body))

        outcome = await request.app.state.dispatcher.dispatch(payload)
        if outcome.routed:
            logger.info("%s for %s done: %s", outcome.event_type, outcome.card_id,
                        outcome.report.to_dict())
        elif outcome.reason:
            logger.debug("Notification not routed: %s", outcome.reason)
        return ACK

    @app.api_route(WEBHOOK_PATH, methods=["PUT", "PATCH", "DELETE"])
    async def webhook_not_allowed(request: Request):
        return JSONResponse(
            status_code=405,
            content={"error": "Method not allowed", "method": request.method},
        )

    # =========================================================================
    # Manual sync
    # =========================================================================

    @app.post("/test-sync/{card_id}")
    async def manual_sync(card_id: str, request: Request):
        report = await request.app.state.engine.sync_card(card_id)
        if report.card_name is None:
            return JSONResponse(
                status_code=404,
                content={"error": "Master card not found", "card_id": card_id},
            )
        return {
            "message": "Sync test complete",
            "masterCard": report.card_name,
            "mirrorCount": report.mirrors,
            "created": report.created,
            "updated": report.updated,
            "deleted": report.deleted,
        }

    return app
