"""Trello REST client used by every mirror component.

Wraps :mod:`httpx` with the three behaviours the mirror relies on:

- ``key`` / ``token`` credentials appended as query parameters on every call
- a single retry after a fixed backoff when Trello answers ``429``
- a short pacing delay after each successful call, so a burst of
  sequential calls stays under the upstream rate limit

Any non-2xx answer (after the retry) raises :class:`RemoteError`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

from trello_mirror.config import DEFAULT_API_BASE, MirrorSettings

logger = logging.getLogger(__name__)

RATE_LIMITED = 429


class RemoteError(Exception):
    """Raised for any non-success response from Trello.

    ``status`` is ``None`` when the request never got a response
    (connection refused, timeout, ...).
    """

    def __init__(
        self,
        status: int | None,
        body: Any = None,
        *,
        method: str = "",
        path: str = "",
    ) -> None:
        self.status = status
        self.body = body
        self.method = method
        self.path = path
        super().__init__(f"{method} {path} failed ({status}): {body}")

    def body_text(self) -> str:
        if isinstance(self.body, str):
            return self.body
        return "" if self.body is None else str(self.body)


class TrelloGateway:
    """Async Trello client.

    Parameters
    ----------
    api_key, token:
        Trello credentials, sent as query parameters.
    base_url:
        API root, ``https://api.trello.com/1`` by default.
    pacing_delay:
        Seconds to sleep after each successful call.
    retry_backoff:
        Seconds to sleep before the single retry of a rate-limited call.
    transport:
        Optional :class:`httpx.AsyncBaseTransport`, used by tests to route
        requests to an in-process fake.
    sleep:
        Coroutine used for pacing and backoff (``asyncio.sleep``).
    """

    def __init__(
        self,
        api_key: str,
        token: str,
        *,
        base_url: str = DEFAULT_API_BASE,
        timeout: float = 30.0,
        pacing_delay: float = 0.1,
        retry_backoff: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.api_key = api_key
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.pacing_delay = pacing_delay
        self.retry_backoff = retry_backoff
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(
        cls,
        settings: MirrorSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "TrelloGateway":
        return cls(
            settings.api_key,
            settings.token,
            base_url=settings.api_base,
            timeout=settings.request_timeout,
            pacing_delay=settings.pacing_delay,
            retry_backoff=settings.retry_backoff,
            transport=transport,
        )

    async def __aenter__(self) -> "TrelloGateway":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Core call
    # ------------------------------------------------------------------

    async def call(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Perform one API call and return the decoded JSON (or ``None``)."""
        if self._client is None:
            raise RuntimeError("Client not initialised. Use `async with` context manager.")

        method = method.upper()
        url = f"{self.base_url}/{path.lstrip('/')}"
        query = {**(params or {}), "key": self.api_key, "token": self.token}

        resp = await self._send(method, url, path, query, body)
        if resp.status_code == RATE_LIMITED:
            logger.warning(
                "Rate limited on %s %s, retrying in %.1fs", method, path, self.retry_backoff
            )
            await self._sleep(self.retry_backoff)
            resp = await self._send(method, url, path, query, body)

        if not resp.is_success:
            raise RemoteError(resp.status_code, _decode(resp), method=method, path=path)

        logger.debug("%s %s -> %d", method, path, resp.status_code)
        if self.pacing_delay:
            await self._sleep(self.pacing_delay)
        return _decode(resp)

    async def _send(
        self,
        method: str,
        url: str,
        path: str,
        query: dict[str, Any],
        body: dict[str, Any] | None,
    ) -> httpx.Response:
        try:
            return await self._client.request(method, url, params=query, json=body)
        except httpx.HTTPError as exc:
            raise RemoteError(None, str(exc), method=method, path=path) from exc

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def get_board_lists(self, board_id: str) -> list[dict[str, Any]]:
        return await self.call("GET", f"/boards/{board_id}/lists") or []

    async def create_list(self, board_id: str, name: str) -> dict[str, Any]:
        return await self.call(
            "POST", "/lists", {"name": name, "idBoard": board_id, "pos": "bottom"}
        )

    async def get_list_cards(self, list_id: str) -> list[dict[str, Any]]:
        return await self.call("GET", f"/lists/{list_id}/cards") or []

    async def get_card(self, card_id: str) -> dict[str, Any]:
        """Fetch a card including its labels."""
        return await self.call(
            "GET", f"/cards/{card_id}", params={"fields": "name,desc,idList,labels"}
        )

    async def create_card(self, list_id: str, name: str, desc: str) -> dict[str, Any]:
        return await self.call(
            "POST", "/cards", {"idList": list_id, "name": name, "desc": desc, "pos": "bottom"}
        )

    async def update_card(self, card_id: str, name: str, desc: str) -> dict[str, Any]:
        return await self.call("PUT", f"/cards/{card_id}", {"name": name, "desc": desc})

    async def delete_card(self, card_id: str) -> None:
        await self.call("DELETE", f"/cards/{card_id}")

    async def register_webhook(
        self, callback_url: str, model_id: str, description: str
    ) -> dict[str, Any]:
        return await self.call(
            "POST",
            "/webhooks",
            {"description": description, "callbackURL": callback_url, "idModel": model_id},
        )


def _decode(resp: httpx.Response) -> Any:
    if not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return resp.text
