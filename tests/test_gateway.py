"""Unit tests for the Trello gateway: credentials, 429 retry, pacing, errors."""

import asyncio

import httpx
import pytest

from fake_trello import API_KEY, BOARD_ID, MASTER_LIST_ID, NOT_FOUND_TEXT, TOKEN
from trello_mirror.gateway import RemoteError, TrelloGateway


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def _gateway(fake, api_key=API_KEY, **kwargs):
    kwargs.setdefault("pacing_delay", 0)
    kwargs.setdefault("retry_backoff", 0)
    return TrelloGateway(api_key, TOKEN, transport=fake.transport(), **kwargs)


def test_call_outside_context_raises():
    gateway = TrelloGateway(API_KEY, TOKEN)
    with pytest.raises(RuntimeError, match="async with"):
        asyncio.run(gateway.call("GET", "/boards/x/lists"))


def test_credentials_sent_on_every_call(fake):
    async def _test():
        async with _gateway(fake) as gw:
            lists = await gw.get_board_lists(BOARD_ID)
            cards = await gw.get_list_cards(MASTER_LIST_ID)
        assert [lst["name"] for lst in lists] == ["Master"]
        assert cards == []

    asyncio.run(_test())


def test_bad_credentials_raise_remote_error(fake):
    async def _test():
        async with _gateway(fake, api_key="wrong") as gw:
            with pytest.raises(RemoteError) as info:
                await gw.get_board_lists(BOARD_ID)
        assert info.value.status == 401
        assert info.value.body == "invalid key"

    asyncio.run(_test())


def test_not_found_carries_status_body_and_request(fake):
    async def _test():
        async with _gateway(fake) as gw:
            with pytest.raises(RemoteError) as info:
                await gw.get_card("missing")
        err = info.value
        assert err.status == 404
        assert err.body == NOT_FOUND_TEXT
        assert err.method == "GET"
        assert err.path == "/cards/missing"

    asyncio.run(_test())


class TestRateLimit:
    def test_retries_once_after_backoff(self, fake):
        sleep = SleepRecorder()
        fake.throttle(1)

        async def _test():
            async with _gateway(fake, pacing_delay=0.1, retry_backoff=1.0, sleep=sleep) as gw:
                return await gw.get_board_lists(BOARD_ID)

        lists = asyncio.run(_test())
        assert len(lists) == 1
        assert fake.count_calls("GET", "/boards") == 2
        # backoff before the retry, then pacing after the success
        assert sleep.delays == [1.0, 0.1]

    def test_second_429_propagates(self, fake):
        sleep = SleepRecorder()
        fake.throttle(2)

        async def _test():
            async with _gateway(fake, pacing_delay=0.1, retry_backoff=1.0, sleep=sleep) as gw:
                with pytest.raises(RemoteError) as info:
                    await gw.get_board_lists(BOARD_ID)
            return info.value

        err = asyncio.run(_test())
        assert err.status == 429
        assert fake.count_calls("GET", "/boards") == 2
        assert sleep.delays == [1.0]

    def test_other_errors_are_not_retried(self, fake):
        fake.fail("GET", "/boards", status=500)

        async def _test():
            async with _gateway(fake) as gw:
                with pytest.raises(RemoteError):
                    await gw.get_board_lists(BOARD_ID)

        asyncio.run(_test())
        assert fake.count_calls("GET", "/boards") == 1


def test_pacing_after_each_successful_call(fake):
    sleep = SleepRecorder()

    async def _test():
        async with _gateway(fake, pacing_delay=0.1, sleep=sleep) as gw:
            await gw.get_board_lists(BOARD_ID)
            await gw.get_list_cards(MASTER_LIST_ID)

    asyncio.run(_test())
    assert sleep.delays == [0.1, 0.1]


def test_transport_failure_becomes_remote_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def _test():
        gateway = TrelloGateway(API_KEY, TOKEN, transport=httpx.MockTransport(refuse), pacing_delay=0)
        async with gateway as gw:
            with pytest.raises(RemoteError) as info:
                await gw.get_board_lists(BOARD_ID)
        return info.value

    err = asyncio.run(_test())
    assert err.status is None
    assert "connection refused" in err.body_text()


def test_card_write_round_trip(fake):
    target = fake.add_list("Bug")

    async def _test():
        async with _gateway(fake) as gw:
            created = await gw.create_card(target["id"], "Fix bug", "details")
            await gw.update_card(created["id"], "Fix bug (urgent)", "more details")
            card = await gw.get_card(created["id"])
            deleted = await gw.delete_card(created["id"])
        return card, deleted

    card, deleted = asyncio.run(_test())
    assert card["name"] == "Fix bug (urgent)"
    assert card["desc"] == "more details"
    assert card["idList"] == target["id"]
    assert deleted is None
    assert fake.cards_in(target["id"]) == []


def test_create_list_goes_to_board_bottom(fake):
    async def _test():
        async with _gateway(fake) as gw:
            return await gw.create_list(BOARD_ID, "Feature")

    created = asyncio.run(_test())
    assert created["name"] == "Feature"
    assert created["pos"] == max(lst["pos"] for lst in fake.lists.values())
