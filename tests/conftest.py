"""Shared fixtures: a fake Trello board, a controllable clock and a wired engine."""

from contextlib import asynccontextmanager
from dataclasses import dataclass

import pytest

from fake_trello import API_KEY, BOARD_ID, MASTER_LIST_ID, TOKEN, FakeTrello
from trello_mirror.config import MirrorSettings
from trello_mirror.dispatcher import NotificationDispatcher
from trello_mirror.engine import ReconciliationEngine
from trello_mirror.gateway import TrelloGateway


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake():
    board = FakeTrello()
    board.add_list("Master", list_id=MASTER_LIST_ID)
    return board


@pytest.fixture
def settings():
    return MirrorSettings(
        api_key=API_KEY,
        token=TOKEN,
        board_id=BOARD_ID,
        master_list_id=MASTER_LIST_ID,
        pacing_delay=0,
        retry_backoff=0,
    )


@dataclass
class Harness:
    gateway: TrelloGateway
    engine: ReconciliationEngine
    dispatcher: NotificationDispatcher


@pytest.fixture
def harness(fake, clock, settings):
    """Factory for an engine wired to the fake board.

    Usage::

        async with harness() as h:
            await h.engine.on_card_created("M1")
    """

    @asynccontextmanager
    async def _make(**overrides):
        for key, value in overrides.items():
            setattr(settings, key, value)
        async with TrelloGateway.from_settings(settings, transport=fake.transport()) as gateway:
            engine = ReconciliationEngine.build(gateway, settings, clock=clock)
            yield Harness(gateway, engine, NotificationDispatcher(engine, MASTER_LIST_ID))

    return _make
