"""Tests for the list cache and label -> list resolution."""

import asyncio

import pytest

from fake_trello import API_KEY, BOARD_ID, TOKEN
from trello_mirror.gateway import TrelloGateway
from trello_mirror.lists import ListCache, ListResolver
from trello_mirror.models import MirrorList


@pytest.fixture
def cache(clock):
    return ListCache(ttl=30.0, clock=clock)


def _run(fake, cache, fn):
    async def _test():
        gateway = TrelloGateway(API_KEY, TOKEN, transport=fake.transport(), pacing_delay=0)
        async with gateway as gw:
            return await fn(ListResolver(gw, cache, BOARD_ID))

    return asyncio.run(_test())


class TestListCache:
    def test_empty_cache_is_stale(self, cache):
        assert cache.is_stale()

    def test_fresh_until_ttl_elapses(self, cache, clock):
        cache.replace([MirrorList("l1", "Bug")])
        assert not cache.is_stale()
        clock.advance(30)
        assert not cache.is_stale()
        clock.advance(0.5)
        assert cache.is_stale()

    def test_append_keeps_fetch_time(self, cache, clock):
        cache.replace([MirrorList("l1", "Bug")])
        clock.advance(29)
        cache.append(MirrorList("l2", "Feature"))
        clock.advance(2)
        assert cache.is_stale()
        assert cache.find("Feature").id == "l2"

    def test_empty_board_is_a_valid_fetch(self, cache):
        cache.replace([])
        assert not cache.is_stale()

    def test_find_is_case_sensitive(self, cache):
        cache.replace([MirrorList("l1", "Bug")])
        assert cache.find("Bug").id == "l1"
        assert cache.find("bug") is None


class TestResolver:
    def test_existing_list_is_reused(self, fake, cache):
        bug = fake.add_list("Bug")
        found = _run(fake, cache, lambda r: r.resolve_or_create("Bug"))
        assert found.id == bug["id"]
        assert fake.count_calls("POST", "/lists") == 0

    def test_missing_list_created_and_cached(self, fake, cache):
        async def _go(resolver):
            first = await resolver.resolve_or_create("Feature")
            second = await resolver.resolve_or_create("Feature")
            return first, second

        first, second = _run(fake, cache, _go)
        assert first.name == "Feature"
        assert second.id == first.id
        assert len(fake.list_named("Feature")) == 1
        assert fake.count_calls("POST", "/lists") == 1
        # the new list is appended in memory, no re-fetch
        assert fake.count_calls("GET", "/boards") == 1

    def test_name_match_is_exact(self, fake, cache):
        fake.add_list("bug")
        created = _run(fake, cache, lambda r: r.resolve_or_create("Bug"))
        assert created.name == "Bug"
        assert len(fake.list_named("Bug")) == 1

    def test_creation_failure_returns_none(self, fake, cache):
        fake.reject_lists.add("Broken")
        assert _run(fake, cache, lambda r: r.resolve_or_create("Broken")) is None
        assert fake.list_named("Broken") == []

    def test_concurrent_resolution_creates_one_list(self, fake, cache):
        async def _go(resolver):
            return await asyncio.gather(
                resolver.resolve_or_create("Bug"),
                resolver.resolve_or_create("Bug"),
            )

        a, b = _run(fake, cache, _go)
        assert a.id == b.id
        assert len(fake.list_named("Bug")) == 1

    def test_lookup_never_creates(self, fake, cache):
        assert _run(fake, cache, lambda r: r.lookup("Nope")) is None
        assert fake.count_calls("POST", "/lists") == 0

    def test_refetches_after_ttl(self, fake, cache, clock):
        async def _go(resolver):
            await resolver.lists()
            fake.add_list("Late")
            before = await resolver.lookup("Late")
            clock.advance(31)
            after = await resolver.lookup("Late")
            return before, after

        before, after = _run(fake, cache, _go)
        assert before is None
        assert after.name == "Late"
        assert fake.count_calls("GET", "/boards") == 2

    def test_fetch_failure_keeps_previous_lists(self, fake, cache, clock):
        async def _go(resolver):
            await resolver.lists()
            clock.advance(31)
            fake.fail("GET", "/boards")
            return await resolver.lists()

        lists = _run(fake, cache, _go)
        assert [lst.name for lst in lists] == ["Master"]

    def test_unreadable_board_does_not_create(self, fake, cache):
        fake.add_list("Bug")
        fake.fail("GET", "/boards")
        assert _run(fake, cache, lambda r: r.resolve_or_create("Bug")) is None
        assert fake.count_calls("POST", "/lists") == 0
        assert len(fake.list_named("Bug")) == 1

    def test_stale_lists_still_resolve_when_refetch_fails(self, fake, cache, clock):
        bug = fake.add_list("Bug")

        async def _go(resolver):
            await resolver.lists()
            clock.advance(31)
            fake.fail("GET", "/boards")
            return await resolver.resolve_or_create("Bug"), await resolver.resolve_or_create("New")

        found, missing = _run(fake, cache, _go)
        assert found.id == bug["id"]
        assert missing is None
        assert fake.count_calls("POST", "/lists") == 0

    def test_recovers_once_board_is_readable(self, fake, cache):
        fake.add_list("Bug")

        async def _go(resolver):
            fake.fail("GET", "/boards")
            first = await resolver.resolve_or_create("Bug")
            fake.clear_failures()
            return first, await resolver.resolve_or_create("Bug")

        first, second = _run(fake, cache, _go)
        assert first is None
        assert second.name == "Bug"
        assert len(fake.list_named("Bug")) == 1

    def test_name_for(self, fake, cache):
        bug = fake.add_list("Bug")

        async def _go(resolver):
            await resolver.lists()
            return resolver.name_for(bug["id"]), resolver.name_for("unknown")

        assert _run(fake, cache, _go) == ("Bug", None)
