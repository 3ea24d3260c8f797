import asyncio

import pytest

from matchmonkey.storage.cache import RunCache, make_key


def test_make_key_normalizes_strings():
    assert make_key("lastfm", "artist.getSimilar", " The  Cure", 20) == \
        make_key("lastfm", "artist.getSimilar", "the cure", 20)
    assert make_key("a", "b", ["x", "y"]) == ("a", "b", ("x", "y"))


def test_get_or_fetch_caches_value():
    cache = RunCache("run1")
    calls = []

    async def fetch():
        calls.append(1)
        return "value"

    async def run():
        return [await cache.get_or_fetch("k", fetch) for _ in range(3)]

    assert asyncio.run(run()) == ["value"] * 3
    assert len(calls) == 1
    assert cache.stats()["hits"] == 2


def test_inflight_request_is_shared():
    cache = RunCache()
    calls = []

    async def run():
        release = asyncio.Event()

        async def fetch():
            calls.append(1)
            await release.wait()
            return 42

        tasks = [asyncio.create_task(cache.get_or_fetch("k", fetch)) for _ in range(3)]
        await asyncio.sleep(0)
        assert cache.is_inflight("k")
        release.set()
        return await asyncio.gather(*tasks)

    assert asyncio.run(run()) == [42, 42, 42]
    assert len(calls) == 1
    assert not cache.is_inflight("k")


def test_uncacheable_result_is_not_stored():
    cache = RunCache()

    async def fetch():
        return None

    asyncio.run(cache.get_or_fetch("k", fetch, should_cache=lambda v: v is not None))
    assert "k" not in cache


def test_failure_reaches_every_waiter_and_is_not_cached():
    cache = RunCache()

    async def run():
        release = asyncio.Event()

        async def fetch():
            await release.wait()
            raise RuntimeError("boom")

        tasks = [asyncio.create_task(cache.get_or_fetch("k", fetch)) for _ in range(2)]
        await asyncio.sleep(0)
        release.set()
        return await asyncio.gather(*tasks, return_exceptions=True)

    results = asyncio.run(run())
    assert all(isinstance(r, RuntimeError) for r in results)
    assert "k" not in cache


def test_cleared_cache_ignores_writes():
    cache = RunCache()
    cache.set("a", 1)
    cache.clear()
    cache.set("b", 2)
    assert len(cache) == 0
    assert cache.closed


def test_fetch_exception_propagates():
    cache = RunCache()

    async def fetch():
        raise ValueError("bad")

    with pytest.raises(ValueError):
        asyncio.run(cache.get_or_fetch("k", fetch))
