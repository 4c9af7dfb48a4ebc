import asyncio
from unittest.mock import AsyncMock

import pytest

from nounsnode.errors import RateLimitError, TransientNetworkError
from nounsnode.names import NameCache
from nounsnode.utils import ZERO_ADDRESS

from .conftest import ALICE, BOB


class Clock:

    def __init__(self, now=1_700_000_000):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def resolver():
    resolver = AsyncMock()
    resolver.resolve.return_value = ('alice.eth', 'https://avatar')
    return resolver


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def names(store, resolver, clock):
    return NameCache(store, resolver, ttl=100, timeout=0.05, rate_limit_backoff=0.01, clock=clock)


@pytest.mark.asyncio
async def test_repeat_lookups_hit_the_cache(names, resolver, store, clock):

    assert await names.resolve(ALICE) == 'alice.eth'
    assert await names.resolve(ALICE) == 'alice.eth'

    assert names.external_calls == 1
    resolver.resolve.assert_awaited_once_with(ALICE)

    row = store.get('ens_names', ALICE)
    assert row['name'] == 'alice.eth'
    assert row['avatar'] == 'https://avatar'

    # A fresh process reads the table instead of going back out.
    cold = NameCache(store, resolver, ttl=100, clock=clock)
    assert (await cold.lookup(ALICE)).avatar == 'https://avatar'
    assert cold.external_calls == 0


@pytest.mark.asyncio
async def test_negative_answers_are_cached(names, resolver):

    resolver.resolve.return_value = (None, None)

    assert await names.resolve(BOB) is None
    assert await names.resolve(BOB) is None

    assert names.external_calls == 1


@pytest.mark.asyncio
async def test_entries_expire(names, resolver, clock):

    await names.resolve(ALICE)

    clock.now += 99
    await names.resolve(ALICE)
    assert names.external_calls == 1

    clock.now += 2
    resolver.resolve.return_value = ('alice2.eth', None)

    assert await names.resolve(ALICE) == 'alice2.eth'
    assert names.external_calls == 2


@pytest.mark.asyncio
async def test_resolve_many_dedupes(names, resolver):

    async def resolve(address):
        return ('alice.eth', None) if address == ALICE else (None, None)

    resolver.resolve.side_effect = resolve

    out = await names.resolve_many([ALICE, BOB, ALICE, None, ALICE])

    assert out == {ALICE: 'alice.eth', BOB: None}
    assert names.external_calls == 2


@pytest.mark.asyncio
async def test_concurrent_lookups_share_one_call(names, resolver):

    async def slow(address):
        await asyncio.sleep(0.01)
        return 'alice.eth', None

    resolver.resolve.side_effect = slow

    results = await asyncio.gather(*[names.resolve(ALICE) for _ in range(5)])

    assert results == ['alice.eth'] * 5
    assert resolver.resolve.await_count == 1


@pytest.mark.asyncio
async def test_timeouts_are_not_cached(names, resolver):

    async def hang(address):
        await asyncio.sleep(1)

    resolver.resolve.side_effect = hang

    assert await names.resolve(ALICE) is None
    assert names.memory == {}

    resolver.resolve.side_effect = None
    assert await names.resolve(ALICE) == 'alice.eth'
    assert names.external_calls == 2


@pytest.mark.asyncio
async def test_transient_failures_are_not_cached(names, resolver, store):

    resolver.resolve.side_effect = TransientNetworkError("502")

    assert await names.resolve(ALICE) is None
    assert store.get('ens_names', ALICE) is None


@pytest.mark.asyncio
async def test_rate_limit_pauses_then_retries(names, resolver):

    resolver.resolve.side_effect = [RateLimitError("429", retry_after=0.01), ('alice.eth', None)]

    assert await names.resolve(ALICE) == 'alice.eth'
    assert names.external_calls == 2
    assert names.backoff_until > 0


@pytest.mark.asyncio
async def test_zero_and_malformed_addresses_skip_the_resolver(names, resolver):

    assert await names.resolve(ZERO_ADDRESS) is None
    assert await names.resolve('not-an-address') is None

    assert names.external_calls == 0


@pytest.mark.asyncio
async def test_lru_evicts_oldest(store, resolver, clock):

    names = NameCache(store, resolver, max_entries=1, clock=clock)

    await names.resolve(ALICE)
    await names.resolve(BOB)

    assert list(names.memory) == [BOB]
