from unittest.mock import AsyncMock

import pytest

from nounsnode.errors import RateLimitError, UnresolvedAttributionError
from nounsnode.settlement import (Settlement, SettlementResolver, is_nounder_noun, settled_noun_id,
                                  attributed_nouns)

from .conftest import ALICE, SETTLER


def test_is_nounder_noun():
    assert is_nounder_noun(10)
    assert is_nounder_noun(1820)
    assert not is_nounder_noun(0)
    assert not is_nounder_noun(11)
    assert not is_nounder_noun(1830)


def test_settled_noun_id():
    assert settled_noun_id(10) == 9
    assert settled_noun_id(11) == 9
    assert settled_noun_id(12) == 11

    assert settled_noun_id(0) is None
    assert settled_noun_id(1) is None
    assert settled_noun_id(2) == 1

    # No more nounder nouns after 1820.
    assert settled_noun_id(1831) == 1830
    assert settled_noun_id(1840) == 1839


def test_attributed_nouns_inverts_settled_noun_id():
    for settled_id in range(1, 2000):
        for noun_id in attributed_nouns(settled_id):
            assert settled_noun_id(noun_id) == settled_id

    assert attributed_nouns(9) == [10, 11]
    assert attributed_nouns(11) == [12]
    assert attributed_nouns(10) == []


@pytest.mark.asyncio
async def test_settler_carries_over_nounder_noun(node, make_log, seed):
    """
    Auction 9 settled by SETTLER mints 10 (a nounder noun) and 11.  Both are credited to SETTLER.
    """

    ctx = node.ctx

    await ctx.apply(make_log('NounsToken', 'NounCreated', 100, tokenId=9, seed=seed))
    await ctx.apply(make_log('NounsAuctionHouse', 'AuctionCreated', 100, nounId=9, startTime=1, endTime=2))
    await ctx.apply(make_log('NounsAuctionHouse', 'AuctionBid', 101, nounId=9, sender=ALICE, value=10**18, extended=False))

    settle_tx = '0x' + '5e' * 32
    await ctx.apply(make_log('NounsAuctionHouse', 'AuctionSettled', 200, log_index=0, tx_hash=settle_tx,
                             tx_from=SETTLER, nounId=9, winner=ALICE, amount=10**18))
    await ctx.apply(make_log('NounsToken', 'NounCreated', 200, log_index=2, tx_hash=settle_tx, tokenId=10, seed=seed))
    await ctx.apply(make_log('NounsToken', 'NounCreated', 200, log_index=4, tx_hash=settle_tx, tokenId=11, seed=seed))

    for noun_id in (10, 11):
        noun = node.store.get('nouns', noun_id)
        assert noun['settled_by_address'] == SETTLER
        assert noun['settled_tx_hash'] == settle_tx

    auction = node.store.get('auctions', 9)
    assert auction['settled']
    assert auction['settler_address'] == SETTLER
    assert auction['winning_bid_id'] is not None

    assert node.store.get('nouns', 9)['winner_address'] == ALICE


@pytest.mark.asyncio
async def test_settlement_back_fills_nouns_created_first(node, make_log, seed):

    ctx = node.ctx

    # No local settlement for 11 and no log index: the noun is parked, not guessed.
    await ctx.apply(make_log('NounsToken', 'NounCreated', 300, tokenId=12, seed=seed))

    assert node.store.get('nouns', 12)['settled_by_address'] is None
    assert 12 in node.settlement.pending
    assert node.settlement.missing() == [12]

    await ctx.apply(make_log('NounsAuctionHouse', 'AuctionSettled', 301, tx_from=SETTLER,
                             nounId=11, winner=ALICE, amount=5))

    assert node.store.get('nouns', 12)['settled_by_address'] == SETTLER
    assert 12 not in node.settlement.pending
    assert node.settlement.missing() == []


def test_attribution_is_write_once(store):

    resolver = SettlementResolver(store)

    store.upsert('nouns', {'id': 12})

    first = Settlement(noun_id=11, settler=SETTLER, settled_at=1, tx_hash='0x1')
    second = Settlement(noun_id=11, settler=ALICE, settled_at=2, tx_hash='0x2')

    assert resolver.apply(12, first) == 1
    resolver.apply(12, second)

    noun = store.get('nouns', 12)
    assert noun['settled_by_address'] == SETTLER
    assert noun['settled_at'] == 1


@pytest.mark.asyncio
async def test_find_falls_back_to_log_index(store):

    log_index = AsyncMock()
    log_index.find_settlement.return_value = Settlement(noun_id=99, settler=SETTLER, settled_at=7, tx_hash='0x9')

    resolver = SettlementResolver(store, log_index=log_index)

    settlement = await resolver.find(100)

    assert settlement.settler == SETTLER
    log_index.find_settlement.assert_awaited_once_with(99)

    assert await resolver.find(1) is None


@pytest.mark.asyncio
async def test_find_raises_when_log_index_has_nothing(store):

    log_index = AsyncMock()
    log_index.find_settlement.return_value = None

    resolver = SettlementResolver(store, log_index=log_index)

    with pytest.raises(UnresolvedAttributionError):
        await resolver.find(50)

    assert await resolver.attribute(50) is None
    assert 50 in resolver.pending


@pytest.mark.asyncio
async def test_resolve_missing_pauses_the_batch_on_rate_limit(store):

    for noun_id in (2001, 2002):
        store.upsert('nouns', {'id': noun_id})

    log_index = AsyncMock()
    log_index.find_settlement.side_effect = [
        RateLimitError('slow down', retry_after=0.01),
        Settlement(noun_id=2000, settler=SETTLER, settled_at=1, tx_hash='0x2000'),
        Settlement(noun_id=2001, settler=ALICE, settled_at=2, tx_hash='0x2001'),
    ]

    names = AsyncMock()
    names.resolve.return_value = 'settler.eth'

    resolver = SettlementResolver(store, log_index=log_index, names=names)

    assert await resolver.resolve_missing() == 2

    # 2001 was retried after the pause, not skipped.
    assert [c.args[0] for c in log_index.find_settlement.await_args_list] == [2000, 2000, 2001]

    assert store.get('nouns', 2001)['settled_by_address'] == SETTLER
    assert store.get('nouns', 2001)['settled_by_ens'] == 'settler.eth'
    assert store.get('nouns', 2002)['settled_by_address'] == ALICE
