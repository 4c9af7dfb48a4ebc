import pytest

from nounsnode import views
from nounsnode.abcs import merge_with
from nounsnode.lifecycle import advance
from nounsnode.store import Store, encode_value, decode_value

from .conftest import ALICE, BOB, CAROL, SETTLER


def test_schema_is_idempotent(store):
    store.create_schema()
    assert store.dump()['nouns'] == []


def test_uint_values_are_exact(store):

    big = 2**255 + 12345

    store.upsert('auctions', {'noun_id': 1, 'amount': big})

    assert store.get('auctions', 1)['amount'] == big
    assert encode_value('uint', big) == str(big)
    assert decode_value('uint', str(big)) == big


def test_json_and_bool_columns(store):

    store.upsert('voters', {'address': ALICE, 'nouns_represented': [3, 1]})

    voter = store.get('voters', ALICE)
    assert voter['nouns_represented'] == [3, 1]
    assert voter['delegated_votes'] == 0

    store.upsert('nouns', {'id': 1})
    assert store.get('nouns', 1)['burned'] is False


def test_insert_ignore_reports_new_rows(store):

    row = {'id': 'x', 'noun_id': 1, 'bidder': ALICE, 'amount': 5, 'block_number': 1, 'block_timestamp': 2,
           'log_index': 0}

    assert store.insert_ignore('auction_bids', row)
    assert not store.insert_ignore('auction_bids', dict(row, amount=6))

    assert store.get('auction_bids', 'x')['amount'] == 5


def test_upsert_merges_field_by_field(store):

    merge = merge_with(keep_first=('created_block',), keep_max=('end_block',), keep_true=('on_timelock_v1',),
                       merge_status=advance)

    store.upsert('proposals', {'id': 1, 'status': 'ACTIVE', 'created_block': 10, 'end_block': 50,
                               'on_timelock_v1': True}, merge=merge)

    merged = store.upsert('proposals', {'id': 1, 'status': 'PENDING', 'created_block': 11, 'end_block': 40,
                                        'on_timelock_v1': False, 'title': 'Later', 'proposer': None}, merge=merge)

    row = store.get('proposals', 1)
    assert row == {k: merged[k] for k in row}
    assert (row['status'], row['created_block'], row['end_block'], row['on_timelock_v1'], row['title']) == \
        ('ACTIVE', 10, 50, True, 'Later')


def test_set_once_fills_nulls_only(store):

    store.upsert('nouns', {'id': 7, 'settled_by_address': SETTLER})

    assert store.set_once('nouns', 7, {'settled_by_address': ALICE, 'settled_at': 99}) == 1

    noun = store.get('nouns', 7)
    assert noun['settled_by_address'] == SETTLER
    assert noun['settled_at'] == 99

    assert store.set_once('nouns', 8, {'settled_at': 1}) == 0


def test_transaction_rolls_back_everything(store):

    with pytest.raises(RuntimeError):
        with store.transaction():
            store.upsert('nouns', {'id': 1})
            with store.transaction():
                store.save_checkpoint('items', (10, 0))
            raise RuntimeError("handler blew up")

    assert store.get('nouns', 1) is None
    assert store.load_checkpoints() == {}

    with store.transaction():
        store.save_checkpoint('items', (10, 0))
    store.save_checkpoint('items', (11, 2))

    assert store.load_checkpoints() == {'items': (11, 2)}


def test_checkpoints_advance_within_one_block(store):

    store.save_checkpoint('items', (200, 0))
    store.save_checkpoint('items', (200, 2))
    store.save_checkpoint('items', (200, 4))

    assert store.load_checkpoints() == {'items': (200, 4)}


def test_upsert_keeps_unchanged_required_columns(store):

    row = {'id': 'items-0xabc-1', 'lane': 'items', 'event_key': 'NounsToken:NounBurned',
           'block_number': 10, 'log_index': 1, 'error': 'first', 'attempts': 3, 'payload': None}

    store.upsert('failed_events', row)
    store.upsert('failed_events', dict(row, error='second'))

    failed = store.get('failed_events', 'items-0xabc-1')
    assert (failed['error'], failed['block_number'], failed['event_key']) == ('second', 10, 'NounsToken:NounBurned')


def test_postgres_placeholders_are_untouched():
    assert Store(None, dialect='postgres').sql("SELECT %s") == "SELECT %s"
    assert Store(None, dialect='sqlite').sql("SELECT %s") == "SELECT ?"


######################################################################
#
# Views
#
######################################################################

@pytest.mark.asyncio
async def test_noun_with_winning_bid(node, make_log, seed):

    ctx = node.ctx

    await ctx.apply(make_log('NounsToken', 'NounCreated', 10, tokenId=30, seed=seed))
    await ctx.apply(make_log('NounsAuctionHouse', 'AuctionCreated', 10, nounId=30, startTime=1, endTime=2))

    # BOB bids the same amount twice (the second after being outbid and refunded).
    first = make_log('NounsAuctionHouse', 'AuctionBid', 11, nounId=30, sender=BOB, value=10, extended=False)
    await ctx.apply(first)
    await ctx.apply(make_log('NounsAuctionHouse', 'AuctionBid', 12, nounId=30, sender=CAROL, value=11, extended=False))
    second = make_log('NounsAuctionHouse', 'AuctionBid', 13, nounId=30, sender=BOB, value=10, extended=False)
    await ctx.apply(second)

    await ctx.apply(make_log('NounsAuctionHouse', 'AuctionSettled', 14, tx_from=SETTLER, nounId=30, winner=BOB, amount=10))

    noun = views.noun_with_winning_bid(node.store, 30)

    assert noun['winner_address'] == BOB
    assert noun['winning_bid_id'] == decode_id(second)
    assert noun['matched_bid_id'] == decode_id(first)

    assert views.noun_with_winning_bid(node.store, 31) is None

    (row,) = views.auction_history(node.store)
    assert row['noun_id'] == 30
    assert row['settled'] is True
    assert row['winning_bid_id'] == decode_id(second)


def decode_id(raw):
    return f"{raw.tx_hash}-{raw.log_index}"


@pytest.mark.asyncio
async def test_client_views(node, make_log):

    ctx = node.ctx
    tx_hash = '0x' + '88' * 32

    await ctx.apply(make_log('NounsAuctionHouse', 'AuctionCreated', 10, nounId=40, startTime=1, endTime=2))
    await ctx.apply(make_log('NounsAuctionHouse', 'AuctionBid', 11, log_index=1, tx_hash=tx_hash,
                             nounId=40, sender=ALICE, value=3, extended=False))
    await ctx.apply(make_log('NounsAuctionHouse', 'AuctionBidWithClientId', 11, log_index=2, tx_hash=tx_hash,
                             nounId=40, value=3, clientId=8))
    await ctx.apply(make_log('NounsAuctionHouse', 'AuctionSettled', 12, tx_from=SETTLER, nounId=40, winner=ALICE, amount=3))

    (win,) = views.client_auction_wins(node.store, 8)
    assert (win['noun_id'], win['winner'], win['amount']) == (40, ALICE, 3)

    await ctx.apply(make_log('NounsDAO', 'ProposalCreated', 20, id=3, proposer=ALICE, targets=[], values=[],
                             signatures=[], calldatas=[], startBlock=30, endBlock=40, description='# Three'))
    await ctx.apply(make_log('NounsDAO', 'ProposalCreatedWithRequirements', 20, id=3, signers=[],
                             updatePeriodEndBlock=0, proposalThreshold=1, quorumVotes=2, clientId=8))
    await ctx.apply(make_log('NounsDAO', 'VoteCast', 31, voter=BOB, proposalId=3, support=1, votes=4, reason=''))
    await ctx.apply(make_log('NounsDAO', 'VoteCastWithClientId', 31, voter=BOB, proposalId=3, clientId=8))

    assert [p['id'] for p in views.client_proposals(node.store, 8)] == [3]

    (vote,) = views.client_votes(node.store, 8)
    assert (vote['voter'], vote['title'], vote['votes']) == (BOB, 'Three', 4)

    assert [p['id'] for p in views.active_proposals(node.store)] == [3]
    assert [v['version_number'] for v in views.proposal_versions_of(node.store, 3)] == [1]


@pytest.mark.asyncio
async def test_top_delegates(node, make_log):

    for block, (delegate, votes) in enumerate([(ALICE, 3), (BOB, 9), (CAROL, 0)], 10):
        await node.ctx.apply(make_log('NounsToken', 'DelegateVotesChanged', block, delegate=delegate,
                                      previousBalance=0, newBalance=votes))

    assert [v['address'] for v in views.top_delegates(node.store)] == [BOB, ALICE]
    assert [v['address'] for v in views.top_delegates(node.store, limit=1, offset=1)] == [ALICE]
