import pytest

from nounsnode import views
from nounsnode.data_products import vote_id
from nounsnode.node import Node
from nounsnode.store import Store
from nounsnode.utils import ZERO_ADDRESS

from .conftest import ALICE, BOB, CAROL, SETTLER

DESCRIPTION = '# Fund the thing\n\nMore words.'
TXS = {'targets': [BOB], 'values': [10], 'signatures': [''], 'calldatas': ['0x']}


def proposal_created(make_log, block, proposal_id=1, start_block=None, end_block=None):
    return make_log('NounsDAO', 'ProposalCreated', block, id=proposal_id, proposer=ALICE, **TXS,
                    startBlock=start_block or block + 10, endBlock=end_block or block + 20,
                    description=DESCRIPTION)


def history(make_log, seed):
    """
    One of everything, in chain order.
    """
    return [
        make_log('NounsToken', 'Transfer', 10, **{'from': ZERO_ADDRESS, 'to': ALICE, 'tokenId': 2}),
        make_log('NounsToken', 'NounCreated', 10, tokenId=2, seed=seed),
        make_log('NounsToken', 'DelegateChanged', 11, delegator=ALICE, fromDelegate=ALICE, toDelegate=BOB),
        make_log('NounsToken', 'DelegateVotesChanged', 11, delegate=BOB, previousBalance=0, newBalance=1),
        make_log('NounsAuctionHouse', 'AuctionCreated', 12, nounId=3, startTime=100, endTime=200),
        make_log('NounsAuctionHouse', 'AuctionBid', 13, nounId=3, sender=CAROL, value=7, extended=True),
        make_log('NounsAuctionHouse', 'AuctionExtended', 13, nounId=3, endTime=300),
        make_log('NounsAuctionHouse', 'AuctionSettled', 14, tx_from=SETTLER, nounId=3, winner=CAROL, amount=7),
        proposal_created(make_log, 15),
        make_log('NounsDAO', 'VoteCast', 26, voter=BOB, proposalId=1, support=1, votes=1, reason='yes'),
        make_log('NounsDAO', 'ProposalDescriptionUpdated', 27, id=1, proposer=ALICE,
                 description='# Fund the other thing', updateMessage='typo'),
        make_log('NounsDAOData', 'ProposalCandidateCreated', 28, msgSender=ALICE, **TXS, description=DESCRIPTION,
                 slug='idea', proposalIdToUpdate=0, encodedProposalHash='0x' + '11' * 32),
        make_log('NounsDAOData', 'SignatureAdded', 29, signer=BOB, sig='0x0102', expirationTimestamp=999,
                 proposer=ALICE, slug='idea', proposalIdToUpdate=0, encodedPropHash='0x' + '11' * 32,
                 sigDigest='0x' + '22' * 32, reason=''),
        make_log('NounsDAOData', 'FeedbackSent', 30, msgSender=CAROL, proposalId=1, support=0, reason='no'),
        make_log('TreasuryV2', 'QueueTransaction', 31, txHash='0x' + '33' * 32, target=BOB, value=10,
                 signature='', data='0x', eta=5000),
        make_log('TreasuryV2', 'ETHSent', 31, to=BOB, amount=10),
        make_log('ClientRewards', 'ClientRegistered', 32, clientId=7, name='app', description='an app'),
        make_log('ClientRewards', 'ClientRewarded', 33, clientId=7, amount=500),
        make_log('Payer', 'OwnershipTransferred', 34, previousOwner=ALICE, newOwner=BOB),
    ]


async def replay(node, raws, times):
    """
    Run every handler `times` times per event, straight through plan(), no lanes or checkpoints.
    """

    for raw in raws:
        lane, product, key, event = await node.ctx.route(raw)
        for _ in range(times):
            write = await product.plan(key, event)
            with node.store.transaction():
                write()


@pytest.mark.asyncio
async def test_replaying_an_event_is_a_no_op(node, deployment, rewards_reader, make_log, seed):

    rewards_reader.totals[7] = (True, 500, 0)

    raws = history(make_log, seed)

    await replay(node, raws, times=1)

    fresh = Store.connect('sqlite:///:memory:')
    fresh.create_schema()

    twice = Node(fresh, deployment, rewards_reader=rewards_reader)

    await replay(twice, raws, times=2)

    assert twice.store.dump() == node.store.dump()

    dump = node.store.dump()
    for table in ('nouns', 'auctions', 'auction_bids', 'transfers', 'delegations', 'voters', 'proposals',
                  'proposal_versions', 'votes', 'candidates', 'candidate_versions', 'candidate_signatures',
                  'proposal_feedback', 'treasury_txs', 'treasury_transfers', 'clients', 'client_reward_events',
                  'config_changes'):
        assert dump[table], table


@pytest.mark.asyncio
async def test_status_never_moves_backward(node, make_log):

    ctx = node.ctx

    await ctx.apply(proposal_created(make_log, 100))
    await ctx.apply(make_log('NounsDAO', 'ProposalQueued', 130, id=1, eta=9999))
    await ctx.apply(make_log('NounsDAO', 'ProposalExecuted', 140, id=1))

    assert node.store.get('proposals', 1)['status'] == 'EXECUTED'

    # A late cancel, and the refresher at a later head, change nothing.
    await ctx.apply(make_log('NounsDAO', 'ProposalCanceled', 150, id=1))
    await node.refresher.refresh(10_000, 10**10)

    proposal = node.store.get('proposals', 1)
    assert proposal['status'] == 'EXECUTED'
    assert proposal['queued_block'] == 130
    assert proposal['executed_block'] == 140


@pytest.mark.asyncio
async def test_refresher_moves_proposals_with_the_head(node, make_log):

    await node.ctx.apply(proposal_created(make_log, 100, start_block=110, end_block=120))

    assert await node.refresher.refresh(105, 0) == 0
    assert node.store.get('proposals', 1)['status'] == 'PENDING'

    assert await node.refresher.refresh(115, 0) == 1
    assert node.store.get('proposals', 1)['status'] == 'ACTIVE'

    # No votes at all: defeated once voting ends.
    assert await node.refresher.refresh(121, 0) == 1
    assert node.store.get('proposals', 1)['status'] == 'DEFEATED'
    assert node.refresher.last_block == 121


@pytest.mark.asyncio
async def test_logged_outcomes_replace_a_premature_defeat(node, make_log):

    ctx = node.ctx

    await ctx.apply(proposal_created(make_log, 100, start_block=110, end_block=120))

    # The head is long past voting while the governance lane has not seen a vote yet.
    assert await node.refresher.refresh(10_000, 0) == 1
    assert node.store.get('proposals', 1)['status'] == 'DEFEATED'

    await ctx.apply(make_log('NounsDAO', 'VoteCast', 115, voter=ALICE, proposalId=1, support=1, votes=3, reason=''))
    await ctx.apply(make_log('NounsDAO', 'ProposalQueued', 125, id=1, eta=5000))

    assert node.store.get('proposals', 1)['status'] == 'QUEUED'

    await ctx.apply(make_log('NounsDAO', 'ProposalExecuted', 130, id=1))
    await node.refresher.refresh(20_000, 10**10)

    proposal = node.store.get('proposals', 1)
    assert proposal['status'] == 'EXECUTED'
    assert (proposal['queued_block'], proposal['executed_block']) == (125, 130)


@pytest.mark.asyncio
async def test_defeat_is_read_again_once_votes_land(node, make_log):

    await node.ctx.apply(proposal_created(make_log, 100, start_block=110, end_block=120))

    await node.refresher.refresh(10_000, 0)
    assert node.store.get('proposals', 1)['status'] == 'DEFEATED'

    await node.ctx.apply(make_log('NounsDAO', 'VoteCast', 115, voter=ALICE, proposalId=1, support=1, votes=3, reason=''))

    assert await node.refresher.refresh(10_001, 0) == 1
    assert node.store.get('proposals', 1)['status'] == 'SUCCEEDED'

    # Nothing new: nothing moves.
    assert await node.refresher.refresh(10_002, 0) == 0


@pytest.mark.asyncio
async def test_tallies_are_sums_of_votes(node, make_log):

    ctx = node.ctx

    await ctx.apply(proposal_created(make_log, 100))

    vote = make_log('NounsDAO', 'VoteCast', 111, voter=ALICE, proposalId=1, support=1, votes=3, reason='')
    await ctx.apply(vote)
    await ctx.apply(make_log('NounsDAO', 'VoteCast', 112, voter=BOB, proposalId=1, support=0, votes=2, reason='no'))
    await ctx.apply(make_log('NounsDAO', 'VoteCast', 113, voter=CAROL, proposalId=1, support=2, votes=1, reason=''))
    await ctx.apply(make_log('NounsDAO', 'VoteCastWithClientId', 113, voter=CAROL, proposalId=1, clientId=4))

    # The same log again, through the handler directly.
    lane, product, key, event = await ctx.route(vote)
    (await product.plan(key, event))()

    proposal = node.store.get('proposals', 1)
    assert (proposal['for_votes'], proposal['against_votes'], proposal['abstain_votes']) == (3, 2, 1)

    assert node.store.get('votes', vote_id(CAROL, 1))['client_id'] == 4
    assert node.store.get('votes', vote_id(BOB, 1))['reason'] == 'no'

    voter = node.store.get('voters', ALICE)
    assert voter['total_votes'] == 1
    assert voter['last_vote_at'] == vote.block_timestamp


@pytest.mark.asyncio
async def test_versions_are_numbered_by_chain_position(node, make_log):

    ctx = node.ctx

    store = node.store

    await ctx.apply(proposal_created(make_log, 100))

    later = make_log('NounsDAO', 'ProposalDescriptionUpdated', 102, id=1, proposer=ALICE,
                     description='# Third', updateMessage='third')
    earlier = make_log('NounsDAO', 'ProposalTransactionsUpdated', 101, id=1, proposer=ALICE,
                       targets=[CAROL], values=[1], signatures=[''], calldatas=['0x'], updateMessage='second')

    # Applied out of order on purpose.
    for raw in (later, earlier):
        lane, product, key, event = await ctx.route(raw)
        with store.transaction():
            (await product.plan(key, event))()

    versions = store.query("SELECT version_number, update_message FROM proposal_versions "
                           "WHERE proposal_id = %s ORDER BY version_number", (1,))

    assert [(v['version_number'], v['update_message']) for v in versions] == [(1, None), (2, 'second'), (3, 'third')]

    assert store.get('proposals', 1)['targets'] == [CAROL]


@pytest.mark.asyncio
async def test_v1_creation_logs_make_one_version(node, make_log):

    tx_hash = '0x' + '44' * 32

    await node.ctx.apply(make_log('NounsDAO', 'ProposalCreated', 100, log_index=1, tx_hash=tx_hash, id=5,
                                  proposer=ALICE, **TXS, startBlock=110, endBlock=120, description=DESCRIPTION))
    await node.ctx.apply(make_log('NounsDAO', 'ProposalCreatedWithRequirements', 100, log_index=2, tx_hash=tx_hash,
                                  id=5, proposer=ALICE, **TXS, startBlock=110, endBlock=120,
                                  proposalThreshold=1, quorumVotes=30, description=DESCRIPTION))

    assert node.store.scalar("SELECT COUNT(*) FROM proposal_versions WHERE proposal_id = %s", (5,)) == 1
    assert node.store.get('proposals', 5)['quorum_votes'] == 30
    assert node.store.get('proposals', 5)['title'] == 'Fund the thing'


@pytest.mark.asyncio
async def test_signers_variant_marks_proposal_updatable(node, make_log):

    await node.ctx.apply(proposal_created(make_log, 100))
    await node.ctx.apply(make_log('NounsDAO', 'ProposalCreatedWithRequirements', 100, id=1, signers=[BOB],
                                  updatePeriodEndBlock=105, proposalThreshold=2, quorumVotes=40, clientId=9))

    proposal = node.store.get('proposals', 1)
    assert proposal['status'] == 'UPDATABLE'
    assert proposal['signers'] == [BOB]
    assert proposal['client_id'] == 9


@pytest.mark.asyncio
async def test_signature_count_ignores_cancelled_signatures(node, make_log):

    ctx = node.ctx

    common = dict(expirationTimestamp=999, proposer=ALICE, slug='idea', proposalIdToUpdate=0,
                  encodedPropHash='0x' + '11' * 32, sigDigest='0x' + '22' * 32, reason='')

    await ctx.apply(make_log('NounsDAOData', 'ProposalCandidateCreated', 10, msgSender=ALICE, **TXS,
                             description=DESCRIPTION, slug='idea', proposalIdToUpdate=0,
                             encodedProposalHash='0x' + '11' * 32))
    await ctx.apply(make_log('NounsDAOData', 'SignatureAdded', 11, signer=BOB, sig='0x01', **common))
    await ctx.apply(make_log('NounsDAOData', 'SignatureAdded', 12, signer=CAROL, sig='0x02', **common))

    cid = f"{ALICE}-idea"
    assert node.store.get('candidates', cid)['signature_count'] == 2

    await ctx.apply(make_log('NounsDAO', 'SignatureCancelled', 13, signer=BOB, sig='0x01'))

    assert node.store.get('candidates', cid)['signature_count'] == 1

    await ctx.apply(make_log('NounsDAOData', 'ProposalCandidateUpdated', 14, msgSender=ALICE, **TXS,
                             description='# Better idea', slug='idea', proposalIdToUpdate=0,
                             encodedProposalHash='0x' + '12' * 32, reason='clearer'))

    candidate = node.store.get('candidates', cid)
    assert candidate['title'] == 'Better idea'
    assert candidate['created_timestamp'] < candidate['last_updated_timestamp']

    versions = views.candidate_versions_of(node.store, cid)
    assert [(v['version_number'], v['update_message']) for v in versions] == [(1, None), (2, 'clearer')]

    await ctx.apply(make_log('NounsDAOData', 'ProposalCandidateCanceled', 15, msgSender=ALICE, slug='idea'))
    assert node.store.get('candidates', cid)['canceled']


@pytest.mark.asyncio
async def test_voting_power_follows_transfers_and_delegations(node, make_log):

    ctx = node.ctx

    for token_id in (2, 3):
        await ctx.apply(make_log('NounsToken', 'Transfer', 10, **{'from': ZERO_ADDRESS, 'to': ALICE, 'tokenId': token_id}))

    assert node.store.get('voters', ALICE)['nouns_represented'] == [2, 3]

    await ctx.apply(make_log('NounsToken', 'DelegateChanged', 11, delegator=ALICE, fromDelegate=ALICE, toDelegate=BOB))

    assert node.store.get('voters', ALICE)['nouns_represented'] == []
    assert node.store.get('voters', BOB)['nouns_represented'] == [2, 3]

    await ctx.apply(make_log('NounsToken', 'Transfer', 12, **{'from': ALICE, 'to': CAROL, 'tokenId': 3}))

    assert node.store.get('nouns', 3)['owner'] == CAROL
    assert node.store.get('voters', BOB)['nouns_represented'] == [2]
    assert node.store.get('voters', CAROL)['nouns_represented'] == [3]

    await ctx.apply(make_log('NounsToken', 'Transfer', 13, **{'from': CAROL, 'to': ZERO_ADDRESS, 'tokenId': 3}))

    noun = node.store.get('nouns', 3)
    assert noun['burned']
    assert noun['owner'] == ZERO_ADDRESS
    assert node.store.get('voters', CAROL)['nouns_represented'] == []


@pytest.mark.asyncio
async def test_client_id_on_bids_and_auctions(node, make_log):

    ctx = node.ctx
    tx_hash = '0x' + '66' * 32

    await ctx.apply(make_log('NounsAuctionHouse', 'AuctionCreated', 10, nounId=20, startTime=1, endTime=2))
    await ctx.apply(make_log('NounsAuctionHouse', 'AuctionBid', 11, log_index=3, tx_hash=tx_hash,
                             nounId=20, sender=BOB, value=42, extended=False))
    await ctx.apply(make_log('NounsAuctionHouse', 'AuctionBidWithClientId', 11, log_index=4, tx_hash=tx_hash,
                             nounId=20, value=42, clientId=6))

    bid = node.store.query_one("SELECT * FROM auction_bids WHERE noun_id = %s", (20,))
    assert bid['client_id'] == 6
    assert bid['amount'] == 42

    assert node.store.get('auctions', 20)['client_id'] == 6


@pytest.mark.asyncio
async def test_treasury_rows_per_timelock_log(node, make_log):

    timelock_tx = '0x' + '77' * 32
    args = dict(txHash=timelock_tx, target=BOB, value=10**18, signature='', data='0x', eta=5000)

    await node.ctx.apply(make_log('TreasuryV2', 'QueueTransaction', 10, log_index=1, **args))
    await node.ctx.apply(make_log('TreasuryV2', 'ExecuteTransaction', 20, log_index=5, **args))
    await node.ctx.apply(make_log('TreasuryV1', 'CancelTransaction', 21, log_index=2, **args))

    rows = node.store.query("SELECT id, status, treasury_version, value FROM treasury_txs ORDER BY block_number")

    assert [(r['status'], r['treasury_version']) for r in rows] == [('QUEUED', 'v2'), ('EXECUTED', 'v2'), ('CANCELLED', 'v1')]
    assert rows[0]['id'] == f"v2-{timelock_tx}-1"
    assert rows[0]['value'] == 10**18


@pytest.mark.asyncio
async def test_payer_and_streams(node, make_log):

    await node.ctx.apply(make_log('Payer', 'RegisteredDebt', 10, account=BOB, amount=100))
    await node.ctx.apply(make_log('Payer', 'PaidBackDebt', 11, account=BOB, amount=60, remainingDebt=40))
    await node.ctx.apply(make_log('StreamFactory', 'StreamCreated', 12, msgSender=ALICE, payer=ALICE, recipient=BOB,
                                  tokenAmount=1000, tokenAddress=CAROL, startTime=1, stopTime=2, streamAddress=SETTLER))

    debts = node.store.query("SELECT event_type, remaining_debt FROM payer_debts ORDER BY block_number")
    assert [(d['event_type'], d['remaining_debt']) for d in debts] == [('REGISTERED', None), ('PAID_BACK', 40)]

    assert node.store.query_one("SELECT recipient FROM streams")['recipient'] == BOB


@pytest.mark.asyncio
async def test_duna_messages_are_typed(node, make_log):

    await node.ctx.apply(make_log('NounsDAOData', 'DunaAdminMessagePosted', 10, message='hello', relatedProposals=[1, 2]))
    await node.ctx.apply(make_log('NounsDAOData', 'VoterMessageToDunaAdminPosted', 11, message='hi', relatedProposals=[]))

    rows = node.store.query("SELECT message_type, related_proposals FROM duna_messages ORDER BY block_number")
    assert [(r['message_type'], r['related_proposals']) for r in rows] == [('ADMIN', [1, 2]), ('VOTER', [])]


@pytest.mark.asyncio
async def test_admin_events_land_in_config_changes(node, make_log):

    await node.ctx.apply(make_log('Payer', 'OwnershipTransferred', 10, previousOwner=ALICE, newOwner=BOB))

    row = node.store.query_one("SELECT * FROM config_changes")
    assert row['contract'] == 'Payer'
    assert row['event_name'] == 'OwnershipTransferred'
    assert row['params'] == {'previousOwner': ALICE, 'newOwner': BOB}
