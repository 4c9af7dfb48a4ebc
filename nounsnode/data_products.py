from sanic.log import logger as logr

from .abcs import DataProduct, merge_with
from .events import (NounCreated, ProposalCreatedWithSigners,
                     ProposalUpdated, ProposalDescriptionUpdated, VoterMessageToDunaAdminPosted)
from .lifecycle import settle_status, PENDING, UPDATABLE, CANCELLED, QUEUED, EXECUTED, VETOED
from .settlement import Settlement
from .utils import ZERO_ADDRESS, candidate_id, extract_title

# Mainnet block time, for the timestamp estimates on proposal windows.
SECONDS_PER_BLOCK = 12


def stamp(log, with_tx_hash=True, with_log_index=False):
    out = {'block_number': log.block_number, 'block_timestamp': log.block_timestamp}
    if with_log_index:
        out['log_index'] = log.log_index
    if with_tx_hash:
        out['tx_hash'] = log.tx_hash
    return out


def calls(ev):
    return {'targets': list(ev.targets),
            'target_values': [str(v) for v in ev.values],
            'signatures': list(ev.signatures),
            'calldatas': list(ev.calldatas)}


def renumber(store, table, parent_col, parent_id):
    """
    version_number is the rank of the version by chain position, so it is the same whatever
    order the rows arrived in.
    """

    rows = store.query(f"SELECT id, version_number FROM {table} WHERE {parent_col} = %s "
                       "ORDER BY block_number, log_index", (parent_id,))

    for i, row in enumerate(rows, 1):
        if row['version_number'] != i:
            store.update(table, row['id'], {'version_number': i})


######################################################################
#
# Voting power
#
######################################################################

LATER = ("(later.block_number > d.block_number OR "
         "(later.block_number = d.block_number AND later.log_index > d.log_index))")


def delegate_of(store, account):
    """
    Who votes `account`'s nouns.  An account that never delegated votes for itself.
    """

    row = store.query_one("SELECT to_delegate FROM delegations WHERE delegator = %s "
                          "ORDER BY block_number DESC, log_index DESC LIMIT 1", (account,))

    if row is None or row['to_delegate'] == ZERO_ADDRESS:
        return account
    return row['to_delegate']


def represented_by(store, delegate):
    """
    Token ids whose votes currently sit with `delegate`, sorted.
    """

    rows = store.query("SELECT d.delegator FROM delegations d WHERE d.to_delegate = %s "
                       f"AND NOT EXISTS (SELECT 1 FROM delegations later WHERE later.delegator = d.delegator AND {LATER})",
                       (delegate,))

    owners = {row['delegator'] for row in rows}

    if delegate_of(store, delegate) == delegate:
        owners.add(delegate)

    owners.discard(ZERO_ADDRESS)

    if not owners:
        return []

    owners = sorted(owners)
    placeholders = ', '.join(['%s'] * len(owners))

    rows = store.query(f"SELECT id FROM nouns WHERE burned = %s AND owner IN ({placeholders}) ORDER BY id",
                       [False] + owners)

    return [row['id'] for row in rows]


VOTER_MERGE = merge_with(keep_first=('first_seen_at',))


def touch_voter(store, address, log, **fields):
    if not address or address == ZERO_ADDRESS:
        return None
    row = {'address': address, 'first_seen_at': log.block_timestamp, **fields}
    return store.upsert('voters', row, merge=VOTER_MERGE)


def refresh_represented(store, delegates, log):
    for delegate in sorted({d for d in delegates if d and d != ZERO_ADDRESS}):
        touch_voter(store, delegate, log, nouns_represented=represented_by(store, delegate))


######################################################################
#
# Nouns, auctions, delegations.  One lane, so token events keep their order.
#
######################################################################

NOUN_MERGE = merge_with(keep_first=('background', 'body', 'accessory', 'head', 'glasses',
                                    'block_number', 'block_timestamp', 'burned_at',
                                    'winning_bid', 'winner_address', 'winner_ens'),
                        keep_true=('burned',))


class Nouns(DataProduct):

    lane = 'items'

    handles = {
        'NounsToken:NounCreated': 'noun_created',
        'NounsToken:Transfer': 'transfer',
        'NounsToken:NounBurned': 'noun_burned',
    }

    def __init__(self, store, settlement, names=None):
        super().__init__(store, names=names)
        self.settlement = settlement

    async def fetch_noun_created(self, ev: NounCreated):

        settlement = await self.settlement.attribute(ev.token_id)

        if settlement is None:
            return None, None

        names = await self.resolve_names(settlement.settler)

        return settlement, names.get(settlement.settler)

    def noun_created(self, ev: NounCreated, fetched):

        settlement, settler_ens = fetched

        seed = ev.seed

        self.store.upsert('nouns', {
            'id': ev.token_id,
            'background': seed.background,
            'body': seed.body,
            'accessory': seed.accessory,
            'head': seed.head,
            'glasses': seed.glasses,
            'block_number': ev.log.block_number,
            'block_timestamp': ev.log.block_timestamp,
        }, merge=NOUN_MERGE)

        self.settlement.apply(ev.token_id, settlement, settler_ens)

    def transfer(self, ev, _):

        self.store.insert_ignore('transfers', {
            'id': ev.log.id,
            'from_address': ev.from_address,
            'to_address': ev.to_address,
            'token_id': ev.token_id,
            **stamp(ev.log, with_log_index=True),
        })

        # The owner is whatever the latest transfer says, whatever order they were applied in.
        latest = self.store.query_one("SELECT to_address, block_timestamp FROM transfers WHERE token_id = %s "
                                      "ORDER BY block_number DESC, log_index DESC LIMIT 1", (ev.token_id,))

        row = {'id': ev.token_id, 'owner': latest['to_address']}

        if latest['to_address'] == ZERO_ADDRESS:
            row['burned'] = True
            row['burned_at'] = latest['block_timestamp']

        self.store.upsert('nouns', row, merge=NOUN_MERGE)

        refresh_represented(self.store, [delegate_of(self.store, ev.from_address),
                                         delegate_of(self.store, ev.to_address)], ev.log)

    def noun_burned(self, ev, _):

        self.store.upsert('nouns', {'id': ev.token_id, 'burned': True, 'burned_at': ev.log.block_timestamp},
                          merge=NOUN_MERGE)


AUCTION_MERGE = merge_with(keep_first=('start_time', 'block_number', 'block_timestamp',
                                       'settler_address', 'settled_timestamp', 'settled_tx_hash',
                                       'winning_bid_id'),
                           keep_max=('end_time',),
                           keep_true=('settled',))


class Auctions(DataProduct):

    lane = 'items'

    handles = {
        'NounsAuctionHouse:AuctionCreated': 'auction_created',
        'NounsAuctionHouse:AuctionBid': 'auction_bid',
        'NounsAuctionHouse:AuctionBidWithClientId': 'auction_bid_with_client_id',
        'NounsAuctionHouse:AuctionExtended': 'auction_extended',
        'NounsAuctionHouse:AuctionSettled': 'auction_settled',
        'NounsAuctionHouse:AuctionSettledWithClientId': 'auction_settled_with_client_id',
    }

    def __init__(self, store, settlement, chain=None, names=None):
        super().__init__(store, names=names)
        self.settlement = settlement
        self.chain = chain

    def auction_created(self, ev, _):

        self.store.upsert('auctions', {
            'noun_id': ev.noun_id,
            'start_time': ev.start_time,
            'end_time': ev.end_time,
            'block_number': ev.log.block_number,
            'block_timestamp': ev.log.block_timestamp,
        }, merge=AUCTION_MERGE)

    def auction_bid(self, ev, _):

        self.store.insert_ignore('auction_bids', {
            'id': ev.log.id,
            'noun_id': ev.noun_id,
            'bidder': ev.sender,
            'amount': ev.value,
            'extended': ev.extended,
            **stamp(ev.log, with_log_index=True),
        })

        self.store.upsert('auctions', {'noun_id': ev.noun_id}, merge=AUCTION_MERGE)

    def auction_bid_with_client_id(self, ev, _):

        # Emitted right after the AuctionBid it tags, in the same transaction.
        bid = self.store.query_one("SELECT id FROM auction_bids WHERE tx_hash = %s AND noun_id = %s AND amount = %s "
                                   "AND log_index < %s ORDER BY log_index DESC LIMIT 1",
                                   (ev.log.tx_hash, ev.noun_id, str(ev.value), ev.log.log_index))

        if bid is None:
            logr.warning(f"Auctions: no bid in {ev.log.tx_hash} to tag with client {ev.client_id}")
            return

        self.store.update('auction_bids', bid['id'], {'client_id': ev.client_id})

        auction = self.store.get('auctions', ev.noun_id)
        if auction and not auction['settled']:
            self.store.update('auctions', ev.noun_id, {'client_id': ev.client_id})

    def auction_extended(self, ev, _):
        self.store.upsert('auctions', {'noun_id': ev.noun_id, 'end_time': ev.end_time}, merge=AUCTION_MERGE)

    async def fetch_auction_settled(self, ev):

        settler = ev.log.tx_from

        if settler is None and self.chain is not None:
            settler = await self.chain.tx_sender(ev.log.tx_hash)

        names = await self.resolve_names(ev.winner, settler)

        return settler, names.get(settler), names.get(ev.winner)

    def auction_settled(self, ev, fetched):

        settler, settler_ens, winner_ens = fetched

        bid = self.store.query_one("SELECT id FROM auction_bids WHERE noun_id = %s AND bidder = %s AND amount = %s "
                                   "ORDER BY block_number DESC, log_index DESC LIMIT 1",
                                   (ev.noun_id, ev.winner, str(ev.amount)))

        self.store.upsert('auctions', {
            'noun_id': ev.noun_id,
            'winner': ev.winner,
            'amount': ev.amount,
            'settled': True,
            'settler_address': settler,
            'settled_timestamp': ev.log.block_timestamp,
            'settled_tx_hash': ev.log.tx_hash,
            'winning_bid_id': bid['id'] if bid else None,
        }, merge=AUCTION_MERGE)

        # No bids means the noun went to the zero address and was burned.  Only minted nouns are touched.
        if ev.winner != ZERO_ADDRESS:
            self.store.set_once('nouns', ev.noun_id, {
                'winning_bid': ev.amount,
                'winner_address': ev.winner,
                'winner_ens': winner_ens,
            })

        if settler is None:
            logr.warning(f"Auctions: no settler for auction {ev.noun_id}, attribution will go to the log index")
            return

        self.settlement.back_fill(Settlement(noun_id=ev.noun_id,
                                             settler=settler,
                                             settled_at=ev.log.block_timestamp,
                                             tx_hash=ev.log.tx_hash), settler_ens)

    def auction_settled_with_client_id(self, ev, _):
        self.store.upsert('auctions', {'noun_id': ev.noun_id, 'client_id': ev.client_id})


class Delegations(DataProduct):

    lane = 'items'

    handles = {
        'NounsToken:DelegateChanged': 'delegate_changed',
        'NounsToken:DelegateVotesChanged': 'delegate_votes_changed',
    }

    async def fetch_delegate_changed(self, ev):
        return await self.resolve_names(ev.to_delegate)

    def delegate_changed(self, ev, fetched):

        self.store.insert_ignore('delegations', {
            'id': ev.log.id,
            'delegator': ev.delegator,
            'from_delegate': ev.from_delegate,
            'to_delegate': ev.to_delegate,
            **stamp(ev.log, with_log_index=True),
        })

        ens = (fetched or {}).get(ev.to_delegate)
        if ens:
            touch_voter(self.store, ev.to_delegate, ev.log, ens_name=ens)

        refresh_represented(self.store, [ev.from_delegate, ev.to_delegate], ev.log)

    def delegate_votes_changed(self, ev, _):
        touch_voter(self.store, ev.delegate, ev.log, delegated_votes=ev.new_balance)


######################################################################
#
# Proposals and votes
#
######################################################################

PROPOSAL_MERGE = merge_with(keep_first=('proposer', 'created_timestamp', 'created_block', 'tx_hash',
                                        'cancelled_timestamp', 'cancelled_block',
                                        'queued_timestamp', 'queued_block',
                                        'executed_timestamp', 'executed_block',
                                        'vetoed_timestamp', 'vetoed_block'),
                            keep_true=('on_timelock_v1',),
                            merge_status=settle_status)


def window_timestamp(ev, block):
    return ev.log.block_timestamp + (block - ev.log.block_number) * SECONDS_PER_BLOCK


class Proposals(DataProduct):

    lane = 'governance'

    handles = {
        'NounsDAO:ProposalCreated': 'proposal_created',
        'NounsDAO:ProposalCreatedWithRequirements': 'proposal_created_with_requirements',
        'NounsDAO:ProposalCreatedOnTimelockV1': 'proposal_created_on_timelock_v1',
        'NounsDAO:ProposalUpdated': 'proposal_updated',
        'NounsDAO:ProposalDescriptionUpdated': 'proposal_updated',
        'NounsDAO:ProposalTransactionsUpdated': 'proposal_updated',
        'NounsDAO:ProposalCanceled': 'proposal_canceled',
        'NounsDAO:ProposalQueued': 'proposal_queued',
        'NounsDAO:ProposalExecuted': 'proposal_executed',
        'NounsDAO:ProposalVetoed': 'proposal_vetoed',
        'NounsDAO:ProposalObjectionPeriodSet': 'proposal_objection_period_set',
    }

    def write(self, row):
        return self.store.upsert('proposals', row, merge=PROPOSAL_MERGE)

    async def fetch_proposal_created(self, ev):
        # Warms the name cache for the proposer; the views read names from there.
        return await self.resolve_names(getattr(ev, 'proposer', None))

    def creation_row(self, ev):
        return {
            'id': ev.id,
            'proposer': ev.proposer,
            'title': extract_title(ev.description) or '',
            'description': ev.description,
            'status': PENDING,
            **calls(ev),
            'start_block': ev.start_block,
            'end_block': ev.end_block,
            'start_timestamp': window_timestamp(ev, ev.start_block),
            'end_timestamp': window_timestamp(ev, ev.end_block),
            'created_timestamp': ev.log.block_timestamp,
            'created_block': ev.log.block_number,
            'tx_hash': ev.log.tx_hash,
        }

    def proposal_created(self, ev, _):

        self.write(self.creation_row(ev))

        self.add_version(ev, ev.id, ev.description, calls(ev), update_message=None)

    fetch_proposal_created_with_requirements = fetch_proposal_created

    def proposal_created_with_requirements(self, ev, fetched):

        # Same event name, two shapes: the V3 one carries signers instead of the proposal body.
        if isinstance(ev, ProposalCreatedWithSigners):
            self.proposal_created_with_signers(ev)
            return

        # V1 governors log ProposalCreated as well, in the same transaction; one creation version is enough.
        created = self.store.scalar("SELECT COUNT(*) FROM proposal_versions WHERE proposal_id = %s "
                                    "AND update_message IS NULL", (ev.id,))
        if created:
            self.write(self.creation_row(ev))
        else:
            self.proposal_created(ev, fetched)
        self.write({'id': ev.id,
                    'proposal_threshold': ev.proposal_threshold,
                    'quorum_votes': ev.quorum_votes})

    def proposal_created_with_signers(self, ev):

        row = {'id': ev.id,
               'signers': list(ev.signers),
               'update_period_end_block': ev.update_period_end_block,
               'proposal_threshold': ev.proposal_threshold,
               'quorum_votes': ev.quorum_votes,
               'client_id': ev.client_id}

        if ev.update_period_end_block and ev.log.block_number <= ev.update_period_end_block:
            row['status'] = UPDATABLE

        self.write(row)

    def proposal_created_on_timelock_v1(self, ev, _):
        self.write({'id': ev.id, 'on_timelock_v1': True})

    def proposal_updated(self, ev, _):

        prior = self.store.get('proposals', ev.id) or {}

        row = {'id': ev.id}

        if isinstance(ev, (ProposalUpdated, ProposalDescriptionUpdated)):
            description = ev.description
            row['title'] = extract_title(description) or ''
            row['description'] = description
        else:
            description = prior.get('description')

        if hasattr(ev, 'targets'):
            txs = calls(ev)
            row.update(txs)
        else:
            txs = {k: prior.get(k) for k in ('targets', 'target_values', 'signatures', 'calldatas')}

        self.write(row)

        self.add_version(ev, ev.id, description, txs, update_message=ev.update_message)

    def add_version(self, ev, proposal_id, description, txs, update_message):

        self.store.insert_ignore('proposal_versions', {
            'id': ev.log.id,
            'proposal_id': proposal_id,
            'title': extract_title(description),
            'description': description,
            **txs,
            'update_message': update_message,
            **stamp(ev.log, with_tx_hash=False, with_log_index=True),
        })

        renumber(self.store, 'proposal_versions', 'proposal_id', proposal_id)

    def transition(self, ev, status, **fields):

        prior = self.store.get('proposals', ev.id)
        if prior and settle_status(prior['status'], status) != status:
            logr.info(f"Proposals: {ev.id} stays {prior['status']}, ignoring {status} at block {ev.log.block_number}")

        self.write({'id': ev.id, 'status': status, **fields})

    def proposal_canceled(self, ev, _):
        self.transition(ev, CANCELLED,
                        cancelled_timestamp=ev.log.block_timestamp,
                        cancelled_block=ev.log.block_number)

    def proposal_queued(self, ev, _):
        self.transition(ev, QUEUED,
                        execution_eta=ev.eta,
                        queued_timestamp=ev.log.block_timestamp,
                        queued_block=ev.log.block_number)

    def proposal_executed(self, ev, _):
        self.transition(ev, EXECUTED,
                        executed_timestamp=ev.log.block_timestamp,
                        executed_block=ev.log.block_number)

    def proposal_vetoed(self, ev, _):
        # The veto is recorded even when the status can no longer move.
        self.transition(ev, VETOED,
                        vetoed_timestamp=ev.log.block_timestamp,
                        vetoed_block=ev.log.block_number)

    def proposal_objection_period_set(self, ev, _):
        self.write({'id': ev.id, 'objection_period_end_block': ev.objection_period_end_block})


def vote_id(voter, proposal_id):
    # One vote per voter per proposal on chain.
    return f"{voter}-{proposal_id}"


TALLY_COLUMNS = {0: 'against_votes', 1: 'for_votes', 2: 'abstain_votes'}


class Votes(DataProduct):

    lane = 'governance'

    handles = {
        'NounsDAO:VoteCast': 'vote_cast',
        'NounsDAO:VoteCastWithClientId': 'vote_cast_with_client_id',
        'NounsDAO:RefundableVote': 'refundable_vote',
    }

    async def fetch_vote_cast(self, ev):
        return await self.resolve_names(ev.voter)

    def vote_cast(self, ev, fetched):

        self.store.insert_ignore('votes', {
            'id': vote_id(ev.voter, ev.proposal_id),
            'voter': ev.voter,
            'proposal_id': ev.proposal_id,
            'support': ev.support,
            'votes': ev.votes,
            'reason': ev.reason or None,
            **stamp(ev.log, with_log_index=True),
        })

        self.tally(ev.proposal_id)

        stats = self.store.query_one("SELECT COUNT(*) AS total_votes, MAX(block_timestamp) AS last_vote_at "
                                     "FROM votes WHERE voter = %s", (ev.voter,))

        touch_voter(self.store, ev.voter, ev.log,
                    ens_name=(fetched or {}).get(ev.voter),
                    total_votes=int(stats['total_votes']),
                    last_vote_at=stats['last_vote_at'])

    def tally(self, proposal_id):
        """
        Tallies are sums over the votes table, never increments.
        """

        rows = self.store.query("SELECT support, SUM(votes) AS total FROM votes WHERE proposal_id = %s GROUP BY support",
                                (proposal_id,))

        row = {'id': proposal_id, **{col: 0 for col in TALLY_COLUMNS.values()}}
        for r in rows:
            if r['support'] in TALLY_COLUMNS:
                row[TALLY_COLUMNS[r['support']]] = int(r['total'])

        self.store.upsert('proposals', row, merge=PROPOSAL_MERGE)

    def vote_cast_with_client_id(self, ev, _):
        self.store.update('votes', vote_id(ev.voter, ev.proposal_id), {'client_id': ev.client_id})

    def refundable_vote(self, ev, _):
        self.store.insert_ignore('vote_refunds', {
            'id': ev.log.id,
            'voter': ev.voter,
            'refund_amount': ev.refund_amount,
            'refund_sent': ev.refund_sent,
            **stamp(ev.log),
        })


######################################################################
#
# Candidates and feedback
#
######################################################################

CANDIDATE_MERGE = merge_with(keep_first=('created_timestamp', 'block_number', 'canceled_timestamp', 'canceled_block'),
                             keep_max=('last_updated_timestamp',),
                             keep_true=('canceled',))


class Candidates(DataProduct):

    lane = 'candidates'

    handles = {
        'NounsDAOData:ProposalCandidateCreated': 'candidate_created',
        'NounsDAOData:ProposalCandidateUpdated': 'candidate_updated',
        'NounsDAOData:ProposalCandidateCanceled': 'candidate_canceled',
        'NounsDAOData:SignatureAdded': 'signature_added',
        'NounsDAO:SignatureCancelled': 'signature_cancelled',
    }

    async def fetch_candidate_created(self, ev):
        return await self.resolve_names(ev.msg_sender)

    def candidate_created(self, ev, _):

        cid = candidate_id(ev.msg_sender, ev.slug)

        self.store.upsert('candidates', {
            'id': cid,
            'slug': ev.slug,
            'proposer': ev.msg_sender,
            'title': extract_title(ev.description),
            'description': ev.description,
            **calls(ev),
            'encoded_proposal_hash': ev.encoded_proposal_hash,
            'proposal_id_to_update': ev.proposal_id_to_update or None,
            'created_timestamp': ev.log.block_timestamp,
            'last_updated_timestamp': ev.log.block_timestamp,
            'block_number': ev.log.block_number,
        }, merge=CANDIDATE_MERGE)

        self.store.insert_ignore('candidate_versions', {
            'id': ev.log.id,
            'candidate_id': cid,
            'title': extract_title(ev.description),
            'description': ev.description,
            **calls(ev),
            'update_message': getattr(ev, 'reason', None) or None,
            **stamp(ev.log, with_tx_hash=False, with_log_index=True),
        })

        renumber(self.store, 'candidate_versions', 'candidate_id', cid)

    # An update carries the full content again, plus the reason.
    candidate_updated = candidate_created

    def candidate_canceled(self, ev, _):

        self.store.upsert('candidates', {
            'id': candidate_id(ev.msg_sender, ev.slug),
            'slug': ev.slug,
            'proposer': ev.msg_sender,
            'canceled': True,
            'canceled_timestamp': ev.log.block_timestamp,
            'canceled_block': ev.log.block_number,
        }, merge=CANDIDATE_MERGE)

    def signature_added(self, ev, _):

        cid = candidate_id(ev.proposer, ev.slug)

        self.store.insert_ignore('candidate_signatures', {
            'id': ev.log.id,
            'candidate_id': cid,
            'signer': ev.signer,
            'sig': ev.sig,
            'expiration_timestamp': ev.expiration_timestamp,
            'proposer': ev.proposer,
            'slug': ev.slug,
            'proposal_id_to_update': ev.proposal_id_to_update or None,
            'encoded_prop_hash': ev.encoded_prop_hash,
            'sig_digest': ev.sig_digest,
            'reason': ev.reason or None,
            **stamp(ev.log, with_tx_hash=False),
        })

        self.recount(cid)

    def signature_cancelled(self, ev, _):

        self.store.insert_ignore('cancelled_signatures', {
            'id': ev.log.id,
            'signer': ev.signer,
            'sig': ev.sig,
            **stamp(ev.log, with_tx_hash=False),
        })

        for row in self.store.query("SELECT DISTINCT candidate_id FROM candidate_signatures WHERE sig = %s", (ev.sig,)):
            self.recount(row['candidate_id'])

    def recount(self, cid):

        count = self.store.scalar("SELECT COUNT(*) FROM candidate_signatures s WHERE s.candidate_id = %s "
                                  "AND NOT EXISTS (SELECT 1 FROM cancelled_signatures x WHERE x.sig = s.sig)", (cid,))

        if self.store.get('candidates', cid) is None:
            logr.warning(f"Candidates: signature for unknown candidate {cid}")
            return

        self.store.update('candidates', cid, {'signature_count': int(count or 0)})


class Feedback(DataProduct):

    lane = 'candidates'

    handles = {
        'NounsDAOData:FeedbackSent': 'feedback_sent',
        'NounsDAOData:CandidateFeedbackSent': 'candidate_feedback_sent',
        'NounsDAOData:ProposalComplianceSignaled': 'compliance_signaled',
        'NounsDAOData:DunaAdminMessagePosted': 'duna_message',
        'NounsDAOData:VoterMessageToDunaAdminPosted': 'duna_message',
    }

    def feedback_sent(self, ev, _):
        self.store.insert_ignore('proposal_feedback', {
            'id': ev.log.id,
            'msg_sender': ev.msg_sender,
            'proposal_id': ev.proposal_id,
            'support': ev.support,
            'reason': ev.reason or None,
            **stamp(ev.log, with_tx_hash=False),
        })

    def candidate_feedback_sent(self, ev, _):
        self.store.insert_ignore('candidate_feedback', {
            'id': ev.log.id,
            'candidate_id': candidate_id(ev.proposer, ev.slug),
            'msg_sender': ev.msg_sender,
            'proposer': ev.proposer,
            'slug': ev.slug,
            'support': ev.support,
            'reason': ev.reason or None,
            **stamp(ev.log, with_tx_hash=False),
        })

    def compliance_signaled(self, ev, _):
        self.store.insert_ignore('compliance_signals', {
            'id': ev.log.id,
            'proposal_id': ev.proposal_id,
            'signal': ev.signal,
            'reason': ev.reason or None,
            **stamp(ev.log, with_tx_hash=False),
        })

    def duna_message(self, ev, _):

        message_type = 'VOTER' if isinstance(ev, VoterMessageToDunaAdminPosted) else 'ADMIN'

        self.store.insert_ignore('duna_messages', {
            'id': ev.log.id,
            'message_type': message_type,
            'message': ev.message,
            'related_proposals': list(ev.related_proposals),
            **stamp(ev.log, with_tx_hash=False),
        })
