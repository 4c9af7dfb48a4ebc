"""
Table layout of the materialized store.

Column names and types are the contract for every read-side consumer: add columns, never
rename them.  Types are logical; store.py maps them per dialect.

    int   - block numbers, timestamps, ids, vote counts (fits in 64 bits)
    uint  - uint256 amounts in wei, exact
    text  - strings and lowercased 0x-hex
    bool
    json  - lists / dicts
"""

from collections import namedtuple

Column = namedtuple('Column', ['name', 'type', 'not_null', 'default'])


def c(name, type_='text', not_null=False, default=None):
    return Column(name, type_, not_null, default)


class Table:

    def __init__(self, name, key, columns, indexes=()):
        self.name = name
        self.key = key
        self.columns = {col.name: col for col in columns}
        self.indexes = indexes

        assert key in self.columns, f"{name}: key {key} is not a column"

    def __repr__(self):
        return f"Table({self.name})"


def log_columns(with_tx_hash=True, with_log_index=False):
    out = [c('block_number', 'int', True), c('block_timestamp', 'int', True)]
    if with_log_index:
        out.append(c('log_index', 'int', True))
    if with_tx_hash:
        out.append(c('tx_hash'))
    return out


def calls_columns():
    return [c('targets', 'json'), c('target_values', 'json'), c('signatures', 'json'), c('calldatas', 'json')]


TABLES = [

    # Core protocol

    Table('nouns', 'id', [
        c('id', 'int', True),
        c('background', 'int'),
        c('body', 'int'),
        c('accessory', 'int'),
        c('head', 'int'),
        c('glasses', 'int'),
        c('owner'),
        c('settled_by_address'),
        c('settled_by_ens'),
        c('settled_at', 'int'),
        c('settled_tx_hash'),
        c('winning_bid', 'uint'),
        c('winner_address'),
        c('winner_ens'),
        c('burned', 'bool', True, False),
        c('burned_at', 'int'),
        c('block_number', 'int'),
        c('block_timestamp', 'int'),
    ], indexes=[('owner',), ('settled_by_address',)]),

    Table('auctions', 'noun_id', [
        c('noun_id', 'int', True),
        c('start_time', 'int'),
        c('end_time', 'int'),
        c('winner'),
        c('amount', 'uint'),
        c('settled', 'bool', True, False),
        c('client_id', 'int'),
        c('settler_address'),
        c('settled_timestamp', 'int'),
        c('settled_tx_hash'),
        c('winning_bid_id'),
        c('block_number', 'int'),
        c('block_timestamp', 'int'),
    ], indexes=[('winner',), ('client_id',)]),

    Table('auction_bids', 'id', [
        c('id', 'text', True),
        c('noun_id', 'int', True),
        c('bidder', 'text', True),
        c('amount', 'uint', True),
        c('extended', 'bool', True, False),
        c('client_id', 'int'),
    ] + log_columns(with_log_index=True), indexes=[('noun_id',), ('bidder',), ('tx_hash',)]),

    Table('transfers', 'id', [
        c('id', 'text', True),
        c('from_address', 'text', True),
        c('to_address', 'text', True),
        c('token_id', 'int', True),
    ] + log_columns(with_log_index=True), indexes=[('token_id',), ('from_address',), ('to_address',)]),

    Table('delegations', 'id', [
        c('id', 'text', True),
        c('delegator', 'text', True),
        c('from_delegate', 'text', True),
        c('to_delegate', 'text', True),
    ] + log_columns(with_log_index=True), indexes=[('delegator',), ('to_delegate',)]),

    Table('voters', 'address', [
        c('address', 'text', True),
        c('ens_name'),
        c('delegated_votes', 'int', True, 0),
        c('nouns_represented', 'json', False, []),
        c('total_votes', 'int', True, 0),
        c('last_vote_at', 'int'),
        c('first_seen_at', 'int'),
    ], indexes=[('delegated_votes',)]),

    # Governance

    Table('proposals', 'id', [
        c('id', 'int', True),
        c('proposer'),
        c('title', 'text', True, ''),
        c('description'),
        c('status', 'text', True, 'PENDING'),
    ] + calls_columns() + [
        c('start_block', 'int'),
        c('end_block', 'int'),
        c('start_timestamp', 'int'),
        c('end_timestamp', 'int'),
        c('proposal_threshold', 'int'),
        c('quorum_votes', 'int'),
        c('for_votes', 'int', True, 0),
        c('against_votes', 'int', True, 0),
        c('abstain_votes', 'int', True, 0),
        c('execution_eta', 'int'),
        c('signers', 'json'),
        c('update_period_end_block', 'int'),
        c('objection_period_end_block', 'int'),
        c('on_timelock_v1', 'bool', True, False),
        c('client_id', 'int'),
        c('created_timestamp', 'int'),
        c('created_block', 'int'),
        c('tx_hash'),
        c('cancelled_timestamp', 'int'),
        c('cancelled_block', 'int'),
        c('queued_timestamp', 'int'),
        c('queued_block', 'int'),
        c('executed_timestamp', 'int'),
        c('executed_block', 'int'),
        c('vetoed_timestamp', 'int'),
        c('vetoed_block', 'int'),
    ], indexes=[('status',), ('proposer',), ('created_timestamp',), ('client_id',)]),

    Table('proposal_versions', 'id', [
        c('id', 'text', True),
        c('proposal_id', 'int', True),
        c('version_number', 'int', True, 0),
        c('title'),
        c('description'),
    ] + calls_columns() + [
        c('update_message'),
    ] + log_columns(with_tx_hash=False, with_log_index=True), indexes=[('proposal_id',)]),

    Table('votes', 'id', [
        c('id', 'text', True),
        c('voter', 'text', True),
        c('proposal_id', 'int', True),
        c('support', 'int', True),
        c('votes', 'int', True),
        c('reason'),
        c('client_id', 'int'),
    ] + log_columns(with_log_index=True), indexes=[('voter',), ('proposal_id',), ('client_id',)]),

    Table('vote_refunds', 'id', [
        c('id', 'text', True),
        c('voter', 'text', True),
        c('refund_amount', 'uint', True),
        c('refund_sent', 'bool', True),
    ] + log_columns()),

    Table('cancelled_signatures', 'id', [
        c('id', 'text', True),
        c('signer', 'text', True),
        c('sig', 'text', True),
    ] + log_columns(with_tx_hash=False), indexes=[('sig',)]),

    # Candidates & feedback

    Table('candidates', 'id', [
        c('id', 'text', True),
        c('slug', 'text', True),
        c('proposer', 'text', True),
        c('title'),
        c('description'),
    ] + calls_columns() + [
        c('encoded_proposal_hash'),
        c('proposal_id_to_update', 'int'),
        c('canceled', 'bool', True, False),
        c('canceled_timestamp', 'int'),
        c('canceled_block', 'int'),
        c('signature_count', 'int', True, 0),
        c('created_timestamp', 'int'),
        c('last_updated_timestamp', 'int'),
        c('block_number', 'int'),
    ], indexes=[('slug',), ('proposer',), ('created_timestamp',)]),

    Table('candidate_versions', 'id', [
        c('id', 'text', True),
        c('candidate_id', 'text', True),
        c('version_number', 'int', True, 0),
        c('title'),
        c('description'),
    ] + calls_columns() + [
        c('update_message'),
    ] + log_columns(with_tx_hash=False, with_log_index=True), indexes=[('candidate_id',)]),

    Table('candidate_signatures', 'id', [
        c('id', 'text', True),
        c('candidate_id', 'text', True),
        c('signer', 'text', True),
        c('sig', 'text', True),
        c('expiration_timestamp', 'int', True),
        c('proposer', 'text', True),
        c('slug', 'text', True),
        c('proposal_id_to_update', 'int'),
        c('encoded_prop_hash'),
        c('sig_digest'),
        c('reason'),
    ] + log_columns(with_tx_hash=False), indexes=[('signer',), ('candidate_id',), ('sig',)]),

    Table('proposal_feedback', 'id', [
        c('id', 'text', True),
        c('msg_sender', 'text', True),
        c('proposal_id', 'int', True),
        c('support', 'int', True),
        c('reason'),
    ] + log_columns(with_tx_hash=False), indexes=[('proposal_id',)]),

    Table('candidate_feedback', 'id', [
        c('id', 'text', True),
        c('candidate_id', 'text', True),
        c('msg_sender', 'text', True),
        c('proposer', 'text', True),
        c('slug', 'text', True),
        c('support', 'int', True),
        c('reason'),
    ] + log_columns(with_tx_hash=False), indexes=[('candidate_id',)]),

    Table('compliance_signals', 'id', [
        c('id', 'text', True),
        c('proposal_id', 'int', True),
        c('signal', 'int', True),
        c('reason'),
    ] + log_columns(with_tx_hash=False)),

    Table('duna_messages', 'id', [
        c('id', 'text', True),
        c('message_type', 'text', True),
        c('message', 'text', True),
        c('related_proposals', 'json'),
    ] + log_columns(with_tx_hash=False)),

    # Treasury & finance

    Table('treasury_txs', 'id', [
        c('id', 'text', True),
        c('timelock_tx_hash', 'text', True),
        c('target', 'text', True),
        c('value', 'uint', True),
        c('signature', 'text', True, ''),
        c('data', 'text', True),
        c('eta', 'int', True),
        c('status', 'text', True, 'QUEUED'),
        c('treasury_version', 'text', True),
    ] + log_columns(), indexes=[('status',), ('timelock_tx_hash',)]),

    Table('treasury_transfers', 'id', [
        c('id', 'text', True),
        c('to_address', 'text', True),
        c('amount', 'uint', True),
        c('token_type', 'text', True),
        c('erc20_token'),
    ] + log_columns()),

    Table('token_buyer_trades', 'id', [
        c('id', 'text', True),
        c('to_address', 'text', True),
        c('eth_out', 'uint', True),
        c('token_in', 'uint', True),
    ] + log_columns()),

    Table('payer_debts', 'id', [
        c('id', 'text', True),
        c('account', 'text', True),
        c('amount', 'uint', True),
        c('event_type', 'text', True),
        c('remaining_debt', 'uint'),
    ] + log_columns(with_tx_hash=False)),

    Table('streams', 'id', [
        c('id', 'text', True),
        c('msg_sender', 'text', True),
        c('payer', 'text', True),
        c('recipient', 'text', True),
        c('token_amount', 'uint', True),
        c('token_address', 'text', True),
        c('start_time', 'int', True),
        c('stop_time', 'int', True),
        c('stream_address', 'text', True),
    ] + log_columns(with_tx_hash=False), indexes=[('recipient',)]),

    Table('clients', 'client_id', [
        c('client_id', 'int', True),
        c('name', 'text', True, ''),
        c('description', 'text', True, ''),
        c('approved', 'bool', True, False),
        c('total_rewarded', 'uint', True, 0),
        c('total_withdrawn', 'uint', True, 0),
        c('nft_image'),
        c('block_number', 'int'),
        c('block_timestamp', 'int'),
    ]),

    Table('client_reward_events', 'id', [
        c('id', 'text', True),
        c('client_id', 'int', True),
        c('amount', 'uint', True),
    ] + log_columns(), indexes=[('client_id',)]),

    Table('client_withdrawals', 'id', [
        c('id', 'text', True),
        c('client_id', 'int', True),
        c('amount', 'uint', True),
        c('to_address', 'text', True),
    ] + log_columns(), indexes=[('client_id',)]),

    Table('reward_updates', 'id', [
        c('id', 'text', True),
        c('update_type', 'text', True),
        c('params', 'json', True),
    ] + log_columns(with_tx_hash=False)),

    # Audit trail of admin/config events, every contract.

    Table('config_changes', 'id', [
        c('id', 'text', True),
        c('contract', 'text', True),
        c('event_name', 'text', True),
        c('params', 'json', True),
    ] + log_columns(), indexes=[('contract',)]),

    # Engine bookkeeping

    Table('ens_names', 'address', [
        c('address', 'text', True),
        c('name'),
        c('avatar'),
        c('resolved_at', 'int', True),
    ]),

    Table('checkpoints', 'lane', [
        c('lane', 'text', True),
        c('block_number', 'int', True),
        c('log_index', 'int', True),
    ]),

    Table('failed_events', 'id', [
        c('id', 'text', True),
        c('lane', 'text', True),
        c('event_key', 'text', True),
        c('block_number', 'int', True),
        c('log_index', 'int', True),
        c('error', 'text'),
        c('attempts', 'int', True, 0),
        c('payload', 'json'),
    ], indexes=[('lane',)]),
]

TABLES_BY_NAME = {t.name: t for t in TABLES}


def column_types():
    """
    Column name -> logical type for every column that needs decoding on the way out.

    Joins in views return bare column names, so a name must mean the same type everywhere.
    """

    out = {}
    for table in TABLES:
        for col in table.columns.values():
            if col.type in ('uint', 'bool', 'json'):
                assert out.get(col.name, col.type) == col.type, f"{col.name} has conflicting types"
                out[col.name] = col.type
    return out


DECODED_COLUMNS = column_types()
