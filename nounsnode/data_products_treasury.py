from sanic.log import logger as logr

from .abcs import DataProduct, merge_with
from .data_products import stamp
from .events import EVENTS, AuctionRewardsUpdated, CancelTransaction, ExecuteTransaction, ERC20Sent, PaidBackDebt, json_safe
from .signatures import CONTRACT_EVENTS

TREASURY_VERSIONS = {'TreasuryV1': 'v1', 'TreasuryV2': 'v2'}


def timelock_status(ev):
    if isinstance(ev, ExecuteTransaction):
        return 'EXECUTED'
    if isinstance(ev, CancelTransaction):
        return 'CANCELLED'
    return 'QUEUED'


class Treasury(DataProduct):

    lane = 'treasury'

    handles = {
        'TreasuryV1:QueueTransaction': 'timelock_transaction',
        'TreasuryV1:ExecuteTransaction': 'timelock_transaction',
        'TreasuryV1:CancelTransaction': 'timelock_transaction',
        'TreasuryV2:QueueTransaction': 'timelock_transaction',
        'TreasuryV2:ExecuteTransaction': 'timelock_transaction',
        'TreasuryV2:CancelTransaction': 'timelock_transaction',
        'TreasuryV2:ETHSent': 'sent',
        'TreasuryV2:ERC20Sent': 'sent',
    }

    def timelock_transaction(self, ev, _):

        version = TREASURY_VERSIONS[ev.log.contract]

        # One row per log; the same timelock tx shows up once queued and again when executed or cancelled.
        self.store.insert_ignore('treasury_txs', {
            'id': f"{version}-{ev.timelock_tx_hash}-{ev.log.log_index}",
            'timelock_tx_hash': ev.timelock_tx_hash,
            'target': ev.target,
            'value': ev.value,
            'signature': ev.signature,
            'data': ev.data,
            'eta': ev.eta,
            'status': timelock_status(ev),
            'treasury_version': version,
            **stamp(ev.log),
        })

    def sent(self, ev, _):

        erc20 = isinstance(ev, ERC20Sent)

        self.store.insert_ignore('treasury_transfers', {
            'id': ev.log.id,
            'to_address': ev.to_address,
            'amount': ev.amount,
            'token_type': 'ERC20' if erc20 else 'ETH',
            'erc20_token': ev.erc20_token if erc20 else None,
            **stamp(ev.log),
        })


class TokenBuyer(DataProduct):

    lane = 'treasury'

    handles = {'TokenBuyer:SoldETH': 'sold_eth'}

    def sold_eth(self, ev, _):
        self.store.insert_ignore('token_buyer_trades', {
            'id': ev.log.id,
            'to_address': ev.to_address,
            'eth_out': ev.eth_out,
            'token_in': ev.token_in,
            **stamp(ev.log),
        })


class Payer(DataProduct):

    lane = 'treasury'

    handles = {
        'Payer:RegisteredDebt': 'debt',
        'Payer:PaidBackDebt': 'debt',
    }

    def debt(self, ev, _):

        paid = isinstance(ev, PaidBackDebt)

        self.store.insert_ignore('payer_debts', {
            'id': ev.log.id,
            'account': ev.account,
            'amount': ev.amount,
            'event_type': 'PAID_BACK' if paid else 'REGISTERED',
            'remaining_debt': ev.remaining_debt if paid else None,
            **stamp(ev.log, with_tx_hash=False),
        })


class Streams(DataProduct):

    lane = 'treasury'

    handles = {'StreamFactory:StreamCreated': 'stream_created'}

    def stream_created(self, ev, _):
        self.store.insert_ignore('streams', {
            'id': ev.log.id,
            'msg_sender': ev.msg_sender,
            'payer': ev.payer,
            'recipient': ev.recipient,
            'token_amount': ev.token_amount,
            'token_address': ev.token_address,
            'start_time': ev.start_time,
            'stop_time': ev.stop_time,
            'stream_address': ev.stream_address,
            **stamp(ev.log, with_tx_hash=False),
        })


CLIENT_MERGE = merge_with(keep_first=('block_number', 'block_timestamp'))


class ClientRewards(DataProduct):
    """
    Client registry and reward accounting.  Totals always come from the contract read, see
    RewardAggregator; the event rows here are the audit trail.
    """

    lane = 'rewards'

    handles = {
        'ClientRewards:ClientRegistered': 'client_registered',
        'ClientRewards:ClientUpdated': 'client_registered',
        'ClientRewards:ClientApprovalSet': 'client_approval_set',
        'ClientRewards:ClientRewarded': 'client_rewarded',
        'ClientRewards:ClientBalanceWithdrawal': 'client_withdrawal',
        'ClientRewards:AuctionRewardsUpdated': 'rewards_updated',
        'ClientRewards:ProposalRewardsUpdated': 'rewards_updated',
    }

    def __init__(self, store, aggregator):
        super().__init__(store)
        self.aggregator = aggregator

    async def fetch_client_registered(self, ev):
        totals = await self.aggregator.read_totals(ev.client_id)
        image = await self.aggregator.read_image(ev.client_id)
        return totals, image

    def client_registered(self, ev, fetched):

        totals, image = fetched

        row = {'client_id': ev.client_id,
               'name': ev.name,
               'description': ev.description,
               'nft_image': image,
               'block_number': ev.log.block_number,
               'block_timestamp': ev.log.block_timestamp}

        if totals:
            row.update(totals)

        self.store.upsert('clients', row, merge=CLIENT_MERGE)

    def client_approval_set(self, ev, _):
        self.store.upsert('clients', {'client_id': ev.client_id, 'approved': ev.approved}, merge=CLIENT_MERGE)

    async def fetch_client_rewarded(self, ev):
        return await self.aggregator.read_totals(ev.client_id)

    def client_rewarded(self, ev, totals):

        self.store.insert_ignore('client_reward_events', {
            'id': ev.log.id,
            'client_id': ev.client_id,
            'amount': ev.amount,
            **stamp(ev.log),
        })

        self.aggregator.apply(ev.client_id, totals)

    fetch_client_withdrawal = fetch_client_rewarded

    def client_withdrawal(self, ev, totals):

        self.store.insert_ignore('client_withdrawals', {
            'id': ev.log.id,
            'client_id': ev.client_id,
            'amount': ev.amount,
            'to_address': ev.to_address,
            **stamp(ev.log),
        })

        self.aggregator.apply(ev.client_id, totals)

    def rewards_updated(self, ev, _):

        update_type = 'AUCTION' if isinstance(ev, AuctionRewardsUpdated) else 'PROPOSAL'

        params = {k: v for k, v in vars(ev).items() if k != 'log'}

        self.store.insert_ignore('reward_updates', {
            'id': ev.log.id,
            'update_type': update_type,
            'params': json_safe(params),
            **stamp(ev.log, with_tx_hash=False),
        })


def config_event_keys(contract_events=CONTRACT_EVENTS):
    """
    Every "Contract:Event" we subscribe to but have no typed event for: ownership, pauses,
    parameter setters and the like.
    """

    keys = set()
    for contract, signatures in contract_events.items():
        for signature in signatures:
            name = signature.split('(')[0].strip()
            if name.startswith('event '):
                name = name[len('event '):].strip()
            if name not in EVENTS:
                keys.add(f"{contract}:{name}")
    return keys


class ConfigAudit(DataProduct):

    lane = 'treasury'

    decodes_as_config = True

    def __init__(self, store, keys=None):
        super().__init__(store)
        self.handles = {key: 'config_changed' for key in sorted(keys or config_event_keys())}

    def config_changed(self, ev, _):

        inserted = self.store.insert_ignore('config_changes', {
            'id': ev.log.id,
            'contract': ev.log.contract,
            'event_name': ev.event_name,
            'params': ev.params,
            **stamp(ev.log),
        })

        if inserted:
            logr.info(f"ConfigAudit: {ev.log.contract}.{ev.event_name} at block {ev.log.block_number}")
