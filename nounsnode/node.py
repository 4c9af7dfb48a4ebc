"""
Assembly of one indexer: store, collaborators, data products and the feed plan.  The server
and the CLI both boot through here.
"""

from sanic.log import logger as logr

from .abi import AbiSet
from .config import (load_deployment, DATABASE_URL, ARCHIVE_NODE_HTTP_URL, REALTIME_NODE_WS_URL,
                     NOUNSNODE_DATA_PATH, ETHERSCAN_API_KEY, CALL_TIMEOUT)
from .clients_csv import CSVClient
from .clients_httpjson import JsonRpcHistHttpClient, JsonRpcRtHttpClient
from .clients_wsjson import JsonRpcRtWsClient
from .data_models import ProposalStatusRefresher
from .data_products import Nouns, Auctions, Delegations, Proposals, Votes, Candidates, Feedback
from .data_products_treasury import Treasury, TokenBuyer, Payer, Streams, ClientRewards, ConfigAudit
from .dev_modes import RESOLVE_NAMES_DURING_INGEST
from .dispatch import DataProductContext
from .feed import ClientSequencer
from .names import NameCache, EnsIdeasResolver
from .readers import ChainReader, ClientRewardsReader, GovernorReader
from .rewards import RewardAggregator
from .settlement import SettlementResolver, EtherscanLogIndex
from .signatures import CONTRACT_EVENTS
from .store import Store


class Node:

    def __init__(self, store, deployment, chain=None, names=None, log_index=None, rewards_reader=None,
                 governor=None, ingest_names=True):

        self.store = store
        self.deployment = deployment
        self.chain = chain
        self.names = names
        self.log_index = log_index

        # Ingest-time lookups can be switched off; the sweeps still use the cache.
        ingest = names if ingest_names else None

        self.settlement = SettlementResolver(store, log_index=log_index, names=ingest)
        self.rewards = RewardAggregator(store, rewards_reader)
        self.refresher = ProposalStatusRefresher(store, governor)

        self.abis = AbiSet('nounsnode', CONTRACT_EVENTS)

        self.ctx = DataProductContext(store, chain=chain)

        for dp in [Nouns(store, self.settlement, names=ingest),
                   Auctions(store, self.settlement, chain=chain, names=ingest),
                   Delegations(store, names=ingest),
                   Proposals(store, names=ingest),
                   Votes(store, names=ingest),
                   Candidates(store),
                   Feedback(store),
                   Treasury(store),
                   TokenBuyer(store),
                   Payer(store),
                   Streams(store),
                   ClientRewards(store, self.rewards),
                   ConfigAudit(store)]:
            self.ctx.register(dp)

        self.ctx.register_model(self.refresher)

    @classmethod
    def from_env(cls, deployment=None, database_url=DATABASE_URL):

        deployment = deployment or load_deployment()
        contracts = deployment['contracts']

        store = Store.connect(database_url)
        store.create_schema()

        chain = rewards_reader = governor = None

        if ARCHIVE_NODE_HTTP_URL:
            chain = ChainReader(ARCHIVE_NODE_HTTP_URL, timeout=CALL_TIMEOUT)
            if 'ClientRewards' in contracts:
                rewards_reader = ClientRewardsReader(ARCHIVE_NODE_HTTP_URL, contracts['ClientRewards']['address'],
                                                     timeout=CALL_TIMEOUT)
            if 'NounsDAO' in contracts:
                governor = GovernorReader(ARCHIVE_NODE_HTTP_URL, contracts['NounsDAO']['address'],
                                          timeout=CALL_TIMEOUT)
        else:
            logr.warning("Node: no archive node configured, on-chain reads are disabled.")

        log_index = None
        if ETHERSCAN_API_KEY and 'NounsAuctionHouse' in contracts:
            log_index = EtherscanLogIndex(ETHERSCAN_API_KEY, contracts['NounsAuctionHouse']['address'],
                                          chain_id=deployment['chain_id'], timeout=CALL_TIMEOUT)

        names = NameCache(store, EnsIdeasResolver(timeout=CALL_TIMEOUT), timeout=CALL_TIMEOUT)

        return cls(store, deployment, chain=chain, names=names, log_index=log_index,
                   rewards_reader=rewards_reader, governor=governor,
                   ingest_names=RESOLVE_NAMES_DURING_INGEST)

    def clients(self, num_realtime=1, num_polling=1, data_path=NOUNSNODE_DATA_PATH):
        """
        Every client that answers, archive first.  The order is the order the feed reads them.
        """

        clients = []

        csvc = CSVClient(data_path, chain_id=self.deployment['chain_id'])
        if csvc.is_valid():
            clients.append(csvc)

        rpcc = JsonRpcHistHttpClient(ARCHIVE_NODE_HTTP_URL)
        if rpcc.is_valid():
            clients.append(rpcc)

        for i in range(num_realtime):
            jwsc = JsonRpcRtWsClient(REALTIME_NODE_WS_URL, f"RTWS{i}")
            if jwsc.is_valid():
                clients.append(jwsc)

        for i in range(num_polling):
            jwhc = JsonRpcRtHttpClient(ARCHIVE_NODE_HTTP_URL, f"POLL{i}")
            if jwhc.is_valid():
                clients.append(jwhc)

        return clients

    def plan(self, feed, clients):
        """
        Point the feed at every (contract, event) some data product handles.
        """

        keys = self.ctx.keys()

        for contract, spec in self.deployment['contracts'].items():

            if contract not in CONTRACT_EVENTS:
                logr.warning(f"Node: no events known for {contract}, skipping.")
                continue

            for frag in self.abis.events(contract):
                if f"{contract}:{frag.name}" in keys:
                    feed.plan_event(contract, spec['address'], frag.signature, spec.get('start_block', 0))

        dcqs = ClientSequencer(clients)
        dcqs.set_abis(self.abis)

        feed.set_client_sequencer(dcqs)

        return dcqs

    async def backfill_names(self):
        """
        Resolve every address we show a name for, then fill the name columns that are still empty.
        """

        if self.names is None:
            return 0

        voters = [row['address'] for row in self.store.query("SELECT address FROM voters WHERE ens_name IS NULL")]
        settlers = self.store.query("SELECT id, settled_by_address, winner_address FROM nouns "
                                    "WHERE (settled_by_address IS NOT NULL AND settled_by_ens IS NULL) "
                                    "OR (winner_address IS NOT NULL AND winner_ens IS NULL)")

        addresses = voters + [row['settled_by_address'] for row in settlers] + [row['winner_address'] for row in settlers]

        names = await self.names.resolve_many([a for a in addresses if a])

        filled = 0

        with self.store.transaction():

            for address in voters:
                if names.get(address):
                    filled += self.store.set_once('voters', address, {'ens_name': names[address]})

            for row in settlers:
                fields = {}
                if names.get(row['settled_by_address']):
                    fields['settled_by_ens'] = names[row['settled_by_address']]
                if names.get(row['winner_address']):
                    fields['winner_ens'] = names[row['winner_address']]
                filled += self.store.set_once('nouns', row['id'], fields)

        logr.info(f"Node: filled {filled} names from {len(names)} addresses")

        return filled

    async def close(self):

        if self.names is not None:
            await self.names.resolver.close()

        if self.log_index is not None:
            await self.log_index.close()

        self.store.close()
