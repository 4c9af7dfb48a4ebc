"""
Settlement attribution: who "chose" a noun's traits.

A noun's seed is generated in the transaction that settles the previous auction, so the
settler of that auction is credited.  Nounder nouns (every 10th, up to 1820) are minted in the
same transaction as the next auctioned noun and have no auction of their own, which shifts the
auction we need to look at by one or two:

    is_nounder_noun(id) := id % 10 == 0 and id <= 1820 and id != 0

    N is a nounder noun        -> settled by whoever settled N - 1
    N - 1 is a nounder noun    -> settled by whoever settled N - 2
    otherwise                  -> settled by whoever settled N - 1

Nouns 0 and 1 predate the auction house and have no settler.
"""

import time
import asyncio
from dataclasses import dataclass

import aiohttp

from .errors import TransientNetworkError, RateLimitError, UnresolvedAttributionError
from .logsetup import get_logger

logr = get_logger('settlement')

NOUNDER_NOUN_CUTOFF = 1820

AUCTION_SETTLED_TOPIC = '0xc9f72b276a388619c6d185d146697036241880c36654b1a3ffdad07c24038d99'
ETHERSCAN_URL = 'https://api.etherscan.io/v2/api'


def is_nounder_noun(noun_id):
    return noun_id % 10 == 0 and noun_id <= NOUNDER_NOUN_CUTOFF and noun_id != 0


def settled_noun_id(noun_id):
    """
    The noun whose auction settlement produced `noun_id`, or None for the genesis nouns.
    """

    if noun_id <= 1:
        return None

    if is_nounder_noun(noun_id):
        return noun_id - 1
    elif is_nounder_noun(noun_id - 1):
        return noun_id - 2
    else:
        return noun_id - 1


def attributed_nouns(settled_id):
    """
    Inverse of settled_noun_id: the nouns credited to whoever settled `settled_id`.
    """
    return [n for n in (settled_id + 1, settled_id + 2) if n >= 2 and settled_noun_id(n) == settled_id]


@dataclass(frozen=True)
class Settlement:
    noun_id: int
    settler: str
    settled_at: int
    tx_hash: str


class EtherscanLogIndex:
    """
    AuctionSettled lookups against the Etherscan log index.

    Calls are spaced `spacing` seconds apart and at most `concurrency` are in flight.
    """

    def __init__(self, api_key, auction_house, chain_id=1, url=ETHERSCAN_URL, timeout=3.0,
                 spacing=0.25, concurrency=2, session=None):
        self.api_key = api_key
        self.auction_house = auction_house
        self.chain_id = chain_id
        self.url = url
        self.timeout = timeout
        self.spacing = spacing
        self.session = session

        self.semaphore = asyncio.Semaphore(concurrency)
        self.spacing_lock = asyncio.Lock()
        self.last_call = 0.0

    async def get_session(self):
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self.session

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()

    async def wait_turn(self):
        async with self.spacing_lock:
            wait = self.spacing - (time.monotonic() - self.last_call)
            if wait > 0:
                await asyncio.sleep(wait)
            self.last_call = time.monotonic()

    async def request(self, **params):

        params = {'chainid': str(self.chain_id), **params, 'apikey': self.api_key}

        async with self.semaphore:

            await self.wait_turn()

            session = await self.get_session()

            try:
                async with session.get(self.url, params=params) as resp:
                    if resp.status == 429:
                        raise RateLimitError("Etherscan returned 429")
                    if resp.status >= 500:
                        raise TransientNetworkError(f"Etherscan returned {resp.status}")
                    data = await resp.json(content_type=None)
            except aiohttp.ClientError as e:
                raise TransientNetworkError(f"Etherscan request failed: {e}") from e
            except asyncio.TimeoutError as e:
                raise TransientNetworkError("Etherscan request timed out") from e

        result = data.get('result') if isinstance(data, dict) else None
        if isinstance(result, str) and 'rate limit' in result.lower():
            raise RateLimitError(f"Etherscan: {result}")

        return data

    async def find_settlement(self, settled_id):

        padded = '0x' + format(settled_id, 'x').rjust(64, '0')

        logs = await self.request(module='logs', action='getLogs', address=self.auction_house,
                                  topic0=AUCTION_SETTLED_TOPIC, topic1=padded,
                                  fromBlock='0', toBlock='latest')

        if logs.get('status') != '1' or not logs.get('result'):
            return None

        log = logs['result'][0]

        tx = await self.request(module='proxy', action='eth_getTransactionByHash', txhash=log['transactionHash'])

        sender = (tx.get('result') or {}).get('from') if isinstance(tx.get('result'), dict) else None
        if not sender:
            return None

        stamp = log.get('timeStamp') or '0'
        settled_at = int(stamp, 16) if str(stamp).startswith('0x') else int(stamp)

        return Settlement(noun_id=settled_id,
                          settler=sender.lower(),
                          settled_at=settled_at,
                          tx_hash=log['transactionHash'].lower())


class SettlementResolver:
    """
    Fills settled_by_address / settled_at / settled_tx_hash on nouns, write-once.

    The local auctions table is preferred; the external log index is only asked when the
    auction's settlement is not in the store (eg. history before the indexing start block).
    """

    def __init__(self, store, log_index=None, names=None, rate_limit_backoff=5.0):
        self.store = store
        self.log_index = log_index
        self.names = names
        self.rate_limit_backoff = rate_limit_backoff

        self.pending = set()

    def local_settlement(self, settled_id):

        row = self.store.get('auctions', settled_id)

        if row and row['settled'] and row['settler_address']:
            return Settlement(noun_id=settled_id,
                              settler=row['settler_address'],
                              settled_at=row['settled_timestamp'],
                              tx_hash=row['settled_tx_hash'])
        return None

    async def find(self, noun_id):
        """
        The settlement to credit for `noun_id`.  None for genesis nouns.

        Raises UnresolvedAttributionError when it is not available (yet), RateLimitError when
        the log index asks us to back off.
        """

        settled_id = settled_noun_id(noun_id)
        if settled_id is None:
            return None

        settlement = self.local_settlement(settled_id)
        if settlement:
            return settlement

        if self.log_index is None:
            raise UnresolvedAttributionError(noun_id, settled_id, "No local settlement and no log index.")

        try:
            settlement = await self.log_index.find_settlement(settled_id)
        except RateLimitError:
            raise
        except TransientNetworkError as e:
            raise UnresolvedAttributionError(noun_id, settled_id, str(e)) from e

        if settlement is None:
            raise UnresolvedAttributionError(noun_id, settled_id, "No AuctionSettled log yet.")

        return settlement

    async def attribute(self, noun_id):
        """
        find(), but failures park the noun for a later sweep instead of raising.
        """
        try:
            return await self.find(noun_id)
        except (UnresolvedAttributionError, RateLimitError) as e:
            logr.warning(f"SettlementResolver: {e}")
            self.pending.add(noun_id)
            return None

    async def settler_name(self, settlement):
        if settlement is None or self.names is None:
            return None
        return await self.names.resolve(settlement.settler)

    def apply(self, noun_id, settlement, settler_ens=None):
        """
        Write the attribution.  Columns that are already set stay as they are.
        """

        if settlement is None:
            return 0

        fields = {'settled_by_address': settlement.settler,
                  'settled_at': settlement.settled_at,
                  'settled_tx_hash': settlement.tx_hash}
        if settler_ens:
            fields['settled_by_ens'] = settler_ens

        count = self.store.set_once('nouns', noun_id, fields)
        if count:
            self.pending.discard(noun_id)
        return count

    def back_fill(self, settlement, settler_ens=None):
        """
        A settlement just landed: credit the nouns that derive from it and are still unattributed.
        """

        for noun_id in attributed_nouns(settlement.noun_id):
            row = self.store.get('nouns', noun_id)
            if row and row['settled_by_address'] is None:
                self.apply(noun_id, settlement, settler_ens)
                logr.info(f"SettlementResolver: back-filled noun {noun_id} from auction {settlement.noun_id}")

    def missing(self):
        rows = self.store.query("SELECT id FROM nouns WHERE id >= 2 AND settled_by_address IS NULL ORDER BY id")
        return [row['id'] for row in rows]

    async def resolve_missing(self, max_rate_limit_pauses=5):
        """
        Sweep every unattributed noun.  A rate-limit reply pauses the whole batch, then the same
        noun is tried again.
        """

        todo = self.missing()

        resolved, unresolved, pauses = 0, 0, 0

        logr.info(f"SettlementResolver: {len(todo)} nouns missing settler info")

        i = 0
        while i < len(todo):

            noun_id = todo[i]

            try:
                settlement = await self.find(noun_id)
            except RateLimitError as e:
                pauses += 1
                if pauses > max_rate_limit_pauses:
                    logr.error(f"SettlementResolver: still rate limited after {pauses - 1} pauses, stopping sweep.")
                    break
                delay = e.retry_after or self.rate_limit_backoff * (2 ** (pauses - 1))
                logr.warning(f"SettlementResolver: rate limited, pausing batch for {delay:.1f}s")
                await asyncio.sleep(delay)
                continue
            except UnresolvedAttributionError as e:
                logr.warning(f"SettlementResolver: {e}")
                self.pending.add(noun_id)
                unresolved += 1
                i += 1
                continue

            ens = await self.settler_name(settlement)

            with self.store.transaction():
                resolved += self.apply(noun_id, settlement, ens)

            i += 1

        logr.info(f"SettlementResolver: resolved {resolved}, unresolved {unresolved}")

        return resolved
