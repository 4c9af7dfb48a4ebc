"""
Authoritative on-chain reads.

Every call is individually bounded by a timeout; any failure surfaces as AggregateReadError so
callers keep what they had and try again later.
"""

import json
import base64
import asyncio
from dataclasses import dataclass
from urllib.parse import unquote

from web3 import AsyncWeb3, Web3

from .errors import AggregateReadError, TransientNetworkError
from .logsetup import get_logger
from .signatures import CLIENT_REWARDS_READ_ABI, NOUNS_DAO_READ_ABI

logr = get_logger('readers')


@dataclass(frozen=True)
class ClientMetadata:
    client_id: int
    approved: bool
    rewarded: int
    withdrawn: int
    name: str
    description: str


def image_from_token_uri(uri):
    """
    Pull the image out of an ERC721 tokenURI.  Data URIs are decoded; anything else is
    returned as-is since it already points at the metadata.
    """

    if not uri:
        return None

    try:
        if uri.startswith('data:application/json;base64,'):
            meta = json.loads(base64.b64decode(uri.split(',', 1)[1]))
        elif uri.startswith('data:application/json'):
            meta = json.loads(unquote(uri.split(',', 1)[1]))
        else:
            return uri
    except ValueError as e:
        logr.warning(f"Could not parse token metadata: {e}")
        return None

    return meta.get('image') if isinstance(meta, dict) else None


class ContractReader:

    def __init__(self, url, address, abi, timeout=3.0, w3=None):
        self.url = url
        self.address = address
        self.timeout = timeout
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(url))
        self.contract = self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    async def call(self, fn_name, *args):

        fn = getattr(self.contract.functions, fn_name)(*args)

        try:
            return await asyncio.wait_for(fn.call(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise AggregateReadError(f"{fn_name}{args} timed out after {self.timeout}s") from e
        except Exception as e:
            raise AggregateReadError(f"{fn_name}{args} failed: {e}") from e


class ClientRewardsReader(ContractReader):

    def __init__(self, url, address, timeout=3.0, w3=None):
        super().__init__(url, address, CLIENT_REWARDS_READ_ABI, timeout=timeout, w3=w3)

    async def client_metadata(self, client_id):
        approved, rewarded, withdrawn, name, description = await self.call('clientMetadata', client_id)
        return ClientMetadata(client_id=client_id,
                              approved=bool(approved),
                              rewarded=int(rewarded),
                              withdrawn=int(withdrawn),
                              name=name,
                              description=description)

    async def client_image(self, client_id):
        uri = await self.call('tokenURI', client_id)
        return image_from_token_uri(uri)


class GovernorReader(ContractReader):

    def __init__(self, url, address, timeout=3.0, w3=None):
        super().__init__(url, address, NOUNS_DAO_READ_ABI, timeout=timeout, w3=w3)

    async def quorum_votes(self, proposal_id):
        return int(await self.call('quorumVotes', proposal_id))


class ChainReader:
    """
    Plain chain reads used while ingesting: transaction senders, block timestamps and the head.
    These are retried by the caller, so failures are transient rather than aggregate.
    """

    def __init__(self, url, timeout=3.0, w3=None, max_cached_blocks=50_000):
        self.url = url
        self.timeout = timeout
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(url))
        self.max_cached_blocks = max_cached_blocks

        self.timestamps = {}

    async def get(self, coro, what):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise TransientNetworkError(f"{what} timed out after {self.timeout}s") from e
        except Exception as e:
            raise TransientNetworkError(f"{what} failed: {e}") from e

    async def tx_sender(self, tx_hash):
        tx = await self.get(self.w3.eth.get_transaction(tx_hash), f"eth_getTransactionByHash({tx_hash})")
        return tx['from'].lower()

    async def block_timestamp(self, block_number):

        if block_number not in self.timestamps:
            block = await self.get(self.w3.eth.get_block(block_number), f"eth_getBlockByNumber({block_number})")

            if len(self.timestamps) >= self.max_cached_blocks:
                self.timestamps.clear()

            self.timestamps[block_number] = int(block['timestamp'])

        return self.timestamps[block_number]

    async def latest_block(self):
        block = await self.get(self.w3.eth.get_block('latest'), "eth_getBlockByNumber(latest)")
        return int(block['number']), int(block['timestamp'])
