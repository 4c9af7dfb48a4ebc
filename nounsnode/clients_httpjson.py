import os
import asyncio
from datetime import datetime, timedelta
from collections import defaultdict

from web3 import Web3
from sanic.log import logger as logr

from .clients_csv import SubscriptionPlannerMixin
from .errors import DecodeError
from .events import RawLog
from .abi import to_hex
from .dev_modes import CAPTURE_CLIENT_OUTPUTS_TO_DISK

# Events whose transaction sender we need at ingest time (the auction settler).
SENDER_EVENTS = {('NounsAuctionHouse', 'AuctionSettled')}


def resolve_block_count_span(chain_id=None):

    # Mainnet and Sepolia providers cap eth_getLogs around here.
    default_block_span = 2000

    try:
        override = int(os.getenv('NOUNSNODE_ARCHIVE_NODE_HTTP_BLOCK_COUNT_SPAN', '0'))
    except ValueError:
        override = 0

    return override if override > 0 else default_block_span


class JsonRpcHistHttpClient(SubscriptionPlannerMixin):
    timeliness = 'archive'

    def __init__(self, url):
        self.url = url
        self.fallback_block = None

        self.init()

        # address -> topic -> (contract, abi_frag)
        self.event_subsription_meta = defaultdict(dict)
        self.start_blocks = {}

        self.timestamps = {}

    def connect(self):
        return Web3(Web3.HTTPProvider(self.url))

    def plan_event(self, contract, address, signature, start_block=0):

        abi_frag = self.abis.get_by_signature(contract, signature)

        cs_address = Web3.to_checksum_address(address)

        self.event_subsription_meta[cs_address][abi_frag.topic] = (contract, abi_frag)
        self.start_blocks[cs_address] = min(start_block, self.start_blocks.get(cs_address, start_block))

    def is_valid(self):

        if self.url in ('', 'ignored', None):
            ans = False
        else:
            try:
                ans = self.connect().is_connected()
            except Exception as e:
                logr.info(f"{self.__class__.__name__}: {e}")
                ans = False

        if ans:
            logr.info(f"The server '{self.url}' is valid for {self.__class__.__name__}.")
        else:
            logr.info(f"The server '{self.url}' is not valid for {self.__class__.__name__}.")

        return ans

    def get_fallback_block(self):

        if self.fallback_block:
            return self.fallback_block

        w3 = self.connect()

        if not w3.is_connected():
            raise Exception(f"Could not connect to {self.url}")

        # Without a checkpoint, start from the earliest planned contract.
        if self.start_blocks:
            self.fallback_block = min(self.start_blocks.values())
            return self.fallback_block

        days_back = 15 if CAPTURE_CLIENT_OUTPUTS_TO_DISK else 1

        target_date = datetime.utcnow() - timedelta(days=days_back)

        latest_block = w3.eth.block_number

        step = resolve_block_count_span(w3.eth.chain_id)

        for i in range(latest_block, 0, -1 * step):

            block = w3.eth.get_block(i)

            if datetime.utcfromtimestamp(block.timestamp) < target_date:
                logr.info(f"Found block from ~{days_back} days ago: {block.number}")
                self.fallback_block = block.number
                return block.number

        logr.info(f"No block older than {days_back} days found.")
        return 0

    def get_logs_unsafe(self, w3, contract_address, topics, from_block, to_block):

        event_filter = {
            "fromBlock": from_block,
            "toBlock": to_block,
            "address": contract_address,
            "topics": [topics]
        }

        try:
            logs = w3.eth.get_logs(event_filter)
        except Exception as e:
            logr.error(f"Failed to get logs for {contract_address} [{from_block}, {to_block}]: {e}")
            raise

        return logs

    def block_timestamp(self, w3, block_number):

        if block_number not in self.timestamps:
            if len(self.timestamps) > 50_000:
                self.timestamps.clear()
            self.timestamps[block_number] = int(w3.eth.get_block(block_number)['timestamp'])

        return self.timestamps[block_number]

    def to_raw(self, w3, log, contract, abi_frag, args):

        block_number = int(log['blockNumber'])
        tx_hash = to_hex(log['transactionHash'])

        tx_from = None
        if (contract, abi_frag.name) in SENDER_EVENTS:
            tx_from = w3.eth.get_transaction(tx_hash)['from'].lower()

        return RawLog(block_number=block_number,
                      log_index=int(log['logIndex']),
                      tx_hash=tx_hash,
                      block_timestamp=self.block_timestamp(w3, block_number),
                      contract=contract,
                      event_name=abi_frag.name,
                      args=args,
                      tx_from=tx_from,
                      transaction_index=int(log['transactionIndex']),
                      signature=abi_frag.signature)

    def read_range(self, w3, from_block, to_block):
        """
        Every planned log in [from_block, to_block], in chain order.
        """

        def chunk_list(lst, step):
            return [lst[i:i + step] for i in range(0, len(lst), step)]

        out = []

        for cs_address, by_topic in self.event_subsription_meta.items():

            if self.start_blocks.get(cs_address, 0) > to_block:
                continue

            for topic_chunk in chunk_list(list(by_topic.keys()), 4):
                for log in self.get_logs_unsafe(w3, cs_address, topic_chunk, from_block, to_block):

                    if log.get('removed'):
                        continue

                    try:
                        contract, abi_frag = by_topic[to_hex(log['topics'][0])]
                        args = abi_frag.decode(log['topics'], log['data'])
                    except (KeyError, IndexError, DecodeError) as e:
                        logr.warning(f"Skipping undecodable log on {cs_address} at block "
                                     f"{log.get('blockNumber')}: {e!r}")
                        continue

                    out.append(self.to_raw(w3, log, contract, abi_frag, args))

        out.sort(key=lambda raw: raw.position)

        return out

    def read(self, after, to_block=None):

        w3 = self.connect()

        step = resolve_block_count_span(w3.eth.chain_id)

        from_block = after
        end_block = to_block if to_block is not None else w3.eth.block_number

        while from_block <= end_block:

            window_end = min(from_block + step - 1, end_block)

            logs = self.read_range(w3, from_block, window_end)

            if len(logs):
                logr.info(f"Fetched {len(logs)} logs from block {from_block} to {window_end}")

            yield from logs

            from_block = window_end + 1

            if to_block is None:
                end_block = w3.eth.block_number


class JsonRpcRtHttpClient(JsonRpcHistHttpClient):
    """
    Polls a short look-back window.  A backstop for events the websocket missed while it
    was resubscribing; the feed drops anything it has already heard.
    """

    timeliness = 'polling'

    def __init__(self, url, name, look_back=20):
        super().__init__(url)
        self.name = name
        self.look_back = look_back

    async def read(self):

        loop = asyncio.get_running_loop()

        def poll():
            w3 = self.connect()
            latest = w3.eth.block_number
            return self.read_range(w3, max(latest - self.look_back, 0), latest)

        try:
            logs = await loop.run_in_executor(None, poll)
        except Exception as e:
            logr.error(f"{self.name}: polling failed: {e}")
            return

        for raw in logs:
            yield raw
