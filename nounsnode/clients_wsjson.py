import json, asyncio, websocket, websockets
from collections import defaultdict

from web3 import Web3
from sanic.log import logger as logr

from .abi import to_hex
from .clients_csv import SubscriptionPlannerMixin
from .errors import DecodeError
from .events import RawLog


class Reset(Exception):
    pass


def cast_log(log, contract, abi_frag):
    """
    eth_subscription payloads are all hex strings.  The block timestamp is not part of a
    log; the dispatcher fills it in.
    """

    return RawLog(block_number=int(log['blockNumber'], 16),
                  log_index=int(log['logIndex'], 16),
                  tx_hash=log['transactionHash'].lower(),
                  block_timestamp=0,
                  contract=contract,
                  event_name=abi_frag.name,
                  args=abi_frag.decode(log['topics'], log['data']),
                  transaction_index=int(log['transactionIndex'], 16),
                  signature=abi_frag.signature)


class JsonRpcRtWsClient(SubscriptionPlannerMixin):
    timeliness = 'realtime'

    def __init__(self, url, name, max_backoff=60.0):
        self.name = name
        self.url = url
        self.ws = None
        self.next_sub_request_id = 1
        self.max_backoff = max_backoff

        self.init()

        # address -> topic -> (contract, abi_frag)
        self.event_subsription_meta = defaultdict(dict)

        self.sub_ids = {}

    def plan_event(self, contract, address, signature, start_block=0):

        abi_frag = self.abis.get_by_signature(contract, signature)

        cs_address = Web3.to_checksum_address(address)

        self.event_subsription_meta[cs_address][abi_frag.topic] = (contract, abi_frag)

    def is_valid(self):
        if self.url in ('', 'ignored', None):
            ans = False
        else:
            try:
                ws = websocket.create_connection(self.url)
                ws.close()
                ans = True
            except Exception:
                ans = False

        if ans:
            logr.info(f"The server '{self.url}' is valid for {self.__class__.__name__}")
        else:
            logr.info(f"The server '{self.url}' is not valid for {self.__class__.__name__}.")

        return ans

    async def _subscribe_to_event_logs(self):

        pending = {}

        for cs_address, by_topic in self.event_subsription_meta.items():

            # One subscription per contract, OR-ing its topics.
            subscribe_params = {
                "jsonrpc": "2.0",
                "id": self.next_sub_request_id,
                "method": "eth_subscribe",
                "params": ["logs", {"address": cs_address, "topics": [list(by_topic.keys())]}]
            }

            await self.ws.send(json.dumps(subscribe_params))

            pending[self.next_sub_request_id] = cs_address
            self.next_sub_request_id += 1

        new_sub_ids = {}

        while len(new_sub_ids) < len(pending):

            response = json.loads(await self.ws.recv())

            if "result" in response and response.get("id") in pending:
                new_sub_ids[response["result"]] = pending[response["id"]]
            elif response.get("method") == "eth_subscription":
                # The polling client picks these up.
                logr.info(f"{self.name}: ignoring a log that arrived while subscribing")
            else:
                raise Reset(f"{self.name}: E250 - Failed to subscribe to event logs: {response.get('error', {})}")

        logr.info(f"{self.name}: subscribed to {len(new_sub_ids)} contracts.")

        self.sub_ids = new_sub_ids

    def handle_message(self, payload):

        if payload.get("method") != "eth_subscription":
            logr.error(f"{self.name}: unknown payload, skipping: {payload}")
            return None

        sub_id = payload["params"]["subscription"]
        log = payload["params"]["result"]

        cs_address = self.sub_ids.get(sub_id)
        if cs_address is None:
            return None

        if log.get('removed'):
            logr.warning(f"{self.name}: dropping removed log {log.get('transactionHash')}-{log.get('logIndex')}")
            return None

        topic = to_hex(log['topics'][0])

        try:
            contract, abi_frag = self.event_subsription_meta[cs_address][topic]
            return cast_log(log, contract, abi_frag)
        except (KeyError, DecodeError) as e:
            logr.warning(f"{self.name}: could not decode log on {cs_address}: {e!r}")
            return None

    async def read(self):

        backoff = 1.0

        while True:
            try:
                async with websockets.connect(self.url) as ws:
                    self.ws = ws

                    await self._subscribe_to_event_logs()

                    backoff = 1.0

                    async for message in self.ws:
                        raw = self.handle_message(json.loads(message))
                        if raw is not None:
                            yield raw

            except asyncio.CancelledError:
                raise
            except Exception as e:
                logr.error(f"{self.name}: websocket dropped ({e}), resubscribing in {backoff:.0f}s")

            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, self.max_backoff)
