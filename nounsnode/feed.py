import os
import time
import json as j
import random
import asyncio
from collections import defaultdict, OrderedDict
from dataclasses import asdict

from sanic.log import logger as logr

from .dev_modes import CAPTURE_CLIENT_OUTPUTS_TO_DISK, PROFILE_ARCHIVE_CLIENT
from .profiling import Profiler


class ClientSequencer:
    def __init__(self, clients):
        self.clients = clients
        self.num = len(clients)
        self.pos = 0
        self.lock = asyncio.Lock()

    def set_abis(self, abis):
        for client in self.clients:
            client.set_abis(abis)

    def __iter__(self):
        self.pos = 0
        return self

    def __next__(self):

        self.pos += 1
        if self.pos <= self.num:
            return self.pos, self.clients[self.pos - 1]

        self.pos = 0

        raise StopIteration

    def __aiter__(self):
        self.pos = 0
        return self

    async def __anext__(self):
        async with self.lock:
            if self.pos < self.num:
                client = self.clients[self.pos]
                self.pos += 1
                return self.pos, client

            self.pos = 0
            raise StopAsyncIteration

    def get_async_iterator(self):
        return self

    def plan(self, *signal_meta):
        for client in self.clients:
            try:
                client.plan(*signal_meta)
            except Exception as e:
                logr.info(f"E188 - Failed to plan [{signal_meta}] for {type(client).__name__}: {e}")


class Feed:
    """
    One ordered stream of RawLogs out of many clients: archive clients first, then the
    live ones.  Live clients compete, so anything already heard is dropped.
    """

    def __init__(self, history_blocks=1_000):
        self.block = 0
        self.position = None
        self.meta = []
        self.profiler = Profiler()
        self.capture_counter = defaultdict(int)

        # block_number -> {(transaction_index, log_index)} heard from live clients
        self.event_history_dict = OrderedDict()
        self.event_history_tracking_lock = asyncio.Lock()
        self.history_blocks = history_blocks

        self.archive_signal_counts = defaultdict(int)
        self.realtime_signal_counts = defaultdict(int)
        self.total_signal_counts = defaultdict(int)

    def set_client_sequencer(self, client_sequencer):
        self.cs = client_sequencer

        for signal_meta in self.meta:
            self.cs.plan(*signal_meta)

    def plan_event(self, contract, address, signature, start_block=0):
        self.meta.append((contract, address, signature, start_block))

    def set_abis(self, abis):
        self.cs.set_abis(abis)

    def read_archive(self, after=None):
        """
        Replay every archive client in turn.  Each client starts where the previous one
        stopped; positions already emitted are skipped.
        """

        if after is not None:
            self.block = max(self.block, after)

        for i, client in self.cs:

            if client.timeliness != 'archive':
                continue

            if after is None and not self.position:
                self.block = max(self.block, client.get_fallback_block())

            start = time.perf_counter()

            emoji = random.choice(['😀', '🎉', '🚀', '🐍', '🔥', '🌈', '💡', '😎'])

            logr.info(f"{emoji} Reading from client #{i} of type {type(client).__name__} from block {self.block}")

            cnt = 0

            for raw in client.read(after=self.block):

                if self.position is not None and raw.position <= self.position:
                    continue

                cnt += 1

                self.position = raw.position
                self.block = max(self.block, raw.block_number)

                self.archive_signal_counts[raw.key] += 1
                self.total_signal_counts[raw.key] += 1

                if CAPTURE_CLIENT_OUTPUTS_TO_DISK:
                    self.capture_client_output_to_disk(raw, client_type=type(client))

                if PROFILE_ARCHIVE_CLIENT:
                    with self.profiler(raw.key):
                        yield raw
                else:
                    yield raw

            if PROFILE_ARCHIVE_CLIENT:
                self.profiler.report()

            logr.info(f"{emoji} Done reading {cnt} event-logs as of block {self.block}.  "
                      f"Took {time.perf_counter() - start:.2f} seconds.")

    def capture_client_output_to_disk(self, raw, client_type):

        loc = f"tests/client_outputs/{raw.contract}/{raw.event_name}/{client_type.__name__}"
        fname = f"{loc}/{raw.block_number}-{raw.transaction_index}-{raw.log_index}.json"

        if self.capture_counter[loc] > 10:
            return

        os.makedirs(loc, exist_ok=True)

        self.capture_counter[loc] += 1

        logr.info(f"Writing to {fname}")

        with open(fname, "w") as f:
            j.dump(asdict(raw), f, indent=2, default=str)

    async def heard(self, raw):
        """
        True when a live client already delivered this log.
        """

        pair = raw.transaction_index, raw.log_index

        async with self.event_history_tracking_lock:

            seen = self.event_history_dict.setdefault(raw.block_number, set())

            if pair in seen:
                return True

            seen.add(pair)

            while len(self.event_history_dict) > self.history_blocks:
                self.event_history_dict.popitem(last=False)

        return False

    async def realtime_async_read(self, rt_client_num=0):

        async for i, client in self.cs.get_async_iterator():

            if client.timeliness in ('realtime', 'polling') and rt_client_num == i:

                logr.info(f"Reading from client #{i} of type {type(client).__name__}")

                async for raw in client.read():

                    # Anything the archive already replayed is the lanes' business, not ours.
                    if self.position is not None and raw.position <= self.position:
                        continue

                    if await self.heard(raw):
                        continue

                    self.block = max(self.block, raw.block_number)

                    self.realtime_signal_counts[raw.key] += 1
                    self.total_signal_counts[raw.key] += 1

                    if CAPTURE_CLIENT_OUTPUTS_TO_DISK:
                        self.capture_client_output_to_disk(raw, client_type=type(client))

                    yield raw

    def progress(self):
        return {'block': self.block,
                'realtime_counts': dict(self.realtime_signal_counts),
                'archive_counts': dict(self.archive_signal_counts),
                'total_counts': dict(self.total_signal_counts)}
