import os
import asyncio
from collections import defaultdict
from dataclasses import asdict

from sanic.log import logger as logr

from .errors import DecodeError, retry_async
from .events import RawLog, decode

HANDLER_MAX_ATTEMPTS = int(os.getenv('NOUNSNODE_HANDLER_MAX_ATTEMPTS', '4'))
HANDLER_BASE_DELAY = float(os.getenv('NOUNSNODE_HANDLER_BASE_DELAY', '0.5'))


class Lane:
    """
    A serial queue of events over the products that share it.

    The lane checkpoint is written in the same transaction as each event's rows.  Once an
    event exhausts its retries the checkpoint freezes just before it, so a restart replays
    from there; later events in the lane are still applied.
    """

    def __init__(self, name, store, checkpoint=None, max_attempts=HANDLER_MAX_ATTEMPTS,
                 base_delay=HANDLER_BASE_DELAY, maxsize=10_000):
        self.name = name
        self.store = store
        self.checkpoint = checkpoint
        self.max_attempts = max_attempts
        self.base_delay = base_delay

        self.queue = asyncio.Queue(maxsize=maxsize)
        self.task = None

        self.frozen_at = self.oldest_failure()
        self.last_position = checkpoint

        self.processed = 0
        self.skipped = 0
        self.failed = 0

    def oldest_failure(self):
        row = self.store.query_one("SELECT block_number, log_index FROM failed_events WHERE lane = %s "
                                   "ORDER BY block_number, log_index LIMIT 1", (self.name,))
        return (row['block_number'], row['log_index']) if row else None

    def holds(self, position):
        return self.checkpoint is not None and position <= self.checkpoint

    async def put(self, product, key, event, raw):
        await self.queue.put((product, key, event, raw))

    async def apply(self, product, key, event):

        write = await product.plan(key, event)

        position = event.log.position

        advance = self.frozen_at is None and not self.holds(position)

        with self.store.transaction():
            write()
            if advance:
                self.store.save_checkpoint(self.name, position)

        if advance:
            self.checkpoint = position

        self.last_position = max(self.last_position or position, position)

    async def process(self, product, key, event, raw=None):
        """
        Apply one event with retries.  Returns True when it landed.
        """

        position = event.log.position

        if self.holds(position):
            self.skipped += 1
            return True

        for attempt in range(1, self.max_attempts + 1):
            try:
                await self.apply(product, key, event)
                self.processed += 1
                if self.frozen_at == position:
                    self.resolved(event)
                return True
            except Exception as e:
                if attempt == self.max_attempts:
                    self.record_failure(key, event, raw, e)
                    return False

                delay = min(self.base_delay * (2 ** (attempt - 1)), 30.0)
                logr.warning(f"Lane {self.name}: {key} at {position} failed ({e!r}), "
                             f"attempt {attempt}/{self.max_attempts}, retrying in {delay:.2f}s")
                await asyncio.sleep(delay)

    def record_failure(self, key, event, raw, error):

        position = event.log.position

        logr.error(f"Lane {self.name}: giving up on {key} at {position}: {error!r}")

        self.failed += 1

        if self.frozen_at is None or position < self.frozen_at:
            self.frozen_at = position

        with self.store.transaction():
            self.store.upsert('failed_events', {
                'id': f"{self.name}-{event.log.id}",
                'lane': self.name,
                'event_key': key,
                'block_number': position[0],
                'log_index': position[1],
                'error': repr(error)[:2000],
                'attempts': self.max_attempts,
                'payload': asdict(raw) if raw is not None else None,
            })

    def resolved(self, event):
        """
        A failed event finally landed.  Thaw the checkpoint once nothing older is outstanding.
        """

        with self.store.transaction():
            self.store.execute("DELETE FROM failed_events WHERE id = %s", (f"{self.name}-{event.log.id}",))

        self.frozen_at = self.oldest_failure()

        if self.frozen_at is None and self.last_position is not None:
            self.store.save_checkpoint(self.name, self.last_position)
            self.checkpoint = self.last_position

    async def run(self):
        while True:
            product, key, event, raw = await self.queue.get()
            try:
                await self.process(product, key, event, raw)
            finally:
                self.queue.task_done()

    def start(self):
        if self.task is None:
            self.task = asyncio.create_task(self.run())
        return self.task

    async def stop(self):
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None

    def progress(self):
        return {'checkpoint': list(self.checkpoint) if self.checkpoint else None,
                'frozen_at': list(self.frozen_at) if self.frozen_at else None,
                'queued': self.queue.qsize(),
                'processed': self.processed,
                'skipped': self.skipped,
                'failed': self.failed}


class DataProductContext:

    def __init__(self, store, chain=None, max_attempts=HANDLER_MAX_ATTEMPTS, base_delay=HANDLER_BASE_DELAY):

        self.store = store
        self.chain = chain
        self.max_attempts = max_attempts
        self.base_delay = base_delay

        self.dps = {}
        self.lanes = {}
        self.config_events = set()

        self.decode_errors = 0
        self.unhandled = defaultdict(int)
        self.counts = defaultdict(int)

    def register(self, data_product):

        for key in data_product.handles:
            if key in self.dps:
                raise ValueError(f"E130 - {key} is claimed by both {self.dps[key].name} and {data_product.name}.")

        for key in data_product.handles:
            self.dps[key] = data_product

        if data_product.decodes_as_config:
            self.config_events |= set(data_product.handles)

        if data_product.lane not in self.lanes:
            checkpoint = self.store.load_checkpoints().get(data_product.lane)
            self.lanes[data_product.lane] = Lane(data_product.lane, self.store, checkpoint=checkpoint,
                                                 max_attempts=self.max_attempts, base_delay=self.base_delay)

        setattr(self, data_product.name, data_product)

    def register_model(self, model):
        setattr(self, model.name, model)

    def keys(self):
        return set(self.dps)

    def resume_block(self):
        """
        Where the feed restarts: the lowest lane checkpoint.  Lanes skip what they already hold.
        """
        checkpoints = [lane.checkpoint for lane in self.lanes.values()]
        if not checkpoints or any(c is None for c in checkpoints):
            return None
        return min(checkpoints)[0]

    async def fill_timestamp(self, raw):
        if raw.block_timestamp or self.chain is None:
            return
        raw.block_timestamp = await retry_async(self.chain.block_timestamp, int(raw.block_number),
                                                name='block_timestamp')

    async def route(self, raw: RawLog):
        """
        Decode and hand the event to its lane.  Returns (lane, product, key, event), or None
        when nothing handles it.
        """

        product = self.dps.get(raw.key)

        if product is None:
            self.unhandled[raw.key] += 1
            return None

        await self.fill_timestamp(raw)

        try:
            event = decode(raw, self.config_events)
        except DecodeError as e:
            self.decode_errors += 1
            logr.warning(f"DataProductContext: skipping {raw.key} at {raw.position}: {e}")
            return None

        self.counts[raw.key] += 1

        return self.lanes[product.lane], product, raw.key, event

    async def dispatch(self, raw: RawLog):
        routed = await self.route(raw)
        if routed:
            lane, product, key, event = routed
            await lane.put(product, key, event, raw)

    async def apply(self, raw: RawLog):
        """
        Dispatch and wait for the write, bypassing the lane queues.  For tests and one-off replays.
        """
        routed = await self.route(raw)
        if not routed:
            return False
        lane, product, key, event = routed
        return await lane.process(product, key, event, raw)

    async def retry_failed(self):
        """
        Replay everything in failed_events.  Returns how many landed.
        """

        done = 0

        for row in self.store.query("SELECT * FROM failed_events ORDER BY block_number, log_index"):

            if not row['payload']:
                continue

            raw = RawLog(**row['payload'])
            routed = await self.route(raw)
            if not routed:
                continue

            lane, product, key, event = routed

            try:
                await lane.apply(product, key, event)
            except Exception as e:
                logr.warning(f"DataProductContext: {key} at {raw.position} still failing: {e!r}")
                continue

            lane.resolved(event)
            done += 1

        return done

    def start(self):
        return [lane.start() for lane in self.lanes.values()]

    async def drain(self):
        await asyncio.gather(*[lane.queue.join() for lane in self.lanes.values()])

    async def stop(self):
        for lane in self.lanes.values():
            await lane.stop()

    def progress(self):
        return {name: lane.progress() for name, lane in sorted(self.lanes.items())}
