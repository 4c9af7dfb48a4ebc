#!/usr/bin/env python3
from dotenv import load_dotenv

load_dotenv()

import time
import asyncio
from pprint import pprint

from argh import arg, dispatch_commands

from .config import DATABASE_URL, NOUNSNODE_DATA_PATH
from .feed import Feed
from .node import Node
from .store import Store


def run(coro_fn):
    """
    Boot a node, run coro_fn(node), always close it.
    """

    async def main():
        node = Node.from_env()
        try:
            return await coro_fn(node)
        finally:
            await node.close()

    return asyncio.run(main())


@arg('--database-url', help='Defaults to DATABASE_URL.')
def init_db(database_url=DATABASE_URL):
    """Create any missing tables and indexes."""

    store = Store.connect(database_url)
    store.create_schema()
    store.close()

    print(f"Schema ready on {store.dialect}.")


@arg('--data-path', help='CSV archive root.  Defaults to NOUNSNODE_DATA_PATH.')
@arg('--after', type=int, help='First block to replay.  Defaults to the lowest lane checkpoint.')
def backfill(data_path=str(NOUNSNODE_DATA_PATH), after=None):
    """Replay the archive clients into the store, then exit."""

    async def go(node):

        started = time.perf_counter()

        feed = Feed()
        node.plan(feed, node.clients(num_realtime=0, num_polling=0, data_path=data_path))

        cnt = 0
        for raw in feed.read_archive(after=after if after is not None else node.ctx.resume_block()):
            await node.ctx.apply(raw)
            cnt += 1

        print(f"Replayed {cnt} logs in {time.perf_counter() - started:.2f}s")
        pprint(node.ctx.progress())

    run(go)


def resync_settlers():
    """Attribute every noun still missing its settler."""

    async def go(node):
        resolved = await node.settlement.resolve_missing()
        print(f"Resolved {resolved} nouns, {len(node.settlement.pending)} still pending.")

    run(go)


@arg('--no-images', help='Skip the tokenURI reads.')
def resync_clients(no_images=False):
    """Re-read every client's totals from the ClientRewards contract."""

    async def go(node):
        done = await node.rewards.resync_all(with_image=not no_images)
        print(f"Resynced {done} clients.")

    run(go)


def backfill_names():
    """Resolve ENS names for voters, settlers and winners that have none."""

    async def go(node):
        filled = await node.backfill_names()
        print(f"Filled {filled} rows.")

    run(go)


@arg('--block', type=int, help='Block number to evaluate at.  Defaults to the head.')
@arg('--timestamp', type=int, help='Block timestamp, required with --block.')
def refresh_statuses(block=None, timestamp=None):
    """Re-derive the status of every proposal that can still move."""

    async def go(node):

        if block is None:
            if node.chain is None:
                raise SystemExit("E150 - No archive node configured; pass --block and --timestamp.")
            block_number, block_timestamp = await node.chain.latest_block()
        else:
            if timestamp is None:
                raise SystemExit("E151 - --timestamp is required with --block.")
            block_number, block_timestamp = block, timestamp

        changed = await node.refresher.refresh(block_number, block_timestamp)
        print(f"{changed} proposals changed status at block {block_number}.")

    run(go)


def main():
    dispatch_commands([init_db, backfill, resync_settlers, resync_clients, backfill_names, refresh_statuses])


if __name__ == '__main__':
    main()
