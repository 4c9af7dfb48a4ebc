from dotenv import load_dotenv

load_dotenv()

import os
import time
import socket
import asyncio
from datetime import datetime
from random import randint
from textwrap import dedent
from importlib.metadata import version as importlib_version, PackageNotFoundError

import yaml

from sanic_ext import openapi
from sanic.worker.manager import WorkerManager
from sanic import Sanic
from sanic.response import json
from sanic.log import logger as logr

from . import __version__
from .config import load_deployment, public_deployment, CONTRACT_DEPLOYMENT, GIT_COMMIT_SHA, NOUNSNODE_DATA_PATH
from .dev_modes import ENABLE_STATUS_REFRESHER
from .errors import TransientNetworkError
from .feed import Feed
from .logsetup import get_logger
from .middleware import start_timer, add_server_timing_header, measure
from .node import Node

BOOT_TIME = datetime.now().isoformat()
WORKER_ID = str(randint(0, 100000000000000000))

glogr = get_logger('global')

glogr.info(f"{WORKER_ID=}")
glogr.info(f"{BOOT_TIME=}")
glogr.info(f"GIT_COMMIT_SHA={GIT_COMMIT_SHA}")

NUM_REALTIME_CLIENTS = int(os.getenv('NOUNSNODE_NUM_REALTIME_CLIENTS', '1'))
NUM_POLLING_CLIENTS = int(os.getenv('NOUNSNODE_NUM_POLLING_CLIENTS', '1'))

POLLING_WAIT_CYCLE = 120
STATUS_REFRESH_CYCLE = int(os.getenv('NOUNSNODE_STATUS_REFRESH_SECONDS', '60'))
SWEEP_CYCLE = int(os.getenv('NOUNSNODE_SWEEP_SECONDS', '600'))

deployment = load_deployment()
public_config = {'deployment_name': CONTRACT_DEPLOYMENT, **public_deployment(deployment)}

glogr.info(f"deployment={public_config}")

WorkerManager.THRESHOLD = 600 * 45  # archive replay can take a while before the worker acks.

app = Sanic('NounsNode')
app.middleware('request')(start_timer)
app.middleware('response')(add_server_timing_header)


@app.before_server_start(priority=0)
async def bootstrap_data_feeds(app, loop):

    node = Node.from_env(deployment)

    feed = Feed()
    clients = node.clients(num_realtime=NUM_REALTIME_CLIENTS, num_polling=NUM_POLLING_CLIENTS)
    node.plan(feed, clients)

    app.ctx.node = node
    app.ctx.dpc = node.ctx
    app.ctx.feed = feed
    app.ctx.clients = clients

    logr.info(f"Registered {len(node.ctx.keys())} event keys across lanes {sorted(node.ctx.lanes)}")


async def read_archive(app):

    started = time.perf_counter()

    after = app.ctx.dpc.resume_block()

    for raw in app.ctx.feed.read_archive(after=after):
        await app.ctx.dpc.dispatch(raw)

    await app.ctx.dpc.drain()

    logr.info(f"Archive replay done [{time.perf_counter() - started:.2f}s], lanes: {app.ctx.dpc.progress()}")


async def read_realtime(app, rt_client_num):
    async for raw in app.ctx.feed.realtime_async_read(rt_client_num):
        await app.ctx.dpc.dispatch(raw)


async def read_polling(app, polling_client_num):
    """
    Backstop for the websockets: anything they missed while resubscribing shows up here.  If
    everything is working, every event polled has already been heard and is dropped by the feed.

    The wait cycle has to stay under the look-back of JsonRpcRtHttpClient.
    """

    await asyncio.sleep(POLLING_WAIT_CYCLE)

    while True:
        start_time = time.perf_counter()
        cnt = 0
        async for raw in app.ctx.feed.realtime_async_read(polling_client_num):
            await app.ctx.dpc.dispatch(raw)
            cnt += 1
        logr.info(f"Polling client {polling_client_num} [{time.perf_counter() - start_time:.2f}s] [{cnt} events]")
        await asyncio.sleep(POLLING_WAIT_CYCLE)


async def refresh_statuses(app):

    node = app.ctx.node

    while True:
        await asyncio.sleep(STATUS_REFRESH_CYCLE)

        try:
            block_number, block_timestamp = await node.chain.latest_block()
        except TransientNetworkError as e:
            logr.warning(f"Status refresher: no head this cycle: {e}")
            continue

        changed = await node.refresher.refresh(block_number, block_timestamp)

        if changed:
            logr.info(f"Status refresher: {changed} proposals moved at block {block_number}")


async def sweep(app):
    """
    Everything that was parked for later: unattributed nouns, clients whose totals could not be
    read, and events that exhausted their retries.
    """

    node = app.ctx.node

    while True:
        await asyncio.sleep(SWEEP_CYCLE)

        start_time = time.perf_counter()

        settled = await node.settlement.resolve_missing()
        reconciled = await node.rewards.retry_pending()
        replayed = await node.ctx.retry_failed()

        logr.info(f"Sweep [{time.perf_counter() - start_time:.2f}s] settlers={settled} "
                  f"clients={reconciled} events={replayed}")


@app.after_server_start
async def subscribe_feeds(app):

    app.ctx.dpc.start()

    app.add_task(read_archive(app))

    for i, client in enumerate(app.ctx.clients, 1):
        if client.timeliness == 'realtime':
            logr.info(f"Realtime client {i} started")
            app.add_task(read_realtime(app, i))
        elif client.timeliness == 'polling':
            logr.info(f"Polling client {i} started")
            app.add_task(read_polling(app, i))

    if ENABLE_STATUS_REFRESHER and app.ctx.node.chain is not None:
        app.add_task(refresh_statuses(app))

    app.add_task(sweep(app))


@app.before_server_stop
async def shutdown(app):
    await app.ctx.dpc.stop()
    await app.ctx.node.close()


######################################################################
#
# Operational endpoints.  Handlers take the app so tests can mount
# them on a bare Sanic with mocked context.
#
######################################################################

def pip_versions():
    out = {}
    for mod in ['websockets', 'web3', 'sanic', 'sanic-ext', 'psycopg2-binary']:
        try:
            out[mod] = importlib_version(mod)
        except PackageNotFoundError:
            out[mod] = None
    return out


async def health_handler(app, request):

    try:
        files = sorted(os.listdir(NOUNSNODE_DATA_PATH))
    except OSError as e:
        files = []
        logr.info(f"No archive files: {e}")

    try:
        ip_address = socket.gethostbyname(socket.gethostname())
    except OSError:
        ip_address = "unknown"

    return json({
        "files": files,
        "ip_address": ip_address,
        "boot_time": BOOT_TIME,
        "worker_id": WORKER_ID,
        "version": __version__,
        "gitsha": GIT_COMMIT_SHA,
        "env": {'PipDistributions': pip_versions()},
    })


async def config_handler(app, request):
    return json({'config': public_config})


async def progress_handler(app, request):
    """
    Where every lane is, what the feed has heard, and what is parked for retry.
    """

    node = app.ctx.node

    return json({
        'feed': app.ctx.feed.progress(),
        'lanes': app.ctx.dpc.progress(),
        'decode_errors': app.ctx.dpc.decode_errors,
        'unhandled': dict(app.ctx.dpc.unhandled),
        'pending': {
            'settlements': sorted(node.settlement.pending),
            'clients': sorted(node.rewards.pending),
        },
        'status_refresher_block': node.refresher.last_block,
    })


@app.get("/health")
@openapi.tag("Checks")
@openapi.summary("Server health check")
@measure
async def health_check(request):
    return await health_handler(app, request)


@app.get("/config")
@openapi.tag("Checks")
@openapi.summary("Deployment being indexed")
@measure
async def config_endpoint(request):
    return await config_handler(app, request)


@app.get("/v1/progress")
@openapi.tag("Checks")
@openapi.summary("Ingestion progress per lane")
@openapi.description("""
## Description
Per-lane checkpoints, queue depth and failure counts, plus the feed's per-event counts.

A lane whose `frozen_at` is set has an event that exhausted its retries; its checkpoint stays
just before that event until a sweep lands it.
""")
@measure
async def progress_endpoint(request):
    return await progress_handler(app, request)


app.ext.openapi.describe(
    "Nouns Node",
    version=__version__,
    description=dedent(
        f"""
# About

Nouns Node replays and follows Nouns DAO contract logs into a relational snapshot: nouns, auctions,
governance, candidates, treasury and client rewards.  The API here is operational only; the snapshot
itself is read straight from the database.

## Fast by Measuring

All responses include a `server-timing` header, in milliseconds.

```
server-timing: data;dur=0.070,total;dur=0.481
```

#  Deployment
```
{yaml.dump(public_config, sort_keys=True).strip()}
```
"""
    ),
)


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=8004, dev=True, debug=True)
