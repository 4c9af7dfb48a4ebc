import pytest

from sanic import Sanic

from nounsnode import __version__
from nounsnode.feed import Feed
from nounsnode.middleware import start_timer, add_server_timing_header, measure
from nounsnode.server import health_handler, config_handler, progress_handler

from .conftest import SETTLER


@pytest.fixture
def app():
    app = Sanic("test_app")

    app.middleware('request')(start_timer)
    app.middleware('response')(add_server_timing_header)

    @app.route('/health')
    @measure
    async def health(request):
        return await health_handler(app, request)

    @app.route('/config')
    async def config(request):
        return await config_handler(app, request)

    @app.route('/v1/progress')
    async def progress(request):
        return await progress_handler(app, request)

    return app


@pytest.fixture
def test_client(app):
    return app.asgi_client


@pytest.mark.asyncio
async def test_health_endpoint(test_client):

    req, resp = await test_client.get('/health')

    assert resp.status == 200
    assert resp.json['version'] == __version__
    assert 'sanic' in resp.json['env']['PipDistributions']

    timing = resp.headers['server-timing']
    assert timing.startswith('data;dur=')
    assert ',total;dur=' in timing


@pytest.mark.asyncio
async def test_config_endpoint(test_client):

    req, resp = await test_client.get('/config')

    assert resp.status == 200

    config = resp.json['config']
    assert config['chain_id'] == 1
    assert config['contracts']['NounsToken']['address'] == '0x9c8ff314c9bc7f6e59a9d9225fb22946427edc03'
    assert 'server-timing' in resp.headers


@pytest.mark.asyncio
async def test_progress_endpoint(app, test_client, node, make_log):

    app.ctx.node = node
    app.ctx.dpc = node.ctx
    app.ctx.feed = Feed()

    # Auction 99 was never seen, so noun 101 stays parked.
    await node.ctx.apply(make_log('NounsToken', 'NounCreated', 500, tokenId=101,
                                  seed={'background': 0, 'body': 0, 'accessory': 0, 'head': 0, 'glasses': 0}))
    await node.ctx.apply(make_log('NounsAuctionHouse', 'AuctionSettled', 501, tx_from=SETTLER,
                                  nounId=77, winner=SETTLER, amount=1))
    await node.ctx.apply(make_log('Nowhere', 'Nothing', 502))

    req, resp = await test_client.get('/v1/progress')

    assert resp.status == 200

    body = resp.json

    assert body['lanes']['items']['checkpoint'] == [501, 2]
    assert body['lanes']['governance']['checkpoint'] is None
    assert body['unhandled'] == {'Nowhere:Nothing': 1}
    assert body['decode_errors'] == 0
    assert body['pending'] == {'settlements': [101], 'clients': []}
    assert body['status_refresher_block'] is None
    assert body['feed']['block'] == 0
