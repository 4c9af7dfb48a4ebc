import os
from copy import deepcopy
from unittest.mock import AsyncMock

import pytest

from nounsnode.config import MAINNET
from nounsnode.events import RawLog
from nounsnode.node import Node
from nounsnode.readers import ClientMetadata
from nounsnode.store import Store

DATA = os.path.join('tests', 'data')

ALICE = '0x' + 'a1' * 20
BOB = '0x' + 'b0' * 20
CAROL = '0x' + 'c4' * 20
SETTLER = '0x' + 'ab' * 20


@pytest.fixture
def store():
    store = Store.connect('sqlite:///:memory:')
    store.create_schema()
    yield store
    store.close()


@pytest.fixture
def deployment():
    return deepcopy(MAINNET)


@pytest.fixture
def rewards_reader():
    """
    A ClientRewards contract that reports whatever the test puts in `totals`.
    """

    reader = AsyncMock()
    reader.totals = {}

    async def client_metadata(client_id):
        approved, rewarded, withdrawn = reader.totals.get(client_id, (False, 0, 0))
        return ClientMetadata(client_id=client_id, approved=approved, rewarded=rewarded, withdrawn=withdrawn,
                              name=f'client {client_id}', description='')

    reader.client_metadata.side_effect = client_metadata
    reader.client_image.return_value = 'ipfs://image'

    return reader


@pytest.fixture
def node(store, deployment, rewards_reader):
    return Node(store, deployment, rewards_reader=rewards_reader)


@pytest.fixture
def make_log():
    """
    RawLog builder.  Block timestamps default to 12s a block from an arbitrary origin.
    """

    counter = {'n': 0}

    def make(contract, event_name, block_number, log_index=None, tx_hash=None, block_timestamp=None,
             tx_from=None, **args):

        counter['n'] += 1

        if log_index is None:
            log_index = counter['n']

        return RawLog(block_number=block_number,
                      log_index=log_index,
                      tx_hash=tx_hash or f"0x{block_number:08x}{log_index:056x}",
                      block_timestamp=block_timestamp if block_timestamp is not None else 1_600_000_000 + block_number * 12,
                      contract=contract,
                      event_name=event_name,
                      args=args,
                      tx_from=tx_from)

    return make


@pytest.fixture
def seed():
    return {'background': 1, 'body': 2, 'accessory': 3, 'head': 4, 'glasses': 5}
