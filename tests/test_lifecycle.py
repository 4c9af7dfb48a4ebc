from unittest.mock import AsyncMock

import pytest

from nounsnode.data_models import ProposalStatusRefresher
from nounsnode.errors import AggregateReadError
from nounsnode.lifecycle import (advance, can_transition, derive_status, settle_status, GRACE_PERIOD, PENDING, UPDATABLE, ACTIVE,
                                 OBJECTION_PERIOD, SUCCEEDED, QUEUED, EXECUTED, DEFEATED, VETOED, CANCELLED, EXPIRED)


def proposal(**fields):
    base = {'status': PENDING, 'start_block': 100, 'end_block': 200, 'quorum_votes': 10,
            'for_votes': 0, 'against_votes': 0}
    base.update(fields)
    return base


def test_forward_only():

    assert advance(PENDING, ACTIVE) == ACTIVE
    assert advance(ACTIVE, PENDING) == ACTIVE
    assert advance(QUEUED, SUCCEEDED) == QUEUED

    # Terminal states never move, not even to another terminal state.
    assert advance(EXECUTED, CANCELLED) == EXECUTED
    assert advance(DEFEATED, VETOED) == DEFEATED

    assert advance(None, QUEUED) == QUEUED

    # Updatable and pending share a tier.
    assert advance(PENDING, UPDATABLE) == UPDATABLE
    assert advance(UPDATABLE, PENDING) == PENDING


def test_inferred_outcomes_give_way_to_logged_ones():

    assert settle_status(DEFEATED, QUEUED) == QUEUED
    assert settle_status(DEFEATED, CANCELLED) == CANCELLED
    assert settle_status(DEFEATED, SUCCEEDED) == SUCCEEDED
    assert settle_status(EXPIRED, EXECUTED) == EXECUTED

    # Expiry implies the queue log was already applied.
    assert settle_status(EXPIRED, QUEUED) == EXPIRED

    # Creation replays and logged terminal states stay put.
    assert settle_status(DEFEATED, PENDING) == DEFEATED
    assert settle_status(EXECUTED, CANCELLED) == EXECUTED
    assert settle_status(QUEUED, SUCCEEDED) == QUEUED


def test_unknown_status():
    with pytest.raises(ValueError):
        can_transition(PENDING, 'PAUSED')


@pytest.mark.parametrize("fields, block, expected", [
    ({}, 50, PENDING),
    ({'update_period_end_block': 60}, 50, UPDATABLE),
    ({}, 150, ACTIVE),
    ({'objection_period_end_block': 250}, 220, OBJECTION_PERIOD),
    ({}, 201, DEFEATED),
    ({'for_votes': 9}, 201, DEFEATED),
    ({'for_votes': 12, 'against_votes': 12}, 201, DEFEATED),
    ({'for_votes': 12}, 201, SUCCEEDED),
    ({'for_votes': 12, 'execution_eta': 1000}, 201, QUEUED),
    ({'status': CANCELLED}, 150, CANCELLED),
    ({'status': EXECUTED, 'for_votes': 0}, 201, EXECUTED),
    ({'start_block': None}, 150, PENDING),
])
def test_derive_status(fields, block, expected):
    assert derive_status(proposal(**fields), block, 2000) == expected


def test_queued_proposals_expire_after_the_grace_period():

    p = proposal(for_votes=12, execution_eta=1000)

    assert derive_status(p, 300, 1000 + GRACE_PERIOD - 1) == QUEUED
    assert derive_status(p, 300, 1000 + GRACE_PERIOD) == EXPIRED


def test_dynamic_quorum_overrides_stored():
    assert derive_status(proposal(for_votes=12), 201, 0, quorum_votes=20) == DEFEATED


@pytest.mark.asyncio
async def test_refresher_uses_the_governor_quorum(store):

    store.upsert('proposals', proposal(id=1, for_votes=12))
    store.upsert('proposals', proposal(id=2, for_votes=12))

    governor = AsyncMock()
    governor.quorum_votes.side_effect = [30, AggregateReadError("timeout")]

    refresher = ProposalStatusRefresher(store, governor)

    assert await refresher.refresh(201, 0) == 2

    one, two = store.get('proposals', 1), store.get('proposals', 2)
    assert (one['status'], one['quorum_votes']) == (DEFEATED, 30)
    assert (two['status'], two['quorum_votes']) == (SUCCEEDED, 10)
