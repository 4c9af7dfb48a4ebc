PENDING = 'PENDING'
UPDATABLE = 'UPDATABLE'
ACTIVE = 'ACTIVE'
OBJECTION_PERIOD = 'OBJECTION_PERIOD'
SUCCEEDED = 'SUCCEEDED'
QUEUED = 'QUEUED'
EXECUTED = 'EXECUTED'
DEFEATED = 'DEFEATED'
VETOED = 'VETOED'
CANCELLED = 'CANCELLED'
EXPIRED = 'EXPIRED'

LIFECYCLE = [PENDING, UPDATABLE, ACTIVE, OBJECTION_PERIOD, SUCCEEDED, QUEUED, EXECUTED, DEFEATED, VETOED, CANCELLED, EXPIRED]

TERMINAL = {EXECUTED, DEFEATED, VETOED, CANCELLED, EXPIRED}

# No log ever says DEFEATED or EXPIRED; they are read off tallies and the clock, so a later
# outcome log (or a re-read once the votes are in) can still replace them.
INFERRED = {DEFEATED, EXPIRED}

OUTCOMES = {QUEUED, EXECUTED, VETOED, CANCELLED}

ACTIVE_STATUSES = (PENDING, ACTIVE, UPDATABLE, OBJECTION_PERIOD)

# Pre-voting states share a tier: a proposal is updatable and pending at the same time,
# whichever the chain reported last wins.
RANK = {
    PENDING: 0,
    UPDATABLE: 0,
    ACTIVE: 1,
    OBJECTION_PERIOD: 2,
    SUCCEEDED: 3,
    QUEUED: 4,
    EXECUTED: 5,
    DEFEATED: 5,
    VETOED: 5,
    CANCELLED: 5,
    EXPIRED: 5,
}

# Timelock grace period after eta, in seconds.
GRACE_PERIOD = 21 * 24 * 60 * 60


def can_transition(old, new):
    if new not in RANK:
        raise ValueError(f"Unknown proposal status: {new}")
    if old is None:
        return True
    if old in TERMINAL:
        return False
    return RANK[new] >= RANK[old]


def advance(old, new):
    """
    The status to keep when `new` arrives on top of `old`.  Never moves backward.
    """
    return new if can_transition(old, new) else old


def supersedes(old, new):
    """
    True when `new` replaces an inferred `old` outright: an outcome the chain logged, or
    a fresh inference.
    """
    if old == DEFEATED:
        return new in OUTCOMES or new in (SUCCEEDED, EXPIRED)
    if old == EXPIRED:
        # Expiry needs an eta, so the queue log is already in.
        return new in OUTCOMES and new != QUEUED
    return False


def settle_status(old, new):
    """
    `advance`, except that inferred outcomes give way to logged ones.
    """
    if supersedes(old, new):
        return new
    return advance(old, new)


def derive_status(proposal, block_number, block_timestamp, quorum_votes=None):
    """
    The status the governor would report at (block_number, block_timestamp), from stored fields only.

    Explicit on-chain outcomes (cancel, veto, execute) come from events; this covers the
    states the chain never emits a log for.
    """

    status = proposal.get('status')

    if status in (CANCELLED, VETOED, EXECUTED):
        return status

    update_end = proposal.get('update_period_end_block')
    start_block = proposal.get('start_block')
    end_block = proposal.get('end_block')
    objection_end = proposal.get('objection_period_end_block')

    if update_end is not None and block_number <= update_end:
        return UPDATABLE

    if start_block is None or end_block is None:
        return status or PENDING

    if block_number <= start_block:
        return PENDING

    if block_number <= end_block:
        return ACTIVE

    if objection_end and block_number <= objection_end:
        return OBJECTION_PERIOD

    quorum = quorum_votes if quorum_votes is not None else (proposal.get('quorum_votes') or 0)
    for_votes = proposal.get('for_votes') or 0
    against_votes = proposal.get('against_votes') or 0

    if for_votes <= against_votes or for_votes < quorum:
        return DEFEATED

    eta = proposal.get('execution_eta')
    if not eta:
        return SUCCEEDED

    if block_timestamp >= eta + GRACE_PERIOD:
        return EXPIRED

    return QUEUED
