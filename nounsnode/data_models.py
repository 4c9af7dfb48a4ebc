from sanic.log import logger as logr

from .abcs import DataModel
from .data_products import PROPOSAL_MERGE
from .errors import AggregateReadError
from .lifecycle import ACTIVE_STATUSES, INFERRED, SUCCEEDED, QUEUED, derive_status, settle_status

# Everything the chain can still move without emitting a log.
REFRESHABLE = ACTIVE_STATUSES + (SUCCEEDED, QUEUED)


class ProposalStatusRefresher(DataModel):
    """
    Proposals go ACTIVE, DEFEATED, EXPIRED... as blocks pass, with no event to tell us.  This
    re-derives the status of every non-final proposal at a given head.

    DEFEATED and EXPIRED are looked at again too: when the head runs ahead of the governance
    lane, the tallies they were read from may still be filling in.
    """

    def __init__(self, store, governor=None):
        self.store = store
        self.governor = governor

        self.last_block = None

    async def quorum(self, proposal, block_number):

        # Dynamic quorum only matters once voting is over.
        if self.governor is None or proposal['end_block'] is None or block_number <= proposal['end_block']:
            return None

        # Already read when the proposal was first closed out.
        if proposal['status'] in INFERRED:
            return None

        try:
            return await self.governor.quorum_votes(proposal['id'])
        except AggregateReadError as e:
            logr.warning(f"ProposalStatusRefresher: using stored quorum for {proposal['id']}: {e}")
            return None

    async def refresh(self, block_number, block_timestamp):

        statuses = REFRESHABLE + tuple(sorted(INFERRED))
        placeholders = ', '.join(['%s'] * len(statuses))
        proposals = self.store.query(f"SELECT * FROM proposals WHERE status IN ({placeholders}) ORDER BY id",
                                     statuses)

        changed = 0

        for proposal in proposals:

            quorum = await self.quorum(proposal, block_number)

            status = derive_status(proposal, block_number, block_timestamp, quorum)

            if settle_status(proposal['status'], status) == proposal['status'] and quorum in (None, proposal['quorum_votes']):
                continue

            row = {'id': proposal['id'], 'status': status}
            if quorum is not None:
                row['quorum_votes'] = quorum

            with self.store.transaction():
                merged = self.store.upsert('proposals', row, merge=PROPOSAL_MERGE)

            if merged['status'] != proposal['status']:
                logr.info(f"ProposalStatusRefresher: {proposal['id']} {proposal['status']} -> {merged['status']}")
                changed += 1

        self.last_block = block_number

        return changed
