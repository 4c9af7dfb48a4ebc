"""
Client reward accounting.

totals on the clients table are never summed locally; every reward or withdrawal event
triggers an authoritative clientMetadata() read, and the read overwrites what we had.
"""

from .errors import AggregateReadError
from .logsetup import get_logger

logr = get_logger('rewards')


class RewardAggregator:

    def __init__(self, store, reader):
        self.store = store
        self.reader = reader

        # client ids whose last authoritative read failed
        self.pending = set()

    async def read_totals(self, client_id):
        """
        Authoritative (approved, total_rewarded, total_withdrawn) for a client, or None when
        the read failed.  Failures are queued for retry_pending().
        """

        if self.reader is None:
            self.pending.add(client_id)
            return None

        try:
            meta = await self.reader.client_metadata(client_id)
        except AggregateReadError as e:
            logr.warning(f"RewardAggregator: keeping prior totals for client {client_id}: {e}")
            self.pending.add(client_id)
            return None

        self.pending.discard(client_id)

        return {'approved': meta.approved,
                'total_rewarded': meta.rewarded,
                'total_withdrawn': meta.withdrawn}

    async def read_image(self, client_id):
        if self.reader is None:
            return None
        try:
            return await self.reader.client_image(client_id)
        except AggregateReadError as e:
            logr.warning(f"RewardAggregator: no image for client {client_id}: {e}")
            return None

    def apply(self, client_id, totals, **fields):
        """
        Write the read into the clients row.  Call inside the event's transaction.
        """

        row = {'client_id': client_id, **{k: v for k, v in fields.items() if v is not None}}

        if totals:
            row.update(totals)

        return self.store.upsert('clients', row)

    def balance(self, client_id):
        row = self.store.get('clients', client_id)
        if row is None:
            return None
        return row['total_rewarded'] - row['total_withdrawn']

    async def refresh(self, client_id, with_image=False):

        totals = await self.read_totals(client_id)
        image = await self.read_image(client_id) if with_image else None

        if totals is None and image is None:
            return False

        with self.store.transaction():
            self.apply(client_id, totals, nft_image=image)

        return totals is not None

    async def retry_pending(self):
        """
        Re-read every client whose last read failed.  Returns how many succeeded.
        """

        done = 0
        for client_id in sorted(self.pending):
            if await self.refresh(client_id):
                done += 1

        if done:
            logr.info(f"RewardAggregator: reconciled {done} clients, {len(self.pending)} still pending")

        return done

    async def resync_all(self, with_image=True):
        ids = [row['client_id'] for row in self.store.query("SELECT client_id FROM clients ORDER BY client_id")]

        done = 0
        for client_id in ids:
            if await self.refresh(client_id, with_image=with_image):
                done += 1

        logr.info(f"RewardAggregator: resynced {done} of {len(ids)} clients")

        return done
