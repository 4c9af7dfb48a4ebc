import csv, os, sys
import heapq
from pathlib import Path

from sanic.log import logger as logr

from .abi import AbiSet
from .events import RawLog

csv.field_size_limit(sys.maxsize)

# Envelope columns.  Everything else in a row is an event arg.
HEADER_FIELDS = ('block_number', 'transaction_index', 'log_index', 'transaction_hash', 'tx_hash',
                 'block_timestamp', 'timestamp', 'tx_from', 'address')


class SubscriptionPlannerMixin:

    def init(self):
        self.subscription_meta = []
        self.abis_set = False

    def set_abis(self, abi_set: AbiSet):

        assert not self.abis_set

        self.abis_set = True
        self.abis = abi_set

    def plan(self, contract, address, signature, start_block=0):
        self.plan_event(contract, address.lower(), signature, start_block)


def envelope(row, contract, event_name, signature):
    """
    Split a flat CSV/JSON row into a RawLog.
    """

    args = {k: v for k, v in row.items() if k not in HEADER_FIELDS}

    return RawLog(block_number=int(row['block_number']),
                  log_index=int(row['log_index']),
                  tx_hash=row.get('transaction_hash') or row.get('tx_hash'),
                  block_timestamp=int(row.get('block_timestamp') or row.get('timestamp') or 0),
                  contract=contract,
                  event_name=event_name,
                  args=args,
                  tx_from=row.get('tx_from') or None,
                  transaction_index=int(row.get('transaction_index') or 0),
                  signature=signature)


class CSVClient(SubscriptionPlannerMixin):
    """
    Bulk replay from exported logs, one file per event:

        <path>/<chain_id>/<address>/<signature>.csv

    with block_number, transaction_index, log_index, transaction_hash and optionally
    block_timestamp and tx_from, then one column per event arg.  Lists and tuples are JSON.
    """

    timeliness = 'archive'

    def __init__(self, path, chain_id=1):

        if not isinstance(path, Path):
            self.path = Path(path)
        else:
            self.path = path
        self.chain_id = chain_id
        self.init()

    def is_valid(self):

        if os.path.exists(self.path):
            logr.info(f"The path '{self.path}' exists, this client is valid for {self.__class__.__name__}")
            return True
        else:
            logr.info(f"The path '{self.path}' does not exist, this client is not valid for {self.__class__.__name__}")
            return False

    def plan_event(self, contract, address, signature, start_block=0):

        abi_frag = self.abis.get_by_signature(contract, signature)

        fname = self.events_fname(address, abi_frag.signature)

        if not os.path.exists(fname):
            raise FileNotFoundError(f"CSV file not found: {fname}")

        self.subscription_meta.append((fname, contract, abi_frag))

    def get_fallback_block(self):
        return 0

    def events_fname(self, address, signature):
        return self.path / f'{self.chain_id}/{address}/{signature}.csv'

    def read_events(self, fname, contract, abi_frag, after):

        with open(fname, 'r') as f:
            reader = csv.DictReader(f)

            for line, row in enumerate(reader, 2):

                try:
                    raw = envelope(row, contract, abi_frag.name, abi_frag.signature)
                except (KeyError, TypeError, ValueError) as e:
                    logr.warning(f"Skipping malformed row {line} of {fname}: {e!r}")
                    continue

                if raw.block_number < after:
                    continue

                yield raw

    def read(self, after=0):
        """
        Every planned file merged into (block_number, log_index) order.  Each file is
        expected to be sorted already.
        """

        readers = [self.read_events(fname, contract, abi_frag, after)
                   for fname, contract, abi_frag in self.subscription_meta]

        yield from heapq.merge(*readers, key=lambda raw: raw.position)
