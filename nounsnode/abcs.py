from abc import ABC
from functools import partial

from .utils import camel_to_snake


class DataProduct(ABC):
    """
    A family of handlers over one slice of the store.

    `handles` maps "Contract:Event" keys to method names.  A handler is a plain method
    taking (event, fetched); it only writes.  Anything that needs the network goes in an
    optional `async def fetch_<method>(event)`, whose result is passed in as `fetched`.
    That split keeps every await outside the write transaction.
    """

    lane = 'default'
    handles = {}

    # ConfigChanged products set this so the context decodes their keys generically.
    decodes_as_config = False

    def __init__(self, store, names=None):
        self.store = store
        self.names = names

    async def plan(self, key, event):
        method = self.handles[key]
        fetch = getattr(self, f'fetch_{method}', None)
        fetched = await fetch(event) if fetch else None
        return partial(getattr(self, method), event, fetched)

    async def resolve_names(self, *addresses):
        if self.names is None:
            return {}
        return await self.names.resolve_many([a for a in addresses if a])

    @property
    def name(self):
        return camel_to_snake(self.__class__.__name__)


class DataModel(ABC):

    @property
    def name(self):
        return camel_to_snake(self.__class__.__name__)


def merge_with(keep_first=(), keep_max=(), keep_true=(), merge_status=None):
    """
    Build an upsert merge: incoming non-null fields overwrite, except that `keep_first`
    columns never change once set, `keep_max` columns only grow, `keep_true` flags never
    reset and `merge_status(old, new)` decides the status column.
    """

    def merge(prior, incoming):
        out = dict(prior)
        for k, v in incoming.items():
            if v is None:
                continue
            old = prior.get(k)
            if k in keep_first and old is not None:
                continue
            if k in keep_true and old:
                continue
            if k in keep_max and old is not None:
                v = max(old, v)
            if k == 'status' and merge_status:
                v = merge_status(old, v)
            out[k] = v
        return out

    return merge
