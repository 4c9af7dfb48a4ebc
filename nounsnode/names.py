import time
import asyncio
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

import aiohttp

from .errors import NounsNodeError, TransientNetworkError, RateLimitError
from .logsetup import get_logger
from .utils import ZERO_ADDRESS, is_address

logr = get_logger('names')

ENS_IDEAS_URL = 'https://api.ensideas.com/ens/resolve/{address}'
DAY = 24 * 60 * 60


@dataclass(frozen=True)
class NameCacheEntry:
    address: str
    name: Optional[str]
    avatar: Optional[str]
    resolved_at: int


class EnsIdeasResolver:
    """
    address -> (name, avatar) over HTTP.  A 200 without a name is a negative answer, not an error.
    """

    def __init__(self, url=ENS_IDEAS_URL, timeout=3.0, session=None):
        self.url = url
        self.timeout = timeout
        self.session = session

    async def get_session(self):
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self.session

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()

    async def resolve(self, address):

        session = await self.get_session()

        try:
            async with session.get(self.url.format(address=address)) as resp:

                if resp.status == 429:
                    retry_after = resp.headers.get('Retry-After')
                    raise RateLimitError(f"ENS resolver rate limited for {address}",
                                         retry_after=float(retry_after) if retry_after else None)

                if resp.status >= 500:
                    raise TransientNetworkError(f"ENS resolver returned {resp.status} for {address}")

                if resp.status != 200:
                    return None, None

                data = await resp.json(content_type=None)

        except aiohttp.ClientError as e:
            raise TransientNetworkError(f"ENS resolver request failed for {address}: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransientNetworkError(f"ENS resolver timed out for {address}") from e

        if not isinstance(data, dict):
            return None, None

        return data.get('name') or None, data.get('avatar') or None


class NameCache:
    """
    Three tiers: in-process LRU, the ens_names table, then the external resolver.

    Negative answers are cached exactly like names.  Entries older than `ttl` are misses in
    both local tiers.  Failures and timeouts resolve to None and are not cached.
    """

    def __init__(self, store, resolver, max_entries=10_000, ttl=DAY, concurrency=10, timeout=3.0,
                 max_attempts=3, rate_limit_backoff=5.0, clock=time.time):

        self.store = store
        self.resolver = resolver
        self.max_entries = max_entries
        self.ttl = ttl
        self.concurrency = concurrency
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.rate_limit_backoff = rate_limit_backoff
        self.clock = clock

        self.memory = OrderedDict()
        self.inflight = {}
        self.backoff_until = 0.0

        self.external_calls = 0

    def fresh(self, resolved_at):
        return (self.clock() - resolved_at) < self.ttl

    def remember(self, entry):
        self.memory.pop(entry.address, None)
        self.memory[entry.address] = entry
        while len(self.memory) > self.max_entries:
            self.memory.popitem(last=False)

    def persist(self, entry):
        self.store.upsert('ens_names', {'address': entry.address,
                                        'name': entry.name,
                                        'avatar': entry.avatar,
                                        'resolved_at': entry.resolved_at},
                          merge=lambda prior, incoming: {**prior, **incoming})

    def from_memory(self, address):
        entry = self.memory.get(address)
        if entry and self.fresh(entry.resolved_at):
            return entry
        return None

    def from_table(self, address):
        row = self.store.get('ens_names', address)
        if row and self.fresh(row['resolved_at']):
            entry = NameCacheEntry(address, row['name'], row['avatar'], row['resolved_at'])
            self.remember(entry)
            return entry
        return None

    async def wait_for_backoff(self):
        delay = self.backoff_until - time.monotonic()
        if delay > 0:
            await asyncio.sleep(delay)

    async def from_resolver(self, address):

        for attempt in range(self.max_attempts):

            await self.wait_for_backoff()

            try:
                self.external_calls += 1
                name, avatar = await asyncio.wait_for(self.resolver.resolve(address), timeout=self.timeout)

            except RateLimitError as e:
                delay = e.retry_after or self.rate_limit_backoff * (2 ** attempt)
                self.backoff_until = max(self.backoff_until, time.monotonic() + delay)
                logr.warning(f"NameCache: rate limited, pausing lookups for {delay:.1f}s")
                continue

            except asyncio.TimeoutError:
                logr.warning(f"NameCache: lookup for {address} timed out after {self.timeout}s")
                return None

            except TransientNetworkError as e:
                logr.warning(f"NameCache: lookup for {address} failed: {e}")
                return None

            entry = NameCacheEntry(address, name, avatar, int(self.clock()))
            self.remember(entry)
            self.persist(entry)
            return entry

        logr.warning(f"NameCache: gave up on {address} after {self.max_attempts} rate-limited attempts")
        return None

    async def lookup(self, address):

        if not is_address(address):
            return None

        address = address.lower()

        if address == ZERO_ADDRESS:
            return None

        entry = self.from_memory(address) or self.from_table(address)
        if entry:
            return entry

        # Concurrent callers for the same address share one external call.
        task = self.inflight.get(address)
        if task is None:
            task = asyncio.ensure_future(self.from_resolver(address))
            self.inflight[address] = task
            task.add_done_callback(lambda _: self.inflight.pop(address, None))

        return await asyncio.shield(task)

    async def resolve(self, address):
        entry = await self.lookup(address)
        return entry.name if entry else None

    async def resolve_many(self, addresses):
        """
        {address: name or None} for every input address, lowercased.  Never raises per address.
        """

        unique = list(dict.fromkeys(a.lower() for a in addresses if isinstance(a, str)))
        semaphore = asyncio.Semaphore(self.concurrency)

        async def one(address):
            async with semaphore:
                try:
                    return address, await self.resolve(address)
                except NounsNodeError as e:
                    logr.warning(f"NameCache: {address} unresolved: {e}")
                    return address, None

        results = await asyncio.gather(*[one(a) for a in unique])

        return dict(results)
