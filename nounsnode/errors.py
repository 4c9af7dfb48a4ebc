import asyncio

from .logsetup import get_logger

logr = get_logger('errors')


class NounsNodeError(Exception):
    pass


class DecodeError(NounsNodeError):
    """
    A log could not be turned into a typed event.  Skip it, log it, keep going.
    """


class TransientNetworkError(NounsNodeError):
    """
    A remote call failed in a way that is worth retrying (timeouts, 5xx, dropped connections).
    """


class RateLimitError(TransientNetworkError):
    """
    The remote side told us to slow down.  Callers back off the whole batch, not just one item.
    """

    def __init__(self, message, retry_after=None):
        super().__init__(message)
        self.retry_after = retry_after


class UnresolvedAttributionError(NounsNodeError):
    """
    The settlement log for a noun's attribution is not available yet.
    """

    def __init__(self, noun_id, settled_id, reason=''):
        super().__init__(f"Noun {noun_id}: settlement of auction {settled_id} not found. {reason}".strip())
        self.noun_id = noun_id
        self.settled_id = settled_id


class AggregateReadError(NounsNodeError):
    """
    An authoritative on-chain read failed.  Keep the prior local value, try again later.
    """


async def retry_async(fn, *args, attempts=4, base_delay=0.5, max_delay=30.0, retry_on=(TransientNetworkError,), name=None, **kwargs):
    """
    Await fn(*args, **kwargs), retrying `retry_on` errors with exponential backoff.

    The last error is re-raised once `attempts` is exhausted.
    """

    name = name or getattr(fn, '__name__', 'call')

    for attempt in range(1, attempts + 1):
        try:
            return await fn(*args, **kwargs)
        except retry_on as e:
            if attempt == attempts:
                logr.error(f"{name}: giving up after {attempts} attempts: {e}")
                raise

            delay = min(base_delay * (2 ** (attempt - 1)), max_delay)

            retry_after = getattr(e, 'retry_after', None)
            if retry_after:
                delay = max(delay, retry_after)

            logr.warning(f"{name}: attempt {attempt}/{attempts} failed ({e}), retrying in {delay:.2f}s")
            await asyncio.sleep(delay)
