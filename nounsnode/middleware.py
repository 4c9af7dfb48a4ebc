import time
from functools import wraps

from sanic import response
from sanic.request import Request


async def start_timer(request: Request):
    request.ctx.start_time = time.monotonic()


async def add_server_timing_header(request: Request, res: response.HTTPResponse):

    # Requests rejected before routing never ran start_timer.
    start = getattr(request.ctx, 'start_time', None)
    if start is None:
        return

    duration_ms = (time.monotonic() - start) * 1000.0

    res.headers["Server-Timing"] = res.headers.get("Server-Timing", "") + f'total;dur={duration_ms:.3f}'


def measure(handler):
    """
    Times just the handler body, as 'data' in the Server-Timing header.  The middleware adds
    the 'total' part.
    """

    @wraps(handler)
    async def wrapper(request, *args, **kwargs):
        start = time.monotonic()

        res = await handler(request, *args, **kwargs)

        res.headers["Server-Timing"] = f'data;dur={(time.monotonic() - start) * 1000.0:.3f},'

        return res

    return wrapper
