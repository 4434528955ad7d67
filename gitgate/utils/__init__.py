"""Provide utilities that should not be aware of gitgate."""
import asyncio
import logging
import os
import posixpath
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Awaitable, Callable, List, TypeVar

from starlette.requests import Request

logger = logging.getLogger(__name__)

T = TypeVar("T")

_os_alt_seps: List[str] = list(
    sep for sep in [os.path.sep, os.path.altsep] if sep is not None and sep != "/"
)


class ClientDisconnected(Exception):
    """The HTTP client went away before the response was ready."""


def safe_join(directory: str, *pathnames: str) -> str:
    """Safely join zero or more untrusted path components to a base directory.

    This avoids escaping the base directory.
    :param directory: The trusted base directory.
    :param pathnames: The untrusted path components relative to the
        base directory.
    :return: The joined path.
    :raises ValueError: If a component would escape the base directory.

    Adapted from:
    https://github.com/pallets/werkzeug/blob/fb7ddd89ae3072e4f4002701a643eb247a402b64/src/werkzeug/security.py#L222
    """
    parts = [directory]

    for filename in pathnames:
        if filename != "":
            filename = posixpath.normpath(filename)

        if (
            any(sep in filename for sep in _os_alt_seps)
            or os.path.isabs(filename)
            or filename == ".."
            or filename.startswith("../")
        ):
            raise ValueError(f"Illegal path: `{filename}`")

        parts.append(filename)

    return posixpath.join(*parts)


class BlockingExecutor:
    """Run blocking calls on a bounded worker pool."""

    def __init__(self, max_workers: int = 8, thread_name_prefix: str = "gitgate"):
        self.max_workers = max_workers
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=thread_name_prefix
        )

    async def run(self, func: Callable[..., T], *args, **kwargs) -> T:
        """Run `func` in the pool and await its result."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._pool, partial(func, *args, **kwargs))

    def shutdown(self):
        """Stop the pool, pending calls are abandoned."""
        self._pool.shutdown(wait=False, cancel_futures=True)


async def run_until_disconnected(
    request: Request,
    awaitable: Awaitable[T],
    poll_interval: float = 0.5,
) -> T:
    """Await `awaitable`, cancelling it if the client disconnects first."""
    task = asyncio.ensure_future(awaitable)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=poll_interval)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.info("Client disconnected from %s, abandoning", request.url.path)
                task.cancel()
                raise ClientDisconnected(request.url.path)
    finally:
        if not task.done():
            task.cancel()
