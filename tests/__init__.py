"""Test the gitgate module."""

import asyncio
import time

from dulwich.objects import Commit

from gitgate.core.errors import StoreUnavailable
from gitgate.git.object_store import ObjectStoreClient

PRESIGN_BASE_URL = "https://s3.test"
README_TEXT = "# Sample repository\n\nUsed by the gitgate tests.\n"
FILE_TEXT = "hello from dir\n"
BINARY_DATA = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR"

OID_A = "a" * 64
OID_B = "b" * 64
OID_C = "c" * 64


def make_commit(tree, message=b"Initial commit\n", parents=None, offset=0):
    """Create a commit object for `tree`."""
    commit = Commit()
    commit.tree = tree.id
    commit.parents = parents or []
    commit.author = commit.committer = b"Dev <dev@example.com>"
    commit.encoding = b"UTF-8"
    commit.message = message
    commit.commit_time = commit.author_time = int(time.time()) + offset
    commit.commit_timezone = commit.author_timezone = 0
    return commit


class FakeObjectStore(ObjectStoreClient):
    """In-memory ObjectStoreClient recording every call."""

    def __init__(self, existing=(), failing=(), delay=0.0, fail_presign=False):
        self.existing = set(existing)
        self.failing = set(failing)
        self.delay = delay
        self.fail_presign = fail_presign
        self.head_calls = []
        self.presign_calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def head_object(self, key):
        self.head_calls.append(key)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if key in self.failing:
                raise StoreUnavailable(f"connection refused for {key}")
            return key in self.existing
        finally:
            self.in_flight -= 1

    async def _presign(self, method, key, expires_in):
        self.presign_calls.append((method, key, expires_in))
        if self.fail_presign:
            raise StoreUnavailable("cannot reach the object store")
        return f"{PRESIGN_BASE_URL}/{key}?method={method}&expires={expires_in}"

    async def presign_get(self, key, expires_in):
        return await self._presign("GET", key, expires_in)

    async def presign_put(self, key, expires_in):
        return await self._presign("PUT", key, expires_in)
