"""Object store access for LFS artifacts.

`ObjectStoreClient` is the capability the LFS gateway consumes: an
existence check plus presigned GET/PUT URL issuance. `S3ObjectStoreClient`
implements it for S3 compatible storage with aiobotocore.

Each S3 operation creates a fresh client context to avoid connection
pool exhaustion and hanging issues with aiobotocore.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError

from gitgate.core.errors import StoreUnavailable

logger = logging.getLogger(__name__)

MISSING_OBJECT_CODES = ("404", "NoSuchKey", "NotFound")


def lfs_object_key(repository: str, oid: str) -> str:
    """Return the object store key of an LFS object."""
    return f"{repository.strip('/')}/lfs/objects/{oid}"


class ObjectStoreClient(ABC):
    """Existence checks and presigned URLs for keys in one bucket."""

    @abstractmethod
    async def head_object(self, key: str) -> bool:
        """Return whether `key` exists, raise `StoreUnavailable` on faults."""

    @abstractmethod
    async def presign_get(self, key: str, expires_in: int) -> str:
        """Return a presigned download URL for `key`."""

    @abstractmethod
    async def presign_put(self, key: str, expires_in: int) -> str:
        """Return a presigned upload URL for `key`."""


class S3ObjectStoreClient(ObjectStoreClient):
    """ObjectStoreClient backed by an S3 bucket."""

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        region_name: Optional[str] = None,
        endpoint_url_public: Optional[str] = None,
        s3_client_factory: Optional[Callable] = None,
    ):
        """Initialize the S3 client.

        Args:
            bucket: S3 bucket holding the LFS objects
            endpoint_url: S3 endpoint used for existence checks
            access_key_id: S3 access key
            secret_access_key: S3 secret key
            region_name: S3 region
            endpoint_url_public: Endpoint clients reach; presigned URLs are
                                 signed against it (defaults to endpoint_url)
            s3_client_factory: Optional factory `(public: bool)` returning an
                               async context manager for an S3 client
        """
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.endpoint_url_public = endpoint_url_public or endpoint_url
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.region_name = region_name
        self._s3_client_factory = s3_client_factory

    def create_client_async(self, public=False):
        """Create client async."""
        if self._s3_client_factory is not None:
            return self._s3_client_factory(public)
        return get_session().create_client(
            "s3",
            endpoint_url=self.endpoint_url_public if public else self.endpoint_url,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            region_name=self.region_name,
        )

    async def head_object(self, key: str) -> bool:
        try:
            async with self.create_client_async() as s3_client:
                await s3_client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as err:
            code = str(err.response.get("Error", {}).get("Code", ""))
            if code in MISSING_OBJECT_CODES:
                return False
            raise StoreUnavailable(f"Failed to check {key}: {err}") from err
        except (BotoCoreError, OSError, asyncio.TimeoutError) as err:
            raise StoreUnavailable(f"Failed to check {key}: {err}") from err

    async def _presign(self, method: str, key: str, expires_in: int) -> str:
        try:
            async with self.create_client_async(public=True) as s3_client:
                return await s3_client.generate_presigned_url(
                    method,
                    Params={"Bucket": self.bucket, "Key": key},
                    ExpiresIn=expires_in,
                )
        except (ClientError, BotoCoreError, OSError) as err:
            raise StoreUnavailable(f"Failed to presign {key}: {err}") from err

    async def presign_get(self, key: str, expires_in: int) -> str:
        return await self._presign("get_object", key, expires_in)

    async def presign_put(self, key: str, expires_in: int) -> str:
        return await self._presign("put_object", key, expires_in)
