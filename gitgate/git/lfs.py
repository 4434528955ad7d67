"""Git LFS (Large File Storage) batch API.

This module implements the Git LFS Batch API for handing out presigned
object store URLs. Bytes never pass through the server.

Git LFS Protocol:
1. Client sends Batch API request to /{repo}.git/info/lfs/objects/batch
   with `Authorization: Token <jwt>` obtained from git-lfs-authenticate
2. Server checks which objects are missing from the object store
3. Server responds with a presigned URL per missing object
4. Client uploads/downloads directly to the object store

Reference: https://github.com/git-lfs/git-lfs/blob/main/docs/api/batch.md
"""

import asyncio
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Header, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from gitgate.core import AuthToken, LFSOperation
from gitgate.core.auth import TokenAuthenticator
from gitgate.core.errors import (
    Forbidden,
    GatewayError,
    LocksUnsupported,
    StoreUnavailable,
    to_http_exception,
)
from gitgate.git.object_store import ObjectStoreClient, lfs_object_key
from gitgate.utils import ClientDisconnected, run_until_disconnected

logger = logging.getLogger(__name__)

# Git LFS content types
LFS_CONTENT_TYPE = "application/vnd.git-lfs+json"

# Default URL expiration time (1 hour)
DEFAULT_EXPIRES_IN = 3600

DEFAULT_MAX_CONCURRENT_CHECKS = 16

# Status reported when the client went away before the batch finished
CLIENT_CLOSED_REQUEST = 499


class LFSObjectRequest(BaseModel):
    """A single object in an LFS batch request."""

    oid: str = Field(..., description="The object ID (SHA-256 hash)")
    size: int = Field(..., ge=0, description="Size in bytes")


class LFSRef(BaseModel):
    """Git reference information."""

    name: str = Field(..., description="Fully-qualified Git ref (e.g., refs/heads/main)")


class LFSBatchRequest(BaseModel):
    """Git LFS Batch API request body."""

    operation: LFSOperation = Field(..., description="Either 'download' or 'upload'")
    objects: List[LFSObjectRequest] = Field(..., description="List of objects")
    transfers: List[str] = Field(
        default=["basic"], description="Transfer adapters (default: basic)"
    )
    ref: Optional[LFSRef] = Field(default=None, description="Git ref context")
    hash_algo: str = Field(
        default="sha256", description="Hash algorithm (default: sha256)"
    )


class LFSAction(BaseModel):
    """A presigned action (upload/download) for an LFS object."""

    href: str = Field(..., description="URL for the action")
    header: Dict[str, str] = Field(
        default_factory=dict, description="HTTP headers to include"
    )
    expires_in: int = Field(..., description="Seconds until URL expires")


class LFSObjectResponse(BaseModel):
    """Response for a single LFS object in batch response."""

    oid: str
    size: int
    authenticated: bool = True
    actions: Optional[Dict[str, LFSAction]] = None


class LFSBatchResponse(BaseModel):
    """Git LFS Batch API response body."""

    transfer: str = "basic"
    objects: List[LFSObjectResponse]


class LFSBatchGateway:
    """Authorize LFS batches and mint presigned URLs for missing objects.

    A batch runs in four steps and stops at the first failure:

    1. the token is verified and must be bound to the requested operation,
       otherwise the whole batch is rejected;
    2. every object is looked up in the object store, concurrently but with
       the input order preserved; a failed lookup counts as missing;
    3. each missing object gets exactly one presigned `download` or
       `upload` action;
    4. the response echoes every object, present ones without actions.
    """

    def __init__(
        self,
        authenticator: TokenAuthenticator,
        object_store: ObjectStoreClient,
        expires_in: int = DEFAULT_EXPIRES_IN,
        max_concurrent_checks: int = DEFAULT_MAX_CONCURRENT_CHECKS,
    ):
        self.authenticator = authenticator
        self.object_store = object_store
        self.expires_in = expires_in
        self.max_concurrent_checks = max_concurrent_checks

    def authenticate(self, authorization: Optional[str]) -> AuthToken:
        return self.authenticator.authenticate(authorization)

    @staticmethod
    def authorize(token: AuthToken, operation: LFSOperation) -> None:
        """Reject the batch if the token is bound to another operation."""
        if token.command != operation:
            logger.warning(
                "Token of %s is bound to %s, refusing %s",
                token.subject,
                token.command.value,
                operation.value,
            )
            raise Forbidden(
                f"Token is bound to '{token.command.value}', "
                f"not '{operation.value}'"
            )

    async def handle_batch(
        self,
        repository: str,
        authorization: Optional[str],
        request: LFSBatchRequest,
    ) -> LFSBatchResponse:
        """Authenticate the caller and process a batch request."""
        token = self.authenticate(authorization)
        return await self.process_batch(repository, token, request)

    async def process_batch(
        self,
        repository: str,
        token: AuthToken,
        request: LFSBatchRequest,
    ) -> LFSBatchResponse:
        """Process a batch request for an authenticated token."""
        self.authorize(token, request.operation)
        logger.info(
            "LFS batch: repository=%s, operation=%s, objects=%d, subject=%s",
            repository,
            request.operation.value,
            len(request.objects),
            token.subject,
        )

        semaphore = asyncio.Semaphore(self.max_concurrent_checks)
        present = await asyncio.gather(
            *(
                self._exists(semaphore, repository, obj)
                for obj in request.objects
            )
        )

        objects = []
        for obj, exists in zip(request.objects, present):
            if exists:
                objects.append(LFSObjectResponse(oid=obj.oid, size=obj.size))
                continue
            action = await self._issue_action(repository, obj, request.operation)
            objects.append(
                LFSObjectResponse(
                    oid=obj.oid,
                    size=obj.size,
                    actions={request.operation.value: action},
                )
            )
        return LFSBatchResponse(transfer="basic", objects=objects)

    async def _exists(
        self,
        semaphore: asyncio.Semaphore,
        repository: str,
        obj: LFSObjectRequest,
    ) -> bool:
        key = lfs_object_key(repository, obj.oid)
        async with semaphore:
            try:
                return await self.object_store.head_object(key)
            except StoreUnavailable as err:
                logger.warning("Existence check for %s failed, assuming absent: %s", key, err)
                return False

    async def _issue_action(
        self,
        repository: str,
        obj: LFSObjectRequest,
        operation: LFSOperation,
    ) -> LFSAction:
        key = lfs_object_key(repository, obj.oid)
        if operation is LFSOperation.download:
            href = await self.object_store.presign_get(key, self.expires_in)
        elif operation is LFSOperation.upload:
            href = await self.object_store.presign_put(key, self.expires_in)
        else:
            raise ValueError(f"Unhandled LFS operation: {operation}")
        logger.debug("Issued %s action for %s", operation.value, key)
        return LFSAction(href=href, header={}, expires_in=self.expires_in)


def repository_id(repo_name: str) -> str:
    """Return the repository id (path with `.git`) for a route parameter."""
    repo_name = repo_name.strip("/")
    if not repo_name:
        raise HTTPException(status_code=404, detail="Repository not found")
    return f"{repo_name}.git"


def create_lfs_router(gateway: LFSBatchGateway) -> APIRouter:
    """Create a FastAPI router for Git LFS endpoints.

    Args:
        gateway: The batch gateway answering batch requests

    Returns:
        FastAPI router with Git LFS endpoints
    """
    router = APIRouter()

    @router.post("/{repo_name:path}.git/info/lfs/objects/batch")
    async def lfs_batch(
        repo_name: str,
        request: Request,
        authorization: Optional[str] = Header(None),
    ):
        """Git LFS Batch API endpoint."""
        repository = repository_id(repo_name)

        try:
            token = gateway.authenticate(authorization)
        except GatewayError as err:
            logger.debug("LFS batch: authentication failed for %s: %s", repository, err)
            raise to_http_exception(err) from err

        try:
            body = await request.json()
            batch_request = LFSBatchRequest(**body)
        except Exception as e:
            logger.error(f"LFS batch: failed to parse request: {e}")
            raise HTTPException(
                status_code=422,
                detail=f"Invalid request body: {e}",
            )

        try:
            response = await run_until_disconnected(
                request, gateway.process_batch(repository, token, batch_request)
            )
        except ClientDisconnected:
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        except GatewayError as err:
            raise to_http_exception(err) from err

        return JSONResponse(
            content=response.model_dump(exclude_none=True),
            media_type=LFS_CONTENT_TYPE,
        )

    @router.post("/{repo_name:path}.git/info/lfs/locks/verify")
    async def lfs_lock_verify(repo_name: str, request: Request):
        """Git LFS lock verification, not supported.

        The body is drained so the client is never left blocked on a
        half-read request, then the call fails.
        """
        received = 0
        async for chunk in request.stream():
            received += len(chunk)
        logger.info(
            "LFS lock verify for %s.git (%d bytes), locking is not supported",
            repo_name.strip("/"),
            received,
        )
        raise to_http_exception(LocksUnsupported("LFS locking is not implemented"))

    return router
