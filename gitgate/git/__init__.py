"""Repository browsing and Git LFS gateway.

Key components:
- DulwichRepositoryStore: read access to bare repositories on disk
- RefResolver: branch / tag / object id resolution
- TreeWalker: path descent, entry listing and README extraction
- S3ObjectStoreClient: existence checks and presigned URLs on S3
- LFSBatchGateway: Git LFS batch API authorization and action issuance
"""

from gitgate.git.store import DulwichRepositoryStore, RepositoryStore
from gitgate.git.refs import RefResolver
from gitgate.git.tree import TreeWalker
from gitgate.git.object_store import ObjectStoreClient, S3ObjectStoreClient
from gitgate.git.lfs import LFSBatchGateway, create_lfs_router
from gitgate.git.http import GitBrowser, create_git_router

__all__ = [
    "DulwichRepositoryStore",
    "RepositoryStore",
    "RefResolver",
    "TreeWalker",
    "ObjectStoreClient",
    "S3ObjectStoreClient",
    "LFSBatchGateway",
    "create_lfs_router",
    "GitBrowser",
    "create_git_router",
]
