"""Provide the gitgate core data model."""

import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class ObjectKind(str, Enum):
    """Represent the kind of a repository object."""

    commit = "commit"
    tag = "tag"
    tree = "tree"
    blob = "blob"


class LFSOperation(str, Enum):
    """Represent an LFS transfer operation."""

    download = "download"
    upload = "upload"


class RefSource(str, Enum):
    """Represent how a textual ref was resolved."""

    branch = "branch"
    tag = "tag"
    oid = "oid"


class ObjectRef(BaseModel):
    """Represent a resolved object together with its kind."""

    model_config = ConfigDict(frozen=True)

    oid: str
    kind: ObjectKind


class Entry(BaseModel):
    """Represent an entry of a tree."""

    model_config = ConfigDict(frozen=True)

    name: str
    oid: str
    kind: ObjectKind


class ResolvedRef(BaseModel):
    """Represent the outcome of resolving a textual ref."""

    model_config = ConfigDict(frozen=True)

    oid: str
    source: RefSource


class RepoRefs(BaseModel):
    """Represent the branch and tag names of a repository."""

    branches: List[str] = []
    tags: List[str] = []


class BlobView(BaseModel):
    """Represent a blob prepared for display."""

    oid: str
    size: int
    binary: bool
    text: Optional[str] = None


class AuthToken(BaseModel):
    """Represent a verified LFS capability token."""

    model_config = ConfigDict(frozen=True)

    subject: str
    issued_at: datetime.datetime
    expires_at: datetime.datetime
    command: LFSOperation
