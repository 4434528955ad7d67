"""Read access to bare repositories.

`RepositoryStore` is the capability the resolution engine consumes;
`DulwichRepositoryStore` implements it over bare repositories on local
disk. All methods are blocking and must be called through the worker pool.
"""

import functools
import logging
import os
import stat
from abc import ABC, abstractmethod
from typing import List, Optional

from dulwich.errors import ChecksumMismatch, NotGitRepository, ObjectFormatException
from dulwich.objects import S_ISGITLINK, Blob, Commit, Tag, Tree
from dulwich.refs import LOCAL_BRANCH_PREFIX, LOCAL_TAG_PREFIX
from dulwich.repo import Repo

from gitgate.core import Entry, ObjectKind, ObjectRef
from gitgate.core.errors import (
    ObjectNotFound,
    RepositoryNotFound,
    UpstreamRepositoryFault,
)
from gitgate.utils import safe_join

logger = logging.getLogger(__name__)

HEAD_REF = b"HEAD"
SYMREF_PREFIX = b"ref: "

_KIND_BY_TYPE_NAME = {
    Commit.type_name: ObjectKind.commit,
    Tag.type_name: ObjectKind.tag,
    Tree.type_name: ObjectKind.tree,
    Blob.type_name: ObjectKind.blob,
}


def entry_kind(mode: int) -> ObjectKind:
    """Return the kind of the object a tree entry with `mode` points at."""
    if stat.S_ISDIR(mode):
        return ObjectKind.tree
    if S_ISGITLINK(mode):
        return ObjectKind.commit
    return ObjectKind.blob


def _reading(func):
    """Turn low level read failures into `UpstreamRepositoryFault`."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (OSError, ObjectFormatException, ChecksumMismatch) as err:
            logger.error("Repository read failed in %s: %s", func.__name__, err)
            raise UpstreamRepositoryFault(f"Failed to read repository: {err}") from err

    return wrapper


class RepositoryStore(ABC):
    """Read-only access to repositories, references and objects."""

    @abstractmethod
    def open(self, repo_path: str):
        """Open a repository, raise `RepositoryNotFound` if there is none."""

    @abstractmethod
    def list_branches(self, repo) -> List[str]:
        """Return local branch names in enumeration order."""

    @abstractmethod
    def list_tags(self, repo) -> List[str]:
        """Return fully qualified tag ref names (`refs/tags/<name>`)."""

    @abstractmethod
    def resolve_branch_tip(self, repo, name: str) -> Optional[str]:
        """Return the oid a local branch points at, or None."""

    @abstractmethod
    def resolve_tag(self, repo, ref_name: str) -> Optional[str]:
        """Return the oid a fully qualified tag ref is recorded against."""

    @abstractmethod
    def head_target(self, repo) -> Optional[str]:
        """Return the branch `HEAD` points at, or None."""

    @abstractmethod
    def get_object(self, repo, oid: str) -> ObjectRef:
        """Return the object, raise `ObjectNotFound` if missing."""

    @abstractmethod
    def peel_to_tree(self, repo, oid: str) -> Optional[str]:
        """Peel a commit or tag to its tree oid, None if not peelable."""

    @abstractmethod
    def get_entry(self, repo, tree_oid: str, name: str) -> Optional[Entry]:
        """Return the entry called `name` in a tree, or None."""

    @abstractmethod
    def list_entries(self, repo, tree_oid: str) -> List[Entry]:
        """Return the entries of a tree in enumeration order."""

    @abstractmethod
    def get_blob(self, repo, oid: str) -> bytes:
        """Return the raw content of a blob."""


class DulwichRepositoryStore(RepositoryStore):
    """Bare repositories below a root directory, read with dulwich.

    Repositories are addressed by their path relative to `root`, including
    the `.git` suffix, e.g. `team/project.git`.
    """

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def open(self, repo_path: str) -> Repo:
        try:
            path = safe_join(self.root, repo_path.strip("/"))
        except ValueError as err:
            raise RepositoryNotFound(str(err)) from err
        if not os.path.isdir(path):
            raise RepositoryNotFound(f"Repository not found: {repo_path}")
        try:
            return Repo(path)
        except NotGitRepository as err:
            raise RepositoryNotFound(f"Not a repository: {repo_path}") from err
        except OSError as err:
            raise UpstreamRepositoryFault(
                f"Failed to open repository {repo_path}: {err}"
            ) from err

    def _refs_under(self, repo: Repo, prefix: bytes) -> List[bytes]:
        return sorted(name for name in repo.refs.allkeys() if name.startswith(prefix))

    @_reading
    def list_branches(self, repo: Repo) -> List[str]:
        return [
            name[len(LOCAL_BRANCH_PREFIX) :].decode("utf-8", "replace")
            for name in self._refs_under(repo, LOCAL_BRANCH_PREFIX)
        ]

    @_reading
    def list_tags(self, repo: Repo) -> List[str]:
        return [
            name.decode("utf-8", "replace")
            for name in self._refs_under(repo, LOCAL_TAG_PREFIX)
        ]

    def _read_ref(self, repo: Repo, ref_name: bytes) -> Optional[str]:
        try:
            return repo.refs[ref_name].decode("ascii")
        except KeyError:
            return None

    @_reading
    def resolve_branch_tip(self, repo: Repo, name: str) -> Optional[str]:
        return self._read_ref(repo, LOCAL_BRANCH_PREFIX + name.encode("utf-8"))

    @_reading
    def resolve_tag(self, repo: Repo, ref_name: str) -> Optional[str]:
        ref = ref_name.encode("utf-8")
        if not ref.startswith(LOCAL_TAG_PREFIX):
            ref = LOCAL_TAG_PREFIX + ref
        return self._read_ref(repo, ref)

    @_reading
    def head_target(self, repo: Repo) -> Optional[str]:
        value = repo.refs.read_ref(HEAD_REF)
        if not value or not value.startswith(SYMREF_PREFIX):
            return None
        target = value[len(SYMREF_PREFIX) :].strip()
        if not target.startswith(LOCAL_BRANCH_PREFIX):
            return None
        return target[len(LOCAL_BRANCH_PREFIX) :].decode("utf-8", "replace")

    def _lookup(self, repo: Repo, oid: str):
        try:
            return repo.object_store[oid.encode("ascii")]
        except (KeyError, ValueError, UnicodeEncodeError) as err:
            raise ObjectNotFound(f"Object not found: {oid}") from err

    def _kind(self, obj) -> ObjectKind:
        try:
            return _KIND_BY_TYPE_NAME[obj.type_name]
        except KeyError as err:
            raise UpstreamRepositoryFault(
                f"Unsupported object type: {obj.type_name!r}"
            ) from err

    @_reading
    def get_object(self, repo: Repo, oid: str) -> ObjectRef:
        obj = self._lookup(repo, oid)
        return ObjectRef(oid=obj.id.decode("ascii"), kind=self._kind(obj))

    @_reading
    def peel_to_tree(self, repo: Repo, oid: str) -> Optional[str]:
        obj = self._lookup(repo, oid)
        while True:
            kind = self._kind(obj)
            if kind is ObjectKind.tree:
                return obj.id.decode("ascii")
            elif kind is ObjectKind.commit:
                obj = self._lookup(repo, obj.tree.decode("ascii"))
            elif kind is ObjectKind.tag:
                _, target = obj.object
                obj = self._lookup(repo, target.decode("ascii"))
            elif kind is ObjectKind.blob:
                return None
            else:
                raise UpstreamRepositoryFault(f"Unhandled object kind: {kind}")

    def _tree(self, repo: Repo, tree_oid: str) -> Tree:
        obj = self._lookup(repo, tree_oid)
        if not isinstance(obj, Tree):
            raise UpstreamRepositoryFault(f"Object {tree_oid} is not a tree")
        return obj

    @_reading
    def get_entry(self, repo: Repo, tree_oid: str, name: str) -> Optional[Entry]:
        tree = self._tree(repo, tree_oid)
        try:
            mode, sha = tree[name.encode("utf-8")]
        except KeyError:
            return None
        return Entry(name=name, oid=sha.decode("ascii"), kind=entry_kind(mode))

    @_reading
    def list_entries(self, repo: Repo, tree_oid: str) -> List[Entry]:
        tree = self._tree(repo, tree_oid)
        return [
            Entry(
                name=item.path.decode("utf-8", "replace"),
                oid=item.sha.decode("ascii"),
                kind=entry_kind(item.mode),
            )
            for item in tree.items()
        ]

    @_reading
    def get_blob(self, repo: Repo, oid: str) -> bytes:
        obj = self._lookup(repo, oid)
        if not isinstance(obj, Blob):
            raise UpstreamRepositoryFault(f"Object {oid} is not a blob")
        return obj.as_raw_string()
