"""Walk trees below a resolved root object."""

import logging
from typing import List, Optional, Sequence, Union

from gitgate.core import BlobView, Entry, ObjectKind, ObjectRef
from gitgate.core.errors import InvalidPath, KindMismatch, PathNotFound
from gitgate.git.store import RepositoryStore

logger = logging.getLogger(__name__)

README_NAMES = ("README.md", "README")
# git treats content with a NUL byte in its first 8000 bytes as binary
BINARY_CHECK_SIZE = 8000
DISPLAY_MODES = ("tree", "blob")


def is_binary(data: bytes) -> bool:
    """Return True if the content should not be shown as text."""
    return b"\0" in data[:BINARY_CHECK_SIZE]


def split_path(path: Union[str, Sequence[str], None]) -> Optional[List[str]]:
    """Split a slash separated path into segments, None for the root."""
    if path is None:
        return None
    if isinstance(path, str):
        path = path.split("/")
    segments = [segment for segment in path if segment]
    return segments or None


class TreeWalker:
    """Descend from a root object along a path."""

    def __init__(self, store: RepositoryStore):
        self.store = store

    def descend(
        self, repo, root_oid: str, path: Union[str, Sequence[str], None] = None
    ) -> ObjectRef:
        """Return the object found at `path` below `root_oid`."""
        root = self.store.get_object(repo, root_oid)
        segments = split_path(path)

        if root.kind is ObjectKind.blob:
            if segments:
                raise InvalidPath(
                    f"Cannot descend into blob {root.oid} with path '{'/'.join(segments)}'"
                )
            return root
        elif root.kind in (ObjectKind.commit, ObjectKind.tag, ObjectKind.tree):
            tree_oid = self.store.peel_to_tree(repo, root.oid)
            if tree_oid is None:
                raise InvalidPath(f"Object {root.oid} does not lead to a tree")
        else:
            raise InvalidPath(f"Unhandled object kind: {root.kind}")

        current = ObjectRef(oid=tree_oid, kind=ObjectKind.tree)
        if not segments:
            return current

        for index, segment in enumerate(segments):
            if current.kind is not ObjectKind.tree:
                raise PathNotFound(
                    f"'{'/'.join(segments[:index])}' is not a directory"
                )
            entry = self.store.get_entry(repo, current.oid, segment)
            if entry is None:
                raise PathNotFound(
                    f"Path not found: '{'/'.join(segments[: index + 1])}'"
                )
            current = ObjectRef(oid=entry.oid, kind=entry.kind)
        return current

    def list_entries(self, repo, tree_oid: str) -> List[Entry]:
        return self.store.list_entries(repo, tree_oid)

    def find_readme(self, repo, tree_oid: str) -> Optional[str]:
        """Return the text of the README of a tree, if it has a readable one."""
        candidates = {
            entry.name: entry
            for entry in self.store.list_entries(repo, tree_oid)
            if entry.name in README_NAMES
        }
        for name in README_NAMES:
            entry = candidates.get(name)
            if entry is None or entry.kind is not ObjectKind.blob:
                continue
            data = self.store.get_blob(repo, entry.oid)
            if is_binary(data):
                return None
            try:
                return data.decode("utf-8")
            except UnicodeDecodeError:
                logger.debug("README %s in %s is not UTF-8", entry.oid, tree_oid)
                return None
        return None

    def read_blob(self, repo, oid: str) -> BlobView:
        data = self.store.get_blob(repo, oid)
        binary = is_binary(data)
        text = None
        if not binary:
            try:
                text = data.decode("utf-8")
            except UnicodeDecodeError:
                binary = True
        return BlobView(oid=oid, size=len(data), binary=binary, text=text)

    @staticmethod
    def expect_kind(ref: ObjectRef, mode: str) -> ObjectRef:
        """Check that `ref` can be shown in the `tree` or `blob` display mode."""
        if mode not in DISPLAY_MODES:
            raise KindMismatch(f"Unknown display mode: {mode}")
        if ref.kind.value != mode:
            raise KindMismatch(
                f"invalid reference type: {ref.kind.value} cannot be shown as {mode}"
            )
        return ref
