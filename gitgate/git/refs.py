"""Resolve textual refs to object ids.

A name typed by a caller is resolved with a fixed precedence:

1. a local branch with exactly that name, peeled to its tree;
2. a tag whose shortened name (``refs/tags/`` stripped) equals the name;
3. the name itself when it is a well-formed hex object id.

The first match wins. Resolution only reads refs; nothing is cached
between calls.
"""

import logging
import re
from typing import Optional

from dulwich.objects import valid_hexsha

from gitgate.core import RefSource, RepoRefs, ResolvedRef
from gitgate.core.errors import RefNotFound
from gitgate.git.store import RepositoryStore

logger = logging.getLogger(__name__)

TAG_PREFIX_PATTERN = re.compile(r"^refs/tags/")

# Branch shown when HEAD does not point at a local branch
FALLBACK_BRANCH = "master"


def shorten_tag_name(ref_name: str) -> str:
    """Strip the `refs/tags/` namespace from a tag ref name."""
    return TAG_PREFIX_PATTERN.sub("", ref_name, count=1)


def parse_oid(name: str) -> Optional[str]:
    """Return `name` as a normalized object id, or None if it is not one."""
    candidate = name.strip().lower()
    if valid_hexsha(candidate.encode("ascii", "replace")):
        return candidate
    return None


class RefResolver:
    """Resolve branch names, tag names and raw ids in a repository."""

    def __init__(self, store: RepositoryStore):
        self.store = store

    def resolve(self, repo, name: str) -> ResolvedRef:
        """Resolve `name` to an object id, raise `RefNotFound` otherwise."""
        tip = self.store.resolve_branch_tip(repo, name)
        if tip is not None:
            tree = self.store.peel_to_tree(repo, tip)
            logger.debug("Resolved %s as branch -> %s", name, tree or tip)
            return ResolvedRef(oid=tree or tip, source=RefSource.branch)

        for ref_name in self.store.list_tags(repo):
            if shorten_tag_name(ref_name) == name:
                oid = self.store.resolve_tag(repo, ref_name)
                if oid is not None:
                    logger.debug("Resolved %s as tag -> %s", name, oid)
                    return ResolvedRef(oid=oid, source=RefSource.tag)

        oid = parse_oid(name)
        if oid is not None:
            return ResolvedRef(oid=oid, source=RefSource.oid)

        raise RefNotFound(f"No branch, tag or object named '{name}'")

    def list_refs(self, repo) -> RepoRefs:
        """Return branch names and shortened tag names for display."""
        return RepoRefs(
            branches=list(self.store.list_branches(repo)),
            tags=[shorten_tag_name(ref_name) for ref_name in self.store.list_tags(repo)],
        )

    def default_branch(self, repo) -> str:
        """Return the branch HEAD points at, falling back to `master`."""
        return self.store.head_target(repo) or FALLBACK_BRANCH
