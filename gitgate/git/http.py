"""Repository browsing endpoints for FastAPI.

`GET /{repo}.git/{tree|blob}/{ref}/{path...}` resolves `ref` with the
RefResolver, descends along `path` with the TreeWalker and answers with a
JSON description of the tree or blob found there.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from gitgate.core import ObjectKind
from gitgate.core.errors import GatewayError, to_http_exception
from gitgate.git.lfs import CLIENT_CLOSED_REQUEST, repository_id
from gitgate.git.refs import RefResolver
from gitgate.git.store import RepositoryStore
from gitgate.git.tree import DISPLAY_MODES, TreeWalker, split_path
from gitgate.utils import BlockingExecutor, ClientDisconnected, run_until_disconnected

logger = logging.getLogger(__name__)


class GitBrowser:
    """Answer "what does this ref and path refer to" for one repository.

    Every call opens the repository, resolves from scratch and closes it
    again. All methods block and are meant to run on the worker pool.
    """

    def __init__(self, store: RepositoryStore):
        self.store = store
        self.resolver = RefResolver(store)
        self.walker = TreeWalker(store)

    def browse(
        self,
        repository: str,
        mode: str,
        ref_name: str,
        object_path: Optional[str] = None,
    ) -> dict:
        """Describe the tree or blob at `object_path` below `ref_name`."""
        with self.store.open(repository) as repo:
            refs = self.resolver.list_refs(repo)
            resolved = self.resolver.resolve(repo, ref_name)
            target = self.walker.descend(repo, resolved.oid, object_path)
            self.walker.expect_kind(target, mode)

            segments = split_path(object_path) or []
            page = {
                "repository": repository,
                "ref": ref_name,
                "path": "/".join(segments),
                "kind": target.kind.value,
                "oid": target.oid,
                "branches": refs.branches,
                "tags": refs.tags,
            }
            if target.kind is ObjectKind.tree:
                page["entries"] = [
                    entry.model_dump(mode="json")
                    for entry in self.walker.list_entries(repo, target.oid)
                ]
                page["readme"] = self.walker.find_readme(repo, target.oid)
            elif target.kind is ObjectKind.blob:
                blob = self.walker.read_blob(repo, target.oid)
                page["size"] = blob.size
                page["binary"] = blob.binary
                page["text"] = blob.text
            else:
                raise ValueError(f"Unhandled object kind: {target.kind}")
            return page

    def browse_default(self, repository: str) -> dict:
        """Describe the root tree of the default branch."""
        with self.store.open(repository) as repo:
            branch = self.resolver.default_branch(repo)
        return self.browse(repository, ObjectKind.tree.value, branch)


def create_git_router(browser: GitBrowser, executor: BlockingExecutor) -> APIRouter:
    """Create a FastAPI router for the browsing endpoints."""
    router = APIRouter()

    def _check_mode(mode: str):
        if mode not in DISPLAY_MODES:
            raise HTTPException(status_code=404, detail=f"Unknown view: {mode}")

    async def _run(request: Request, func, *args):
        try:
            page = await run_until_disconnected(request, executor.run(func, *args))
        except ClientDisconnected:
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        except GatewayError as err:
            logger.info("Browse %s failed: %s", request.url.path, err)
            raise to_http_exception(err) from err
        return JSONResponse(content=page)

    @router.get("/{repo_name:path}.git/")
    async def git_repo(repo_name: str, request: Request):
        """Show the root tree of the default branch."""
        return await _run(request, browser.browse_default, repository_id(repo_name))

    @router.get("/{repo_name:path}.git/{mode}/{ref_name}")
    async def git_repo_ref(repo_name: str, mode: str, ref_name: str, request: Request):
        """Show the root tree (or a blob given by id) of a ref."""
        _check_mode(mode)
        return await _run(
            request, browser.browse, repository_id(repo_name), mode, ref_name, None
        )

    @router.get("/{repo_name:path}.git/{mode}/{ref_name}/{object_path:path}")
    async def git_repo_detail(
        repo_name: str,
        mode: str,
        ref_name: str,
        object_path: str,
        request: Request,
    ):
        """Show the tree or blob at a path below a ref."""
        _check_mode(mode)
        return await _run(
            request,
            browser.browse,
            repository_id(repo_name),
            mode,
            ref_name,
            object_path or None,
        )

    return router
