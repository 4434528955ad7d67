"""Provide common pytest fixtures."""

import os
import uuid
from types import SimpleNamespace

# Set JWT_SECRET environment variables BEFORE importing any gitgate modules
# This ensures all modules use the same JWT_SECRET
JWT_SECRET = str(uuid.uuid4())
os.environ["JWT_SECRET"] = JWT_SECRET
os.environ["GITGATE_JWT_SECRET"] = JWT_SECRET

import httpx
import pytest
import pytest_asyncio

from dulwich.objects import Blob, Commit, Tag, Tree
from dulwich.repo import Repo

from gitgate.core.auth import set_jwt_secret
from gitgate.git.store import DulwichRepositoryStore
from gitgate.server import create_application, get_argparser

from . import BINARY_DATA, FILE_TEXT, README_TEXT, FakeObjectStore, make_commit

set_jwt_secret(JWT_SECRET)

REPO_NAME = "team/sample"


@pytest.fixture
def repos_root(tmp_path):
    """Directory holding the bare repositories."""
    root = tmp_path / "repos"
    root.mkdir()
    return root


@pytest.fixture
def sample_repo(repos_root):
    """Create a bare repository with branches, tags and a nested tree.

    master:       README.md, dir/file.txt, dir/nested/deep.txt, image.bin
    v1 (branch):  README.md with other content
    binary-readme: README.md holding binary data
    plain-readme: README only
    tags:         v1 -> master commit (same name as the branch),
                  light -> master commit, release -> annotated tag of master
    """
    path = repos_root / "team" / "sample.git"
    path.mkdir(parents=True)
    repo = Repo.init_bare(str(path))

    readme = Blob.from_string(README_TEXT.encode("utf-8"))
    file_blob = Blob.from_string(FILE_TEXT.encode("utf-8"))
    deep_blob = Blob.from_string(b"deep\n")
    image = Blob.from_string(BINARY_DATA)

    nested = Tree()
    nested.add(b"deep.txt", 0o100644, deep_blob.id)
    subdir = Tree()
    subdir.add(b"file.txt", 0o100644, file_blob.id)
    subdir.add(b"nested", 0o040000, nested.id)
    root_tree = Tree()
    root_tree.add(b"README.md", 0o100644, readme.id)
    root_tree.add(b"dir", 0o040000, subdir.id)
    root_tree.add(b"image.bin", 0o100644, image.id)
    master = make_commit(root_tree)

    v1_readme = Blob.from_string(b"v1 branch\n")
    v1_tree = Tree()
    v1_tree.add(b"README.md", 0o100644, v1_readme.id)
    v1_commit = make_commit(v1_tree, b"v1 branch\n", parents=[master.id], offset=1)

    binary_readme_tree = Tree()
    binary_readme_tree.add(b"README.md", 0o100644, image.id)
    binary_readme_commit = make_commit(binary_readme_tree, b"binary readme\n", offset=2)

    plain_readme = Blob.from_string(b"plain readme\n")
    plain_tree = Tree()
    plain_tree.add(b"README", 0o100644, plain_readme.id)
    plain_commit = make_commit(plain_tree, b"plain readme\n", offset=3)

    release = Tag()
    release.tagger = b"Dev <dev@example.com>"
    release.message = b"Release\n"
    release.name = b"release"
    release.object = (Commit, master.id)
    release.tag_time = master.commit_time
    release.tag_timezone = 0

    for obj in [
        readme,
        file_blob,
        deep_blob,
        image,
        nested,
        subdir,
        root_tree,
        master,
        v1_readme,
        v1_tree,
        v1_commit,
        binary_readme_tree,
        binary_readme_commit,
        plain_readme,
        plain_tree,
        plain_commit,
        release,
    ]:
        repo.object_store.add_object(obj)

    repo.refs[b"refs/heads/master"] = master.id
    repo.refs[b"refs/heads/v1"] = v1_commit.id
    repo.refs[b"refs/heads/binary-readme"] = binary_readme_commit.id
    repo.refs[b"refs/heads/plain-readme"] = plain_commit.id
    repo.refs[b"refs/tags/v1"] = master.id
    repo.refs[b"refs/tags/light"] = master.id
    repo.refs[b"refs/tags/release"] = release.id
    repo.refs.set_symbolic_ref(b"HEAD", b"refs/heads/master")
    repo.close()

    def oid(obj):
        return obj.id.decode("ascii")

    return SimpleNamespace(
        path=path,
        name=f"{REPO_NAME}.git",
        master=oid(master),
        root_tree=oid(root_tree),
        subdir=oid(subdir),
        nested=oid(nested),
        readme=oid(readme),
        file=oid(file_blob),
        image=oid(image),
        v1_commit=oid(v1_commit),
        v1_tree=oid(v1_tree),
        binary_readme_tree=oid(binary_readme_tree),
        plain_tree=oid(plain_tree),
        release=oid(release),
    )


@pytest.fixture
def store(repos_root):
    """Repository store over the test repositories."""
    return DulwichRepositoryStore(str(repos_root))


@pytest.fixture
def opened_repo(store, sample_repo):
    """The sample repository, opened for the duration of a test."""
    repo = store.open(sample_repo.name)
    yield repo
    repo.close()


@pytest.fixture
def object_store():
    """In-memory object store, empty unless a test fills it."""
    return FakeObjectStore()


@pytest.fixture
def app(repos_root, object_store):
    """A gitgate application over the test repositories."""
    args = get_argparser(add_help=False).parse_args(
        ["--repos-root", str(repos_root), "--lfs-expires-in", "3600"]
    )
    application = create_application(
        args,
        repository_store=DulwichRepositoryStore(str(repos_root)),
        object_store=object_store,
    )
    yield application
    application.state.executor.shutdown()


@pytest_asyncio.fixture
async def client(app):
    """HTTP client talking to the application in-process."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport, base_url="http://testserver"
    ) as http_client:
        yield http_client
