"""Test LFS token authentication."""

import datetime

import pytest
from jose import jwt

from gitgate.core import LFSOperation
from gitgate.core.auth import (
    JWT_ALGORITHM,
    TokenAuthenticator,
    extract_token,
    generate_lfs_token,
    get_jwt_secret,
    issue_lfs_credentials,
)
from gitgate.core.errors import Unauthenticated


def _now():
    return datetime.datetime.now(datetime.timezone.utc)


def test_authenticate_valid_token():
    token = generate_lfs_token("alice", "download")
    claims = TokenAuthenticator().authenticate(f"Token {token}")
    assert claims.subject == "alice"
    assert claims.command is LFSOperation.download
    assert claims.expires_at > claims.issued_at


def test_scheme_is_case_insensitive():
    token = generate_lfs_token("alice", LFSOperation.upload)
    assert extract_token(f"TOKEN {token}") == token
    claims = TokenAuthenticator().authenticate(f"token {token}")
    assert claims.command is LFSOperation.upload


@pytest.mark.parametrize(
    "authorization",
    [None, "", "Token", "Bearer abc.def.ghi", "Token a b", "Basic dXNlcjpwYXNz"],
)
def test_malformed_header(authorization):
    with pytest.raises(Unauthenticated):
        TokenAuthenticator().authenticate(authorization)


def test_bad_signature():
    token = generate_lfs_token("alice", "download", secret="another-secret")
    with pytest.raises(Unauthenticated):
        TokenAuthenticator().authenticate(f"Token {token}")
    # the token is fine for an authenticator holding the right secret
    claims = TokenAuthenticator(secret="another-secret").authenticate(f"Token {token}")
    assert claims.subject == "alice"


def test_expired_token():
    issued_at = _now() - datetime.timedelta(hours=1)
    token = generate_lfs_token("alice", "download", expires_in=60, issued_at=issued_at)
    with pytest.raises(Unauthenticated, match="expired"):
        TokenAuthenticator().authenticate(f"Token {token}")
    # tolerated skew does not rescue a token that expired long ago
    with pytest.raises(Unauthenticated):
        TokenAuthenticator(leeway=30).authenticate(f"Token {token}")


def test_token_issued_in_the_future():
    issued_at = _now() + datetime.timedelta(minutes=10)
    token = generate_lfs_token("alice", "download", issued_at=issued_at)
    with pytest.raises(Unauthenticated):
        TokenAuthenticator().authenticate(f"Token {token}")


def test_invalid_command_claim():
    now = _now()
    claims = {
        "sub": "alice",
        "iat": now,
        "exp": now + datetime.timedelta(minutes=5),
        "command": "delete",
    }
    token = jwt.encode(claims, get_jwt_secret(), algorithm=JWT_ALGORITHM)
    with pytest.raises(Unauthenticated):
        TokenAuthenticator().authenticate(f"Token {token}")

    del claims["command"]
    token = jwt.encode(claims, get_jwt_secret(), algorithm=JWT_ALGORITHM)
    with pytest.raises(Unauthenticated):
        TokenAuthenticator().authenticate(f"Token {token}")


def test_missing_expiry():
    token = jwt.encode(
        {"sub": "alice", "iat": _now(), "command": "upload"},
        get_jwt_secret(),
        algorithm=JWT_ALGORITHM,
    )
    with pytest.raises(Unauthenticated):
        TokenAuthenticator().authenticate(f"Token {token}")


def test_issue_lfs_credentials():
    credentials = issue_lfs_credentials(
        "team/project.git",
        "upload",
        subject="bob",
        expires_in=600,
        public_base_url="https://git.example.com/",
    )
    assert credentials["expires_in"] == 600
    assert credentials["href"] == "https://git.example.com/team/project.git/info/lfs"
    authorization = credentials["header"]["Authorization"]
    assert authorization.startswith("Token ")

    claims = TokenAuthenticator().authenticate(authorization)
    assert claims.subject == "bob"
    assert claims.command is LFSOperation.upload
    assert (claims.expires_at - claims.issued_at).total_seconds() == 600

    assert "href" not in issue_lfs_credentials("team/project.git", "download", "bob")
