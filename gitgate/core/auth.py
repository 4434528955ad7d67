"""Provide LFS token authentication."""

import datetime
import logging
import os
import sys
from calendar import timegm
from os import environ as env
from typing import Optional, Union

import shortuuid
from dotenv import find_dotenv, load_dotenv
from jose import jwt

from gitgate.core import AuthToken, LFSOperation
from gitgate.core.errors import Unauthenticated

LOGLEVEL = os.environ.get("GITGATE_LOGLEVEL", "WARNING").upper()
logging.basicConfig(level=LOGLEVEL, stream=sys.stdout)
logger = logging.getLogger("auth")
logger.setLevel(LOGLEVEL)

ENV_FILE = find_dotenv()
if ENV_FILE:
    load_dotenv(ENV_FILE)

AUTH_SCHEME = "token"
JWT_ALGORITHM = "HS256"
# Lifetime of tokens minted for git-lfs-authenticate (30 minutes)
DEFAULT_TOKEN_EXPIRES_IN = 1800


def _get_jwt_secret():
    """Get JWT secret, ensuring consistency during testing and runtime."""
    secret = env.get("GITGATE_JWT_SECRET") or env.get("JWT_SECRET")
    if not secret:
        logger.info(
            "Neither GITGATE_JWT_SECRET nor JWT_SECRET is defined, using a random JWT_SECRET"
        )
        secret = shortuuid.ShortUUID().random(length=22)
        # Set the environment variable to ensure consistency across module reloads
        env["JWT_SECRET"] = secret
        env["GITGATE_JWT_SECRET"] = secret
    return secret


JWT_SECRET = _get_jwt_secret()


def set_jwt_secret(secret: str):
    """Set JWT secret explicitly (mainly for testing)."""
    global JWT_SECRET
    env["JWT_SECRET"] = secret
    env["GITGATE_JWT_SECRET"] = secret
    JWT_SECRET = secret


def get_jwt_secret() -> str:
    """Return the current JWT secret."""
    return JWT_SECRET


def extract_token(authorization: Optional[str]) -> str:
    """Extract the credential from a `Token <jwt>` authorization header."""
    if not authorization:
        raise Unauthenticated("Authorization header is expected")
    parts = authorization.split()
    if len(parts) != 2:
        raise Unauthenticated("Authorization header must be 'Token <credential>'")
    scheme, credential = parts
    if scheme.lower() != AUTH_SCHEME:
        raise Unauthenticated(f"Unsupported authorization scheme: {scheme}")
    return credential


class TokenAuthenticator:
    """Verify signed, time-bounded LFS capability tokens.

    Tokens are HS256 JWTs carrying `sub`, `iat`, `exp` and `command`.
    Verification is purely cryptographic and time based, nothing is
    looked up server side.
    """

    def __init__(
        self,
        secret: Optional[str] = None,
        algorithm: str = JWT_ALGORITHM,
        leeway: int = 0,
    ):
        self._secret = secret
        self.algorithm = algorithm
        self.leeway = leeway

    @property
    def secret(self) -> str:
        return self._secret or get_jwt_secret()

    def authenticate(self, authorization: Optional[str]) -> AuthToken:
        """Verify the authorization header and return the token claims."""
        token = extract_token(authorization)
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={
                    "require_exp": True,
                    "require_iat": True,
                    "require_sub": True,
                    "leeway": self.leeway,
                },
            )
        except jwt.ExpiredSignatureError as err:
            raise Unauthenticated(
                "The token has expired. Please fetch a new one"
            ) from err
        except jwt.JWTError as err:
            raise Unauthenticated(f"Invalid token: {err}") from err

        now = timegm(datetime.datetime.now(datetime.timezone.utc).utctimetuple())
        try:
            issued_at = int(payload["iat"])
            expires_at = int(payload["exp"])
            command = LFSOperation(payload["command"])
        except (KeyError, TypeError, ValueError) as err:
            raise Unauthenticated(f"Malformed token claims: {err}") from err
        if issued_at > now + self.leeway:
            raise Unauthenticated("The token is not valid yet")

        logger.debug("Authenticated %s for %s", payload["sub"], command.value)
        return AuthToken(
            subject=payload["sub"],
            issued_at=datetime.datetime.fromtimestamp(
                issued_at, tz=datetime.timezone.utc
            ),
            expires_at=datetime.datetime.fromtimestamp(
                expires_at, tz=datetime.timezone.utc
            ),
            command=command,
        )


def generate_lfs_token(
    subject: str,
    command: Union[str, LFSOperation],
    expires_in: int = DEFAULT_TOKEN_EXPIRES_IN,
    secret: Optional[str] = None,
    issued_at: Optional[datetime.datetime] = None,
) -> str:
    """Mint a token bound to one LFS operation."""
    command = LFSOperation(command)
    assert expires_in > 0, "expires_in should be greater than 0"
    if issued_at is None:
        issued_at = datetime.datetime.now(datetime.timezone.utc)
    expires_at = issued_at + datetime.timedelta(seconds=expires_in)
    return jwt.encode(
        {
            "sub": subject,
            "iat": issued_at,
            "exp": expires_at,
            "command": command.value,
        },
        secret or get_jwt_secret(),
        algorithm=JWT_ALGORITHM,
    )


def issue_lfs_credentials(
    repository: str,
    command: Union[str, LFSOperation],
    subject: str,
    expires_in: int = DEFAULT_TOKEN_EXPIRES_IN,
    public_base_url: Optional[str] = None,
    secret: Optional[str] = None,
) -> dict:
    """Build the git-lfs-authenticate response for a repository."""
    token = generate_lfs_token(subject, command, expires_in, secret=secret)
    credentials = {
        "header": {"Authorization": f"Token {token}"},
        "expires_in": expires_in,
    }
    if public_base_url:
        credentials["href"] = (
            f"{public_base_url.rstrip('/')}/{repository.strip('/')}/info/lfs"
        )
    return credentials
