"""Errors raised while resolving repository objects and authorizing LFS batches."""

from fastapi import HTTPException

LFS_AUTHENTICATE_HEADERS = {
    "WWW-Authenticate": 'Token realm="Git LFS"',
    "LFS-Authenticate": 'Token realm="Git LFS"',
}


class GatewayError(Exception):
    """Base error, carries the HTTP status the routers answer with."""

    status_code = 500


class Unauthenticated(GatewayError):
    """Missing, malformed, expired or badly signed token."""

    status_code = 401


class Forbidden(GatewayError):
    """The token is valid but bound to another operation."""

    status_code = 403


class RepositoryNotFound(GatewayError):
    """No bare repository exists at the requested path."""

    status_code = 404


class RefNotFound(GatewayError):
    """The name is neither a branch, a tag nor an object id."""

    status_code = 404


class PathNotFound(GatewayError):
    """A path segment does not exist below the resolved tree."""

    status_code = 404


class ObjectNotFound(GatewayError):
    """The object id is not present in the repository."""

    status_code = 404


class InvalidPath(GatewayError):
    """A path was given below an object that cannot be descended."""

    status_code = 400


class KindMismatch(GatewayError):
    """The resolved object is not of the requested kind."""

    status_code = 400


class StoreUnavailable(GatewayError):
    """The backing object store could not be reached."""

    status_code = 503


class UpstreamRepositoryFault(GatewayError):
    """The repository store failed while opening or reading."""

    status_code = 500


class LocksUnsupported(GatewayError):
    """LFS locking is not implemented."""

    status_code = 500


def to_http_exception(err: GatewayError) -> HTTPException:
    """Convert a gateway error into the HTTP error the routers raise."""
    headers = LFS_AUTHENTICATE_HEADERS if isinstance(err, Unauthenticated) else None
    return HTTPException(status_code=err.status_code, detail=str(err), headers=headers)
