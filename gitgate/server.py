"""Provide the server."""

import argparse
import logging
import os
import sys
from contextlib import asynccontextmanager
from os import environ as env
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gitgate import __version__
from gitgate.core.auth import TokenAuthenticator
from gitgate.git import (
    DulwichRepositoryStore,
    GitBrowser,
    LFSBatchGateway,
    ObjectStoreClient,
    RepositoryStore,
    S3ObjectStoreClient,
    create_git_router,
    create_lfs_router,
)
from gitgate.git.lfs import DEFAULT_EXPIRES_IN, DEFAULT_MAX_CONCURRENT_CHECKS
from gitgate.utils import BlockingExecutor

LOGLEVEL = os.environ.get("GITGATE_LOGLEVEL", "WARNING").upper()
logging.basicConfig(level=LOGLEVEL, stream=sys.stdout)
logger = logging.getLogger("server")
logger.setLevel(LOGLEVEL)

ENV_FILE = find_dotenv()
if ENV_FILE:
    load_dotenv(ENV_FILE)

ALLOW_HEADERS = [
    "Content-Type",
    "Authorization",
    "Accept",
    "Origin",
    "X-Requested-With",
]
ALLOW_METHODS = ["GET", "POST", "OPTIONS"]


def get_args_from_env():
    """Create the server arguments from environment variables."""
    parser = get_argparser(add_help=False)
    args = parser.parse_args([])

    # Get the argument types from the parser
    arg_types = {
        action.dest: action.type
        for action in parser._actions
        if action.type is not None
    }
    arg_bools = {
        action.dest
        for action in parser._actions
        if isinstance(action, argparse._StoreTrueAction)
    }

    for arg_name in vars(args):
        env_var = "GITGATE_" + arg_name.upper().replace("-", "_")
        if env_var in env:
            value = env[env_var]

            # Handle boolean flags
            if arg_name in arg_bools:
                value = value.lower() in ("true", "1", "yes", "y", "on")
            # Handle other types using the parser's type information
            elif arg_name in arg_types:
                try:
                    value = arg_types[arg_name](value)
                except (ValueError, TypeError) as e:
                    logger.warning(
                        f"Failed to convert environment variable {env_var}={value} "
                        f"to type {arg_types[arg_name]}: {str(e)}"
                    )
                    continue
            setattr(args, arg_name, value)
    return args


def get_argparser(add_help=True):
    """Return the argument parser."""
    parser = argparse.ArgumentParser(add_help=add_help)
    parser.add_argument(
        "--from-env",
        action="store_true",
        help="load arguments from environment variables, the environment variables should be in the format of GITGATE_<ARG_NAME_UPPER>",
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="host for the gitgate server",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="port for the gitgate server",
    )
    parser.add_argument(
        "--repos-root",
        type=str,
        default=os.path.expanduser("~"),
        help="directory containing the bare repositories to serve",
    )
    parser.add_argument(
        "--allow-origins",
        type=str,
        default="*",
        help="comma separated origins allowed by CORS",
    )
    parser.add_argument(
        "--public-base-url",
        type=str,
        default=None,
        help="the public base URL for accessing the server",
    )
    parser.add_argument(
        "--endpoint-url",
        type=str,
        default=None,
        help="set SeaweedFS/MinIO/S3 server url for LFS objects",
    )
    parser.add_argument(
        "--endpoint-url-public",
        type=str,
        default=None,
        help="public S3 endpoint that presigned URLs are signed for",
    )
    parser.add_argument(
        "--access-key-id",
        type=str,
        default=None,
        help="set AccessKeyID for S3",
    )
    parser.add_argument(
        "--secret-access-key",
        type=str,
        default=None,
        help="set SecretAccessKey for S3",
    )
    parser.add_argument(
        "--region-name",
        type=str,
        default="us-east-1",
        help="set region name for S3",
    )
    parser.add_argument(
        "--lfs-bucket",
        type=str,
        default="git-lfs",
        help="S3 bucket holding LFS objects",
    )
    parser.add_argument(
        "--lfs-expires-in",
        type=int,
        default=DEFAULT_EXPIRES_IN,
        help="lifetime in seconds of presigned LFS URLs",
    )
    parser.add_argument(
        "--repo-workers",
        type=int,
        default=8,
        help="number of worker threads for repository reads",
    )
    parser.add_argument(
        "--max-concurrent-checks",
        type=int,
        default=DEFAULT_MAX_CONCURRENT_CHECKS,
        help="maximum concurrent object store checks per LFS batch",
    )
    parser.add_argument(
        "--token-leeway",
        type=int,
        default=0,
        help="clock skew in seconds tolerated when verifying tokens",
    )
    return parser


def create_application(
    args,
    repository_store: Optional[RepositoryStore] = None,
    object_store: Optional[ObjectStoreClient] = None,
) -> FastAPI:
    """Create a gitgate application."""
    if args.from_env:
        logger.info("Loading arguments from environment variables")
        _args = get_args_from_env()
        # copy the _args to args
        for key, value in _args.__dict__.items():
            setattr(args, key, value)

    if isinstance(args.allow_origins, str):
        args.allow_origins = args.allow_origins.split(",")

    if repository_store is None:
        repository_store = DulwichRepositoryStore(args.repos_root)
    if object_store is None:
        object_store = S3ObjectStoreClient(
            bucket=args.lfs_bucket,
            endpoint_url=args.endpoint_url,
            access_key_id=args.access_key_id,
            secret_access_key=args.secret_access_key,
            region_name=args.region_name,
            endpoint_url_public=args.endpoint_url_public,
        )

    executor = BlockingExecutor(max_workers=args.repo_workers)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("gitgate %s serving repositories from %s", __version__, args.repos_root)
        yield
        executor.shutdown()

    application = FastAPI(
        title="gitgate",
        description="Repository viewer and Git LFS gateway",
        version=__version__,
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=args.allow_origins,
        allow_methods=ALLOW_METHODS,
        allow_headers=ALLOW_HEADERS,
    )

    gateway = LFSBatchGateway(
        TokenAuthenticator(leeway=args.token_leeway),
        object_store,
        expires_in=args.lfs_expires_in,
        max_concurrent_checks=args.max_concurrent_checks,
    )
    application.state.gateway = gateway
    application.state.executor = executor

    @application.get("/health/liveness")
    async def liveness() -> JSONResponse:
        """Used for liveness probe."""
        return JSONResponse({"status": "OK", "version": __version__})

    application.include_router(create_lfs_router(gateway))
    application.include_router(create_git_router(GitBrowser(repository_store), executor))
    return application
