"""Main module for gitgate."""

import argparse
import json
import sys

import uvicorn

from gitgate.core.auth import DEFAULT_TOKEN_EXPIRES_IN, issue_lfs_credentials
from gitgate.core import LFSOperation
from gitgate.server import create_application, get_argparser


def create_cli_parser():
    """Create the token issuing CLI parser."""
    parser = argparse.ArgumentParser(
        prog="gitgate", description="gitgate server and CLI tools"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    token_parser = subparsers.add_parser(
        "generate-token",
        help="Print git-lfs-authenticate credentials for a repository",
    )
    token_parser.add_argument("repo", type=str, help="repository path ending in .git")
    token_parser.add_argument(
        "operation",
        type=str,
        choices=[operation.value for operation in LFSOperation],
        help="LFS operation the token is bound to",
    )
    token_parser.add_argument(
        "--subject",
        type=str,
        default="gitgate",
        help="subject recorded in the token",
    )
    token_parser.add_argument(
        "--expires-in",
        type=int,
        default=DEFAULT_TOKEN_EXPIRES_IN,
        help=f"Token expiration time in seconds (default: {DEFAULT_TOKEN_EXPIRES_IN})",
    )
    token_parser.add_argument(
        "--public-base-url",
        type=str,
        default=None,
        help="include the LFS endpoint of the repository under this URL",
    )
    return parser


def generate_token_command(args):
    """Handle the generate-token command."""
    if not args.repo.endswith(".git"):
        raise SystemExit(f"Repository path must end with .git: {args.repo}")
    credentials = issue_lfs_credentials(
        args.repo,
        args.operation,
        subject=args.subject,
        expires_in=args.expires_in,
        public_base_url=args.public_base_url,
    )
    print(json.dumps(credentials))
    return credentials


def main():
    """Main entry point for the CLI."""
    # If no arguments provided, automatically add --from-env
    if len(sys.argv) == 1:
        sys.argv.append("--from-env")

    if len(sys.argv) > 1 and sys.argv[1] == "generate-token":
        parser = create_cli_parser()
        args = parser.parse_args()
        generate_token_command(args)
        return

    if len(sys.argv) > 1 and sys.argv[1] == "serve":
        sys.argv.pop(1)

    arg_parser = get_argparser()
    opt = arg_parser.parse_args()
    app = create_application(opt)
    uvicorn.run(app, host=opt.host, port=int(opt.port))


if __name__ == "__main__":
    main()
