"""Command-line utility for the PSD2 client.

Reads credentials from the environment (or a ``.env`` file in the
current directory) and either fetches a bearer token or performs a
single request against a bank API.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Optional, Sequence

from . import connect
from .config import get_settings, load_dotenv_for_sdk
from .exceptions import PSD2Error

logger = logging.getLogger(__name__)


def _parse_params(pairs: Sequence[str]) -> dict[str, str]:
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise argparse.ArgumentTypeError(f"Expected key=value, got {pair!r}")
        params[key] = value
    return params


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="psd2", description="Talk to a PSD2 bank API using client credentials."
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--bank", default=None, help="Bank integration (default: PSD2_BANK or sbanken)")
    sub = parser.add_subparsers(dest="command", required=True)

    token = sub.add_parser("token", help="Fetch a bearer token")
    token.add_argument("--force", action="store_true", help="Always request a new token")

    request = sub.add_parser("request", help="Perform one request and print the JSON body")
    request.add_argument("method")
    request.add_argument("path")
    request.add_argument("-p", "--param", action="append", default=[], help="Parameter as key=value")
    request.add_argument("-H", "--header", action="append", default=[], help="Header as key=value")
    request.add_argument("--endpoint", default=None, help="Catalog endpoint to resolve PATH against")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the ``psd2`` command.

    Environment Variables
    ---------------------
    PSD2_BANK : str
        Bank integration name (default "sbanken")
    PSD2_CLIENT_ID : str
        OAuth client id (required)
    PSD2_CLIENT_SECRET : str
        OAuth client secret (required)

    Exit Codes
    ----------
    0 : Success
    1 : Configuration error or request failure
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    load_dotenv_for_sdk()
    settings = get_settings(reload=True)
    if not settings.client_id or not settings.client_secret:
        logger.error("PSD2_CLIENT_ID and PSD2_CLIENT_SECRET must be set, e.g. in a .env file.")
        return 1

    try:
        with connect(
            args.bank or settings.bank,
            settings.client_id,
            settings.client_secret,
            settings.overrides(),
        ) as bank:
            if args.command == "token":
                token = bank.get_auth_token(force=args.force)
                print(f"{token.token_type} token, expires in {token.expires_in}s")
                return 0

            if args.endpoint:
                bank.set_endpoint(args.endpoint)
            result = bank.request(
                args.method,
                args.path,
                _parse_params(args.param) or None,
                _parse_params(args.header),
            )
    except (PSD2Error, argparse.ArgumentTypeError) as e:
        logger.error("Request failed: %s", e)
        return 1

    if not result.ok:
        logger.error("HTTP %d: %s", result.status_code, result.text)
        return 1
    print(json.dumps(result.value, indent=2, ensure_ascii=False))
    return 0


def cli_main():
    """Entry point for the psd2 console script."""
    sys.exit(main())


if __name__ == "__main__":
    cli_main()
