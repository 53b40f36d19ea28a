"""Print a usable agency access token for a company.

Operators use this to call the HighLevel API by hand while debugging an
installation. The token is refreshed first when the stored one has expired,
so running it also exercises the refresh path against the live platform::

    python -m scripts.get_agency_token <companyId>
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from app.core.config import get_settings
from app.core.errors import TokenError
from app.core.logging import configure_logging
from app.dependencies.clients import get_highlevel_token_service

EXIT_OK = 0
EXIT_TOKEN_ERROR = 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Print a decrypted agency access token.")
    parser.add_argument("company_id", help="HighLevel company identifier.")
    return parser


async def _fetch(company_id: str) -> str:
    result = await get_highlevel_token_service().get_agency_access_token(company_id)
    if result.refreshed:
        print("Stored token was expired and has been refreshed.", file=sys.stderr)
    return result.token


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(get_settings().log_level)

    try:
        token = asyncio.run(_fetch(args.company_id))
    except TokenError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return EXIT_TOKEN_ERROR

    print(token)
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
