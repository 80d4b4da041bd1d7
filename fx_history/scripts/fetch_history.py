"""Print cached-or-fetched exchange-rate history as JSON."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Sequence

from fx_history import FxHistory
from fx_history.models import PaginationOptions
from fx_history.utils.logger import configure_logging, get_logger

LOGGER = get_logger(__name__)

__all__ = ["parse_args", "run", "main"]


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("base", help="Base currency code, e.g. USD")
    parser.add_argument("start", nargs="?", help="Start date (YYYY-MM-DD)")
    parser.add_argument("end", nargs="?", help="End date (YYYY-MM-DD)")
    parser.add_argument("--page", dest="page_number", type=int, help="Page number to print")
    parser.add_argument(
        "--page-size",
        dest="page_size",
        type=int,
        default=10,
        help="Maximum number of days per page when --page is given",
    )
    parser.add_argument(
        "--provider",
        dest="provider_id",
        help="Rate provider identifier (defaults to frankfurter)",
    )
    parser.add_argument(
        "--cache-url",
        dest="cache_url",
        default="memory://",
        help="Cache DSN, e.g. sqlite:///fx-cache.db or mongodb://host/fx",
    )
    parser.add_argument(
        "--latest",
        action="store_true",
        help="Print the latest published rates instead of a history range",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log cache segmentation and page lookups at DEBUG level",
    )
    args = parser.parse_args(argv)
    if not args.latest and (args.start is None or args.end is None):
        parser.error("start and end dates are required unless --latest is given")
    return args


async def run(args: argparse.Namespace, client: FxHistory) -> dict:
    """Execute the request described by ``args`` and return a JSON payload."""

    await client.ensure_schema()
    try:
        if args.latest:
            latest = await client.get_latest(args.base, provider_id=args.provider_id)
            return latest.to_payload()
        pagination = None
        if args.page_number is not None:
            pagination = PaginationOptions(args.page_number, args.page_size)
        history = await client.get_history(
            args.base, args.start, args.end, pagination, provider_id=args.provider_id
        )
        return history.to_payload()
    finally:
        await client.close()


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)
    client = FxHistory(args.cache_url)
    LOGGER.info("Using %s cache", client.connection_info.backend.value)
    payload = asyncio.run(run(args, client))
    print(json.dumps(payload, indent=2))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
