#!/usr/bin/env python3
"""Sign in and export (or print) the complete visit history.

Usage
-----
Set environment variables and run::

    export CHARGELOG_STORE_URL="https://store.example.com/v1"
    export CHARGELOG_API_KEY="..."
    export CHARGELOG_EMAIL="you@example.com"
    export CHARGELOG_PASSWORD="your-password"
    python scripts/export_visits.py

Options::

    --output-dir DIR     Write charging-visits-YYYY-MM-DD.json into DIR
    --stdout             Print the export JSON instead of writing a file
    --summary            Also print visit statistics
    -v, --verbose        Enable DEBUG logging (payloads are redacted)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from chargelog import ChargeLogClient, ChargelogError, TrackerConfig  # noqa: E402


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export charging visits to a JSON file.")
    parser.add_argument("--email", default=os.environ.get("CHARGELOG_EMAIL", ""))
    parser.add_argument("--password", default=os.environ.get("CHARGELOG_PASSWORD", ""))
    parser.add_argument("--output-dir", type=Path, default=Path("."))
    parser.add_argument("--stdout", action="store_true", help="Print JSON instead of writing a file")
    parser.add_argument("--summary", action="store_true", help="Print visit statistics")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> int:
    config = TrackerConfig.from_env()
    async with ChargeLogClient(config) as client:
        await client.session.sign_in_with_password(args.email, args.password)
        await client.session.wait_idle()

        if args.summary:
            print(client.tracker.stats().summary(), file=sys.stderr)

        if args.stdout:
            print(await client.transfer.export_json())
        else:
            path = await client.transfer.write_export(args.output_dir)
            print(f"Wrote {path}", file=sys.stderr)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not args.email or not args.password:
        print("Set CHARGELOG_EMAIL and CHARGELOG_PASSWORD (or pass --email/--password).", file=sys.stderr)
        return 2
    try:
        return asyncio.run(_run(args))
    except ChargelogError as exc:
        print(f"Export failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
