"""Build one GTFS-RT snapshot and write it out.

    python -m via_gtfs_rt                 # JSON to stdout
    python -m via_gtfs_rt -o feed.pb      # protobuf wire bytes to a file
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from via_gtfs_rt.config import get_settings
from via_gtfs_rt.errors import ViaGtfsRtError
from via_gtfs_rt.logging import get_logger, setup_logging
from via_gtfs_rt.pipeline import feed_to_json, get_via_rail_gtfs_rt, serialize_feed

logger = get_logger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="via_gtfs_rt", description=__doc__.splitlines()[0])
    parser.add_argument("-o", "--output", type=Path, help="write the serialized feed here")
    parser.add_argument("--json", action="store_true", help="write JSON even with --output")
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {get_settings().app_version}"
    )
    args = parser.parse_args(argv)

    setup_logging()

    try:
        feed = asyncio.run(get_via_rail_gtfs_rt())
    except ViaGtfsRtError as exc:
        logger.error("Snapshot failed", error=str(exc))
        return 1

    if args.output is None:
        sys.stdout.write(feed_to_json(feed) + "\n")
    elif args.json:
        args.output.write_text(feed_to_json(feed), encoding="utf-8")
    else:
        args.output.write_bytes(serialize_feed(feed))

    logger.info(
        "Snapshot written",
        entity_count=len(feed.entity),
        output=str(args.output) if args.output else "stdout",
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
