"""One-shot VIA Rail to GTFS-RT conversion."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from google.protobuf import json_format

from via_gtfs_rt.config import get_settings
from via_gtfs_rt.logging import get_logger
from via_gtfs_rt.services.gtfs_rt.transformer import FeedTransformer
from via_gtfs_rt.services.reference.index import get_reference_index
from via_gtfs_rt.services.via.fetcher import ViaFeedFetcher

if TYPE_CHECKING:
    from google.transit import gtfs_realtime_pb2

    from via_gtfs_rt.config import Settings
    from via_gtfs_rt.services.reference.index import ReferenceIndex

logger = get_logger(__name__)


def build_components(
    settings: Settings | None = None,
    index: ReferenceIndex | None = None,
    fetcher: ViaFeedFetcher | None = None,
) -> tuple[ViaFeedFetcher, FeedTransformer]:
    """Build the fetcher and transformer from settings, keeping any overrides."""
    settings = settings or get_settings()
    fetcher = fetcher or ViaFeedFetcher(
        url=settings.via_feed_url,
        user_agent=settings.via_user_agent,
        timeout_sec=settings.fetch_timeout_sec,
    )
    transformer = FeedTransformer(
        index or get_reference_index(),
        timezone=settings.operational_timezone,
        strict_estimates=settings.strict_estimates,
    )
    return fetcher, transformer


async def get_via_rail_gtfs_rt(
    index: ReferenceIndex | None = None,
    settings: Settings | None = None,
    fetcher: ViaFeedFetcher | None = None,
) -> gtfs_realtime_pb2.FeedMessage:
    """Fetch the VIA Rail feed and convert it to a GTFS-RT FeedMessage.

    Args:
        index: Reference index to resolve trips and stops. Defaults to the
            process-wide index built from settings.
        settings: Settings override, defaults to ``get_settings()``.
        fetcher: Fetcher override, defaults to one built from settings.

    Returns:
        A complete snapshot, possibly with zero entities.

    Raises:
        FeedFetchError: If the upstream request fails.
        FeedDecodeError: If the upstream body cannot be decoded.
        EstimateParseError: In strict mode, on a malformed estimate or poll time.
    """
    fetcher, transformer = build_components(settings, index=index, fetcher=fetcher)

    poll_id = str(uuid.uuid4())[:8]
    records = await fetcher.fetch(poll_id)
    feed, report = transformer.transform_with_report(records)
    logger.info("VIA Rail snapshot built", poll_id=poll_id, **report.as_dict())
    return feed


def serialize_feed(feed: gtfs_realtime_pb2.FeedMessage) -> bytes:
    """Encode a FeedMessage to protobuf wire bytes."""
    return feed.SerializeToString()


def feed_to_json(feed: gtfs_realtime_pb2.FeedMessage, indent: int | None = 2) -> str:
    """Render a FeedMessage as JSON using the proto field names."""
    return json_format.MessageToJson(feed, preserving_proto_field_name=True, indent=indent)
