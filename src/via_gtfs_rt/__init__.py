"""VIA Rail tracking feed to GTFS-Realtime bridge."""

from via_gtfs_rt.pipeline import feed_to_json, get_via_rail_gtfs_rt, serialize_feed
from via_gtfs_rt.services.gtfs_rt.transformer import FeedTransformer, transform
from via_gtfs_rt.services.reference.index import ReferenceIndex

__all__ = [
    "FeedTransformer",
    "ReferenceIndex",
    "feed_to_json",
    "get_via_rail_gtfs_rt",
    "serialize_feed",
    "transform",
]

__version__ = "0.1.0"
