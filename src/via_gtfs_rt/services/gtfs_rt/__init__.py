"""GTFS-Realtime feed assembly from VIA Rail train records."""

from via_gtfs_rt.services.gtfs_rt.transformer import (
    FeedTransformer,
    RecordResult,
    SkipReason,
    TransformReport,
    transform,
)

__all__ = [
    "FeedTransformer",
    "RecordResult",
    "SkipReason",
    "TransformReport",
    "transform",
]
