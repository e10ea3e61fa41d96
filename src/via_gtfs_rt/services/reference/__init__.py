"""Static trip and stop reference data."""

from via_gtfs_rt.services.reference.index import (
    ReferenceIndex,
    StopReference,
    TripReference,
    get_reference_index,
)

__all__ = [
    "ReferenceIndex",
    "StopReference",
    "TripReference",
    "get_reference_index",
]
