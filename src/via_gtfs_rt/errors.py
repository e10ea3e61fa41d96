"""Exception hierarchy for the VIA Rail GTFS-RT bridge."""


class ViaGtfsRtError(Exception):
    """Base class for errors surfaced to callers."""


class FeedFetchError(ViaGtfsRtError):
    """Raised when the upstream VIA feed cannot be downloaded."""


class FeedDecodeError(ViaGtfsRtError):
    """Raised when the upstream body is not text or not the expected JSON shape."""


class EstimateParseError(ViaGtfsRtError):
    """Raised in strict mode when an estimated or poll timestamp cannot be parsed."""
