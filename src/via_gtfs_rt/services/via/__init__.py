"""Upstream VIA Rail tracking feed."""

from via_gtfs_rt.services.via.fetcher import ViaFeedFetcher

__all__ = ["ViaFeedFetcher"]
