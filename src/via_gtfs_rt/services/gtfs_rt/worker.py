"""Polling worker that publishes a fresh GTFS-RT snapshot on an interval."""

from __future__ import annotations

import asyncio
import uuid
from contextlib import suppress
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from via_gtfs_rt.config import get_settings
from via_gtfs_rt.errors import ViaGtfsRtError
from via_gtfs_rt.logging import bind_poll_context, clear_poll_context, get_logger
from via_gtfs_rt.pipeline import build_components

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from google.transit import gtfs_realtime_pb2

    from via_gtfs_rt.services.reference.index import ReferenceIndex
    from via_gtfs_rt.services.via.fetcher import ViaFeedFetcher

    FeedSink = Callable[[gtfs_realtime_pb2.FeedMessage], Awaitable[None]]

logger = get_logger(__name__)


class ViaRailWorker:
    """Polls the VIA Rail feed on a schedule and hands each snapshot to a sink.

    Usage:
        worker = ViaRailWorker(sink=publish)
        await worker.start()   # launches background task
        await worker.stop()    # cancels background task

        # Or run a single poll cycle:
        report = await worker.run_once()

    Every cycle builds a complete snapshot from scratch. A failed cycle is
    logged and the loop waits for the next interval; nothing is retried.
    """

    def __init__(
        self,
        sink: FeedSink,
        index: ReferenceIndex | None = None,
        fetcher: ViaFeedFetcher | None = None,
        poll_interval_sec: int | None = None,
    ) -> None:
        settings = get_settings()
        self._sink = sink
        self._poll_interval = poll_interval_sec or settings.poll_interval_sec
        self._fetcher, self._transformer = build_components(settings, index=index, fetcher=fetcher)

        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._poll_count = 0
        self._last_poll_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def poll_count(self) -> int:
        return self._poll_count

    @property
    def last_poll_at(self) -> datetime | None:
        return self._last_poll_at

    async def start(self) -> None:
        """Start the background polling loop."""
        if self._running:
            logger.warning("Worker already running, ignoring start request")
            return

        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info("VIA Rail worker started", poll_interval_sec=self._poll_interval)

    async def stop(self) -> None:
        """Stop the background polling loop."""
        if not self._running:
            return

        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("VIA Rail worker stopped")

    async def run_once(self) -> dict[str, Any]:
        """Execute a single poll cycle: fetch, transform, publish.

        Returns:
            Report dict for the cycle.

        Raises:
            ViaGtfsRtError: If the fetch, decode or strict transform fails.
        """
        poll_id = str(uuid.uuid4())[:8]
        self._poll_count += 1
        self._last_poll_at = datetime.now(timezone.utc)
        bind_poll_context(poll_id=poll_id)

        try:
            records = await self._fetcher.fetch(poll_id)
            feed, transform_report = self._transformer.transform_with_report(records)
            await self._sink(feed)
        finally:
            clear_poll_context()

        report: dict[str, Any] = {
            "poll_id": poll_id,
            "poll_count": self._poll_count,
            "started_at": self._last_poll_at.isoformat(),
            "feed_timestamp": feed.header.timestamp,
            **transform_report.as_dict(),
        }
        logger.info("Poll cycle complete", **report)
        return report

    async def get_status(self) -> dict[str, Any]:
        """Get current worker status."""
        return {
            "running": self._running,
            "poll_count": self._poll_count,
            "last_poll_at": self._last_poll_at.isoformat() if self._last_poll_at else None,
            "poll_interval_sec": self._poll_interval,
        }

    async def _poll_loop(self) -> None:
        """Main polling loop that runs until stopped."""
        while self._running:
            try:
                await self.run_once()
            except ViaGtfsRtError as exc:
                logger.error("Poll cycle failed", error=str(exc))
            except Exception as exc:
                logger.error("Poll cycle failed unexpectedly", exc_info=exc)

            try:
                await asyncio.sleep(self._poll_interval)
            except asyncio.CancelledError:
                break
