"""VIA Rail tracking feed fetcher."""

from __future__ import annotations

import httpx
from pydantic import ValidationError

from via_gtfs_rt.errors import FeedDecodeError, FeedFetchError
from via_gtfs_rt.logging import get_logger
from via_gtfs_rt.models import ViaFeed, via_feed_adapter

logger = get_logger(__name__)

DEFAULT_FEED_URL = "https://tsimobile.viarail.ca/data/allData.json"
DEFAULT_USER_AGENT = "Catenary"


class ViaFeedFetcher:
    """Downloads allData.json and decodes it into train records.

    Exactly one request per call. Retries and deadlines are left to the
    caller.
    """

    def __init__(
        self,
        url: str = DEFAULT_FEED_URL,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout_sec: float | None = None,
    ) -> None:
        self.url = url
        self.user_agent = user_agent
        self.timeout_sec = timeout_sec

    async def fetch(self, poll_id: str = "") -> ViaFeed:
        """Fetch and decode the upstream feed.

        Args:
            poll_id: Correlation ID for logging.

        Returns:
            Mapping of instance label to decoded train record.

        Raises:
            FeedFetchError: If the request fails or returns a non-2xx status.
            FeedDecodeError: If the body is not text or not a JSON object of records.
        """
        data, encoding = await self._download(poll_id)
        return self.decode(data, encoding=encoding, poll_id=poll_id)

    async def _download(self, poll_id: str) -> tuple[bytes, str]:
        client_kwargs: dict[str, object] = {
            "headers": {"User-Agent": self.user_agent},
            "follow_redirects": True,
        }
        if self.timeout_sec is not None:
            client_kwargs["timeout"] = httpx.Timeout(self.timeout_sec)

        logger.info("Fetching VIA Rail feed", url=self.url, poll_id=poll_id)
        try:
            async with httpx.AsyncClient(**client_kwargs) as client:
                response = await client.get(self.url)
                response.raise_for_status()
                data = response.content
                encoding = response.encoding or "utf-8"
        except (httpx.HTTPStatusError, httpx.RequestError) as exc:
            msg = f"Failed to fetch VIA Rail feed from {self.url}"
            logger.error(msg, poll_id=poll_id, error=str(exc))
            raise FeedFetchError(msg) from exc

        logger.info("VIA Rail feed downloaded", poll_id=poll_id, size_bytes=len(data))
        return data, encoding

    @staticmethod
    def decode(data: bytes, encoding: str = "utf-8", poll_id: str = "") -> ViaFeed:
        """Decode a raw response body into train records.

        Decoding is all-or-nothing: one record of the wrong shape fails the
        whole body.

        Raises:
            FeedDecodeError: If the body is not text or not the expected shape.
        """
        try:
            text = data.decode(encoding)
        except (UnicodeDecodeError, LookupError) as exc:
            msg = "VIA Rail feed body is not valid text"
            logger.error(msg, poll_id=poll_id, encoding=encoding, error=str(exc))
            raise FeedDecodeError(msg) from exc

        try:
            records = via_feed_adapter.validate_json(text)
        except ValidationError as exc:
            msg = "Failed to decode VIA Rail feed"
            logger.error(msg, poll_id=poll_id, error_count=exc.error_count(), error=str(exc))
            raise FeedDecodeError(msg) from exc

        logger.info("VIA Rail feed decoded", poll_id=poll_id, record_count=len(records))
        return records
