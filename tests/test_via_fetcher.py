"""Tests for the VIA Rail feed fetcher."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from via_gtfs_rt.errors import FeedDecodeError, FeedFetchError
from via_gtfs_rt.models import ViaTrainRecord
from via_gtfs_rt.services.via.fetcher import DEFAULT_FEED_URL, ViaFeedFetcher

from fixtures.via_fixture import build_feed_json, build_stop_time, build_train

URL = "https://example.com/allData.json"


def _response(status_code: int = 200, content: bytes = b"{}", **kwargs: object) -> httpx.Response:
    return httpx.Response(
        status_code, content=content, request=httpx.Request("GET", URL), **kwargs
    )


def _mock_client(mock_client: AsyncMock, **get_kwargs: object) -> AsyncMock:
    instance = AsyncMock()
    instance.get = AsyncMock(**get_kwargs)
    instance.__aenter__ = AsyncMock(return_value=instance)
    instance.__aexit__ = AsyncMock(return_value=False)
    mock_client.return_value = instance
    return instance


class TestViaFeedFetcher:
    """Unit tests for ViaFeedFetcher."""

    @pytest.mark.asyncio
    async def test_fetch_success(self) -> None:
        fetcher = ViaFeedFetcher(url=URL)
        body = build_feed_json({"VIA-1 2024-01-01": build_train(), "40 2024-01-01": build_train()})

        with patch("via_gtfs_rt.services.via.fetcher.httpx.AsyncClient") as mock_client:
            instance = _mock_client(mock_client, return_value=_response(content=body))
            records = await fetcher.fetch("poll-1")

        instance.get.assert_awaited_once_with(URL)
        assert list(records) == ["VIA-1 2024-01-01", "40 2024-01-01"]
        record = records["VIA-1 2024-01-01"]
        assert isinstance(record, ViaTrainRecord)
        assert record.from_ == "Ottawa"
        assert record.speed == 36
        assert record.times[0].code == "OTT"

    @pytest.mark.asyncio
    async def test_sends_user_agent(self) -> None:
        fetcher = ViaFeedFetcher(url=URL, user_agent="Catenary")

        with patch("via_gtfs_rt.services.via.fetcher.httpx.AsyncClient") as mock_client:
            _mock_client(mock_client, return_value=_response())
            await fetcher.fetch()

        kwargs = mock_client.call_args.kwargs
        assert kwargs["headers"] == {"User-Agent": "Catenary"}
        assert "timeout" not in kwargs

    @pytest.mark.asyncio
    async def test_configured_timeout(self) -> None:
        fetcher = ViaFeedFetcher(url=URL, timeout_sec=5)

        with patch("via_gtfs_rt.services.via.fetcher.httpx.AsyncClient") as mock_client:
            _mock_client(mock_client, return_value=_response())
            await fetcher.fetch()

        assert mock_client.call_args.kwargs["timeout"] == httpx.Timeout(5)

    @pytest.mark.asyncio
    async def test_empty_object_is_valid(self) -> None:
        fetcher = ViaFeedFetcher(url=URL)

        with patch("via_gtfs_rt.services.via.fetcher.httpx.AsyncClient") as mock_client:
            _mock_client(mock_client, return_value=_response(content=b"{}"))
            records = await fetcher.fetch()

        assert records == {}

    @pytest.mark.asyncio
    async def test_http_error_raises(self) -> None:
        fetcher = ViaFeedFetcher(url=URL)

        with patch("via_gtfs_rt.services.via.fetcher.httpx.AsyncClient") as mock_client:
            _mock_client(mock_client, return_value=_response(status_code=503))
            with pytest.raises(FeedFetchError, match="Failed to fetch") as exc_info:
                await fetcher.fetch()

        assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_network_error_raises_without_retry(self) -> None:
        fetcher = ViaFeedFetcher(url=URL)

        with patch("via_gtfs_rt.services.via.fetcher.httpx.AsyncClient") as mock_client:
            instance = _mock_client(
                mock_client,
                side_effect=httpx.ConnectError(
                    "Connection refused", request=httpx.Request("GET", URL)
                ),
            )
            with pytest.raises(FeedFetchError):
                await fetcher.fetch()

        assert instance.get.await_count == 1

    @pytest.mark.asyncio
    async def test_invalid_text_raises(self) -> None:
        fetcher = ViaFeedFetcher(url=URL)
        response = _response(
            content=b"\xff\xfe\xfa{}", headers={"Content-Type": "application/json; charset=utf-8"}
        )

        with patch("via_gtfs_rt.services.via.fetcher.httpx.AsyncClient") as mock_client:
            _mock_client(mock_client, return_value=response)
            with pytest.raises(FeedDecodeError, match="not valid text"):
                await fetcher.fetch()

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self) -> None:
        fetcher = ViaFeedFetcher(url=URL)

        with patch("via_gtfs_rt.services.via.fetcher.httpx.AsyncClient") as mock_client:
            _mock_client(mock_client, return_value=_response(content=b"<html>down</html>"))
            with pytest.raises(FeedDecodeError, match="Failed to decode"):
                await fetcher.fetch()


class TestDecode:
    """Envelope decoding is all-or-nothing."""

    def test_top_level_array_raises(self) -> None:
        with pytest.raises(FeedDecodeError):
            ViaFeedFetcher.decode(b"[]")

    def test_one_bad_record_fails_the_envelope(self) -> None:
        bad = build_train()
        bad["times"] = "not a list"
        body = build_feed_json({"VIA-1 a": build_train(), "40 b": bad})
        with pytest.raises(FeedDecodeError):
            ViaFeedFetcher.decode(body)

    def test_optional_fields_default(self) -> None:
        body = build_feed_json(
            {"VIA-1 a": {"times": [{"scheduled": "2024-01-01T08:00:00-05:00", "code": "OTT"}]}}
        )
        record = ViaFeedFetcher.decode(body)["VIA-1 a"]
        assert record.poll is None
        assert record.lat is None
        assert record.departed is False
        assert record.times[0].arrival is None

    def test_structured_arrival_and_departure(self) -> None:
        stop = build_stop_time(
            arrival_estimated="2024-01-01T08:10:00-05:00",
            departure_estimated="2024-01-01T08:12:00-05:00",
        )
        body = build_feed_json({"VIA-1 a": build_train(times=[stop])})
        stop_time = ViaFeedFetcher.decode(body)["VIA-1 a"].times[0]
        assert stop_time.arrival.estimated == "2024-01-01T08:10:00-05:00"
        assert stop_time.departure.scheduled == "2024-01-01T08:00:00-05:00"

    def test_unknown_fields_ignored(self) -> None:
        train = build_train()
        train["consist"] = ["6400", "8100"]
        record = ViaFeedFetcher.decode(build_feed_json({"VIA-1 a": train}))["VIA-1 a"]
        assert record.instance == "2024-01-01"

    def test_default_url(self) -> None:
        assert ViaFeedFetcher().url == DEFAULT_FEED_URL
