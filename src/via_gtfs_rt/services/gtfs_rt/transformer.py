"""VIA Rail train records to GTFS-Realtime FeedMessage."""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from google.transit import gtfs_realtime_pb2

from via_gtfs_rt.errors import EstimateParseError
from via_gtfs_rt.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping

    from via_gtfs_rt.models import EstimatedAndScheduled, ViaTrainRecord
    from via_gtfs_rt.services.reference.index import ReferenceIndex, TripReference

logger = get_logger(__name__)

GTFS_RT_VERSION = "2.0"
DEFAULT_TIMEZONE = "America/Toronto"
KMH_PER_MS = 3.6


class SkipReason(str, Enum):
    """Why a train record produced no feed entity."""

    MISSING_STOP_TIMES = "missing_stop_times"
    INVALID_START_TIME = "invalid_start_time"
    UNKNOWN_TRIP = "unknown_trip"


@dataclass(frozen=True)
class RecordResult:
    """Outcome of transforming one train record.

    Exactly one of ``entity`` and ``skip_reason`` is set. ``dropped_fields``
    names the timestamps that were left unset because they failed to parse.
    """

    instance_label: str
    entity: gtfs_realtime_pb2.FeedEntity | None = None
    skip_reason: SkipReason | None = None
    dropped_fields: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.entity is not None


@dataclass
class TransformReport:
    """Per-run counters for logging by the caller."""

    record_count: int = 0
    entity_count: int = 0
    skipped: Counter[str] = field(default_factory=Counter)
    dropped_field_count: int = 0

    def add(self, result: RecordResult) -> None:
        self.record_count += 1
        if result.ok:
            self.entity_count += 1
        elif result.skip_reason is not None:
            self.skipped[result.skip_reason.value] += 1
        self.dropped_field_count += len(result.dropped_fields)

    def as_dict(self) -> dict[str, object]:
        return {
            "record_count": self.record_count,
            "entity_count": self.entity_count,
            "skipped": dict(self.skipped),
            "dropped_field_count": self.dropped_field_count,
        }


def parse_iso8601(value: str) -> datetime:
    """Parse an ISO-8601 timestamp that carries a UTC offset.

    Raises:
        ValueError: If the string is malformed or has no offset.
    """
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None or parsed.utcoffset() is None:
        msg = f"Timestamp has no UTC offset: {value!r}"
        raise ValueError(msg)
    return parsed


def trip_short_name(instance_label: str) -> str:
    """Return the trip short name: the label up to its first space."""
    return instance_label.split(" ", 1)[0]


class FeedTransformer:
    """Builds GTFS-RT entities from VIA Rail train records.

    Records are handled independently. A record whose first scheduled time is
    missing or malformed, or whose short name is not in the reference index,
    yields a skipped ``RecordResult`` instead of an entity.

    Malformed estimated or poll timestamps only drop that one field by
    default. With ``strict_estimates`` they raise ``EstimateParseError`` and
    abort the whole run.
    """

    def __init__(
        self,
        index: ReferenceIndex,
        timezone: str = DEFAULT_TIMEZONE,
        strict_estimates: bool = False,
    ) -> None:
        self._index = index
        self._tz = ZoneInfo(timezone)
        self._strict = strict_estimates

    def transform(
        self,
        records: Mapping[str, ViaTrainRecord],
        now: float | None = None,
    ) -> gtfs_realtime_pb2.FeedMessage:
        """Transform all records into a single FeedMessage."""
        feed, _ = self.transform_with_report(records, now=now)
        return feed

    def transform_with_report(
        self,
        records: Mapping[str, ViaTrainRecord],
        now: float | None = None,
    ) -> tuple[gtfs_realtime_pb2.FeedMessage, TransformReport]:
        """Transform all records, also returning skip and drop counters.

        Args:
            records: Mapping of instance label to train record.
            now: Header timestamp in epoch seconds, defaults to the wall clock.

        Returns:
            Tuple of (feed_message, report).

        Raises:
            EstimateParseError: In strict mode, on a malformed estimate or poll time.
        """
        feed = gtfs_realtime_pb2.FeedMessage()
        feed.header.gtfs_realtime_version = GTFS_RT_VERSION
        feed.header.timestamp = int(time.time() if now is None else now)

        report = TransformReport()
        for label, record in records.items():
            result = self.build_entity(label, record)
            report.add(result)
            if result.entity is not None:
                feed.entity.append(result.entity)
            else:
                logger.debug(
                    "Train record skipped",
                    instance=label,
                    reason=result.skip_reason.value if result.skip_reason else None,
                )

        logger.info("GTFS-RT feed assembled", **report.as_dict())
        return feed, report

    def build_entity(self, label: str, record: ViaTrainRecord) -> RecordResult:
        """Build the feed entity for one train record."""
        if not record.times:
            return RecordResult(label, skip_reason=SkipReason.MISSING_STOP_TIMES)

        first_scheduled = record.times[0].scheduled
        if first_scheduled is None:
            return RecordResult(label, skip_reason=SkipReason.INVALID_START_TIME)
        try:
            start_date = parse_iso8601(first_scheduled).astimezone(self._tz).strftime("%Y%m%d")
        except (ValueError, OverflowError):
            return RecordResult(label, skip_reason=SkipReason.INVALID_START_TIME)

        trip = self._index.trip_by_short_name(trip_short_name(label))
        if trip is None:
            return RecordResult(label, skip_reason=SkipReason.UNKNOWN_TRIP)

        dropped: list[str] = []

        entity = gtfs_realtime_pb2.FeedEntity()
        entity.id = label

        trip_update = entity.trip_update
        _fill_trip_descriptor(trip_update.trip, trip, start_date)

        for position, stop_time in enumerate(record.times):
            stu = trip_update.stop_time_update.add()
            stop_id = self._index.stop_id_by_code(stop_time.code)
            if stop_id is not None:
                stu.stop_id = stop_id

            arrival = self._estimate_time(stop_time.arrival, f"times[{position}].arrival", dropped)
            if arrival is not None:
                stu.arrival.time = arrival

            departure = self._estimate_time(
                stop_time.departure, f"times[{position}].departure", dropped
            )
            if departure is not None:
                stu.departure.time = departure

        if record.poll is not None:
            vehicle = entity.vehicle
            _fill_trip_descriptor(vehicle.trip, trip, start_date)

            if record.lat is not None and record.lng is not None:
                vehicle.position.latitude = record.lat
                vehicle.position.longitude = record.lng
                if record.direction is not None:
                    vehicle.position.bearing = record.direction
                if record.speed is not None:
                    vehicle.position.speed = record.speed / KMH_PER_MS

            poll_ts = self._parse_field(record.poll, "poll", dropped)
            if poll_ts is not None:
                vehicle.timestamp = poll_ts

        if dropped:
            logger.debug("Dropped malformed timestamps", instance=label, fields=dropped)

        return RecordResult(label, entity=entity, dropped_fields=tuple(dropped))

    def _estimate_time(
        self,
        pair: EstimatedAndScheduled | None,
        field_name: str,
        dropped: list[str],
    ) -> int | None:
        if pair is None or pair.estimated is None:
            return None
        return self._parse_field(pair.estimated, field_name, dropped)

    def _parse_field(self, value: str, field_name: str, dropped: list[str]) -> int | None:
        """Parse a secondary timestamp to whole epoch seconds.

        Times before the epoch are rejected, GTFS-RT timestamps are unsigned.
        """
        try:
            seconds = int(parse_iso8601(value).timestamp())
        except (ValueError, OverflowError) as exc:
            return self._drop_field(value, field_name, dropped, cause=exc)
        if seconds < 0:
            return self._drop_field(value, field_name, dropped)
        return seconds

    def _drop_field(
        self,
        value: str,
        field_name: str,
        dropped: list[str],
        cause: Exception | None = None,
    ) -> None:
        if self._strict:
            msg = f"Malformed timestamp in {field_name}: {value!r}"
            raise EstimateParseError(msg) from cause
        dropped.append(field_name)


def _fill_trip_descriptor(
    descriptor: gtfs_realtime_pb2.TripDescriptor,
    trip: TripReference,
    start_date: str,
) -> None:
    # direction_id and start_time stay unset, consumers resolve them via trip_id
    descriptor.trip_id = trip.trip_id
    descriptor.route_id = trip.route_id
    descriptor.start_date = start_date


def transform(
    records: Mapping[str, ViaTrainRecord],
    index: ReferenceIndex,
    timezone: str = DEFAULT_TIMEZONE,
    strict_estimates: bool = False,
    now: float | None = None,
) -> gtfs_realtime_pb2.FeedMessage:
    """Transform train records into a FeedMessage using ``index`` for lookups."""
    transformer = FeedTransformer(index, timezone=timezone, strict_estimates=strict_estimates)
    return transformer.transform(records, now=now)
