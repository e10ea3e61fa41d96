"""Static reference index: trip short names and stop codes to GTFS ids."""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Optional

from via_gtfs_rt.config import get_settings
from via_gtfs_rt.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping

logger = get_logger(__name__)

TRIPS_FILE = "trips.csv"
STOPS_FILE = "stops.csv"

# Columns each bundled dataset must carry (extra columns are ignored)
REQUIRED_COLUMNS: dict[str, set[str]] = {
    TRIPS_FILE: {"route_id", "trip_id", "trip_short_name", "direction_id"},
    STOPS_FILE: {"stop_id", "stop_code"},
}


class RowParseError(Exception):
    """Raised when a reference row cannot be converted."""


@dataclass(frozen=True)
class TripReference:
    """Trip metadata resolved from trips.csv."""

    route_id: str
    trip_id: str
    trip_short_name: str
    direction_id: Optional[int] = None


@dataclass(frozen=True)
class StopReference:
    """Stop metadata resolved from stops.csv."""

    stop_id: str
    stop_code: str


class ReferenceIndex:
    """Read-only lookups built once from the static reference datasets.

    Malformed rows are skipped rather than raised, so an index built from a
    broken dataset is simply empty. The mappings are wrapped in
    ``MappingProxyType`` and never written after construction, which lets a
    single index be shared by concurrent transformations.
    """

    def __init__(
        self,
        trips: Mapping[str, TripReference],
        stops: Mapping[str, str],
    ) -> None:
        self._trips = MappingProxyType(dict(trips))
        self._stops = MappingProxyType(dict(stops))

    @classmethod
    def from_csv_text(cls, trips_csv: str, stops_csv: str) -> ReferenceIndex:
        """Build an index from the raw CSV text of both datasets."""
        trips: dict[str, TripReference] = {}
        for trip in _iter_valid(TRIPS_FILE, trips_csv, parse_trip_row):
            trips[trip.trip_short_name] = trip

        stops: dict[str, str] = {}
        for stop in _iter_valid(STOPS_FILE, stops_csv, parse_stop_row):
            stops[stop.stop_code] = stop.stop_id

        logger.info(
            "Reference index built",
            trip_count=len(trips),
            stop_count=len(stops),
        )
        return cls(trips, stops)

    @classmethod
    def from_paths(cls, trips_path: str | Path, stops_path: str | Path) -> ReferenceIndex:
        """Build an index from CSV files on disk.

        Raises:
            FileNotFoundError: If either path does not exist.
        """
        trips_text = Path(trips_path).read_text(encoding="utf-8-sig")
        stops_text = Path(stops_path).read_text(encoding="utf-8-sig")
        return cls.from_csv_text(trips_text, stops_text)

    @classmethod
    def load_default(cls) -> ReferenceIndex:
        """Build an index from the datasets bundled with the package."""
        data = resources.files("via_gtfs_rt") / "data"
        trips_text = (data / TRIPS_FILE).read_text(encoding="utf-8-sig")
        stops_text = (data / STOPS_FILE).read_text(encoding="utf-8-sig")
        return cls.from_csv_text(trips_text, stops_text)

    def trip_by_short_name(self, name: str) -> TripReference | None:
        return self._trips.get(name)

    def stop_id_by_code(self, code: str | None) -> str | None:
        if code is None:
            return None
        return self._stops.get(code)

    @property
    def trip_count(self) -> int:
        return len(self._trips)

    @property
    def stop_count(self) -> int:
        return len(self._stops)


def parse_trip_row(row: dict[str, Any]) -> TripReference:
    """Convert a trips.csv row.

    An empty direction_id is allowed and stays unset.

    Raises:
        RowParseError: If a required value is missing or direction_id is invalid.
    """
    route_id = _clean_str(row.get("route_id"))
    trip_id = _clean_str(row.get("trip_id"))
    short_name = _clean_str(row.get("trip_short_name"))
    direction_str = _clean_str(row.get("direction_id"))

    if not trip_id:
        raise RowParseError("Missing trip_id")
    if not route_id:
        raise RowParseError(f"Missing route_id for trip_id={trip_id}")
    if not short_name:
        raise RowParseError(f"Missing trip_short_name for trip_id={trip_id}")

    direction_id: int | None = None
    if direction_str:
        try:
            direction_id = int(direction_str)
        except ValueError as exc:
            raise RowParseError(
                f"Non-integer direction_id={direction_str!r} for trip_id={trip_id}"
            ) from exc
        if direction_id not in (0, 1):
            raise RowParseError(f"Invalid direction_id={direction_id} for trip_id={trip_id}")

    return TripReference(
        route_id=route_id,
        trip_id=trip_id,
        trip_short_name=short_name,
        direction_id=direction_id,
    )


def parse_stop_row(row: dict[str, Any]) -> StopReference:
    """Convert a stops.csv row.

    Raises:
        RowParseError: If stop_id or stop_code is missing.
    """
    stop_id = _clean_str(row.get("stop_id"))
    stop_code = _clean_str(row.get("stop_code"))

    if not stop_id:
        raise RowParseError("Missing stop_id")
    if not stop_code:
        raise RowParseError(f"Missing stop_code for stop_id={stop_id}")

    return StopReference(stop_id=stop_id, stop_code=stop_code)


def _iter_valid(
    filename: str, text: str, parse_row: Callable[[dict[str, Any]], Any]
) -> Iterator[Any]:
    """Yield converted rows of a CSV dataset, skipping the malformed ones."""
    reader = csv.DictReader(io.StringIO(text))

    if reader.fieldnames is None:
        logger.warning("Empty reference dataset", filename=filename)
        return

    missing = REQUIRED_COLUMNS[filename] - set(reader.fieldnames)
    if missing:
        # Every row is malformed, the lookup stays empty
        logger.warning(
            "Reference dataset missing columns",
            filename=filename,
            missing_columns=sorted(missing),
        )
        return

    skipped = 0
    for row in reader:
        try:
            yield parse_row(row)
        except RowParseError as exc:
            skipped += 1
            logger.debug("Skipping reference row", filename=filename, error=str(exc))

    if skipped:
        logger.warning("Skipped malformed reference rows", filename=filename, skipped=skipped)


def _clean_str(value: Any) -> str:
    """Trim whitespace from a value, return empty string for None."""
    if value is None:
        return ""
    return str(value).strip()


@lru_cache
def get_reference_index() -> ReferenceIndex:
    """Get the process-wide reference index, built on first use from settings."""
    settings = get_settings()
    if settings.trips_csv_path and settings.stops_csv_path:
        return ReferenceIndex.from_paths(settings.trips_csv_path, settings.stops_csv_path)
    return ReferenceIndex.load_default()
