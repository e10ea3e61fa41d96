"""Pydantic models for the VIA Rail tracking feed (allData.json)."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class EstimatedAndScheduled(BaseModel):
    """Structured arrival or departure pair, both ISO-8601 strings."""

    estimated: Optional[str] = None
    scheduled: Optional[str] = None


class ViaStopTime(BaseModel):
    """Per-stop timing entry of a tracked train."""

    station: str = ""
    code: Optional[str] = None
    estimated: str = ""
    scheduled: Optional[str] = None
    eta: str = ""
    arrival: Optional[EstimatedAndScheduled] = None
    departure: Optional[EstimatedAndScheduled] = None


class ViaTrainRecord(BaseModel):
    """One tracked train instance, keyed by its instance label in the feed."""

    model_config = ConfigDict(populate_by_name=True)

    departed: bool = False
    arrived: bool = False
    from_: str = Field(default="", alias="from")
    to: str = ""
    instance: str = ""
    speed: Optional[float] = None  # km/h
    lat: Optional[float] = None
    lng: Optional[float] = None
    direction: Optional[float] = None
    times: list[ViaStopTime] = Field(default_factory=list)
    poll: Optional[str] = None


ViaFeed = dict[str, ViaTrainRecord]

via_feed_adapter: TypeAdapter[ViaFeed] = TypeAdapter(ViaFeed)
