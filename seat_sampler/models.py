"""
Data models for the seat sampler.

Defines Pydantic models for showings, screens, sampling tasks, probe
results, buffered measurements and the per-stage summaries used for
logging and monitoring.
"""

from datetime import datetime
from datetime import timezone
from typing import Any
from typing import Dict
from typing import Optional

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator
from pydantic import model_validator


class ProviderWindow(BaseModel):
    """
    Eligibility window of a provider, as signed offsets from show start.

    A show starting at ``T`` may be sampled during
    ``[T + window_start_sec, T + window_end_sec]``.
    """

    window_start_sec: int = Field(
        ...,
        description="Offset in seconds from show start at which sampling begins"
    )

    window_end_sec: int = Field(
        ...,
        description="Offset in seconds from show start at which sampling stops"
    )

    @property
    def span_seconds(self) -> int:
        return self.window_end_sec - self.window_start_sec


class ShowEvent(BaseModel):
    """
    A scheduled screening as read from the store.

    Only ``seats_sold`` and ``screen_id`` are ever written back by the
    sampler; everything else is owned by ingestion.
    """

    id: int = Field(..., description="Showing primary key")
    movie_id: int = Field(..., description="Movie primary key")
    theater_id: int = Field(..., description="Venue primary key")
    start_at: datetime = Field(..., description="Show start (timezone aware, UTC)")

    movie_title: str = Field(default="", description="Display title used by probes")
    theater_name: str = Field(default="", description="Venue display name used for classification")

    purchase_url: Optional[str] = Field(
        default=None,
        description="Purchase/detail page of this showing on the vendor site"
    )

    theater_url: Optional[str] = Field(
        default=None,
        description="Venue showtimes page, needed to fetch credentials"
    )

    theater_api_id: Optional[str] = Field(
        default=None,
        description="Venue identifier in the vendor API"
    )

    screen_id: Optional[int] = Field(
        default=None,
        description="Assigned auditorium, write-once"
    )

    screen_seat_count: Optional[int] = Field(
        default=None,
        ge=0,
        description="Capacity of the assigned auditorium, when known"
    )

    seats_sold: Optional[int] = Field(default=None, ge=0)

    provider: Optional[str] = Field(
        default=None,
        description="Provider tag, filled in by classification"
    )

    @field_validator("start_at")
    @classmethod
    def validate_aware(cls, v: datetime) -> datetime:
        """Naive timestamps from the store are UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class Screen(BaseModel):
    """A venue's physical auditorium."""

    id: int
    theater_id: int
    name: str = ""
    seat_count: int = Field(default=0, ge=0)


class Credential(BaseModel):
    """Ephemeral per-venue token fetched from a provider."""

    token: str = Field(..., min_length=1)
    fetched_at: datetime
    api_id: Optional[str] = Field(
        default=None,
        description="Venue identifier the token was issued for"
    )

    def is_fresh(self, now: datetime, ttl_seconds: float) -> bool:
        return (now - self.fetched_at).total_seconds() <= ttl_seconds


class TaskPayload(BaseModel):
    """Everything a probe needs, resolved when the task is enqueued."""

    model_config = ConfigDict(frozen=True)

    show_id: int
    provider: str
    movie_id: int
    theater_id: int
    theater_name: str = ""
    movie_title: str = ""
    purchase_url: Optional[str] = None
    local_date: str = Field(..., description="Show date in venue local time, YYYY-MM-DD")
    local_time: str = Field(..., description="Show time in venue local time, HH:MM")
    expected_capacity: Optional[int] = None
    venue_api_id: Optional[str] = None
    credential: Optional[Credential] = None


class SampleTask(BaseModel):
    """
    A pending probe for one showing.

    Created by sync, consumed by tick, never persisted.
    """

    model_config = ConfigDict(frozen=True)

    trigger: datetime = Field(..., description="Earliest time the probe may run")
    window_end: datetime = Field(..., description="Latest time the probe is still useful")
    payload: TaskPayload

    @model_validator(mode="after")
    def validate_window(self) -> "SampleTask":
        if self.window_end < self.trigger:
            raise ValueError("window_end must not precede trigger")
        return self

    def is_expired(self, now: datetime) -> bool:
        return now > self.window_end


class ProbeRequest(BaseModel):
    """Arguments handed to ``Provider.probe_seats``."""

    date: str
    time: str
    title: str = ""
    detail_url: Optional[str] = None
    venue_name: str = ""
    venue_hints: Dict[str, Any] = Field(default_factory=dict)
    credential: Optional[Credential] = None


class ProbeResult(BaseModel):
    """What a provider observed for one showing."""

    auditorium: Optional[str] = None
    seats_remaining: Optional[int] = Field(default=None, ge=0)
    capacity: Optional[int] = Field(default=None, ge=0)
    source: Optional[str] = None


class CapacityProbeRequest(BaseModel):
    detail_url: str


class CapacityProbeResult(BaseModel):
    ok: bool


class Measurement(BaseModel):
    """
    One successful seat observation waiting in the buffer for flush.
    """

    show_id: int
    theater_id: int
    movie_id: int
    auditorium: Optional[str] = None
    seats_remaining: Optional[int] = Field(default=None, ge=0)
    capacity: Optional[int] = Field(default=None, ge=0)
    source: str
    measured_at: datetime


class FailureRecord(BaseModel):
    """A per-item failure kept for operator inspection."""

    kind: str = Field(..., description="classification, credential, probe, resolution or capacity_probe")
    show_id: Optional[int] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    error: str
    at: datetime


class SyncResult(BaseModel):
    """Summary of one sync pass."""

    quiet: bool = False
    candidates: int = Field(default=0, ge=0)
    enqueued: int = Field(default=0, ge=0)
    closed: int = Field(default=0, ge=0, description="Rows whose window already elapsed")
    unclassified: int = Field(default=0, ge=0)
    credential_failures: int = Field(default=0, ge=0)
    missing_prerequisites: int = Field(default=0, ge=0)
    already_buffered: int = Field(default=0, ge=0)
    already_dispatched: int = Field(default=0, ge=0, description="Rows probed earlier in the same window")
    queue_size: int = Field(default=0, ge=0)


class TickResult(BaseModel):
    """Summary of one tick."""

    quiet: bool = False
    due: int = Field(default=0, ge=0)
    expired: int = Field(default=0, ge=0)
    sampled: int = Field(default=0, ge=0)
    empty: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    buffered: int = Field(default=0, ge=0)


class FlushResult(BaseModel):
    """Summary of one flush."""

    quiet: bool = False
    batch_size: int = Field(default=0, ge=0)
    written: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)
    rolled_back: bool = False

    @property
    def performed(self) -> bool:
        return self.batch_size > 0


class ResolutionResult(BaseModel):
    """Summary of one capacity resolution pass."""

    quiet: bool = True
    candidates: int = Field(default=0, ge=0)
    probes: int = Field(default=0, ge=0)
    assigned: int = Field(default=0, ge=0)
    unresolved: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)


class HousekeepingResult(BaseModel):
    quiet: bool = False
    credentials_pruned: int = Field(default=0, ge=0)
    missing_data: int = Field(default=0, ge=0)
