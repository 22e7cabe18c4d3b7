"""ShipWatch — Vessel, Area & Subscription Data Models."""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional, Any
from enum import Enum
from datetime import datetime, timezone


class Category(str, Enum):
    """Watch categories a vessel can fall into (at most one)."""
    MILITARY = "military"
    ISRAELI = "israeli"
    POTENTIAL_ARMS = "potential_arms"


class VesselRecord(BaseModel):
    """Latest known state of one vessel, normalized from any provider dialect."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    mmsi: Optional[str] = None
    imo: Optional[str] = None
    name: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    flag: Optional[str] = None
    ship_type: Optional[int] = Field(default=None, alias="shipType")
    type_text: Optional[str] = Field(default=None, alias="typeText")
    subtype: Optional[str] = None
    destination: Optional[str] = None
    category: Optional[Category] = None

    @property
    def has_position(self) -> bool:
        return self.lat is not None and self.lon is not None

    @property
    def has_identity(self) -> bool:
        return bool(self.mmsi or self.imo or self.name)


class AreaOfInterest(BaseModel):
    """Rectangular lat/lon region scoping the live subscription."""
    model_config = ConfigDict(frozen=True)

    south: float = Field(ge=-90, le=90)
    west: float
    north: float = Field(ge=-90, le=90)
    east: float

    @model_validator(mode="after")
    def _check_order(self):
        if self.south > self.north:
            raise ValueError(f"south ({self.south}) must not exceed north ({self.north})")
        return self

    @classmethod
    def from_bbox(cls, bbox) -> "AreaOfInterest":
        """Build from a [south, west, north, east] sequence."""
        south, west, north, east = bbox
        return cls(south=south, west=west, north=north, east=east)

    @classmethod
    def around(cls, lat: float, lon: float, zoom: float) -> "AreaOfInterest":
        """Approximate the viewport a map centred on (lat, lon) shows at `zoom`."""
        lon_span = 360.0 / (2 ** zoom)
        lat_half = min(lon_span / 4, 90.0)
        return cls(
            south=max(-90.0, lat - lat_half),
            west=lon - lon_span / 2,
            north=min(90.0, lat + lat_half),
            east=lon + lon_span / 2,
        )

    def as_bbox(self) -> list[float]:
        return [self.south, self.west, self.north, self.east]

    def corners(self) -> list[list[float]]:
        """[[south, west], [north, east]], the corner-pair form providers expect."""
        return [[self.south, self.west], [self.north, self.east]]

    def moved_beyond(self, other: "AreaOfInterest", threshold: float) -> bool:
        """True if any single bound differs from `other` by more than `threshold`."""
        return any(
            abs(a - b) > threshold
            for a, b in zip(self.as_bbox(), other.as_bbox())
        )


class SubscriptionPhase(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    BACKOFF = "backoff"


class SubscriptionState(BaseModel):
    """Connection lifecycle state; `delay_ms` is only set while backing off."""
    model_config = ConfigDict(frozen=True)

    phase: SubscriptionPhase = SubscriptionPhase.DISCONNECTED
    delay_ms: Optional[int] = None


class FilterSelection(BaseModel):
    """Categories the UI wants to see plus an optional free-text query."""
    model_config = ConfigDict(frozen=True)

    wanted: frozenset[Category] = frozenset(Category)
    query: str = ""

    def matches_text(self, record: VesselRecord) -> bool:
        q = self.query.strip().lower()
        if not q:
            return True
        return any(
            q in (value or "").lower()
            for value in (record.name, record.mmsi, record.imo)
        )


class PipelineStats(BaseModel):
    """Running counters of the ingestion pipeline."""
    frames: int = 0
    malformed: int = 0
    status_frames: int = 0
    discarded: int = 0
    unclassified: int = 0
    stored: int = 0


class WebSocketMessage(BaseModel):
    """WebSocket message envelope."""
    action: str  # "initial_state", "vessel_batch", "view", "ack", "error"
    data: Any
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
