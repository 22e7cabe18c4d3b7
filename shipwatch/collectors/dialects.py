"""ShipWatch — Upstream Provider Dialects.

Two upstream flavours are supported behind one interface:

  relay      — a normalizing worker that sends {type: status|error|vessel}
               frames and accepts {"type": "subscribe", "bbox": ...}
  aisstream  — AISStream.io raw frames (MessageType / MetaData / Message.*)
               subscribed with {"APIKey": ..., "BoundingBoxes": ...}

A dialect builds the subscribe payload for an area and turns each decoded
frame into a `Frame` the ingestion pipeline can act on. Raw provider frames
are flattened into the same field names the relay uses.
"""

import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from enum import Enum
from typing import Any, NamedTuple, Optional

from backend.models import AreaOfInterest

logger = logging.getLogger("shipwatch.stream")

POSITION_MESSAGE_TYPES = (
    "PositionReport",
    "StandardClassBPositionReport",
    "ExtendedClassBPositionReport",
)
STATIC_MESSAGE_TYPES = ("ShipStaticData", "StaticDataReport")

STATIC_FIELDS = ("name", "imo", "ais_shiptype", "type", "destination", "callsign")
STATIC_CACHE_SIZE = 50_000

# AIS vessel type codes → human labels
VESSEL_TYPE_MAP = {
    range(20, 30): "Wing in Ground",
    range(30, 35): "Fishing/Towing/Diving",
    range(35, 36): "Military Operations",
    range(36, 40): "Sailing/Pleasure",
    range(40, 50): "High Speed Craft",
    range(50, 55): "Special Craft",
    range(55, 56): "Law Enforcement",
    range(56, 60): "Special Craft",
    range(60, 70): "Passenger",
    range(70, 80): "Cargo",
    range(80, 90): "Tanker",
    range(90, 100): "Other",
}


def _vessel_type_label(type_code: Any) -> Optional[str]:
    """Convert AIS vessel type code to label."""
    if not isinstance(type_code, int) or isinstance(type_code, bool):
        return None
    for range_obj, label in VESSEL_TYPE_MAP.items():
        if type_code in range_obj:
            return label
    return None


class FrameKind(str, Enum):
    STATUS = "status"
    ERROR = "error"
    VESSEL = "vessel"
    IGNORE = "ignore"
    MALFORMED = "malformed"


class Frame(NamedTuple):
    kind: FrameKind
    text: Optional[str] = None
    fields: Optional[dict] = None


IGNORED = Frame(FrameKind.IGNORE)
MALFORMED = Frame(FrameKind.MALFORMED)


class Dialect(ABC):
    """Subscribe-payload builder and frame decoder for one upstream flavour."""

    name = "base"

    def __init__(self, url: str, message_types=(), mmsi_filter=(),
                 static_cache_size: int = STATIC_CACHE_SIZE):
        self.url = url
        self.message_types = list(message_types)
        self.mmsi_filter = [str(m) for m in mmsi_filter]
        # Static report fields per MMSI, merged into later position reports.
        # Least recently reported vessels are evicted past static_cache_size.
        self.static_cache_size = static_cache_size
        self._static: OrderedDict[str, dict] = OrderedDict()

    @abstractmethod
    def subscribe_payload(self, area: AreaOfInterest) -> dict:
        """Message sent right after the connection opens."""

    @abstractmethod
    def parse(self, message: dict) -> Frame:
        """Identify a decoded frame and extract its vessel fields."""

    def _flatten_provider(self, message: dict) -> Frame:
        """Flatten a raw MessageType/MetaData/Message frame into vessel fields.

        Frames whose envelope has the wrong shape come back as MALFORMED;
        well-formed frames of an unsupported message type are IGNORED.
        """
        meta = message.get("MetaData") or {}
        body = message.get("Message") or {}
        if not isinstance(meta, dict) or not isinstance(body, dict):
            return MALFORMED

        msg_type = message.get("MessageType") or next(iter(body), None)
        if msg_type is None:
            return IGNORED
        if not isinstance(msg_type, str):
            return MALFORMED
        report = body.get(msg_type)
        if report is None:
            return IGNORED
        if not isinstance(report, dict):
            return MALFORMED

        mmsi = meta.get("MMSI") or report.get("UserID")
        fields: dict[str, Any] = {
            "mmsi": mmsi,
            "name": meta.get("ShipName"),
            "lat": report.get("Latitude", meta.get("latitude")),
            "lon": report.get("Longitude", meta.get("longitude")),
        }

        if msg_type in POSITION_MESSAGE_TYPES:
            if msg_type == "ExtendedClassBPositionReport":
                fields["ais_shiptype"] = report.get("Type")
                fields["name"] = report.get("Name") or fields["name"]
        elif msg_type in STATIC_MESSAGE_TYPES:
            static = self._static_fields(msg_type, report)
            if static is None:
                return MALFORMED
            fields.update((k, v) for k, v in static.items() if v not in (None, ""))
            fields["lat"] = meta.get("latitude")
            fields["lon"] = meta.get("longitude")
            self._remember_static(mmsi, fields)
        else:
            return IGNORED

        cached = self._static.get(str(mmsi)) if mmsi else None
        if cached:
            for key, value in cached.items():
                if fields.get(key) in (None, "", 0):
                    fields[key] = value

        if fields.get("type") is None:
            fields["type"] = _vessel_type_label(fields.get("ais_shiptype"))
        return Frame(FrameKind.VESSEL, fields=fields)

    @staticmethod
    def _static_fields(msg_type: str, report: dict) -> Optional[dict]:
        if msg_type == "ShipStaticData":
            return {
                "name": report.get("Name"),
                "imo": report.get("ImoNumber"),
                "ais_shiptype": report.get("Type"),
                "destination": report.get("Destination"),
                "callsign": report.get("CallSign"),
            }
        # StaticDataReport (type 24): part A carries the name, part B the type
        part_a = report.get("ReportA") or {}
        part_b = report.get("ReportB") or {}
        if not isinstance(part_a, dict) or not isinstance(part_b, dict):
            return None
        fields = {}
        if part_a.get("Valid", True) and part_a.get("Name"):
            fields["name"] = part_a.get("Name")
        if part_b.get("Valid", True):
            fields["ais_shiptype"] = part_b.get("ShipType")
            fields["callsign"] = part_b.get("CallSign")
        return fields

    def _remember_static(self, mmsi: Any, fields: dict):
        if not mmsi:
            return
        key = str(mmsi)
        cached = self._static.setdefault(key, {})
        self._static.move_to_end(key)
        for name in STATIC_FIELDS:
            value = fields.get(name)
            if value not in (None, "", 0):
                cached[name] = value
        while len(self._static) > self.static_cache_size:
            evicted, _ = self._static.popitem(last=False)
            logger.debug("[%s] Static cache full, dropped %s", self.name, evicted)


class RelayDialect(Dialect):
    """Normalizing relay: status/error/vessel frames, bbox subscription."""

    name = "relay"

    def subscribe_payload(self, area: AreaOfInterest) -> dict:
        payload: dict[str, Any] = {"type": "subscribe", "bbox": area.corners()}
        if self.message_types:
            payload["messageTypes"] = self.message_types
        if self.mmsi_filter:
            payload["mmsi"] = self.mmsi_filter
        return payload

    def parse(self, message: dict) -> Frame:
        frame_type = message.get("type")

        if frame_type == "status":
            return Frame(FrameKind.STATUS, text=f"Relay: {message.get('status') or 'ok'}")
        if frame_type == "error":
            return Frame(FrameKind.ERROR, text=f"Relay error: {message.get('error') or 'unknown'}")
        if frame_type == "vessel":
            data = message.get("data")
            if isinstance(data, dict):
                return Frame(FrameKind.VESSEL, fields=data)
            return IGNORED

        # Relays may forward provider frames untouched
        if "MessageType" in message or "Message" in message:
            return self._flatten_provider(message)
        return IGNORED


class AISStreamDialect(Dialect):
    """AISStream.io raw stream, authenticated with an API key."""

    name = "aisstream"

    def __init__(self, url: str, api_key: str, message_types=(), mmsi_filter=(),
                 static_cache_size: int = STATIC_CACHE_SIZE):
        super().__init__(url, message_types, mmsi_filter, static_cache_size)
        if not api_key:
            logger.warning("[aisstream] No API key configured, subscription will be rejected")
        self.api_key = api_key

    def subscribe_payload(self, area: AreaOfInterest) -> dict:
        payload: dict[str, Any] = {
            "APIKey": self.api_key,
            "BoundingBoxes": [area.corners()],
        }
        if self.message_types:
            payload["FilterMessageTypes"] = self.message_types
        if self.mmsi_filter:
            payload["FiltersShipMMSI"] = self.mmsi_filter
        return payload

    def parse(self, message: dict) -> Frame:
        if "error" in message:
            return Frame(FrameKind.ERROR, text=f"AISStream error: {message.get('error') or 'unknown'}")
        return self._flatten_provider(message)


def get_dialect(settings) -> Dialect:
    """Dialect selected by `settings.dialect`."""
    name = (settings.dialect or "").strip().lower()
    if name == RelayDialect.name:
        return RelayDialect(
            settings.relay_url,
            settings.message_types,
            settings.mmsi_filter,
            settings.static_cache_size,
        )
    if name == AISStreamDialect.name:
        return AISStreamDialect(
            settings.aisstream_url,
            settings.aisstream_api_key,
            settings.message_types,
            settings.mmsi_filter,
            settings.static_cache_size,
        )
    raise ValueError(f"Unknown dialect {settings.dialect!r} (expected 'relay' or 'aisstream')")
