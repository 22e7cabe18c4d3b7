"""ShipWatch — Vessel Field Normalizer.

Maps the many field spellings used by relays and providers onto the
canonical VesselRecord. Position may arrive flat (lat/lon) or nested under
a `position` object.
"""

import logging
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from backend.models import VesselRecord

logger = logging.getLogger("shipwatch.ingest")

MMSI_KEYS = ("mmsi", "MMSI", "mmsi_string", "MMSI_String", "UserID", "userid")
IMO_KEYS = ("imo", "IMO", "ImoNumber", "imo_number")
NAME_KEYS = ("name", "NAME", "shipname", "ShipName", "SHIPNAME", "vessel_name")
LAT_KEYS = ("lat", "LAT", "latitude", "Latitude")
LON_KEYS = ("lon", "LON", "lng", "longitude", "Longitude")
FLAG_KEYS = ("flag", "FLAG", "flag_state", "country_code", "country_iso")
SHIP_TYPE_KEYS = ("ais_shiptype", "SHIPTYPE", "shiptype_code", "shipType", "ship_type", "Type")
TYPE_TEXT_KEYS = ("type", "typeText", "type_text", "vessel_type", "TYPE_NAME", "type_name")
SUBTYPE_KEYS = ("subtype", "cargo", "cargo_type", "subtype_text")
DESTINATION_KEYS = ("destination", "DESTINATION", "Destination")
POSITION_KEYS = ("position", "pos", "location")


def _first(data: Mapping, keys) -> Any:
    """Value of the first key present with a non-empty value."""
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


def _clean_text(value: Any) -> Optional[str]:
    """Strip whitespace and AIS '@' padding; empty becomes None."""
    if value is None:
        return None
    text = str(value).strip().rstrip("@").strip()
    return text or None


def _clean_id(value: Any, prefix: str = "") -> Optional[str]:
    """Canonical string form of a numeric identifier; 0/blank become None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    if prefix and text.upper().startswith(prefix):
        text = text[len(prefix):].strip()
    if not text or text.strip("0") == "":
        return None
    return text


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:
        return None
    return number


def _to_int(value: Any) -> Optional[int]:
    number = _to_float(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


def extract_position(data: Mapping) -> tuple[Optional[float], Optional[float]]:
    """(lat, lon) from flat or nested fields; both None unless both are valid."""
    lat = _to_float(_first(data, LAT_KEYS))
    lon = _to_float(_first(data, LON_KEYS))

    if lat is None or lon is None:
        for key in POSITION_KEYS:
            nested = data.get(key)
            if isinstance(nested, Mapping):
                lat = _to_float(_first(nested, LAT_KEYS))
                lon = _to_float(_first(nested, LON_KEYS))
                if lat is not None and lon is not None:
                    break

    # AIS uses 91/181 for "not available"
    if lat is None or lon is None or abs(lat) > 90 or abs(lon) > 180:
        return None, None
    return lat, lon


def normalize_vessel(data: Mapping) -> Optional[VesselRecord]:
    """Build a VesselRecord from a flat provider mapping.

    Returns None when the mapping has neither a usable position nor any
    identity field, since such a record can be neither keyed nor drawn.
    """
    lat, lon = extract_position(data)
    flag = _clean_text(_first(data, FLAG_KEYS))

    fields = {
        "mmsi": _clean_id(_first(data, MMSI_KEYS)),
        "imo": _clean_id(_first(data, IMO_KEYS), prefix="IMO"),
        "name": _clean_text(_first(data, NAME_KEYS)),
        "lat": lat,
        "lon": lon,
        "flag": flag.upper() if flag else None,
        "ship_type": _to_int(_first(data, SHIP_TYPE_KEYS)),
        "type_text": _clean_text(_first(data, TYPE_TEXT_KEYS)),
        "subtype": _clean_text(_first(data, SUBTYPE_KEYS)),
        "destination": _clean_text(_first(data, DESTINATION_KEYS)),
    }

    if lat is None and not (fields["mmsi"] or fields["imo"] or fields["name"]):
        return None

    try:
        return VesselRecord(**fields)
    except ValidationError as e:
        logger.debug("Rejected vessel fields %s: %s", fields, e)
        return None
