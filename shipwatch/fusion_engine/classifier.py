"""ShipWatch — Vessel Watch-Category Classifier.

Assigns each vessel at most one watch category. Rules are applied in a
fixed priority order and the first match wins:

  1. military       — AIS ship type code 35 (Military Operations)
  2. israeli        — flag IL, or MMSI starting with MID 428
  3. potential_arms — type/cargo text naming vehicle carriers, PCTC, RO-RO,
                      heavy-lift, project cargo or multi-purpose (MPP) ships
"""

import re
from typing import Any, Optional

from backend.models import Category, VesselRecord

MILITARY_SHIP_TYPE = 35
ISRAELI_FLAG = "IL"
ISRAELI_MID_PREFIX = "428"

POTENTIAL_ARMS_PATTERN = re.compile(
    r"vehicle|pctc|ro-?ro|heavy.?lift|project|multi.?purpose|mpp"
)

CATEGORY_LABELS = {
    Category.MILITARY: "Military",
    Category.ISRAELI: "Flag IL / MID 428",
    Category.POTENTIAL_ARMS: "Potential (RO-RO/HL/MPP)",
}


def _as_int(value: Any) -> Optional[int]:
    """Numeric view of a ship type code; anything non-numeric is None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or not number.is_integer():
        return None
    return int(number)


def is_military(record: VesselRecord) -> bool:
    return _as_int(record.ship_type) == MILITARY_SHIP_TYPE


def is_israeli(record: VesselRecord) -> bool:
    flag = (record.flag or "").strip().upper()
    mmsi = str(record.mmsi or "")
    return flag == ISRAELI_FLAG or mmsi.startswith(ISRAELI_MID_PREFIX)


def is_potential_arms(record: VesselRecord) -> bool:
    text = f"{record.type_text or ''} {record.subtype or ''}".lower()
    return bool(POTENTIAL_ARMS_PATTERN.search(text))


def classify(record: VesselRecord) -> Optional[Category]:
    """Return the watch category of `record`, or None if it matches no rule."""
    if is_military(record):
        return Category.MILITARY
    if is_israeli(record):
        return Category.ISRAELI
    if is_potential_arms(record):
        return Category.POTENTIAL_ARMS
    return None


def category_label(category: Optional[Category]) -> str:
    if category is None:
        return "—"
    return CATEGORY_LABELS[category]
