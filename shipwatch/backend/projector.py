"""ShipWatch — View Projector.

Reads a filtered snapshot from the VesselStore on a fixed cadence, so
rendering work stays bounded however fast frames arrive upstream.
"""

import logging

from backend.models import FilterSelection, VesselRecord
from collectors.base_collector import BaseCollector
from fusion_engine.classifier import category_label
from fusion_engine.vessel_store import VesselStore

logger = logging.getLogger("shipwatch.ws")


def render_record(record: VesselRecord) -> dict:
    """Wire form of a record for the map and list collaborators."""
    data = record.model_dump(mode="json", by_alias=True)
    data["label"] = category_label(record.category)
    data["positioned"] = record.has_position
    return data


class ViewProjector(BaseCollector):
    """Produces `snapshot(current_filter)` on the render cadence."""

    def __init__(self, store: VesselStore, interval: float = 1.5,
                 selection: FilterSelection = None):
        super().__init__(name="projector", interval=interval)
        self.store = store
        self._selection = selection or FilterSelection()

    @property
    def selection(self) -> FilterSelection:
        return self._selection

    def set_filter(self, selection: FilterSelection):
        logger.info(
            "Filter changed: wanted=%s query=%r",
            sorted(c.value for c in selection.wanted), selection.query,
        )
        self._selection = selection

    def project(self) -> list[dict]:
        return [render_record(r) for r in self.store.snapshot(self._selection)]

    async def collect(self) -> list[dict]:
        return self.project()
