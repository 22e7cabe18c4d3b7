"""ShipWatch — Relay Catalog Collector.

Polls the relay's REST catalog (`GET /api/ships?bbox=S,W,N,E&q=...`) for the
vessels currently inside the requested area. Used to seed the store before
the live stream has delivered anything, and after a quick-jump.
"""

import logging
from typing import Callable, Optional

from backend.models import AreaOfInterest, FilterSelection
from collectors.base_collector import BaseCollector

logger = logging.getLogger("shipwatch.collector")

TOKEN_HEADER = "X-ShipWatch-Token"


class CatalogCollector(BaseCollector):
    """Fetches vessel dicts from the relay catalog for the current area."""

    def __init__(self, base_url: Optional[str], token: str = "",
                 area_source: Callable[[], Optional[AreaOfInterest]] = lambda: None,
                 filter_source: Callable[[], FilterSelection] = FilterSelection,
                 interval: float = 60):
        super().__init__(name="catalog", interval=interval)
        self.base_url = (base_url or "").rstrip("/")
        self.token = token
        self._area_source = area_source
        self._filter_source = filter_source

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def request_params(self, area: AreaOfInterest) -> dict:
        params = {"bbox": ",".join(str(v) for v in area.as_bbox())}
        query = self._filter_source().query.strip()
        if query:
            params["q"] = query
        return params

    async def collect(self) -> list[dict]:
        area = self._area_source()
        if not self.enabled or area is None:
            return []

        headers = {TOKEN_HEADER: self.token} if self.token else None
        data = await self.fetch_json(
            f"{self.base_url}/api/ships",
            params=self.request_params(area),
            headers=headers,
        )

        if isinstance(data, dict):
            data = data.get("ships") or data.get("vessels") or []
        if not isinstance(data, list):
            logger.warning("[catalog] Unexpected response type: %s", type(data).__name__)
            return []

        items = [v for v in data if isinstance(v, dict)]
        logger.info("[catalog] %d vessels in %s", len(items), _bbox_repr(area))
        return items


def _bbox_repr(area: AreaOfInterest) -> str:
    return "[" + ", ".join(f"{v:.2f}" for v in area.as_bbox()) + "]"
