"""ShipWatch — Stream Ingestion Pipeline.

Per frame: decode → identify kind → normalize → classify → upsert.
Status and error frames only update the observable status text. Corrupt
frames are dropped without disturbing the stream.
"""

import json
import logging
from typing import Callable, Mapping, Optional, Union

from backend.models import PipelineStats, VesselRecord
from collectors.dialects import Dialect, FrameKind
from fusion_engine.classifier import classify
from fusion_engine.normalizer import normalize_vessel
from fusion_engine.vessel_store import VesselStore

logger = logging.getLogger("shipwatch.ingest")

StatusCallback = Callable[[str], None]


class IngestionPipeline:
    """Turns raw upstream frames into classified records in the VesselStore."""

    LOG_EVERY = 500

    def __init__(self, store: VesselStore, dialect: Dialect,
                 on_status: Optional[StatusCallback] = None):
        self.store = store
        self.dialect = dialect
        self._on_status = on_status
        self.stats = PipelineStats()

    def process_frame(self, raw: Union[str, bytes]) -> Optional[VesselRecord]:
        """Handle one frame from the live connection.

        Returns the stored record, or None if the frame carried no storable
        vessel (status/error frame, corrupt payload, incomplete or
        unclassified vessel).
        """
        self.stats.frames += 1
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            self.stats.malformed += 1
            logger.debug("Dropped unparseable frame: %.80r", raw)
            return None
        if not isinstance(message, dict):
            self.stats.malformed += 1
            return None

        frame = self.dialect.parse(message)

        if frame.kind is FrameKind.MALFORMED:
            self.stats.malformed += 1
            logger.debug("Dropped malformed frame: %.80r", raw)
            return None
        if frame.kind in (FrameKind.STATUS, FrameKind.ERROR):
            self.stats.status_frames += 1
            if frame.kind is FrameKind.ERROR:
                logger.warning("Upstream reported: %s", frame.text)
            if self._on_status:
                self._on_status(frame.text)
            return None
        if frame.kind is not FrameKind.VESSEL:
            self.stats.discarded += 1
            return None

        return self.ingest_fields(frame.fields)

    def ingest_fields(self, fields: Mapping) -> Optional[VesselRecord]:
        """Normalize, classify and store one already-decoded vessel mapping."""
        record = normalize_vessel(fields)
        if record is None:
            self.stats.discarded += 1
            return None

        category = classify(record)
        if category is None:
            self.stats.unclassified += 1
            return None

        record = record.model_copy(update={"category": category})
        self.store.upsert(record)
        self.stats.stored += 1

        if self.stats.stored % self.LOG_EVERY == 0:
            logger.info(
                "Stored %d updates, %d vessels tracked (%d frames, %d malformed)",
                self.stats.stored, len(self.store), self.stats.frames, self.stats.malformed,
            )
        return record
