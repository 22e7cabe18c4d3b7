"""ShipWatch — Vessel Store.

Keyed collection of the latest classified record per vessel. Updates are
"latest wins": a new record replaces the stored one wholesale.

Keys are `mmsi:<n>` when an MMSI is known, else `imo:<n>`, else
`name:<NAME>`, else a store-unique `anon:<seq>`. IMO and name aliases point
at the canonical key so that a later message missing some identity fields
still lands on the same entry. When an MMSI first appears for an entry that
was keyed by IMO or name, the entry migrates to the MMSI key once and keeps
its place in insertion order. An entry keyed by MMSI is never re-keyed.
"""

import itertools
import logging
import threading
from collections import Counter
from typing import Optional

from backend.models import FilterSelection, VesselRecord

logger = logging.getLogger("shipwatch.store")


def _imo_alias(record: VesselRecord) -> Optional[str]:
    return f"imo:{record.imo}" if record.imo else None


def _name_alias(record: VesselRecord) -> Optional[str]:
    return f"name:{record.name.upper()}" if record.name else None


class VesselStore:
    """In-memory mapping of vessel identity to latest VesselRecord."""

    def __init__(self):
        self._records: dict[str, VesselRecord] = {}
        self._order: dict[str, int] = {}
        self._aliases: dict[str, str] = {}
        self._seq = itertools.count()
        self._anon = itertools.count(1)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: str) -> bool:
        return key in self._records

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._records)

    def get(self, key: str) -> Optional[VesselRecord]:
        return self._records.get(key)

    # ── Mutation ───────────────────────────────────────
    def upsert(self, record: VesselRecord) -> str:
        """Store `record` as the latest state of its vessel; returns its key."""
        with self._lock:
            key = self._resolve_key(record)
            if key not in self._order:
                self._order[key] = next(self._seq)
            self._records[key] = record
            for alias in (_imo_alias(record), _name_alias(record)):
                if alias:
                    self._aliases[alias] = key
            return key

    def _resolve_key(self, record: VesselRecord) -> str:
        aliases = [a for a in (_imo_alias(record), _name_alias(record)) if a]

        if record.mmsi:
            key = f"mmsi:{record.mmsi}"
            if key in self._records:
                return key
            for alias in aliases:
                existing = self._aliases.get(alias)
                if existing and not existing.startswith("mmsi:"):
                    self._migrate(existing, key)
                    return key
            return key

        for alias in aliases:
            existing = self._aliases.get(alias)
            if existing:
                return existing

        if aliases:
            return aliases[0]
        return f"anon:{next(self._anon)}"

    def _migrate(self, old_key: str, new_key: str):
        """Re-key an entry in place, keeping its insertion position."""
        logger.info("Re-keying vessel %s -> %s", old_key, new_key)
        self._records = {
            (new_key if k == old_key else k): v for k, v in self._records.items()
        }
        self._order[new_key] = self._order.pop(old_key)
        for alias, target in self._aliases.items():
            if target == old_key:
                self._aliases[alias] = new_key

    # ── Queries ────────────────────────────────────────
    def snapshot(self, selection: FilterSelection) -> list[VesselRecord]:
        """Records matching `selection`, sorted by name (unnamed first)."""
        with self._lock:
            entries = [(self._order[k], r) for k, r in self._records.items()]

        matched = [
            (seq, r) for seq, r in entries
            if r.category in selection.wanted and selection.matches_text(r)
        ]
        matched.sort(key=lambda e: ((e[1].name or "").casefold(), e[0]))
        return [r for _, r in matched]

    def counts_by_category(self) -> dict[str, int]:
        with self._lock:
            counts = Counter(r.category.value for r in self._records.values() if r.category)
        return dict(counts)
