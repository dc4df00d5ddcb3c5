"""Per-session memory of resolved and attempted provider lookups."""

import logging
from collections import OrderedDict
from typing import Optional

from restaurant_catalog.core.models import CatalogRecord
from restaurant_catalog.core.names import normalize

logger = logging.getLogger(__name__)


class SessionCache:
    """Maps a normalized query to the catalog record it resolved to.

    One instance belongs to one user session. It also remembers which queries
    were already sent to the provider, whatever the outcome, so a failing or
    empty lookup is not repeated on every keystroke.
    """

    def __init__(self, max_size: int = 256) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self._records: "OrderedDict[str, CatalogRecord]" = OrderedDict()
        self._attempted: "OrderedDict[str, None]" = OrderedDict()

    def get(self, query: str) -> Optional[CatalogRecord]:
        key = normalize(query)
        record = self._records.get(key)
        if record is not None:
            self._records.move_to_end(key)
        return record

    def put(self, query: str, record: CatalogRecord) -> None:
        key = normalize(query)
        self._records[key] = record
        self._records.move_to_end(key)
        self._trim(self._records)

    def has_attempted(self, query: str) -> bool:
        return normalize(query) in self._attempted

    def mark_attempted(self, query: str) -> None:
        key = normalize(query)
        self._attempted[key] = None
        self._attempted.move_to_end(key)
        self._trim(self._attempted)

    def clear(self) -> None:
        self._records.clear()
        self._attempted.clear()

    def __len__(self) -> int:
        return len(self._records)

    def _trim(self, entries: OrderedDict) -> None:
        while len(entries) > self.max_size:
            evicted, _ = entries.popitem(last=False)
            logger.debug("Evicted session cache entry %s", evicted)
