"""Decide whether a provider candidate is already in the catalog."""

import logging
from typing import List, Optional

from restaurant_catalog.core.geo import distance_km
from restaurant_catalog.core.models import CatalogRecord
from restaurant_catalog.core.names import names_match

logger = logging.getLogger(__name__)

NAME_LOOKUP_LIMIT = 10
# Same-named places further apart than this are separate branches of a chain.
MAX_MATCH_DISTANCE_KM = 1.0


class DedupResolver:
    """Two-tier lookup: exact external id first, fuzzy name second.

    The same restaurant can enter the catalog once through the provider (with
    an external id) and once by hand (without one), so id matching alone would
    miss duplicates.
    """

    def __init__(self, store, name_limit: int = NAME_LOOKUP_LIMIT) -> None:
        self.store = store
        self.name_limit = name_limit

    def resolve_existing(self, candidate: CatalogRecord) -> Optional[CatalogRecord]:
        if candidate.external_id:
            existing = self.store.find_by_external_id(candidate.external_id)
            if existing is not None:
                logger.debug("Resolved %s by external id %s", candidate.name, candidate.external_id)
                return existing

        for existing in self._name_candidates(candidate.name):
            if existing.external_id and candidate.external_id and existing.external_id != candidate.external_id:
                # Two distinct provider places; never merged on name alone.
                continue
            if _far_apart(existing, candidate):
                continue
            if names_match(existing.name, candidate.name):
                logger.info("Resolved %r to existing %r by name", candidate.name, existing.name)
                return existing
        return None

    def _name_candidates(self, name: str) -> List[CatalogRecord]:
        name = (name or "").strip()
        if not name:
            return []
        fragments = [name]
        first_token = name.split()[0]
        if first_token != name:
            fragments.append(first_token)

        seen = set()
        matches: List[CatalogRecord] = []
        for fragment in fragments:
            for record in self.store.find_by_name_like(fragment, self.name_limit):
                key = record.id or record.external_id or record.name
                if key in seen:
                    continue
                seen.add(key)
                matches.append(record)
                if len(matches) >= self.name_limit:
                    return matches
        return matches


def _far_apart(first: CatalogRecord, second: CatalogRecord) -> bool:
    if not (first.has_coordinates and second.has_coordinates):
        return False
    gap = distance_km(first.latitude, first.longitude, second.latitude, second.longitude)
    return gap > MAX_MATCH_DISTANCE_KM
