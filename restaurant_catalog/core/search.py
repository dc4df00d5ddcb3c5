"""Catalog search with provider fallback for under-populated queries."""

import logging
import threading
import uuid
from dataclasses import replace
from typing import List, Optional, Tuple

from restaurant_catalog.core.db import StoreConflict, StoreError
from restaurant_catalog.core.dedup import DedupResolver
from restaurant_catalog.core.geo import distance_km, format_distance
from restaurant_catalog.core.models import CatalogRecord, SearchFilters, SearchPage, SearchResult
from restaurant_catalog.core.names import names_match
from restaurant_catalog.core.session_cache import SessionCache
from restaurant_catalog.etl.transform import to_catalog_record
from restaurant_catalog.vendors.google_places import ProviderUnavailable

logger = logging.getLogger(__name__)

Location = Tuple[float, float]

MIN_SPECIFIC_QUERY_LENGTH = 3
FEW_RESULTS_THRESHOLD = 3
DEFAULT_PAGE_SIZE = 20


class QueryOrchestrator:
    """Entry point for restaurant search within one user session.

    The local catalog is always queried first. The provider is consulted only
    for the first page of a specific, unfiltered query that found fewer than
    three local results, and its answer is de-duplicated against both the
    catalog and the local page before being prepended.

    Calls are serialized per instance; the session cache and the remembered
    last search are not safe to share between threads otherwise.
    """

    def __init__(
        self,
        store,
        gateway,
        cache: SessionCache,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        default_center: Location = (-8.0476, -34.8770),
        city_hint: Optional[str] = None,
        location_hint: Optional[str] = None,
        resolver: Optional[DedupResolver] = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.cache = cache
        self.page_size = page_size
        self.default_center = default_center
        self.city_hint = city_hint
        self.location_hint = location_hint
        self.resolver = resolver or DedupResolver(store)
        self._lock = threading.Lock()
        self._last_search: Optional[Tuple[str, Optional[Location], SearchFilters, int]] = None
        self._last_has_more = False

    def search(
        self,
        query: Optional[str],
        location: Optional[Location] = None,
        filters: Optional[SearchFilters] = None,
        page: int = 1,
    ) -> SearchPage:
        if page < 1:
            raise ValueError("page must be >= 1")
        with self._lock:
            return self._search((query or "").strip(), location, filters or SearchFilters(), page)

    def load_more(self) -> SearchPage:
        """Next page of the last search; local catalog only."""
        with self._lock:
            if self._last_search is None:
                raise RuntimeError("load_more called before search")
            query, location, filters, page = self._last_search
            if not self._last_has_more:
                logger.debug("No more results for query=%r after page %d", query, page)
                return SearchPage(results=[], page=page + 1, has_more=False)
            return self._search(query, location, filters, page + 1)

    def _search(self, query: str, location: Optional[Location], filters: SearchFilters, page: int) -> SearchPage:
        self._last_search = (query, location, filters, page)
        self._last_has_more = False

        offset = (page - 1) * self.page_size
        try:
            records = list(
                self.store.paginated_search(
                    query or None, filters, location or self.default_center, self.page_size, offset
                )
            )
        except StoreError as exc:
            logger.error("Local search failed for query=%r page=%d: %s", query, page, exc)
            return SearchPage(results=[], page=page, has_more=False, error="catalog unavailable")

        has_more = len(records) == self.page_size
        self._last_has_more = has_more
        if self._should_fall_back(query, filters, page, len(records)):
            found = self._fall_back(query)
            if found is not None and found.is_active and not _already_listed(found, records):
                records.insert(0, found)

        results = [self._annotate(record, location) for record in records]
        return SearchPage(results=results, page=page, has_more=has_more)

    def _should_fall_back(self, query: str, filters: SearchFilters, page: int, local_count: int) -> bool:
        if self.gateway is None:
            return False
        if len(query) < MIN_SPECIFIC_QUERY_LENGTH:
            return False
        if filters.is_narrowing or page != 1:
            return False
        return local_count < FEW_RESULTS_THRESHOLD

    def _fall_back(self, query: str) -> Optional[CatalogRecord]:
        cached = self.cache.get(query)
        if cached is not None:
            logger.debug("Session cache hit for query=%r", query)
            if cached.is_placeholder:
                return self._reconcile(query, cached)
            return cached
        if self.cache.has_attempted(query):
            logger.debug("Provider already attempted for query=%r", query)
            return None

        try:
            record = self._resolve(query)
        except ProviderUnavailable as exc:
            logger.warning("Provider fallback failed for query=%r: %s", query, exc)
            return None
        except StoreError as exc:
            logger.warning("Catalog error during fallback for query=%r: %s", query, exc)
            return None
        finally:
            self.cache.mark_attempted(query)

        if record is None:
            return None
        if not record.is_active:
            # Known but delisted: it blocks a re-insert, it is never shown.
            logger.info("Query %r resolved to inactive restaurant %s", query, record.id)
            return None
        self.cache.put(query, record)
        return record

    def _resolve(self, query: str) -> Optional[CatalogRecord]:
        existing = self.resolver.resolve_existing(CatalogRecord(id=None, name=query))
        if existing is not None:
            return existing

        place = self.gateway.search_text(query, self.location_hint)
        if place is None:
            return None
        existing = self.store.find_by_external_id(place.place_id)
        if existing is not None:
            return existing

        details = self.gateway.fetch_details(place.place_id)
        if details is None:
            return None
        candidate = to_catalog_record(details, fallback_city=self.city_hint)
        existing = self.resolver.resolve_existing(candidate)
        if existing is not None:
            return existing
        return self._persist(candidate)

    def _persist(self, candidate: CatalogRecord) -> CatalogRecord:
        try:
            record = self.store.insert(candidate)
            logger.info("Saved new restaurant %s (%s)", record.name, record.external_id)
            return record
        except StoreConflict:
            try:
                existing = self.store.find_by_external_id(candidate.external_id)
            except StoreError as exc:
                logger.error("Could not re-read %s after conflict: %s", candidate.external_id, exc)
                existing = None
            if existing is not None:
                return existing
            logger.error("Insert conflict for %s but no existing row found", candidate.external_id)
        except (StoreError, ValueError) as exc:
            logger.error("Could not save %s: %s", candidate.name, exc)
        return replace(candidate, id=str(uuid.uuid4()), is_placeholder=True)

    def _reconcile(self, query: str, placeholder: CatalogRecord) -> CatalogRecord:
        candidate = replace(placeholder, id=None, is_placeholder=False)
        try:
            record = self.resolver.resolve_existing(candidate) or self._persist(candidate)
        except StoreError as exc:
            logger.warning("Placeholder for %s still unsaved: %s", placeholder.name, exc)
            return placeholder
        if record.is_placeholder:
            return placeholder
        if record.is_active:
            self.cache.put(query, record)
        return record

    @staticmethod
    def _annotate(record: CatalogRecord, location: Optional[Location]) -> SearchResult:
        if location is None or not record.has_coordinates:
            return SearchResult(record=record)
        km = distance_km(location[0], location[1], record.latitude, record.longitude)
        return SearchResult(record=record, distance_km=km, distance_formatted=format_distance(km))


def _already_listed(found: CatalogRecord, records: List[CatalogRecord]) -> bool:
    for record in records:
        if found.id is not None and record.id == found.id:
            return True
        if found.external_id and record.external_id == found.external_id:
            return True
        if names_match(record.name, found.name):
            return True
    return False
