"""CLI job that sweeps provider nearby-search results into the catalog."""

import argparse
import json
import logging
import signal
import threading
from typing import Iterable, List, Optional, Sequence, Set

from restaurant_catalog.core.config import Settings, get_settings
from restaurant_catalog.core.db import CatalogStore, StoreConflict, StoreError, init_pool
from restaurant_catalog.core.models import Cell, IngestionOutcome, ProviderPlace
from restaurant_catalog.core.rate_limit import IngestionLimiters
from restaurant_catalog.etl.transform import should_block_place, to_catalog_record
from restaurant_catalog.vendors.google_places import PlacesGateway, ProviderUnavailable, build_session

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_M = 15000

# Greater Recife.
DEFAULT_CELLS = [
    Cell("Recife", -8.0476, -34.8770, DEFAULT_RADIUS_M),
    Cell("Olinda", -7.9914, -34.8416, DEFAULT_RADIUS_M),
    Cell("Jaboatão dos Guararapes", -8.1128, -35.0158, DEFAULT_RADIUS_M),
    Cell("Cabo de Santo Agostinho", -8.2833, -35.0333, DEFAULT_RADIUS_M),
]

DEFAULT_CATEGORIES = [
    "restaurant",
    "brazilian_restaurant",
    "seafood_restaurant",
    "italian_restaurant",
    "japanese_restaurant",
    "steakhouse",
    "pizza_restaurant",
    "mexican_restaurant",
    "chinese_restaurant",
    "thai_restaurant",
    "indian_restaurant",
    "french_restaurant",
    "mediterranean_restaurant",
    "vegetarian_restaurant",
    "vegan_restaurant",
    "hamburger_restaurant",
    "sandwich_shop",
    "sushi_restaurant",
    "ramen_restaurant",
    "barbecue_restaurant",
    "brunch_restaurant",
    "breakfast_restaurant",
    "ice_cream_shop",
    "dessert_shop",
    "coffee_shop",
    "bar",
    "cafe",
    "bakery",
]


def passes_quality_gates(place: ProviderPlace, min_rating: float, min_reviews: int) -> bool:
    return (place.rating or 0) >= min_rating and (place.review_count or 0) >= min_reviews


def run_ingestion(
    cells: Sequence[Cell],
    categories: Sequence[str],
    *,
    store,
    gateway,
    min_rating: float = 4.0,
    min_reviews: int = 10,
    max_pages: int = 1,
    limiters: Optional[IngestionLimiters] = None,
    refresh_existing: bool = False,
    stop_event: Optional[threading.Event] = None,
) -> IngestionOutcome:
    """Insert every new, good-enough place found around `cells` for `categories`.

    Safe to re-run: ids already in the catalog are fetched once up front and
    skipped, and each insert adds its id to that set so a place surfacing
    under several categories is inserted once. The store's unique index on
    the external id still decides when two runs race.
    """
    limiters = limiters or IngestionLimiters.from_delays(0.1, 0.3)
    outcome = IngestionOutcome()

    existing_ids: Set[str] = set(store.list_external_ids())
    processed_ids: Set[str] = set()
    logger.info("%d restaurants already in the catalog", len(existing_ids))

    for cell in cells:
        logger.info("Sweeping %s (%d categories)", cell.name, len(categories))
        for category in categories:
            if stop_event is not None and stop_event.is_set():
                logger.warning("Ingestion stopped before %s/%s", cell.name, category)
                outcome.stopped = True
                return outcome

            limiters.sweeps.acquire()
            try:
                places = _collect_places(gateway, cell, category, max_pages, limiters)
            except ProviderUnavailable as exc:
                logger.error("Nearby search failed for %s/%s: %s", cell.name, category, exc)
                outcome.add_error(f"{cell.name}/{category}", str(exc))
                continue

            for place in places:
                if not passes_quality_gates(place, min_rating, min_reviews):
                    continue
                if place.place_id in processed_ids:
                    continue
                processed_ids.add(place.place_id)

                if place.place_id in existing_ids:
                    outcome.skipped += 1
                    if refresh_existing:
                        _refresh(store, place, outcome)
                    continue

                _ingest_place(store, gateway, cell, place, existing_ids, outcome, limiters)

    logger.info(
        "Completed run: inserted=%d skipped=%d blocked=%d errors=%d",
        outcome.inserted,
        outcome.skipped,
        outcome.blocked,
        len(outcome.errors),
    )
    return outcome


def _collect_places(
    gateway, cell: Cell, category: str, max_pages: int, limiters: IngestionLimiters
) -> List[ProviderPlace]:
    places: List[ProviderPlace] = []
    page_token = None
    for page in range(max(1, max_pages)):
        if page > 0:
            # Next-page tokens only become valid after a short delay.
            limiters.pages.acquire()
        batch, page_token = gateway.nearby_search(cell, category, page_token)
        logger.info("Fetched %d places for %s/%s page %d", len(batch), cell.name, category, page + 1)
        places.extend(batch)
        if not page_token:
            break
    return places


def _ingest_place(
    store,
    gateway,
    cell: Cell,
    place: ProviderPlace,
    existing_ids: Set[str],
    outcome: IngestionOutcome,
    limiters: IngestionLimiters,
) -> None:
    limiters.details.acquire()
    try:
        details = gateway.fetch_details(place.place_id)
    except ProviderUnavailable as exc:
        logger.warning("Failed to fetch details for %s: %s", place.place_id, exc)
        outcome.add_error(place.name or place.place_id, str(exc))
        return
    if details is None:
        logger.debug("No details for %s", place.place_id)
        return

    if should_block_place(details.name, details.types):
        logger.info("Blocked %s (types: %s)", details.name, ", ".join(details.types[:5]))
        outcome.blocked += 1
        return

    record = to_catalog_record(details, fallback_city=cell.name)
    try:
        store.insert(record)
    except StoreConflict as exc:
        logger.warning("Already inserted by another writer: %s", details.name)
        outcome.add_error(details.name, str(exc))
        existing_ids.add(details.place_id)
        return
    except (StoreError, ValueError) as exc:
        logger.error("Failed to insert %s: %s", details.name, exc)
        outcome.add_error(details.name, str(exc))
        return

    existing_ids.add(details.place_id)
    outcome.inserted += 1
    logger.info("New restaurant: %s (%s)", details.name, record.city)


def _refresh(store, place: ProviderPlace, outcome: IngestionOutcome) -> None:
    try:
        updated = store.refresh_stats(
            place.place_id,
            rating=place.rating,
            review_count=place.review_count,
            is_open_now=place.is_open_now,
        )
    except StoreError as exc:
        logger.error("Failed to refresh %s: %s", place.place_id, exc)
        outcome.add_error(place.name or place.place_id, str(exc))
        return
    if updated is not None:
        outcome.refreshed += 1


def select_cells(indices: Optional[Iterable[int]], cells: Sequence[Cell] = DEFAULT_CELLS) -> List[Cell]:
    if not indices:
        return list(cells)
    selected = []
    for index in indices:
        if index < 0 or index >= len(cells):
            raise ValueError(f"cell index must be between 0 and {len(cells) - 1}")
        selected.append(cells[index])
    return selected


def build_gateway(settings: Settings) -> PlacesGateway:
    return PlacesGateway(
        settings.google_api_key,
        timeout=settings.provider_timeout,
        language=settings.provider_language,
        session=build_session(retries=3),
    )


def run_ingestion_job(
    *,
    cell_indices: Optional[Iterable[int]] = None,
    categories: Optional[Sequence[str]] = None,
    stop_event: Optional[threading.Event] = None,
) -> IngestionOutcome:
    """Run an ingestion with settings-driven collaborators."""
    settings = get_settings()
    if not settings.google_api_key:
        raise RuntimeError("GOOGLE_API_KEY is required")

    init_pool()
    cells = [
        Cell(cell.name, cell.latitude, cell.longitude, settings.ingest_radius_m)
        for cell in select_cells(cell_indices)
    ]
    return run_ingestion(
        cells,
        list(categories or DEFAULT_CATEGORIES),
        store=CatalogStore(),
        gateway=build_gateway(settings),
        min_rating=settings.ingest_min_rating,
        min_reviews=settings.ingest_min_reviews,
        max_pages=settings.ingest_max_pages,
        limiters=IngestionLimiters.from_delays(settings.ingest_detail_delay, settings.ingest_sweep_delay),
        refresh_existing=settings.ingest_refresh_existing,
        stop_event=stop_event,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Ingest restaurants from Google Places into the catalog")
    parser.add_argument(
        "--cell",
        dest="cells",
        type=int,
        action="append",
        help="Index of a cell to sweep (repeatable); defaults to all: "
        + ", ".join(f"{i}={cell.name}" for i, cell in enumerate(DEFAULT_CELLS)),
    )
    parser.add_argument(
        "--category",
        dest="categories",
        action="append",
        help="Google place type to sweep (repeatable); defaults to the built-in list",
    )
    return parser


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args()

    stop_event = threading.Event()

    def _request_stop(signum, frame):
        logger.warning("Received signal %s; stopping after the current sweep", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    outcome = run_ingestion_job(cell_indices=args.cells, categories=args.categories, stop_event=stop_event)
    print(json.dumps(outcome.to_dict(), ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
