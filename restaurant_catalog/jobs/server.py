"""HTTP entrypoint for catalog search and ingestion triggers (Cloud Run friendly)."""

from __future__ import annotations

import logging
import os
import threading
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request

from restaurant_catalog.core.config import get_settings
from restaurant_catalog.core.db import CatalogStore, StoreConflict, StoreError
from restaurant_catalog.core.models import SORT_OPTIONS, IngestionOutcome, SearchFilters
from restaurant_catalog.core.search import QueryOrchestrator
from restaurant_catalog.core.session_cache import SessionCache
from restaurant_catalog.jobs.ingest import run_ingestion_job
from restaurant_catalog.vendors.google_places import PlacesGateway

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & executor ----------
app = Flask(__name__)
_executor = ThreadPoolExecutor(max_workers=1)

MAX_SESSIONS = 1000

_sessions: "OrderedDict[str, QueryOrchestrator]" = OrderedDict()
_sessions_lock = threading.Lock()

_ingestion_lock = threading.Lock()
_ingestion_stop: Optional[threading.Event] = None
_ingestion_running = False
_last_outcome: Optional[IngestionOutcome] = None
_last_error: Optional[str] = None


def _build_orchestrator() -> QueryOrchestrator:
    settings = get_settings()
    gateway = None
    if settings.google_api_key:
        gateway = PlacesGateway(
            settings.google_api_key,
            timeout=settings.fallback_timeout,
            language=settings.provider_language,
        )
    return QueryOrchestrator(
        CatalogStore(),
        gateway,
        SessionCache(settings.session_cache_size),
        page_size=settings.search_page_size,
        default_center=(settings.default_latitude, settings.default_longitude),
        city_hint=settings.default_city,
        location_hint=settings.default_location_hint,
    )


def get_orchestrator(session_id: str) -> QueryOrchestrator:
    """Orchestrator (and its session cache) owned by one client session."""
    with _sessions_lock:
        orchestrator = _sessions.get(session_id)
        if orchestrator is None:
            orchestrator = _build_orchestrator()
            _sessions[session_id] = orchestrator
            while len(_sessions) > MAX_SESSIONS:
                _sessions.popitem(last=False)
        else:
            _sessions.move_to_end(session_id)
        return orchestrator


def end_session(session_id: str) -> bool:
    with _sessions_lock:
        return _sessions.pop(session_id, None) is not None


# ---------- Routes ----------


@app.get("/healthz")
def healthcheck() -> Any:
    return (
        jsonify(
            {
                "status": "ok",
                "sessions": len(_sessions),
                "ingestion_running": _ingestion_running,
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


def _optional_number(payload: Dict[str, Any], field: str, cast):
    value = payload.get(field)
    if value is None or value == "":
        return None
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be numeric")


@app.post("/search")
def search() -> Any:
    """
    Search the catalog.
    Required JSON fields: session_id
    Optional: query, lat, lng, cuisine, price_level, min_rating, sort_by, page
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}

    session_id = str(payload.get("session_id") or "").strip()
    if not session_id:
        return jsonify({"error": "missing fields: session_id"}), 400

    try:
        lat = _optional_number(payload, "lat", float)
        lng = _optional_number(payload, "lng", float)
        price_level = _optional_number(payload, "price_level", int)
        min_rating = _optional_number(payload, "min_rating", float)
        page = _optional_number(payload, "page", int)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    if page is None:
        page = 1

    query = payload.get("query")
    if query is not None and not isinstance(query, str):
        return jsonify({"error": "query must be a string"}), 400
    if (lat is None) != (lng is None):
        return jsonify({"error": "lat and lng must be provided together"}), 400
    if page < 1:
        return jsonify({"error": "page must be positive"}), 400
    sort_by = payload.get("sort_by") or "distance"
    if sort_by not in SORT_OPTIONS:
        return jsonify({"error": f"sort_by must be one of {', '.join(SORT_OPTIONS)}"}), 400

    filters = SearchFilters(
        cuisine=payload.get("cuisine") or None,
        price_level=price_level,
        min_rating=min_rating,
        sort_by=sort_by,
    )
    location = (lat, lng) if lat is not None else None

    orchestrator = get_orchestrator(session_id)
    result = orchestrator.search(query, location=location, filters=filters, page=page)

    body = {
        "data": [item.to_dict() for item in result.results],
        "page": result.page,
        "has_more": result.has_more,
    }
    if not result.ok:
        body["error"] = result.error
        return jsonify(body), 503
    return jsonify(body), 200


@app.delete("/sessions/<session_id>")
def delete_session(session_id: str) -> Any:
    if not end_session(session_id):
        return jsonify({"error": "unknown session"}), 404
    return "", 204


@app.post("/ingest")
def enqueue_ingestion() -> Any:
    """
    Queue a catalog ingestion run.
    Optional JSON fields: cells (list of cell indices), categories (list of place types)
    """
    global _ingestion_stop, _ingestion_running, _last_outcome, _last_error
    payload: Dict[str, Any] = request.get_json(silent=True) or {}

    cells = payload.get("cells")
    if cells is not None and (not isinstance(cells, list) or not all(isinstance(c, int) for c in cells)):
        return jsonify({"error": "cells must be a list of integers"}), 400
    categories = payload.get("categories")
    if categories is not None and (not isinstance(categories, list) or not all(isinstance(c, str) for c in categories)):
        return jsonify({"error": "categories must be a list of strings"}), 400

    with _ingestion_lock:
        if _ingestion_running:
            return jsonify({"error": "ingestion already running"}), 409
        _ingestion_running = True
        _last_outcome = None
        _last_error = None
        _ingestion_stop = threading.Event()
        job_args = dict(cell_indices=cells, categories=categories, stop_event=_ingestion_stop)

    logger.info("Queueing ingestion job: cells=%s categories=%s", cells, categories)
    _executor.submit(_run_ingestion_safe, job_args)
    return jsonify({"data": {"status": "queued"}}), 202


@app.get("/ingest/status")
def ingestion_status() -> Any:
    """State of the current run, or the outcome of the last one."""
    with _ingestion_lock:
        body = {
            "running": _ingestion_running,
            "outcome": _last_outcome.to_dict() if _last_outcome is not None else None,
            "error": _last_error,
        }
    return jsonify({"data": body}), 200


@app.post("/ingest/stop")
def stop_ingestion() -> Any:
    with _ingestion_lock:
        if not _ingestion_running or _ingestion_stop is None:
            return jsonify({"error": "no ingestion running"}), 409
        _ingestion_stop.set()
    return jsonify({"data": {"status": "stopping"}}), 202


@app.post("/restaurants/<record_id>/photo")
def update_photo(record_id: str) -> Any:
    """
    Replace a restaurant's cover photo.
    Required JSON fields: photo_url
    Optional: google_place_id (links a hand-entered restaurant to its Google place)
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}

    photo_url = payload.get("photo_url")
    if not isinstance(photo_url, str) or not photo_url.strip():
        return jsonify({"error": "missing fields: photo_url"}), 400
    place_id = payload.get("google_place_id")
    if place_id is not None and (not isinstance(place_id, str) or not place_id.strip()):
        return jsonify({"error": "google_place_id must be a non-empty string"}), 400

    try:
        record = CatalogStore().update_photo(record_id, photo_url.strip(), external_id=place_id)
    except StoreConflict:
        return jsonify({"error": f"google_place_id {place_id} already belongs to another restaurant"}), 409
    except StoreError as exc:
        logger.error("Photo update failed for restaurant %s: %s", record_id, exc)
        return jsonify({"error": "catalog unavailable"}), 503

    if record is None:
        return jsonify({"error": "unknown restaurant"}), 404
    logger.info("Updated photo for restaurant %s", record_id)
    return jsonify({"data": {"updated": True, "restaurant_id": record.id}}), 200


# ---------- Internals ----------


def _run_ingestion_safe(job_args: Dict[str, Any]) -> None:
    global _ingestion_running, _last_outcome, _last_error
    outcome = None
    error = None
    try:
        outcome = run_ingestion_job(**job_args)
        logger.info("Ingestion finished: %s", outcome.to_dict())
    except Exception as exc:  # noqa: BLE001
        logger.exception("Ingestion job failed: %s", exc)
        error = str(exc)
    finally:
        with _ingestion_lock:
            _ingestion_running = False
            _last_outcome = outcome
            _last_error = error


def main() -> None:
    env_port = os.getenv("PORT")
    port = int(env_port or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
