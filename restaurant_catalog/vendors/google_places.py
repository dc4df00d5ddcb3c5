"""Client utilities for the Google Places API."""

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from restaurant_catalog.core.models import Cell, ProviderDetails, ProviderPlace
from restaurant_catalog.etl.transform import to_provider_details, to_provider_place

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://maps.googleapis.com/maps/api/place"
_OK_STATUSES = {"OK", "ZERO_RESULTS"}
_DETAIL_FIELDS = ",".join(
    [
        "place_id",
        "name",
        "formatted_address",
        "formatted_phone_number",
        "website",
        "url",
        "rating",
        "user_ratings_total",
        "price_level",
        "photos",
        "geometry",
        "types",
        "address_components",
        "opening_hours",
        "current_opening_hours",
    ]
)
MAX_PHOTOS = 5


class ProviderUnavailable(RuntimeError):
    """Raised when the Places API cannot be reached or answers with an error."""


def build_session(retries: int = 0) -> requests.Session:
    """Session for Places calls; `retries` > 0 retries transport errors and 5xx."""
    session = requests.Session()
    if retries > 0:
        retry = Retry(
            total=retries,
            backoff_factor=1,
            status_forcelist=(500, 502, 503, 504),
            allowed_methods=("GET",),
        )
        session.mount("https://", HTTPAdapter(max_retries=retry))
        session.mount("http://", HTTPAdapter(max_retries=retry))
    return session


def _get(endpoint: str, params: Dict[str, Any], timeout: float, session: Optional[requests.Session]) -> Dict[str, Any]:
    http = session or _SESSION
    try:
        response = http.get(f"{_BASE_URL}/{endpoint}/json", params=params, timeout=timeout)
        response.raise_for_status()
        return response.json()
    except requests.RequestException as exc:
        logger.error("%s request failed: %s", endpoint, exc)
        raise ProviderUnavailable(str(exc)) from exc
    except ValueError as exc:
        logger.error("%s returned a non-JSON body: %s", endpoint, exc)
        raise ProviderUnavailable("invalid JSON from Places API") from exc


def _check_status(endpoint: str, payload: Dict[str, Any], allowed=_OK_STATUSES) -> str:
    status = payload.get("status")
    if status not in allowed:
        logger.error("%s failed: status=%s, error_message=%s", endpoint, status, payload.get("error_message"))
        raise ProviderUnavailable(payload.get("error_message") or status or "unknown status")
    return status


def text_search(
    query: str,
    api_key: str,
    *,
    language: Optional[str] = None,
    place_type: Optional[str] = "restaurant",
    timeout: float = 10,
    session: Optional[requests.Session] = None,
) -> Dict[str, Any]:
    params = {"query": query, "key": api_key}
    if place_type:
        params["type"] = place_type
    if language:
        params["language"] = language
    payload = _get("textsearch", params, timeout, session)
    _check_status("text_search", payload)
    return payload


def place_details(
    place_id: str,
    api_key: str,
    *,
    language: Optional[str] = None,
    timeout: float = 10,
    session: Optional[requests.Session] = None,
) -> Dict[str, Any]:
    """Return the detail `result` object, or `{}` when the place is unknown."""
    params = {"place_id": place_id, "key": api_key, "fields": _DETAIL_FIELDS}
    if language:
        params["language"] = language
    payload = _get("details", params, timeout, session)
    status = _check_status("place_details", payload, allowed=_OK_STATUSES | {"NOT_FOUND"})
    if status != "OK":
        return {}
    return payload.get("result", {})


def nearby_search(
    latitude: float,
    longitude: float,
    radius_m: int,
    place_type: str,
    api_key: str,
    *,
    language: Optional[str] = None,
    pagetoken: Optional[str] = None,
    timeout: float = 10,
    session: Optional[requests.Session] = None,
) -> Dict[str, Any]:
    if pagetoken:
        params = {"pagetoken": pagetoken, "key": api_key}
    else:
        params = {
            "location": f"{latitude},{longitude}",
            "radius": radius_m,
            "type": place_type,
            "key": api_key,
        }
        if language:
            params["language"] = language
    payload = _get("nearbysearch", params, timeout, session)
    _check_status("nearby_search", payload)
    return payload


def photo_url(reference: str, api_key: str, max_width: int = 800) -> str:
    return f"{_BASE_URL}/photo?maxwidth={max_width}&photo_reference={reference}&key={api_key}"


class PlacesGateway:
    """Provider operations used by the catalog, mapped into catalog shapes.

    All methods raise `ProviderUnavailable` on transport or API errors and
    return `None`/empty results when the provider legitimately has no match.
    """

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = 10,
        language: Optional[str] = "pt-BR",
        session: Optional[requests.Session] = None,
    ) -> None:
        if not api_key:
            raise RuntimeError("GOOGLE_API_KEY is required")
        self.api_key = api_key
        self.timeout = timeout
        self.language = language
        self.session = session or build_session()

    def photo_url(self, reference: str, max_width: int = 800) -> str:
        return photo_url(reference, self.api_key, max_width=max_width)

    def search_text(self, query: str, location_hint: Optional[str] = None) -> Optional[ProviderPlace]:
        """Best single match for a free-text query, biased towards `location_hint`."""
        search_query = f"{query} {location_hint}" if location_hint else query
        payload = text_search(
            search_query,
            self.api_key,
            language=self.language,
            timeout=self.timeout,
            session=self.session,
        )
        results = payload.get("results") or []
        if not results:
            logger.info("No provider match for query=%s", search_query)
            return None
        return to_provider_place(results[0], photo_url_builder=self.photo_url)

    def fetch_details(self, provider_id: str) -> Optional[ProviderDetails]:
        result = place_details(
            provider_id,
            self.api_key,
            language=self.language,
            timeout=self.timeout,
            session=self.session,
        )
        if not result:
            logger.info("No provider details for place_id=%s", provider_id)
            return None
        return to_provider_details(result, photo_url_builder=self.photo_url, max_photos=MAX_PHOTOS)

    def nearby_search(
        self, cell: Cell, category: str, page_token: Optional[str] = None
    ) -> Tuple[List[ProviderPlace], Optional[str]]:
        payload = nearby_search(
            cell.latitude,
            cell.longitude,
            cell.radius_m,
            category,
            self.api_key,
            language=self.language,
            pagetoken=page_token,
            timeout=self.timeout,
            session=self.session,
        )
        places = []
        for raw in payload.get("results") or []:
            if not raw.get("place_id"):
                logger.debug("Skipping nearby result without place_id: %s", raw.get("name"))
                continue
            places.append(to_provider_place(raw, photo_url_builder=self.photo_url))
        return places, payload.get("next_page_token")
