"""Core data models shared by the catalog search and ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

SORT_OPTIONS = ("distance", "rating", "price_asc", "price_desc")


@dataclass(slots=True)
class CatalogRecord:
    """A restaurant as stored in the catalog."""

    id: Optional[str]
    name: str
    external_id: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    neighborhood: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    maps_url: Optional[str] = None
    photo_url: Optional[str] = None
    cuisine_types: List[str] = field(default_factory=list)
    price_level: Optional[int] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    opening_hours: Optional[List[str]] = None
    is_open_now: Optional[bool] = None
    is_active: bool = True
    # Set when the provider lookup succeeded but the catalog write did not.
    is_placeholder: bool = False

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CatalogRecord":
        record_id = row.get("id")
        return cls(
            id=str(record_id) if record_id is not None else None,
            name=row.get("name") or "",
            external_id=row.get("google_place_id"),
            address=row.get("address"),
            city=row.get("city"),
            neighborhood=row.get("neighborhood"),
            latitude=_float_or_none(row.get("latitude")),
            longitude=_float_or_none(row.get("longitude")),
            phone=row.get("phone"),
            website=row.get("website"),
            maps_url=row.get("google_maps_url"),
            photo_url=row.get("photo_url"),
            cuisine_types=list(row.get("cuisine_types") or []),
            price_level=row.get("price_level"),
            rating=_float_or_none(row.get("rating")),
            review_count=row.get("review_count"),
            opening_hours=list(row["opening_hours"]) if row.get("opening_hours") else None,
            is_open_now=row.get("is_open_now"),
            is_active=bool(row.get("is_active", True)),
        )

    def to_row(self) -> Dict[str, Any]:
        """Column mapping used for inserts; `id` is assigned by the store."""
        return {
            "google_place_id": self.external_id,
            "name": self.name,
            "address": self.address,
            "city": self.city,
            "neighborhood": self.neighborhood,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "phone": self.phone,
            "website": self.website,
            "google_maps_url": self.maps_url,
            "photo_url": self.photo_url,
            "cuisine_types": list(self.cuisine_types),
            "price_level": self.price_level,
            "rating": self.rating,
            "review_count": self.review_count,
            "opening_hours": self.opening_hours,
            "is_open_now": self.is_open_now,
            "is_active": self.is_active,
        }


@dataclass(slots=True)
class SearchResult:
    """A catalog record annotated with its distance from the caller."""

    record: CatalogRecord
    distance_km: Optional[float] = None
    distance_formatted: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = self.record.to_row()
        payload["id"] = self.record.id
        payload["is_placeholder"] = self.record.is_placeholder
        if self.distance_km is not None:
            payload["distance_km"] = round(self.distance_km, 3)
            payload["distance_formatted"] = self.distance_formatted
        return payload


@dataclass(frozen=True)
class SearchFilters:
    cuisine: Optional[str] = None
    price_level: Optional[int] = None
    min_rating: Optional[float] = None
    sort_by: str = "distance"

    def __post_init__(self) -> None:
        if self.sort_by not in SORT_OPTIONS:
            raise ValueError(f"sort_by must be one of {', '.join(SORT_OPTIONS)}")

    @property
    def is_narrowing(self) -> bool:
        """True when a cuisine, price or rating filter restricts the search."""
        return bool(self.cuisine) or self.price_level is not None or self.min_rating is not None


@dataclass(slots=True)
class SearchPage:
    results: List[SearchResult]
    page: int = 1
    has_more: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class ProviderPlace:
    """A place returned by a provider text or nearby search."""

    place_id: str
    name: str
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    price_level: Optional[int] = None
    types: List[str] = field(default_factory=list)
    is_open_now: Optional[bool] = None
    photo_url: Optional[str] = None


@dataclass(slots=True)
class ProviderDetails:
    """Full provider attributes for a single place."""

    place_id: str
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    neighborhood: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    maps_url: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    price_level: Optional[int] = None
    types: List[str] = field(default_factory=list)
    opening_hours: Optional[List[str]] = None
    is_open_now: Optional[bool] = None
    photo_urls: List[str] = field(default_factory=list)
    raw: Optional[Dict[str, Any]] = field(default=None, repr=False)


@dataclass(frozen=True)
class Cell:
    """One geographic centre point swept during ingestion."""

    name: str
    latitude: float
    longitude: float
    radius_m: int = 15000


@dataclass(slots=True)
class IngestionError:
    context: str
    message: str


@dataclass(slots=True)
class IngestionOutcome:
    inserted: int = 0
    skipped: int = 0
    blocked: int = 0
    refreshed: int = 0
    errors: List[IngestionError] = field(default_factory=list)
    stopped: bool = False

    def add_error(self, context: str, message: str) -> None:
        self.errors.append(IngestionError(context=context, message=message))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inserted": self.inserted,
            "skipped": self.skipped,
            "blocked": self.blocked,
            "refreshed": self.refreshed,
            "errors": [{"context": err.context, "message": err.message} for err in self.errors],
            "stopped": self.stopped,
        }


def _float_or_none(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
