"""Utilities for transforming Google Places responses into catalog records."""

import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from restaurant_catalog.core.models import CatalogRecord, ProviderDetails, ProviderPlace

logger = logging.getLogger(__name__)

DEFAULT_CUISINE = "Restaurante"
MAX_CUISINE_TYPES = 3

CUISINE_MAP = {
    "brazilian_restaurant": "Brasileira",
    "seafood_restaurant": "Frutos do Mar",
    "italian_restaurant": "Italiana",
    "japanese_restaurant": "Japonesa",
    "sushi_restaurant": "Japonesa",
    "steakhouse": "Churrascaria",
    "barbecue_restaurant": "Churrascaria",
    "pizza_restaurant": "Pizzaria",
    "mexican_restaurant": "Mexicana",
    "chinese_restaurant": "Chinesa",
    "thai_restaurant": "Tailandesa",
    "indian_restaurant": "Indiana",
    "french_restaurant": "Francesa",
    "mediterranean_restaurant": "Mediterrânea",
    "vegetarian_restaurant": "Vegetariana",
    "vegan_restaurant": "Vegana",
    "hamburger_restaurant": "Hambúrguer",
    "bar": "Bar",
    "cafe": "Café",
    "coffee_shop": "Café",
    "bakery": "Padaria",
    "restaurant": "Restaurante",
}

_FOOD_TYPES = {
    "cafe", "bakery", "bar", "food", "meal_delivery", "meal_takeaway",
    "coffee_shop", "ice_cream_shop", "dessert_shop", "sandwich_shop", "steakhouse",
}

_ALWAYS_BLOCKED_TYPES = {"lodging", "campground", "rv_park"}

BLOCKED_NAME_PATTERN = re.compile(
    "|".join(
        [
            r"hotel", r"pousada", r"resort", r"hostel", r"motel", r"flat\b", r"apart.?hotel",
            r"faculdade", r"universidade", r"col[eé]gio", r"escola", r"instituto", r"senac", r"senai",
            r"shopping", r"supermercado", r"mercadinho", r"mercearia", r"atacad[aã]o", r"assa[ií]",
            r"carrefour", r"distribuidora", r"atacado", r"dep[oó]sito", r"\bloja\b", r"outlet",
            r"hospital", r"cl[ií]nica", r"consult[oó]rio", r"laborat[oó]rio", r"farm[aá]cia", r"drogaria",
            r"academia", r"fitness", r"crossfit", r"pilates", r"sal[aã]o", r"barbearia", r"est[eé]tica",
            r"igreja", r"templo", r"par[oó]quia", r"catedral", r"capela",
            r"cart[oó]rio", r"\bbanco\b", r"lot[eé]rica", r"imobili[aá]ria", r"construtora", r"concession[aá]ria",
            r"\bposto\b", r"gasolina", r"combust[ií]vel", r"oficina", r"mec[aâ]nica", r"auto.?pe[cç]as",
            r"lavanderia", r"gr[aá]fica", r"papelaria", r"livraria", r"escrit[oó]rio", r"coworking",
            r"pet.?shop", r"veterin[aá]r",
            r"buffet", r"casa.?de.?festas", r"espa[cç]o.?de.?eventos", r"casa.?de.?shows",
            r"museu", r"teatro", r"cinema", r"boate", r"night.?club",
            r"prefeitura", r"secretaria", r"tribunal",
            r"aeroporto", r"rodovi[aá]ria", r"esta[cç][aã]o", r"terminal",
        ]
    ),
    re.IGNORECASE,
)


def parse_city_neighborhood(address_components: Iterable[Dict[str, Any]]) -> Tuple[Optional[str], Optional[str]]:
    city = None
    locality = None
    neighborhood = None
    for component in address_components or []:
        types = set(component.get("types", []))
        if "administrative_area_level_2" in types:
            city = component.get("long_name")
        elif "locality" in types:
            locality = component.get("long_name")
        if types & {"sublocality_level_1", "sublocality", "neighborhood"}:
            neighborhood = component.get("long_name")
    return city or locality, neighborhood


def map_cuisine_types(types: Iterable[str]) -> List[str]:
    """Translate provider tags to catalog cuisines, keeping order and dropping repeats."""
    cuisines: List[str] = []
    for type_name in types or []:
        mapped = CUISINE_MAP.get(type_name)
        if mapped and mapped not in cuisines:
            cuisines.append(mapped)
        if len(cuisines) == MAX_CUISINE_TYPES:
            break
    return cuisines or [DEFAULT_CUISINE]


def should_block_place(name: str, types: Iterable[str]) -> bool:
    """True for places that are not restaurants (hotels, shops, churches, ...)."""
    if name and BLOCKED_NAME_PATTERN.search(name):
        return True
    types = list(types or [])
    if _ALWAYS_BLOCKED_TYPES.intersection(types):
        return True
    has_food_type = any("restaurant" in t or t in _FOOD_TYPES for t in types)
    if not has_food_type and types:
        return True
    return False


def _open_now(result: Dict[str, Any]) -> Optional[bool]:
    current = result.get("current_opening_hours") or {}
    if current.get("open_now") is not None:
        return current["open_now"]
    return (result.get("opening_hours") or {}).get("open_now")


def _photo_references(result: Dict[str, Any]) -> List[str]:
    return [p["photo_reference"] for p in result.get("photos") or [] if p.get("photo_reference")]


def to_provider_place(
    result: Dict[str, Any], photo_url_builder: Optional[Callable[[str], str]] = None
) -> ProviderPlace:
    location = (result.get("geometry") or {}).get("location") or {}
    references = _photo_references(result)
    return ProviderPlace(
        place_id=result.get("place_id"),
        name=result.get("name") or "",
        address=result.get("formatted_address") or result.get("vicinity"),
        latitude=location.get("lat"),
        longitude=location.get("lng"),
        rating=result.get("rating"),
        review_count=result.get("user_ratings_total"),
        price_level=result.get("price_level"),
        types=list(result.get("types") or []),
        is_open_now=_open_now(result),
        photo_url=photo_url_builder(references[0]) if references and photo_url_builder else None,
    )


def to_provider_details(
    result: Dict[str, Any],
    photo_url_builder: Optional[Callable[[str], str]] = None,
    max_photos: int = 5,
) -> ProviderDetails:
    location = (result.get("geometry") or {}).get("location") or {}
    city, neighborhood = parse_city_neighborhood(result.get("address_components", []))
    photo_urls: List[str] = []
    if photo_url_builder:
        photo_urls = [photo_url_builder(ref) for ref in _photo_references(result)[:max_photos]]

    return ProviderDetails(
        place_id=result.get("place_id"),
        name=result.get("name") or "",
        address=result.get("formatted_address"),
        city=city,
        neighborhood=neighborhood,
        latitude=location.get("lat"),
        longitude=location.get("lng"),
        phone=result.get("formatted_phone_number"),
        website=result.get("website"),
        maps_url=result.get("url"),
        rating=result.get("rating"),
        review_count=result.get("user_ratings_total"),
        price_level=result.get("price_level"),
        types=list(result.get("types") or []),
        opening_hours=(result.get("opening_hours") or {}).get("weekday_text"),
        is_open_now=_open_now(result),
        photo_urls=photo_urls,
        raw=result,
    )


def to_catalog_record(details: ProviderDetails, fallback_city: Optional[str]) -> CatalogRecord:
    """Build an unsaved catalog record (no `id`) from provider details."""
    return CatalogRecord(
        id=None,
        external_id=details.place_id,
        name=details.name,
        address=details.address,
        city=details.city or fallback_city,
        neighborhood=details.neighborhood,
        latitude=details.latitude,
        longitude=details.longitude,
        phone=details.phone or None,
        website=details.website or None,
        maps_url=details.maps_url,
        photo_url=details.photo_urls[0] if details.photo_urls else None,
        cuisine_types=map_cuisine_types(details.types),
        price_level=details.price_level or None,
        rating=details.rating,
        review_count=details.review_count,
        opening_hours=details.opening_hours or None,
        is_open_now=details.is_open_now,
        is_active=True,
    )
