"""Database helpers for the restaurant catalog."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

import psycopg2
from psycopg2 import errors, extras, pool

from restaurant_catalog.core.config import get_settings
from restaurant_catalog.core.models import CatalogRecord, SearchFilters

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.SimpleConnectionPool] = None


class StoreError(RuntimeError):
    """Raised when the catalog database rejects or fails a statement."""


class StoreConflict(StoreError):
    """Raised when a write violates the unique external id constraint."""


class StoreUnavailable(StoreError):
    """Raised when the catalog database cannot be reached."""


def init_pool(minconn: int = 1, maxconn: int = 5) -> pool.SimpleConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    if _connection_pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is required for database connections")
        try:
            _connection_pool = pool.SimpleConnectionPool(
                minconn,
                maxconn,
                dsn=settings.database_url,
                connect_timeout=10,
            )
        except psycopg2.OperationalError as exc:
            raise StoreUnavailable(str(exc)) from exc
        logger.info("Database connection pool initialised")
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection, rolled back on error."""
    pg_pool = init_pool()
    try:
        conn = pg_pool.getconn()
    except pool.PoolError as exc:
        raise StoreUnavailable(str(exc)) from exc
    try:
        yield conn
    except Exception:
        conn.rollback()
        raise
    finally:
        pg_pool.putconn(conn)


def _escape_like(fragment: str) -> str:
    return fragment.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


_COLUMNS = (
    "google_place_id",
    "name",
    "address",
    "city",
    "neighborhood",
    "latitude",
    "longitude",
    "phone",
    "website",
    "google_maps_url",
    "photo_url",
    "cuisine_types",
    "price_level",
    "rating",
    "review_count",
    "opening_hours",
    "is_open_now",
    "is_active",
)

_INSERT = """
INSERT INTO restaurants (
    {columns},
    location,
    created_at,
    updated_at
) VALUES (
    {placeholders},
    CASE WHEN %(longitude)s IS NOT NULL AND %(latitude)s IS NOT NULL THEN
        ST_SetSRID(ST_MakePoint(%(longitude)s, %(latitude)s), 4326)::geography
    ELSE NULL END,
    NOW(),
    NOW()
)
RETURNING *;
""".format(
    columns=",\n    ".join(_COLUMNS),
    placeholders=",\n    ".join(f"%({column})s" for column in _COLUMNS),
)

_REFRESH_STATS = """
UPDATE restaurants SET
    rating = COALESCE(%(rating)s, rating),
    review_count = COALESCE(%(review_count)s, review_count),
    is_open_now = %(is_open_now)s,
    opening_hours = COALESCE(%(opening_hours)s, opening_hours),
    updated_at = NOW()
WHERE google_place_id = %(google_place_id)s
RETURNING *;
"""

_UPDATE_PHOTO = """
UPDATE restaurants SET
    photo_url = %(photo_url)s,
    google_place_id = COALESCE(%(google_place_id)s, google_place_id),
    updated_at = NOW()
WHERE id = %(id)s
RETURNING *;
"""

_ORDER_BY = {
    "distance": (
        "ST_Distance(location, ST_SetSRID(ST_MakePoint(%(center_lng)s, %(center_lat)s), 4326)::geography) "
        "ASC NULLS LAST, rating DESC NULLS LAST"
    ),
    "rating": "rating DESC NULLS LAST, review_count DESC NULLS LAST",
    "price_asc": "price_level ASC NULLS LAST, rating DESC NULLS LAST",
    "price_desc": "price_level DESC NULLS LAST, rating DESC NULLS LAST",
}


def build_search_query(
    search_term: Optional[str],
    filters: SearchFilters,
    center: Tuple[float, float],
    limit: int,
    offset: int,
) -> Tuple[str, Dict[str, Any]]:
    """Compose the store-side filtered, sorted and paginated search."""
    clauses = ["is_active = TRUE"]
    params: Dict[str, Any] = {
        "center_lat": center[0],
        "center_lng": center[1],
        "limit": limit,
        "offset": offset,
    }
    term = (search_term or "").strip()
    if term:
        params["term"] = f"%{_escape_like(term)}%"
        clauses.append(
            "(name ILIKE %(term)s OR neighborhood ILIKE %(term)s"
            " OR EXISTS (SELECT 1 FROM unnest(cuisine_types) AS cuisine WHERE cuisine ILIKE %(term)s))"
        )
    if filters.cuisine:
        params["cuisine"] = filters.cuisine
        clauses.append("%(cuisine)s = ANY(cuisine_types)")
    if filters.price_level is not None:
        params["price_level"] = filters.price_level
        clauses.append("price_level = %(price_level)s")
    if filters.min_rating is not None:
        params["min_rating"] = filters.min_rating
        clauses.append("rating >= %(min_rating)s")

    sql = (
        "SELECT * FROM restaurants WHERE "
        + " AND ".join(clauses)
        + f" ORDER BY {_ORDER_BY[filters.sort_by]}, id"
        + " LIMIT %(limit)s OFFSET %(offset)s;"
    )
    return sql, params


class CatalogStore:
    """Read/write access to the `restaurants` table.

    `google_place_id` carries a unique index; it is the backstop for two
    writers deciding the same place is new.
    """

    @contextmanager
    def _cursor(self) -> Iterator[Any]:
        try:
            with get_connection() as conn:
                with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                    yield cur
                conn.commit()
        except errors.UniqueViolation as exc:
            raise StoreConflict(str(exc)) from exc
        except (psycopg2.OperationalError, psycopg2.InterfaceError) as exc:
            logger.error("Catalog store unavailable: %s", exc)
            raise StoreUnavailable(str(exc)) from exc
        except psycopg2.Error as exc:
            logger.error("Catalog statement failed: %s", exc)
            raise StoreError(str(exc)) from exc

    def find_by_external_id(self, external_id: str) -> Optional[CatalogRecord]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT * FROM restaurants WHERE google_place_id = %(external_id)s LIMIT 1;",
                {"external_id": external_id},
            )
            row = cur.fetchone()
        return CatalogRecord.from_row(row) if row else None

    def find_by_name_like(self, fragment: str, limit: int = 10) -> List[CatalogRecord]:
        fragment = (fragment or "").strip()
        if not fragment:
            return []
        with self._cursor() as cur:
            cur.execute(
                "SELECT * FROM restaurants WHERE name ILIKE %(pattern)s ORDER BY review_count DESC NULLS LAST LIMIT %(limit)s;",
                {"pattern": f"%{_escape_like(fragment)}%", "limit": limit},
            )
            rows = cur.fetchall()
        return [CatalogRecord.from_row(row) for row in rows]

    def list_external_ids(self) -> Set[str]:
        with self._cursor() as cur:
            cur.execute("SELECT google_place_id FROM restaurants WHERE google_place_id IS NOT NULL;")
            rows = cur.fetchall()
        return {row["google_place_id"] for row in rows}

    def insert(self, record: CatalogRecord) -> CatalogRecord:
        if not record.name:
            raise ValueError("name is required for insert")
        params = record.to_row()
        params["cuisine_types"] = list(record.cuisine_types)
        try:
            with self._cursor() as cur:
                cur.execute(_INSERT, params)
                row = cur.fetchone()
        except StoreConflict as exc:
            logger.info("Insert conflict for google_place_id=%s", record.external_id)
            raise StoreConflict(f"{record.external_id} already exists") from exc
        logger.debug("Inserted restaurant %s", record.name)
        return CatalogRecord.from_row(row)

    def refresh_stats(
        self,
        external_id: str,
        *,
        rating: Optional[float] = None,
        review_count: Optional[int] = None,
        is_open_now: Optional[bool] = None,
        opening_hours: Optional[List[str]] = None,
    ) -> Optional[CatalogRecord]:
        """Update the volatile provider attributes of an existing record."""
        params = {
            "google_place_id": external_id,
            "rating": rating,
            "review_count": review_count,
            "is_open_now": is_open_now,
            "opening_hours": opening_hours,
        }
        with self._cursor() as cur:
            cur.execute(_REFRESH_STATS, params)
            row = cur.fetchone()
        return CatalogRecord.from_row(row) if row else None

    def update_photo(
        self, record_id: str, photo_url: str, external_id: Optional[str] = None
    ) -> Optional[CatalogRecord]:
        """Set the cover photo of a record, optionally linking it to a provider place.

        Linking is how a hand-entered record picks up its provider id. Raises
        `StoreConflict` when another record already holds `external_id`.
        """
        if not photo_url:
            raise ValueError("photo_url is required")
        params = {"id": record_id, "photo_url": photo_url, "google_place_id": external_id}
        try:
            with self._cursor() as cur:
                cur.execute(_UPDATE_PHOTO, params)
                row = cur.fetchone()
        except StoreConflict as exc:
            logger.info("google_place_id=%s already linked to another restaurant", external_id)
            raise StoreConflict(f"{external_id} already exists") from exc
        return CatalogRecord.from_row(row) if row else None

    def paginated_search(
        self,
        search_term: Optional[str],
        filters: SearchFilters,
        center: Tuple[float, float],
        limit: int,
        offset: int,
    ) -> List[CatalogRecord]:
        sql, params = build_search_query(search_term, filters, center, limit, offset)
        with self._cursor() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [CatalogRecord.from_row(row) for row in rows]
