"""In-memory collaborators shared by the test modules."""

from dataclasses import replace

from restaurant_catalog.core import db
from restaurant_catalog.core.db import StoreConflict
from restaurant_catalog.core.models import CatalogRecord, ProviderDetails, ProviderPlace


class FakeStore:
    """In-memory stand-in for CatalogStore."""

    def __init__(self, records=None):
        self.records = []
        self.local_results = None
        self.search_error = None
        self.insert_error = None
        self.search_calls = []
        self.name_queries = []
        self.list_ids_calls = 0
        self.refreshed = []
        self._next_id = 1
        for record in records or []:
            self.add(record)

    def add(self, record):
        if record.id is None:
            record = replace(record, id=f"r{self._next_id}")
            self._next_id += 1
        self.records.append(record)
        return record

    def find_by_external_id(self, external_id):
        for record in self.records:
            if record.external_id == external_id:
                return record
        return None

    def find_by_name_like(self, fragment, limit=10):
        self.name_queries.append(fragment)
        needle = fragment.lower()
        return [r for r in self.records if needle in r.name.lower()][:limit]

    def list_external_ids(self):
        self.list_ids_calls += 1
        return {r.external_id for r in self.records if r.external_id}

    def insert(self, record):
        if self.insert_error is not None:
            raise self.insert_error
        if record.external_id and self.find_by_external_id(record.external_id):
            raise StoreConflict(f"{record.external_id} already exists")
        return self.add(replace(record, id=None))

    def refresh_stats(self, external_id, *, rating=None, review_count=None, is_open_now=None, opening_hours=None):
        existing = self.find_by_external_id(external_id)
        if existing is None:
            return None
        self.refreshed.append(external_id)
        return existing

    def update_photo(self, record_id, photo_url, external_id=None):
        for index, record in enumerate(self.records):
            if record.id != record_id:
                continue
            if external_id and any(r.external_id == external_id and r.id != record_id for r in self.records):
                raise StoreConflict(f"{external_id} already exists")
            updated = replace(record, photo_url=photo_url, external_id=external_id or record.external_id)
            self.records[index] = updated
            return updated
        return None

    def paginated_search(self, search_term, filters, center, limit, offset):
        self.search_calls.append((search_term, filters, center, limit, offset))
        if self.search_error is not None:
            raise self.search_error
        pool = self.local_results if self.local_results is not None else self.records
        return list(pool[offset:offset + limit])


class FakeGateway:
    """In-memory stand-in for PlacesGateway."""

    def __init__(self):
        self.places = {}
        self.details = {}
        self.nearby = {}
        self.error = None
        self.nearby_errors = {}
        self.search_calls = []
        self.detail_calls = []
        self.nearby_calls = []

    def search_text(self, query, location_hint=None):
        self.search_calls.append((query, location_hint))
        if self.error is not None:
            raise self.error
        return self.places.get(query)

    def fetch_details(self, provider_id):
        self.detail_calls.append(provider_id)
        if self.error is not None:
            raise self.error
        return self.details.get(provider_id)

    def nearby_search(self, cell, category, page_token=None):
        self.nearby_calls.append((cell.name, category, page_token))
        key = (cell.name, category)
        if key in self.nearby_errors:
            raise self.nearby_errors[key]
        return list(self.nearby.get(key, [])), None


def make_record(name, **kwargs):
    kwargs.setdefault("id", None)
    return CatalogRecord(name=name, **kwargs)


def make_details(place_id, name, types=("restaurant",), **kwargs):
    kwargs.setdefault("address", "Rua da Aurora, 100")
    kwargs.setdefault("latitude", -8.06)
    kwargs.setdefault("longitude", -34.88)
    return ProviderDetails(place_id=place_id, name=name, types=list(types), **kwargs)


def make_place(place_id, name, rating=4.5, review_count=50, **kwargs):
    return ProviderPlace(place_id=place_id, name=name, rating=rating, review_count=review_count, **kwargs)


class DummyCursor:
    def __init__(self, connection):
        self.connection = connection

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, sql, params=None):
        self.connection.collector.append((" ".join(sql.split()), params))
        if self.connection.execute_error is not None and self.connection.failures_left != 0:
            if self.connection.failures_left is not None:
                self.connection.failures_left -= 1
            raise self.connection.execute_error

    def fetchone(self):
        return self.connection.rows[0] if self.connection.rows else None

    def fetchall(self):
        return list(self.connection.rows)


class DummyConnection:
    """psycopg2 connection double; `execute_error` is raised `failures_left` times (always when None)."""

    def __init__(self, rows=None, execute_error=None, failures_left=None):
        self.collector = []
        self.rows = rows or []
        self.execute_error = execute_error
        self.failures_left = failures_left
        self.commits = 0
        self.rollbacks = 0
        self.cursor_factories = []

    def cursor(self, cursor_factory=None):
        self.cursor_factories.append(cursor_factory)
        return DummyCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


class DummyPool:
    def __init__(self, connection):
        self.connection = connection
        self.get_called = False
        self.put_called = False

    def getconn(self):
        self.get_called = True
        return self.connection

    def putconn(self, conn):
        assert conn is self.connection
        self.put_called = True


def install_pool(connection):
    """Point the module-level pool at `connection`; callers reset `db._connection_pool`."""
    dummy_pool = DummyPool(connection)
    db._connection_pool = dummy_pool
    return dummy_pool
