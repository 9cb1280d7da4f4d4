"""FastAPI dependencies for the catalog, row store and cache coordinator."""

from fastapi import Request

from songindex.core import redis_client, row_store
from songindex.core.cache import CacheCoordinator, build_cache_coordinator
from songindex.core.catalog import Catalog
from songindex.core.row_store import RowStoreClient


def get_catalog(request: Request) -> Catalog:
    """The catalog loaded at startup."""
    return request.app.state.catalog


def get_row_store_client() -> RowStoreClient:
    return row_store.get_row_store()


def get_cache_coordinator() -> CacheCoordinator:
    return build_cache_coordinator(redis_client.get_redis_client())
