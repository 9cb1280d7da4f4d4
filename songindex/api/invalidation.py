"""Cache invalidation endpoint — called by the row store's change webhook."""

import logging

from fastapi import APIRouter, Depends, Request

from songindex.api.deps import get_cache_coordinator, get_catalog
from songindex.core.cache import CacheCoordinator, request_identity
from songindex.core.catalog import Catalog
from songindex.core.models import InvalidationResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def derived_index_identities(request: Request, catalog: Catalog) -> list[str]:
    """Cache identities of every derived index this service serves."""
    urls = [
        request.url_for("song_index"),
        request.url_for("recordings_index"),
    ]
    urls += [request.url_for("category_index", category=slug) for slug in catalog.categories]
    return [request_identity("GET", str(url)) for url in urls]


@router.post("/invalidate-cache", response_model=InvalidationResponse)
def invalidate_cache(
    request: Request,
    catalog: Catalog = Depends(get_catalog),
    coordinator: CacheCoordinator = Depends(get_cache_coordinator),
):
    """Advance the generation marker and purge all derived index entries.

    Runs to completion before replying, so an acknowledged notification means
    the purge is visible. A failure part-way leaves earlier deletions in place.
    """
    marker = coordinator.advance_generation()
    identities = derived_index_identities(request, catalog)
    removed = coordinator.purge_known_derived(identities)
    return InvalidationResponse(
        success=True,
        last_updated=marker,
        purged_urls=len(identities),
        removed_entries=removed,
    )
