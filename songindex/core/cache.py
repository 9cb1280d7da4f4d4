"""Cache coordination — generation marker and edge response cache.

Two stores share one Redis connection:

- GenerationStore: a single durable timestamp advanced once per accepted
  upstream mutation notification. Every index body embeds it so consumers can
  detect stale copies held by caches outside this service.
- EdgeCache: serialized index responses keyed by canonical request identity
  (method + normalized absolute URL). Entries expire after their TTL or are
  deleted explicitly on invalidation, whichever comes first.

There is no cross-request locking. Two concurrent misses for the same index
may both rebuild and both write; rebuilds are pure so the last write wins.

Both stores raise UpstreamUnavailable(store="cache") when Redis fails. The
coordinator degrades reads (a failed lookup is a miss, a failed marker read
falls back to now, a failed write is logged) and lets invalidation failures
propagate.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import redis as redis_lib
from pydantic import BaseModel, ValidationError

from songindex.core.config import settings
from songindex.core.errors import UpstreamUnavailable
from songindex.core.redis_client import cache_store_errors

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

DEFAULT_PORTS = {"http": 80, "https": 443}
MARKER_STEP = timedelta(microseconds=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Request identity
# ---------------------------------------------------------------------------

def normalize_url(url: str) -> str:
    """Lower-case scheme/host, drop default port and fragment, sort query params."""
    parts = urlsplit(str(url))
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    port = parts.port
    if port is None or DEFAULT_PORTS.get(scheme) == port:
        netloc = host
    else:
        netloc = f"{host}:{port}"
    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))
    return urlunsplit((scheme, netloc, parts.path or "/", query, ""))


def request_identity(method: str, url: str) -> str:
    """Canonical cache key for a request: 'GET https://host/path?a=1'."""
    return f"{method.upper()} {normalize_url(url)}"


# ---------------------------------------------------------------------------
# Generation marker
# ---------------------------------------------------------------------------

def format_marker(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds").replace(
        "+00:00", "Z"
    )


def parse_marker(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored marker; unparseable or missing values give None."""
    if not value:
        return None
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


class GenerationStore:
    """Durable generation marker kept under a single Redis key."""

    def __init__(self, client: redis_lib.Redis, key: str, clock: Clock = utc_now):
        self._client = client
        self._key = key
        self.clock = clock

    def current(self) -> str:
        """Current marker. Initializes it once (SET NX) when absent; never advances."""
        with cache_store_errors("marker read"):
            value = self._client.get(self._key)
            if value:
                return value
            initial = format_marker(self.clock())
            self._client.set(self._key, initial, nx=True)
            return self._client.get(self._key) or initial

    def advance(self) -> str:
        """Set the marker to now, strictly after the previous marker."""
        with cache_store_errors("marker advance"):
            previous = parse_marker(self._client.get(self._key))
            moment = self.clock()
            if previous is not None and moment <= previous:
                moment = previous + MARKER_STEP
            marker = format_marker(moment)
            self._client.set(self._key, marker)
        logger.info(f"Generation advanced to {marker}")
        return marker


# ---------------------------------------------------------------------------
# Edge response cache
# ---------------------------------------------------------------------------

class CachedResponse(BaseModel):
    body: str
    status_code: int = 200
    headers: dict[str, str] = {}
    stored_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class EdgeCache:
    """Serialized responses keyed by request identity, with a per-entry TTL."""

    def __init__(self, client: redis_lib.Redis, prefix: str, clock: Clock = utc_now):
        self._client = client
        self._prefix = prefix
        self._clock = clock

    def _key(self, identity: str) -> str:
        return f"{self._prefix}{identity}"

    def match(self, identity: str) -> Optional[CachedResponse]:
        with cache_store_errors("lookup"):
            raw = self._client.get(self._key(identity))
        if raw is None:
            return None
        try:
            entry = CachedResponse.model_validate_json(raw)
        except ValidationError:
            logger.warning(f"Dropping undecodable cache entry for {identity}")
            self.delete(identity)
            return None
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            return None
        return entry

    def put(self, identity: str, response: CachedResponse, ttl: int) -> None:
        now = self._clock()
        entry = response.model_copy(
            update={"stored_at": now, "expires_at": now + timedelta(seconds=ttl)}
        )
        with cache_store_errors("store"):
            self._client.set(self._key(identity), entry.model_dump_json(), ex=ttl)

    def delete(self, identity: str) -> bool:
        """Remove an entry. Removing an absent entry is not an error."""
        with cache_store_errors("delete"):
            return bool(self._client.delete(self._key(identity)))


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------

class CacheCoordinator:
    def __init__(self, generations: GenerationStore, edge_cache: EdgeCache):
        self.generations = generations
        self.edge_cache = edge_cache

    def get(self, identity: str) -> Optional[CachedResponse]:
        """Cached response for a request, or None. A failed lookup counts as a miss."""
        try:
            entry = self.edge_cache.match(identity)
        except UpstreamUnavailable:
            logger.warning(f"Cache lookup unavailable, treating as MISS: {identity}")
            return None
        logger.info(f"Cache {'HIT' if entry else 'MISS'}: {identity}")
        return entry

    def put(self, identity: str, response: CachedResponse, ttl: int) -> None:
        """Store a response. Scheduled as a background task by the read endpoints."""
        try:
            self.edge_cache.put(identity, response, ttl)
        except UpstreamUnavailable:
            logger.warning(f"Response for {identity} not cached")
            return
        logger.debug(f"Cached {identity} for {ttl}s")

    def current_generation(self) -> str:
        """Current marker; now, unstored, when the marker cannot be read."""
        try:
            return self.generations.current()
        except UpstreamUnavailable:
            fallback = format_marker(self.generations.clock())
            logger.warning(f"Generation marker unavailable, using {fallback}")
            return fallback

    def advance_generation(self) -> str:
        return self.generations.advance()

    def purge_known_derived(self, identities: list[str]) -> int:
        """Delete every listed derived-index entry, present or not.

        Returns how many entries actually existed. A failing delete propagates;
        entries already removed stay removed, and re-running is safe.
        """
        removed = 0
        for identity in identities:
            if self.edge_cache.delete(identity):
                removed += 1
        logger.info(f"Purged derived index cache: {removed}/{len(identities)} entries present")
        return removed


def build_cache_coordinator(
    client: redis_lib.Redis,
    clock: Clock = utc_now,
) -> CacheCoordinator:
    """Coordinator over a Redis client, keyed per settings."""
    return CacheCoordinator(
        GenerationStore(client, settings.generation_key, clock),
        EdgeCache(client, settings.edge_cache_prefix, clock),
    )
