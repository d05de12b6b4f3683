"""
Identity resolution for leaderboard display.

Lookup order per user id
------------------------
  1. IdentityCache     — in-process, TTL + max size, owned by the app
  2. UserProfile row   — persisted tagged union ("resolved" | "basic")
  3. IdentityResolver  — external, called in batches through a thread pool

A resolver call that times out degrades to the fallback identity.
A resolver call that fails (IdentityResolutionError, or any other exception
from the resolver) yields None and the caller drops whatever it wanted to
attach the identity to. Neither outcome is cached or persisted, so the next
lookup asks the resolver again.

Database access stays on the calling thread; only resolver calls run in
worker threads.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import Callable, Iterable, Optional, Protocol

import httpx
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from leaderboard_engine.core.config import settings
from leaderboard_engine.core.errors import IdentityResolutionError
from leaderboard_engine.db.base import insert_if_missing, store_errors
from leaderboard_engine.models.user_profile import ProfileKind, UserProfile
from leaderboard_engine.services.periods import Clock, utcnow

logger = logging.getLogger(__name__)

PROFILE_TTL = timedelta(days=7)
SOURCE_ADDRESS = "address"


# ---------------------------------------------------------------------------
# Identity value
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Identity:
    user_id: str
    display_name: str
    avatar_url: Optional[str] = None
    source: str = SOURCE_ADDRESS

    def to_dict(self) -> dict:
        return asdict(self)


def short_address(user_id: str) -> str:
    if len(user_id) > 10:
        return f"{user_id[:6]}...{user_id[-4:]}"
    return user_id


def fallback_identity(user_id: str) -> Identity:
    return Identity(user_id=user_id, display_name=short_address(user_id))


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class IdentityCache:
    """
    TTL cache with a size cap. When full, expired entries go first, then the
    least recently used. Clock returns seconds (monotonic by default).
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_size: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = settings.IDENTITY_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.max_size = settings.IDENTITY_CACHE_MAX_SIZE if max_size is None else max_size
        self._clock = clock
        self._entries: OrderedDict[str, tuple[Identity, float]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Optional[Identity]:
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            identity, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[user_id]
                return None
            self._entries.move_to_end(user_id)
            return identity

    def put(self, identity: Identity) -> None:
        with self._lock:
            self._entries[identity.user_id] = (identity, self._clock() + self.ttl_seconds)
            self._entries.move_to_end(identity.user_id)
            if len(self._entries) > self.max_size:
                self._evict()

    def _evict(self) -> None:
        now = self._clock()
        for key in [k for k, (_, exp) in self._entries.items() if now >= exp]:
            del self._entries[key]
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user_id: str) -> bool:
        return self.get(user_id) is not None


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------

class IdentityResolver(Protocol):
    def resolve(self, user_id: str) -> Identity: ...


class FallbackIdentityResolver:
    """Offline resolver: every user gets the shortened-address identity."""

    def resolve(self, user_id: str) -> Identity:
        return fallback_identity(user_id)


class HttpIdentityResolver:
    """GET {base_url}/identity/{user_id} -> {"displayName": ..., "avatarUrl": ...}"""

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(
            timeout=settings.IDENTITY_TIMEOUT_SECONDS if timeout is None else timeout
        )

    def resolve(self, user_id: str) -> Identity:
        try:
            response = self._client.get(f"{self.base_url}/identity/{user_id}")
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise IdentityResolutionError(user_id, exc.__class__.__name__) from exc

        if not isinstance(payload, dict):
            raise IdentityResolutionError(user_id, "response is not an object")
        display_name = payload.get("displayName")
        if not isinstance(display_name, str) or not display_name:
            raise IdentityResolutionError(user_id, "response has no displayName")
        avatar_url = payload.get("avatarUrl")
        if avatar_url is not None and not isinstance(avatar_url, str):
            raise IdentityResolutionError(user_id, "avatarUrl is not a string")
        source = payload.get("source")
        return Identity(
            user_id=user_id,
            display_name=display_name,
            avatar_url=avatar_url,
            source=source if isinstance(source, str) and source else "resolved",
        )

    def close(self) -> None:
        self._client.close()


def build_resolver() -> IdentityResolver:
    if settings.IDENTITY_SERVICE_URL:
        return HttpIdentityResolver(settings.IDENTITY_SERVICE_URL)
    return FallbackIdentityResolver()


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class IdentityService:
    def __init__(
        self,
        db: Session,
        cache: IdentityCache,
        resolver: IdentityResolver,
        batch_size: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.cache = cache
        self.resolver = resolver
        self.batch_size = settings.IDENTITY_BATCH_SIZE if batch_size is None else batch_size
        self.timeout_seconds = (
            settings.IDENTITY_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        )
        self._clock = clock

    def resolve_many(self, user_ids: Iterable[str]) -> dict[str, Optional[Identity]]:
        """Map each id to its Identity, or None when resolution failed."""
        results, _ = self._lookup(user_ids)
        return results

    def resolve(self, user_id: str) -> Optional[Identity]:
        return self.resolve_many([user_id]).get(user_id)

    def _lookup(
        self, user_ids: Iterable[str]
    ) -> tuple[dict[str, Optional[Identity]], set[str]]:
        """Like resolve_many, plus the ids that only got a timeout fallback."""
        results: dict[str, Optional[Identity]] = {}
        degraded: set[str] = set()
        pending: list[str] = []
        for user_id in dict.fromkeys(user_ids):
            identity = self.cache.get(user_id)
            if identity is None:
                identity = self._load_profile(user_id)
                if identity is not None:
                    self.cache.put(identity)
            if identity is None:
                pending.append(user_id)
            else:
                results[user_id] = identity

        for start in range(0, len(pending), self.batch_size):
            self._resolve_batch(pending[start:start + self.batch_size], results, degraded)
        return results, degraded

    def _resolve_batch(
        self,
        batch: list[str],
        results: dict[str, Optional[Identity]],
        degraded: set[str],
    ) -> None:
        executor = ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="identity")
        try:
            futures = {executor.submit(self.resolver.resolve, uid): uid for uid in batch}
            done, not_done = wait(futures, timeout=self.timeout_seconds)
            for future in done:
                user_id = futures[future]
                try:
                    identity = future.result()
                except IdentityResolutionError as exc:
                    logger.warning("Identity resolution failed for %s: %s", user_id, exc.message)
                    results[user_id] = None
                    continue
                except Exception:
                    logger.warning("Identity resolver raised for %s", user_id, exc_info=True)
                    results[user_id] = None
                    continue
                self.cache.put(identity)
                results[user_id] = identity
            for future in not_done:
                user_id = futures[future]
                logger.warning(
                    "Identity resolution timed out after %.1fs for %s; using fallback",
                    self.timeout_seconds, user_id,
                )
                results[user_id] = fallback_identity(user_id)
                degraded.add(user_id)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    # ---- persisted profiles ----------------------------------------------

    def _load_profile(self, user_id: str) -> Optional[Identity]:
        with store_errors("load_profile"):
            row = self.db.execute(
                select(
                    UserProfile.kind,
                    UserProfile.display_name,
                    UserProfile.avatar_url,
                    UserProfile.source,
                ).where(
                    UserProfile.user_id == user_id,
                    UserProfile.expires_at > self._clock(),
                )
            ).one_or_none()
        if row is None:
            return None
        if row.kind == ProfileKind.resolved:
            return Identity(
                user_id=user_id,
                display_name=row.display_name,
                avatar_url=row.avatar_url,
                source=row.source,
            )
        return Identity(user_id=user_id, display_name=row.display_name)

    def remember(self, identity: Identity) -> None:
        """Persist an identity as the user's profile for PROFILE_TTL."""
        kind = ProfileKind.basic if identity.source == SOURCE_ADDRESS else ProfileKind.resolved
        now = self._clock()
        values = {
            "kind": kind,
            "display_name": identity.display_name,
            "avatar_url": identity.avatar_url if kind == ProfileKind.resolved else None,
            "source": identity.source,
            "updated_at": now,
            "expires_at": now + PROFILE_TTL,
        }
        with store_errors("remember_profile"):
            created = insert_if_missing(
                self.db, UserProfile, {"user_id": identity.user_id, **values}, ("user_id",)
            )
            if not created:
                self.db.execute(
                    update(UserProfile)
                    .where(UserProfile.user_id == identity.user_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
        self.cache.put(identity)

    def resolve_submitter(self, user_id: str) -> Identity:
        """
        Resolve the submitting user's identity and persist it. A failed or
        timed-out lookup returns the fallback without persisting it.
        """
        results, degraded = self._lookup([user_id])
        identity = results.get(user_id)
        if identity is None or user_id in degraded:
            return fallback_identity(user_id)
        self.remember(identity)
        return identity
