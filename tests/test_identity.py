"""
Tests for identity resolution: cache behaviour, persisted profiles,
the HTTP resolver and batched resolution.
"""
import threading

import httpx
import pytest

from leaderboard_engine.core.errors import IdentityResolutionError
from leaderboard_engine.models.user_profile import ProfileKind, UserProfile
from leaderboard_engine.services.identity import (
    FallbackIdentityResolver,
    HttpIdentityResolver,
    Identity,
    IdentityCache,
    IdentityService,
    fallback_identity,
    short_address,
)

WALLET = "0xAbCdEf0123456789aBcDeF0123456789AbCdEf01"


class TickClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class CountingResolver:
    def __init__(self):
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def resolve(self, user_id: str) -> Identity:
        with self._lock:
            self.calls.append(user_id)
        return Identity(user_id=user_id, display_name=f"@{user_id}", avatar_url="https://img/x.png", source="farcaster")


def _service(db, clock, resolver, cache=None, **kwargs) -> IdentityService:
    return IdentityService(db, cache or IdentityCache(), resolver, clock=clock, **kwargs)


def test_short_address():
    assert short_address(WALLET) == "0xAbCd...Ef01"
    assert short_address("alice") == "alice"
    assert fallback_identity(WALLET).source == "address"


class TestIdentityCache:
    def test_entries_expire(self):
        tick = TickClock()
        cache = IdentityCache(ttl_seconds=10, max_size=5, clock=tick)
        cache.put(fallback_identity("a"))
        assert cache.get("a") is not None
        tick.now = 10
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_least_recently_used_evicted(self):
        cache = IdentityCache(ttl_seconds=100, max_size=2, clock=TickClock())
        cache.put(fallback_identity("a"))
        cache.put(fallback_identity("b"))
        cache.get("a")
        cache.put(fallback_identity("c"))
        assert "a" in cache and "c" in cache
        assert "b" not in cache

    def test_expired_entries_evicted_first(self):
        tick = TickClock()
        cache = IdentityCache(ttl_seconds=10, max_size=2, clock=tick)
        cache.put(fallback_identity("old"))
        tick.now = 5
        cache.put(fallback_identity("b"))
        cache.get("old")  # most recently used, but about to expire
        tick.now = 11
        cache.put(fallback_identity("c"))
        assert len(cache) == 2
        assert "b" in cache and "c" in cache


class TestIdentityService:
    def test_cache_hit_skips_resolver(self, db, clock):
        resolver = CountingResolver()
        service = _service(db, clock, resolver)
        service.resolve("alice")
        service.resolve("alice")
        assert resolver.calls == ["alice"]

    def test_persisted_profile_is_used(self, db, clock):
        resolver = CountingResolver()
        service = _service(db, clock, resolver)
        service.remember(Identity(user_id="alice", display_name="Alice", avatar_url="a.png", source="ens"))
        db.commit()

        fresh = _service(db, clock, resolver)
        identity = fresh.resolve("alice")
        assert identity == Identity(user_id="alice", display_name="Alice", avatar_url="a.png", source="ens")
        assert resolver.calls == []

    def test_basic_profile_drops_avatar(self, db, clock):
        service = _service(db, clock, CountingResolver())
        service.remember(fallback_identity(WALLET))
        db.commit()
        row = db.query(UserProfile).filter_by(user_id=WALLET).one()
        assert row.kind == ProfileKind.basic
        assert row.avatar_url is None
        assert row.display_name == "0xAbCd...Ef01"

    def test_remember_overwrites(self, db, clock):
        service = _service(db, clock, CountingResolver())
        service.remember(fallback_identity("alice"))
        service.remember(Identity(user_id="alice", display_name="Alice", source="ens"))
        db.commit()
        row = db.query(UserProfile).filter_by(user_id="alice").one()
        assert row.kind == ProfileKind.resolved
        assert row.display_name == "Alice"

    def test_expired_profile_is_ignored(self, db, clock):
        resolver = CountingResolver()
        _service(db, clock, resolver).remember(fallback_identity("alice"))
        db.commit()
        clock.advance(days=8)
        _service(db, clock, resolver).resolve("alice")
        assert resolver.calls == ["alice"]

    def test_batches_every_pending_id(self, db, clock):
        resolver = CountingResolver()
        service = _service(db, clock, resolver, batch_size=2)
        ids = [f"u{i}" for i in range(5)]
        results = service.resolve_many(ids + ["u0"])
        assert sorted(resolver.calls) == ids
        assert [results[u].display_name for u in ids] == [f"@{u}" for u in ids]

    def test_failure_yields_none(self, db, clock):
        class Failing:
            def resolve(self, user_id):
                raise IdentityResolutionError(user_id, "boom")

        service = _service(db, clock, Failing())
        assert service.resolve_many(["alice"]) == {"alice": None}

    def test_timeout_yields_fallback(self, db, clock):
        release = threading.Event()

        class Stalling:
            def resolve(self, user_id):
                release.wait(5)
                return Identity(user_id=user_id, display_name="late")

        service = _service(db, clock, Stalling(), timeout_seconds=0.05)
        try:
            identity = service.resolve("alice")
        finally:
            release.set()
        assert identity == fallback_identity("alice")

    def test_unexpected_resolver_exception_yields_none(self, db, clock):
        class Broken:
            def resolve(self, user_id):
                raise RuntimeError("connection pool exhausted")

        service = _service(db, clock, Broken())
        assert service.resolve_many(["alice", "bob"]) == {"alice": None, "bob": None}
        assert len(service.cache) == 0

    def test_resolve_submitter_does_not_persist_on_failure(self, db, clock):
        class Failing:
            def resolve(self, user_id):
                raise IdentityResolutionError(user_id, "boom")

        service = _service(db, clock, Failing())
        identity = service.resolve_submitter("alice")
        db.commit()
        assert identity == fallback_identity("alice")
        assert db.query(UserProfile).filter_by(user_id="alice").count() == 0

    def test_resolve_submitter_does_not_persist_timeout_fallback(self, db, clock):
        release = threading.Event()

        class SlowThenHealthy:
            stalled = True

            def resolve(self, user_id):
                if self.stalled:
                    release.wait(5)
                return Identity(user_id=user_id, display_name="@real", source="farcaster")

        resolver = SlowThenHealthy()
        cache = IdentityCache()
        service = _service(db, clock, resolver, cache=cache, timeout_seconds=0.05)
        try:
            assert service.resolve_submitter("alice") == fallback_identity("alice")
        finally:
            release.set()
        db.commit()
        assert db.query(UserProfile).filter_by(user_id="alice").count() == 0
        assert cache.get("alice") is None

        resolver.stalled = False
        clock.advance(days=3)
        assert service.resolve("alice").display_name == "@real"

    def test_resolve_submitter_persists_resolved_identity(self, db, clock):
        service = _service(db, clock, CountingResolver())
        identity = service.resolve_submitter("alice")
        db.commit()
        assert identity.display_name == "@alice"
        assert db.query(UserProfile).filter_by(user_id="alice").one().kind == ProfileKind.resolved


class TestHttpIdentityResolver:
    def _resolver(self, handler) -> HttpIdentityResolver:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        return HttpIdentityResolver("https://identity.test/", client=client)

    def test_success(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/identity/alice"
            return httpx.Response(200, json={"displayName": "Alice", "avatarUrl": "a.png", "source": "ens"})

        identity = self._resolver(handler).resolve("alice")
        assert identity == Identity(user_id="alice", display_name="Alice", avatar_url="a.png", source="ens")

    def test_default_source(self):
        resolver = self._resolver(lambda request: httpx.Response(200, json={"displayName": "Alice"}))
        assert resolver.resolve("alice").source == "resolved"

    def test_server_error(self):
        resolver = self._resolver(lambda request: httpx.Response(500))
        with pytest.raises(IdentityResolutionError):
            resolver.resolve("alice")

    def test_missing_display_name(self):
        resolver = self._resolver(lambda request: httpx.Response(200, json={"avatarUrl": "a.png"}))
        with pytest.raises(IdentityResolutionError):
            resolver.resolve("alice")

    def test_non_json_body(self):
        resolver = self._resolver(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(IdentityResolutionError):
            resolver.resolve("alice")

    def test_fallback_resolver(self):
        assert FallbackIdentityResolver().resolve("bob") == fallback_identity("bob")

    @pytest.mark.parametrize("body", [
        {"displayName": 42},
        {"displayName": ""},
        {"displayName": "Alice", "avatarUrl": 7},
        {"displayName": "Alice", "avatarUrl": {"href": "a.png"}},
        ["Alice"],
    ])
    def test_malformed_fields_rejected(self, body):
        resolver = self._resolver(lambda request: httpx.Response(200, json=body))
        with pytest.raises(IdentityResolutionError):
            resolver.resolve("alice")

    def test_null_avatar_allowed(self):
        resolver = self._resolver(
            lambda request: httpx.Response(200, json={"displayName": "Alice", "avatarUrl": None})
        )
        assert resolver.resolve("alice").avatar_url is None
