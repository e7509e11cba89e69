"""
Tests for ApiClient.

Tests:
- Verb wrappers flatten responses into ApiResult and never raise
- Exhausted retries surface as a failed ApiResult
- Bodies with dates and decimals encode; unencodable bodies fail cleanly
- Concurrent identical GETs share one request
- Opt-in TTL cache and bypass
- Batches of mixed requests
- Health check and current-user loading, anonymous 401 included
"""

import asyncio
import datetime
import json
from decimal import Decimal

import pytest

from session_client.models.enums import HttpMethod
from session_client.models.request_models import BatchRequest, FormData
from session_client.models.response_models import ApiResult
from session_client.services.response_cache import ResponseCache
from tests.conftest import drop, gated, reply


class TestVerbWrappers:
    """Test get/post/put/delete/post_form_data."""

    @pytest.mark.asyncio
    async def test_get_success(self, services, backend) -> None:
        """Test a 200 becomes a successful result carrying the body."""
        backend.route("GET", "/api/posts", reply(200, {"success": True, "data": [1, 2]}))

        result = await services["api_client"].get("/posts", params={"limit": 2})

        assert result.success is True
        assert result.status == 200
        assert result.data == {"success": True, "data": [1, 2]}
        assert result.error is None
        assert backend.sent("GET", "/api/posts")[0].url.params["limit"] == "2"

    @pytest.mark.asyncio
    async def test_post_client_error(self, services, backend) -> None:
        """Test a 4xx becomes a failed result with the backend's message."""
        backend.route("POST", "/api/posts", reply(400, {"error": "Content is required"}))

        result = await services["api_client"].post("/posts", {"content": ""})

        assert result.success is False
        assert result.status == 400
        assert result.error == "Content is required"

    @pytest.mark.asyncio
    async def test_error_without_body(self, services, backend) -> None:
        """Test a bodiless error falls back to the status line."""
        backend.route("DELETE", "/api/posts/1", reply(404))

        result = await services["api_client"].delete("/posts/1")

        assert result.success is False
        assert result.error == "HTTP 404"
        assert result.data is None

    @pytest.mark.asyncio
    async def test_put_sends_json(self, services, backend) -> None:
        backend.route("PUT", "/api/posts/1", reply(200, {"success": True}))

        result = await services["api_client"].put("/posts/1", {"content": "edited"})

        assert result.success is True
        assert json.loads(backend.sent("PUT", "/api/posts/1")[0].content) == {"content": "edited"}

    @pytest.mark.asyncio
    async def test_post_form_data(self, services, backend) -> None:
        """Test multipart uploads go through the same pipeline."""
        backend.route("POST", "/api/photos/upload", reply(201, {"success": True}))
        form = FormData()
        form.add_field("purpose", "PERSONAL")
        form.add_file("photos", "me.jpg", b"\xff\xd8", "image/jpeg")

        result = await services["api_client"].post_form_data("/photos/upload", form)

        assert result.success is True
        assert result.status == 201
        request = backend.sent("POST", "/api/photos/upload")[0]
        assert request.headers["Content-Type"].startswith("multipart/form-data")

    @pytest.mark.asyncio
    async def test_network_exhaustion_never_raises(self, services, backend, sleep) -> None:
        """Test an unreachable backend yields status 500 instead of an exception."""
        backend.route("GET", "/api/posts", drop)

        result = await services["api_client"].get("/posts")

        assert result.success is False
        assert result.status == 500
        assert "failed after 3 attempts" in result.error
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_server_exhaustion_keeps_status(self, services, backend) -> None:
        """Test exhausted 5xx retries report the last status."""
        backend.route("GET", "/api/posts", reply(503))

        result = await services["api_client"].get("/posts")

        assert result.success is False
        assert result.status == 503

    @pytest.mark.asyncio
    async def test_dates_and_decimals_encode(self, services, backend) -> None:
        """Test non-native JSON values are encoded rather than raising."""
        backend.route("POST", "/api/events", reply(201, {"success": True}))

        result = await services["api_client"].post(
            "/events",
            {"when": datetime.date(2025, 1, 1), "amount": Decimal("9.50")},
        )

        assert result.success is True
        body = json.loads(backend.sent("POST", "/api/events")[0].content)
        assert body == {"when": "2025-01-01", "amount": "9.50"}

    @pytest.mark.asyncio
    async def test_unencodable_body_never_raises(self, services, backend) -> None:
        """Test a body that cannot become JSON fails without a request."""
        result = await services["api_client"].post("/events", {"blob": object()})

        assert result.success is False
        assert result.status == 500
        assert result.error
        assert backend.requests == []


class TestHealthCheck:
    """Test health_check."""

    @pytest.mark.asyncio
    async def test_healthy(self, services, backend) -> None:
        backend.route("GET", "/api/health", reply(200, {"status": "ok"}))

        health = await services["api_client"].health_check()

        assert health.healthy is True
        assert health.status == 200
        assert health.data == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_unreachable(self, services, backend) -> None:
        """Test connectivity failure reports unhealthy without raising."""
        backend.route("GET", "/api/health", drop)

        health = await services["api_client"].health_check()

        assert health.healthy is False
        assert health.status is None
        assert health.error is not None

    @pytest.mark.asyncio
    async def test_unauthorized_is_not_a_logout(self, services, backend, navigator, session) -> None:
        """Test a 401 reports unhealthy without refresh, session check or redirect."""
        backend.route("GET", "/api/health", reply(401, {"error": "Unauthorized"}))

        health = await services["api_client"].health_check()

        assert health.healthy is False
        assert health.status == 401
        assert navigator.redirects == []
        assert session.is_authenticated
        assert [r.url.path for r in backend.requests] == ["/api/health"]


class TestFetchCurrentUser:
    """Test fetch_current_user."""

    @pytest.mark.asyncio
    async def test_loads_user_into_session(self, services, backend, session, user_store) -> None:
        """Test the camelCase payload is normalised and stored."""
        session.clear()
        backend.route(
            "GET", "/api/auth/me",
            reply(200, {
                "success": True,
                "data": {
                    "id": 42,
                    "email": "grace@example.org",
                    "username": "grace",
                    "firstName": "Grace",
                    "isAdmin": True,
                    "isSuperAdmin": False,
                    "totpVerified": True,
                },
            }),
        )

        user = await services["api_client"].fetch_current_user()

        assert user is not None
        assert user.id == "42"
        assert user.first_name == "Grace"
        assert user.is_admin is True
        assert user.totp_verified is True
        assert session.current_user == user
        assert user_store.load_user() == user

    @pytest.mark.asyncio
    async def test_rejected_payload(self, services, backend, session) -> None:
        """Test a payload without a user leaves the session untouched."""
        session.clear()
        backend.route("GET", "/api/auth/me", reply(200, {"success": True, "data": "nope"}))

        assert await services["api_client"].fetch_current_user() is None
        assert not session.is_authenticated

    @pytest.mark.asyncio
    async def test_anonymous_user_is_not_a_logout(self, services, backend, navigator, session) -> None:
        """Test a 401 from the current-user endpoint just means nobody is signed in."""
        session.clear()
        backend.route("GET", "/api/auth/me", reply(401, {"error": "Not authenticated"}))

        assert await services["api_client"].fetch_current_user() is None

        assert navigator.redirects == []
        assert navigator.messages == []
        assert len(backend.sent("GET", "/api/auth/me")) == 1
        assert backend.sent("POST", "/api/auth/refresh") == []

    @pytest.mark.asyncio
    async def test_expired_token_is_not_refreshed(self, services, backend, navigator) -> None:
        """Test even an expired-token 401 is reported as-is."""
        backend.route("GET", "/api/auth/me", reply(401, {"code": "ACCESS_TOKEN_EXPIRED"}))

        assert await services["api_client"].fetch_current_user() is None
        assert backend.sent("POST", "/api/auth/refresh") == []
        assert navigator.redirects == []


class TestRequestDeduplication:
    """Test in-flight sharing of identical GETs."""

    @pytest.mark.asyncio
    async def test_concurrent_identical_gets_share_one_request(self, services, backend) -> None:
        gate = asyncio.Event()
        backend.route("GET", "/api/feed", gated(gate, 200, {"posts": [1, 2]}))
        api_client = services["api_client"]

        waiters = asyncio.gather(*(api_client.get("/feed", {"limit": 2}) for _ in range(5)))
        await asyncio.sleep(0)
        gate.set()
        results = await waiters

        assert len(backend.sent("GET", "/api/feed")) == 1
        assert all(result.success for result in results)
        assert {json.dumps(result.data) for result in results} == {'{"posts": [1, 2]}'}
        assert api_client.deduplicated == 4

    @pytest.mark.asyncio
    async def test_different_params_are_separate(self, services, backend) -> None:
        backend.route("GET", "/api/feed", reply(200, {"posts": []}))
        api_client = services["api_client"]

        await asyncio.gather(api_client.get("/feed", {"page": 1}), api_client.get("/feed", {"page": 2}))

        assert len(backend.sent("GET", "/api/feed")) == 2
        assert api_client.deduplicated == 0

    @pytest.mark.asyncio
    async def test_sequential_gets_are_not_shared(self, services, backend) -> None:
        """Test only overlapping calls share; settled results are not reused."""
        backend.route("GET", "/api/feed", reply(200, {"posts": []}))
        api_client = services["api_client"]

        await api_client.get("/feed")
        await api_client.get("/feed")

        assert len(backend.sent("GET", "/api/feed")) == 2

    @pytest.mark.asyncio
    async def test_concurrent_posts_are_never_shared(self, services, backend) -> None:
        backend.route("POST", "/api/posts", reply(201, {"success": True}))
        api_client = services["api_client"]

        await asyncio.gather(
            api_client.post("/posts", {"content": "a"}),
            api_client.post("/posts", {"content": "a"}),
        )

        assert len(backend.sent("POST", "/api/posts")) == 2


class TestResponseCaching:
    """Test the opt-in TTL cache on GET."""

    @pytest.mark.asyncio
    async def test_cache_hit_within_ttl(self, services, backend) -> None:
        backend.route("GET", "/api/topics", reply(200, {"topics": ["a"]}))
        api_client = services["api_client"]

        first = await api_client.get("/topics", use_cache=True)
        second = await api_client.get("/topics", use_cache=True)

        assert first.data == second.data == {"topics": ["a"]}
        assert len(backend.sent("GET", "/api/topics")) == 1
        assert api_client.cache.hits == 1

    @pytest.mark.asyncio
    async def test_caching_is_opt_in(self, services, backend) -> None:
        backend.route("GET", "/api/topics", reply(200, {"topics": []}))
        api_client = services["api_client"]

        await api_client.get("/topics")
        await api_client.get("/topics", use_cache=True)

        assert len(backend.sent("GET", "/api/topics")) == 2

    @pytest.mark.asyncio
    async def test_bypass_refetches_and_refreshes_entry(self, services, backend) -> None:
        """Test bypass_cache skips the lookup but stores the fresh result."""
        backend.route(
            "GET", "/api/topics",
            reply(200, {"version": 1}),
            reply(200, {"version": 2}),
        )
        api_client = services["api_client"]

        await api_client.get("/topics", use_cache=True)
        bypassed = await api_client.get("/topics", use_cache=True, bypass_cache=True)
        cached = await api_client.get("/topics", use_cache=True)

        assert bypassed.data == {"version": 2}
        assert cached.data == {"version": 2}
        assert len(backend.sent("GET", "/api/topics")) == 2

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, services, backend) -> None:
        backend.route("GET", "/api/topics", reply(404), reply(200, {"topics": []}))
        api_client = services["api_client"]

        missing = await api_client.get("/topics", use_cache=True)
        found = await api_client.get("/topics", use_cache=True)

        assert missing.success is False
        assert found.success is True
        assert len(backend.sent("GET", "/api/topics")) == 2

    @pytest.mark.asyncio
    async def test_clear_cache(self, services, backend) -> None:
        backend.route("GET", "/api/topics", reply(200, {"topics": []}))
        api_client = services["api_client"]

        await api_client.get("/topics", use_cache=True)
        api_client.clear_cache()
        await api_client.get("/topics", use_cache=True)

        assert len(backend.sent("GET", "/api/topics")) == 2


class TestResponseCache:
    """Test expiry and size bounds with a controlled clock."""

    @staticmethod
    def _clock(now: list[float]):
        return lambda: now[0]

    def test_entry_expires_after_ttl(self) -> None:
        now = [100.0]
        cache = ResponseCache(default_ttl=30.0, max_entries=10, clock=self._clock(now))
        cache.set("k", ApiResult(success=True, status=200, data={"n": 1}))

        now[0] = 129.0
        assert cache.get("k").data == {"n": 1}

        now[0] = 130.0
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_explicit_ttl_overrides_default(self) -> None:
        now = [0.0]
        cache = ResponseCache(default_ttl=30.0, max_entries=10, clock=self._clock(now))
        cache.set("k", ApiResult(success=True, status=200), ttl=5.0)

        now[0] = 6.0
        assert cache.get("k") is None

    def test_oldest_entry_evicted_past_bound(self) -> None:
        cache = ResponseCache(default_ttl=30.0, max_entries=2, clock=lambda: 0.0)
        for key in ("a", "b", "c"):
            cache.set(key, ApiResult(success=True, status=200))

        assert len(cache) == 2
        assert cache.get("a") is None
        assert cache.get("c") is not None

    def test_expired_entries_swept_before_live_ones(self) -> None:
        now = [0.0]
        cache = ResponseCache(default_ttl=30.0, max_entries=2, clock=self._clock(now))
        cache.set("stale", ApiResult(success=True, status=200), ttl=1.0)
        cache.set("live", ApiResult(success=True, status=200))

        now[0] = 5.0
        cache.set("new", ApiResult(success=True, status=200))

        assert cache.get("live") is not None
        assert cache.get("new") is not None
        assert cache.get("stale") is None

    def test_returned_result_is_a_copy(self) -> None:
        cache = ResponseCache(default_ttl=30.0, max_entries=10)
        cache.set("k", ApiResult(success=True, status=200, data={"items": [1]}))

        cache.get("k").data["items"].append(2)

        assert cache.get("k").data == {"items": [1]}


class TestBatch:
    """Test batch."""

    @pytest.mark.asyncio
    async def test_mixed_batch(self, services, backend) -> None:
        """Test each entry resolves independently and is keyed by id or endpoint."""
        backend.route("GET", "/api/a", reply(200, {"a": 1}))
        backend.route("POST", "/api/b", reply(400, {"error": "Bad input"}))
        backend.route("GET", "/api/c", drop)

        results = await services["api_client"].batch([
            BatchRequest(endpoint="/a"),
            BatchRequest(id="create-b", endpoint="/b", method=HttpMethod.POST, body={"x": 1}),
            BatchRequest(endpoint="/c"),
        ])

        assert set(results) == {"/a", "create-b", "/c"}
        assert results["/a"].data == {"a": 1}
        assert results["create-b"].status == 400
        assert results["create-b"].error == "Bad input"
        assert results["/c"].success is False
        assert results["/c"].status == 500
        assert json.loads(backend.sent("POST", "/api/b")[0].content) == {"x": 1}

    @pytest.mark.asyncio
    async def test_batch_uses_cache(self, services, backend) -> None:
        backend.route("GET", "/api/a", reply(200, {"a": 1}))
        api_client = services["api_client"]
        await api_client.get("/a", use_cache=True)

        results = await api_client.batch([BatchRequest(endpoint="/a", use_cache=True)])

        assert results["/a"].data == {"a": 1}
        assert len(backend.sent("GET", "/api/a")) == 1

    @pytest.mark.asyncio
    async def test_empty_batch(self, services) -> None:
        assert await services["api_client"].batch([]) == {}
