"""
API Client Service.

Flat, never-raising wrappers over ``RequestDispatcher.call``.  Every
method resolves to an ``ApiResult`` (or ``HealthStatus`` /
``CurrentUser``) so calling code can branch on ``result.success``
instead of catching transport exceptions.

``GET`` calls are deduplicated: concurrent identical requests share one
dispatch and its result.  Callers can also opt a ``GET`` into the TTL
response cache; only successful results are cached.
"""

from __future__ import annotations

import asyncio
from typing import Hashable, Optional, Sequence

import httpx
from pydantic import ValidationError

from session_client.auth import SessionManager
from session_client.config import ClientConfig
from session_client.errors import NetworkFailure
from session_client.logger import StructuredLogger
from session_client.models.enums import HttpMethod
from session_client.models.request_models import (
    BatchRequest,
    FormData,
    QueryParams,
    RequestBody,
    RequestOptions,
)
from session_client.models.response_models import ApiResult, ErrorBody, HealthStatus
from session_client.models.user import CurrentUser
from session_client.services.base_service import BaseService
from session_client.services.coordination import KeyedSingleFlight
from session_client.services.dispatcher import RequestDispatcher
from session_client.services.response_cache import ResponseCache
from session_client.utils.string_helpers import normalize_keys

# Status reported when a call failed without ever receiving a response.
_NO_RESPONSE_STATUS = 500


class ApiClient(BaseService):
    """Caller-facing convenience layer.

    Parameters
    ----------
    dispatcher:
        Performs the actual dispatch, retry and auth recovery.
    session:
        Receives the user loaded by :meth:`fetch_current_user`.
    config:
        Supplies ``ME_PATH``, ``HEALTH_PATH`` and the cache defaults.
    logger:
        Structured JSON logger.
    cache:
        Response cache for opted-in ``GET`` calls; built from *config*
        when omitted.
    """

    def __init__(
        self,
        dispatcher: RequestDispatcher,
        session: SessionManager,
        config: ClientConfig,
        logger: StructuredLogger,
        cache: Optional[ResponseCache] = None,
    ) -> None:
        super().__init__(logger)
        self._dispatcher: RequestDispatcher = dispatcher
        self._session: SessionManager = session
        self._config: ClientConfig = config
        self._cache: ResponseCache = cache if cache is not None else ResponseCache(
            default_ttl=config.CACHE_TTL_S,
            max_entries=config.CACHE_MAX_ENTRIES,
        )
        self._in_flight: KeyedSingleFlight[Hashable, ApiResult] = KeyedSingleFlight("get")
        self.deduplicated: int = 0

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    def clear_cache(self) -> None:
        """Drop every cached response (e.g. after the user changes)."""
        self._cache.clear()

    # ------------------------------------------------------------------
    # Verb wrappers
    # ------------------------------------------------------------------

    async def get(
        self,
        endpoint: str,
        params: Optional[QueryParams] = None,
        *,
        use_cache: bool = False,
        cache_ttl: Optional[float] = None,
        bypass_cache: bool = False,
    ) -> ApiResult:
        """GET *endpoint*, sharing the dispatch with identical in-flight GETs.

        With ``use_cache`` a live cached result is returned without a
        request, and a successful result is stored for ``cache_ttl``
        seconds (``CACHE_TTL_S`` by default).  ``bypass_cache`` skips the
        lookup but still stores the fresh result.
        """
        return await self._get(
            endpoint,
            params or {},
            use_cache=use_cache,
            cache_ttl=cache_ttl,
            bypass_cache=bypass_cache,
        )

    async def post(self, endpoint: str, data: Optional[RequestBody] = None) -> ApiResult:
        return await self._execute(endpoint, HttpMethod.POST, body=data)

    async def put(self, endpoint: str, data: Optional[RequestBody] = None) -> ApiResult:
        return await self._execute(endpoint, HttpMethod.PUT, body=data)

    async def delete(self, endpoint: str) -> ApiResult:
        return await self._execute(endpoint, HttpMethod.DELETE)

    async def post_form_data(self, endpoint: str, form: FormData) -> ApiResult:
        """POST a multipart payload; the transport writes the boundary header."""
        return await self._execute(endpoint, HttpMethod.POST, body=form)

    async def batch(self, requests: Sequence[BatchRequest]) -> dict[str, ApiResult]:
        """Run *requests* concurrently; results keyed by ``result_key``.

        Each entry goes through the same path as its single-call
        counterpart, so one failing entry never affects the others.
        """
        results = await asyncio.gather(*(self._run_batch_entry(r) for r in requests))
        self._logger.debug(
            "Batch finished",
            extra={
                "requests": str(len(requests)),
                "failed": str(sum(1 for result in results if not result.success)),
            },
        )
        return {request.result_key: result for request, result in zip(requests, results)}

    # ------------------------------------------------------------------
    # Higher-level helpers
    # ------------------------------------------------------------------

    async def health_check(self) -> HealthStatus:
        """Probe the backend health endpoint.  Never raises.

        A 401 here is reported as unhealthy; it never starts auth recovery.
        """
        try:
            response = await self._dispatcher.call(
                self._config.HEALTH_PATH,
                RequestOptions(skip_auth_recovery=True),
            )
        except (NetworkFailure, httpx.HTTPError) as exc:
            self._logger.warning("Health check failed: %s", exc)
            status = exc.status if isinstance(exc, NetworkFailure) else None
            return HealthStatus(healthy=False, status=status, error=str(exc))

        payload = _parse_json(response)
        healthy = response.is_success
        if not healthy:
            self._logger.warning(
                "Health check returned an error status",
                extra={"status": str(response.status_code)},
            )
        return HealthStatus(
            healthy=healthy,
            status=response.status_code,
            data=payload,
            error=None if healthy else _error_text(response, payload),
        )

    async def fetch_current_user(self) -> Optional[CurrentUser]:
        """Load the signed-in user from ``ME_PATH`` into the session.

        Returns ``None`` (and leaves the session untouched) when nobody is
        signed in, the call fails or the payload does not describe a user.
        An anonymous 401 is not a session failure: no refresh, no logout
        and no redirect follow from it.
        """
        result = await self._get(self._config.ME_PATH, {}, skip_auth_recovery=True)
        if not result.success or not isinstance(result.data, dict):
            if result.status == httpx.codes.UNAUTHORIZED:
                self._logger.info("No signed-in user")
            return None

        raw_user = result.data.get("data", result.data)
        if not isinstance(raw_user, dict):
            self._logger.warning("Current-user payload is not an object")
            return None

        try:
            user = CurrentUser.model_validate(normalize_keys(raw_user))
        except ValidationError as exc:
            self._logger.warning("Current-user payload failed validation: %s", exc)
            return None

        self._session.set_current_user(user)
        self._logger.info("Loaded current user", extra={"user_id": user.id})
        return user

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _get(
        self,
        endpoint: str,
        params: QueryParams,
        *,
        use_cache: bool = False,
        cache_ttl: Optional[float] = None,
        bypass_cache: bool = False,
        skip_auth_recovery: bool = False,
    ) -> ApiResult:
        key = self._request_key(endpoint, params, skip_auth_recovery)

        if use_cache and not bypass_cache:
            cached = self._cache.get(key)
            if cached is not None:
                self._logger.debug("Cache hit for %s", endpoint)
                return cached

        if self._in_flight.in_flight(key):
            self.deduplicated += 1
            self._logger.debug("Joining in-flight GET %s", endpoint)

        result = await self._in_flight.run(
            key,
            lambda: self._execute(
                endpoint,
                HttpMethod.GET,
                params=params,
                skip_auth_recovery=skip_auth_recovery,
            ),
        )
        if use_cache and result.success:
            self._cache.set(key, result, cache_ttl)
        return result

    async def _run_batch_entry(self, request: BatchRequest) -> ApiResult:
        if request.method is HttpMethod.GET:
            return await self._get(
                request.endpoint,
                request.params,
                use_cache=request.use_cache,
                cache_ttl=request.cache_ttl,
                bypass_cache=request.bypass_cache,
            )
        return await self._execute(
            request.endpoint,
            request.method,
            body=request.body,
            params=request.params,
        )

    def _request_key(
        self,
        endpoint: str,
        params: QueryParams,
        skip_auth_recovery: bool,
    ) -> Hashable:
        query = tuple(sorted((name, str(value)) for name, value in params.items()))
        return (self._dispatcher.build_url(endpoint), query, skip_auth_recovery)

    async def _execute(
        self,
        endpoint: str,
        method: HttpMethod,
        *,
        body: Optional[RequestBody] = None,
        params: Optional[QueryParams] = None,
        skip_auth_recovery: bool = False,
    ) -> ApiResult:
        try:
            options = RequestOptions(
                method=method,
                body=body,
                params=params or {},
                skip_auth_recovery=skip_auth_recovery,
            )
            response = await self._dispatcher.call(endpoint, options)
        except NetworkFailure as exc:
            self._logger.error("API call failed: %s", exc.message)
            return ApiResult(
                success=False,
                status=exc.status or _NO_RESPONSE_STATUS,
                error=exc.message,
            )
        except httpx.HTTPError as exc:
            self._logger.error("API call failed: %s", exc)
            return ApiResult(success=False, status=_NO_RESPONSE_STATUS, error=str(exc))
        except (TypeError, ValueError) as exc:
            # Unencodable body or invalid options; nothing was sent.
            self._logger.error("API call not sent for %s %s: %s", method.value, endpoint, exc)
            return ApiResult(success=False, status=_NO_RESPONSE_STATUS, error=str(exc))

        payload = _parse_json(response)
        if response.is_success:
            return ApiResult(success=True, status=response.status_code, data=payload)
        return ApiResult(
            success=False,
            status=response.status_code,
            data=payload,
            error=_error_text(response, payload),
        )


def _parse_json(response: httpx.Response) -> Optional[object]:
    """Decoded JSON body, or ``None`` when the body is empty or not JSON."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _error_text(response: httpx.Response, payload: Optional[object]) -> str:
    if isinstance(payload, dict):
        try:
            description = ErrorBody.model_validate(payload).description
        except ValidationError:
            description = None
        if description:
            return description
    return f"HTTP {response.status_code}"
