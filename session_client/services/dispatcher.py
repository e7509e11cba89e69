"""
Request Dispatcher.

The single entry point every API call goes through.  For one logical
call it:

1. waits (bounded) for an in-flight token refresh,
2. builds headers (JSON content type, caller headers, TOTP step-up
   headers, CSRF token on anything but GET),
3. sends with transient-failure retry (5xx and connectivity errors,
   exponential backoff from ``RetryPolicy``),
4. classifies the final response and, depending on the class, returns
   it, redirects for TOTP step-up, recovers auth (refresh or session
   check, then one re-dispatch) or forces a logout.

Auth recovery is bounded by construction: a call moves from
``SENDING_GEN0`` to ``SENDING_GEN1`` at most once, and a 401 seen in
``SENDING_GEN1`` always ends in logout.  Total physical attempts per
logical call are therefore at most ``2 * max_attempts``.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Union
from urllib.parse import urljoin

import httpx
from pydantic_core import to_json

from session_client.auth import SessionManager
from session_client.config import ClientConfig
from session_client.errors import NetworkFailure
from session_client.logger import StructuredLogger
from session_client.models.enums import (
    DispatchState,
    HttpMethod,
    LogoutReason,
    ResponseKind,
)
from session_client.models.request_models import (
    FileTuple,
    FormData,
    RequestBody,
    RequestDescriptor,
    RequestOptions,
)
from session_client.models.response_models import DispatchStats, ResponseClassification
from session_client.navigation import STEP_UP_EXPIRED_MESSAGE, TOTP_SETUP_MESSAGE, Navigator
from session_client.services.base_service import BaseService
from session_client.services.classifier import classify_exception, classify_response
from session_client.services.coordination import SleepFunc
from session_client.services.logout_guard import LogoutGuard
from session_client.services.retry_policy import RetryPolicy
from session_client.services.session_verifier import SessionVerifier
from session_client.services.token_refresh import TokenRefreshCoordinator
from session_client.utils.audit import SecurityAction, log_security_event

_AUTH_KINDS: frozenset[ResponseKind] = frozenset({
    ResponseKind.AUTH_EXPIRED,
    ResponseKind.SESSION_INVALID,
})


class RequestDispatcher(BaseService):
    """Sends requests and runs the auth-recovery state machine.

    Parameters
    ----------
    client:
        Cookie-carrying transport (``credentials: include``).
    session:
        Source of the CSRF token and TOTP headers.
    retry_policy:
        Attempt budget and backoff table for transient failures.
    refresher:
        Single-flight token refresh.
    verifier:
        Single-flight session probe.
    logout_guard:
        Single-flight forced logout.
    navigator:
        Receives step-up redirects.
    config:
        Header names, settle delay and entry-point paths.
    logger:
        Structured JSON logger.
    sleep:
        Awaitable sleep for backoff and settle delays (injectable for
        tests).
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        session: SessionManager,
        retry_policy: RetryPolicy,
        refresher: TokenRefreshCoordinator,
        verifier: SessionVerifier,
        logout_guard: LogoutGuard,
        navigator: Navigator,
        config: ClientConfig,
        logger: StructuredLogger,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        super().__init__(logger)
        self._client: httpx.AsyncClient = client
        self._session: SessionManager = session
        self._retry_policy: RetryPolicy = retry_policy
        self._refresher: TokenRefreshCoordinator = refresher
        self._verifier: SessionVerifier = verifier
        self._logout_guard: LogoutGuard = logout_guard
        self._navigator: Navigator = navigator
        self._config: ClientConfig = config
        self._sleep: SleepFunc = sleep
        self._stats: DispatchStats = DispatchStats()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def stats(self) -> DispatchStats:
        """Snapshot of the running counters."""
        return self._stats.model_copy()

    def reset_stats(self) -> None:
        """Zero every counter."""
        self._stats = DispatchStats()

    def build_url(self, endpoint: str) -> str:
        """Absolute URLs pass through; anything else joins the API root."""
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        base = self._config.API_BASE_URL
        if not base:
            return endpoint
        return urljoin(base.rstrip("/") + "/", endpoint.lstrip("/"))

    async def call(
        self,
        url: str,
        options: Optional[RequestOptions] = None,
        retry_count: int = 0,
    ) -> httpx.Response:
        """Dispatch one logical request.

        Returns the final response: successful, a definitive client error,
        or the response that led to a logout/step-up redirect.

        Raises:
            NetworkFailure: If connectivity errors or 5xx responses
                exhausted the retry budget.
            PydanticSerializationError: If the body cannot be encoded as
                JSON.  Nothing is sent in that case.
        """
        options = options or RequestOptions()
        payload = _encode_body(options.body)
        descriptor = RequestDescriptor(
            url=self.build_url(url),
            method=options.method,
            headers=dict(options.headers),
            body=options.body,
            params=dict(options.params),
            skip_content_type=options.skip_content_type,
            skip_auth_recovery=options.skip_auth_recovery,
            retry_count=retry_count,
        )
        self._stats.calls += 1

        state = DispatchState.SENDING_GEN0 if retry_count == 0 else DispatchState.SENDING_GEN1
        response: Optional[httpx.Response] = None

        while state is not DispatchState.DONE:
            await self._await_pending_refresh()
            prepared = descriptor.with_headers(self._build_headers(descriptor))
            response, classification = await self._send_with_backoff(prepared, payload)
            redispatch = await self._resolve(prepared, response, classification)

            if redispatch and state is DispatchState.SENDING_GEN0:
                self._stats.auth_redispatches += 1
                # Cookie propagation settle delay.
                await self._sleep(self._config.AUTH_SETTLE_DELAY_S)
                descriptor = descriptor.next_generation()
                state = DispatchState.SENDING_GEN1
            else:
                state = DispatchState.DONE

        assert response is not None
        return response

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    async def _await_pending_refresh(self) -> None:
        if not self._refresher.is_refreshing:
            return
        self._logger.debug("Token refresh in flight; waiting before dispatch")
        if not await self._refresher.wait_for_refresh():
            # Accepted race: proceed rather than block indefinitely.
            self._logger.warning(
                "Token refresh still running after %.1fs; dispatching anyway",
                self._config.REFRESH_WAIT_TIMEOUT_S,
            )

    def _build_headers(self, descriptor: RequestDescriptor) -> dict[str, str]:
        headers: dict[str, str] = {}
        if not descriptor.is_form_data and not descriptor.skip_content_type:
            headers["Content-Type"] = "application/json"
        _merge_headers(headers, descriptor.headers)
        _merge_headers(headers, self._session.totp_headers())

        if descriptor.method is not HttpMethod.GET:
            csrf_token = self._session.resolve_csrf_token(
                self._client.cookies, self._config.CSRF_COOKIE_NAME,
            )
            if csrf_token:
                _merge_headers(headers, {self._config.CSRF_HEADER_NAME: csrf_token})
        return headers

    async def _send(self, descriptor: RequestDescriptor, payload: _Payload) -> httpx.Response:
        return await self._client.request(
            descriptor.method.value,
            descriptor.url,
            headers=descriptor.headers,
            params=descriptor.params or None,
            content=payload.content,
            data=payload.data,
            files=payload.files,
        )

    # ------------------------------------------------------------------
    # Transient retry
    # ------------------------------------------------------------------

    async def _send_with_backoff(
        self,
        descriptor: RequestDescriptor,
        payload: _Payload,
    ) -> tuple[httpx.Response, ResponseClassification]:
        """Send until a non-transient outcome or the budget runs out."""
        attempt = 0
        while True:
            attempt += 1
            self._stats.physical_attempts += 1
            try:
                response = await self._send(descriptor, payload)
            except httpx.TransportError as exc:
                classification = classify_exception(exc)
                if self._retry_policy.should_retry(classification.kind, attempt):
                    await self._backoff(descriptor, attempt, classification)
                    continue
                raise self._exhausted(descriptor, attempt, classification) from exc

            classification = classify_response(response)
            if self._retry_policy.is_retryable(classification.kind):
                if self._retry_policy.should_retry(classification.kind, attempt):
                    await self._backoff(descriptor, attempt, classification)
                    continue
                raise self._exhausted(descriptor, attempt, classification, response)
            return response, classification

    async def _backoff(
        self,
        descriptor: RequestDescriptor,
        attempt: int,
        classification: ResponseClassification,
    ) -> None:
        delay = self._retry_policy.delay_for(attempt)
        self._stats.backoff_retries += 1
        self._logger.warning(
            "Transient failure on %s %s (attempt %d/%d); retrying in %.1fs",
            descriptor.method.value,
            descriptor.url,
            attempt,
            self._retry_policy.max_attempts,
            delay,
            extra={"kind": str(classification.kind), "status": str(classification.status)},
        )
        await self._sleep(delay)

    def _exhausted(
        self,
        descriptor: RequestDescriptor,
        attempts: int,
        classification: ResponseClassification,
        response: Optional[httpx.Response] = None,
    ) -> NetworkFailure:
        self._stats.network_failures += 1
        detail = (
            f"HTTP {classification.status}"
            if classification.status is not None
            else classification.cause or "connection failed"
        )
        self._logger.error(
            "Giving up on %s %s after %d attempts: %s",
            descriptor.method.value,
            descriptor.url,
            attempts,
            detail,
        )
        return NetworkFailure(
            f"{descriptor.method.value} {descriptor.url} failed after {attempts} attempts: {detail}",
            method=descriptor.method.value,
            url=descriptor.url,
            attempts=attempts,
            response=response,
        )

    # ------------------------------------------------------------------
    # Outcome handling
    # ------------------------------------------------------------------

    async def _resolve(
        self,
        descriptor: RequestDescriptor,
        response: httpx.Response,
        classification: ResponseClassification,
    ) -> bool:
        """Act on a final classification; ``True`` asks for a re-dispatch."""
        kind = classification.kind

        if kind is ResponseKind.TOTP_EXPIRED:
            self._redirect_for_step_up(descriptor, classification)
            return False
        if kind is ResponseKind.TOTP_REQUIRED:
            self._redirect_for_totp_setup(descriptor, classification)
            return False
        if kind in _AUTH_KINDS:
            if descriptor.skip_auth_recovery:
                self._logger.debug(
                    "Unauthorized on %s; auth recovery disabled for this call",
                    descriptor.url,
                )
                return False
            return await self._recover_auth(descriptor, classification)

        if kind is ResponseKind.CLIENT_ERROR:
            self._logger.debug(
                "Definitive client error on %s %s",
                descriptor.method.value,
                descriptor.url,
                extra={"status": str(response.status_code)},
            )
        return False

    async def _recover_auth(
        self,
        descriptor: RequestDescriptor,
        classification: ResponseClassification,
    ) -> bool:
        if descriptor.retry_count > 0:
            self._logger.warning(
                "Still unauthorized after auth recovery on %s; logging out",
                descriptor.url,
            )
            await self._force_logout(LogoutReason.REPEATED_UNAUTHORIZED, descriptor.url)
            return False

        if classification.kind is ResponseKind.AUTH_EXPIRED:
            self._stats.refreshes_requested += 1
            try:
                refreshed = await self._refresher.refresh()
            except NetworkFailure as exc:
                # Fail open.
                self._logger.warning(
                    "Token refresh unreachable; returning original 401: %s", exc,
                )
                return False
            if refreshed:
                self._logger.info("Access token refreshed; re-dispatching %s", descriptor.url)
                return True
            await self._force_logout(LogoutReason.REFRESH_FAILED, descriptor.url)
            return False

        self._stats.session_checks += 1
        if await self._verifier.verify_session_once():
            self._logger.info("Session still valid; re-dispatching %s", descriptor.url)
            return True
        await self._force_logout(LogoutReason.SESSION_INVALID, descriptor.url)
        return False

    async def _force_logout(self, reason: LogoutReason, url: str) -> None:
        if await self._logout_guard.trigger_logout(reason, url=url):
            self._stats.forced_logouts += 1

    def _redirect_for_step_up(
        self,
        descriptor: RequestDescriptor,
        classification: ResponseClassification,
    ) -> None:
        self._stats.step_up_redirects += 1
        self._logger.warning(
            "Step-up verification expired on %s; re-authentication required",
            descriptor.url,
        )
        user = self._session.current_user
        self._session.clear()
        log_security_event(
            self._logger,
            action=SecurityAction.STEP_UP_REDIRECT,
            reason=str(classification.code),
            url=descriptor.url,
            user_id=user.id if user is not None else None,
        )
        self._navigator.notify(STEP_UP_EXPIRED_MESSAGE)
        self._navigator.redirect(self._config.STEP_UP_PATH)

    def _redirect_for_totp_setup(
        self,
        descriptor: RequestDescriptor,
        classification: ResponseClassification,
    ) -> None:
        self._stats.step_up_redirects += 1
        self._logger.warning(
            "TOTP not enabled for %s; redirecting to setup", descriptor.url,
        )
        user = self._session.current_user
        log_security_event(
            self._logger,
            action=SecurityAction.TOTP_SETUP_REDIRECT,
            reason=str(classification.code),
            url=descriptor.url,
            user_id=user.id if user is not None else None,
        )
        self._navigator.notify(TOTP_SETUP_MESSAGE)
        self._navigator.redirect(self._config.TOTP_SETUP_PATH)


class _Payload:
    """Transport-ready body, encoded once per logical call."""

    __slots__ = ("content", "data", "files")

    def __init__(
        self,
        content: Optional[Union[str, bytes]] = None,
        data: Optional[dict[str, str]] = None,
        files: Optional[dict[str, FileTuple]] = None,
    ) -> None:
        self.content = content
        self.data = data
        self.files = files


def _encode_body(body: Optional[RequestBody]) -> _Payload:
    """Mappings and lists become JSON (dates, decimals and UUIDs included)."""
    if isinstance(body, FormData):
        return _Payload(data=body.fields, files=body.files or None)
    if isinstance(body, (str, bytes)):
        return _Payload(content=body)
    if body is not None:
        return _Payload(content=to_json(body))
    return _Payload()


def _merge_headers(target: dict[str, str], extra: dict[str, str]) -> None:
    """Merge *extra* into *target*, replacing names case-insensitively."""
    for name, value in extra.items():
        for existing in [key for key in target if key.lower() == name.lower()]:
            del target[existing]
        target[name] = value
