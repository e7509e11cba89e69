"""
Token Refresh Coordinator.

Exchanges the (httpOnly) refresh credential for a new access token via
``POST /auth/refresh``.  Single-flight: every caller that asks while a
refresh is running gets that refresh's outcome instead of starting a
second one.  A successful refresh may also rotate the CSRF token.
"""

from __future__ import annotations

import asyncio

import httpx
from pydantic import ValidationError

from session_client.auth import SessionManager
from session_client.config import ClientConfig
from session_client.errors import NetworkFailure
from session_client.logger import StructuredLogger
from session_client.models.response_models import RefreshResponse
from session_client.services.base_service import BaseService
from session_client.services.coordination import CoordinationState, SleepFunc
from session_client.utils.audit import SecurityAction, log_security_event


class TokenRefreshCoordinator(BaseService):
    """Owns the ``refreshing`` slot of ``CoordinationState``.

    Parameters
    ----------
    state:
        Shared coordination slots.
    client:
        Transport carrying the session cookies (the refresh credential
        travels as a cookie, the new one comes back as ``Set-Cookie``).
    session:
        Receives the rotated CSRF token.
    config:
        Supplies ``REFRESH_PATH``, the CSRF header name and the bounded
        wait used by :meth:`wait_for_refresh`.
    logger:
        Structured JSON logger.
    sleep:
        Awaitable sleep used while polling (injectable for tests).
    """

    def __init__(
        self,
        state: CoordinationState,
        client: httpx.AsyncClient,
        session: SessionManager,
        config: ClientConfig,
        logger: StructuredLogger,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        super().__init__(logger)
        self._state: CoordinationState = state
        self._client: httpx.AsyncClient = client
        self._session: SessionManager = session
        self._config: ClientConfig = config
        self._sleep: SleepFunc = sleep

    @property
    def is_refreshing(self) -> bool:
        return self._state.refreshing.in_flight

    async def refresh(self) -> bool:
        """Refresh the access token; ``True`` on success.

        Raises:
            NetworkFailure: If the refresh endpoint could not be reached.
                Every concurrent caller sees the same exception.
        """
        return await self._state.refreshing.run(self._perform_refresh)

    async def wait_for_refresh(self) -> bool:
        """Wait (bounded) for an in-flight refresh to finish.

        Returns ``False`` when ``REFRESH_WAIT_TIMEOUT_S`` elapsed with the
        refresh still running; the caller proceeds anyway.
        """
        return await self._state.refreshing.wait_idle(
            timeout=self._config.REFRESH_WAIT_TIMEOUT_S,
            poll_interval=self._config.REFRESH_POLL_INTERVAL_S,
            sleep=self._sleep,
        )

    async def _perform_refresh(self) -> bool:
        path = self._config.REFRESH_PATH
        headers: dict[str, str] = {"Content-Type": "application/json"}
        csrf_token = self._session.resolve_csrf_token(
            self._client.cookies, self._config.CSRF_COOKIE_NAME,
        )
        if csrf_token:
            headers[self._config.CSRF_HEADER_NAME] = csrf_token

        self._logger.info("Refreshing access token")
        try:
            response = await self._client.post(path, headers=headers)
        except httpx.TransportError as exc:
            self._logger.warning("Token refresh could not reach the server: %s", exc)
            raise NetworkFailure(
                f"Token refresh failed: {exc}",
                method="POST",
                url=path,
                attempts=1,
            ) from exc

        if not response.is_success:
            self._logger.warning(
                "Token refresh rejected",
                extra={"status": str(response.status_code)},
            )
            return False

        try:
            body = RefreshResponse.model_validate(response.json())
        except (ValueError, ValidationError):
            body = RefreshResponse()
        if body.csrf_token:
            self._session.set_csrf_token(body.csrf_token)

        log_security_event(
            self._logger,
            action=SecurityAction.TOKEN_REFRESHED,
            reason="ACCESS_TOKEN_EXPIRED",
            url=path,
            details={"csrf_rotated": body.csrf_token is not None},
        )
        return True
