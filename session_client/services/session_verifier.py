"""
Session Verification Probe.

Distinguishes a genuinely dead session from a racy 401 (for example a
cookie the browser had not attached to one particular request yet).
Issues a single lightweight ``GET /auth/me`` no matter how many callers
ask at once.  Purely informational: never logs out, never navigates.
"""

from __future__ import annotations

import httpx

from session_client.config import ClientConfig
from session_client.logger import StructuredLogger
from session_client.services.base_service import BaseService
from session_client.services.coordination import CoordinationState


class SessionVerifier(BaseService):
    """Single-flight "who am I" probe.

    Parameters
    ----------
    state:
        Shared coordination slots; this verifier owns ``verifying``.
    client:
        Transport carrying the session cookies.  The probe goes straight
        to the transport, never through the dispatcher, so it cannot
        recurse into auth recovery.
    config:
        Supplies ``ME_PATH``.
    logger:
        Structured JSON logger.
    """

    def __init__(
        self,
        state: CoordinationState,
        client: httpx.AsyncClient,
        config: ClientConfig,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._state: CoordinationState = state
        self._client: httpx.AsyncClient = client
        self._me_path: str = config.ME_PATH

    @property
    def in_progress(self) -> bool:
        return self._state.verifying.in_flight

    async def verify_session_once(self) -> bool:
        """``True`` if the server still recognises the session.

        Concurrent callers share one probe and receive the same answer.
        """
        return await self._state.verifying.run(self._probe)

    async def _probe(self) -> bool:
        try:
            response = await self._client.get(self._me_path)
        except httpx.TransportError as exc:
            # Fail open on connectivity errors.
            self._logger.warning(
                "Session probe could not reach the server; assuming valid: %s", exc,
            )
            return True

        valid = response.is_success
        self._logger.info(
            "Session probe completed",
            extra={"status": str(response.status_code), "valid": str(valid)},
        )
        return valid
