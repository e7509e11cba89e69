"""
Forced-Logout Guard.

When dozens of in-flight requests discover at once that the session is
gone, exactly one of them must clear local state and navigate away; the
rest must do nothing.  The ``logging_out`` slot of ``CoordinationState``
stays claimed for a short cooldown after the first logout, so a burst of
failures produces a single side effect while a later, unrelated session
loss (after re-login) still logs out normally.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

from session_client.auth import SessionManager
from session_client.config import ClientConfig
from session_client.logger import StructuredLogger
from session_client.models.enums import LogoutReason
from session_client.navigation import SESSION_EXPIRED_MESSAGE, Navigator
from session_client.services.base_service import BaseService
from session_client.services.coordination import CoordinationState, SleepFunc
from session_client.utils.audit import SecurityAction, log_security_event


class LogoutGuard(BaseService):
    """Single-flight wrapper around the forced-logout side effects.

    Parameters
    ----------
    state:
        Shared coordination slots; this guard owns ``logging_out``.
    session:
        Session whose user (and persisted state) is cleared.
    navigator:
        Receives the interruptive message and the redirect.
    config:
        Supplies ``LOGIN_PATH`` and ``LOGOUT_COOLDOWN_S``.
    logger:
        Structured JSON logger.
    sleep:
        Awaitable sleep used for the cooldown (injectable for tests).
    """

    def __init__(
        self,
        state: CoordinationState,
        session: SessionManager,
        navigator: Navigator,
        config: ClientConfig,
        logger: StructuredLogger,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        super().__init__(logger)
        self._state: CoordinationState = state
        self._session: SessionManager = session
        self._navigator: Navigator = navigator
        self._login_url: str = config.LOGIN_PATH
        self._cooldown_s: float = config.LOGOUT_COOLDOWN_S
        self._sleep: SleepFunc = sleep
        self._login_callback: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def register_login_callback(self, callback: Optional[Callable[[], None]]) -> None:
        """Show an in-page login UI instead of navigating to ``LOGIN_PATH``.

        Pass ``None`` to go back to full navigation.
        """
        self._login_callback = callback

    @property
    def in_progress(self) -> bool:
        return self._state.logging_out.in_flight

    async def trigger_logout(self, reason: LogoutReason, url: Optional[str] = None) -> bool:
        """Clear the session and leave the page, once per cooldown window.

        Returns ``True`` if this call performed the logout, ``False`` if a
        logout was already in progress and the call was ignored.
        """
        slot = self._state.logging_out
        if slot.in_flight:
            self._logger.debug(
                "Logout already in progress; ignoring duplicate trigger",
                extra={"reason": str(reason)},
            )
            return False

        # Claim the slot before any side effect; the cooldown task
        # releases it in its own finally, even if a side effect raises.
        slot.start(self._cooldown)

        self._logger.warning("Forcing logout", extra={"reason": str(reason)})
        user = self._session.current_user
        self._session.clear()
        log_security_event(
            self._logger,
            action=SecurityAction.FORCED_LOGOUT,
            reason=str(reason),
            url=url,
            user_id=user.id if user is not None else None,
        )
        self._navigator.notify(SESSION_EXPIRED_MESSAGE)
        if self._login_callback is not None:
            self._login_callback()
        else:
            self._navigator.redirect(self._login_url)
        return True

    async def wait_cooldown(self) -> None:
        """Await the end of the current cooldown window (no-op when idle)."""
        task = self._state.logging_out.shared
        if task is not None:
            await asyncio.shield(task)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _cooldown(self) -> None:
        await self._sleep(self._cooldown_s)
        self._logger.debug("Logout cooldown elapsed; guard re-armed")

