"""
Session State.

Provides an injectable ``SessionManager`` that holds everything the
client knows about the browser-style session: the current user, the
in-memory CSRF token, and the TOTP step-up status.  The session
credential itself lives in an httpOnly cookie and is never read here.

Usage::

    from session_client.auth import MemoryUserStateStore, SessionManager

    session = SessionManager(user_state=MemoryUserStateStore())
    session.set_csrf_token(body["csrfToken"])
    token = session.resolve_csrf_token(client.cookies, "csrf-token")
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

import httpx

from session_client.errors import SessionNotEstablishedError
from session_client.models.user import CurrentUser


@runtime_checkable
class UserStateStore(Protocol):
    """Persisted local user state (the browser's localStorage analogue)."""

    def save_user(self, user: CurrentUser) -> None: ...  # noqa: E704

    def clear(self) -> None: ...  # noqa: E704


class MemoryUserStateStore:
    """Dict-backed ``UserStateStore`` used when nothing durable is wired."""

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    def save_user(self, user: CurrentUser) -> None:
        self._entries["currentUser"] = user.model_dump_json()

    def load_user(self) -> Optional[CurrentUser]:
        raw = self._entries.get("currentUser")
        if raw is None:
            return None
        return CurrentUser.model_validate_json(raw)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class SessionManager:
    """Injectable holder for the client's session state.

    Each instance maintains its own state, eliminating the need for
    module-level globals.  Pass a single ``SessionManager`` through the
    dependency-injection layer so every service shares the same session.

    Every mutation runs on the event loop thread without awaiting, so no
    lock is needed.
    """

    def __init__(self, user_state: Optional[UserStateStore] = None) -> None:
        self._user_state: Optional[UserStateStore] = user_state
        self._current_user: Optional[CurrentUser] = None
        self._csrf_token: Optional[str] = None
        self._totp_verified: bool = False
        self._totp_token: Optional[str] = None

    # ------------------------------------------------------------------
    # Current user
    # ------------------------------------------------------------------

    def set_current_user(self, user: CurrentUser) -> None:
        """Record *user* and mirror it to persisted state."""
        self._current_user = user
        if self._user_state is not None:
            self._user_state.save_user(user)

    def get_current_user(self) -> CurrentUser:
        """Return the current user.

        Raises:
            SessionNotEstablishedError: If no user has been loaded.
        """
        if self._current_user is None:
            raise SessionNotEstablishedError(
                "No user is loaded for this session. Login required."
            )
        return self._current_user

    @property
    def current_user(self) -> Optional[CurrentUser]:
        return self._current_user

    @property
    def is_authenticated(self) -> bool:
        """``True`` when a user is currently loaded."""
        return self._current_user is not None

    def clear_current_user(self) -> None:
        """Forget the current user, cascading to persisted state."""
        self._current_user = None
        if self._user_state is not None:
            self._user_state.clear()

    # ------------------------------------------------------------------
    # CSRF
    # ------------------------------------------------------------------

    def set_csrf_token(self, token: Optional[str]) -> None:
        self._csrf_token = token or None

    @property
    def csrf_token(self) -> Optional[str]:
        """The in-memory CSRF token, or ``None`` if not set."""
        return self._csrf_token

    def resolve_csrf_token(
        self,
        cookies: httpx.Cookies,
        cookie_name: str,
    ) -> Optional[str]:
        """Two-tier lookup: in-memory token first, then the readable cookie.

        Returns ``None`` when neither source has a token.
        """
        if self._csrf_token:
            return self._csrf_token
        try:
            return cookies.get(cookie_name) or None
        except httpx.CookieConflict:
            # Same name set for several domains/paths; any of them is the
            # token the server issued last.
            for cookie in cookies.jar:
                if cookie.name == cookie_name and cookie.value:
                    return cookie.value
            return None

    # ------------------------------------------------------------------
    # TOTP step-up
    # ------------------------------------------------------------------

    def set_totp_status(self, verified: bool, token: Optional[str] = None) -> None:
        self._totp_verified = verified
        self._totp_token = token

    def clear_totp_status(self) -> None:
        self._totp_verified = False
        self._totp_token = None

    def totp_headers(self) -> dict[str, str]:
        """Step-up headers for outgoing requests (empty when unverified)."""
        if self._totp_verified and self._totp_token:
            return {"x-totp-verified": "true", "x-totp-token": self._totp_token}
        return {}

    @property
    def is_totp_verified(self) -> bool:
        return self._totp_verified

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def clear(self) -> None:
        """End the local session: user, CSRF token, TOTP status, persisted state."""
        self.clear_current_user()
        self._csrf_token = None
        self.clear_totp_status()
