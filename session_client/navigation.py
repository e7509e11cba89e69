"""
Navigation Hooks.

The dispatcher never touches a page directly.  When a request ends in a
forced logout or a step-up redirect it calls the injected ``Navigator``,
which the hosting application implements (full page navigation, router
push, modal, ...).
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from session_client.logger import StructuredLogger

SESSION_EXPIRED_MESSAGE: str = "Your session has expired. Please log in again."
STEP_UP_EXPIRED_MESSAGE: str = "Your security session has expired. Please log in again."
TOTP_SETUP_MESSAGE: str = (
    "Two-factor authentication must be enabled in your profile settings "
    "to access admin features."
)


@runtime_checkable
class Navigator(Protocol):
    """Side-effect sink for session-level navigation."""

    def redirect(self, url: str) -> None: ...  # noqa: E704

    def notify(self, message: str) -> None: ...  # noqa: E704


class HeadlessNavigator:
    """``Navigator`` for scripts and tests: logs and records every call."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger
        self.redirects: list[str] = []
        self.messages: list[str] = []

    def redirect(self, url: str) -> None:
        self._logger.info("Redirect requested", extra={"target": url})
        self.redirects.append(url)

    def notify(self, message: str) -> None:
        self._logger.info("User notification: %s", message)
        self.messages.append(message)
