"""
Session Client Smoke-Check Entry Point.

Bootstraps the client's dependency graph via constructor injection, then
runs a health check and a current-user probe against the configured
backend and logs the outcome.  Every subsystem is wired here, with no
module-level globals.

Usage::

    API_BASE_URL=https://dev-api.unitedwerise.org/api python main.py
"""

from __future__ import annotations

import asyncio
import socket
import sys

from session_client.auth import MemoryUserStateStore, SessionManager
from session_client.config import ClientConfig, get_config, resolve_api_base_url
from session_client.logger import StructuredLogger, get_logger
from session_client.navigation import HeadlessNavigator
from session_client.services import create_services


async def run(config: ClientConfig, logger: StructuredLogger) -> int:
    """Wire the services, probe the backend, return a process exit code."""
    # ------------------------------------------------------------------
    # 1. Session state and navigation sink
    # ------------------------------------------------------------------
    session = SessionManager(user_state=MemoryUserStateStore())
    navigator = HeadlessNavigator(logger=get_logger("navigation", level=config.log_level))

    # ------------------------------------------------------------------
    # 2. Service container (single composition root)
    # ------------------------------------------------------------------
    services = create_services(config=config, session=session, navigator=navigator)
    api_client = services["api_client"]

    try:
        # --------------------------------------------------------------
        # 3. Backend health
        # --------------------------------------------------------------
        health = await api_client.health_check()
        if not health.healthy:
            logger.error(
                "Backend unhealthy",
                extra={"status": str(health.status), "error": str(health.error)},
            )
            return 1
        logger.info("Backend healthy", extra={"status": str(health.status)})

        # --------------------------------------------------------------
        # 4. Current user (anonymous is not an error)
        # --------------------------------------------------------------
        user = await api_client.fetch_current_user()
        if user is None:
            logger.info("No signed-in user for this session")
        else:
            logger.info("Signed in as %s", user.display_name, extra={"user_id": user.id})

        stats = services["request_dispatcher"].stats
        logger.info("Dispatch stats: %s", stats.model_dump_json())
        return 0
    finally:
        await services["http_client"].aclose()


def main() -> None:
    """Application entry point: resolve config and run the smoke check."""
    logger: StructuredLogger = get_logger("main")
    logger.info("Starting session client smoke check...")

    config = get_config()
    if not config.API_BASE_URL:
        base_url = resolve_api_base_url(socket.getfqdn())
        logger.info("API_BASE_URL not set; resolved %s from hostname", base_url)
        config = config.model_copy(update={"API_BASE_URL": base_url})

    sys.exit(asyncio.run(run(config, logger)))


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        pass
