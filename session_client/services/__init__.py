"""
Client Services Package.

Contains the dispatch pipeline, the three single-flight coordinators
it leans on during auth recovery and the response cache behind
``ApiClient``.

The ``create_services()`` factory wires every service together around a
single ``CoordinationState`` and a single cookie-carrying transport,
returning a typed dict that the hosting application can consume without
knowing the internal dependency graph.
"""

from __future__ import annotations

import asyncio
from typing import Optional, TypedDict

import httpx

from session_client.auth import SessionManager
from session_client.config import ClientConfig
from session_client.logger import get_logger
from session_client.navigation import Navigator
from session_client.services.api_client import ApiClient
from session_client.services.coordination import CoordinationState, SleepFunc
from session_client.services.dispatcher import RequestDispatcher
from session_client.services.logout_guard import LogoutGuard
from session_client.services.response_cache import ResponseCache
from session_client.services.retry_policy import RetryPolicy
from session_client.services.session_verifier import SessionVerifier
from session_client.services.token_refresh import TokenRefreshCoordinator


class ServiceContainer(TypedDict):
    """Typed container for all client services."""

    # --- Shared state ---
    http_client: httpx.AsyncClient
    coordination_state: CoordinationState
    retry_policy: RetryPolicy
    response_cache: ResponseCache

    # --- Coordinators ---
    token_refresh_coordinator: TokenRefreshCoordinator
    session_verifier: SessionVerifier
    logout_guard: LogoutGuard

    # --- Dispatch ---
    request_dispatcher: RequestDispatcher
    api_client: ApiClient


def build_http_client(config: ClientConfig) -> httpx.AsyncClient:
    """Cookie-carrying transport rooted at ``API_BASE_URL``."""
    return httpx.AsyncClient(
        base_url=config.API_BASE_URL,
        timeout=config.REQUEST_TIMEOUT_S,
    )


def create_services(
    config: ClientConfig,
    session: SessionManager,
    navigator: Navigator,
    client: Optional[httpx.AsyncClient] = None,
    sleep: SleepFunc = asyncio.sleep,
) -> ServiceContainer:
    """
    Wire all client services together.

    This is the single composition root for the service layer.  Call it
    once per client; every service returned shares one
    ``CoordinationState`` so single-flight guarantees hold across all
    calls made through it.

    Args:
        config: Client configuration.
        session: Session state shared by every service.
        navigator: Receives logout and step-up redirects.
        client: Transport to use; one is built from *config* when omitted.
            The caller owns it and must ``aclose()`` it.
        sleep: Awaitable sleep for backoff, settle and cooldown delays.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = get_logger("services", level=config.log_level, log_file=config.LOG_FILE)
    http_client = client if client is not None else build_http_client(config)

    # ------------------------------------------------------------------
    # 1. Shared state and policy
    # ------------------------------------------------------------------
    coordination_state = CoordinationState()
    retry_policy = RetryPolicy.from_config(config)
    response_cache = ResponseCache(
        default_ttl=config.CACHE_TTL_S,
        max_entries=config.CACHE_MAX_ENTRIES,
    )

    # ------------------------------------------------------------------
    # 2. Single-flight coordinators (leaf services)
    # ------------------------------------------------------------------
    token_refresh_coordinator = TokenRefreshCoordinator(
        state=coordination_state,
        client=http_client,
        session=session,
        config=config,
        logger=logger,
        sleep=sleep,
    )
    session_verifier = SessionVerifier(
        state=coordination_state,
        client=http_client,
        config=config,
        logger=logger,
    )
    logout_guard = LogoutGuard(
        state=coordination_state,
        session=session,
        navigator=navigator,
        config=config,
        logger=logger,
        sleep=sleep,
    )

    # ------------------------------------------------------------------
    # 3. Dispatch (depends on every coordinator)
    # ------------------------------------------------------------------
    request_dispatcher = RequestDispatcher(
        client=http_client,
        session=session,
        retry_policy=retry_policy,
        refresher=token_refresh_coordinator,
        verifier=session_verifier,
        logout_guard=logout_guard,
        navigator=navigator,
        config=config,
        logger=logger,
        sleep=sleep,
    )
    api_client = ApiClient(
        dispatcher=request_dispatcher,
        session=session,
        config=config,
        logger=logger,
        cache=response_cache,
    )

    return ServiceContainer(
        http_client=http_client,
        coordination_state=coordination_state,
        retry_policy=retry_policy,
        response_cache=response_cache,
        token_refresh_coordinator=token_refresh_coordinator,
        session_verifier=session_verifier,
        logout_guard=logout_guard,
        request_dispatcher=request_dispatcher,
        api_client=api_client,
    )
