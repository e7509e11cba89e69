"""
Pytest configuration for the session client tests.

Configures pytest-asyncio for async test support and provides a scripted
fake backend (served through ``httpx.MockTransport``) plus a recording
sleep so retry and settle delays are observed without real waiting.
"""

import asyncio
import inspect
from typing import AsyncGenerator, Awaitable, Callable, Optional, Union

import httpx
import pytest
import pytest_asyncio

from session_client.auth import MemoryUserStateStore, SessionManager
from session_client.config import ClientConfig
from session_client.logger import StructuredLogger
from session_client.models.user import CurrentUser
from session_client.navigation import HeadlessNavigator
from session_client.services import ServiceContainer, create_services

BASE_URL = "https://api.test/api"

Responder = Callable[
    [httpx.Request],
    Union[httpx.Response, Awaitable[httpx.Response]],
]


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


# ---------------------------------------------------------------------------
# Responders
# ---------------------------------------------------------------------------

def reply(
    status: int,
    body: Optional[object] = None,
    headers: Optional[dict[str, str]] = None,
) -> Responder:
    """Respond with *status* and an optional JSON *body*."""
    def _respond(request: httpx.Request) -> httpx.Response:
        if body is None:
            return httpx.Response(status, headers=headers)
        return httpx.Response(status, json=body, headers=headers)
    return _respond


def drop(request: httpx.Request) -> httpx.Response:
    """Simulate a connectivity failure."""
    raise httpx.ConnectError("connection refused", request=request)


def gated(event: asyncio.Event, status: int, body: Optional[object] = None) -> Responder:
    """Respond only once *event* is set (keeps an operation in flight)."""
    async def _respond(request: httpx.Request) -> httpx.Response:
        await event.wait()
        return reply(status, body)(request)
    return _respond


class FakeBackend:
    """Scripted backend keyed by ``(method, path)``.

    Each route holds a list of responders consumed in order; the last one
    sticks and answers every further request.  Unknown routes get 404.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], list[Responder]] = {}

    def route(self, method: str, path: str, *responders: Responder) -> None:
        self._routes[(method, path)] = list(responders)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responders = self._routes.get((request.method, request.url.path))
        if not responders:
            return httpx.Response(404, json={"error": "NOT_FOUND"})
        responder = responders.pop(0) if len(responders) > 1 else responders[0]
        result = responder(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    def sent(self, method: str, path: str) -> list[httpx.Request]:
        return [
            request for request in self.requests
            if request.method == method and request.url.path == path
        ]


class RecordingSleep:
    """Drop-in for ``asyncio.sleep`` that records delays and only yields."""

    def __init__(self) -> None:
        self.delays: list[float] = []
        self.on_sleep: Optional[Callable[[float], None]] = None

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.on_sleep is not None:
            self.on_sleep(delay)
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(API_BASE_URL=BASE_URL, LOG_LEVEL="DEBUG")


@pytest.fixture
def logger() -> StructuredLogger:
    return StructuredLogger(name="tests.session_client")


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest_asyncio.fixture
async def client(backend: FakeBackend) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(
        base_url=BASE_URL,
        transport=httpx.MockTransport(backend.handle),
    ) as http_client:
        yield http_client


@pytest.fixture
def user_store() -> MemoryUserStateStore:
    return MemoryUserStateStore()


@pytest.fixture
def user() -> CurrentUser:
    return CurrentUser(id="user-1", email="ada@example.org", first_name="Ada", is_admin=True)


@pytest.fixture
def session(user_store: MemoryUserStateStore, user: CurrentUser) -> SessionManager:
    manager = SessionManager(user_state=user_store)
    manager.set_current_user(user)
    return manager


@pytest.fixture
def navigator(logger: StructuredLogger) -> HeadlessNavigator:
    return HeadlessNavigator(logger=logger)


@pytest.fixture
def services(
    config: ClientConfig,
    session: SessionManager,
    navigator: HeadlessNavigator,
    client: httpx.AsyncClient,
    sleep: RecordingSleep,
) -> ServiceContainer:
    return create_services(
        config=config,
        session=session,
        navigator=navigator,
        client=client,
        sleep=sleep,
    )
