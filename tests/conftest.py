"""Shared fixtures: a scripted EMA server behind httpx.MockTransport."""

import asyncio
from collections.abc import Callable

import httpx
import pytest
import pytest_asyncio

from ema_client.controller import EndpointController

HOST = "https://ema.example.com"
USERNAME = "tenantadmin@example.com"
PASSWORD = "some-super-secret-password"

TOKEN_PATHS = {
    "/api/token",
    "/api/latest/accessTokens/getUsingWindowsCredentials",
}

Route = httpx.Response | list[httpx.Response] | Callable[[httpx.Request], httpx.Response]


class FakeEma:
    """In-process EMA server.

    Issues tokens ``token-1``, ``token-2``, ... from both token endpoints and
    answers 401 to API requests that do not carry the latest issued token.
    API routes are keyed by ``(method, path?query)`` relative to the host.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], Route] = {}
        self.token_failures: list[httpx.Response] = []
        self.valid_token: str | None = None
        self.reject_all = False
        self.issued = 0

    def route(self, method: str, path: str, response: Route) -> None:
        self.routes[(method, path)] = response

    def expire_token(self) -> None:
        self.valid_token = None

    @property
    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path in TOKEN_PATHS]

    @property
    def api_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path not in TOKEN_PATHS]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        # Yield so concurrent requests interleave like real network calls.
        await asyncio.sleep(0)

        if request.url.path in TOKEN_PATHS:
            if self.token_failures:
                return self.token_failures.pop(0)
            self.issued += 1
            self.valid_token = f"token-{self.issued}"
            return httpx.Response(200, json={"access_token": self.valid_token})

        authorization = request.headers.get("Authorization")
        if self.reject_all or authorization != f"Bearer {self.valid_token}":
            return httpx.Response(
                401,
                json={"Message": "Authorization has been denied for this request."},
            )

        key = (request.method, request.url.raw_path.decode().removeprefix("/api"))
        route = self.routes.get(key)
        if route is None:
            return httpx.Response(404, json={"Message": f"No route for {key}"})
        if isinstance(route, list):
            return route.pop(0)
        if callable(route):
            return route(request)
        return route


@pytest.fixture
def fake_ema() -> FakeEma:
    return FakeEma()


@pytest_asyncio.fixture
async def ema(fake_ema: FakeEma):
    """Unauthenticated controller wired to the fake server."""
    controller = EndpointController(
        HOST,
        USERNAME,
        PASSWORD,
        transport=httpx.MockTransport(fake_ema.handler),
    )
    yield controller
    await controller.aclose()


@pytest_asyncio.fixture
async def authed_ema(ema: EndpointController, fake_ema: FakeEma) -> EndpointController:
    """Controller authenticated with domain credentials; request log cleared."""
    result = await ema.authenticate(use_domain_credentials=True)
    assert result.ok
    fake_ema.requests.clear()
    return ema
