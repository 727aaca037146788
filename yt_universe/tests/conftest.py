from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import httpx
import pytest_asyncio

Handler = Callable[[httpx.Request], httpx.Response]
ClientFactory = Callable[[Handler], "tuple[httpx.AsyncClient, RecordingTransport]"]


class RecordingTransport(httpx.MockTransport):
    """Mock transport that keeps every request it served."""

    def __init__(self, handler: Handler) -> None:
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


def _unexpected(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request to {request.url}")


@pytest_asyncio.fixture
async def mock_client() -> AsyncIterator[ClientFactory]:
    """Factory building AsyncClients backed by a recording mock transport."""

    clients: list[httpx.AsyncClient] = []

    def _factory(handler: Handler = _unexpected) -> tuple[httpx.AsyncClient, RecordingTransport]:
        transport = RecordingTransport(handler)
        client = httpx.AsyncClient(transport=transport)
        clients.append(client)
        return client, transport

    yield _factory

    for client in clients:
        await client.aclose()
