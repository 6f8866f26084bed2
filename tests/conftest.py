import asyncio
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

import pytest

from fetch_dispatch.dispatch.dispatcher import FetchDispatcher
from fetch_dispatch.dispatch.schema import Request, TransportResponse


class FakeTransport:
    """
    Transport en mémoire : chaque URL est associée à une réponse préparée,
    une exception à lever, et éventuellement un délai (s).
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None, delays: Optional[Dict[str, float]] = None):
        self.responses = responses or {}
        self.delays = delays or {}
        self.sent: List[Request] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def send(self, request: Request) -> TransportResponse:
        self.sent.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(request.url, 0))
            result = self.responses.get(request.url)
            if isinstance(result, Exception):
                raise result
            if result is None:
                return TransportResponse(url=request.url, status_code=0,
                                         return_message="Couldn't resolve host name")
            return result.model_copy(update={"url": request.url})
        finally:
            self.in_flight -= 1

    async def aclose(self):
        self.closed = True


def ok(body: Optional[str], status_code: int = 200) -> TransportResponse:
    """Réponse transport réussie (l'URL est renseignée par FakeTransport)."""
    return TransportResponse(url="", status_code=status_code, body=body)


@pytest.fixture
def mock_logger():
    """Logger factice acceptant debug / error."""
    return Mock()


@pytest.fixture
def make_dispatcher(mock_logger):
    """Factory de FetchDispatcher branché sur un FakeTransport."""

    def _make(responses=None, delays=None) -> FetchDispatcher:
        transport = FakeTransport(responses, delays)
        return FetchDispatcher(transport=transport, logger=mock_logger)

    return _make
