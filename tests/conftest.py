"""Shared fixtures for the frontend server tests."""

from typing import List

import httpx
import pytest

from wildwest.config import autoconfig
from wildwest.logging import reset_logging


@pytest.fixture(autouse=True)
def default_logging():
    """Every test starts with INFO logging and no module overrides."""
    reset_logging()
    yield
    reset_logging()


class BackendDouble:
    """Stands in for the linked backend service.

    Records every request it receives and answers with a canned response.
    Set `error` to make the transport fail instead of answering.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.status_code = 200
        self.content = b'{"id": "42", "type": {"name": "pod", "value": 100}}'
        self.headers = {"content-type": "application/json"}
        self.error = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, headers=self.headers, content=self.content)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def backend():
    """Backend double reachable through a mock transport."""
    return BackendDouble()


@pytest.fixture
def linked_env():
    """Environment with two linked components, DB discovered first."""
    return {
        'COMPONENT_DB_HOST': 'db.svc',
        'COMPONENT_DB_PORT': '5432',
        'COMPONENT_API_HOST': 'api.svc',
        'COMPONENT_API_PORT': '8080',
        'HOME': '/home/game',
    }


@pytest.fixture
def proxied_config():
    """Configuration proxying /ws to localhost:9000."""
    return autoconfig({'BACKEND_SERVICE': 'localhost:9000'})
