"""Pytest fixtures for integration tests.

This module provides fixtures for end-to-end testing against the reference
management API served by uvicorn in a background thread.
"""

from __future__ import annotations

import socket
import threading
import time
from collections.abc import Callable, Generator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
import pytest
import uvicorn

from policysync.client.api import ManagementClient
from policysync.core.config import ApiConfig
from policysync.server.app import create_app
from policysync.server.database import Database

API_KEY = "integration-key"


@dataclass
class TestServer:
    """Container for test server resources."""

    db: Database
    url: str


class UvicornTestServer:
    """Uvicorn server running in a background thread for testing."""

    def __init__(self, app: Any, host: str = "127.0.0.1") -> None:
        self.app = app
        self.host = host
        self.port = 0
        self.server: uvicorn.Server | None = None
        self.thread: threading.Thread | None = None

    def start(self) -> int:
        """Start the server and return the port."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind((self.host, 0))
            self.port = s.getsockname()[1]

        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="warning",
        )
        self.server = uvicorn.Server(config)

        self.thread = threading.Thread(target=self.server.run, daemon=True)
        self.thread.start()

        self._wait_for_ready()

        return self.port

    def _wait_for_ready(self, timeout: float = 5.0) -> None:
        """Wait for the server to be ready to accept connections."""
        start = time.time()
        while time.time() - start < timeout:
            try:
                with httpx.Client() as client:
                    response = client.get(f"http://{self.host}:{self.port}/health")
                    if response.status_code == 200:
                        return
            except httpx.TransportError:
                pass
            time.sleep(0.1)
        raise RuntimeError("Server failed to start in time")

    def stop(self) -> None:
        """Stop the server and wait for the thread to exit."""
        if self.server:
            self.server.should_exit = True
        if self.thread:
            self.thread.join(timeout=5.0)


@pytest.fixture
def test_server(tmp_path: Path) -> Generator[TestServer, None, None]:
    """Create and start a test server backed by a temporary database."""
    db = Database(tmp_path / "server" / "test.db")
    server = UvicornTestServer(create_app(db, api_key=API_KEY))
    port = server.start()

    yield TestServer(db=db, url=f"http://127.0.0.1:{port}")

    server.stop()
    db.close()


@pytest.fixture
def client_factory(
    test_server: TestServer,
) -> Generator[Callable[[], ManagementClient], None, None]:
    """Factory fixture to create API clients talking to the test server."""
    clients: list[ManagementClient] = []

    def _create_client() -> ManagementClient:
        client = ManagementClient(ApiConfig(endpoint_url=test_server.url, api_key=API_KEY))
        clients.append(client)
        return client

    yield _create_client

    for client in clients:
        client.close()


@pytest.fixture
def api_client(client_factory: Callable[[], ManagementClient]) -> ManagementClient:
    """Single API client for the test server."""
    return client_factory()
