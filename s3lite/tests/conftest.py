"""Shared fixtures: an in-memory service and stores wired to it."""

from __future__ import annotations

from typing import AsyncIterator, Callable, List, Optional

import httpx
import pytest

from s3lite.core.cancellation import CancellationToken
from s3lite.core.config import ClientConfig, Credentials
from s3lite.storage.s3_store import S3ObjectStore
from s3lite.tests.fake_s3 import FakeS3, fixed_clock, make_config


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(access_key="AKIDTEST", secret_key="test-secret-key")


@pytest.fixture
def fake(credentials: Credentials) -> FakeS3:
    return FakeS3(credentials, host="s3.test", bucket="media")


@pytest.fixture
def config(credentials: Credentials) -> ClientConfig:
    return make_config(credentials)


@pytest.fixture
async def make_store(fake: FakeS3) -> AsyncIterator[Callable[..., S3ObjectStore]]:
    """Factory for stores talking to `fake`; clients are closed afterwards."""
    clients: List[httpx.AsyncClient] = []

    def _make(config: ClientConfig, cancel: Optional[CancellationToken] = None) -> S3ObjectStore:
        client = httpx.AsyncClient(transport=fake.transport(), follow_redirects=False)
        clients.append(client)
        return S3ObjectStore(config, cancel=cancel, http_client=client, clock=fixed_clock)

    yield _make

    for client in clients:
        await client.aclose()


@pytest.fixture
async def store(make_store, config: ClientConfig) -> S3ObjectStore:
    return make_store(config)
