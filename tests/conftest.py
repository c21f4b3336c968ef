"""
Shared pytest fixtures for Studio Publisher tests.

Provides real in-process HTTP servers standing in for GitHub and the
deployment provider, and clients wired to them with fast retry settings.
"""

import pytest
import pytest_asyncio

from studio_publisher.api_clients.deployment_client import VercelDeploymentClient
from studio_publisher.api_clients.github_client import GitHubAPIClient
from studio_publisher.config import RetrySettings
from studio_publisher.publisher.atomic_publisher import AtomicPublisher

from tests.infrastructure.fake_github_server import GitHubServerTestContext, TEST_TOKEN
from tests.infrastructure.fake_vercel_server import FakeVercelServer, TEST_VERCEL_TOKEN


@pytest.fixture
def fast_retry() -> RetrySettings:
    """Retry settings that keep backoff out of test runtime."""
    return RetrySettings(
        max_retries=2, initial_delay=0.01, max_delay=0.05, jitter_enabled=False
    )


@pytest_asyncio.fixture
async def github_server():
    """Fake GitHub server on a free local port."""
    async with GitHubServerTestContext() as server:
        yield server


@pytest_asyncio.fixture
async def github_client(github_server, fast_retry):
    """GitHub client pointed at the fake server."""
    client = GitHubAPIClient(
        token=TEST_TOKEN, base_url=github_server.base_url, retry=fast_retry
    )
    yield client
    await client.close()


@pytest_asyncio.fixture
async def publisher(github_client):
    """Publisher with default settings over the fake server."""
    return AtomicPublisher(github_client)


@pytest_asyncio.fixture
async def vercel_server():
    """Fake deployment provider on a free local port."""
    async with FakeVercelServer() as server:
        yield server


@pytest_asyncio.fixture
async def vercel_client(vercel_server, fast_retry):
    """Deployment client pointed at the fake provider."""
    client = VercelDeploymentClient(
        token=TEST_VERCEL_TOKEN, base_url=vercel_server.base_url, retry=fast_retry
    )
    yield client
    await client.close()
