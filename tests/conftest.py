"""
Pytest configuration for the itinerary planner tests.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

# Register asyncio marker
pytest.importorskip("pytest_asyncio")

# Import project modules after configuring pytest
from itinerary_planner.agents.base import AgentConfig  # noqa: E402
from itinerary_planner.config import LogLevel  # noqa: E402
from itinerary_planner.orchestration.serialization import (  # noqa: E402
    InMemoryCheckpointStore,
)
from itinerary_planner.orchestration.tracer import Tracer  # noqa: E402
from itinerary_planner.orchestration.workflow import ExecutionEngine  # noqa: E402
from itinerary_planner.services.coordinate_correction import (  # noqa: E402
    CoordinateCorrector,
)
from itinerary_planner.utils.error_handling import ProviderError  # noqa: E402
from itinerary_planner.utils.logging import setup_logging  # noqa: E402
from tests.unit.fakes import FakeProvider  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def setup_test_logging():
    """Set up logging for tests."""
    setup_logging(LogLevel.DEBUG)


@pytest.fixture
def fake_provider():
    """Provider whose plans cost 2700 for three days."""
    return FakeProvider()


@pytest.fixture
def make_provider():
    """Factory for providers with custom prices or failures."""
    return FakeProvider


@pytest.fixture
def failing_provider():
    """Provider whose every call fails."""
    return FakeProvider(error=ProviderError("service unavailable", "fake"))


@pytest.fixture
def store():
    """In-memory checkpoint store without retry back-off."""
    return InMemoryCheckpointStore(retry_min_wait_seconds=0, retry_max_wait_seconds=0)


@pytest.fixture
def tracer():
    return Tracer()


@pytest.fixture
def make_engine(store, tracer):
    """Build an engine around a provider, sharing the test store and tracer."""

    def factory(provider, **kwargs):
        kwargs.setdefault("store", store)
        kwargs.setdefault("tracer", tracer)
        kwargs.setdefault("corrector", CoordinateCorrector())
        return ExecutionEngine(provider, **kwargs)

    return factory


@pytest.fixture
def engine(make_engine, fake_provider):
    return make_engine(fake_provider)


@pytest.fixture
def hangzhou_trip():
    return {"destination": "杭州", "budget": 5000, "days": 3}


@pytest.fixture
def beijing_trip():
    return {"destination": "北京", "budget": 500, "days": 6}


@pytest.fixture
def mock_gemini_client():
    """Mock Gemini client for testing."""
    mock_client = MagicMock()

    # Mock the aio.models.generate_content method
    mock_response = MagicMock()
    mock_response.text = '{"days": [{"day": 1}]}'

    mock_client.aio = MagicMock()
    mock_client.aio.models = MagicMock()
    mock_client.aio.models.generate_content = AsyncMock(return_value=mock_response)

    return mock_client


@pytest.fixture
def test_agent_config():
    """Test agent configuration."""
    return AgentConfig(
        name="Test Agent",
        instructions="You are a test agent",
        model="gemini-2.5-flash",
        temperature=0.5,
    )
