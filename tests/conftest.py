"""
Global pytest configuration and fixtures for mcphost tests

Provides:
- Descriptors launching the scripted fake MCP server
- In-memory server store
- Event queue helpers
"""

import asyncio
import sys
from pathlib import Path

import pytest

from mcphost.connection.types import ServerDescriptor
from mcphost.storage.sql_store import SQLServerStore

FAKE_SERVER = Path(__file__).parent / "fixtures" / "fake_mcp_server.py"


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom settings"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")


# ============================================================================
# Server Descriptors
# ============================================================================

@pytest.fixture
def make_descriptor():
    """Build a descriptor that runs the fake server in the given mode"""

    def _make(mode: str = "normal", server_id: str = "fake", name: str = "Fake Server"):
        return ServerDescriptor(
            id=server_id,
            name=name,
            command=sys.executable,
            args=(str(FAKE_SERVER), mode),
            description=f"Fake MCP server ({mode})",
        )

    return _make


@pytest.fixture
def fake_descriptor(make_descriptor):
    return make_descriptor()


# ============================================================================
# Storage
# ============================================================================

@pytest.fixture
async def memory_store():
    """Connected in-memory SQL store"""
    store = SQLServerStore(':memory:')
    await store.connect()
    yield store
    await store.close()


# ============================================================================
# Helpers
# ============================================================================

def drain(queue: asyncio.Queue) -> list:
    """Everything currently sitting in a queue, without waiting"""
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


async def wait_for_condition(predicate, timeout: float = 5.0, interval: float = 0.02):
    """Poll predicate until it is true; fail the test on timeout"""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            pytest.fail("Condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def drain_events():
    return drain


@pytest.fixture
def wait_until():
    return wait_for_condition
