"""
Fixtures for the relay tests.
"""
import asyncio
import pytest
import pytest_asyncio

from helpers import TIMEOUT
from relay_server.identifiers import IdentifierAllocator
from relay_server.registry import ConnectionRegistry
from relay_server.server import Server


@pytest.fixture
def allocator():
    return IdentifierAllocator()


@pytest.fixture
def registry():
    return ConnectionRegistry(send_timeout=0.5)


@pytest_asyncio.fixture
async def relay():
    """A running relay server on a free local port."""
    server = Server(0, host="127.0.0.1", send_timeout=1.0)
    task = asyncio.create_task(server.run_server())
    await asyncio.wait_for(server.started.wait(), TIMEOUT)
    yield server
    await server.shutdown()
    await asyncio.wait_for(task, TIMEOUT)
