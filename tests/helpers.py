"""
Fakes and socket helpers shared by the relay tests.
"""
import asyncio
from unittest.mock import AsyncMock, Mock

from relay_server.protocol import NICKNAME_PROMPT

TIMEOUT = 3.0


class Writer:
    """Stand-in for asyncio.StreamWriter that records written lines."""
    def __init__(self):
        self.lines = []
        self.closed = False
        self.close_calls = 0
        self.drain = AsyncMock()
        self.transport = Mock()

    def write(self, data):
        self.lines.append(data.decode().rstrip("\n"))

    def is_closing(self):
        return self.closed

    def close(self):
        self.closed = True
        self.close_calls += 1

    async def wait_closed(self):
        pass

    def get_extra_info(self, name):
        return ('127.0.0.1', 5000)


class Observer:
    """Registry member that records what it is sent."""
    def __init__(self, identifier):
        self.identifier = identifier
        self.received = []
        self.closed = False

    async def send_message(self, line):
        self.received.append(line)
        return True

    async def close(self, announce=True):
        self.closed = True


async def read(reader):
    """Read one line from the server, without its terminator."""
    data = await asyncio.wait_for(reader.readline(), TIMEOUT)
    return data.decode().rstrip("\n")


async def send(writer, line):
    writer.write(line.encode() + b'\n')
    await writer.drain()


async def join(port, nickname):
    """Connect and negotiate a nickname; returns (identifier, reader, writer)."""
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    identifier = await read(reader)
    assert await read(reader) == NICKNAME_PROMPT
    await send(writer, nickname)
    assert await read(reader) == f"SYSTEM:Welcome to the chat {nickname}!"
    return identifier, reader, writer
