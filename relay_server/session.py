"""
Client session management.

Drives one connected client through nickname negotiation and the chat
loop, and releases its resources when it goes away.
"""

import asyncio
import enum
import logging

from .commands import ChatMessage, IdentityQuery, MissingNickname, Quit, Rename, interpret
from .protocol import (
    JOINED,
    LEFT,
    NICKNAME_PROMPT,
    chat_line,
    decode_line,
    encode_line,
    event_line,
    renamed,
    system_line,
)

logger = logging.getLogger(__name__)

# seconds to wait for buffered output to flush before aborting the transport
CLOSE_TIMEOUT = 2.0

# per-client failures that end only this session
READ_ERRORS = (
    ConnectionResetError,
    BrokenPipeError,
    ConnectionAbortedError,
    asyncio.IncompleteReadError,
    OSError,
    ValueError,
)


class SessionState(enum.Enum):
    CONNECTING = "connecting"
    NEGOTIATING = "negotiating"
    ACTIVE = "active"
    CLOSED = "closed"


class ClientSession:
    """
    Represents a single connected client.

    Manages:
    - Identifier and nickname
    - Negotiation and the receive loop
    - Writes to the client's stream
    - Teardown (deregistration, identifier release, channel close)
    """

    def __init__(self, identifier, reader, writer, registry, allocator):
        """
        Initialize client session.

        Args:
            identifier: Identifier allocated for this connection
            reader: asyncio StreamReader for this client
            writer: asyncio StreamWriter for this client
            registry: ConnectionRegistry used for membership and broadcast
            allocator: IdentifierAllocator the identifier is released to
        """
        self.identifier = identifier
        self.nickname = ""
        self.state = SessionState.CONNECTING
        self.reader = reader
        self.writer = writer
        self.registry = registry
        self.allocator = allocator
        self.addr = writer.get_extra_info("peername")
        self._write_lock = asyncio.Lock()

    def format_addr(self):
        """Format address as IP:Port string."""
        if not self.addr:
            return "unknown"
        return f"{self.addr[0]}:{self.addr[1]}"

    @property
    def active(self):
        return self.state is SessionState.ACTIVE

    async def _write_line(self, line):
        """Write one line to the client, serialized with other writers."""
        async with self._write_lock:
            if self.state is SessionState.CLOSED:
                return
            self.writer.write(encode_line(line))
            await self.writer.drain()

    async def send_message(self, line):
        """
        Send a broadcast line to this client.

        Sessions that are not active yet (or any more) get nothing, so
        broadcasts never interleave with the nickname prompt.
        """
        if not self.active:
            return False
        await self._write_line(line)
        return True

    async def send_system(self, text):
        """Send a private SYSTEM line to this client only."""
        await self._write_line(system_line(text))

    async def run(self):
        """Negotiate a nickname, then relay lines until the client goes away."""
        try:
            if await self.negotiate():
                await self.chat_loop()
        except READ_ERRORS as e:
            logger.error(f"Error in session for client {self.identifier}: {type(e).__name__}: {e}")
        finally:
            await self.close()

    async def negotiate(self):
        """
        Send the identifier and prompt, read the nickname, then go active.

        Returns False if the client disconnected before answering.
        """
        self.state = SessionState.NEGOTIATING
        await self._write_line(self.identifier)
        logger.info(f"{self.identifier} connected from {self.format_addr()}")
        await self._write_line(NICKNAME_PROMPT)

        data = await self.reader.readline()
        if not data:
            logger.info(f"{self.identifier} disconnected before choosing a nickname")
            return False
        if self.state is SessionState.CLOSED:
            # closed by a shutdown sweep while waiting for the nickname
            return False
        self.nickname = decode_line(data)

        self.state = SessionState.ACTIVE
        await self.registry.add(self)
        if self.state is SessionState.CLOSED:
            await self.registry.remove(self)
            return False
        logger.info(f"{self.identifier} joined as {self.nickname}")
        await self.registry.broadcast_to_all(event_line(self.identifier, self.nickname, JOINED), exclude=self)
        await self.send_system(f"Welcome to the chat {self.nickname}!")
        return True

    async def chat_loop(self):
        """Read lines and act on them while the session is active."""
        while self.active:
            data = await self.reader.readline()
            if not data:
                logger.info(f"{self.identifier} disconnected (EOF)")
                break
            text = decode_line(data)
            logger.debug(f"Received from {self.identifier}: {text}")
            await self.handle(interpret(text))

    async def handle(self, command):
        """Carry out one interpreted command."""
        if isinstance(command, Rename):
            old = self.nickname
            await self.registry.broadcast_to_all(
                event_line(self.identifier, old, renamed(command.nickname)), exclude=self
            )
            logger.info(f"{old} renamed themselves to {command.nickname}")
            self.nickname = command.nickname
            await self.send_system(f"Successfully changed nickname to {self.nickname}")
        elif isinstance(command, MissingNickname):
            await self.send_system("No nickname provided!")
        elif isinstance(command, Quit):
            logger.info(f"{self.identifier} disconnected")
            await self.registry.broadcast_to_all(event_line(self.identifier, self.nickname, LEFT), exclude=self)
            await self.close(announce=False)
        elif isinstance(command, IdentityQuery):
            logger.info(f"{self.nickname} requested their id")
            await self.send_system(f"Your id is: {self.identifier}")
        elif isinstance(command, ChatMessage):
            await self.registry.broadcast_to_all(
                chat_line(self.identifier, self.nickname, command.text), exclude=self
            )
        else:
            raise TypeError(f"unknown command {command!r}")

    async def close(self, announce=True):
        """
        Tear the session down. Safe to call more than once.

        Args:
            announce: Broadcast a departure notice if the session was active.
                The server's shutdown sweep passes False.
        """
        if self.state is SessionState.CLOSED:
            return
        was_active = self.active
        self.state = SessionState.CLOSED
        logger.debug(f"Client {self.identifier} shutdown started")

        await self.registry.remove(self)
        self.allocator.release(self.identifier)

        if not self.writer.is_closing():
            self.writer.close()
        try:
            await asyncio.wait_for(self.writer.wait_closed(), timeout=CLOSE_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(f"Client {self.identifier} did not drain on close, aborting")
            self.writer.transport.abort()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Client {self.identifier} closed with error: {e}")

        if announce and was_active:
            await self.registry.broadcast_to_all(event_line(self.identifier, self.nickname, LEFT))
        logger.info(f"Client {self.identifier} closed")
