"""
Main relay server implementation.

Accepts connections, hands each one to its own session, and coordinates
shutdown.
"""

import argparse
import asyncio
import logging
import sys

from .console import AdminConsole
from .identifiers import ExhaustedSpace, IdentifierAllocator
from .registry import ConnectionRegistry
from .session import ClientSession

logger = logging.getLogger(__name__)

DEFAULT_PORT = 64882


class Server:
    """
    Async chat relay server.

    Features:
    - One task per connected client
    - Unique identifier per live connection
    - Per-recipient broadcast with send timeouts
    - Idempotent shutdown, callable from another thread
    """

    def __init__(self, port, host="0.0.0.0", allocator=None, registry=None, send_timeout=2.0):
        """
        Initialize server.

        Args:
            port: Port to listen on (0 picks a free port)
            host: Interface to bind
            allocator: IdentifierAllocator, a default 1..9999 one if omitted
            registry: ConnectionRegistry, a new one if omitted
            send_timeout: Per-recipient broadcast timeout in seconds
        """
        self.host = host
        self.port = port
        self.allocator = allocator if allocator is not None else IdentifierAllocator()
        self.registry = registry if registry is not None else ConnectionRegistry(send_timeout=send_timeout)
        self.sessions = set()  # every live session, negotiating ones included
        self.started = asyncio.Event()
        self._server = None
        self._loop = None
        self._closed = False
        self._listener_error = None
        self._shutdown_task = None
        self._previous_handler = None

    @property
    def closed(self):
        return self._closed

    async def client_handler(self, reader, writer):
        """Handle a single client connection."""
        addr = writer.get_extra_info("peername")
        if self._closed:
            logger.info(f"Rejecting {addr}: server is shutting down")
            await self._reject(writer)
            return
        try:
            identifier = self.allocator.allocate()
        except ExhaustedSpace as e:
            logger.warning(f"Rejecting {addr}: {e}")
            await self._reject(writer)
            return

        session = ClientSession(identifier, reader, writer, self.registry, self.allocator)
        self.sessions.add(session)
        try:
            await session.run()
        finally:
            self.sessions.discard(session)

    async def _reject(self, writer):
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Error closing rejected connection: {e}")

    def _is_accept_failure(self, context):
        """True if an event loop error report is an accept error on our listener."""
        if not isinstance(context.get("exception"), OSError):
            return False
        if "accept" not in context.get("message", ""):
            return False
        sock = context.get("socket")
        if sock is None or self._server is None:
            return True
        return sock.fileno() in {s.fileno() for s in self._server.sockets}

    def _exception_handler(self, loop, context):
        """Treat accept errors on the listener as fatal; pass anything else on."""
        if self._is_accept_failure(context) and not self._closed:
            exc = context["exception"]
            if self._listener_error is None:
                logger.error(f"Accept failed on listener: {exc}")
                self._listener_error = exc
                self._shutdown_task = loop.create_task(self.shutdown())
            return
        if self._previous_handler is not None:
            self._previous_handler(loop, context)
        else:
            loop.default_exception_handler(context)

    async def run_server(self):
        """Bind the listener and serve until shutdown() closes it."""
        self._loop = asyncio.get_running_loop()
        try:
            self._server = await asyncio.start_server(
                self.client_handler,
                self.host,
                self.port
            )
        except OSError as e:
            logger.error(f"Could not listen on {self.host}:{self.port}: {e}")
            await self.shutdown()
            raise

        addr = self._server.sockets[0].getsockname()
        self.port = addr[1]
        logger.info(f"Server running on {addr}")
        self._previous_handler = self._loop.get_exception_handler()
        self._loop.set_exception_handler(self._exception_handler)
        self.started.set()
        try:
            await self._server.serve_forever()
        except asyncio.CancelledError:
            if not self._closed:
                await self.shutdown()
                raise
            if self._listener_error is not None:
                await self._shutdown_task
                raise self._listener_error
            logger.info("Client listener closed")
        except Exception:
            logger.exception("Error in server runtime")
            await self.shutdown()
            raise
        finally:
            self._loop.set_exception_handler(self._previous_handler)

    async def shutdown(self):
        """
        Stop accepting connections and close every session.

        Sends no departure notices. Calling it again is a no-op.
        """
        if self._closed:
            return
        self._closed = True
        logger.info("Server shutdown started")
        if self._server is not None:
            self._server.close()

        sessions = set(await self.registry.snapshot()) | set(self.sessions)
        results = await asyncio.gather(
            *(session.close(announce=False) for session in sessions),
            return_exceptions=True
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Error closing session during shutdown: {result}")
        await self.registry.clear()
        logger.info(f"Server shutdown complete ({len(sessions)} sessions closed)")

    def shutdown_threadsafe(self, timeout=None):
        """Run shutdown() on the server's event loop from another thread."""
        if self._loop is None:
            raise RuntimeError("server is not running")
        future = asyncio.run_coroutine_threadsafe(self.shutdown(), self._loop)
        return future.result(timeout)


async def serve(args):
    server = Server(args.port, host=args.host, send_timeout=args.send_timeout)
    if not args.no_console:
        console = AdminConsole(server)

        async def start_console():
            await server.started.wait()
            console.start()

        console_task = asyncio.create_task(start_console())
    try:
        await server.run_server()
    finally:
        if not args.no_console:
            console_task.cancel()


def main():
    """Entry point for server"""
    parser = argparse.ArgumentParser(description="Chat Relay Server")
    parser.add_argument('--host', default='0.0.0.0', help='Interface to listen on')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT, help='Port to listen on')
    parser.add_argument('--send-timeout', type=float, default=2.0,
                        help='Seconds a client may take to accept a broadcast line')
    parser.add_argument('--no-console', action='store_true', help='Do not read admin commands from stdin')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    args = parser.parse_args()

    # setup logging
    level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    try:
        asyncio.run(serve(args))
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except OSError as e:
        logger.error(f"Server failed: {e}")
        sys.exit(1)
    logger.info("Server closed")


if __name__ == "__main__":
    main()
