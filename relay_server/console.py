"""
Administrative console.

Reads commands from a text stream on a background thread. The only
command is /shutdown, which stops the server.
"""

import logging
import sys
import threading

logger = logging.getLogger(__name__)

SHUTDOWN = "/shutdown"


class AdminConsole:
    """Reads admin commands on a daemon thread so it never blocks the event loop."""

    def __init__(self, server, stream=None):
        """
        Args:
            server: Server to shut down on request
            stream: Text stream to read commands from (stdin if omitted)
        """
        self.server = server
        self.stream = stream if stream is not None else sys.stdin
        self._thread = None

    def start(self):
        self._thread = threading.Thread(target=self.run, name="admin-console", daemon=True)
        self._thread.start()
        return self._thread

    def join(self, timeout=None):
        if self._thread is not None:
            self._thread.join(timeout)

    def run(self):
        """Read lines until /shutdown or end of input."""
        for line in self.stream:
            command = line.strip()
            if not command:
                continue
            if command == SHUTDOWN:
                logger.info("Shutdown requested from console")
                try:
                    self.server.shutdown_threadsafe()
                except RuntimeError as e:
                    logger.error(f"Could not shut down server: {e}")
                return
            print(f"Unknown command: {command} (use {SHUTDOWN})")
        logger.info("Console input closed")
