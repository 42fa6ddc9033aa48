"""
Registry of active sessions.

Holds the sessions that finished nickname negotiation and fans broadcast
lines out to them.
"""

import asyncio
import logging

logger = logging.getLogger(__name__)

# errors that mark a recipient as dead during broadcast
SEND_ERRORS = (ConnectionResetError, BrokenPipeError, ConnectionAbortedError, OSError)


class ConnectionRegistry:
    """
    Shared map of identifier -> session.

    Membership changes and the broadcast snapshot are serialized by one
    lock. Delivery itself runs outside the lock, one dispatch per recipient,
    so a slow peer only delays its own copy.
    """

    def __init__(self, send_timeout=2.0):
        """
        Args:
            send_timeout: Seconds a single recipient may take to accept a line
        """
        self.send_timeout = send_timeout
        self._sessions = {}
        self._lock = asyncio.Lock()
        self.background_tasks = set()

    async def add(self, session):
        async with self._lock:
            self._sessions[session.identifier] = session
        logger.debug(f"Registered session {session.identifier}")

    async def remove(self, session):
        """Remove the session if it is the one registered under its identifier."""
        async with self._lock:
            if self._sessions.get(session.identifier) is session:
                del self._sessions[session.identifier]
                logger.debug(f"Deregistered session {session.identifier}")
                return True
        return False

    async def snapshot(self):
        async with self._lock:
            return list(self._sessions.values())

    async def clear(self):
        async with self._lock:
            self._sessions.clear()

    def get(self, identifier):
        return self._sessions.get(identifier)

    def __contains__(self, identifier):
        return identifier in self._sessions

    def __len__(self):
        return len(self._sessions)

    async def _deliver(self, session, line):
        """Send one line to one recipient with a timeout."""
        try:
            await asyncio.wait_for(session.send_message(line), timeout=self.send_timeout)
            return session, None
        except asyncio.TimeoutError:
            return session, "timeout"
        except SEND_ERRORS as e:
            return session, str(e) or type(e).__name__
        except Exception as e:
            logger.error(f"Unexpected error sending to {session.identifier}: {type(e).__name__}: {e}")
            return session, str(e) or type(e).__name__

    async def broadcast_to_all(self, line, exclude=None):
        """
        Deliver a line to every registered session except `exclude`.

        The recipient list is a snapshot taken at call time. Recipients whose
        delivery fails are closed in the background; the rest still get the
        line.
        """
        async with self._lock:
            recipients = [s for s in self._sessions.values() if s is not exclude]
        logger.debug(f"broadcast_to_all(): {line} -> {len(recipients)} recipients")
        if not recipients:
            return
        results = await asyncio.gather(*(self._deliver(s, line) for s in recipients))

        for session, error in results:
            if error:
                logger.warning(f"Dropping session {session.identifier} after failed send: {error}")
                task = asyncio.create_task(session.close())
                self.background_tasks.add(task)
                task.add_done_callback(self._task_done_callback)

    def _task_done_callback(self, task):
        """Called when background task completes"""
        self.background_tasks.discard(task)
        try:
            task.result()
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Background task failed: {e}")
