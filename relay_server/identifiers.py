"""
Identifier allocation.

Identifiers are short decimal strings drawn from a bounded range and are
unique among live sessions. A released identifier may be handed out again.
"""

import logging
import random
import threading

logger = logging.getLogger(__name__)

# random draws before falling back to a scan of the range
MAX_RANDOM_ATTEMPTS = 32


class ExhaustedSpace(Exception):
    """Every identifier in the range is currently in use."""


class IdentifierAllocator:
    """
    Hands out identifiers unique among the ones currently in use.

    The in-use set is the only shared state and is guarded by a lock, so
    allocate() and release() may be called from any thread.
    """

    def __init__(self, low=1, high=9999, rng=None):
        """
        Args:
            low: Smallest identifier value (inclusive)
            high: Largest identifier value (inclusive)
            rng: Optional random.Random instance for candidate draws
        """
        if low > high:
            raise ValueError(f"empty identifier range {low}..{high}")
        self.low = low
        self.high = high
        self._rng = rng or random.Random()
        self._in_use = set()
        self._lock = threading.Lock()

    @property
    def capacity(self):
        return self.high - self.low + 1

    def allocate(self):
        """Return a free identifier and mark it in use."""
        with self._lock:
            if len(self._in_use) >= self.capacity:
                raise ExhaustedSpace(f"all {self.capacity} identifiers are in use")
            for _ in range(MAX_RANDOM_ATTEMPTS):
                candidate = str(self._rng.randint(self.low, self.high))
                if candidate not in self._in_use:
                    self._in_use.add(candidate)
                    return candidate
            logger.debug("Identifier space crowded, scanning for a free value")
            for value in range(self.low, self.high + 1):
                candidate = str(value)
                if candidate not in self._in_use:
                    self._in_use.add(candidate)
                    return candidate
        # unreachable while the size check above holds
        raise ExhaustedSpace(f"all {self.capacity} identifiers are in use")

    def release(self, identifier):
        """Return an identifier to the pool. Unknown identifiers are ignored."""
        with self._lock:
            self._in_use.discard(identifier)

    def in_use(self, identifier):
        with self._lock:
            return identifier in self._in_use

    def __len__(self):
        with self._lock:
            return len(self._in_use)
