"""Reachability check for the remote API, cached for a short time."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from .remote import RemoteClient

LOGGER = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 3.0
DEFAULT_PROBE_TTL = 30.0


class AvailabilityProber:
    """Answer "can the remote API be used right now?" without ever raising.

    The last answer is reused for ``ttl`` seconds; ``ttl <= 0`` probes on
    every call. Without a client the remote source is disabled and the answer
    is always ``False``.
    """

    def __init__(
        self,
        client: Optional[RemoteClient],
        *,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
        ttl: float = DEFAULT_PROBE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.timeout = timeout
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._cached: Optional[bool] = None
        self._expires_at = 0.0

    def probe(self, timeout: Optional[float] = None) -> bool:
        if self.client is None:
            return False
        with self._lock:
            if self._cached is not None and self._clock() < self._expires_at:
                return self._cached
        try:
            self.client.ping(timeout=timeout or self.timeout)
            available = True
        except Exception as exc:  # noqa: BLE001 - any failure means unavailable
            LOGGER.info("Remote API unavailable: %s", exc)
            available = False
        self._remember(available)
        return available

    def mark_unavailable(self) -> None:
        """Record a failure seen mid-request so later calls skip the remote until the TTL lapses."""
        self._remember(False)

    def reset(self) -> None:
        with self._lock:
            self._cached = None
            self._expires_at = 0.0

    def _remember(self, available: bool) -> None:
        if self.ttl <= 0:
            return
        with self._lock:
            self._cached = available
            self._expires_at = self._clock() + self.ttl


__all__ = ["AvailabilityProber", "DEFAULT_PROBE_TIMEOUT", "DEFAULT_PROBE_TTL"]
