"""
Connectivity Prober - is the remote store reachable, and through which base?

State machine:
    UNKNOWN -> PROBING -> AVAILABLE | UNAVAILABLE
PROBING is re-entered on every probe(); AVAILABLE <-> UNAVAILABLE can flip on
any probe, heartbeat or OS offline event.

Pings run outside the lock. While one is in flight, `available` keeps the last
known outcome. Every probe and every offline event takes a new generation, and
a probe whose generation was superseded discards its result.
"""

import logging
import threading
from enum import Enum

from outreachcrm.bus.events import EventBus, EVENT_STATUS_CHANGED
from outreachcrm.config import config

logger = logging.getLogger(__name__)


class ConnectivityState(Enum):
    UNKNOWN = 'unknown'
    PROBING = 'probing'
    AVAILABLE = 'available'
    UNAVAILABLE = 'unavailable'


class ConnectivityProber:

    def __init__(self, client, bus: EventBus, primary_base: str = None, fallback_base: str = None):
        self.client = client
        self.bus = bus
        self.primary_base = config.PRIMARY_API_BASE if primary_base is None else primary_base
        self.fallback_base = config.FALLBACK_API_BASE if fallback_base is None else fallback_base
        self.state = ConnectivityState.UNKNOWN
        self.api_base = self.primary_base
        self._available = False
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def available(self) -> bool:
        return self._available

    def probe(self) -> bool:
        """
        Ping primary, then fallback. Notifies subscribers with the outcome,
        changed or not, unless an offline event superseded this probe.
        Never raises.
        """
        with self._lock:
            self._generation += 1
            generation = self._generation
            previous = self.state
            self.state = ConnectivityState.PROBING

        reached = None
        try:
            if self.client.ping(self.primary_base):
                reached = self.primary_base
            elif self.fallback_base and self.client.ping(self.fallback_base):
                reached = self.fallback_base
        except Exception as e:
            logger.warning(f"Probe raised unexpectedly, treating remote as unavailable: {e}")

        with self._lock:
            if generation != self._generation:
                logger.debug(f"Discarding superseded probe result ({'up' if reached else 'down'})")
                return self._available
            self._available = reached is not None
            self.state = ConnectivityState.AVAILABLE if reached else ConnectivityState.UNAVAILABLE
            if reached:
                self.api_base = reached
            available = self._available
            api_base = self.api_base

        if previous != self.state:
            logger.info(f"Remote {'available via ' + api_base if available else 'unavailable'}")
        self.bus.emit(EVENT_STATUS_CHANGED, {'available': available, 'api_base': api_base})
        return available

    def mark_offline(self) -> None:
        """OS reported loss of network: flip to unavailable without probing."""
        with self._lock:
            self._generation += 1
            self._available = False
            self.state = ConnectivityState.UNAVAILABLE
            api_base = self.api_base
        logger.info("Network offline, switching to local mode")
        self.bus.emit(EVENT_STATUS_CHANGED, {'available': False, 'api_base': api_base})
