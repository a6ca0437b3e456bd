"""
OS network state - does this machine have any usable network interface?

This is the "browser online/offline event" of the terminal app: the sync
engine samples it on every heartbeat and treats a change as an OS transition.
It says nothing about whether the remote store is reachable.
"""

import logging
import socket

import psutil

logger = logging.getLogger(__name__)

_ADDRESS_FAMILIES = (socket.AF_INET, socket.AF_INET6)


def _is_loopback(name: str, addresses) -> bool:
    if name.lower().startswith('lo'):
        return True
    ips = [a.address for a in addresses if a.family in _ADDRESS_FAMILIES]
    return bool(ips) and all(ip.startswith('127.') or ip == '::1' for ip in ips)


def os_network_up() -> bool:
    """True when at least one non-loopback interface is up and has an IP address."""
    try:
        stats = psutil.net_if_stats()
        addrs = psutil.net_if_addrs()
    except OSError as e:
        logger.debug(f"Interface query failed, assuming network is up: {e}")
        return True

    for name, st in stats.items():
        if not st.isup:
            continue
        addresses = addrs.get(name, [])
        if _is_loopback(name, addresses):
            continue
        if any(a.family in _ADDRESS_FAMILIES for a in addresses):
            return True
    return False
