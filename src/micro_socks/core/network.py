"""Network interface lookup.

This module provides:
- Resolution of an interface name to a usable IPv4 source address
- A listing of the host's interfaces for the command line

Outbound interface selection is source-address hinting only: the proxy binds the
outbound socket to the interface's address and leaves routing to the kernel.

Example:
    ip = get_interface_ip("wlan0")
    if ip is None:
        print("falling back to default routing")
"""

import ipaddress
import socket
from dataclasses import dataclass

import psutil
from loguru import logger


@dataclass
class NetworkInterface:
    """Network interface representation with its key properties.

    Attributes:
        name: Interface name (e.g., 'en0', 'eth0')
        ip: First IPv4 address assigned to the interface, if any
        is_up: Boolean indicating if the interface is up and running
    """

    name: str
    ip: str | None
    is_up: bool


def get_interface_ip(name: str) -> str | None:
    """Return the first non-loopback IPv4 address of interface ``name``.

    Returns:
        str | None: The address, or None if the interface is missing or has
        no suitable address
    """
    try:
        addrs = psutil.net_if_addrs().get(name)
    except OSError as e:
        logger.warning(f"Error listing network interfaces: {e}")
        return None

    if addrs is None:
        logger.warning(f"Interface {name} not found")
        return None

    for addr in addrs:
        if addr.family != socket.AF_INET:
            continue
        try:
            if ipaddress.IPv4Address(addr.address).is_loopback:
                continue
        except ValueError:
            continue
        return addr.address

    logger.warning(f"Interface {name} has no non-loopback IPv4 address")
    return None


def list_interfaces() -> list[NetworkInterface]:
    """List the host's network interfaces, sorted by name."""
    stats = psutil.net_if_stats()
    interfaces = []
    for name, addrs in sorted(psutil.net_if_addrs().items()):
        ipv4 = next((addr.address for addr in addrs if addr.family == socket.AF_INET), None)
        iface_stats = stats.get(name)
        interfaces.append(
            NetworkInterface(name=name, ip=ipv4, is_up=bool(iface_stats and iface_stats.isup))
        )
    return interfaces
