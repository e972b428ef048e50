"""
tinysubnets - /30 lease allocation engine

Hands out isolated four-address subnets (network, router, host, broadcast)
to DHCP clients and abstract devices, keyed by MAC address or identifier,
and keeps them across restarts.
"""

__version__ = "0.1.0"
__author__ = "tinysubnets developers"

from .common import addresses

__all__ = ['addresses']
