from __future__ import annotations

import socket
from dataclasses import dataclass, field
from typing import List, Tuple

import psutil


def local_addresses() -> List[str]:
    """Non-loopback IPv4 addresses of all local interfaces."""
    addresses: List[str] = []
    for _name, entries in sorted(psutil.net_if_addrs().items()):
        for entry in entries:
            if entry.family != socket.AF_INET:
                continue
            if entry.address.startswith("127."):
                continue
            if entry.address not in addresses:
                addresses.append(entry.address)
    return addresses


@dataclass(frozen=True)
class DeviceDescriptor:
    device_id: str
    label: str
    group: str
    sensor_link: str
    addresses: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def discover(cls, device_id: str, label: str, group: str, sensor_link: str) -> "DeviceDescriptor":
        return cls(
            device_id=device_id,
            label=label,
            group=group,
            sensor_link=sensor_link,
            addresses=tuple(local_addresses()),
        )
