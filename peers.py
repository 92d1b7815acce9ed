"""
Peer geolocation for the network overview
Filters non-public peers and attaches cached or freshly fetched locations
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from cache import GeoRecord

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

NON_PUBLIC_NETWORKS = [
    ipaddress.ip_network(net)
    for net in (
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "::1/128",
        "fc00::/7",
        "fe80::/10",
    )
]


def split_host_port(addr: str) -> Tuple[str, Optional[int]]:
    """
    Split a peer address into host and port

    Handles `1.2.3.4:10605`, `[2001:db8::1]:10605`, bare IPv4 and bare IPv6.
    """
    addr = addr.strip()
    if addr.startswith("["):
        host, sep, rest = addr[1:].partition("]")
        if not sep:
            return addr, None
        port = rest[1:] if rest.startswith(":") else ""
        return host, int(port) if port.isdigit() else None

    if addr.count(":") == 1:
        host, _, port = addr.partition(":")
        return host, int(port) if port.isdigit() else None

    # bare IPv6 or IPv4 without a port
    return addr, None


def parse_ip(host: str) -> Optional[IPAddress]:
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return None
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


def is_non_public(ip: IPAddress) -> bool:
    """Private, loopback or link-local"""
    return any(ip.version == net.version and ip in net for net in NON_PUBLIC_NETWORKS)


class PeerGeolocator:
    """Resolves node peers to geolocated, publicly routable entries"""

    def __init__(self, geoip_client, geo_cache):
        self.geoip = geoip_client
        self.cache = geo_cache

    def locate(self, peers: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        located: List[Dict[str, Any]] = []
        failed: Set[str] = set()

        for peer in peers:
            host, _ = split_host_port(str(peer.get("addr", "")))
            ip = parse_ip(host)
            # Hostnames and onion addresses are skipped rather than geolocated
            if ip is None:
                logger.debug(f"Skipping peer with non-IP address {peer.get('addr')!r}")
                continue
            if is_non_public(ip):
                continue

            bare_ip = str(ip)
            if bare_ip in failed:
                continue

            record = self._resolve(bare_ip)
            if record is None:
                failed.add(bare_ip)
                continue

            located.append({**peer, "addr": bare_ip, "geoip": record.location()})

        return located

    def _resolve(self, ip: str) -> Optional[GeoRecord]:
        record = self.cache.get(ip)
        if record is not None:
            logger.debug(f"GeoIP cache hit for {ip}")
            return record

        record = self.geoip.lookup(ip)
        if record is None:
            return None
        return self.cache.add(record)
