"""Kernel access for links, addresses and routes."""
import functools
import ipaddress
import socket
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from pyroute2 import IPRoute
from pyroute2.netlink.exceptions import NetlinkError

from ..errors import NetworkError
from ..wgconf.schema import IPInterface, IPNetwork

RT_TABLE_MAIN = 254
RTPROT_BOOT = 3
RTPROT_STATIC = 4


@dataclass
class LinkState:
    """A link as currently known to the kernel."""
    index: int
    name: str
    kind: Optional[str] = None
    mtu: Optional[int] = None


@dataclass
class RouteState:
    """A route as currently known to the kernel."""
    dst: IPNetwork
    table: int = RT_TABLE_MAIN
    protocol: int = RTPROT_BOOT
    oif: Optional[int] = None


def _netlink_call(func):
    """Translate pyroute2 errors into NetworkError."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except NetlinkError as e:
            raise NetworkError(f"netlink error: {e}") from e

    return wrapper


class NetlinkBackend(ABC):
    """Abstract access to the kernel's link, address and route tables."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        """Release the underlying socket."""
        pass

    @abstractmethod
    def list_links(self) -> list[LinkState]:
        """List all links."""
        pass

    @abstractmethod
    def create_link(self, name: str, kind: str, mtu: int) -> None:
        """Create a link. The kernel assigns its index."""
        pass

    @abstractmethod
    def set_link(self, index: int, mtu: int, up: bool = True) -> None:
        """Set MTU and administrative state of a link."""
        pass

    @abstractmethod
    def list_addresses(self, index: int) -> list[IPInterface]:
        """List addresses assigned to a link."""
        pass

    @abstractmethod
    def add_address(self, index: int, address: IPInterface) -> None:
        pass

    @abstractmethod
    def delete_address(self, index: int, address: IPInterface) -> None:
        pass

    @abstractmethod
    def list_routes(self, table: Optional[int] = None) -> list[RouteState]:
        """List IPv4 and IPv6 routes, optionally limited to one table."""
        pass

    @abstractmethod
    def add_route(self, index: int, dst: IPNetwork, table: int) -> None:
        pass

    @abstractmethod
    def delete_route(self, route: RouteState) -> None:
        pass


class PyRoute2Backend(NetlinkBackend):
    """NetlinkBackend on top of pyroute2's IPRoute."""

    def __init__(self, ipr: Optional[IPRoute] = None):
        if ipr is None:
            try:
                ipr = IPRoute()
            except (NetlinkError, OSError) as e:
                raise NetworkError(f"failed to establish netlink conn: {e}") from e
        self._ipr = ipr

    def close(self) -> None:
        self._ipr.close()

    @_netlink_call
    def list_links(self) -> list[LinkState]:
        links = []
        for msg in self._ipr.get_links():
            kind = None
            link_info = msg.get_attr("IFLA_LINKINFO")
            if link_info is not None:
                kind = link_info.get_attr("IFLA_INFO_KIND")
            links.append(LinkState(
                index=msg["index"],
                name=msg.get_attr("IFLA_IFNAME"),
                kind=kind,
                mtu=msg.get_attr("IFLA_MTU"),
            ))
        return links

    @_netlink_call
    def create_link(self, name: str, kind: str, mtu: int) -> None:
        self._ipr.link("add", ifname=name, kind=kind, mtu=mtu)

    @_netlink_call
    def set_link(self, index: int, mtu: int, up: bool = True) -> None:
        self._ipr.link("set", index=index, mtu=mtu, state="up" if up else "down")

    @_netlink_call
    def list_addresses(self, index: int) -> list[IPInterface]:
        addresses = []
        for msg in self._ipr.get_addr(index=index):
            address = msg.get_attr("IFA_ADDRESS")
            if address is None:
                continue
            addresses.append(ipaddress.ip_interface(f"{address}/{msg['prefixlen']}"))
        return addresses

    @_netlink_call
    def add_address(self, index: int, address: IPInterface) -> None:
        self._ipr.addr(
            "add",
            index=index,
            address=str(address.ip),
            prefixlen=address.network.prefixlen,
        )

    @_netlink_call
    def delete_address(self, index: int, address: IPInterface) -> None:
        self._ipr.addr(
            "del",
            index=index,
            address=str(address.ip),
            prefixlen=address.network.prefixlen,
        )

    @_netlink_call
    def list_routes(self, table: Optional[int] = None) -> list[RouteState]:
        filters = {} if table is None else {"table": table}
        routes = []
        for family in (socket.AF_INET, socket.AF_INET6):
            for msg in self._ipr.get_routes(family=family, **filters):
                routes.append(self._route_state(msg))
        return routes

    @_netlink_call
    def add_route(self, index: int, dst: IPNetwork, table: int) -> None:
        self._ipr.route(
            "add",
            dst=str(dst),
            oif=index,
            table=table,
            proto=RTPROT_BOOT,
        )

    @_netlink_call
    def delete_route(self, route: RouteState) -> None:
        self._ipr.route(
            "del",
            dst=str(route.dst),
            oif=route.oif,
            table=route.table,
            proto=route.protocol,
        )

    @staticmethod
    def _route_state(msg) -> RouteState:
        # RTA_TABLE carries ids above 255; the header field is the fallback
        table = msg.get_attr("RTA_TABLE") or msg["table"] or RT_TABLE_MAIN
        dst = msg.get_attr("RTA_DST")
        if dst is None:
            dst = "0.0.0.0" if msg["family"] == socket.AF_INET else "::"
        return RouteState(
            dst=ipaddress.ip_network(f"{dst}/{msg['dst_len']}", strict=False),
            table=table,
            protocol=msg["proto"],
            oif=msg.get_attr("RTA_OIF"),
        )
