"""Network reconciler - converges link, addresses and routes.

Computes the symmetric difference between what the kernel has and what the
configuration wants, deletes the surplus and adds what is missing. Entries
present on both sides are never touched, so re-running with an unchanged
configuration performs no address or route mutation.

Every mutation is logged as the equivalent `ip` command first.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, TypeVar

from ..errors import LinkKindError, LinkNotFoundError, NetworkError
from ..utils.logging_config import timed
from ..utils.retry import with_retry
from ..wgconf.schema import NetworkConfig
from .backend import (
    RT_TABLE_MAIN,
    RTPROT_BOOT,
    RTPROT_STATIC,
    LinkState,
    NetlinkBackend,
    RouteState,
)

logger = logging.getLogger(__name__)

LINK_KIND = "wireguard"
DEFAULT_MTU = 1420

# Route protocols this tool treats as its own
MANAGED_PROTOCOLS = frozenset({RTPROT_BOOT, RTPROT_STATIC})

C = TypeVar("C")
D = TypeVar("D")


def symmetric_diff(
    current: dict[str, C],
    desired: dict[str, D],
) -> tuple[list[C], list[D]]:
    """
    Split two keyed sets into (to_delete, to_add).

    Keys present on both sides are dropped from both results.
    """
    to_delete = [value for key, value in current.items() if key not in desired]
    to_add = [value for key, value in desired.items() if key not in current]
    return to_delete, to_add


@dataclass
class ReconcileResult:
    """What the reconciler changed (or would change in dry-run)."""
    device: str
    index: Optional[int] = None
    link_created: bool = False
    mtu: Optional[int] = None
    addresses_added: list[str] = field(default_factory=list)
    addresses_removed: list[str] = field(default_factory=list)
    routes_added: list[str] = field(default_factory=list)
    routes_removed: list[str] = field(default_factory=list)

    @property
    def no_change(self) -> bool:
        """True when nothing but the MTU assertion happened."""
        return not (
            self.link_created or
            self.addresses_added or
            self.addresses_removed or
            self.routes_added or
            self.routes_removed
        )

    @property
    def total_changes(self) -> int:
        return (
            int(self.link_created) +
            len(self.addresses_added) +
            len(self.addresses_removed) +
            len(self.routes_added) +
            len(self.routes_removed)
        )


class NetworkReconciler:
    """Apply a NetworkConfig to the kernel."""

    def __init__(
        self,
        backend: NetlinkBackend,
        default_mtu: int = DEFAULT_MTU,
        dry_run: bool = False,
        link_lookup_attempts: int = 5,
    ):
        """
        Initialize the reconciler.

        Args:
            backend: Kernel access
            default_mtu: MTU asserted when the configuration has none
            dry_run: Log the commands without running them
            link_lookup_attempts: Polls for a freshly created link
        """
        self.backend = backend
        self.default_mtu = default_mtu
        self.dry_run = dry_run
        self.link_lookup_attempts = link_lookup_attempts

    def apply(self, network: NetworkConfig) -> ReconcileResult:
        """
        Converge link, addresses and routes to the configuration.

        Raises:
            NetworkError: If any kernel operation fails; remaining steps
                are skipped
        """
        result = ReconcileResult(device=network.device)

        try:
            index = self.ensure_link(network, result)
        except NetworkError as e:
            raise NetworkError(f"failed to ensure wireguard interface: {e}") from e

        result.index = index
        self.update_addresses(network, index, result)
        self.update_routes(network, index, result)
        return result

    @timed("ensure_link")
    def ensure_link(self, network: NetworkConfig, result: ReconcileResult) -> Optional[int]:
        """
        Make sure a wireguard link with the right MTU exists and is up.

        Returns:
            The link index, or None in dry-run when the link is not there yet
        """
        mtu = network.mtu if network.mtu is not None else self.default_mtu
        result.mtu = mtu

        link = self._find_link(network.device)
        if link is not None:
            if link.kind != LINK_KIND:
                raise LinkKindError(f"interface {network.device} is not a wireguard interface")
            logger.info(f"[#] ip link set mtu {mtu} up dev {network.device}")
            if not self.dry_run:
                self.backend.set_link(link.index, mtu, up=True)
            return link.index

        logger.info(f"[#] ip link add {network.device} type {LINK_KIND}")
        result.link_created = True
        if self.dry_run:
            logger.info(f"[#] ip link set mtu {mtu} up dev {network.device}")
            return None

        try:
            self.backend.create_link(network.device, LINK_KIND, mtu)
        except NetworkError as e:
            raise NetworkError(f"failed to create wireguard interface: {e}") from e

        index = self._lookup_created_link(network.device)
        logger.info(f"[#] ip link set mtu {mtu} up dev {network.device}")
        self.backend.set_link(index, mtu, up=True)
        return index

    @timed("update_addresses")
    def update_addresses(
        self,
        network: NetworkConfig,
        index: Optional[int],
        result: ReconcileResult,
    ) -> None:
        """Delete surplus addresses and add missing ones."""
        current = {}
        if index is not None:
            try:
                current = {str(a): a for a in self.backend.list_addresses(index)}
            except NetworkError as e:
                raise NetworkError(f"failed to get old addresses: {e}") from e

        desired = {str(a): a for a in network.addresses}
        to_delete, to_add = symmetric_diff(current, desired)

        for address in to_delete:
            logger.info(f"[#] ip address del {address} dev {network.device}")
            if not self.dry_run:
                try:
                    self.backend.delete_address(index, address)
                except NetworkError as e:
                    raise NetworkError(
                        f"failed to delete old address {address} on interface {network.device}: {e}"
                    ) from e
            result.addresses_removed.append(str(address))

        for address in to_add:
            logger.info(f"[#] ip address add {address} dev {network.device}")
            if not self.dry_run:
                try:
                    self.backend.add_address(index, address)
                except NetworkError as e:
                    raise NetworkError(
                        f"failed to add new address {address} on interface {network.device}: {e}"
                    ) from e
            result.addresses_added.append(str(address))

    @timed("update_routes")
    def update_routes(
        self,
        network: NetworkConfig,
        index: Optional[int],
        result: ReconcileResult,
    ) -> None:
        """Delete surplus managed routes and add missing ones."""
        table = network.table if network.table is not None else RT_TABLE_MAIN

        current: dict[str, RouteState] = {}
        if index is not None:
            try:
                routes = self.backend.list_routes(table=table)
            except NetworkError as e:
                raise NetworkError(f"failed to get old routes: {e}") from e
            current = {
                str(route.dst): route
                for route in routes
                if self._is_managed(route, table, index)
            }

        desired = {str(dst): dst for dst in network.routes}
        to_delete, to_add = symmetric_diff(current, desired)

        for route in to_delete:
            logger.info(f"[#] ip route del {route.dst} dev {network.device} table {table}")
            if not self.dry_run:
                try:
                    self.backend.delete_route(route)
                except NetworkError as e:
                    raise NetworkError(
                        f"failed to delete old route {route.dst} on interface {network.device}: {e}"
                    ) from e
            result.routes_removed.append(str(route.dst))

        for dst in to_add:
            logger.info(f"[#] ip route add {dst} dev {network.device} table {table}")
            if not self.dry_run:
                try:
                    self.backend.add_route(index, dst, table)
                except NetworkError as e:
                    raise NetworkError(
                        f"failed to add new route {dst} on interface {network.device}: {e}"
                    ) from e
            result.routes_added.append(str(dst))

    @staticmethod
    def _is_managed(route: RouteState, table: int, index: int) -> bool:
        # Skip routes added by the kernel or by other routing daemons
        if route.protocol not in MANAGED_PROTOCOLS:
            return False
        return route.table == table and route.oif == index

    def _find_link(self, name: str) -> Optional[LinkState]:
        try:
            links = self.backend.list_links()
        except NetworkError as e:
            raise NetworkError(f"failed to list interfaces: {e}") from e
        for link in links:
            if link.name == name:
                return link
        return None

    def _lookup_created_link(self, name: str) -> int:
        """Find the index of a link that was just created."""
        @with_retry(max_attempts=self.link_lookup_attempts, exceptions=(LinkNotFoundError,))
        def lookup() -> int:
            link = self._find_link(name)
            if link is None or link.kind != LINK_KIND:
                raise LinkNotFoundError(
                    f"failed to find wireguard interface {name} after setup"
                )
            return link.index

        return lookup()
