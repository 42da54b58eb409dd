"""Main engine - orchestrates one wg-apply run.

Provides a single entry point for:
1. Parsing the configuration (explicit or auto-detected format)
2. Reconciling link, addresses and routes
3. Reading the live WireGuard device
4. Calculating the device delta
5. Applying the delta

Steps run strictly in order and the first failure aborts the run. Nothing
is rolled back; re-running converges from whatever state is left.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from .config.settings import Settings
from .errors import DeviceNotFoundError, UsageError
from .network.backend import NetlinkBackend
from .network.reconciler import NetworkReconciler, ReconcileResult
from .utils.logging_config import timed
from .wgconf.registry import ParserRegistry
from .wgconf.schema import Configuration, WireGuardConfig
from .wireguard.backend import WireGuardBackend
from .wireguard.diff import calc_diff, summarize_diff

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    """Outcome of a run."""
    config: Configuration
    network: Optional[ReconcileResult]
    delta: WireGuardConfig
    dry_run: bool = False


class ApplyEngine:
    """
    Converge one WireGuard interface to its configuration.

    Usage:
        engine = ApplyEngine(registry, network_backend, wireguard_backend)
        result = engine.apply(interface="wg0")
    """

    def __init__(
        self,
        registry: ParserRegistry,
        network_backend: Optional[NetlinkBackend],
        wireguard_backend: WireGuardBackend,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the engine.

        Args:
            registry: Parsers for configuration files
            network_backend: Kernel link/address/route access (may be None
                when every run skips network changes)
            wireguard_backend: WireGuard control interface
            settings: Runtime settings (defaults when None)
        """
        self.registry = registry
        self.network_backend = network_backend
        self.wireguard_backend = wireguard_backend
        self.settings = settings or Settings()

    def apply(
        self,
        interface: Optional[str] = None,
        path: Optional[str] = None,
        parser: Optional[str] = None,
        skip_network: bool = False,
        dry_run: bool = False,
    ) -> ApplyResult:
        """
        Run parse, network reconciliation, diff and device configuration.

        Args:
            interface: Interface name hint
            path: Configuration file hint
            parser: Explicit parser name (auto-detect when None)
            skip_network: Leave link, addresses and routes alone
            dry_run: Log intended changes without applying them

        Returns:
            ApplyResult describing what was (or would be) changed

        Raises:
            WgApplyError: On the first failing step
        """
        # Step 1: Parse
        config = self.registry.resolve(parser, interface, path)
        logger.info(
            f"Loaded configuration for {config.interface}: "
            f"{len(config.wireguard.peers)} peers, "
            f"{len(config.network.addresses)} addresses, "
            f"{len(config.network.routes)} routes"
        )

        # Step 2: Network
        network_result = None
        if not skip_network:
            network_result = self.apply_network(config, dry_run)

        # Step 3-5: WireGuard device
        delta = self.apply_wireguard(config, skip_network, dry_run)

        return ApplyResult(
            config=config,
            network=network_result,
            delta=delta,
            dry_run=dry_run,
        )

    @timed("apply_network")
    def apply_network(self, config: Configuration, dry_run: bool) -> ReconcileResult:
        """Reconcile link, addresses and routes."""
        if self.network_backend is None:
            raise UsageError("network backend required unless network changes are skipped")

        reconciler = NetworkReconciler(
            self.network_backend,
            default_mtu=self.settings.default_mtu,
            dry_run=dry_run,
        )
        result = reconciler.apply(config.network)
        logger.info(f"Network: {result.total_changes} changes on {config.interface}")
        return result

    @timed("apply_wireguard")
    def apply_wireguard(
        self,
        config: Configuration,
        skip_network: bool,
        dry_run: bool,
    ) -> WireGuardConfig:
        """Diff the live device against the configuration and apply the delta."""
        try:
            current = self.wireguard_backend.get_device(config.interface)
        except DeviceNotFoundError as e:
            if not dry_run:
                hint = " (try remove --skip-network or -N flag)" if skip_network else ""
                raise DeviceNotFoundError(
                    f"wireguard interface {config.interface} does not exist{hint}: {e}"
                ) from e
            current = None

        delta = calc_diff(current, config.wireguard)
        summary = summarize_diff(delta)

        if dry_run:
            logger.info(f"DRY RUN: {summary}")
            return delta

        logger.info(summary)
        self.wireguard_backend.configure_device(config.interface, delta)
        return delta
