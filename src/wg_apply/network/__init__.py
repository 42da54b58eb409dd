"""Link, address and route reconciliation."""
from .backend import (
    LinkState,
    NetlinkBackend,
    PyRoute2Backend,
    RouteState,
    RT_TABLE_MAIN,
    RTPROT_BOOT,
    RTPROT_STATIC,
)
from .reconciler import (
    DEFAULT_MTU,
    LINK_KIND,
    NetworkReconciler,
    ReconcileResult,
    symmetric_diff,
)

__all__ = [
    "LinkState",
    "NetlinkBackend",
    "PyRoute2Backend",
    "RouteState",
    "RT_TABLE_MAIN",
    "RTPROT_BOOT",
    "RTPROT_STATIC",
    "DEFAULT_MTU",
    "LINK_KIND",
    "NetworkReconciler",
    "ReconcileResult",
    "symmetric_diff",
]
