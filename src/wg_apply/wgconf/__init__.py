"""Configuration parsing - turns config files into a normalized Configuration.

Usage:
    from wg_apply.wgconf import default_registry

    registry = default_registry()
    config = registry.resolve(interface="wg0")
"""
from .schema import (
    Configuration,
    Endpoint,
    Key,
    NetworkConfig,
    PeerConfig,
    WireGuardConfig,
)
from .document import DocumentParser, Pair, Section
from .registry import (
    Failed,
    Matched,
    NotApplicable,
    ParseOutcome,
    ParserOptions,
    ParserRegistry,
    default_registry,
)
from .rt_tables import RouteTables, parse_rt_tables, parse_uint32
from .wgquick import WgQuickParser

__all__ = [
    # Model
    "Configuration",
    "Endpoint",
    "Key",
    "NetworkConfig",
    "PeerConfig",
    "WireGuardConfig",
    # Document tokenizer
    "DocumentParser",
    "Pair",
    "Section",
    # Registry
    "Failed",
    "Matched",
    "NotApplicable",
    "ParseOutcome",
    "ParserOptions",
    "ParserRegistry",
    "default_registry",
    # Parsers
    "RouteTables",
    "parse_rt_tables",
    "parse_uint32",
    "WgQuickParser",
]
