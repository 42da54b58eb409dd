"""Parser registry and format auto-detection.

A parser is any callable taking ParserOptions and returning a ParseOutcome:

    Matched(config)    the input is in this format and parsed fine
    NotApplicable()    the input does not belong to this format
    Failed(error)      the input is in this format but is malformed

With an explicit parser name the registry calls that parser directly. Without
one it probes every parser in registration order and returns the first match.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

from ..errors import RegistryError, UsageError, WgApplyError
from .schema import Configuration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParserOptions:
    """Hints handed to a parser."""
    interface: str = ""
    path: str = ""
    probe: bool = False


@dataclass(frozen=True)
class Matched:
    config: Configuration


@dataclass(frozen=True)
class NotApplicable:
    reason: str = ""


@dataclass(frozen=True)
class Failed:
    error: WgApplyError


ParseOutcome = Union[Matched, NotApplicable, Failed]
Parser = Callable[[ParserOptions], ParseOutcome]


class ParserRegistry:
    """Ordered collection of named parsers."""

    def __init__(self, parsers: Optional[list[tuple[str, Parser]]] = None):
        self._parsers: list[tuple[str, Parser]] = []
        for name, parser in parsers or []:
            self.register(name, parser)

    def register(self, name: str, parser: Parser) -> None:
        """
        Register a parser under a unique name.

        Raises:
            RegistryError: If the name is already taken
        """
        if name in self.names:
            raise RegistryError(f"parser already registered: {name}")
        self._parsers.append((name, parser))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self._parsers]

    def get(self, name: str) -> Parser:
        for registered, parser in self._parsers:
            if registered == name:
                return parser
        raise UsageError(f"unknown parser: {name}")

    def resolve(
        self,
        parser_name: Optional[str] = None,
        interface: Optional[str] = None,
        path: Optional[str] = None,
    ) -> Configuration:
        """
        Parse a configuration, detecting its format when not given.

        Args:
            parser_name: Explicit parser to use (probe all when empty)
            interface: Interface name hint
            path: Configuration file path hint

        Returns:
            The parsed Configuration

        Raises:
            UsageError: Missing hints, unknown parser, or no parser matched
            WgApplyError: Whatever error the chosen parser reported
        """
        if not interface and not path:
            raise UsageError("missing interface name or conf file path")

        if parser_name:
            parser = self.get(parser_name)
            options = ParserOptions(interface=interface or "", path=path or "", probe=False)
            outcome = parser(options)
            if isinstance(outcome, Matched):
                return outcome.config
            if isinstance(outcome, Failed):
                raise outcome.error
            raise UsageError(f"parser {parser_name} cannot handle this input: {outcome.reason}")

        options = ParserOptions(interface=interface or "", path=path or "", probe=True)
        for name, parser in self._parsers:
            outcome = parser(options)
            if isinstance(outcome, Matched):
                logger.debug(f"Detected config format: {name}")
                return outcome.config
            if isinstance(outcome, Failed):
                raise outcome.error
            logger.debug(f"Parser {name} not applicable: {outcome.reason}")

        raise UsageError("cannot detect correct parser, please specify explicitly")


def default_registry(settings=None) -> ParserRegistry:
    """Build the registry with every bundled parser."""
    from .wgquick import WgQuickParser

    return ParserRegistry([
        ("wg-quick", WgQuickParser.from_settings(settings)),
    ])
