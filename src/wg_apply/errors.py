"""Exception hierarchy for wg-apply.

Every error the tool raises on purpose derives from WgApplyError so the CLI
can map them all to a single exit code.
"""


class WgApplyError(Exception):
    """Base class for all wg-apply errors."""
    pass


class UsageError(WgApplyError):
    """Conflicting or missing caller input (hints, parser name, CLI args)."""
    pass


class RegistryError(WgApplyError):
    """Invalid parser registration."""
    pass


class SettingsError(WgApplyError):
    """Invalid settings file or settings value."""
    pass


class ConfigError(WgApplyError):
    """Configuration file content is invalid."""
    pass


class DocumentError(ConfigError):
    """Syntax error in a section/key-value document."""

    def __init__(self, message: str, line_no: int = 0, line: str = ""):
        self.line_no = line_no
        self.line = line
        if line_no:
            message = f"line {line_no}: {message}"
        super().__init__(message)


class NetworkError(WgApplyError):
    """Failure while reading or mutating links, addresses or routes."""
    pass


class LinkKindError(NetworkError):
    """An existing link has the wrong kind."""
    pass


class LinkNotFoundError(NetworkError):
    """A link could not be found by name."""
    pass


class WireGuardError(WgApplyError):
    """Failure talking to the WireGuard control interface."""
    pass


class DeviceNotFoundError(WireGuardError):
    """The WireGuard device does not exist."""
    pass
