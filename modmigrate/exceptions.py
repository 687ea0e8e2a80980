"""
Exception hierarchy for modmigrate.

ConfigError is fatal and propagates to the caller. Everything else raised while
migrating is caught by the engine and turned into a failure outcome.
"""

from typing import Optional


class MigrationError(Exception):
    """Base class for all migration errors."""


class ConfigError(MigrationError):
    """Required setup (connection options, modules path) is missing or invalid."""


class InvalidInputError(MigrationError):
    """Bad module name or version argument."""


class InvalidVersionError(InvalidInputError):
    """Explicit version is not a non-negative integer."""


class InvalidTargetError(InvalidInputError):
    """Target cannot be used with the requested direction."""


class InvalidDirectionError(MigrationError):
    """Target version contradicts the requested direction."""


class LoadError(MigrationError):
    """The migrations of a module could not be enumerated or instantiated."""


class VersionStoreError(MigrationError):
    """The tracking table could not be read."""


class PersistError(MigrationError):
    """Version bookkeeping failed after the migration actions were applied."""


class UnitError(MigrationError):
    """A migration's up() or down() raised."""

    def __init__(self, message: str, version: Optional[int] = None,
                 unit_name: Optional[str] = None):
        super().__init__(message)
        self.version = version
        self.unit_name = unit_name
