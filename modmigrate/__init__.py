"""
modmigrate - per-module schema migrations on SQLAlchemy.

Each module owns an ordered list of migration files; the tracking table stores
one version per module. Components:
- config: configuration files and connection settings
- database / query: connection handle and single-table query builder
- model: per-table CRUD accessor
- migrations: migration base class, loader, version store and engine
- cli: command line interface
"""

__version__ = "1.0.0"

from .exceptions import (
    MigrationError, ConfigError, InvalidInputError, InvalidVersionError, InvalidTargetError,
    InvalidDirectionError, LoadError, VersionStoreError, PersistError, UnitError,
)
from .config import DatabaseConfig, load_config
from .database import Database, TableBuilder
from .query import TableQuery
from .model import TableModel
from .migrations import (
    Migration, MigrationEngine, MigrationLoader, MigrationRegistry, MigrationOutcome,
    OutcomeStatus, VersionStore, LATEST,
)
from .factory import MigratorFactory

__all__ = [
    'MigrationError', 'ConfigError', 'InvalidInputError', 'InvalidVersionError',
    'InvalidTargetError', 'InvalidDirectionError', 'LoadError', 'VersionStoreError',
    'PersistError', 'UnitError',
    'DatabaseConfig', 'load_config',
    'Database', 'TableBuilder', 'TableQuery', 'TableModel',
    'Migration', 'MigrationEngine', 'MigrationLoader', 'MigrationRegistry',
    'MigrationOutcome', 'OutcomeStatus', 'VersionStore', 'LATEST',
    'MigratorFactory',
]
