"""
Factory wiring a configuration dictionary into a ready migration engine.
"""

from typing import Dict, Any, Optional
import logging

from .config import load_config, migrations_path
from .database import Database
from .migrations import MigrationEngine, MigrationLoader, VersionStore

logger = logging.getLogger(__name__)


class MigratorFactory:
    """Builds the database handle, loader, store and engine from configuration."""

    @staticmethod
    def create_database(config: Dict[str, Any]) -> Database:
        """
        Create the database handle.

        Raises:
            ConfigError: If connection settings are missing
        """
        return Database.connect(config.get('database', {}))

    @staticmethod
    def create_engine(config: Dict[str, Any], db: Optional[Database] = None) -> MigrationEngine:
        """
        Create a migration engine.

        Args:
            config: Configuration dictionary (see modmigrate.config.DEFAULT_CONFIG)
            db: Existing database handle to reuse

        Returns:
            MigrationEngine instance

        Raises:
            ConfigError: If the modules path or connection settings are missing
        """
        migrations_config = config.get('migrations', {})
        path = migrations_path(config)

        db = db or MigratorFactory.create_database(config)
        loader = MigrationLoader(db, path, strict=bool(migrations_config.get('strict', False)))
        store = VersionStore(db, migrations_config.get('table') or 'migrations')

        logger.debug(f"Created migration engine for {path} ({db.dialect_name})")
        return MigrationEngine(db, loader, store)

    @staticmethod
    def create_from_file(path: Optional[str] = None,
                         overrides: Optional[Dict[str, Any]] = None) -> MigrationEngine:
        """Load configuration from a YAML file and create the engine."""
        return MigratorFactory.create_engine(load_config(path, overrides))
