"""
Configuration loading and database connection settings.

Settings come from three layers, later ones winning:
built-in defaults, an optional YAML file, and explicit overrides.
Database connection options missing from all of them are read from the
environment (DATABASE_CLIENT, DATABASE_CONNECTION, SQLITE_PATH, DATABASE_HOST,
DATABASE_USER, DATABASE_PASSWORD, DATABASE_NAME, DATABASE_PORT).
"""

import copy
import os
from pathlib import Path
from typing import Dict, Any, Optional, Union
import logging

import yaml
from jsonschema import validate, ValidationError
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, URL, make_url
from sqlalchemy.exc import ArgumentError, NoSuchModuleError

from .exceptions import ConfigError

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    'database': {
        'client': None,          # sqlite, postgresql, mysql (sqlite3, pg, postgres, mysql2 also accepted)
        'connection': None,      # URL string or dict of connection options
        'engine_args': {},
    },
    'migrations': {
        'path': None,            # directory holding <module>/migrations/*.py
        'strict': False,         # fail on migration files without a Migration subclass
        'table': 'migrations',   # tracking table name
    },
    'logging': {
        'level': 'INFO',
        'file': None,
    },
}

CLIENT_ALIASES = {
    'sqlite': 'sqlite',
    'sqlite3': 'sqlite',
    'postgresql': 'postgresql',
    'postgres': 'postgresql',
    'pg': 'postgresql',
    'mysql': 'mysql',
    'mysql2': 'mysql',
}

DRIVERS = {
    'sqlite': 'sqlite',
    'postgresql': 'postgresql+psycopg2',
    'mysql': 'mysql+pymysql',
}


# Configuration schema for validation
CONFIG_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "database": {
            "type": "object",
            "properties": {
                "client": {"type": ["string", "null"]},
                "connection": {
                    "type": ["string", "object", "null"],
                    "properties": {
                        "filename": {"type": "string"},
                        "host": {"type": "string"},
                        "port": {"type": ["integer", "string"]},
                        "user": {"type": "string"},
                        "password": {"type": "string"},
                        "database": {"type": "string"}
                    }
                },
                "engine_args": {"type": ["object", "null"]}
            }
        },
        "migrations": {
            "type": "object",
            "properties": {
                "path": {"type": ["string", "null"]},
                "strict": {"type": "boolean"},
                "table": {"type": "string", "minLength": 1, "maxLength": 63}
            }
        },
        "logging": {
            "type": "object",
            "properties": {
                "level": {"type": "string", "enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL",
                                                    "debug", "info", "warning", "error", "critical"]},
                "file": {"type": ["string", "null"]}
            }
        }
    }
}


def _deep_merge(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge updates into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(path: Optional[Union[str, Path]] = None,
                overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Build the effective configuration.

    Args:
        path: Optional YAML configuration file
        overrides: Values that take precedence over the file

    Returns:
        Merged configuration dictionary
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, 'r') as f:
                file_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

        if not isinstance(file_config, dict):
            raise ConfigError(f"Configuration file {config_path} must contain a mapping")

        config = _deep_merge(config, file_config)
        logger.debug(f"Loaded configuration from {config_path}")

    if overrides:
        config = _deep_merge(config, overrides)

    validate_config(config)
    return config


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate a configuration dictionary against CONFIG_SCHEMA.

    Raises:
        ConfigError: If a section or value has the wrong shape
    """
    try:
        validate(config, CONFIG_SCHEMA)
    except ValidationError as e:
        location = '.'.join(str(p) for p in e.path) or '<root>'
        logger.error(f"Configuration validation failed at {location}: {e.message}")
        raise ConfigError(f"Invalid configuration at '{location}': {e.message}") from e


def migrations_path(config: Dict[str, Any]) -> Path:
    """Return the modules path, failing when none is configured."""
    path = config.get('migrations', {}).get('path')
    if not path:
        raise ConfigError('Please provide the path of the migration files.')
    return Path(path)


def _missing(item: str) -> ConfigError:
    return ConfigError(f"Please provide the {item}.")


class DatabaseConfig:
    """Resolve database connection options into SQLAlchemy engines."""

    @staticmethod
    def resolve(options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Fill missing connection options from the environment and validate them.

        Args:
            options: Partial options with 'client', 'connection' and 'engine_args'

        Returns:
            Dictionary with a canonical 'client' and either a URL string or a
            dict of connection parameters under 'connection'
        """
        options = dict(options or {})

        client = options.get('client') or os.environ.get('DATABASE_CLIENT')
        connection = options.get('connection') or os.environ.get('DATABASE_CONNECTION')
        engine_args = dict(options.get('engine_args') or {})

        # URL strings name their own backend, so the client is optional
        if isinstance(connection, str):
            backend = DatabaseConfig._parse_url(connection).get_backend_name()
            canonical = CLIENT_ALIASES.get(str(client).lower()) if client else None
            return {
                'client': canonical or backend,
                'engine_args': engine_args,
                'connection': connection,
            }

        if not client:
            raise _missing('database `client` config')

        canonical = CLIENT_ALIASES.get(str(client).lower())
        if canonical is None:
            raise ConfigError(f"Unsupported database client: {client}")

        resolved = {
            'client': canonical,
            'engine_args': engine_args,
        }

        connection = dict(connection or {})

        if canonical == 'sqlite':
            filename = connection.get('filename') or os.environ.get('SQLITE_PATH')
            if not filename:
                raise _missing('SQLite database path')
            resolved['connection'] = {'filename': filename}
            return resolved

        params = {
            'host': connection.get('host') or os.environ.get('DATABASE_HOST'),
            'user': connection.get('user') or os.environ.get('DATABASE_USER'),
            'password': connection.get('password') or os.environ.get('DATABASE_PASSWORD'),
            'database': connection.get('database') or os.environ.get('DATABASE_NAME'),
        }

        if not params['host']:
            raise _missing('connection host')
        if not params['user']:
            raise _missing('database username')
        if not params['password']:
            raise _missing('database password')
        if not params['database']:
            raise _missing('database name')

        port = connection.get('port') or os.environ.get('DATABASE_PORT')
        if port and str(port).isdigit():
            params['port'] = int(port)

        resolved['connection'] = params
        return resolved

    @staticmethod
    def _parse_url(connection: str) -> URL:
        try:
            return make_url(connection)
        except ArgumentError as e:
            raise ConfigError(f"Invalid database URL: {e}") from e

    @staticmethod
    def get_url(options: Optional[Dict[str, Any]] = None) -> URL:
        """Build the SQLAlchemy URL for the given (unresolved) options."""
        resolved = DatabaseConfig.resolve(options)
        connection = resolved['connection']

        if isinstance(connection, str):
            return DatabaseConfig._parse_url(connection)

        if resolved['client'] == 'sqlite':
            return URL.create('sqlite', database=connection['filename'])

        return URL.create(
            DRIVERS[resolved['client']],
            username=connection['user'],
            password=connection['password'],
            host=connection['host'],
            port=connection.get('port'),
            database=connection['database'],
        )

    @staticmethod
    def get_engine(options: Optional[Dict[str, Any]] = None) -> Engine:
        """
        Create a SQLAlchemy engine from connection options.

        Args:
            options: Database options ('client', 'connection', 'engine_args')

        Returns:
            SQLAlchemy Engine instance
        """
        url = DatabaseConfig.get_url(options)
        engine_args = dict((options or {}).get('engine_args') or {})

        engine_args.setdefault('pool_pre_ping', True)
        engine_args.setdefault('echo', False)
        if url.get_backend_name() in ('postgresql', 'mysql'):
            engine_args.setdefault('pool_size', 5)
            engine_args.setdefault('max_overflow', 10)

        safe_url = url.render_as_string(hide_password=True)
        logger.info(f"Creating {url.get_backend_name()} engine: {safe_url}")
        try:
            return create_engine(url, **engine_args)
        except (ArgumentError, NoSuchModuleError, ImportError, TypeError) as e:
            raise ConfigError(f"Cannot create a database engine for {safe_url}: {e}") from e
