"""
Database handle wrapping a SQLAlchemy engine.

A Database is created once by the entry point and passed to everything that
needs it (version store, loader, migrations, table models).
"""

from typing import Any, Callable, Dict, List, Optional, Sequence, Union
import logging

from sqlalchemy import (
    MetaData, Table, Column, Index, UniqueConstraint, inspect, text, func,
    Integer, BigInteger, String, Text, Boolean, Float, DateTime,
)
from sqlalchemy.engine import Engine

from .config import DatabaseConfig
from .query import TableQuery

logger = logging.getLogger(__name__)


class TableBuilder:
    """
    Collects column and index definitions for create_table().

    Column helpers return the SQLAlchemy Column; keyword arguments are passed
    through to it:

        def users(table):
            table.increments()
            table.string('email', 120, nullable=False)
            table.timestamps()
            table.index('email')

        db.create_table('users', users)
    """

    def __init__(self, name: str):
        self.name = name
        self.columns: List[Column] = []
        self.constraints: List[Any] = []

    def _add(self, column: Column) -> Column:
        self.columns.append(column)
        return column

    def increments(self, name: str = 'id') -> Column:
        """Auto-incrementing integer primary key."""
        return self._add(Column(name, Integer, primary_key=True, autoincrement=True))

    def string(self, name: str, length: int = 255, **kwargs) -> Column:
        return self._add(Column(name, String(length), **kwargs))

    def integer(self, name: str, **kwargs) -> Column:
        return self._add(Column(name, Integer, **kwargs))

    def big_integer(self, name: str, **kwargs) -> Column:
        return self._add(Column(name, BigInteger, **kwargs))

    def text(self, name: str, **kwargs) -> Column:
        return self._add(Column(name, Text, **kwargs))

    def boolean(self, name: str, **kwargs) -> Column:
        return self._add(Column(name, Boolean, **kwargs))

    def float(self, name: str, **kwargs) -> Column:
        return self._add(Column(name, Float, **kwargs))

    def timestamp(self, name: str, **kwargs) -> Column:
        return self._add(Column(name, DateTime, **kwargs))

    def timestamps(self) -> None:
        """Add created_at and updated_at columns defaulting to the current time."""
        self.timestamp('created_at', server_default=func.now())
        self.timestamp('updated_at', server_default=func.now())

    def index(self, columns: Union[str, Sequence[str]], name: Optional[str] = None) -> Index:
        columns = [columns] if isinstance(columns, str) else list(columns)
        index = Index(name or f"ix_{self.name}_{'_'.join(columns)}", *columns)
        self.constraints.append(index)
        return index

    def unique(self, columns: Union[str, Sequence[str]], name: Optional[str] = None) -> UniqueConstraint:
        columns = [columns] if isinstance(columns, str) else list(columns)
        constraint = UniqueConstraint(*columns, name=name or f"uq_{self.name}_{'_'.join(columns)}")
        self.constraints.append(constraint)
        return constraint

    def build(self, metadata: MetaData) -> Table:
        if not self.columns:
            raise ValueError(f"Table '{self.name}' must define at least one column")
        return Table(self.name, metadata, *self.columns, *self.constraints)


class Database:
    """Connection handle: table queries, schema helpers and raw SQL."""

    def __init__(self, engine: Engine):
        """
        Initialize database handle with SQLAlchemy engine

        Args:
            engine: SQLAlchemy Engine instance
        """
        self.engine = engine
        self.metadata = MetaData()
        self._tables: Dict[str, Table] = {}

    @classmethod
    def connect(cls, options: Optional[Dict[str, Any]] = None) -> 'Database':
        """
        Create a handle from connection options (environment variables fill the gaps).

        Raises:
            ConfigError: If required connection settings are missing
        """
        return cls(DatabaseConfig.get_engine(options))

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def table(self, table_name: str) -> TableQuery:
        """Start a query against a table."""
        return TableQuery(self, table_name)

    def __call__(self, table_name: str) -> TableQuery:
        return self.table(table_name)

    def reflect_table(self, table_name: str) -> Table:
        """
        Load metadata for an existing table (cached until the schema changes)

        Args:
            table_name: Name of the table to reflect

        Returns:
            SQLAlchemy Table object
        """
        if table_name not in self._tables:
            self._tables[table_name] = Table(
                table_name,
                self.metadata,
                autoload_with=self.engine
            )
        return self._tables[table_name]

    def _forget_schema(self) -> None:
        self._tables.clear()
        self.metadata = MetaData()

    def has_table(self, table_name: str) -> bool:
        return inspect(self.engine).has_table(table_name)

    def get_table_names(self) -> List[str]:
        return inspect(self.engine).get_table_names()

    def create_table(self, table_name: str, callback: Callable[[TableBuilder], Any]) -> Table:
        """
        Create a table from builder calls.

        Args:
            table_name: Name of the new table
            callback: Receives a TableBuilder and declares the columns and indexes

        Returns:
            The created SQLAlchemy Table
        """
        builder = TableBuilder(table_name)
        callback(builder)
        table = builder.build(MetaData())
        table.create(self.engine)
        self._forget_schema()
        logger.debug(f"Created table {table_name}")
        return table

    def drop_table(self, table_name: str, if_exists: bool = True) -> None:
        """
        Drop table from database

        Args:
            table_name: Name of table to drop
            if_exists: Don't raise error if table doesn't exist
        """
        if if_exists and not self.has_table(table_name):
            return

        table = Table(table_name, MetaData(), autoload_with=self.engine)
        table.drop(self.engine)
        self._forget_schema()
        logger.debug(f"Dropped table {table_name}")

    def execute(self, statement: str, params: Optional[Dict[str, Any]] = None) -> int:
        """
        Execute a raw DDL or DML statement in its own transaction.

        Returns:
            Number of affected rows (0 when the driver does not report it)
        """
        with self.engine.begin() as conn:
            result = conn.execute(text(statement), params or {})
            rowcount = result.rowcount if result.rowcount is not None else 0
        self._forget_schema()
        return max(rowcount, 0)

    def fetch(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a raw SELECT and return the rows as dictionaries."""
        with self.engine.connect() as conn:
            result = conn.execute(text(query), params or {})
            return [dict(row._mapping) for row in result]

    def close(self) -> None:
        """Close database connections"""
        self.engine.dispose()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
