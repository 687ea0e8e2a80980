"""
Fluent single-table query builder on SQLAlchemy Core.
"""

from typing import Any, Dict, List, Optional, Sequence, Union, TYPE_CHECKING
import logging

from sqlalchemy import Table, select, insert, update, delete, func
from sqlalchemy.sql import ClauseElement

if TYPE_CHECKING:
    from .database import Database

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


class TableQuery:
    """
    Immutable query over one table.

    Filtering methods return a new TableQuery, so a base query can be reused:

        users = db.table('users')
        admins = users.where(role='admin').order_by('name').all()
        first = users.where(id=1).first()
    """

    def __init__(self, db: 'Database', table_name: str):
        if not table_name:
            raise ValueError("Please provide the table to query.")

        self.db = db
        self.table_name = table_name
        self._columns: Sequence[str] = ()
        self._conditions: Dict[str, Any] = {}
        self._order: List[tuple] = []
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None

    def _copy(self) -> 'TableQuery':
        clone = TableQuery(self.db, self.table_name)
        clone._columns = tuple(self._columns)
        clone._conditions = dict(self._conditions)
        clone._order = list(self._order)
        clone._limit = self._limit
        clone._offset = self._offset
        return clone

    def __repr__(self) -> str:
        return f"TableQuery(table='{self.table_name}', where={self._conditions})"

    # Builders

    def select(self, *columns: str) -> 'TableQuery':
        """Restrict the selected columns (all columns when none are given)."""
        clone = self._copy()
        clone._columns = columns
        return clone

    def where(self, mapping: Optional[Dict[str, Any]] = None, **equals: Any) -> 'TableQuery':
        """Add equality predicates; all predicates are ANDed."""
        clone = self._copy()
        clone._conditions.update(mapping or {})
        clone._conditions.update(equals)
        return clone

    def order_by(self, column: str, descending: bool = False) -> 'TableQuery':
        clone = self._copy()
        clone._order.append((column, descending))
        return clone

    def limit(self, count: int) -> 'TableQuery':
        clone = self._copy()
        clone._limit = count
        return clone

    def offset(self, count: int) -> 'TableQuery':
        clone = self._copy()
        clone._offset = count
        return clone

    # Statements

    def _table(self) -> Table:
        return self.db.reflect_table(self.table_name)

    def _column(self, table: Table, name: str):
        if name not in table.c:
            raise ValueError(f"Unknown column '{name}' in table '{self.table_name}'")
        return table.c[name]

    def _filter(self, stmt, table: Table):
        for name, value in self._conditions.items():
            stmt = stmt.where(self._column(table, name) == value)
        return stmt

    def select_statement(self, limit: Optional[int] = None):
        """Build the SELECT statement for the current query state."""
        table = self._table()
        if self._columns:
            stmt = select(*[self._column(table, name) for name in self._columns])
        else:
            stmt = select(table)

        stmt = self._filter(stmt, table)

        for name, descending in self._order:
            column = self._column(table, name)
            stmt = stmt.order_by(column.desc() if descending else column.asc())

        limit = limit if limit is not None else self._limit
        if limit is not None:
            stmt = stmt.limit(limit)
        if self._offset:
            stmt = stmt.offset(self._offset)

        return stmt

    def insert_statement(self, data: Optional[Row] = None):
        stmt = insert(self._table())
        return stmt.values(**data) if data else stmt

    def update_statement(self, data: Row):
        table = self._table()
        return self._filter(update(table), table).values(**data)

    def delete_statement(self):
        table = self._table()
        return self._filter(delete(table), table)

    def to_sql(self, statement: Optional[ClauseElement] = None) -> str:
        """
        Render a statement as SQL text for the connected dialect.

        Args:
            statement: Statement to render (the SELECT for this query by default)

        Returns:
            SQL string, with literal values inlined where the dialect can render them
        """
        statement = statement if statement is not None else self.select_statement()
        dialect = self.db.engine.dialect
        try:
            return str(statement.compile(dialect=dialect, compile_kwargs={'literal_binds': True}))
        except Exception:
            # Some values (dates, blobs) cannot be rendered inline
            return str(statement.compile(dialect=dialect))

    # Execution

    def all(self) -> List[Row]:
        """Return all matching rows as dictionaries."""
        with self.db.engine.connect() as conn:
            result = conn.execute(self.select_statement())
            return [dict(row._mapping) for row in result]

    def first(self) -> Optional[Row]:
        """Return the first matching row, or None."""
        with self.db.engine.connect() as conn:
            row = conn.execute(self.select_statement(limit=1)).first()
            return dict(row._mapping) if row is not None else None

    def count(self) -> int:
        table = self._table()
        stmt = self._filter(select(func.count()).select_from(table), table)
        with self.db.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0

    def insert(self, data: Union[Row, List[Row]]) -> List[Row]:
        """
        Insert one or more rows.

        Args:
            data: A row dictionary or a list of them

        Returns:
            The inserted rows as stored (with generated keys and defaults)
        """
        rows = data if isinstance(data, list) else [data]
        if not rows:
            return []

        table = self._table()
        stmt = insert(table)
        dialect = self.db.engine.dialect

        with self.db.engine.begin() as conn:
            if len(rows) == 1 and dialect.insert_returning:
                result = conn.execute(stmt.returning(*table.c), rows[0])
                return [dict(row._mapping) for row in result]

            if len(rows) > 1 and dialect.insert_executemany_returning:
                result = conn.execute(stmt.returning(*table.c), rows)
                return [dict(row._mapping) for row in result]

            primary_keys = []
            for row in rows:
                result = conn.execute(stmt, row)
                primary_keys.append(result.inserted_primary_key)

        pk_columns = list(table.primary_key.columns)
        if not pk_columns:
            return [dict(row) for row in rows]

        inserted = []
        for key in primary_keys:
            match = self.where({column.name: value for column, value in zip(pk_columns, key)}).first()
            if match is not None:
                inserted.append(match)
        return inserted

    def update(self, data: Row) -> int:
        """Update matching rows and return the number of rows changed."""
        if not data:
            raise ValueError("Please provide the data to update.")

        with self.db.engine.begin() as conn:
            result = conn.execute(self.update_statement(data))
            return result.rowcount if result.rowcount is not None else 0

    def delete(self) -> int:
        """Delete matching rows and return the number of rows removed."""
        with self.db.engine.begin() as conn:
            result = conn.execute(self.delete_statement())
            return result.rowcount if result.rowcount is not None else 0
