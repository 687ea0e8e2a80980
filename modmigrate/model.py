"""
Per-table CRUD accessor.
"""

from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError

from .database import Database


class TableModel:
    """
    Basic CRUD operations for one table keyed by a primary key column.

    Subclasses usually fix the table:

        class UserModel(TableModel):
            def __init__(self, db):
                super().__init__(db, table='users', primary_key='id')
    """

    def __init__(self, db: Database, table: str, primary_key: str):
        if not table:
            raise ValueError(f"Please set the table field of the model for the '{table}' table.")
        if not primary_key:
            raise ValueError(f"Please set the primary key field of the model for the '{table}' table.")

        self.db = db
        self.table = table
        self.primary_key = primary_key
        self.last_query: Optional[str] = None
        self.logger = logging.getLogger(f'modmigrate.model.{table}')

    def query(self):
        return self.db.table(self.table)

    def _run(self, operation: str, action):
        try:
            return action()
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to {operation} '{self.table}': {e}")
            raise

    def find_all(self, page: int = 1, limit: int = 10) -> List[Dict[str, Any]]:
        """
        Get one page of records.

        Args:
            page: 1-based page number
            limit: Number of records per page
        """
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be positive")

        query = self.query().limit(limit).offset(limit * (page - 1))
        self.last_query = query.to_sql()
        return self._run('list', query.all)

    def find(self, id_value: Any) -> Optional[Dict[str, Any]]:
        """Get one record by primary key, or None."""
        query = self.query().where({self.primary_key: id_value})
        self.last_query = query.to_sql(query.select_statement(limit=1))
        return self._run('find in', query.first)

    def insert(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Create a record and return the inserted row."""
        query = self.query()
        self.last_query = query.to_sql(query.insert_statement(data))
        rows = self._run('insert into', lambda: query.insert(data))
        return rows[0] if rows else None

    def update(self, id_value: Any, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update a record and return it as stored, or None if it does not exist."""
        query = self.query().where({self.primary_key: id_value})
        self.last_query = query.to_sql(query.update_statement(data))
        changed = self._run('update', lambda: query.update(data))
        if not changed:
            return None

        # The primary key itself may have been changed
        new_id = data.get(self.primary_key, id_value)
        return self._run('find in', self.query().where({self.primary_key: new_id}).first)

    def delete(self, id_value: Any) -> int:
        """Delete a record and return the number of rows removed."""
        query = self.query().where({self.primary_key: id_value})
        self.last_query = query.to_sql(query.delete_statement())
        return self._run('delete from', query.delete)
