"""
Base class for migration units.

A migration module file defines one subclass of Migration:

    from modmigrate import Migration

    class CreateInvoices(Migration):
        table_name = 'invoices'

        def up(self):
            self.db.create_table(self.table_name, lambda t: (
                t.increments(), t.string('customer', 100), t.integer('amount')
            ))

        def down(self):
            self.db.drop_table(self.table_name)

Its version is its position in the module's lexicographically sorted files.
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..database import Database
from ..query import TableQuery


class Migration(ABC):
    """One forward/backward schema change step."""

    table_name: Optional[str] = None

    def __init__(self, db: Database):
        self.db = db

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @property
    def table(self) -> TableQuery:
        """A fresh query against the table this migration is associated with."""
        if not self.table_name:
            raise ValueError(f"Migration '{self.name}' has no table_name")
        return self.db.table(self.table_name)

    @abstractmethod
    def up(self) -> None:
        """Apply the change. Raising marks the step as failed."""

    @abstractmethod
    def down(self) -> None:
        """Revert the change. Raising marks the step as failed."""

    def __repr__(self) -> str:
        return f"{self.name}(table_name={self.table_name!r})"
