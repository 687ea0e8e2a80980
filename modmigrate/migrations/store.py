"""
Version store: one (module, version) row per module in the tracking table.
"""

from typing import Optional
import logging

from sqlalchemy.exc import SQLAlchemyError

from ..database import Database, TableBuilder
from ..exceptions import VersionStoreError

DEFAULT_TABLE = 'migrations'


class VersionStore:
    """
    Reads and writes module versions in the tracking table.

    Absence of a row means the module was never migrated, which is distinct
    from an explicitly stored version 0.
    """

    def __init__(self, db: Database, table_name: str = DEFAULT_TABLE):
        self.db = db
        self.table_name = table_name
        self.logger = logging.getLogger('modmigrate.store')

    def _define(self, table: TableBuilder) -> None:
        table.string('module', 50)
        table.integer('version')
        table.index('module', f'ix_{self.table_name}_module')

    def ensure_table(self) -> bool:
        """
        Create the tracking table if it does not exist.

        Returns:
            True if the table exists afterwards, False if creating it failed
        """
        try:
            if self.db.has_table(self.table_name):
                return True

            self.db.create_table(self.table_name, self._define)
            self.logger.info(f"Migrations table '{self.table_name}' was created.")
            return True
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to create migrations table '{self.table_name}': {e}")
            return False

    def get_version(self, module: str) -> Optional[int]:
        """
        Get the stored version of a module.

        Returns:
            The version, or None if the module has no record

        Raises:
            VersionStoreError: If the tracking table cannot be queried
        """
        try:
            row = (self.db.table(self.table_name)
                   .select('version')
                   .where(module=module)
                   .first())
        except SQLAlchemyError as e:
            self.logger.error(f"Cannot get the migration version of the '{module}' module: {e}")
            raise VersionStoreError(
                f"Cannot get the migration version of the '{module}' module: {e}"
            ) from e

        if row is None or row['version'] is None:
            return None
        return int(row['version'])

    def set_version(self, module: str, version: int, is_new_record: bool) -> bool:
        """
        Persist the version of a module.

        Args:
            module: Module name
            version: New version
            is_new_record: Insert a new row instead of updating the existing one

        Returns:
            True on success, False if the write failed
        """
        query = self.db.table(self.table_name)
        try:
            if is_new_record:
                query.insert({'module': module, 'version': version})
            else:
                updated = query.where(module=module).update({'version': version})
                if updated == 0:
                    self.logger.error(f"Failed to record version {version} of the '{module}' module: "
                                      f"no tracking row to update")
                    return False
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to record version {version} of the '{module}' module: {e}")
            return False

        self.logger.debug(f"Recorded version {version} of the '{module}' module")
        return True
