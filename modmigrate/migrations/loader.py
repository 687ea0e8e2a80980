"""
Discovery of a module's migrations.

Layout on disk:

    <modules_path>/
        billing/
            migrations/
                001_create_invoices.py
                002_add_due_date.py

Files are ordered lexicographically by name; the first file is version 1.
Files starting with '_' (e.g. __init__.py) are ignored.
"""

import importlib.util
import inspect
import sys
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union
import logging

from ..database import Database
from ..exceptions import LoadError
from .base import Migration


class MigrationRegistry:
    """Ordered mapping of version number to migration unit for one module."""

    def __init__(self, module: str):
        self.module = module
        self._units: Dict[int, Migration] = {}

    def register(self, unit: Migration) -> int:
        """
        Append a unit as the next version.

        Returns:
            The version assigned to the unit
        """
        if not isinstance(unit, Migration):
            raise TypeError(
                f"{unit!r} is not a Migration; migrations must implement up() and down()"
            )
        version = len(self._units) + 1
        self._units[version] = unit
        return version

    @property
    def latest(self) -> int:
        return len(self._units)

    def get(self, version: int) -> Migration:
        if version not in self._units:
            raise KeyError(f"The '{self.module}' module has no migration version {version}")
        return self._units[version]

    def __getitem__(self, version: int) -> Migration:
        return self.get(version)

    def __len__(self) -> int:
        return len(self._units)

    def __iter__(self) -> Iterator[Migration]:
        return iter(self._units.values())

    def items(self):
        return self._units.items()


class MigrationLoader:
    """
    Loads the migrations of a module from the modules path.

    In lenient mode (the default) files that do not define exactly one concrete
    Migration subclass are skipped with a warning. In strict mode they are a
    LoadError.
    """

    def __init__(self, db: Database, modules_path: Union[str, Path], strict: bool = False):
        self.db = db
        self.modules_path = Path(modules_path)
        self.strict = strict
        self.logger = logging.getLogger('modmigrate.loader')

    def migrations_dir(self, module: str) -> Path:
        return self.modules_path / module / 'migrations'

    def discover_modules(self) -> List[str]:
        """Names of all directories under the modules path that hold migrations."""
        if not self.modules_path.is_dir():
            raise LoadError(f"Modules path does not exist: {self.modules_path}")

        return sorted(
            entry.name for entry in self.modules_path.iterdir()
            if entry.is_dir() and not entry.name.startswith(('_', '.'))
            and (entry / 'migrations').is_dir()
        )

    def migration_files(self, module: str) -> List[Path]:
        migrations_dir = self.migrations_dir(module)
        if not migrations_dir.is_dir():
            raise LoadError(f"Cannot get the migrations of the '{module}' module: "
                            f"{migrations_dir} does not exist")

        return sorted(
            (path for path in migrations_dir.iterdir()
             if path.is_file() and path.suffix == '.py' and not path.name.startswith('_')),
            key=lambda path: path.name
        )

    def _import(self, module: str, path: Path):
        module_name = f"modmigrate_units.{module}.{path.stem}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise LoadError(f"Cannot import migration file {path}")

        py_module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = py_module
        try:
            spec.loader.exec_module(py_module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise LoadError(f"Failed to import migration file {path}: {e}") from e
        return py_module

    def _find_class(self, py_module) -> Optional[type]:
        candidates = [
            obj for _, obj in inspect.getmembers(py_module, inspect.isclass)
            if issubclass(obj, Migration) and obj is not Migration
            and obj.__module__ == py_module.__name__ and not inspect.isabstract(obj)
        ]
        return candidates[0] if len(candidates) == 1 else None

    def load(self, module: str) -> MigrationRegistry:
        """
        Import and instantiate the migrations of a module.

        Returns:
            Registry with versions 1..n in file order

        Raises:
            LoadError: If the directory is missing, a file cannot be imported, or
                (in strict mode) a file does not define a usable Migration subclass
        """
        registry = MigrationRegistry(module)

        for path in self.migration_files(module):
            py_module = self._import(module, path)
            migration_class = self._find_class(py_module)

            if migration_class is None:
                message = (f"{path.name} in the '{module}' module does not define "
                           f"exactly one concrete Migration subclass")
                if self.strict:
                    raise LoadError(message)
                self.logger.warning(f"Skipping {message}")
                continue

            try:
                unit = migration_class(self.db)
            except Exception as e:
                raise LoadError(f"Failed to instantiate '{migration_class.__name__}' "
                                f"from {path.name}: {e}") from e

            version = registry.register(unit)
            self.logger.debug(f"Loaded {path.name} as version {version} of '{module}'")

        self.logger.debug(f"Discovered {len(registry)} migrations for '{module}'")
        return registry
