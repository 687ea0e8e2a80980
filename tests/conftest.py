"""
Shared fixtures: a file-backed SQLite database, a journal table that migration
units write to, and helpers that generate migration modules on disk.
"""

import textwrap
from pathlib import Path
from typing import Iterable, List

import pytest
from sqlalchemy import create_engine

from modmigrate import Database, MigrationEngine, MigrationLoader, VersionStore

UNIT_TEMPLATE = '''
from modmigrate import Migration


class {class_name}(Migration):
    table_name = 'journal'

    def up(self):
        {up_failure}
        self.table.insert({{'entry': 'up:{label}'}})

    def down(self):
        {down_failure}
        self.table.insert({{'entry': 'down:{label}'}})
'''


def write_unit(migrations_dir: Path, filename: str, class_name: str, label: str,
               fail_up: bool = False, fail_down: bool = False) -> Path:
    """Write a migration file whose actions append 'up:<label>' / 'down:<label>' to the journal."""
    migrations_dir.mkdir(parents=True, exist_ok=True)
    source = UNIT_TEMPLATE.format(
        class_name=class_name,
        label=label,
        up_failure=f"raise RuntimeError('up {label} broke')" if fail_up else 'pass',
        down_failure=f"raise RuntimeError('down {label} broke')" if fail_down else 'pass',
    )
    path = migrations_dir / filename
    path.write_text(source)
    return path


def write_source(migrations_dir: Path, filename: str, source: str) -> Path:
    migrations_dir.mkdir(parents=True, exist_ok=True)
    path = migrations_dir / filename
    path.write_text(textwrap.dedent(source))
    return path


@pytest.fixture
def db(tmp_path):
    """Database handle on a temporary SQLite file with a journal table."""
    database = Database(create_engine(f"sqlite:///{tmp_path / 'test.db'}"))

    def journal(table):
        table.increments()
        table.string('entry', 50)

    database.create_table('journal', journal)
    yield database
    database.close()


@pytest.fixture
def journal(db):
    """Callable returning the journal entries in insertion order."""
    def read() -> List[str]:
        return [row['entry'] for row in db.table('journal').order_by('id').all()]
    return read


@pytest.fixture
def modules_path(tmp_path):
    path = tmp_path / 'modules'
    path.mkdir()
    return path


@pytest.fixture
def make_module(modules_path):
    """Create a module with `count` journal migrations; versions are 1-based."""
    def make(name: str, count: int, fail_up: Iterable[int] = (), fail_down: Iterable[int] = ()) -> Path:
        migrations_dir = modules_path / name / 'migrations'
        for version in range(1, count + 1):
            write_unit(
                migrations_dir,
                f"{version:03d}_step_{version}.py",
                f"Step{version}",
                str(version),
                fail_up=version in set(fail_up),
                fail_down=version in set(fail_down),
            )
        return migrations_dir
    return make


@pytest.fixture
def store(db):
    version_store = VersionStore(db)
    assert version_store.ensure_table()
    return version_store


@pytest.fixture
def engine(db, modules_path, store):
    return MigrationEngine(db, MigrationLoader(db, modules_path), store)
