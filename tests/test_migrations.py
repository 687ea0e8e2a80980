"""
Tests for the version store, migration loader and migration engine
"""

import pytest

from modmigrate import Migration, MigrationEngine, MigrationLoader, VersionStore
from modmigrate.exceptions import (
    InvalidDirectionError, InvalidInputError, InvalidTargetError, InvalidVersionError,
    LoadError, PersistError, UnitError, VersionStoreError,
)
from modmigrate.migrations import (
    ALREADY_AT_LATEST, ALREADY_AT_TARGET, NOT_YET_MIGRATED, MigrationRegistry, OutcomeStatus,
)

from conftest import write_source, write_unit


class TestVersionStore:
    """Test the tracking table"""

    def test_ensure_table_is_idempotent(self, db, store):
        assert db.has_table('migrations')
        assert store.ensure_table()
        assert db.has_table('migrations')

    def test_absent_module(self, store):
        assert store.get_version('billing') is None

    def test_insert_then_update(self, db, store):
        assert store.set_version('billing', 1, is_new_record=True)
        assert store.set_version('billing', 3, is_new_record=False)

        assert store.get_version('billing') == 3
        assert db.table('migrations').where(module='billing').count() == 1

    def test_stored_zero_is_not_absent(self, store):
        store.set_version('billing', 0, is_new_record=True)
        assert store.get_version('billing') == 0

    def test_custom_table_name(self, db):
        store = VersionStore(db, 'schema_versions')
        assert store.ensure_table()
        assert db.has_table('schema_versions')

    def test_read_failure_raises(self, db):
        with pytest.raises(VersionStoreError):
            VersionStore(db, 'missing_table').get_version('billing')

    def test_write_failure_returns_false(self, db):
        assert VersionStore(db, 'missing_table').set_version('billing', 1, is_new_record=True) is False

    def test_update_without_row_returns_false(self, store):
        assert store.set_version('billing', 2, is_new_record=False) is False
        assert store.get_version('billing') is None


class TestMigrationLoader:
    """Test migration discovery"""

    def test_lexicographic_order_defines_versions(self, db, modules_path):
        migrations_dir = modules_path / 'billing' / 'migrations'
        write_unit(migrations_dir, '010_third.py', 'Third', '3')
        write_unit(migrations_dir, '002_second.py', 'Second', '2')
        write_unit(migrations_dir, '001_first.py', 'First', '1')

        registry = MigrationLoader(db, modules_path).load('billing')

        assert registry.latest == 3
        assert [unit.name for unit in registry] == ['First', 'Second', 'Third']
        assert registry[1].name == 'First'

    def test_ignores_private_and_non_python_files(self, db, modules_path, make_module):
        migrations_dir = make_module('billing', 2)
        (migrations_dir / '__init__.py').write_text('')
        (migrations_dir / 'README.md').write_text('notes')

        assert MigrationLoader(db, modules_path).load('billing').latest == 2

    def test_units_receive_database_handle(self, db, modules_path, make_module):
        make_module('billing', 1)
        unit = MigrationLoader(db, modules_path).load('billing')[1]
        assert unit.db is db
        assert unit.table.table_name == 'journal'

    def test_non_conforming_file_skipped_when_lenient(self, db, modules_path, make_module):
        migrations_dir = make_module('billing', 2)
        write_source(migrations_dir, '003_helpers.py', '''
            def up():
                pass
        ''')

        registry = MigrationLoader(db, modules_path).load('billing')

        assert registry.latest == 2

    def test_non_conforming_file_fails_when_strict(self, db, modules_path, make_module):
        migrations_dir = make_module('billing', 2)
        write_source(migrations_dir, '003_helpers.py', '''
            def up():
                pass
        ''')

        with pytest.raises(LoadError, match='003_helpers.py'):
            MigrationLoader(db, modules_path, strict=True).load('billing')

    def test_abstract_subclass_is_non_conforming(self, db, modules_path):
        write_source(modules_path / 'billing' / 'migrations', '001_half.py', '''
            from modmigrate import Migration

            class HalfDone(Migration):
                def up(self):
                    pass
        ''')

        assert MigrationLoader(db, modules_path).load('billing').latest == 0
        with pytest.raises(LoadError):
            MigrationLoader(db, modules_path, strict=True).load('billing')

    def test_aliased_base_import(self, db, modules_path):
        """Test the base class itself is never taken as the unit, whatever it is imported as"""
        write_source(modules_path / 'billing' / 'migrations', '001_uses_base.py', '''
            from modmigrate import Migration
            from modmigrate.migrations.base import Migration as Base

            class CreateThing(Base):
                def up(self):
                    pass

                def down(self):
                    pass
        ''')

        assert MigrationLoader(db, modules_path).load('billing')[1].name == 'CreateThing'

    def test_import_error(self, db, modules_path):
        write_source(modules_path / 'billing' / 'migrations', '001_broken.py', 'def up(:\n')

        with pytest.raises(LoadError, match='001_broken.py'):
            MigrationLoader(db, modules_path).load('billing')

    def test_missing_module_directory(self, db, modules_path):
        with pytest.raises(LoadError, match='ghost'):
            MigrationLoader(db, modules_path).load('ghost')

    def test_discover_modules(self, db, modules_path, make_module):
        make_module('billing', 1)
        make_module('accounts', 1)
        (modules_path / 'notes').mkdir()

        assert MigrationLoader(db, modules_path).discover_modules() == ['accounts', 'billing']

    def test_registry_rejects_non_migrations(self):
        registry = MigrationRegistry('billing')

        class Lookalike:
            def up(self):
                pass

            def down(self):
                pass

        with pytest.raises(TypeError):
            registry.register(Lookalike())

    def test_registry_unknown_version(self, db):
        class Noop(Migration):
            def up(self):
                pass

            def down(self):
                pass

        registry = MigrationRegistry('billing')
        assert registry.register(Noop(db)) == 1
        with pytest.raises(KeyError):
            registry.get(2)


class TestMigrationEngine:
    """Test migrate/rollback against a real tracking table"""

    def test_never_migrated(self, engine, make_module, journal):
        make_module('billing', 3)

        assert engine.get_version('billing') is None
        outcome = engine.rollback('billing')

        assert outcome.status is OutcomeStatus.NOOP
        assert outcome.reason == NOT_YET_MIGRATED
        assert journal() == []

    def test_billing_scenario(self, db, engine, make_module, journal):
        make_module('billing', 3)

        first = engine.migrate('billing')
        assert first.status is OutcomeStatus.SUCCESS
        assert first.applied == [1]
        assert engine.get_version('billing') == 1

        rest = engine.migrate('billing', 'latest')
        assert rest.applied == [2, 3]
        assert engine.get_version('billing') == 3
        assert db.table('migrations').where(module='billing').count() == 1

        back = engine.rollback('billing', 1)
        assert back.applied == [3, 2]
        assert back.version == 1
        assert engine.get_version('billing') == 1

        assert journal() == ['up:1', 'up:2', 'up:3', 'down:3', 'down:2']

    def test_at_latest_is_noop(self, engine, make_module, journal):
        make_module('billing', 2)
        engine.migrate('billing', 'latest')

        outcome = engine.migrate('billing')

        assert outcome.is_noop
        assert outcome.reason == ALREADY_AT_LATEST
        assert outcome.version == 2
        assert journal() == ['up:1', 'up:2']

    def test_target_beyond_latest(self, engine, make_module, journal):
        make_module('billing', 3)

        outcome = engine.migrate('billing', 5)

        assert outcome.reason == ALREADY_AT_LATEST
        assert engine.get_version('billing') is None
        assert journal() == []

    def test_rollback_one_step(self, engine, make_module, journal):
        make_module('billing', 3)
        engine.migrate('billing', 2)

        outcome = engine.rollback('billing')

        assert outcome.applied == [2]
        assert engine.get_version('billing') == 1
        assert journal()[-1] == 'down:2'

    def test_migrate_backwards_is_rejected(self, engine, make_module, journal):
        make_module('billing', 3)
        engine.migrate('billing', 3)

        outcome = engine.migrate('billing', 1)

        assert outcome.status is OutcomeStatus.FAILURE
        assert isinstance(outcome.error, InvalidDirectionError)
        assert outcome.applied == []
        assert engine.get_version('billing') == 3
        assert journal() == ['up:1', 'up:2', 'up:3']

    def test_rollback_forwards_is_rejected(self, engine, make_module):
        make_module('billing', 3)
        engine.migrate('billing', 1)

        outcome = engine.rollback('billing', 2)

        assert isinstance(outcome.error, InvalidDirectionError)
        assert engine.get_version('billing') == 1

    def test_rollback_to_latest_fails_before_loading(self, engine):
        """Test validation happens before the module is loaded"""
        outcome = engine.rollback('ghost', 'latest')
        assert isinstance(outcome.error, InvalidTargetError)

    def test_invalid_inputs(self, engine, make_module):
        make_module('billing', 1)

        assert isinstance(engine.migrate('billing', -2).error, InvalidVersionError)
        assert isinstance(engine.migrate('billing', 'next').error, InvalidVersionError)
        assert isinstance(engine.migrate('billing', '²').error, InvalidVersionError)
        assert isinstance(engine.migrate('').error, InvalidInputError)
        assert engine.get_version('billing') is None

    def test_stored_version_beyond_discovered_migrations(self, engine, make_module, journal):
        migrations_dir = make_module('billing', 3)
        engine.migrate('billing', 'latest')
        (migrations_dir / '003_step_3.py').unlink()

        outcome = engine.rollback('billing', 1)

        assert outcome.status is OutcomeStatus.FAILURE
        assert isinstance(outcome.error, LoadError)
        assert outcome.version == 3
        assert engine.get_version('billing') == 3
        assert journal() == ['up:1', 'up:2', 'up:3']

    def test_repeat_migrate_to_target_is_noop(self, db, engine, make_module, journal):
        make_module('billing', 3)

        engine.migrate('billing', 2)
        again = engine.migrate('billing', 2)

        assert again.reason == ALREADY_AT_TARGET
        assert engine.get_version('billing') == 2
        assert journal() == ['up:1', 'up:2']

    def test_failure_mid_run_keeps_version(self, engine, make_module, journal):
        make_module('billing', 3, fail_up=[3])
        engine.migrate('billing')

        outcome = engine.migrate('billing', 'latest')

        assert outcome.status is OutcomeStatus.FAILURE
        assert isinstance(outcome.error, UnitError)
        assert outcome.error.version == 3
        assert outcome.error.unit_name == 'Step3'
        assert isinstance(outcome.error.__cause__, RuntimeError)
        assert outcome.applied == [2]
        assert outcome.version == 1
        assert engine.get_version('billing') == 1
        # step 2 ran and was not undone
        assert journal() == ['up:1', 'up:2']

    def test_failure_on_first_step_of_run(self, engine, make_module, journal):
        make_module('billing', 3, fail_up=[2])
        engine.migrate('billing')

        outcome = engine.migrate('billing', 'latest')

        assert outcome.error.version == 2
        assert outcome.applied == []
        assert engine.get_version('billing') == 1
        assert journal() == ['up:1']

    def test_failure_during_rollback(self, engine, make_module, journal):
        make_module('billing', 3, fail_down=[2])
        engine.migrate('billing', 'latest')

        outcome = engine.rollback('billing', 0)

        assert outcome.error.version == 2
        assert outcome.applied == [3]
        assert engine.get_version('billing') == 3

    def test_failed_first_migration_leaves_no_record(self, engine, make_module):
        make_module('billing', 1, fail_up=[1])

        outcome = engine.migrate('billing')

        assert not outcome
        assert engine.get_version('billing') is None

    def test_single_and_multi_step_agree(self, engine, make_module, journal):
        """Test stepping one version at a time ends where a single ranged run does"""
        make_module('stepped', 3)
        make_module('ranged', 3)

        for _ in range(3):
            assert engine.migrate('stepped').status is OutcomeStatus.SUCCESS
        assert engine.migrate('ranged', 'latest').status is OutcomeStatus.SUCCESS
        assert engine.get_version('stepped') == engine.get_version('ranged') == 3

        for _ in range(3):
            assert engine.rollback('stepped').status is OutcomeStatus.SUCCESS
        assert engine.rollback('ranged', 0).status is OutcomeStatus.SUCCESS
        assert engine.get_version('stepped') == engine.get_version('ranged') == 0

        entries = journal()
        assert entries[:3] == entries[3:6] == ['up:1', 'up:2', 'up:3']
        assert entries[6:9] == entries[9:] == ['down:3', 'down:2', 'down:1']

    def test_stored_zero(self, db, engine, make_module):
        make_module('billing', 2)
        engine.migrate('billing')
        engine.rollback('billing')
        assert engine.get_version('billing') == 0

        assert engine.rollback('billing').reason == NOT_YET_MIGRATED

        outcome = engine.migrate('billing')
        assert outcome.applied == [1]
        assert db.table('migrations').where(module='billing').count() == 1

    def test_modules_are_versioned_independently(self, engine, make_module):
        make_module('billing', 2)
        make_module('accounts', 3)

        engine.migrate('billing', 'latest')
        engine.migrate('accounts')

        assert engine.get_version('billing') == 2
        assert engine.get_version('accounts') == 1

    def test_persist_failure_is_reported(self, db, modules_path, store, make_module, journal):
        class BrokenStore(VersionStore):
            def set_version(self, module, version, is_new_record):
                return False

        make_module('billing', 2)
        engine = MigrationEngine(db, MigrationLoader(db, modules_path), BrokenStore(db))

        outcome = engine.migrate('billing', 'latest')

        assert isinstance(outcome.error, PersistError)
        assert outcome.applied == [1, 2]
        assert journal() == ['up:1', 'up:2']

    def test_vanished_tracking_row_is_persist_failure(self, engine, modules_path):
        migrations_dir = modules_path / 'billing' / 'migrations'
        write_unit(migrations_dir, '001_first.py', 'First', '1')
        write_source(migrations_dir, '002_forget.py', '''
            from modmigrate import Migration

            class Forget(Migration):
                table_name = 'migrations'

                def up(self):
                    self.table.where(module='billing').delete()

                def down(self):
                    pass
        ''')
        engine.migrate('billing')

        outcome = engine.migrate('billing')

        assert isinstance(outcome.error, PersistError)
        assert outcome.applied == [2]
        assert engine.get_version('billing') is None

    def test_load_failure(self, engine, journal):
        outcome = engine.migrate('ghost')
        assert isinstance(outcome.error, LoadError)
        assert journal() == []

    def test_missing_tracking_table(self, db, modules_path, make_module):
        make_module('billing', 1)
        engine = MigrationEngine(db, MigrationLoader(db, modules_path))

        outcome = engine.migrate('billing')

        assert isinstance(outcome.error, VersionStoreError)
        assert engine.init_tracking_table()
        assert engine.migrate('billing').ok

    def test_schema_changing_migration(self, db, engine, modules_path):
        write_source(modules_path / 'billing' / 'migrations', '001_create_invoices.py', '''
            from modmigrate import Migration

            class CreateInvoices(Migration):
                table_name = 'invoices'

                def up(self):
                    def columns(table):
                        table.increments()
                        table.string('customer', 100)
                        table.integer('amount')

                    self.db.create_table(self.table_name, columns)
                    self.table.insert({'customer': 'acme', 'amount': 10})

                def down(self):
                    self.db.drop_table(self.table_name)
        ''')

        assert engine.migrate('billing').ok
        assert db.table('invoices').first()['customer'] == 'acme'

        assert engine.rollback('billing').ok
        assert not db.has_table('invoices')

    def test_status(self, engine, make_module):
        make_module('billing', 3)
        engine.migrate('billing')

        status = engine.status('billing')

        assert status['current_version'] == 1
        assert status['latest_version'] == 3
        assert status['is_up_to_date'] is False
        assert [item['version'] for item in status['applied']] == [1]
        assert [item['name'] for item in status['pending']] == ['Step2', 'Step3']

    def test_migrate_all(self, engine, make_module):
        make_module('accounts', 2)
        make_module('billing', 1)

        outcomes = engine.migrate_all()

        assert [outcome.module for outcome in outcomes] == ['accounts', 'billing']
        assert all(outcome.status is OutcomeStatus.SUCCESS for outcome in outcomes)
        assert engine.get_version('accounts') == 2

    def test_migrate_all_stops_at_failure(self, engine, make_module):
        make_module('accounts', 1, fail_up=[1])
        make_module('billing', 1)

        outcomes = engine.migrate_all()

        assert len(outcomes) == 1
        assert not outcomes[0].ok
        assert engine.get_version('billing') is None
