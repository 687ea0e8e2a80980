"""
Migration engine: version resolution and execution.

Each module has a linear sequence of migrations numbered 1..latest and a stored
version in the tracking table. migrate() moves the stored version up, rollback()
moves it down, one step by default or to an explicit target. Every unit action
commits on its own; a failing unit stops the run without undoing the units that
already ran and without recording a new version.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
import logging

from ..database import Database
from ..exceptions import (
    InvalidDirectionError, InvalidInputError, InvalidTargetError,
    InvalidVersionError, LoadError, MigrationError, PersistError, UnitError,
)
from ..logging_config import MigrationLoggerAdapter
from .loader import MigrationLoader, MigrationRegistry
from .outcome import (
    ALREADY_AT_LATEST, ALREADY_AT_TARGET, NOT_YET_MIGRATED, MigrationOutcome,
)
from .store import VersionStore

LATEST = 'latest'
MAX_MODULE_LENGTH = 50

RequestedVersion = Union[None, int, str]


@dataclass
class MigrationPlan:
    """Resolved target and the unit versions to run, in execution order."""

    module: str
    forward: bool
    current: Optional[int]
    target: int
    versions: List[int] = field(default_factory=list)


def validate_module(module: Any) -> str:
    if not isinstance(module, str) or not module.strip():
        raise InvalidInputError('Please provide the module to migrate.')
    if len(module) > MAX_MODULE_LENGTH:
        raise InvalidInputError(f"Module names are limited to {MAX_MODULE_LENGTH} characters: '{module}'")
    if '/' in module or '\\' in module or module.startswith('.'):
        raise InvalidInputError(f"Invalid module name: '{module}'")
    return module


def parse_version(requested: RequestedVersion) -> RequestedVersion:
    """
    Normalize a requested version.

    Returns:
        None, 'latest', or a non-negative int (digit strings are converted)

    Raises:
        InvalidVersionError: For anything else
    """
    if requested is None or requested == LATEST:
        return requested

    if isinstance(requested, bool):
        raise InvalidVersionError('Please provide a valid migration version.')

    if isinstance(requested, int):
        version = requested
    elif isinstance(requested, str) and requested.strip().isdecimal():
        try:
            version = int(requested.strip())
        except ValueError as e:
            raise InvalidVersionError('Please provide a valid migration version.') from e
    else:
        raise InvalidVersionError('Please provide a valid migration version.')

    if version < 0:
        raise InvalidVersionError('Please provide a valid migration version.')
    return version


def parse_request(module: str, forward: bool, requested: RequestedVersion) -> RequestedVersion:
    """Parse the requested version and reject 'latest' as a rollback target."""
    requested = parse_version(requested)
    if requested == LATEST and not forward:
        raise InvalidTargetError(f"Cannot rollback the '{module}' module to 'latest'.")
    return requested


def plan_migration(module: str, forward: bool, requested: RequestedVersion,
                   current: Optional[int], latest: int) -> Union[MigrationPlan, MigrationOutcome]:
    """
    Resolve the target version and the units to run.

    Args:
        module: Module name
        forward: True for migrate, False for rollback
        requested: None (one step), 'latest' (migrate only) or an explicit version
        current: Stored version, None if the module has no record
        latest: Number of migrations the module has

    Returns:
        A MigrationPlan, or a no-op MigrationOutcome when there is nothing to run

    Raises:
        InvalidVersionError, InvalidTargetError, InvalidDirectionError
    """
    return _plan(module, forward, parse_request(module, forward, requested), current, latest)


def _plan(module: str, forward: bool, requested: RequestedVersion,
          current: Optional[int], latest: int) -> Union[MigrationPlan, MigrationOutcome]:
    if requested is None:
        if current is None:
            if not forward:
                return MigrationOutcome.noop(module, forward, current, NOT_YET_MIGRATED)
            target = 1
        else:
            target = current + (1 if forward else -1)
    elif requested == LATEST:
        target = latest
    else:
        target = requested

    base = current or 0

    if forward and target < base:
        raise InvalidDirectionError('Cannot migrate to a previous version. Please rollback instead.')

    if not forward and target > base:
        raise InvalidDirectionError('Cannot rollback to a later version. Please migrate instead.')

    if target > latest or (forward and current == latest):
        return MigrationOutcome.noop(module, forward, current, ALREADY_AT_LATEST)

    if not forward and base == 0:
        return MigrationOutcome.noop(module, forward, current, NOT_YET_MIGRATED)

    if target == base:
        return MigrationOutcome.noop(module, forward, current, ALREADY_AT_TARGET)

    if forward:
        versions = list(range(base + 1, target + 1))
    else:
        versions = list(range(base, target, -1))

    return MigrationPlan(module, forward, current, target, versions)


class MigrationEngine:
    """
    Runs migrations for modules and keeps the tracking table up to date.

    Concurrent runs for the same module must be prevented by the caller; the
    read-modify-write of the stored version is not atomic.
    """

    def __init__(self, db: Database, loader: MigrationLoader,
                 store: Optional[VersionStore] = None,
                 logger: Optional[logging.Logger] = None):
        self.db = db
        self.loader = loader
        self.store = store or VersionStore(db)
        self.logger = logger or logging.getLogger('modmigrate.engine')

    def init_tracking_table(self) -> bool:
        """Create the tracking table if it does not exist."""
        return self.store.ensure_table()

    def migrate(self, module: str, version: RequestedVersion = None) -> MigrationOutcome:
        """
        Migrate a module up.

        Args:
            module: Module name
            version: Target version, 'latest', or None for the next version
        """
        return self._run(module, True, version)

    def rollback(self, module: str, version: RequestedVersion = None) -> MigrationOutcome:
        """
        Roll a module back.

        Args:
            module: Module name
            version: Target version, or None for the previous version
        """
        return self._run(module, False, version)

    def get_version(self, module: str) -> Optional[int]:
        """Stored version of a module, None if it was never migrated."""
        return self.store.get_version(validate_module(module))

    def status(self, module: str) -> Dict[str, Any]:
        """
        Applied and pending migrations of a module.

        Raises:
            MigrationError: If the module cannot be loaded or its version read
        """
        validate_module(module)
        registry = self.loader.load(module)
        current = self.store.get_version(module)
        base = current or 0

        return {
            'module': module,
            'current_version': current,
            'latest_version': registry.latest,
            'is_up_to_date': base == registry.latest,
            'applied': [{'version': v, 'name': unit.name} for v, unit in registry.items() if v <= base],
            'pending': [{'version': v, 'name': unit.name} for v, unit in registry.items() if v > base],
        }

    def migrate_all(self) -> List[MigrationOutcome]:
        """Migrate every module under the modules path to latest, stopping at the first failure."""
        outcomes = []
        for module in self.loader.discover_modules():
            outcome = self.migrate(module, LATEST)
            outcomes.append(outcome)
            if not outcome.ok:
                break
        return outcomes

    def _run(self, module: str, forward: bool, requested: RequestedVersion) -> MigrationOutcome:
        log = MigrationLoggerAdapter(self.logger, str(module))
        log.info(f"{'Migrating' if forward else 'Rolling back'} the '{module}' module...")

        current = None
        try:
            validate_module(module)
            requested = parse_request(module, forward, requested)

            registry = self.loader.load(module)
            current = self.store.get_version(module)
            if current is not None and current > registry.latest:
                raise LoadError(f"The '{module}' module is at version {current} but only "
                                f"{registry.latest} migrations were found")
            plan = _plan(module, forward, requested, current, registry.latest)
        except MigrationError as e:
            outcome = MigrationOutcome.failure(module, forward, current, e)
            log.outcome(outcome)
            return outcome

        if isinstance(plan, MigrationOutcome):
            log.info(f"The '{module}' module: {plan.reason}")
            return plan

        outcome = self._execute(plan, registry, log)
        log.outcome(outcome)
        return outcome

    def _execute(self, plan: MigrationPlan, registry: MigrationRegistry,
                 log: MigrationLoggerAdapter) -> MigrationOutcome:
        applied: List[int] = []

        for version in plan.versions:
            unit = registry[version]
            try:
                if plan.forward:
                    unit.up()
                else:
                    unit.down()
            except Exception as e:
                error = UnitError(f"Failed to run the '{unit.name}' migration (version {version}): {e}",
                                  version=version, unit_name=unit.name)
                error.__cause__ = e
                log.debug(f"Migration failure details: {e}", exc_info=True)
                return MigrationOutcome.failure(plan.module, plan.forward, plan.current, error, applied)

            applied.append(version)
            log.step(unit.name, plan.forward)

        if not self.store.set_version(plan.module, plan.target, plan.current is None):
            error = PersistError(
                f"Migrations of the '{plan.module}' module were applied but version "
                f"{plan.target} could not be recorded"
            )
            return MigrationOutcome.failure(plan.module, plan.forward, plan.current, error, applied)

        return MigrationOutcome.success(plan.module, plan.forward, plan.target, applied)
