"""
Per-module schema migrations.

- base: Migration base class implemented by every migration file
- loader: discovery of a module's migrations into a version registry
- store: tracking table of (module, version)
- engine: version resolution and execution
"""

from .base import Migration
from .engine import LATEST, MigrationEngine, MigrationPlan, plan_migration
from .loader import MigrationLoader, MigrationRegistry
from .outcome import (
    ALREADY_AT_LATEST, ALREADY_AT_TARGET, NOT_YET_MIGRATED, MigrationOutcome, OutcomeStatus,
)
from .store import VersionStore

__all__ = [
    'Migration',
    'MigrationEngine',
    'MigrationPlan',
    'plan_migration',
    'LATEST',
    'MigrationLoader',
    'MigrationRegistry',
    'MigrationOutcome',
    'OutcomeStatus',
    'ALREADY_AT_LATEST',
    'ALREADY_AT_TARGET',
    'NOT_YET_MIGRATED',
    'VersionStore',
]
