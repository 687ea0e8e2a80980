"""
Result of a migrate/rollback call.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..exceptions import MigrationError

ALREADY_AT_LATEST = 'already at latest'
NOT_YET_MIGRATED = 'not yet migrated'
ALREADY_AT_TARGET = 'already at target version'


class OutcomeStatus(Enum):
    SUCCESS = 'success'
    NOOP = 'noop'
    FAILURE = 'failure'


@dataclass
class MigrationOutcome:
    """
    What a migrate/rollback call did.

    version is the stored version after the call: the new version on success,
    the unchanged one on no-op or failure (None when the module has no record).
    applied lists the unit versions whose action completed, in execution order;
    on failure these were NOT undone.
    """

    status: OutcomeStatus
    module: str
    forward: bool
    version: Optional[int] = None
    reason: str = ''
    error: Optional[MigrationError] = None
    applied: List[int] = field(default_factory=list)

    @classmethod
    def success(cls, module: str, forward: bool, version: int, applied: List[int]) -> 'MigrationOutcome':
        verb = 'Migrated' if forward else 'Rolled back'
        return cls(OutcomeStatus.SUCCESS, module, forward, version,
                   f"{verb} the '{module}' module to version {version}.", applied=list(applied))

    @classmethod
    def noop(cls, module: str, forward: bool, version: Optional[int], reason: str) -> 'MigrationOutcome':
        return cls(OutcomeStatus.NOOP, module, forward, version, reason)

    @classmethod
    def failure(cls, module: str, forward: bool, version: Optional[int], error: MigrationError,
                applied: Optional[List[int]] = None) -> 'MigrationOutcome':
        return cls(OutcomeStatus.FAILURE, module, forward, version, str(error), error,
                   list(applied or []))

    @property
    def ok(self) -> bool:
        return self.status is not OutcomeStatus.FAILURE

    @property
    def is_noop(self) -> bool:
        return self.status is OutcomeStatus.NOOP

    def __bool__(self) -> bool:
        return self.ok
