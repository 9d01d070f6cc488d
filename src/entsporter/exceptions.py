"""Migration error taxonomy.

Errors that compromise the integrity of a run (configuration, listing,
persistence) halt the whole run. Export and import errors are local to one
engine and are folded into the migration state instead.
"""

from enum import Enum
from typing import Optional


class MigrationError(Exception):
    """Base exception for migration errors."""

    pass


class ConfigurationError(MigrationError):
    """Invalid combination of options, detected before any network call."""

    pass


class ListingError(MigrationError):
    """Engine enumeration failed on the source or target cluster."""

    pass


class StateError(MigrationError):
    """Migration state could not be persisted."""

    pass


class ExportError(MigrationError):
    """Exporting an engine from the source cluster failed."""

    def __init__(self, message: str, engine: Optional[str] = None):
        super().__init__(message)
        self.engine = engine


class ImportFailure(str, Enum):
    """Reason an engine import failed."""

    ALREADY_EXISTS = 'already_exists'
    RETRIABLE = 'retriable'
    FATAL = 'fatal'


class EngineImportError(MigrationError):
    """Importing an engine into the target cluster failed."""

    def __init__(
        self,
        message: str,
        engine: Optional[str] = None,
        kind: ImportFailure = ImportFailure.FATAL,
    ):
        super().__init__(message)
        self.engine = engine
        self.kind = kind
