"""Rewrites references in change messages so they point at the destination repository."""

from .errors import (
    ConfigurationError,
    InsufficientScopesError,
    MigratorError,
    RepoError,
    ValidationError,
)
from .history import Change, ChangeVisitable, GitLogHistory, VisitResult
from .migrator import MAX_CHANGES_TO_VISIT, ReferenceMigrator
from .work import MigrationInfo, TransformWork

__version__ = "0.1.0"
