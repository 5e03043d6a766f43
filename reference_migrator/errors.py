"""Exceptions raised while building or running a reference migration."""


class MigratorError(Exception):
    """Base class for every error raised by this package."""

    pass


class ValidationError(MigratorError):
    """Raised for failures the user can act on, e.g. a misconfigured destination."""

    pass


class ConfigurationError(MigratorError):
    """Raised when a migrator is built from a malformed template or pattern."""

    pass


class RepoError(MigratorError):
    """Raised when the destination repository cannot be read."""

    pass


class InsufficientScopesError(RepoError):
    """Raised when a GraphQL query fails due to missing token scopes."""

    pass
