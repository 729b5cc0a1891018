class DomainError(Exception):
    """Base class for booking errors surfaced to callers."""


class ValidationError(DomainError):
    """A booking request is missing required fields or is out of range."""


class NotFoundError(DomainError):
    pass


class ConflictError(DomainError):
    """The slot already holds an active reservation."""


class StoreError(DomainError):
    """The persistence layer was unavailable or rejected the operation."""


class ConfigurationError(DomainError):
    """A notification channel is missing its credentials."""
