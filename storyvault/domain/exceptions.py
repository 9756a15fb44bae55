"""Domain-specific exceptions."""


class DomainError(Exception):
    """Base exception for domain errors."""

    pass


class ValidationError(DomainError):
    """Raised when domain validation fails."""

    pass


class AuthorAlreadyExistsError(DomainError):
    """Raised when inserting an author whose email is already taken."""

    pass


class TokenGenerationError(DomainError):
    """Raised when the secure random source cannot produce capability tokens."""

    pass


class NotificationError(DomainError):
    """Raised when a post notification cannot be delivered."""

    pass
