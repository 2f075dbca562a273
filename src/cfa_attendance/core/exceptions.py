class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or a precondition is not met."""


class NotFoundError(DomainError):
    """Raised when a token or an entity cannot be found."""


class StateConflictError(DomainError):
    """Raised when the current state forbids the operation (signed, closed, expired)."""


class PersistenceError(DomainError):
    """Raised when the storage layer fails."""


class AuthenticationError(DomainError):
    """Raised when login credentials are invalid."""


class AuthorizationError(DomainError):
    """Raised when the logged-in user may not act on a resource."""
