"""Custom exceptions for the portal pipeline service."""


class PortalError(Exception):
    """Base exception for the portal pipeline service."""

    pass


class ValidationError(PortalError):
    """Raised when validation fails."""

    pass


class NotFoundError(PortalError):
    """Raised when a resource is not found."""

    pass


class InvalidStateError(PortalError):
    """Raised when a recommendation is in a status that forbids the operation."""

    pass


class ComputationError(PortalError):
    """Raised when scoring inputs (pricing, line items) are malformed."""

    pass


class DatabaseError(PortalError):
    """Raised when a database operation fails."""

    pass


class ConfigurationError(PortalError):
    """Raised when configuration is invalid."""

    pass


class AuthenticationError(PortalError):
    """Raised when authentication fails."""

    pass


class AuthorizationError(PortalError):
    """Raised when an authenticated principal lacks a required scope."""

    pass
