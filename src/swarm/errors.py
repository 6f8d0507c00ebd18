"""Domain errors raised by Swarm services.

All of them subclass ValueError so callers that only care about "bad
input" can keep catching ValueError. The API maps each class to an HTTP
status code.
"""


class SwarmError(ValueError):
    """Base class for expected, user-facing failures."""

    status_code = 400


class ValidationError(SwarmError):
    """Request data is missing or malformed."""

    status_code = 400


class ConflictError(SwarmError):
    """The target is not in a state that allows the operation."""

    status_code = 400


class NotFoundError(SwarmError):
    status_code = 404


class PermissionDeniedError(SwarmError):
    status_code = 403


class AuthenticationError(SwarmError):
    status_code = 401


class ConfigurationError(RuntimeError):
    """The service is missing required configuration and must not run."""
