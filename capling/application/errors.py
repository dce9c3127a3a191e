"""
Error taxonomy shared by all use cases.

The API layer maps each class onto an HTTP status (see capling.main).
"""


class CaplingError(Exception):
    """Base class for errors reported to the caller"""
    code = "error"


class ValidationError(CaplingError, ValueError):
    """Malformed or out-of-range input; never retried"""
    code = "validation_error"


class NotFoundError(CaplingError, LookupError):
    """Unknown transaction / lesson"""
    code = "not_found"


class ConflictError(CaplingError):
    """Operation is not allowed in the current state (e.g. already resolved)"""
    code = "conflict"


class UpstreamError(CaplingError):
    """Classifier/evaluator timeout or malformed response; retryable"""
    code = "upstream_error"
    retryable = True


class PersistenceError(CaplingError):
    """Store write failure"""
    code = "persistence_error"
