"""
Domain errors raised by the entity store and the detail joiner.

Routers translate these into HTTP responses:
- ValidationError    -> 400
- NotFoundError      -> 404
- DataIntegrityError -> 500 (logged)
- PersistenceError   -> 500 (logged)
"""


class TriageReviewError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str, entity: str = None, operation: str = None):
        super().__init__(message)
        self.message = message
        self.entity = entity
        self.operation = operation

    def log_context(self) -> dict:
        return {
            "error_type": type(self).__name__,
            "entity": self.entity,
            "operation": self.operation,
            "error_message": self.message,
        }


class ValidationError(TriageReviewError):
    """Input refers to a missing parent, breaks a uniqueness rule or an allowed transition."""


class NotFoundError(TriageReviewError):
    """The requested entity does not exist."""


class DataIntegrityError(TriageReviewError):
    """A joined read found a row whose referenced parent row is missing."""


class PersistenceError(TriageReviewError):
    """The relational store rejected or failed a read/write."""
