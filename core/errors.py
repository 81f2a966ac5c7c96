"""
Error kinds raised at the engagement boundary.

Every failure carries a kind tag and a human-readable message. The transport
decides what the user sees; the core only guarantees both are present.

Idempotent support calls are not errors and have no exception here.
"""


class EngagementError(Exception):
    kind = "engagement_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(EngagementError):
    """Blank required field, cardinality exceeded, malformed email or page."""
    kind = "validation"


class NotFound(EngagementError):
    """A referenced publication, comment or parent comment does not exist."""
    kind = "not_found"


class Unauthorized(EngagementError):
    """Well-formed input, but the email is not on the allow-list."""
    kind = "unauthorized"


class StorageFailure(EngagementError):
    """The unit of work did not complete. Nothing from it was applied; retry is safe."""
    kind = "storage_failure"
