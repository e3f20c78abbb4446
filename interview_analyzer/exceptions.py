"""
Custom exceptions for the interview analyzer core.

The persistence layer raises these; the HTTP layer maps each family to a
status code in ``app.py``. Database errors never cross the boundary as-is:
they are rolled back, logged, and re-raised as ``OperationFailedError``.
"""


class InterviewAnalyzerError(Exception):
    """Base exception for all interview analyzer errors."""

    status_code = 500
    public_message = "Operation failed"


# =============================================================================
# Validation
# =============================================================================

class AnalysisValidationError(InterviewAnalyzerError):
    """Raised when writer or registry input is rejected before any transaction opens."""

    status_code = 400
    public_message = "Invalid request"


# =============================================================================
# Not found
# =============================================================================

class NotFoundError(InterviewAnalyzerError):
    """Raised when a record is missing or belongs to another user."""

    status_code = 404
    public_message = "Not found"


class FeatureNotFoundError(NotFoundError):
    """Raised when a feature (or suggestion) id or name does not resolve for the user."""

    public_message = "Feature not found"

    def __init__(self, feature_ref, user_id: str):
        self.feature_ref = feature_ref
        self.user_id = user_id
        super().__init__(f"Feature {feature_ref!r} not found for user {user_id!r}")


class TranscriptNotFoundError(NotFoundError):
    """Raised when a transcript id does not resolve for the user."""

    public_message = "Transcript not found"

    def __init__(self, transcript_id: int, user_id: str):
        self.transcript_id = transcript_id
        self.user_id = user_id
        super().__init__(f"Transcript {transcript_id} not found for user {user_id!r}")


class MappingNotFoundError(NotFoundError):
    """Raised when a feature mapping id does not resolve for the user."""

    public_message = "Mapping not found"

    def __init__(self, mapping_id: int, user_id: str):
        self.mapping_id = mapping_id
        self.user_id = user_id
        super().__init__(f"Feature mapping {mapping_id} not found for user {user_id!r}")


# =============================================================================
# Conflicts
# =============================================================================

class ConflictError(InterviewAnalyzerError):
    """Raised when the request is valid but the current state forbids it."""

    status_code = 409
    public_message = "Conflict"


class FeatureStatusConflictError(ConflictError):
    """Raised for an illegal status transition, e.g. approving a non-pending row."""

    public_message = "Feature is not in a state that allows this action"

    def __init__(self, feature_id: int, current_status: str, target_status: str):
        self.feature_id = feature_id
        self.current_status = str(current_status)
        self.target_status = str(target_status)
        super().__init__(
            f"Feature {feature_id} cannot move from '{self.current_status}' to '{self.target_status}'"
        )


class FeatureNameConflictError(ConflictError):
    """Raised when a name collides with another pending or active feature of the user."""

    public_message = "A feature with this name already exists"

    def __init__(self, feature_name: str, user_id: str):
        self.feature_name = feature_name
        self.user_id = user_id
        super().__init__(f"Feature {feature_name!r} already exists for user {user_id!r}")


# =============================================================================
# Transaction failures
# =============================================================================

class OperationFailedError(InterviewAnalyzerError):
    """Raised after a database error forced a full rollback."""

    status_code = 500
    public_message = "Operation failed"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"{operation} failed; transaction rolled back")


class MigrationError(InterviewAnalyzerError):
    """Raised when a schema migrate/rollback batch aborts."""

    def __init__(self, command: str, cause: Exception):
        self.command = command
        self.cause = cause
        super().__init__(f"Schema {command} failed: {cause}")
