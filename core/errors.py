"""
Shared error types for core services.
"""


class ValidationIssue(ValueError):
    def __init__(
        self,
        message: str,
        field: str = "unknown",
        error_type: str = "invalid",
        error_code: str | None = None,
        data: dict | None = None,
    ):
        super().__init__(message)
        self.field = field
        self.error_type = error_type
        self.error_code = error_code
        self.data = data


class UnsupportedEntityKind(ValidationIssue):
    """Raised for an entity kind with no registered gateway."""

    def __init__(self, value):
        super().__init__(
            f"unsupported entity kind: {value}",
            field="entity_kind",
            error_type="unsupported",
        )
        self.value = value


class NotFoundError(LookupError):
    """Raised when an archive entry or live entity is missing or not owned by the caller."""

    def __init__(self, resource: str, identifier):
        super().__init__(f"{resource} not found: {identifier}")
        self.resource = resource
        self.identifier = identifier


class SnapshotDecodeError(ValueError):
    """Raised when a snapshot cannot be mapped onto its target shape."""


class ArchiveConflictError(RuntimeError):
    """Raised when a restored row collides with an existing one."""
