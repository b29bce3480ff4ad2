"""
Domain errors for the team workspace.

Every error carries a stable `code` (the reason code returned to API
clients) and the HTTP status the web layer answers with. None of them are
fatal to the process; `app.main` renders them as JSON.
"""
from fastapi import status


class WorkspaceError(Exception):
    """Base class for recoverable workspace errors."""
    code: str = "workspace_error"
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request could not be completed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class NotAMemberError(WorkspaceError):
    code = "not_a_member"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are not a member of this team"


class InsufficientPermissionError(WorkspaceError):
    code = "insufficient_permission"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Your role does not grant this permission"


class OwnerProtectedError(WorkspaceError):
    code = "owner_protected"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "The team owner role cannot be changed this way"


class NotFoundError(WorkspaceError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ValidationError(WorkspaceError):
    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"


class AlreadyMemberError(ValidationError):
    default_message = "User is already a member of this team"


ERRORS_BY_CODE: dict[str, type[WorkspaceError]] = {
    cls.code: cls
    for cls in (
        NotAMemberError,
        InsufficientPermissionError,
        OwnerProtectedError,
        NotFoundError,
        ValidationError,
    )
}
