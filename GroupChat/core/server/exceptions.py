"""
Exception classes for the chat server.

None of these ever reach other room members; each is reported to the
originating connection only.
"""


class GroupChatError(Exception):
    """Base exception for all server-side chat errors."""

    code = "ERROR"

    def __init__(self, message: str, code: str = None):
        """
        Initialize chat error.

        Args:
            message: Client-facing message
            code: Optional machine-readable code (defaults to the class code)
        """
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return self.message


class ValidationError(GroupChatError):
    """Missing or malformed client input."""
    code = "VALIDATION_ERROR"


class AuthError(GroupChatError):
    """Credential mismatch. The message never says which credential was wrong."""
    code = "AUTH_ERROR"


class NotFoundError(GroupChatError):
    """The group referenced by an action no longer exists or is inactive."""
    code = "NOT_FOUND"


class PersistenceError(GroupChatError):
    """The durable store failed or is unavailable."""
    code = "PERSISTENCE_ERROR"


class ConflictError(GroupChatError):
    """A group name is already taken."""
    code = "CONFLICT"
