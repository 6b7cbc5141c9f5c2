"""Comment error kinds.

Every business failure carries a stable ``code`` that the HTTP layer maps to
a status. ``UpstreamUnavailableError`` never reaches a caller: profile
enrichment absorbs it and degrades.
"""


class CommentError(Exception):
    """Base comment error."""

    def __init__(self, message: str, code: str = "comment_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class InvalidContentError(CommentError):
    """Comment content is empty or too long."""

    def __init__(self, message: str = "Comment content is invalid"):
        super().__init__(message, "validation_error")


class CommentNotFoundError(CommentError):
    """Comment (or parent comment) not found."""

    def __init__(self, message: str = "Comment not found"):
        super().__init__(message, "not_found")


class PermissionDeniedError(CommentError):
    """Caller may not perform this operation."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message, "permission_denied")


class LikeConflictError(CommentError):
    """Like already exists, or unlike without a like."""

    def __init__(self, message: str = "Like state conflict"):
        super().__init__(message, "conflict")


class UpstreamUnavailableError(CommentError):
    """The user service failed, timed out or answered garbage."""

    def __init__(self, message: str = "User service unavailable"):
        super().__init__(message, "upstream_unavailable")
