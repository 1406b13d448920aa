"""
Exceptions raised by the scanning pipeline.
"""


class FolioscanError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, *args, **kwargs):
        self.message = message
        super().__init__(message, *args, **kwargs)


class NotFoundError(FolioscanError):
    """Raised when a project or page id is unknown."""

    pass


class UnauthorizedError(FolioscanError):
    """Raised when a caller touches a project owned by someone else."""

    pass


class InvalidTransitionError(FolioscanError):
    """Raised when a page status change is not allowed."""

    def __init__(self, message: str, current: str | None = None, target: str | None = None):
        self.current = current
        self.target = target
        super().__init__(message)


class RecognitionError(FolioscanError):
    """Raised when the recognizer fails.

    Attributes:
        transient: Whether the failure is worth retrying (upstream 5xx,
            timeouts, dropped connections)
        attempts: Number of attempts made before giving up (set by the invoker)
    """

    def __init__(self, message: str, transient: bool = False, attempts: int = 1):
        self.transient = transient
        self.attempts = attempts
        super().__init__(message)


class RecognitionTransientError(RecognitionError):
    """Upstream failure expected to succeed on retry."""

    def __init__(self, message: str, attempts: int = 1):
        super().__init__(message, transient=True, attempts=attempts)


class RecognitionPermanentError(RecognitionError):
    """Upstream failure that will not improve with retry (e.g. malformed image)."""

    def __init__(self, message: str, attempts: int = 1):
        super().__init__(message, transient=False, attempts=attempts)
