from typing import Optional


class EduPortalError(Exception):
    """Base class for errors raised by the attempt and review workflows."""


class ApiError(EduPortalError):
    """A call to the Assessment API failed.

    ``status_code`` is ``None`` when the request never produced a response
    (connection refused, DNS failure, timeout).
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"HTTP {self.status_code}: {self.message}"


class UnauthorizedError(ApiError):
    def __init__(self, message: str = "Session is no longer valid"):
        super().__init__(message, status_code=401)


class AttemptStateError(EduPortalError):
    pass


class ReviewStateError(EduPortalError):
    pass
