from fastapi import HTTPException, status


class LmsError(HTTPException):
    """Base for every error kind a service can report to the caller.

    Each subclass pins its HTTP status; the message defaults to a generic one
    so callers never have to pick a code by hand.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"

    def __init__(self, detail: str | None = None):
        super().__init__(status_code=type(self).status_code, detail=detail or self.default_detail)


class Unauthenticated(LmsError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Unauthorized"


class Forbidden(LmsError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden: Insufficient permissions"


class InvalidCredentials(LmsError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid credentials"


class AccountDisabled(InvalidCredentials):
    # Same wire message as InvalidCredentials to avoid account enumeration.
    pass


class NotFound(LmsError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class Conflict(LmsError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Already exists"


class AlreadySubmitted(Conflict):
    default_detail = "Already submitted"


class ValidationError(LmsError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class ScoreOutOfRange(ValidationError):
    default_detail = "Score exceeds max score"


class DeadlinePassed(LmsError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Deadline passed"
