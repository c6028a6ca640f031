"""Error taxonomy shared by every operation."""
from fastapi import status


class ServiceError(Exception):
    """Base class for rule violations surfaced to the caller."""

    code = "INTERNAL_SERVER_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(ServiceError):
    code = "UNAUTHENTICATED"
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class NotFound(ServiceError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class Forbidden(ServiceError):
    code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN


class InvalidArgument(ServiceError):
    code = "BAD_USER_INPUT"
    status_code = status.HTTP_400_BAD_REQUEST
