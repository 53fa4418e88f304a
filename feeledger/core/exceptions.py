from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotFoundError(ServiceError):
    """Student or payment id is unknown to the store."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ValidationError(ServiceError):
    """Input rejected before any store write was attempted."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class StoreUnavailableError(ServiceError):
    """I/O failure or timeout on a store call. Safe to retry."""

    def __init__(self, message: str = "Storage temporarily unavailable, please retry") -> None:
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)
