from fastapi import HTTPException, status


class AffiliateHubException(HTTPException):
    def __init__(
        self,
        status_code: int,
        detail: str,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class AuthenticationError(AffiliateHubException):
    def __init__(self, detail: str = "Authentication failed"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(AffiliateHubException):
    def __init__(self, detail: str = "Not authorized"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFoundError(AffiliateHubException):
    def __init__(self, resource: str = "Resource"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found",
        )


class BadRequestError(AffiliateHubException):
    def __init__(self, detail: str = "Bad request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class ConflictError(AffiliateHubException):
    def __init__(self, detail: str = "Resource already exists"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class RateLimitError(AffiliateHubException):
    def __init__(self, detail: str = "Rate limit exceeded"):
        super().__init__(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=detail)


class ValidationError(AffiliateHubException):
    def __init__(self, detail: str = "Validation error"):
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class ServiceUnavailableError(AffiliateHubException):
    def __init__(self, detail: str = "Service temporarily unavailable"):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


# Affiliate specific exceptions
class DuplicateError(ConflictError):
    def __init__(self, detail: str = "Already processed", existing_id: str | None = None):
        super().__init__(detail=detail)
        self.existing_id = existing_id


class StateError(ConflictError):
    def __init__(self, detail: str = "Operation not allowed in the current state"):
        super().__init__(detail=detail)


# External service exceptions
class TransientError(ServiceUnavailableError):
    def __init__(self, detail: str = "Temporary network failure"):
        super().__init__(detail=detail)


class EmailError(TransientError):
    def __init__(self, detail: str = "Email service error"):
        super().__init__(detail=detail)


class PaymentError(BadRequestError):
    def __init__(self, detail: str = "Payment processing failed"):
        super().__init__(detail=detail)
