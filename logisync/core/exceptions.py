from fastapi import HTTPException, status

class BaseAppException(HTTPException):
    def __init__(self, status_code: int, detail: str):
        super().__init__(status_code=status_code, detail=detail)

class ValidationError(BaseAppException):
    def __init__(self, detail: str = "Validation error"):
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)

class InvalidStatusError(ValidationError):
    def __init__(self, value=None):
        detail = "Invalid status" if value is None else f"Invalid status: {value}"
        super().__init__(detail=detail)

class NotFoundError(BaseAppException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

class NotFoundOrForbiddenError(NotFoundError):
    """Same response whether the resource is missing or belongs to someone else"""
    def __init__(self, detail: str = "Package not found or access denied"):
        super().__init__(detail=detail)

class PreconditionError(BaseAppException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class OrderNotFulfilledError(PreconditionError):
    def __init__(self, detail: str = "Order must be fulfilled before creating shipment"):
        super().__init__(detail=detail)

class ShipmentAlreadyExistsError(PreconditionError):
    def __init__(self, detail: str = "Shipment already exists for this order"):
        super().__init__(detail=detail)

class PendingPackagesRemainError(PreconditionError):
    def __init__(self, count: int):
        super().__init__(
            detail=f"Pick up all pending packages before starting tracking ({count} remaining)"
        )

class TrackingRequiredError(BaseAppException):
    def __init__(self, detail: str = "GPS tracking must be active to update this status"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)

class InvalidTransitionError(BaseAppException):
    def __init__(self, current_status, new_status):
        self.current_status = current_status
        self.new_status = new_status
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Invalid status transition from {current_status} to {new_status}"
        )

class AuthenticationError(BaseAppException):
    def __init__(self, detail: str = "Invalid authentication credentials"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)
        self.headers = {"WWW-Authenticate": "Bearer"}

class PermissionDeniedError(BaseAppException):
    def __init__(self, detail: str = "Not enough permissions"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
