"""Custom exceptions for the stock ledger application."""
from decimal import Decimal


def _fmt_qty(value):
    """Render a quantity without trailing zeros (12 instead of 12.00)."""
    value = Decimal(str(value))
    if value % 1 == 0:
        return f"{int(value)}"
    return f"{value:.3f}".rstrip('0').rstrip('.')


def _json_value(value):
    if isinstance(value, Decimal):
        return int(value) if value % 1 == 0 else float(value)
    return value


class AppError(Exception):
    """Base exception for all application errors."""

    code = 'INTERNAL_ERROR'

    def __init__(self, message="An internal error occurred", status_code=500, payload=None, code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload
        if code:
            self.code = code

    def to_dict(self):
        rv = {k: _json_value(v) for k, v in dict(self.payload or ()).items()}
        rv['error'] = self.message
        rv['code'] = self.code
        return rv


class ValidationError(AppError):
    """Malformed input, rejected before touching the ledger."""

    code = 'VALIDATION_ERROR'

    def __init__(self, message, details=None, field=None):
        payload = {}
        if details:
            payload['details'] = details
        if field:
            payload['field'] = field
        super().__init__(message, 400, payload)
        self.details = details or []
        self.field = field


class BusinessLogicError(AppError):
    """Exception raised for business logic violations."""

    code = 'BUSINESS_RULE'

    def __init__(self, message, status_code=400, payload=None, code=None):
        super().__init__(message, status_code, payload, code)


class NotFoundError(AppError):
    """Exception raised when a resource is not found."""

    code = 'NOT_FOUND'

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class InsufficientStockError(BusinessLogicError):
    """Raised when an operation would drive a stock balance below zero."""

    code = 'INSUFFICIENT_STOCK'

    def __init__(self, product_name, required, available, product_id=None, warehouse_id=None):
        message = (
            f"Insufficient stock for {product_name}: "
            f"requested {_fmt_qty(required)}, available {_fmt_qty(available)}"
        )
        payload = {
            'productId': product_id,
            'warehouseId': warehouse_id,
            'requested': Decimal(str(required)),
            'available': Decimal(str(available)),
        }
        super().__init__(message, status_code=409, payload=payload)
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.required = Decimal(str(required))
        self.available = Decimal(str(available))


class ConcurrencyConflictError(AppError):
    """A concurrent write changed the balance between read and write."""

    code = 'CONCURRENT_MODIFICATION'

    def __init__(self, message="The stock balance was modified concurrently, retry with fresh data"):
        super().__init__(message, 409)


class DuplicateError(AppError):
    """A unique business key (product code, warehouse code) is already taken."""

    code = 'DUPLICATE'

    def __init__(self, message, field=None):
        super().__init__(message, 409, {'field': field} if field else None)


class UnauthorizedError(AppError):
    """Raised when a user lacks permission for an action."""

    code = 'FORBIDDEN'

    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 403)


class AuthenticationError(AppError):
    """No valid login for a protected endpoint."""

    code = 'UNAUTHENTICATED'

    def __init__(self, message="Authentication required"):
        super().__init__(message, 401)
