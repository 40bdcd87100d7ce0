"""
Custom Exception Hierarchy

Every ledger rejection is an AppException carrying a stable error code, so
callers can tell a conflict from a missing row without parsing messages.
"""
from decimal import Decimal
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"
    ALREADY_EXISTS = "ERR_1003"
    UNAUTHORIZED = "ERR_1004"
    NOT_AUTHORIZED = "ERR_1005"

    # Balance / withdrawal errors (2xxx)
    BALANCE_NOT_FOUND = "ERR_2001"
    INSUFFICIENT_BALANCE = "ERR_2002"
    WITHDRAW_MUST_BE_ATTACHED_TO_SHOP = "ERR_2003"
    INVALID_AMOUNT = "ERR_2004"

    # Refund errors (3xxx)
    ALREADY_REFUNDED = "ERR_3001"
    REFUND_NOT_ALLOWED = "ERR_3002"
    REFUND_EXCEEDS_BALANCE = "ERR_3003"

    # Commission errors (4xxx)
    INVALID_COMMISSION_RATE = "ERR_4001"

    # State machine errors (6xxx)
    INVALID_STATE_TRANSITION = "ERR_6001"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class ValidationException(AppException):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=400,
            details=details
        )
        if field:
            self.details["field"] = field


class NotFoundException(AppException):
    """Raised when a requested resource is not found"""

    def __init__(
        self,
        resource: str,
        identifier: Any,
        error_code: ErrorCode = ErrorCode.NOT_FOUND
    ):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code=error_code,
            status_code=404,
            details={"resource": resource, "identifier": str(identifier)}
        )


class ForbiddenException(AppException):
    """Raised when the caller lacks the role or ownership for an operation"""

    def __init__(self, action: str, user_id: int | None = None):
        super().__init__(
            message=f"Not authorized to {action}",
            error_code=ErrorCode.NOT_AUTHORIZED,
            status_code=403,
            details={"action": action, "user_id": user_id}
        )


class LedgerException(AppException):
    """Base exception for balance and wallet errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        shop_id: int | None = None,
        status_code: int = 400,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details=details
        )
        if shop_id:
            self.details["shop_id"] = shop_id


class InsufficientBalanceError(LedgerException):
    """Raised when a debit would take a shop balance below zero"""

    def __init__(
        self,
        shop_id: int | None,
        current_balance: Decimal | None,
        required_amount: Decimal,
        message: str | None = None,
        error_code: ErrorCode = ErrorCode.INSUFFICIENT_BALANCE
    ):
        super().__init__(
            message=message or f"Insufficient balance for shop {shop_id}",
            error_code=error_code,
            shop_id=shop_id,
            details={
                "current_balance": str(current_balance) if current_balance is not None else None,
                "required_amount": str(required_amount),
            }
        )


class RefundExceedsBalanceError(InsufficientBalanceError):
    """Raised when reversing a refunded child order would take the shop balance below zero"""

    def __init__(self, error: InsufficientBalanceError, refund_id: int, order_id: int):
        super().__init__(
            shop_id=error.details.get("shop_id"),
            current_balance=error.details.get("current_balance"),
            required_amount=error.details.get("required_amount"),
            message=f"Refund {refund_id} exceeds the balance of shop {error.details.get('shop_id')}",
            error_code=ErrorCode.REFUND_EXCEEDS_BALANCE,
        )
        self.details["refund_id"] = refund_id
        self.details["order_id"] = order_id


class BalanceNotFoundError(LedgerException):
    """Raised when a shop has no balance row and one is required"""

    def __init__(self, shop_id: int):
        super().__init__(
            message=f"Balance not found for shop {shop_id}",
            error_code=ErrorCode.BALANCE_NOT_FOUND,
            shop_id=shop_id,
            status_code=404
        )


class WithdrawWithoutShopError(LedgerException):
    """Raised when a withdrawal request does not name a shop"""

    def __init__(self):
        super().__init__(
            message="Withdraw must be attached to a shop",
            error_code=ErrorCode.WITHDRAW_MUST_BE_ATTACHED_TO_SHOP
        )


class AlreadyRefundedError(AppException):
    """Raised when approving a refund that is already approved, or for an order already refunded"""

    def __init__(self, refund_id: int, order_id: int | None = None):
        details: dict[str, Any] = {"refund_id": refund_id}
        if order_id is not None:
            message = f"Order {order_id} has already been refunded"
            details["order_id"] = order_id
        else:
            message = f"Refund {refund_id} has already been approved"
        super().__init__(
            message=message,
            error_code=ErrorCode.ALREADY_REFUNDED,
            status_code=409,
            details=details
        )


class InvalidStateTransitionError(AppException):
    """Raised when a status change is not allowed from the current status"""

    def __init__(self, entity: str, current_state: str, target_state: str):
        super().__init__(
            message=f"Invalid {entity} transition from '{current_state}' to '{target_state}'",
            error_code=ErrorCode.INVALID_STATE_TRANSITION,
            status_code=409,
            details={
                "entity": entity,
                "current_state": current_state,
                "target_state": target_state,
            }
        )
