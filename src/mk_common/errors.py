"""Unified error codes, error kinds and custom exceptions.

Every engine operation either returns its payload or raises exactly one
AppError subclass. The `kind` tag is what the presentation layer maps to a
transport response; the numeric code is kept for clients.

Error code ranges:
  1xxx: Identity
  2xxx: Wallet
  3xxx: Listing
  4xxx: Order
  5xxx: Trade session / settlement
  6xxx: Authorization
  9xxx: System / validation
"""

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "VALIDATION"
    UNAUTHORIZED = "UNAUTHORIZED"
    INSUFFICIENT_QUANTITY = "INSUFFICIENT_QUANTITY"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    SELF_TRADE_FORBIDDEN = "SELF_TRADE_FORBIDDEN"
    LISTING_HAS_ACTIVE_ORDERS = "LISTING_HAS_ACTIVE_ORDERS"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    TIMEOUT = "TIMEOUT"
    INTERNAL = "INTERNAL"


RETRYABLE_KINDS: frozenset[ErrorKind] = frozenset({ErrorKind.CONFLICT, ErrorKind.TIMEOUT})


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
        kind: ErrorKind = ErrorKind.INTERNAL,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        self.kind = kind
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


# --- 1xxx: Identity ---

class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1003, "Invalid or expired credentials", 401, ErrorKind.UNAUTHORIZED)


# --- 2xxx: Wallet ---

class InsufficientBalanceError(AppError):
    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            2001,
            f"Insufficient balance: required {required} points, available {available} points",
            422,
            ErrorKind.INSUFFICIENT_BALANCE,
        )


# --- 3xxx: Listing ---

class ListingNotFoundError(AppError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(3001, f"Listing not found: {listing_id}", 404, ErrorKind.NOT_FOUND)


class ListingNotActiveError(AppError):
    def __init__(self, listing_id: str, status: str) -> None:
        super().__init__(
            3002,
            f"Listing {listing_id} is not active (status={status})",
            422,
            ErrorKind.INVALID_STATE_TRANSITION,
        )


class InsufficientQuantityError(AppError):
    def __init__(self, listing_id: str, requested: int, available: int) -> None:
        super().__init__(
            3003,
            f"Insufficient quantity on listing {listing_id}: "
            f"requested {requested}, available {available}",
            422,
            ErrorKind.INSUFFICIENT_QUANTITY,
        )


class ListingHasActiveOrdersError(AppError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(
            3004,
            f"Listing {listing_id} has pending or confirmed orders",
            409,
            ErrorKind.LISTING_HAS_ACTIVE_ORDERS,
        )


# --- 4xxx: Order ---

class SelfTradeForbiddenError(AppError):
    def __init__(self) -> None:
        super().__init__(4003, "Sellers cannot buy their own listing", 422, ErrorKind.SELF_TRADE_FORBIDDEN)


class OrderNotFoundError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(4004, f"Order not found: {order_id}", 404, ErrorKind.NOT_FOUND)


class DuplicateRequestError(AppError):
    def __init__(self, request_id: str) -> None:
        super().__init__(
            4005,
            f"request_id {request_id} was already used with different parameters",
            409,
            ErrorKind.VALIDATION,
        )


class InvalidStateTransitionError(AppError):
    def __init__(self, entity: str, current: str, target: str) -> None:
        super().__init__(
            4006,
            f"{entity} cannot move from {current} to {target}",
            422,
            ErrorKind.INVALID_STATE_TRANSITION,
        )


# --- 5xxx: Trade session / settlement ---

class TradeSessionNotFoundError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(5001, f"Trade session not found for order {order_id}", 404, ErrorKind.NOT_FOUND)


class SettlementNotFoundError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(5002, f"No settlement intent for order {order_id}", 404, ErrorKind.NOT_FOUND)


# --- 6xxx: Authorization ---

class UnauthorizedError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(6001, f"Not allowed: {detail}", 403, ErrorKind.UNAUTHORIZED)


# --- 9xxx: System / validation ---

class RateLimitError(AppError):
    def __init__(self) -> None:
        super().__init__(9001, "Rate limit exceeded", 429, ErrorKind.CONFLICT)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500, ErrorKind.INTERNAL)


class ValidationError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(9003, f"Invalid input: {detail}", 422, ErrorKind.VALIDATION)


class ConflictError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(9004, f"Concurrent modification: {detail}", 409, ErrorKind.CONFLICT)


class StoreTimeoutError(AppError):
    def __init__(self, operation: str, seconds: float) -> None:
        super().__init__(
            9005,
            f"Store did not respond within {seconds:g}s during {operation}",
            503,
            ErrorKind.TIMEOUT,
        )
