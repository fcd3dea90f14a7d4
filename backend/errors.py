"""
Application errors.

Every business failure raised by the routers and the access gate is an
AppError; main.py renders them as {"error": message, **context}.
"""

from datetime import datetime, date
from decimal import Decimal
from typing import Any, Dict, Optional


class AppError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.message}
        for key, value in self.context.items():
            if isinstance(value, Decimal):
                value = float(value)
            elif isinstance(value, (datetime, date)):
                value = value.isoformat()
            body[key] = value
        return body


class BadRequest(AppError):
    status_code = 400
    message = "Invalid request"


class Forbidden(AppError):
    status_code = 403
    message = "Access denied"


class NotFound(AppError):
    status_code = 404
    message = "Not found"


class Conflict(AppError):
    status_code = 409
    message = "Conflict"


# Access gate

class MissingTenantIdentifier(BadRequest):
    message = "Hotel ID required (x-hotel-id header)"


class TenantNotPermitted(Forbidden):
    message = "You do not have access to this hotel"


class NoActiveSubscription(Forbidden):
    message = "No active subscription for this hotel"

    def __init__(self, has_subscription: bool = False, message: Optional[str] = None):
        super().__init__(message, blocked=True, has_subscription=has_subscription)


class SubscriptionExpired(Forbidden):
    message = "Subscription expired"

    def __init__(self, expires_at, message: Optional[str] = None):
        super().__init__(message, blocked=True, expires_at=expires_at)


# Reservations and billing

class InvalidDateRange(BadRequest):
    message = "Check-out date must be after check-in date"


class NoRoomAssigned(BadRequest):
    message = "A room must be assigned before check-in"


class OutstandingBalance(BadRequest):
    message = "Reservation has an outstanding balance"

    def __init__(self, balance, message: Optional[str] = None):
        super().__init__(message, balance=balance)


class InsufficientStock(BadRequest):
    message = "Insufficient stock"

    def __init__(self, available: int, requested: int, message: Optional[str] = None):
        super().__init__(message, available=available, requested=requested)


class RoomUnavailable(Conflict):
    message = "Room is not available for the selected dates"

    def __init__(self, room_id: int, message: Optional[str] = None):
        super().__init__(message, room_id=room_id)


class InvalidTransition(Conflict):
    message = "Invalid status transition"

    def __init__(self, current: str, target: str, message: Optional[str] = None):
        super().__init__(
            message or f"Cannot move reservation from {current} to {target}",
            current_status=current,
            target_status=target,
        )


class BalanceInvariantViolated(AppError):
    message = "Reservation balance is inconsistent"
