# services/errors.py
"""
Error taxonomy for the unload approval engine.

Each error carries `code`, the name reported in the ActionResult envelope.
"""

from typing import Dict, List, Optional


class StationError(Exception):
    code = "Error"
    http_status = 400

    def __init__(self, message: str, errors: Optional[Dict[str, List[str]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors


class InputValidationError(StationError):
    code = "ValidationError"
    http_status = 422


class NotFoundError(StationError):
    code = "NotFound"
    http_status = 404


class CapacityExceeded(StationError):
    code = "CapacityExceeded"

    def __init__(self, current_stock: float, liter_amount: float, capacity: float):
        self.current_stock = current_stock
        self.liter_amount = liter_amount
        self.capacity = capacity
        self.available_space = capacity - current_stock
        super().__init__(
            f"Tank capacity exceeded: {liter_amount:,.0f} L requested, "
            f"{max(self.available_space, 0):,.0f} L free"
        )


class InsufficientRemainingVolume(StationError):
    code = "InsufficientRemainingVolume"

    def __init__(self, requested: float, remaining: float, product_name: str = None):
        self.requested = requested
        self.remaining = remaining
        self.shortfall = requested - remaining
        label = f" for product {product_name}" if product_name else ""
        super().__init__(
            f"Delivered volume ({requested:,.0f} L) exceeds remaining LO "
            f"({remaining:,.0f} L){label}, short by {self.shortfall:,.0f} L"
        )


class DeliveredVolumeRequired(StationError):
    code = "DeliveredVolumeRequired"

    def __init__(self, message: str = "Delivered volume is required to draw down purchase orders"):
        super().__init__(message)


class AlreadyProcessed(StationError):
    code = "AlreadyProcessed"
    http_status = 409

    def __init__(self, unload_id: int, status: str):
        self.unload_id = unload_id
        self.status = status
        super().__init__(f"Unload {unload_id} was already {status.lower()}")


class InconsistentState(StationError):
    code = "InconsistentState"
    http_status = 500


class TransactionTimeout(StationError):
    code = "TransactionTimeout"
    http_status = 503
    retryable = True

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Transaction did not finish within {timeout:g}s, please retry")


class JournalPostingError(StationError):
    code = "JournalPostingError"
    http_status = 500


_STATUS_BY_CODE = {
    cls.code: cls.http_status
    for cls in (
        StationError,
        InputValidationError,
        NotFoundError,
        CapacityExceeded,
        InsufficientRemainingVolume,
        DeliveredVolumeRequired,
        AlreadyProcessed,
        InconsistentState,
        TransactionTimeout,
        JournalPostingError,
    )
}


def http_status_for(code: Optional[str]) -> int:
    """HTTP status for a failed envelope; unknown or missing codes are server errors."""
    return _STATUS_BY_CODE.get(code, 500)
