"""
Shipdesk Exception Hierarchy

All exceptions include code, message, and details so routes can report a
human-readable message while logs keep the full context.

Exception Hierarchy:
    ShipdeskError
    ├── ShippingError
    │   ├── ShippingQuoteError
    │   └── ShippingLabelError
    ├── OrderError
    │   ├── DuplicateOrderError
    │   └── OrderValidationError
    └── PrintJobError
"""
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class ShipdeskError(Exception):
    """
    Base exception for all Shipdesk errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging
        severity: P0-P3 severity level
    """

    default_code: str = "SHIPDESK_ERROR"
    default_severity: str = "P2"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# SHIPPING ERRORS
# =============================================================================

class ShippingError(ShipdeskError):
    """Base exception for shipping-related errors."""
    default_code = "SHIPPING_ERROR"
    default_severity = "P1"


class ShippingQuoteError(ShippingError):
    """A package's shipment could not be created, so no quotes are returned."""
    default_code = "SHIPPING_QUOTE_FAILED"

    def __init__(
        self,
        message: str,
        package_index: Optional[int] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details["package_index"] = package_index
        self.package_index = package_index
        super().__init__(message, details=details, **kwargs)


class ShippingLabelError(ShippingError):
    """
    A label purchase failed part-way through an order.

    Labels bought before the failure are real, billed labels; they travel
    with the error so the operator can reconcile them.
    """
    default_code = "SHIPPING_LABEL_FAILED"
    default_severity = "P0"

    def __init__(
        self,
        message: str,
        package_index: Optional[int] = None,
        completed_labels: Optional[List[Any]] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details["package_index"] = package_index
        details["completed_count"] = len(completed_labels or [])
        self.package_index = package_index
        self.completed_labels = list(completed_labels or [])
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# ORDER ERRORS
# =============================================================================

class OrderError(ShipdeskError):
    """Base exception for order bookkeeping errors."""
    default_code = "ORDER_ERROR"


class DuplicateOrderError(OrderError):
    """Duplicate order detected via idempotency key."""
    default_code = "DUPLICATE_ORDER_DETECTED"
    default_severity = "P0"

    def __init__(
        self,
        message: str = "This order has already been completed",
        idempotency_key: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details["idempotency_key"] = idempotency_key
        self.idempotency_key = idempotency_key
        super().__init__(message, details=details, **kwargs)


class OrderValidationError(OrderError):
    """The package/rate pairs of a purchase request do not describe the order."""
    default_code = "ORDER_VALIDATION_FAILED"
    default_severity = "P3"


# =============================================================================
# PRINTING ERRORS
# =============================================================================

class PrintJobError(ShipdeskError):
    """PrintNode rejected or never received a print job."""
    default_code = "PRINT_JOB_FAILED"
    default_severity = "P3"

    def __init__(
        self,
        message: str,
        title: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "title": title,
            "status_code": status_code,
        })
        super().__init__(message, details=details, **kwargs)
