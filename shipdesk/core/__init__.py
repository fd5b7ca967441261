from shipdesk.core.config import settings, get_settings
from shipdesk.core.exceptions import (
    ShipdeskError,
    ShippingQuoteError,
    ShippingLabelError,
    DuplicateOrderError,
    OrderValidationError,
    PrintJobError,
)
