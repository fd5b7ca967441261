"""
Fulfillment API Routes

Provides endpoints for the packing-station admin page:
- Order lookup (has this pkgId already been shipped?)
- Rate quoting (combined rates for every package)
- Label purchase (buy, print, record)

Errors are returned as {"error": message}, which is what the admin page shows.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from shipdesk.api.deps import get_fulfillment_service
from shipdesk.core.error_handler import sanitize_error_message
from shipdesk.core.exceptions import ShipdeskError, ShippingLabelError
from shipdesk.schemas.fulfillment import (
    LabelSchema,
    OrderLookupResponse,
    OrderRecordSchema,
    PackageRateSchema,
    PurchaseRequest,
    PurchaseResponse,
    QuoteSchema,
    RateListResponse,
    RateRequest,
    ServiceLevel,
)
from shipdesk.services.fulfillment_service import FulfillmentService
from shipdesk.services.label_purchaser import LabelResult
from shipdesk.services.rate_aggregator import AggregatedQuote

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Fulfillment"])


# ==================== Helper Functions ====================


def quote_to_schema(quote: AggregatedQuote) -> QuoteSchema:
    return QuoteSchema(
        key=quote.key.display,
        provider=quote.provider,
        servicelevel=ServiceLevel(name=quote.servicelevel_name, token=quote.servicelevel_token),
        estimated_days=quote.estimated_days,
        amount=quote.amount,
        currency=quote.currency,
        package_rates=[
            PackageRateSchema(packageIndex=r.package_index, rate_id=r.rate_id, amount=r.amount)
            for r in quote.package_rates
        ],
    )


def labels_to_schema(labels: List[LabelResult]) -> List[LabelSchema]:
    return [LabelSchema(**label.to_dict()) for label in labels]


def error_response(error: ShipdeskError, **extra) -> JSONResponse:
    content = {"error": sanitize_error_message(error), "code": error.code}
    content.update(extra)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


# ==================== Order Endpoints ====================


@router.get("/order/{order_id:path}", response_model=OrderLookupResponse, response_model_exclude_none=True)
async def get_order(
    order_id: str,
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    """Check whether an order (pkgId) has already been completed."""
    record = await service.lookup_order(order_id)
    if record is None:
        return OrderLookupResponse(exists=False)
    return OrderLookupResponse(exists=True, order=OrderRecordSchema(**record.to_dict()))


# ==================== Rate Endpoints ====================


@router.post("/rates", response_model=RateListResponse)
async def get_rates(
    rate_request: RateRequest,
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    """
    Get combined shipping rates for all packages.

    Only service levels quoted for every package are returned.
    """
    try:
        quotes = await service.get_quotes(rate_request.packages, rate_request.destination)
    except ShipdeskError as e:
        logger.error(f"Rates error: {e.message}")
        return error_response(e)

    return RateListResponse(rates=[quote_to_schema(q) for q in quotes])


# ==================== Purchase Endpoints ====================


@router.post("/purchase", response_model=PurchaseResponse)
async def purchase_labels(
    purchase_request: PurchaseRequest,
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    """
    Purchase a label for each package, then print and record the order.

    If a purchase fails part-way the response is a 400 that still lists the
    labels that were bought, since those have already been charged.
    """
    try:
        labels = await service.purchase(
            package_rates=purchase_request.package_rates,
            packages=purchase_request.packages,
            destination=purchase_request.destination,
            order_id=purchase_request.pkgId,
            selected_rate=purchase_request.selectedRate,
        )
    except ShippingLabelError as e:
        logger.error(f"Purchase error: {e.message}")
        return error_response(
            e,
            labels=[label.model_dump() for label in labels_to_schema(e.completed_labels)],
        )
    except ShipdeskError as e:
        logger.error(f"Purchase error: {e.message}")
        return error_response(e)

    return PurchaseResponse(success=True, labels=labels_to_schema(labels))
