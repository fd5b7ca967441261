# Services layer for business logic
from shipdesk.services.carrier_client import ShippoClient, CarrierAPIError
from shipdesk.services.rate_aggregator import AggregatedQuote, aggregate_rates
from shipdesk.services.label_purchaser import LabelResult, PurchaseOutcome, purchase_labels
from shipdesk.services.order_ledger import OrderLedger, InMemoryOrderLedger, RedisOrderLedger, OrderRecord
from shipdesk.services.fulfillment_service import FulfillmentService, create_fulfillment_service

__all__ = [
    "ShippoClient",
    "CarrierAPIError",
    "AggregatedQuote",
    "aggregate_rates",
    "LabelResult",
    "PurchaseOutcome",
    "purchase_labels",
    "OrderLedger",
    "InMemoryOrderLedger",
    "RedisOrderLedger",
    "OrderRecord",
    "FulfillmentService",
    "create_fulfillment_service",
]
