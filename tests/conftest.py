"""
Pytest configuration and fixtures for Shipdesk tests.
"""
import json
import os
from typing import Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "development"
os.environ["SHIPPO_API_KEY"] = "shippo_test_key"
os.environ["PRINTNODE_API_KEY"] = ""
os.environ["PRINTNODE_PRINTER_ID"] = "0"
os.environ["REDIS_URL"] = ""

SHIPPO_BASE = "https://shippo.test"


def shippo_rate(
    provider: str,
    token: str,
    amount: str,
    rate_id: str,
    name: Optional[str] = None,
    estimated_days: Optional[int] = 3,
    currency: str = "USD",
) -> dict:
    """A rate object as Shippo returns it inside a shipment."""
    return {
        "object_id": rate_id,
        "provider": provider,
        "servicelevel": {"name": name or token.replace("_", " ").title(), "token": token},
        "amount": amount,
        "currency": currency,
        "estimated_days": estimated_days,
    }


def shippo_transaction(rate_id: str, tracking_number: str) -> dict:
    return {
        "object_id": f"txn_{rate_id}",
        "status": "SUCCESS",
        "tracking_number": tracking_number,
        "label_url": f"https://labels.test/{tracking_number}.pdf",
        "tracking_url_provider": f"https://track.test/{tracking_number}",
        "messages": [],
    }


class FakeShippo:
    """
    Scripted Shippo API for httpx.MockTransport.

    Shipments are answered by parcel weight (tests give each package a
    distinct weight); transactions by rate id.
    """

    def __init__(self):
        self.shipments: Dict[float, Tuple[int, object]] = {}
        self.transactions: Dict[str, Tuple[int, object]] = {}
        self.shipment_calls: List[dict] = []
        self.transaction_calls: List[dict] = []

    def add_shipment(self, weight: float, rates: List[dict], status_code: int = 201, shipment_id: str = None):
        body = {"object_id": shipment_id or f"shp_{weight}", "rates": rates}
        self.shipments[weight] = (status_code, body)

    def fail_shipment(self, weight: float, status_code: int = 400, body: object = None):
        self.shipments[weight] = (status_code, body if body is not None else {})

    def add_transaction(self, rate_id: str, tracking_number: str):
        self.transactions[rate_id] = (201, shippo_transaction(rate_id, tracking_number))

    def fail_transaction(self, rate_id: str, messages: List[str], status_code: int = 201):
        body = {
            "object_id": f"txn_{rate_id}",
            "status": "ERROR",
            "messages": [{"text": m} for m in messages],
        }
        self.transactions[rate_id] = (status_code, body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        if request.url.path == "/shipments/":
            self.shipment_calls.append(payload)
            status_code, body = self.shipments[payload["parcels"][0]["weight"]]
        elif request.url.path == "/transactions/":
            self.transaction_calls.append(payload)
            status_code, body = self.transactions[payload["rate"]]
        else:
            return httpx.Response(404, json={"detail": "Not found"})
        return httpx.Response(status_code, json=body)

    def client(self):
        from shipdesk.services.carrier_client import ShippoClient, ShippoCredentials

        return ShippoClient(
            ShippoCredentials(api_key="shippo_test_key", base_url=SHIPPO_BASE),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(self.handler)),
        )


@pytest.fixture
def fake_shippo() -> FakeShippo:
    return FakeShippo()


@pytest.fixture
def sample_packages() -> list:
    from shipdesk.schemas.fulfillment import PackageInfo

    return [
        PackageInfo(length=12, width=10, height=4, weight=2.0, description="Dresses"),
        PackageInfo(length=14, width=12, height=6, weight=3.5),
    ]


@pytest.fixture
def sample_destination():
    from shipdesk.schemas.fulfillment import Destination

    return Destination(
        name="Jane Doe",
        street="123 Main Street",
        street2="Apt 4B",
        city="New York",
        state="NY",
        zip="10001",
        phone="212-555-1234",
        email="jane.doe@example.com",
    )


@pytest.fixture
def origin() -> dict:
    return {
        "name": "Wafaa Demian",
        "street1": "90 W 22nd St",
        "city": "Bayonne",
        "state": "NJ",
        "zip": "07002",
        "country": "US",
    }


@pytest.fixture
def mock_printer() -> MagicMock:
    """PrintNode provider with printing switched on and every call mocked."""
    printer = MagicMock()
    printer.enabled = True
    printer.print_labels = AsyncMock(return_value=[])
    printer.print_packing_slip = AsyncMock()
    printer.close = AsyncMock()
    return printer


@pytest.fixture
def make_service(fake_shippo, mock_printer, origin):
    """Build a FulfillmentService around the fake Shippo API."""
    from shipdesk.services.fulfillment_service import FulfillmentService
    from shipdesk.services.order_ledger import InMemoryOrderLedger
    from shipdesk.services.packing_slip import PackingSlipRenderer

    def _make(ledger=None, printer=None):
        return FulfillmentService(
            carrier=fake_shippo.client(),
            ledger=ledger if ledger is not None else InMemoryOrderLedger(),
            printer=printer if printer is not None else mock_printer,
            slip_renderer=PackingSlipRenderer("El Wafaa Shipping", origin),
            origin=origin,
        )

    return _make
