"""
Shippo API Client for Shipdesk

Implements the two Shippo calls the fulfillment flow needs:
- Shipments (create one shipment per package, returns rate offers)
- Transactions (buy a label for a chosen rate)

All external API calls are logged and raise CarrierAPIError on failure;
services decide what a failure means for the order.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from shipdesk.core.config import Settings

logger = logging.getLogger(__name__)

# API endpoints
SHIPMENTS_PATH = "/shipments/"
TRANSACTIONS_PATH = "/transactions/"

# Shippo transaction status values
TRANSACTION_ERROR = "ERROR"


@dataclass
class ShippoCredentials:
    """Shippo API credentials."""
    api_key: str
    base_url: str = "https://api.goshippo.com"
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ShippoCredentials":
        return cls(
            api_key=settings.SHIPPO_API_KEY,
            base_url=settings.SHIPPO_API_BASE.rstrip("/"),
            timeout=settings.CARRIER_TIMEOUT_SECONDS,
        )


@dataclass(frozen=True)
class ShippoParcel:
    """A single parcel; Shipdesk always quotes in inches and pounds."""
    length: float
    width: float
    height: float
    weight: float
    distance_unit: str = "in"
    mass_unit: str = "lb"

    def to_shippo_format(self) -> Dict[str, Any]:
        return {
            "length": self.length,
            "width": self.width,
            "height": self.height,
            "distance_unit": self.distance_unit,
            "weight": self.weight,
            "mass_unit": self.mass_unit,
        }


@dataclass
class ShippoRateOffer:
    """One rate offer returned with a shipment."""
    rate_id: str
    provider: str
    servicelevel_token: str
    servicelevel_name: str
    amount: str
    currency: str
    estimated_days: Optional[int] = None
    raw_response: Dict = field(default_factory=dict)

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "ShippoRateOffer":
        servicelevel = data.get("servicelevel") or {}
        amount = data.get("amount")
        return cls(
            rate_id=data.get("object_id", ""),
            provider=data.get("provider", ""),
            servicelevel_token=servicelevel.get("token", ""),
            servicelevel_name=servicelevel.get("name", ""),
            amount=str(amount) if amount is not None else "",
            currency=data.get("currency", "USD"),
            estimated_days=data.get("estimated_days"),
            raw_response=data,
        )


@dataclass
class ShippoShipmentResult:
    """Result of creating a shipment for one package."""
    shipment_id: str
    rates: List[ShippoRateOffer] = field(default_factory=list)
    raw_response: Dict = field(default_factory=dict)


@dataclass
class ShippoTransactionResult:
    """Result of buying a label."""
    transaction_id: str
    status: str
    tracking_number: Optional[str] = None
    label_url: Optional[str] = None
    tracking_url: Optional[str] = None
    messages: List[str] = field(default_factory=list)
    raw_response: Dict = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return self.status == TRANSACTION_ERROR

    @property
    def error_message(self) -> str:
        return ", ".join(m for m in self.messages if m) or "Label purchase failed"


class CarrierAPIError(Exception):
    """Shippo API error with details."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


def _error_detail(data: Any) -> Optional[str]:
    """Pull Shippo's human-readable error out of an error body."""
    if isinstance(data, dict):
        detail = data.get("detail")
        if detail:
            return str(detail)
    return None


class ShippoClient:
    """
    Shippo REST client.

    One instance owns one httpx.AsyncClient; call close() on shutdown.
    """

    def __init__(
        self,
        credentials: ShippoCredentials,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.credentials = credentials
        self._http_client = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.credentials.timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _post(self, path: str, data: Dict) -> httpx.Response:
        """POST an authenticated JSON request; transport errors become CarrierAPIError."""
        client = await self._get_http_client()
        url = f"{self.credentials.base_url}{path}"
        headers = {
            "Authorization": f"ShippoToken {self.credentials.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = await client.post(url, headers=headers, json=data)
        except httpx.TimeoutException as e:
            logger.error(f"Shippo API POST {path} timed out: {e}")
            raise CarrierAPIError(message=f"Carrier request timed out: {e}", code="TIMEOUT")
        except httpx.RequestError as e:
            logger.error(f"Shippo API request failed: {e}")
            raise CarrierAPIError(message=f"Network error: {e}", code="NETWORK_ERROR")

        logger.debug(f"Shippo API POST {path} -> {response.status_code}")
        return response

    @staticmethod
    def _json_body(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text

    # ==================== Shipments ====================

    async def create_shipment(
        self,
        address_from: Dict[str, Any],
        address_to: Dict[str, Any],
        parcel: ShippoParcel,
    ) -> ShippoShipmentResult:
        """
        Create a synchronous shipment for a single parcel.

        Returns:
            The shipment id with every rate offer Shippo returned for it
        """
        request_data = {
            "address_from": address_from,
            "address_to": address_to,
            "parcels": [parcel.to_shippo_format()],
            "async": False,
        }

        response = await self._post(SHIPMENTS_PATH, request_data)
        data = self._json_body(response)

        if response.status_code not in (200, 201):
            detail = _error_detail(data)
            logger.error(f"Shippo shipment creation failed: {response.status_code} - {detail or str(data)[:500]}")
            raise CarrierAPIError(
                message=detail or "Failed to create shipment",
                code="SHIPMENT_FAILED",
                status_code=response.status_code,
                details={"detail": detail},
            )

        if not isinstance(data, dict):
            raise CarrierAPIError(message="Unexpected shipment response", code="BAD_RESPONSE", status_code=response.status_code)

        rates = [ShippoRateOffer.from_response(r) for r in (data.get("rates") or [])]
        logger.info(f"Shippo shipment {data.get('object_id')} returned {len(rates)} rates")
        return ShippoShipmentResult(
            shipment_id=data.get("object_id", ""),
            rates=rates,
            raw_response=data,
        )

    # ==================== Transactions ====================

    async def create_transaction(
        self,
        rate_id: str,
        label_file_type: str = "PDF",
    ) -> ShippoTransactionResult:
        """
        Buy the label for a rate.

        A 2xx response can still carry status ERROR; callers check
        result.failed. Non-2xx responses raise CarrierAPIError.
        """
        request_data = {
            "rate": rate_id,
            "label_file_type": label_file_type,
            "async": False,
        }

        response = await self._post(TRANSACTIONS_PATH, request_data)
        data = self._json_body(response)

        if response.status_code not in (200, 201):
            detail = _error_detail(data)
            if not detail and data:
                detail = data if isinstance(data, str) else str(data)
            logger.error(f"Shippo transaction failed for rate {rate_id}: {response.status_code}")
            raise CarrierAPIError(
                message=detail or "Failed to purchase label",
                code="TRANSACTION_FAILED",
                status_code=response.status_code,
            )

        if not isinstance(data, dict):
            raise CarrierAPIError(message="Unexpected transaction response", code="BAD_RESPONSE", status_code=response.status_code)

        messages = [m.get("text", "") for m in (data.get("messages") or []) if isinstance(m, dict)]
        return ShippoTransactionResult(
            transaction_id=data.get("object_id", ""),
            status=data.get("status", ""),
            tracking_number=data.get("tracking_number"),
            label_url=data.get("label_url"),
            tracking_url=data.get("tracking_url_provider"),
            messages=messages,
            raw_response=data,
        )


def get_carrier_client(settings: Settings) -> ShippoClient:
    """Build a ShippoClient from settings."""
    if not settings.SHIPPO_API_KEY:
        logger.warning("SHIPPO_API_KEY is not set; Shippo calls will fail")
    return ShippoClient(ShippoCredentials.from_settings(settings))
