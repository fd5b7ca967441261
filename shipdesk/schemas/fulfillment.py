"""
Fulfillment Schemas

Pydantic models for the packing-station API. Field names follow what the
admin page already sends (pkgId, selectedRate, package_rates).
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ==================== Order Input ====================


class PackageInfo(BaseModel):
    """One box in the order. Dimensions in inches, weight in pounds."""
    model_config = ConfigDict(frozen=True)

    length: float = Field(..., gt=0)
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)
    weight: float = Field(..., gt=0)
    description: Optional[str] = Field(None, max_length=200)


class Destination(BaseModel):
    """Ship-to address. Only domestic (US) shipments are supported."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, max_length=100)
    street: str = Field(..., min_length=1, max_length=100)
    street2: Optional[str] = Field(None, max_length=100)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=2, max_length=50)
    zip: str = Field(..., min_length=3, max_length=20)
    country: str = "US"
    phone: Optional[str] = Field(None, max_length=30)
    email: Optional[str] = Field(None, max_length=100)

    @field_validator("country")
    @classmethod
    def validate_country(cls, v):
        if v.upper() != "US":
            raise ValueError("Only US destinations are supported")
        return "US"

    def to_shippo_format(self) -> dict:
        return {
            "name": self.name,
            "street1": self.street,
            "street2": self.street2 or "",
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "country": self.country,
            "phone": self.phone,
            "email": self.email,
        }


# ==================== Rate Schemas ====================


class RateRequest(BaseModel):
    """Request combined rates for an order."""
    packages: List[PackageInfo] = Field(..., min_length=1)
    destination: Destination


class ServiceLevel(BaseModel):
    name: str
    token: str


class PackageRateSchema(BaseModel):
    """One package's rate within a combined quote."""
    packageIndex: int = Field(..., ge=0)
    rate_id: str = Field(..., min_length=1)
    amount: Optional[str] = None


class QuoteSchema(BaseModel):
    """A combined quote offered for every package in the order."""
    key: str
    provider: str
    servicelevel: ServiceLevel
    estimated_days: Optional[int] = None
    amount: str
    currency: str
    package_rates: List[PackageRateSchema]


class RateListResponse(BaseModel):
    rates: List[QuoteSchema]


# ==================== Purchase Schemas ====================


class PurchaseRequest(BaseModel):
    """Buy labels for the rate the operator picked."""
    package_rates: List[PackageRateSchema] = Field(..., min_length=1)
    packages: List[PackageInfo] = Field(..., min_length=1)
    destination: Destination
    pkgId: Optional[str] = Field(None, max_length=200)
    selectedRate: Optional[QuoteSchema] = None


class LabelSchema(BaseModel):
    packageIndex: int
    tracking_number: Optional[str] = None
    label_url: Optional[str] = None
    tracking_url: Optional[str] = None


class PurchaseResponse(BaseModel):
    success: bool = True
    labels: List[LabelSchema]


# ==================== Order Lookup ====================


class OrderRecordSchema(BaseModel):
    method: str
    delivery: str
    total: str
    labels: List[LabelSchema]
    completed_at: str


class OrderLookupResponse(BaseModel):
    exists: bool
    order: Optional[OrderRecordSchema] = None
