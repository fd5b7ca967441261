"""
Tests for settings and the exception hierarchy.
"""
import httpx
import pytest
from fastapi import FastAPI
from pydantic import ValidationError

from shipdesk.core.config import Settings, get_settings
from shipdesk.core.error_handler import ErrorSanitizationMiddleware, sanitize_error_message
from shipdesk.core.exceptions import (
    DuplicateOrderError,
    ShipdeskError,
    ShippingError,
    ShippingLabelError,
    ShippingQuoteError,
)


class TestSettings:
    """Test Settings parsing and validation."""

    def test_defaults(self):
        config = Settings(_env_file=None, SHIPPO_API_KEY="k", PRINTNODE_API_KEY="", PRINTNODE_PRINTER_ID=0)

        assert config.PORT == 3000
        assert config.CORS_ORIGINS == ["*"]
        assert config.printing_enabled is False
        assert config.origin_address == {
            "name": "Wafaa Demian",
            "street1": "90 W 22nd St",
            "city": "Bayonne",
            "state": "NJ",
            "zip": "07002",
            "country": "US",
        }

    def test_printing_enabled_needs_key_and_printer(self):
        config = Settings(_env_file=None, PRINTNODE_API_KEY="pn", PRINTNODE_PRINTER_ID=77)
        assert config.printing_enabled is True

    def test_cors_origins_comma_separated(self):
        config = Settings(_env_file=None, CORS_ORIGINS="http://a.test, http://b.test")
        assert config.CORS_ORIGINS == ["http://a.test", "http://b.test"]

    def test_production_requires_shippo_key(self):
        with pytest.raises(ValidationError, match="SHIPPO_API_KEY must be set"):
            Settings(_env_file=None, ENVIRONMENT="production", SHIPPO_API_KEY="")

    def test_production_forbids_debug(self):
        with pytest.raises(ValidationError, match="DEBUG=True is forbidden"):
            Settings(_env_file=None, ENVIRONMENT="production", SHIPPO_API_KEY="k", DEBUG=True)

    def test_get_settings_overrides(self):
        config = get_settings({"LABEL_FILE_TYPE": "ZPLII"})

        assert config.LABEL_FILE_TYPE == "ZPLII"
        assert get_settings().LABEL_FILE_TYPE == "PDF"


class TestExceptions:
    """Test the exception hierarchy."""

    def test_quote_error_hierarchy_and_details(self):
        error = ShippingQuoteError("Parcel too heavy", package_index=1)

        assert isinstance(error, ShippingError)
        assert isinstance(error, ShipdeskError)
        assert error.to_dict() == {
            "error_type": "ShippingQuoteError",
            "code": "SHIPPING_QUOTE_FAILED",
            "message": "Parcel too heavy",
            "severity": "P1",
            "details": {"package_index": 1},
        }

    def test_label_error_carries_completed_labels(self):
        error = ShippingLabelError("Invalid rate", package_index=1, completed_labels=["label-1"])

        assert error.severity == "P0"
        assert error.completed_labels == ["label-1"]
        assert error.details["completed_count"] == 1

    def test_duplicate_order_default_message(self):
        error = DuplicateOrderError(idempotency_key="ORD-1")

        assert str(error) == "This order has already been completed"
        assert error.details == {"idempotency_key": "ORD-1"}


class TestSanitizeErrorMessage:
    """Test sanitize_error_message."""

    def test_plain_message_passes_through(self):
        assert sanitize_error_message(ShippingQuoteError("Address not found")) == "Address not found"

    def test_sensitive_message_is_hidden(self):
        message = sanitize_error_message(RuntimeError("Authorization: ShippoToken abc rejected"))
        assert message == "An internal error occurred. Please try again later."

    def test_long_message_truncated(self):
        message = sanitize_error_message("x" * 600)
        assert message == "x" * 500 + "..."

    def test_configured_credentials_redacted(self):
        message = sanitize_error_message(ShippingQuoteError("Key shippo_test_key is not valid"))
        assert message == "Key *** is not valid"


class TestErrorSanitizationMiddleware:
    """Test ErrorSanitizationMiddleware."""

    @pytest.mark.asyncio
    async def test_unhandled_error_becomes_sanitized_500(self):
        app = FastAPI()
        app.add_middleware(ErrorSanitizationMiddleware)

        @app.get("/boom")
        async def boom():
            raise RuntimeError("connection string redis://secret@cache")

        transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
            response = await http.get("/boom")

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "An unexpected error occurred. Please try again later."
        assert len(body["error_id"]) == 12
