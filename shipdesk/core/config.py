"""
Application configuration

SECURITY: Defaults are fail-safe for production.
- DEBUG defaults to False
- Runtime validation refuses to start production without carrier credentials
"""
import json
import logging
from typing import List, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# The packing station UI is served from the same origin, but the admin page
# is also opened from local files, so CORS stays permissive by default.
DEFAULT_CORS_ORIGINS = ["*"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # App
    APP_NAME: str = "El Wafaa Shipping"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    PORT: int = 3000

    # Shippo (rates + labels)
    SHIPPO_API_KEY: str = ""
    SHIPPO_API_BASE: str = "https://api.goshippo.com"
    CARRIER_TIMEOUT_SECONDS: float = 30.0
    LABEL_FILE_TYPE: str = "PDF"

    # PrintNode (label + packing slip printing)
    PRINTNODE_API_KEY: str = ""
    PRINTNODE_PRINTER_ID: int = 0
    PRINTNODE_API_BASE: str = "https://api.printnode.com"
    PRINTNODE_TIMEOUT_SECONDS: float = 15.0
    PRINT_SOURCE: str = "El Wafaa Shipping"

    # Ship-from address
    ORIGIN_NAME: str = "Wafaa Demian"
    ORIGIN_STREET1: str = "90 W 22nd St"
    ORIGIN_CITY: str = "Bayonne"
    ORIGIN_STATE: str = "NJ"
    ORIGIN_ZIP: str = "07002"
    ORIGIN_COUNTRY: str = "US"

    # Order ledger: in-memory unless REDIS_URL is set
    REDIS_URL: str = ""
    ORDER_CLAIM_TTL_SECONDS: int = 600

    # Static admin UI
    STATIC_DIR: str = ""  # empty = the admin page bundled with the package
    ADMIN_PAGE: str = "admin.html"

    # CORS - accepts JSON array or comma-separated string
    CORS_ORIGINS: List[str] = DEFAULT_CORS_ORIGINS

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            if not v.strip():
                return DEFAULT_CORS_ORIGINS
            if v.startswith("["):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @property
    def printing_enabled(self) -> bool:
        return bool(self.PRINTNODE_API_KEY) and self.PRINTNODE_PRINTER_ID != 0

    @property
    def origin_address(self) -> dict:
        """Ship-from address in Shippo's address format."""
        return {
            "name": self.ORIGIN_NAME,
            "street1": self.ORIGIN_STREET1,
            "city": self.ORIGIN_CITY,
            "state": self.ORIGIN_STATE,
            "zip": self.ORIGIN_ZIP,
            "country": self.ORIGIN_COUNTRY,
        }

    @model_validator(mode="after")
    def validate_production_config(self):
        """Runtime validation to catch broken production configurations."""
        if self.ENVIRONMENT == "production":
            errors = []

            if self.DEBUG:
                errors.append(
                    "DEBUG=True is forbidden in production. "
                    "Set DEBUG=false or ENVIRONMENT=development"
                )

            if not self.SHIPPO_API_KEY:
                errors.append("SHIPPO_API_KEY must be set in production")

            if not self.printing_enabled:
                logger.warning(
                    "PrintNode is not configured (PRINTNODE_API_KEY / PRINTNODE_PRINTER_ID); "
                    "labels will not be printed"
                )

            if errors:
                raise ValueError(
                    "PRODUCTION CONFIGURATION ERRORS:\n" + "\n".join(f"  - {e}" for e in errors)
                )

        return self


settings = Settings()


def get_settings(overrides: Optional[dict] = None) -> Settings:
    """Return the process settings, or a copy with overrides applied (tests, scripts)."""
    if not overrides:
        return settings
    return settings.model_copy(update=overrides)
