"""
Error sanitization for client responses

Carrier and printer errors are shown to the packing-station operator
verbatim, since they are usually actionable ("Invalid address"). What must
never reach the browser:
- configured credentials (Shippo/PrintNode keys, Redis URL)
- auth headers echoed back by an upstream
- tracebacks from unexpected failures (logged with an error id instead)
"""
import logging
import uuid
from typing import Union

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from shipdesk.core.config import settings
from shipdesk.core.exceptions import ShipdeskError

logger = logging.getLogger(__name__)

GENERIC_MESSAGE = "An internal error occurred. Please try again later."
UNEXPECTED_MESSAGE = "An unexpected error occurred. Please try again later."
MAX_MESSAGE_LENGTH = 500
REDACTED = "***"

# Settings whose values are secrets wherever they show up
SECRET_SETTINGS = ("SHIPPO_API_KEY", "PRINTNODE_API_KEY", "REDIS_URL")

# Text that only appears in errors we did not write ourselves
SENSITIVE_PATTERNS = (
    "shippotoken",
    "authorization:",
    "traceback",
    "file \"",
)


def redact_secrets(message: str) -> str:
    for name in SECRET_SETTINGS:
        value = getattr(settings, name, "")
        if value:
            message = message.replace(value, REDACTED)
    return message


def is_sensitive_error(message: str) -> bool:
    """Check if error message contains sensitive information."""
    message_lower = message.lower()
    return any(pattern in message_lower for pattern in SENSITIVE_PATTERNS)


def sanitize_error_message(error: Union[str, Exception]) -> str:
    """
    Make an error safe to return to the admin page.

    Shipdesk errors keep their message (credentials redacted); anything
    else is replaced with a generic message if it looks like internals.
    Long messages are truncated.
    """
    if isinstance(error, ShipdeskError):
        message = redact_secrets(error.message)
    else:
        message = redact_secrets(str(error))
        if not settings.DEBUG and is_sensitive_error(message):
            return GENERIC_MESSAGE

    if len(message) > MAX_MESSAGE_LENGTH:
        message = message[:MAX_MESSAGE_LENGTH] + "..."
    return message


class ErrorSanitizationMiddleware(BaseHTTPMiddleware):
    """
    Turn unhandled exceptions into a 500 {"error": ..., "error_id": ...}.

    The full traceback is logged under the same error id so an operator
    report can be matched to the log line.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except HTTPException:
            raise
        except Exception as e:
            error_id = uuid.uuid4().hex[:12]
            logger.exception(f"Unhandled exception [{error_id}] on {request.method} {request.url.path}: {type(e).__name__}")

            content = {"error": UNEXPECTED_MESSAGE, "error_id": error_id}
            if settings.DEBUG:
                content["error"] = redact_secrets(str(e))
                content["type"] = type(e).__name__
            return JSONResponse(status_code=500, content=content)
