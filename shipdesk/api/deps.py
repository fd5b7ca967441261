"""
API dependencies
"""
from fastapi import HTTPException, Request, status

from shipdesk.services.fulfillment_service import FulfillmentService


def get_fulfillment_service(request: Request) -> FulfillmentService:
    """The FulfillmentService created in the app lifespan."""
    service = getattr(request.app.state, "fulfillment", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Fulfillment service is not ready"
        )
    return service
