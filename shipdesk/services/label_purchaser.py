"""
Sequential label purchasing.

Every label is a billed Shippo transaction and Shippo has no multi-label
purchase, so labels are bought one at a time in package order. A failure
stops the sequence; labels already bought stay bought.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from shipdesk.services.carrier_client import CarrierAPIError, ShippoClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LabelRequest:
    """The rate chosen for one package."""
    package_index: int
    rate_id: str


@dataclass(frozen=True)
class LabelResult:
    """A purchased label."""
    package_index: int
    tracking_number: Optional[str]
    label_url: Optional[str]
    tracking_url: Optional[str]
    transaction_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "packageIndex": self.package_index,
            "tracking_number": self.tracking_number,
            "label_url": self.label_url,
            "tracking_url": self.tracking_url,
        }


@dataclass
class PurchaseOutcome:
    """
    Result of a purchase run.

    labels holds every label bought, in order. When error is set the run
    stopped at failed_package_index and nothing after it was attempted.
    """
    labels: List[LabelResult] = field(default_factory=list)
    error: Optional[str] = None
    failed_package_index: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


async def purchase_labels(
    client: ShippoClient,
    requests: Sequence[LabelRequest],
    label_file_type: str = "PDF",
) -> PurchaseOutcome:
    """Buy a label for each request, one after another, stopping at the first failure."""
    outcome = PurchaseOutcome()

    for request in requests:
        logger.info(f"Purchasing label for package {request.package_index + 1}...")
        try:
            transaction = await client.create_transaction(request.rate_id, label_file_type=label_file_type)
        except CarrierAPIError as e:
            error = e.message
        else:
            if transaction.failed:
                error = transaction.error_message
            else:
                outcome.labels.append(LabelResult(
                    package_index=request.package_index,
                    tracking_number=transaction.tracking_number,
                    label_url=transaction.label_url,
                    tracking_url=transaction.tracking_url,
                    transaction_id=transaction.transaction_id,
                ))
                continue

        outcome.error = error
        outcome.failed_package_index = request.package_index
        logger.error(
            f"Label purchase failed for package {request.package_index + 1}: {error} "
            f"({len(outcome.labels)} label(s) already purchased)"
        )
        break

    return outcome
