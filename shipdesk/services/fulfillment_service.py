"""
Fulfillment Service

Wires the packing-station flows together:
- Quote: one Shippo shipment per package -> combined quotes
- Purchase: ledger claim -> sequential label purchase -> order record ->
  printing and order log in the background

Background work (printing, packing slip, order log) runs after the purchase
result is final and can never change it.
"""
import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Awaitable, List, Optional, Sequence, Set

from shipdesk.core.config import Settings
from shipdesk.core.exceptions import (
    DuplicateOrderError,
    OrderValidationError,
    ShippingLabelError,
)
from shipdesk.schemas.fulfillment import Destination, PackageInfo, PackageRateSchema, QuoteSchema
from shipdesk.services.carrier_client import ShippoClient, get_carrier_client
from shipdesk.services.label_purchaser import LabelRequest, LabelResult, purchase_labels
from shipdesk.services.order_ledger import OrderLedger, OrderRecord, get_order_ledger
from shipdesk.services.packing_slip import PackingSlipRenderer
from shipdesk.services.print_client import PrintNodeProvider
from shipdesk.services.rate_aggregator import AggregatedQuote, aggregate_rates, format_amount
from shipdesk.services.rate_quotes import fetch_package_rates

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"


def validate_package_rates(
    package_rates: Sequence[PackageRateSchema],
    package_count: int,
    selected_rate: Optional[QuoteSchema] = None,
) -> None:
    """
    Check that package_rates names exactly one rate for every package.

    When the quote the operator picked is sent along, its rate ids must be
    the ones being bought and its per-package amounts must add up to its
    total.
    """
    indexes = [rate.packageIndex for rate in package_rates]

    if len(indexes) != len(set(indexes)):
        raise OrderValidationError("Each package can only have one rate", details={"package_indexes": indexes})

    out_of_range = [i for i in indexes if i >= package_count]
    if out_of_range:
        raise OrderValidationError(
            f"Rate given for package {out_of_range[0] + 1} but the order has {package_count} package(s)",
            details={"package_indexes": indexes},
        )

    if len(indexes) != package_count:
        missing = sorted(set(range(package_count)) - set(indexes))
        raise OrderValidationError(
            f"No rate selected for package {missing[0] + 1}",
            details={"missing": missing},
        )

    if selected_rate is not None:
        requested = {(r.packageIndex, r.rate_id) for r in package_rates}
        quoted = {(r.packageIndex, r.rate_id) for r in selected_rate.package_rates}
        if requested != quoted:
            raise OrderValidationError(
                "Package rates do not match the selected quote",
                details={"quote": selected_rate.key},
            )

        # The quote total is what gets recorded as charged
        try:
            package_total = sum(Decimal(r.amount) for r in selected_rate.package_rates)
            quoted_total = Decimal(selected_rate.amount)
        except (InvalidOperation, TypeError) as e:
            raise OrderValidationError(
                "Selected quote is missing package amounts",
                details={"quote": selected_rate.key},
            ) from e
        if format_amount(package_total) != format_amount(quoted_total):
            raise OrderValidationError(
                "Selected quote total does not match its package rates",
                details={"quote": selected_rate.key, "amount": selected_rate.amount},
            )


def build_order_record(labels: Sequence[LabelResult], selected_rate: Optional[QuoteSchema] = None) -> OrderRecord:
    """Summarise a completed purchase for the ledger."""
    if selected_rate is None:
        return OrderRecord(method=NOT_AVAILABLE, delivery=NOT_AVAILABLE, total=NOT_AVAILABLE, labels=list(labels))

    try:
        total = f"${format_amount(Decimal(selected_rate.amount))}"
    except InvalidOperation:
        total = NOT_AVAILABLE

    return OrderRecord(
        method=f"{selected_rate.provider} - {selected_rate.servicelevel.name}",
        delivery=f"{selected_rate.estimated_days or NOT_AVAILABLE} business days",
        total=total,
        labels=list(labels),
    )


def log_order_details(destination: Destination, labels: Sequence[LabelResult], packages: Sequence[PackageInfo]) -> None:
    """Write the completed order to the log for the packing station."""
    address = destination.street + (f", {destination.street2}" if destination.street2 else "")
    lines = [
        "========== NEW ORDER ==========",
        f"Customer: {destination.name}",
        f"Address: {address}",
        f"         {destination.city}, {destination.state} {destination.zip}",
        f"Email: {destination.email}",
        f"Phone: {destination.phone}",
        "",
        "Tracking Numbers:",
        *(f"Package {n}: {label.tracking_number}" for n, label in enumerate(labels, start=1)),
        "",
        "Label URLs:",
        *(f"Package {n}: {label.label_url}" for n, label in enumerate(labels, start=1)),
        "",
        f"Packages: {len(packages)}",
        *(
            f'  Package {n}: {p.length:g}"x{p.width:g}"x{p.height:g}", {p.weight:g} lbs'
            for n, p in enumerate(packages, start=1)
        ),
        "================================",
    ]
    logger.info("\n".join(lines))


class FulfillmentService:
    """Quote and purchase flows for the packing station."""

    def __init__(
        self,
        carrier: ShippoClient,
        ledger: OrderLedger,
        printer: PrintNodeProvider,
        slip_renderer: PackingSlipRenderer,
        origin: dict,
        label_file_type: str = "PDF",
    ):
        self.carrier = carrier
        self.ledger = ledger
        self.printer = printer
        self.slip_renderer = slip_renderer
        self.origin = origin
        self.label_file_type = label_file_type
        self._background_tasks: Set[asyncio.Task] = set()

    # ==================== Quotes ====================

    async def get_quotes(self, packages: Sequence[PackageInfo], destination: Destination) -> List[AggregatedQuote]:
        """Combined quotes for service levels offered for every package."""
        shipments = await fetch_package_rates(self.carrier, packages, destination, self.origin)
        return aggregate_rates(shipments, len(packages))

    # ==================== Orders ====================

    async def lookup_order(self, order_id: str) -> Optional[OrderRecord]:
        return await self.ledger.get(order_id)

    async def purchase(
        self,
        package_rates: Sequence[PackageRateSchema],
        packages: Sequence[PackageInfo],
        destination: Destination,
        order_id: Optional[str] = None,
        selected_rate: Optional[QuoteSchema] = None,
    ) -> List[LabelResult]:
        """
        Buy one label per package.

        Raises:
            OrderValidationError: package_rates does not cover the order
            DuplicateOrderError: order_id is completed or already being purchased
            ShippingLabelError: a label purchase failed; carries the labels
                bought before the failure
        """
        validate_package_rates(package_rates, len(packages), selected_rate)

        if order_id and not await self.ledger.reserve(order_id):
            logger.warning(f"Rejected duplicate purchase for order {order_id}")
            raise DuplicateOrderError(idempotency_key=order_id)

        try:
            outcome = await purchase_labels(
                self.carrier,
                [LabelRequest(package_index=r.packageIndex, rate_id=r.rate_id) for r in package_rates],
                label_file_type=self.label_file_type,
            )

            if not outcome.succeeded:
                raise ShippingLabelError(
                    outcome.error,
                    package_index=outcome.failed_package_index,
                    completed_labels=outcome.labels,
                    details={"order_id": order_id},
                )

            if order_id:
                stored = await self.ledger.put_if_absent(order_id, build_order_record(outcome.labels, selected_rate))
                if stored:
                    logger.info(f"Order stored for pkgId: {order_id}")
                else:
                    logger.error(f"Order {order_id} was recorded by another request while this one held the claim")
        finally:
            if order_id:
                await self.ledger.release(order_id)

        self._after_purchase(destination, packages, outcome.labels, selected_rate)
        return outcome.labels

    # ==================== Background work ====================

    def _after_purchase(
        self,
        destination: Destination,
        packages: Sequence[PackageInfo],
        labels: Sequence[LabelResult],
        selected_rate: Optional[QuoteSchema],
    ) -> None:
        self._spawn(
            self.printer.print_labels([label.label_url for label in labels], destination.name),
            "print-labels",
        )
        self._spawn(self._print_packing_slip(destination, packages, labels, selected_rate), "print-packing-slip")
        try:
            log_order_details(destination, labels, packages)
        except Exception as e:
            logger.error(f"Could not log order details: {e}")

    async def _print_packing_slip(self, destination, packages, labels, selected_rate) -> None:
        if not self.printer.enabled:
            logger.info("PrintNode not configured - skipping packing slip print")
            return
        html = self.slip_renderer.render(destination, packages, labels, selected_rate)
        await self.printer.print_packing_slip(html, destination.name)

    def _spawn(self, coro: Awaitable, name: str) -> None:
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._background_tasks.add(task)
        task.add_done_callback(self._task_finished)

    def _task_finished(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background task {task.get_name()} failed: {type(error).__name__}: {error}")

    async def drain(self, timeout: float = 30.0) -> None:
        """Wait for in-flight print jobs, e.g. before shutdown."""
        if not self._background_tasks:
            return
        done, pending = await asyncio.wait(set(self._background_tasks), timeout=timeout)
        for task in pending:
            logger.warning(f"Cancelling unfinished background task {task.get_name()}")
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        await self.carrier.close()
        await self.printer.close()
        await self.ledger.close()


def create_fulfillment_service(settings: Settings) -> FulfillmentService:
    """Build the service and its clients from settings."""
    origin = settings.origin_address
    return FulfillmentService(
        carrier=get_carrier_client(settings),
        ledger=get_order_ledger(settings),
        printer=PrintNodeProvider(settings),
        slip_renderer=PackingSlipRenderer(settings.PRINT_SOURCE, origin),
        origin=origin,
        label_file_type=settings.LABEL_FILE_TYPE,
    )
