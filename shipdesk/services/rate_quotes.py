"""
Per-package rate quoting.

Creates one Shippo shipment per package, all packages at once, and waits for
every one of them before anything is aggregated.
"""
import asyncio
import logging
from typing import Any, Dict, List, Sequence

from shipdesk.core.exceptions import ShippingQuoteError
from shipdesk.schemas.fulfillment import Destination, PackageInfo
from shipdesk.services.carrier_client import CarrierAPIError, ShippoClient, ShippoParcel
from shipdesk.services.rate_aggregator import PackageOffers

logger = logging.getLogger(__name__)


async def _quote_package(
    client: ShippoClient,
    index: int,
    package: PackageInfo,
    address_from: Dict[str, Any],
    address_to: Dict[str, Any],
) -> PackageOffers:
    parcel = ShippoParcel(
        length=package.length,
        width=package.width,
        height=package.height,
        weight=package.weight,
    )
    try:
        shipment = await client.create_shipment(address_from, address_to, parcel)
    except CarrierAPIError as e:
        if e.code == "SHIPMENT_FAILED":
            message = e.details.get("detail")
        else:
            message = e.message
        raise ShippingQuoteError(
            message or f"Failed to create shipment for package {index + 1}",
            package_index=index,
            details={"carrier_code": e.code, "status_code": e.status_code},
        ) from e

    return PackageOffers(package_index=index, shipment_id=shipment.shipment_id, rates=shipment.rates)


async def fetch_package_rates(
    client: ShippoClient,
    packages: Sequence[PackageInfo],
    destination: Destination,
    origin: Dict[str, Any],
) -> List[PackageOffers]:
    """
    Quote every package concurrently.

    Fails fast: the first package that cannot be quoted raises
    ShippingQuoteError and the other in-flight requests are cancelled.
    """
    address_to = destination.to_shippo_format()
    tasks = [
        asyncio.create_task(_quote_package(client, index, package, origin, address_to))
        for index, package in enumerate(packages)
    ]

    try:
        results = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    logger.info(f"Created {len(results)} shipments for {destination.city}, {destination.state}")
    return list(results)
