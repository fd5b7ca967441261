"""
Combine per-package rate offers into whole-order quotes.

Every package is its own Shippo shipment, so each carrier service level is
quoted once per package. A service level is only offered to the operator when
every package in the order was quoted for it; partial quotes are dropped.
"""
import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Dict, List, NamedTuple, Optional, Sequence

from shipdesk.services.carrier_client import ShippoRateOffer

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class ServiceLevelKey(NamedTuple):
    """Grouping key; a tuple, so provider names containing '-' cannot collide."""
    provider: str
    token: str

    @property
    def display(self) -> str:
        return f"{self.provider}-{self.token}"


@dataclass(frozen=True)
class PackageRate:
    """One package's share of an aggregated quote."""
    package_index: int
    rate_id: str
    amount: str
    currency: str = "USD"


@dataclass(frozen=True)
class PackageOffers:
    """All rate offers Shippo returned for one package's shipment."""
    package_index: int
    shipment_id: str
    rates: Sequence[ShippoRateOffer] = ()


@dataclass
class AggregatedQuote:
    """A service level priced for the whole order."""
    key: ServiceLevelKey
    servicelevel_name: str
    estimated_days: Optional[int]
    amount: str
    currency: str
    package_rates: List[PackageRate] = field(default_factory=list)

    @property
    def provider(self) -> str:
        return self.key.provider

    @property
    def servicelevel_token(self) -> str:
        return self.key.token


@dataclass
class _Accumulator:
    first: ShippoRateOffer
    total: Decimal = Decimal("0")
    package_rates: List[PackageRate] = field(default_factory=list)
    packages_seen: set = field(default_factory=set)


def format_amount(value: Decimal) -> str:
    """Two decimal places, half-up (what the operator sees and is charged)."""
    return str(value.quantize(CENTS, rounding=ROUND_HALF_UP))


def aggregate_rates(shipments: Sequence[PackageOffers], package_count: int) -> List[AggregatedQuote]:
    """
    Merge per-package offers into quotes available for every package.

    Args:
        shipments: One PackageOffers per package, any order
        package_count: Number of packages in the order

    Returns:
        Quotes in first-seen order; empty when no service level covers
        every package.
    """
    groups: Dict[ServiceLevelKey, _Accumulator] = {}

    for shipment in shipments:
        for offer in shipment.rates:
            try:
                amount = Decimal(offer.amount)
            except (InvalidOperation, TypeError):
                logger.warning(
                    f"Skipping {offer.provider} {offer.servicelevel_token} rate {offer.rate_id} "
                    f"for package {shipment.package_index + 1}: bad amount {offer.amount!r}"
                )
                continue

            key = ServiceLevelKey(offer.provider, offer.servicelevel_token)
            group = groups.get(key)
            if group is None:
                group = groups[key] = _Accumulator(first=offer)

            # A carrier repeating a service level within one shipment must not
            # make a partial quote look complete.
            if shipment.package_index in group.packages_seen:
                logger.debug(f"Duplicate {key.display} offer for package {shipment.package_index + 1} ignored")
                continue

            group.packages_seen.add(shipment.package_index)
            group.total += amount
            group.package_rates.append(PackageRate(
                package_index=shipment.package_index,
                rate_id=offer.rate_id,
                amount=offer.amount,
                currency=offer.currency,
            ))

    quotes = []
    for key, group in groups.items():
        if len(group.package_rates) != package_count:
            continue
        quotes.append(AggregatedQuote(
            key=key,
            servicelevel_name=group.first.servicelevel_name,
            estimated_days=group.first.estimated_days,
            amount=format_amount(group.total),
            currency=group.first.currency,
            package_rates=sorted(group.package_rates, key=lambda r: r.package_index),
        ))

    logger.info(f"Aggregated {len(groups)} service levels into {len(quotes)} complete quotes for {package_count} packages")
    return quotes
