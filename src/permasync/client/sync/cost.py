"""Upload cost estimation and settlement selection.

This module provides:
- select_settlement(): Pure settlement rule (free / credits / native token)
- aggregate_costs(): Breakdown of a set of estimates by settlement bucket
- CostEstimator: Gathers prices and balances from the services
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from permasync.core.config import FREE_TIER_THRESHOLD
from permasync.client.sync.types import (
    Balances,
    CostBreakdown,
    CostBucket,
    CostEstimate,
    SettlementMethod,
)

if TYPE_CHECKING:
    from permasync.client.sync.interfaces import CreditsService, LedgerService

logger = logging.getLogger(__name__)

# Credits estimate used when the credits service cannot quote a price
CREDITS_FALLBACK_MARKUP = 1.1


def is_free(size: int, free_tier_threshold: int = FREE_TIER_THRESHOLD) -> bool:
    """Check if a file of this size settles for free."""
    return size < free_tier_threshold


def select_settlement(
    size: int,
    balances: Balances,
    native_cost: float,
    credits_cost: float,
    free_tier_threshold: int = FREE_TIER_THRESHOLD,
) -> CostEstimate:
    """Select the settlement method for an upload.

    Files below the free-tier threshold are free regardless of balances.
    Otherwise credits are used when the credits balance covers the credits
    price, and the native token is used as the last resort.

    Args:
        size: File size in bytes.
        balances: Current account balances.
        native_cost: Native-token price of the upload.
        credits_cost: Credits price of the upload.
        free_tier_threshold: Byte size below which uploads are free.

    Returns:
        The selected method and its price.
    """
    sufficient = balances.credits >= credits_cost

    if is_free(size, free_tier_threshold):
        method = SettlementMethod.FREE
        price = 0.0
    elif sufficient:
        method = SettlementMethod.CREDITS
        price = credits_cost
    else:
        method = SettlementMethod.NATIVE_TOKEN
        price = native_cost

    return CostEstimate(
        method=method,
        price=price,
        native_cost=native_cost,
        credits_cost=credits_cost,
        sufficient_credits=sufficient,
    )


def price_for(estimate: CostEstimate, method: SettlementMethod) -> float:
    """Price of an estimate under a given settlement method."""
    match method:
        case SettlementMethod.FREE:
            return 0.0
        case SettlementMethod.CREDITS:
            return estimate.credits_cost
        case SettlementMethod.NATIVE_TOKEN:
            return estimate.native_cost


def aggregate_costs(
    items: Iterable[tuple[CostEstimate, SettlementMethod | None]],
) -> CostBreakdown:
    """Aggregate estimates into free, credits and native-token buckets.

    Each item is routed to the method chosen at approval if there is one,
    otherwise to the method the estimate selected. Free uploads add to the
    free count and never to a total.

    Args:
        items: (estimate, chosen method or None) pairs.

    Returns:
        Count and total price per bucket.
    """
    counts = {m: 0 for m in SettlementMethod}
    totals = {m: 0.0 for m in SettlementMethod}

    for estimate, chosen in items:
        method = chosen or estimate.method
        counts[method] += 1
        totals[method] += price_for(estimate, method)

    return CostBreakdown(
        free=CostBucket(counts[SettlementMethod.FREE], 0.0),
        credits=CostBucket(counts[SettlementMethod.CREDITS], totals[SettlementMethod.CREDITS]),
        native_token=CostBucket(
            counts[SettlementMethod.NATIVE_TOKEN], totals[SettlementMethod.NATIVE_TOKEN]
        ),
    )


class CostEstimator:
    """Quotes uploads against live prices and balances."""

    def __init__(
        self,
        ledger: LedgerService,
        credits: CreditsService,
        free_tier_threshold: int = FREE_TIER_THRESHOLD,
    ) -> None:
        self._ledger = ledger
        self._credits = credits
        self._free_tier_threshold = free_tier_threshold

    @property
    def free_tier_threshold(self) -> int:
        """Byte size below which uploads are free."""
        return self._free_tier_threshold

    def balances(self) -> Balances:
        """Fetch current balances; an unreachable service counts as zero."""
        try:
            native = self._ledger.get_native_balance()
        except Exception as e:
            logger.warning(f"Could not fetch native balance: {e}")
            native = 0.0
        try:
            credits = self._credits.get_balance()
        except Exception as e:
            logger.warning(f"Could not fetch credits balance: {e}")
            credits = 0.0
        return Balances(native=native, credits=credits)

    def estimate(self, size: int, balances: Balances | None = None) -> CostEstimate:
        """Quote an upload of the given size.

        Args:
            size: File size in bytes.
            balances: Balances to check against (fetched when omitted).

        Returns:
            The selected settlement method and prices.

        Raises:
            Exception: Whatever the ledger raises when it cannot quote a
                price for a file above the free tier.
        """
        if is_free(size, self._free_tier_threshold):
            # Free uploads need no quote and no balance
            return select_settlement(
                size, Balances(native=0.0, credits=0.0), 0.0, 0.0, self._free_tier_threshold
            )

        if balances is None:
            balances = self.balances()

        native_cost = self._ledger.estimate_native_cost(size)
        try:
            credits_cost = self._credits.estimate_cost(size)
        except Exception as e:
            logger.warning(f"Credits estimate unavailable, using fallback: {e}")
            credits_cost = native_cost * CREDITS_FALLBACK_MARKUP
            # An unquoted credits price is never treated as covered
            balances = Balances(native=balances.native, credits=0.0)

        return select_settlement(
            size, balances, native_cost, credits_cost, self._free_tier_threshold
        )

    def fiat_estimate(self, size: int, currency: str = "usd") -> float:
        """Price of an upload in a fiat currency, for display."""
        return self._credits.fiat_estimate(size, currency)
