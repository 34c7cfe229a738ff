# folio/services/valuation/fifo.py
"""
FIFO lot accounting.

Matches sells against the oldest unsold buy lots first and reports the
remaining cost basis, realized gain/loss and average buy price for one
portfolio+asset.

Ordering contract:
    Input transactions MUST be sorted ascending by (occurred_at, id).
    That ordering is the FIFO queue order; the id tie-break makes the
    result deterministic when transactions share a timestamp. Use
    fifo_order_key() when sorting in memory; TransactionLedger returns
    rows already in this order.

Money rules:
    - A buy's lot cost is its total_amount (fee-inclusive)
    - A sell's proceeds are total_amount - fee
    - Proceeds are split across consumed lots in proportion to quantity

Over-sells:
    If a sell asks for more than the open lots hold, consumption stops
    when the queue is empty. The unmatched quantity is treated as zero-cost
    inventory: its share of proceeds is realized in full. The result
    reports the shortfall in oversold_quantity/unmatched_proceeds/warnings
    so the caller can log it.

The accountant is stateless and never mutates its input, so it is safe to
re-run on every request.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from folio.models import TransactionType
from folio.services.valuation.types import CostBasisResult, OpenLot

if TYPE_CHECKING:
    from folio.models import Transaction

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


def fifo_order_key(transaction: Transaction) -> tuple[datetime, int]:
    """Sort key implementing the (occurred_at, id) FIFO contract."""
    return transaction.occurred_at, transaction.id


@dataclass
class _Lot:
    """Mutable lot used only while replaying one transaction list."""

    remaining_quantity: Decimal
    unit_cost: Decimal
    remaining_cost: Decimal


class FIFOLotAccountant:
    """
    Computes FIFO cost basis for one portfolio+asset.

    Example:
        Buy 1 BTC for 10,000, buy 1 BTC for 20,000, sell 1.5 BTC for 45,000:
        - First lot consumed fully: proceeds 30,000, cost 10,000 → +20,000
        - Second lot split 0.5: proceeds 15,000, cost 10,000 → +5,000
        - Result: realized 25,000, remaining 0.5 BTC at cost 10,000,
          avg buy price 20,000
    """

    def compute_cost_basis(self, transactions: Sequence[Transaction]) -> CostBasisResult:
        """
        Replay transactions through a FIFO lot queue.

        Args:
            transactions: Buys/sells of a single asset in a single portfolio,
                sorted by (occurred_at, id)

        Returns:
            CostBasisResult with exact (unrounded) Decimal values
        """
        lots: deque[_Lot] = deque()
        realized = _ZERO
        oversold = _ZERO
        unmatched_proceeds = _ZERO
        warnings: list[str] = []

        for txn in transactions:
            quantity = Decimal(txn.quantity)
            if quantity <= _ZERO:
                warnings.append(f"Transaction {txn.id} has non-positive quantity {quantity}; skipped")
                continue

            if txn.transaction_type == TransactionType.BUY:
                total = Decimal(txn.total_amount)
                lots.append(_Lot(
                    remaining_quantity=quantity,
                    unit_cost=total / quantity,
                    remaining_cost=total,
                ))
                continue

            proceeds = Decimal(txn.total_amount) - Decimal(txn.fee or 0)
            slice_gain, shortfall = self._consume(lots, quantity, proceeds)
            realized += slice_gain

            if shortfall > _ZERO:
                oversold += shortfall
                unmatched_share = proceeds * shortfall / quantity
                unmatched_proceeds += unmatched_share
                realized += unmatched_share
                warnings.append(
                    f"Sell {txn.id} on {txn.occurred_at} exceeds open lots by {shortfall}; "
                    f"unmatched quantity treated as zero-cost"
                )

        quantity_remaining = sum((lot.remaining_quantity for lot in lots), _ZERO)
        cost_basis = sum((lot.remaining_cost for lot in lots), _ZERO)
        avg_buy_price = cost_basis / quantity_remaining if quantity_remaining > _ZERO else _ZERO

        return CostBasisResult(
            cost_basis=cost_basis,
            realized_gain_loss=realized,
            avg_buy_price=avg_buy_price,
            quantity_remaining=quantity_remaining,
            open_lots=tuple(
                OpenLot(quantity=lot.remaining_quantity, unit_cost=lot.unit_cost, cost=lot.remaining_cost)
                for lot in lots
            ),
            oversold_quantity=oversold,
            unmatched_proceeds=unmatched_proceeds,
            warnings=tuple(warnings),
        )

    @staticmethod
    def _consume(
            lots: deque[_Lot],
            sell_quantity: Decimal,
            proceeds: Decimal,
    ) -> tuple[Decimal, Decimal]:
        """
        Consume sell_quantity from the front of the queue (mutates lots).

        Returns:
            Tuple of (realized gain of the matched slices, unmatched quantity)
        """
        to_sell = sell_quantity
        gain = _ZERO

        while to_sell > _ZERO and lots:
            lot = lots[0]

            if lot.remaining_quantity <= to_sell:
                # Whole lot consumed
                slice_proceeds = proceeds * lot.remaining_quantity / sell_quantity
                gain += slice_proceeds - lot.remaining_cost
                to_sell -= lot.remaining_quantity
                lots.popleft()
            else:
                # Split: the lot stays at the front, partially consumed
                sold_cost = lot.remaining_cost * to_sell / lot.remaining_quantity
                slice_proceeds = proceeds * to_sell / sell_quantity
                gain += slice_proceeds - sold_cost
                lot.remaining_quantity -= to_sell
                lot.remaining_cost -= sold_cost
                to_sell = _ZERO

        return gain, to_sell
