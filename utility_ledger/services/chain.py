"""Carry-forward chain arithmetic shared by the ledger, allocator and auditor.

A tenant's cycles are handled as a plain list ordered by (year, month). Derived
fields are recomputed forward through the list; nothing here commits.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from utility_ledger.models.billing_cycle import BillingCycle
from utility_ledger.models.payment import Payment
from utility_ledger.services.money import (
    ZERO,
    calculate_bill_amount,
    calculate_current_balance,
    calculate_units_used,
    quantize,
)


class DiscrepancyKind(str, Enum):
    """Kinds of ledger inconsistency the auditor reports."""

    CHAIN_BREAK = "chain_break"
    """previous_balance differs from the preceding cycle's current_balance"""

    PAID_MISMATCH = "paid_mismatch"
    """paid_amount differs from the sum of the cycle's payments"""

    BALANCE_MISMATCH = "balance_mismatch"
    """Stored derived amounts differ from the formula"""


@dataclass(frozen=True)
class Discrepancy:
    """One inconsistency found on a cycle."""

    kind: DiscrepancyKind
    cycle_id: int
    year: int
    month: int
    expected: Decimal
    actual: Decimal

    @property
    def is_chain_break(self) -> bool:
        return self.kind == DiscrepancyKind.CHAIN_BREAK


def load_chain(db: Session, tenant_id: int) -> list[BillingCycle]:
    """All cycles of a tenant in chronological order."""
    stmt = (
        select(BillingCycle)
        .where(BillingCycle.tenant_id == tenant_id)
        .order_by(BillingCycle.year.asc(), BillingCycle.month.asc())
    )
    return list(db.execute(stmt).scalars().all())


def payment_totals(db: Session, cycle_ids: Iterable[int]) -> dict[int, Decimal]:
    """Sum of payments per cycle id (cycles without payments map to 0)."""
    ids = list(cycle_ids)
    totals = {cycle_id: ZERO for cycle_id in ids}
    if not ids:
        return totals

    stmt = (
        select(Payment.billing_cycle_id, func.coalesce(func.sum(Payment.amount), 0))
        .where(Payment.billing_cycle_id.in_(ids))
        .group_by(Payment.billing_cycle_id)
    )
    for cycle_id, total in db.execute(stmt).all():
        totals[cycle_id] = quantize(total)
    return totals


def refresh_cycle(cycle: BillingCycle, previous_balance: Decimal, paid_amount: Decimal) -> bool:
    """Recompute every derived field of one cycle.

    Returns:
        True if any stored value changed
    """
    before = (
        cycle.units_used,
        cycle.bill_amount,
        cycle.previous_balance,
        cycle.paid_amount,
        cycle.current_balance,
    )

    units_used = calculate_units_used(cycle.previous_reading, cycle.current_reading)
    bill_amount = calculate_bill_amount(units_used, cycle.rate_per_unit, cycle.standing_charge)
    previous_balance = quantize(previous_balance)
    paid_amount = quantize(paid_amount)

    cycle.units_used = units_used
    cycle.bill_amount = bill_amount
    cycle.previous_balance = previous_balance
    cycle.paid_amount = paid_amount
    cycle.current_balance = calculate_current_balance(previous_balance, bill_amount, paid_amount)

    after = (
        cycle.units_used,
        cycle.bill_amount,
        cycle.previous_balance,
        cycle.paid_amount,
        cycle.current_balance,
    )
    return before != after


def recompute_chain(
    cycles: list[BillingCycle],
    start_index: int,
    paid_totals: dict[int, Decimal],
) -> list[BillingCycle]:
    """Recompute cycles[start_index:] in order, each from its predecessor.

    Args:
        cycles: Tenant cycles in chronological order
        start_index: First cycle to recompute
        paid_totals: Payment sums keyed by cycle id

    Returns:
        Cycles whose stored values changed
    """
    changed = []
    for index in range(start_index, len(cycles)):
        cycle = cycles[index]
        previous_balance = cycles[index - 1].current_balance if index > 0 else ZERO
        if refresh_cycle(cycle, previous_balance, paid_totals.get(cycle.id, ZERO)):
            changed.append(cycle)
    return changed


def scan_chain(cycles: list[BillingCycle], paid_totals: dict[int, Decimal]) -> list[Discrepancy]:
    """Find inconsistencies in a chronologically ordered chain. Read-only."""
    discrepancies = []
    expected_previous = ZERO

    for cycle in cycles:
        if quantize(cycle.previous_balance) != expected_previous:
            discrepancies.append(
                Discrepancy(
                    kind=DiscrepancyKind.CHAIN_BREAK,
                    cycle_id=cycle.id,
                    year=cycle.year,
                    month=cycle.month,
                    expected=expected_previous,
                    actual=quantize(cycle.previous_balance),
                )
            )

        paid = paid_totals.get(cycle.id, ZERO)
        if quantize(cycle.paid_amount) != paid:
            discrepancies.append(
                Discrepancy(
                    kind=DiscrepancyKind.PAID_MISMATCH,
                    cycle_id=cycle.id,
                    year=cycle.year,
                    month=cycle.month,
                    expected=paid,
                    actual=quantize(cycle.paid_amount),
                )
            )

        units_used = calculate_units_used(cycle.previous_reading, cycle.current_reading)
        bill_amount = calculate_bill_amount(units_used, cycle.rate_per_unit, cycle.standing_charge)
        for expected, actual in ((units_used, cycle.units_used), (bill_amount, cycle.bill_amount)):
            if quantize(actual) != expected:
                discrepancies.append(
                    Discrepancy(
                        kind=DiscrepancyKind.BALANCE_MISMATCH,
                        cycle_id=cycle.id,
                        year=cycle.year,
                        month=cycle.month,
                        expected=expected,
                        actual=quantize(actual),
                    )
                )

        expected_balance = calculate_current_balance(cycle.previous_balance, bill_amount, cycle.paid_amount)
        if quantize(cycle.current_balance) != expected_balance:
            discrepancies.append(
                Discrepancy(
                    kind=DiscrepancyKind.BALANCE_MISMATCH,
                    cycle_id=cycle.id,
                    year=cycle.year,
                    month=cycle.month,
                    expected=expected_balance,
                    actual=quantize(cycle.current_balance),
                )
            )

        expected_previous = quantize(cycle.current_balance)

    return discrepancies


__all__ = [
    "Discrepancy",
    "DiscrepancyKind",
    "load_chain",
    "payment_totals",
    "refresh_cycle",
    "recompute_chain",
    "scan_chain",
]
