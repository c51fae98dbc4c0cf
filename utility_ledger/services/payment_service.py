"""Payment allocator: applies payments to billing cycles.

Provides methods for:
- Recording a payment against an operator-chosen cycle
- Auto-allocating a payment oldest-first across outstanding cycles
- Editing and deleting payments (reversing their effect exactly)

A payment changes its cycle's paid_amount and current_balance. When later
cycles exist their balances are carried forward from that cycle, the same way
a reading correction cascades, so every opening balance keeps matching the
previous closing balance.
"""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from utility_ledger.errors import CycleNotFoundError, InvalidAmountError, PaymentNotFoundError
from utility_ledger.models.billing_cycle import BillingCycle
from utility_ledger.models.payment import Payment, PaymentMethod
from utility_ledger.services.chain import load_chain, payment_totals, recompute_chain
from utility_ledger.services.events import EventPublisher, PaymentRecorded
from utility_ledger.services.events import publisher as default_publisher
from utility_ledger.services.money import ZERO, quantize, to_decimal
from utility_ledger.services.tenant_lock import run_serialized

logger = logging.getLogger(__name__)

# Default for update_payment notes: leave unchanged (None clears them)
KEEP_NOTES = object()


def validate_amount(amount) -> Decimal:
    """Quantize a payment amount and reject non-positive values."""
    value = to_decimal(amount)
    if not value.is_finite():
        logger.warning(f"Invalid payment amount: {amount}")
        raise InvalidAmountError("Payment amount must be a finite number", value)
    value = quantize(value)
    if value <= ZERO:
        logger.warning(f"Invalid payment amount: {amount}")
        raise InvalidAmountError("Payment amount must be positive", value)
    return value


class PaymentAllocator:
    """Core payment operations service."""

    def __init__(self, db: Session, publisher: EventPublisher | None = None):
        """Initialize payment allocator.

        Args:
            db: SQLAlchemy database session
            publisher: Event publisher (default: process-wide publisher)
        """
        self.db = db
        self.publisher = publisher or default_publisher

    def get_payment(self, payment_id: int) -> Payment:
        """Get payment by ID.

        Raises:
            PaymentNotFoundError: If the payment does not exist
        """
        payment = self.db.get(Payment, payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment

    def list_payments(self, tenant_id: int, billing_cycle_id: int | None = None) -> list[Payment]:
        """List a tenant's payments, newest first, optionally for one cycle."""
        query = self.db.query(Payment).filter(Payment.tenant_id == tenant_id)
        if billing_cycle_id is not None:
            query = query.filter(Payment.billing_cycle_id == billing_cycle_id)
        return query.order_by(Payment.payment_date.desc(), Payment.id.desc()).all()

    def record_payment(
        self,
        tenant_id: int,
        billing_cycle_id: int,
        amount,
        payment_date: date,
        method: PaymentMethod = PaymentMethod.CASH,
        notes: str | None = None,
    ) -> Payment:
        """Record a payment against a specific billing cycle.

        Paying more than the cycle's balance leaves a negative balance (credit).

        Args:
            tenant_id: Tenant who paid
            billing_cycle_id: Cycle the payment is allocated to
            amount: Amount received (> 0)
            payment_date: Date funds were received
            method: Payment method
            notes: Optional notes

        Returns:
            Committed Payment

        Raises:
            InvalidAmountError: amount <= 0
            CycleNotFoundError: Cycle missing or owned by another tenant
            TenantNotFoundError: Unknown tenant
            ConcurrencyConflictError: Tenant stayed contended after retries
        """
        value = validate_amount(amount)
        method = PaymentMethod(method)

        def work() -> tuple[Payment, BillingCycle]:
            cycle = self._cycle_for_tenant(tenant_id, billing_cycle_id)
            payment = Payment(
                tenant_id=tenant_id,
                billing_cycle_id=cycle.id,
                amount=value,
                payment_date=payment_date,
                method=method,
                notes=notes,
            )
            self.db.add(payment)
            self.db.flush()
            self._carry_forward(tenant_id, {cycle.id})
            return payment, cycle

        payment, cycle = run_serialized(self.db, tenant_id, work)
        logger.info(
            f"Recorded payment: tenant_id={tenant_id}, cycle_id={cycle.id}, amount={value}, "
            f"payment_id={payment.id}, balance={cycle.current_balance}"
        )
        self._announce([payment], {cycle.id: cycle})
        return payment

    def record_payment_auto_allocate(
        self,
        tenant_id: int,
        amount,
        payment_date: date,
        method: PaymentMethod = PaymentMethod.CASH,
        notes: str | None = None,
    ) -> list[Payment]:
        """Distribute a payment oldest-first across outstanding cycles.

        Each cycle still owing after the earlier portions is paid down to zero in
        (year, month) order until the amount runs out, one Payment per cycle touched. Whatever
        is left after every outstanding cycle is cleared is credited to the most
        recent cycle (folded into its payment if that cycle was already touched).

        Returns:
            Committed payments in allocation order

        Raises:
            InvalidAmountError: amount <= 0
            CycleNotFoundError: Tenant has no billing cycles
            TenantNotFoundError: Unknown tenant
            ConcurrencyConflictError: Tenant stayed contended after retries
        """
        value = validate_amount(amount)
        method = PaymentMethod(method)

        def work() -> tuple[list[Payment], dict[int, BillingCycle]]:
            cycles = load_chain(self.db, tenant_id)
            if not cycles:
                raise CycleNotFoundError(
                    None, tenant_id, f"Tenant {tenant_id} has no billing cycles to allocate to"
                )

            allocations = plan_allocation(cycles, value)
            payments = []
            touched = {}
            for cycle, portion in allocations:
                payment = Payment(
                    tenant_id=tenant_id,
                    billing_cycle_id=cycle.id,
                    amount=portion,
                    payment_date=payment_date,
                    method=method,
                    notes=notes,
                )
                self.db.add(payment)
                payments.append(payment)
                touched[cycle.id] = cycle
            self.db.flush()

            self._carry_forward(tenant_id, touched.keys())
            return payments, touched

        payments, touched = run_serialized(self.db, tenant_id, work)
        logger.info(
            f"Auto-allocated payment: tenant_id={tenant_id}, amount={value}, "
            f"cycles={[p.billing_cycle_id for p in payments]}"
        )
        self._announce(payments, touched)
        return payments

    def update_payment(
        self,
        payment_id: int,
        amount=None,
        payment_date: date | None = None,
        method: PaymentMethod | None = None,
        notes=KEEP_NOTES,
    ) -> Payment:
        """Edit a payment and recompute its cycle.

        Only the given fields change; passing ``notes=None`` clears the notes.
        The target cycle cannot be changed; delete and re-record to move a
        payment.

        Raises:
            PaymentNotFoundError: Unknown payment
            InvalidAmountError: New amount <= 0
        """
        value = validate_amount(amount) if amount is not None else None
        new_method = PaymentMethod(method) if method is not None else None
        tenant_id = self.get_payment(payment_id).tenant_id

        def work() -> Payment:
            payment = self.db.get(Payment, payment_id)
            if payment is None:
                raise PaymentNotFoundError(payment_id)
            if value is not None:
                payment.amount = value
            if payment_date is not None:
                payment.payment_date = payment_date
            if new_method is not None:
                payment.method = new_method
            if notes is not KEEP_NOTES:
                payment.notes = notes
            self.db.flush()
            self._carry_forward(tenant_id, {payment.billing_cycle_id})
            return payment

        payment = run_serialized(self.db, tenant_id, work)
        logger.info(f"Updated payment {payment_id} (cycle_id={payment.billing_cycle_id})")
        return payment

    def delete_payment(self, payment_id: int) -> None:
        """Delete a payment, restoring its cycle's paid_amount and balance.

        Raises:
            PaymentNotFoundError: Unknown payment
        """
        tenant_id = self.get_payment(payment_id).tenant_id

        def work() -> int:
            payment = self.db.get(Payment, payment_id)
            if payment is None:
                raise PaymentNotFoundError(payment_id)
            cycle_id = payment.billing_cycle_id
            self.db.delete(payment)
            self.db.flush()
            self._carry_forward(tenant_id, {cycle_id})
            return cycle_id

        cycle_id = run_serialized(self.db, tenant_id, work)
        logger.info(f"Deleted payment {payment_id} (tenant_id={tenant_id}, cycle_id={cycle_id})")

    def _cycle_for_tenant(self, tenant_id: int, billing_cycle_id: int) -> BillingCycle:
        cycle = self.db.get(BillingCycle, billing_cycle_id)
        if cycle is None or cycle.tenant_id != tenant_id:
            raise CycleNotFoundError(billing_cycle_id, tenant_id)
        return cycle

    def _carry_forward(self, tenant_id: int, cycle_ids) -> None:
        """Recompute paid amounts from payment rows, from the earliest touched cycle onward."""
        cycles = load_chain(self.db, tenant_id)
        ids = set(cycle_ids)
        start = next(i for i, cycle in enumerate(cycles) if cycle.id in ids)
        totals = payment_totals(self.db, [c.id for c in cycles])
        recompute_chain(cycles, start, totals)
        self.db.flush()

    def _announce(self, payments: list[Payment], cycles: dict[int, BillingCycle]) -> None:
        for payment in payments:
            self.publisher.publish(
                PaymentRecorded(
                    tenant_id=payment.tenant_id,
                    cycle_id=payment.billing_cycle_id,
                    payment_id=payment.id,
                    amount=payment.amount,
                    resulting_balance=cycles[payment.billing_cycle_id].current_balance,
                )
            )


def plan_allocation(cycles: list[BillingCycle], amount: Decimal) -> list[tuple[BillingCycle, Decimal]]:
    """Split ``amount`` over chronologically ordered cycles, oldest first.

    Balances are cumulative: whatever is allocated to an earlier cycle also
    comes off every later balance once carried forward, so each cycle is only
    offered what remains of its balance after the earlier portions.

    Returns:
        (cycle, portion) pairs, at most one per cycle, portions summing to amount
    """
    remaining = quantize(amount)
    allocated = ZERO
    allocations: list[list] = []

    for cycle in cycles:
        if remaining <= ZERO:
            break
        balance = quantize(cycle.current_balance) - allocated
        if balance <= ZERO:
            continue
        portion = min(remaining, balance)
        allocations.append([cycle, portion])
        remaining -= portion
        allocated += portion

    if remaining > ZERO:
        latest = cycles[-1]
        if allocations and allocations[-1][0] is latest:
            allocations[-1][1] += remaining
        else:
            allocations.append([latest, remaining])

    return [(cycle, quantize(portion)) for cycle, portion in allocations]


__all__ = ["KEEP_NOTES", "PaymentAllocator", "plan_allocation", "validate_amount"]
