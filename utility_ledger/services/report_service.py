"""Read models for export, receipts and dashboards. Never writes."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from utility_ledger.errors import CycleNotFoundError
from utility_ledger.models.billing_cycle import BillingCycle, CycleStatus
from utility_ledger.models.payment import Payment
from utility_ledger.models.tenant import Tenant
from utility_ledger.services.ledger_service import validate_period
from utility_ledger.services.money import ZERO, quantize


@dataclass
class CycleStatement:
    """Everything a receipt for one cycle shows."""

    cycle_id: int
    tenant_id: int
    tenant_name: str
    unit_number: str
    month: int
    year: int
    previous_reading: Decimal
    current_reading: Decimal
    units_used: Decimal
    rate_per_unit: Decimal
    standing_charge: Decimal
    bill_amount: Decimal
    previous_balance: Decimal
    paid_amount: Decimal
    current_balance: Decimal
    status: CycleStatus
    bill_date: date
    due_date: date
    payments: list[Payment] = field(default_factory=list)


@dataclass
class PeriodSummary:
    """Totals across all tenants for one billing period."""

    month: int
    year: int
    cycle_count: int = 0
    total_billed: Decimal = ZERO
    total_collected: Decimal = ZERO
    total_outstanding: Decimal = ZERO
    total_credit: Decimal = ZERO


class ReportService:
    """Reporting reads over the ledger."""

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    def list_outstanding_cycles(self, tenant_id: int) -> list[BillingCycle]:
        """Cycles of a tenant with a positive balance, newest first."""
        return (
            self.db.query(BillingCycle)
            .filter(BillingCycle.tenant_id == tenant_id, BillingCycle.current_balance > 0)
            .order_by(BillingCycle.year.desc(), BillingCycle.month.desc())
            .all()
        )

    def list_cycles_for_period(self, month: int, year: int) -> list[BillingCycle]:
        """All tenants' cycles for one period, by tenant."""
        validate_period(month, year)
        return (
            self.db.query(BillingCycle)
            .filter(BillingCycle.month == month, BillingCycle.year == year)
            .order_by(BillingCycle.tenant_id)
            .all()
        )

    def cycle_statement(self, cycle_id: int) -> CycleStatement:
        """Build the statement (receipt data) for one cycle.

        Raises:
            CycleNotFoundError: If the cycle does not exist
        """
        cycle = self.db.get(BillingCycle, cycle_id)
        if cycle is None:
            raise CycleNotFoundError(cycle_id)
        tenant = self.db.get(Tenant, cycle.tenant_id)
        payments = (
            self.db.query(Payment)
            .filter(Payment.billing_cycle_id == cycle_id)
            .order_by(Payment.payment_date, Payment.id)
            .all()
        )
        return CycleStatement(
            cycle_id=cycle.id,
            tenant_id=cycle.tenant_id,
            tenant_name=tenant.name,
            unit_number=tenant.unit_number,
            month=cycle.month,
            year=cycle.year,
            previous_reading=cycle.previous_reading,
            current_reading=cycle.current_reading,
            units_used=cycle.units_used,
            rate_per_unit=cycle.rate_per_unit,
            standing_charge=cycle.standing_charge,
            bill_amount=cycle.bill_amount,
            previous_balance=cycle.previous_balance,
            paid_amount=cycle.paid_amount,
            current_balance=cycle.current_balance,
            status=cycle.status,
            bill_date=cycle.bill_date,
            due_date=cycle.due_date,
            payments=payments,
        )

    def period_summary(self, month: int, year: int) -> PeriodSummary:
        """Billed, collected, outstanding and credit totals for one period."""
        summary = PeriodSummary(month=month, year=year)
        for cycle in self.list_cycles_for_period(month, year):
            summary.cycle_count += 1
            summary.total_billed += cycle.bill_amount
            summary.total_collected += cycle.paid_amount
            if cycle.current_balance > 0:
                summary.total_outstanding += cycle.current_balance
            elif cycle.current_balance < 0:
                summary.total_credit += -cycle.current_balance

        summary.total_billed = quantize(summary.total_billed)
        summary.total_collected = quantize(summary.total_collected)
        summary.total_outstanding = quantize(summary.total_outstanding)
        summary.total_credit = quantize(summary.total_credit)
        return summary


__all__ = ["CycleStatement", "PeriodSummary", "ReportService"]
