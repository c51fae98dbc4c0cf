"""Billing cycle ledger: creates cycles from meter readings and keeps the
carry-forward chain consistent through corrections and deletions.

Every write goes through ``run_serialized`` so a tenant's chain is only ever
changed by one transaction at a time, and a failed cascade leaves the
previously committed chain untouched.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import NamedTuple

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from utility_ledger.errors import (
    CycleInUseError,
    CycleNotFoundError,
    DuplicateCycleError,
    InvalidAmountError,
    InvalidPeriodError,
)
from utility_ledger.models.billing_cycle import BillingCycle
from utility_ledger.services.chain import load_chain, payment_totals, recompute_chain, refresh_cycle
from utility_ledger.services.events import CycleCreated, EventPublisher
from utility_ledger.services.events import publisher as default_publisher
from utility_ledger.services.money import ZERO, quantize, to_decimal
from utility_ledger.services.reading_validator import MeterReadingValidator, ReadingWarning
from utility_ledger.services.tenant_lock import run_serialized

logger = logging.getLogger(__name__)

MIN_YEAR = 2000
MAX_YEAR = 2100


class CycleChange(NamedTuple):
    """A created or corrected cycle with the reading warnings it raised."""

    cycle: BillingCycle
    warnings: list[ReadingWarning]


def validate_period(month: int, year: int) -> None:
    """Reject months outside 1-12 and implausible years."""
    if not 1 <= month <= 12:
        raise InvalidPeriodError(f"Month must be between 1 and 12, got {month}")
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise InvalidPeriodError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}, got {year}")


def validate_tariff(rate_per_unit, standing_charge) -> tuple[Decimal, Decimal]:
    """Quantize tariff amounts and reject negatives."""
    for amount in (to_decimal(rate_per_unit), to_decimal(standing_charge)):
        if not amount.is_finite():
            raise InvalidAmountError("Tariff amounts must be finite numbers", amount)
    rate = quantize(rate_per_unit)
    standing = quantize(standing_charge)
    if rate < 0:
        raise InvalidAmountError("Rate per unit cannot be negative", rate)
    if standing < 0:
        raise InvalidAmountError("Standing charge cannot be negative", standing)
    return rate, standing


class BillingCycleLedger:
    """Service for billing cycle operations."""

    def __init__(
        self,
        db: Session,
        validator: MeterReadingValidator | None = None,
        publisher: EventPublisher | None = None,
    ):
        """Initialize ledger.

        Args:
            db: SQLAlchemy session
            validator: Reading validator (default: threshold from settings)
            publisher: Event publisher (default: process-wide publisher)
        """
        self.db = db
        self.validator = validator or MeterReadingValidator()
        self.publisher = publisher or default_publisher

    # Reads

    def find_cycle(self, cycle_id: int) -> BillingCycle | None:
        """Get billing cycle by ID, or None."""
        return self.db.get(BillingCycle, cycle_id)

    def get_cycle(self, cycle_id: int) -> BillingCycle:
        """Get billing cycle by ID.

        Raises:
            CycleNotFoundError: If the cycle does not exist
        """
        cycle = self.find_cycle(cycle_id)
        if cycle is None:
            raise CycleNotFoundError(cycle_id)
        return cycle

    def list_cycles_for_tenant(self, tenant_id: int, descending: bool = True) -> list[BillingCycle]:
        """List a tenant's cycles by (year, month), newest first by default."""
        if descending:
            order = (BillingCycle.year.desc(), BillingCycle.month.desc())
        else:
            order = (BillingCycle.year.asc(), BillingCycle.month.asc())
        stmt = select(BillingCycle).where(BillingCycle.tenant_id == tenant_id).order_by(*order)
        return list(self.db.execute(stmt).scalars().all())

    def latest_cycle(self, tenant_id: int) -> BillingCycle | None:
        """Most recent cycle of a tenant by (year, month)."""
        stmt = (
            select(BillingCycle)
            .where(BillingCycle.tenant_id == tenant_id)
            .order_by(desc(BillingCycle.year), desc(BillingCycle.month))
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    # Writes

    def create_cycle(
        self,
        tenant_id: int,
        month: int,
        year: int,
        current_reading,
        rate_per_unit,
        standing_charge,
        due_date: date,
        bill_date: date | None = None,
    ) -> CycleChange:
        """Record a meter reading for a new period.

        The previous reading and opening balance come from the tenant's latest
        cycle (both 0 for a first cycle). Cycles are appended in chronological
        order only.

        Args:
            tenant_id: Tenant being billed
            month: Billing month (1-12)
            year: Billing year
            current_reading: Meter reading at the end of the period
            rate_per_unit: Charge per unit consumed
            standing_charge: Fixed charge for the cycle
            due_date: Payment due date
            bill_date: Issue date (default: first day of the billed period)

        Returns:
            CycleChange with the committed cycle and reading warnings

        Raises:
            TenantNotFoundError: Unknown tenant
            InvalidPeriodError: Bad month/year or a period before the latest cycle
            InvalidAmountError: Negative tariff
            DuplicateCycleError: Cycle already exists for the period
            InvalidReadingError: Current reading below the previous reading
            ConcurrencyConflictError: Tenant stayed contended after retries
        """
        validate_period(month, year)
        rate, standing = validate_tariff(rate_per_unit, standing_charge)
        reading = to_decimal(current_reading)
        issued = bill_date or date(year, month, 1)

        def work() -> CycleChange:
            existing = (
                self.db.query(BillingCycle)
                .filter_by(tenant_id=tenant_id, month=month, year=year)
                .first()
            )
            if existing:
                raise DuplicateCycleError(tenant_id, month, year, existing.id)

            latest = self.latest_cycle(tenant_id)
            if latest is not None and (year, month) < latest.period_key:
                raise InvalidPeriodError(
                    f"Cannot create {year}-{month:02d} for tenant {tenant_id}: "
                    f"latest cycle is {latest.year}-{latest.month:02d}"
                )

            previous_reading = latest.current_reading if latest else ZERO
            previous_balance = latest.current_balance if latest else ZERO
            check = self.validator.validate(previous_reading, reading)

            cycle = BillingCycle(
                tenant_id=tenant_id,
                month=month,
                year=year,
                previous_reading=quantize(previous_reading),
                current_reading=quantize(reading),
                rate_per_unit=rate,
                standing_charge=standing,
                bill_date=issued,
                due_date=due_date,
            )
            refresh_cycle(cycle, previous_balance, ZERO)
            self.db.add(cycle)
            self.db.flush()
            return CycleChange(cycle, check.warnings)

        change = run_serialized(self.db, tenant_id, work)
        cycle = change.cycle
        logger.info(
            f"Created billing cycle: tenant_id={tenant_id}, period={year}-{month:02d}, "
            f"cycle_id={cycle.id}, bill_amount={cycle.bill_amount}, balance={cycle.current_balance}"
        )
        self.publisher.publish(
            CycleCreated(tenant_id=tenant_id, cycle_id=cycle.id, bill_amount=cycle.bill_amount)
        )
        return change

    def update_readings(self, cycle_id: int, previous_reading, current_reading) -> CycleChange:
        """Correct a cycle's readings and cascade balances to later cycles.

        Later cycles of the tenant get their previous_balance and
        current_balance recomputed in chronological order within the same
        transaction. Running the same correction twice changes nothing.

        Raises:
            InvalidReadingError: Readings go backwards (nothing is written)
            CycleNotFoundError: Unknown cycle
            ConcurrencyConflictError: Tenant stayed contended after retries
        """
        check = self.validator.validate(previous_reading, current_reading)
        previous = quantize(previous_reading)
        current = quantize(current_reading)

        def apply(cycle: BillingCycle) -> None:
            cycle.previous_reading = previous
            cycle.current_reading = current

        cycle = self._correct(cycle_id, apply, "readings")
        return CycleChange(cycle, check.warnings)

    def update_charges(
        self,
        cycle_id: int,
        rate_per_unit,
        standing_charge,
        due_date: date | None = None,
    ) -> BillingCycle:
        """Correct a cycle's tariff (and optionally due date) and cascade.

        Raises:
            InvalidAmountError: Negative tariff
            CycleNotFoundError: Unknown cycle
            ConcurrencyConflictError: Tenant stayed contended after retries
        """
        rate, standing = validate_tariff(rate_per_unit, standing_charge)

        def apply(cycle: BillingCycle) -> None:
            cycle.rate_per_unit = rate
            cycle.standing_charge = standing
            if due_date is not None:
                cycle.due_date = due_date

        return self._correct(cycle_id, apply, "charges")

    def delete_cycle(self, cycle_id: int) -> None:
        """Delete a cycle and its payments.

        Only the tenant's latest cycle may be deleted; relinking later cycles
        would silently rewrite financial history.

        Raises:
            CycleNotFoundError: Unknown cycle
            CycleInUseError: A later cycle exists (carries its id)
        """
        tenant_id = self.get_cycle(cycle_id).tenant_id

        def work() -> None:
            cycles = load_chain(self.db, tenant_id)
            index = _index_of(cycles, cycle_id)
            if index < len(cycles) - 1:
                raise CycleInUseError(cycle_id, cycles[index + 1].id)
            self.db.delete(cycles[index])
            self.db.flush()

        run_serialized(self.db, tenant_id, work)
        logger.info(f"Deleted billing cycle {cycle_id} (tenant_id={tenant_id})")

    def _correct(self, cycle_id: int, apply, what: str) -> BillingCycle:
        """Apply an input correction to one cycle and recompute it and every later cycle."""
        tenant_id = self.get_cycle(cycle_id).tenant_id

        def work() -> tuple[BillingCycle, int]:
            cycles = load_chain(self.db, tenant_id)
            index = _index_of(cycles, cycle_id)
            apply(cycles[index])
            totals = payment_totals(self.db, [c.id for c in cycles])
            changed = recompute_chain(cycles, index, totals)
            self.db.flush()
            return cycles[index], len(changed)

        cycle, changed_count = run_serialized(self.db, tenant_id, work)
        logger.info(
            f"Updated {what} for cycle {cycle_id} (tenant_id={tenant_id}); "
            f"{changed_count} cycle(s) recomputed"
        )
        return cycle


def _index_of(cycles: list[BillingCycle], cycle_id: int) -> int:
    for index, cycle in enumerate(cycles):
        if cycle.id == cycle_id:
            return index
    raise CycleNotFoundError(cycle_id)


__all__ = [
    "BillingCycleLedger",
    "CycleChange",
    "validate_period",
    "validate_tariff",
]
