"""Billing cycle ORM model: one tenant's metered statement for a month."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from utility_ledger.models import Base, BaseModel


class CycleStatus(str, Enum):
    """Derived view of a cycle's closing balance. Never stored."""

    PAID = "paid"
    """Balance is exactly zero"""

    OUTSTANDING = "outstanding"
    """Tenant still owes money"""

    CREDITED = "credited"
    """Tenant paid more than billed (negative balance)"""


class BillingCycle(Base, BaseModel):
    """
    Model representing a tenant's billing cycle for one (month, year) period.

    Readings, tariff and dates are operator inputs. Every other amount is derived
    by the ledger service and must never be written by callers:

    - units_used = current_reading - previous_reading
    - bill_amount = units_used * rate_per_unit + standing_charge
    - previous_balance = current_balance of the preceding cycle (0 for the first)
    - paid_amount = sum of payments allocated to this cycle
    - current_balance = previous_balance + bill_amount - paid_amount
    """

    __tablename__ = "billing_cycles"

    # Foreign keys
    tenant_id: Mapped[int] = mapped_column(
        ForeignKey("tenants.id"),
        nullable=False,
        index=True,
        comment="Tenant this cycle bills",
    )

    # Period
    month: Mapped[int] = mapped_column(Integer, nullable=False, comment="Billing month (1-12)")
    year: Mapped[int] = mapped_column(Integer, nullable=False, comment="Billing year")

    # Meter readings
    previous_reading: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Meter reading at the start of the period",
    )
    current_reading: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Meter reading at the end of the period",
    )
    units_used: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Derived: current_reading - previous_reading",
    )

    # Tariff
    rate_per_unit: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Charge per consumed unit",
    )
    standing_charge: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Fixed charge per cycle",
    )

    # Derived money fields
    bill_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Derived: units_used * rate_per_unit + standing_charge",
    )
    previous_balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Derived: closing balance of the preceding cycle",
    )
    paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Derived: sum of payments allocated to this cycle",
    )
    current_balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Derived: previous_balance + bill_amount - paid_amount (negative = credit)",
    )

    # Dates
    bill_date: Mapped[date] = mapped_column(Date, nullable=False, comment="Date the bill was issued")
    due_date: Mapped[date] = mapped_column(Date, nullable=False, comment="Payment due date")

    # Relationships
    tenant: Mapped["Tenant"] = relationship(  # noqa: F821
        "Tenant",
        back_populates="billing_cycles",
        foreign_keys=[tenant_id],
    )
    payments: Mapped[list["Payment"]] = relationship(  # noqa: F821
        "Payment",
        back_populates="billing_cycle",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "month", "year", name="uq_billing_cycle_tenant_period"),
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_billing_cycle_month"),
        CheckConstraint("units_used >= 0", name="ck_billing_cycle_units_used"),
        Index("idx_billing_cycle_tenant_period", "tenant_id", "year", "month"),
        Index("idx_billing_cycle_period", "year", "month"),
    )

    @property
    def period_key(self) -> tuple[int, int]:
        """Chronological sort key (year, month)."""
        return (self.year, self.month)

    @property
    def status(self) -> CycleStatus:
        """Derived paid/outstanding/credited view of current_balance."""
        if self.current_balance > 0:
            return CycleStatus.OUTSTANDING
        if self.current_balance < 0:
            return CycleStatus.CREDITED
        return CycleStatus.PAID

    def __repr__(self) -> str:
        return (
            f"<BillingCycle(id={self.id}, tenant_id={self.tenant_id}, "
            f"period={self.year}-{self.month:02d}, bill_amount={self.bill_amount}, "
            f"current_balance={self.current_balance})>"
        )


__all__ = ["BillingCycle", "CycleStatus"]
