"""Payment ORM model: funds received and allocated to one billing cycle."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Numeric, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from utility_ledger.models import Base, BaseModel


class PaymentMethod(str, Enum):
    """How the tenant paid."""

    CASH = "cash"
    MOBILE_MONEY = "mobile_money"
    BANK = "bank"
    OTHER = "other"


class Payment(Base, BaseModel):
    """Model representing a payment allocated to a billing cycle.

    The cycle's paid_amount is always recomputed as the sum of these rows.
    """

    __tablename__ = "payments"

    # Foreign keys
    tenant_id: Mapped[int] = mapped_column(
        ForeignKey("tenants.id"),
        nullable=False,
        index=True,
        comment="Tenant who made the payment",
    )
    billing_cycle_id: Mapped[int] = mapped_column(
        ForeignKey("billing_cycles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Billing cycle the payment is allocated to",
    )

    # Payment details
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Payment amount (always positive)",
    )
    payment_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
        comment="Date funds were received",
    )
    method: Mapped[PaymentMethod] = mapped_column(
        SQLEnum(PaymentMethod),
        nullable=False,
        default=PaymentMethod.CASH,
        comment="Payment method",
    )
    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Optional operator notes",
    )

    # Relationships
    billing_cycle: Mapped["BillingCycle"] = relationship(  # noqa: F821
        "BillingCycle",
        back_populates="payments",
        foreign_keys=[billing_cycle_id],
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        Index("idx_payment_tenant_date", "tenant_id", "payment_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, tenant_id={self.tenant_id}, "
            f"billing_cycle_id={self.billing_cycle_id}, amount={self.amount}, "
            f"payment_date={self.payment_date})>"
        )


__all__ = ["Payment", "PaymentMethod"]
