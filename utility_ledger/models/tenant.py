"""Tenant reference model mirrored from the external tenant directory."""

from enum import Enum

from sqlalchemy import Enum as SQLEnum
from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from utility_ledger.models import Base, BaseModel


class TenantStatus(str, Enum):
    """Occupancy status of a tenant."""

    ACTIVE = "active"
    VACATED = "vacated"


class Tenant(Base, BaseModel):
    """Read-only reference to a tenant owned by the tenant directory.

    The ledger only needs identity and meter metadata. ``ledger_version`` is
    claimed by every mutating ledger transaction on this tenant, which
    serializes concurrent writers on the same tenant's cycle chain.
    """

    __tablename__ = "tenants"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Tenant full name",
    )
    unit_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment="House/unit number the tenant occupies",
    )
    meter_number: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        comment="Meter connection number",
    )
    status: Mapped[TenantStatus] = mapped_column(
        SQLEnum(TenantStatus),
        nullable=False,
        default=TenantStatus.ACTIVE,
        comment="Tenant status (active or vacated)",
    )
    ledger_version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Optimistic concurrency counter for the tenant's billing chain",
    )

    # Relationships
    billing_cycles: Mapped[list["BillingCycle"]] = relationship(  # noqa: F821
        "BillingCycle",
        back_populates="tenant",
    )

    def __repr__(self) -> str:
        return (
            f"<Tenant(id={self.id}, name={self.name}, unit_number={self.unit_number}, "
            f"status={self.status})>"
        )


__all__ = ["Tenant", "TenantStatus"]
