"""Pydantic schemas for the billing API.

Request models accept operator inputs only and forbid unknown fields, so
derived amounts (units_used, bill_amount, paid_amount, balances) can never be
supplied by a client.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from utility_ledger.models.billing_cycle import CycleStatus
from utility_ledger.models.payment import PaymentMethod
from utility_ledger.models.tenant import TenantStatus
from utility_ledger.services.chain import DiscrepancyKind
from utility_ledger.services.reading_validator import ReadingWarningKind


class TenantPayload(BaseModel):
    """Tenant reference published by the tenant directory."""

    id: int | None = Field(None, description="Directory tenant ID (assigned when omitted)")
    name: str = Field(..., min_length=1, max_length=255)
    unit_number: str = Field(..., min_length=1, max_length=50)
    meter_number: str | None = Field(None, max_length=100)
    status: TenantStatus = TenantStatus.ACTIVE

    model_config = ConfigDict(extra="forbid")


class TenantResponse(BaseModel):
    """Tenant reference."""

    id: int
    name: str
    unit_number: str
    meter_number: str | None = None
    status: TenantStatus

    model_config = ConfigDict(from_attributes=True)


class CreateCyclePayload(BaseModel):
    """Request payload for recording a new period's reading."""

    tenant_id: int
    month: int = Field(..., ge=1, le=12)
    year: int
    current_reading: Decimal = Field(..., ge=0)
    rate_per_unit: Decimal = Field(..., ge=0)
    standing_charge: Decimal = Field(Decimal("0"), ge=0)
    due_date: date
    bill_date: date | None = None

    model_config = ConfigDict(extra="forbid")


class UpdateReadingsPayload(BaseModel):
    """Reading correction."""

    previous_reading: Decimal = Field(..., ge=0)
    current_reading: Decimal = Field(..., ge=0)

    model_config = ConfigDict(extra="forbid")


class UpdateChargesPayload(BaseModel):
    """Tariff correction."""

    rate_per_unit: Decimal = Field(..., ge=0)
    standing_charge: Decimal = Field(..., ge=0)
    due_date: date | None = None

    model_config = ConfigDict(extra="forbid")


class CycleResponse(BaseModel):
    """Billing cycle with every derived field populated."""

    id: int
    tenant_id: int
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
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReadingWarningResponse(BaseModel):
    """Non-fatal reading warning."""

    kind: ReadingWarningKind
    consumption: Decimal
    message: str

    model_config = ConfigDict(from_attributes=True)


class CycleChangeResponse(BaseModel):
    """Created or corrected cycle plus reading warnings."""

    cycle: CycleResponse
    warnings: list[ReadingWarningResponse] = []


class RecordPaymentPayload(BaseModel):
    """Payment against an operator-chosen cycle."""

    tenant_id: int
    billing_cycle_id: int
    amount: Decimal
    payment_date: date
    method: PaymentMethod = PaymentMethod.CASH
    notes: str | None = None

    model_config = ConfigDict(extra="forbid")


class AutoAllocatePayload(BaseModel):
    """Payment distributed oldest-first across outstanding cycles."""

    tenant_id: int
    amount: Decimal
    payment_date: date
    method: PaymentMethod = PaymentMethod.CASH
    notes: str | None = None

    model_config = ConfigDict(extra="forbid")


class UpdatePaymentPayload(BaseModel):
    """Payment edit; omitted fields stay unchanged, a null notes clears them."""

    amount: Decimal | None = None
    payment_date: date | None = None
    method: PaymentMethod | None = None
    notes: str | None = None

    model_config = ConfigDict(extra="forbid")


class PaymentResponse(BaseModel):
    """Payment record."""

    id: int
    tenant_id: int
    billing_cycle_id: int
    amount: Decimal
    payment_date: date
    method: PaymentMethod
    notes: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DiscrepancyResponse(BaseModel):
    """Auditor finding."""

    kind: DiscrepancyKind
    cycle_id: int
    year: int
    month: int
    expected: Decimal
    actual: Decimal

    model_config = ConfigDict(from_attributes=True)


class AuditResponse(BaseModel):
    """Audit or repair result for one tenant."""

    tenant_id: int
    consistent: bool
    discrepancies: list[DiscrepancyResponse]


class StatementResponse(BaseModel):
    """Receipt data for one cycle."""

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
    payments: list[PaymentResponse]

    model_config = ConfigDict(from_attributes=True)


class PeriodSummaryResponse(BaseModel):
    """Totals for one billing period."""

    month: int
    year: int
    cycle_count: int
    total_billed: Decimal
    total_collected: Decimal
    total_outstanding: Decimal
    total_credit: Decimal

    model_config = ConfigDict(from_attributes=True)
