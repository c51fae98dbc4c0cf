"""Billing API endpoints.

Exposes the ledger to the operator-facing layer:
- Tenant references published by the tenant directory
- Billing cycle creation, reading/tariff corrections and deletion
- Payment recording (manual and auto-allocated), editing and deletion
- Audit, repair, statements and period summaries
"""

import logging

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from utility_ledger.api.schemas import (
    AuditResponse,
    AutoAllocatePayload,
    CreateCyclePayload,
    CycleChangeResponse,
    CycleResponse,
    DiscrepancyResponse,
    PaymentResponse,
    PeriodSummaryResponse,
    ReadingWarningResponse,
    RecordPaymentPayload,
    StatementResponse,
    TenantPayload,
    TenantResponse,
    UpdateChargesPayload,
    UpdatePaymentPayload,
    UpdateReadingsPayload,
)
from utility_ledger.services import get_db
from utility_ledger.services.ledger_service import BillingCycleLedger, CycleChange
from utility_ledger.services.payment_service import KEEP_NOTES, PaymentAllocator
from utility_ledger.services.reconciliation_service import ReconciliationAuditor
from utility_ledger.services.report_service import ReportService
from utility_ledger.services.tenant_service import TenantDirectory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/billing", tags=["billing"])


def _change_response(change: CycleChange) -> CycleChangeResponse:
    return CycleChangeResponse(
        cycle=CycleResponse.model_validate(change.cycle),
        warnings=[ReadingWarningResponse.model_validate(w) for w in change.warnings],
    )


def _audit_response(tenant_id: int, discrepancies, consistent: bool) -> AuditResponse:
    return AuditResponse(
        tenant_id=tenant_id,
        consistent=consistent,
        discrepancies=[DiscrepancyResponse.model_validate(d) for d in discrepancies],
    )


# Tenants


@router.post("/tenants", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
def register_tenant(payload: TenantPayload, db: Session = Depends(get_db)) -> TenantResponse:  # noqa: B008
    """Create or refresh a tenant reference."""
    tenant = TenantDirectory(db).register_tenant(
        name=payload.name,
        unit_number=payload.unit_number,
        meter_number=payload.meter_number,
        status=payload.status,
        tenant_id=payload.id,
    )
    return TenantResponse.model_validate(tenant)


@router.get("/tenants/{tenant_id}", response_model=TenantResponse)
def get_tenant(tenant_id: int, db: Session = Depends(get_db)) -> TenantResponse:  # noqa: B008
    """Get a tenant reference."""
    return TenantResponse.model_validate(TenantDirectory(db).get_tenant(tenant_id))


@router.get("/tenants/{tenant_id}/cycles", response_model=list[CycleResponse])
def list_tenant_cycles(
    tenant_id: int,
    outstanding_only: bool = Query(False, description="Only cycles with a positive balance"),
    db: Session = Depends(get_db),  # noqa: B008
) -> list[CycleResponse]:
    """List a tenant's billing cycles, newest first."""
    TenantDirectory(db).get_tenant(tenant_id)
    if outstanding_only:
        cycles = ReportService(db).list_outstanding_cycles(tenant_id)
    else:
        cycles = BillingCycleLedger(db).list_cycles_for_tenant(tenant_id)
    return [CycleResponse.model_validate(c) for c in cycles]


@router.get("/tenants/{tenant_id}/payments", response_model=list[PaymentResponse])
def list_tenant_payments(
    tenant_id: int,
    billing_cycle_id: int | None = Query(None),
    db: Session = Depends(get_db),  # noqa: B008
) -> list[PaymentResponse]:
    """List a tenant's payments, newest first."""
    TenantDirectory(db).get_tenant(tenant_id)
    payments = PaymentAllocator(db).list_payments(tenant_id, billing_cycle_id)
    return [PaymentResponse.model_validate(p) for p in payments]


@router.get("/tenants/{tenant_id}/audit", response_model=AuditResponse)
def audit_tenant(tenant_id: int, db: Session = Depends(get_db)) -> AuditResponse:  # noqa: B008
    """Check a tenant's carry-forward chain without changing anything."""
    TenantDirectory(db).get_tenant(tenant_id)
    discrepancies = ReconciliationAuditor(db).audit(tenant_id)
    return _audit_response(tenant_id, discrepancies, consistent=not discrepancies)


@router.post("/tenants/{tenant_id}/repair", response_model=AuditResponse)
def repair_tenant(tenant_id: int, db: Session = Depends(get_db)) -> AuditResponse:  # noqa: B008
    """Recompute a tenant's chain from the first broken cycle; returns what was fixed."""
    auditor = ReconciliationAuditor(db)
    fixed = auditor.repair(tenant_id)
    return _audit_response(tenant_id, fixed, consistent=not auditor.audit(tenant_id))


# Billing cycles


@router.post("/cycles", response_model=CycleChangeResponse, status_code=status.HTTP_201_CREATED)
def create_cycle(payload: CreateCyclePayload, db: Session = Depends(get_db)) -> CycleChangeResponse:  # noqa: B008
    """Record a meter reading for a new period."""
    change = BillingCycleLedger(db).create_cycle(
        tenant_id=payload.tenant_id,
        month=payload.month,
        year=payload.year,
        current_reading=payload.current_reading,
        rate_per_unit=payload.rate_per_unit,
        standing_charge=payload.standing_charge,
        due_date=payload.due_date,
        bill_date=payload.bill_date,
    )
    return _change_response(change)


@router.get("/cycles/{cycle_id}", response_model=CycleResponse)
def get_cycle(cycle_id: int, db: Session = Depends(get_db)) -> CycleResponse:  # noqa: B008
    """Get one billing cycle."""
    return CycleResponse.model_validate(BillingCycleLedger(db).get_cycle(cycle_id))


@router.put("/cycles/{cycle_id}/readings", response_model=CycleChangeResponse)
def update_readings(
    cycle_id: int,
    payload: UpdateReadingsPayload,
    db: Session = Depends(get_db),  # noqa: B008
) -> CycleChangeResponse:
    """Correct readings; later cycles are recomputed."""
    change = BillingCycleLedger(db).update_readings(
        cycle_id, payload.previous_reading, payload.current_reading
    )
    return _change_response(change)


@router.put("/cycles/{cycle_id}/charges", response_model=CycleResponse)
def update_charges(
    cycle_id: int,
    payload: UpdateChargesPayload,
    db: Session = Depends(get_db),  # noqa: B008
) -> CycleResponse:
    """Correct the tariff; later cycles are recomputed."""
    cycle = BillingCycleLedger(db).update_charges(
        cycle_id, payload.rate_per_unit, payload.standing_charge, payload.due_date
    )
    return CycleResponse.model_validate(cycle)


@router.delete("/cycles/{cycle_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_cycle(cycle_id: int, db: Session = Depends(get_db)) -> Response:  # noqa: B008
    """Delete the tenant's latest cycle (409 with blocking_cycle_id otherwise)."""
    BillingCycleLedger(db).delete_cycle(cycle_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/cycles/{cycle_id}/statement", response_model=StatementResponse)
def cycle_statement(cycle_id: int, db: Session = Depends(get_db)) -> StatementResponse:  # noqa: B008
    """Receipt data: charges, payments and resulting balance."""
    return StatementResponse.model_validate(ReportService(db).cycle_statement(cycle_id))


# Payments


@router.post("/payments", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
def record_payment(payload: RecordPaymentPayload, db: Session = Depends(get_db)) -> PaymentResponse:  # noqa: B008
    """Record a payment against a chosen cycle."""
    payment = PaymentAllocator(db).record_payment(
        tenant_id=payload.tenant_id,
        billing_cycle_id=payload.billing_cycle_id,
        amount=payload.amount,
        payment_date=payload.payment_date,
        method=payload.method,
        notes=payload.notes,
    )
    return PaymentResponse.model_validate(payment)


@router.post(
    "/payments/auto",
    response_model=list[PaymentResponse],
    status_code=status.HTTP_201_CREATED,
)
def record_payment_auto_allocate(
    payload: AutoAllocatePayload,
    db: Session = Depends(get_db),  # noqa: B008
) -> list[PaymentResponse]:
    """Distribute a payment oldest-first across outstanding cycles."""
    payments = PaymentAllocator(db).record_payment_auto_allocate(
        tenant_id=payload.tenant_id,
        amount=payload.amount,
        payment_date=payload.payment_date,
        method=payload.method,
        notes=payload.notes,
    )
    return [PaymentResponse.model_validate(p) for p in payments]


@router.patch("/payments/{payment_id}", response_model=PaymentResponse)
def update_payment(
    payment_id: int,
    payload: UpdatePaymentPayload,
    db: Session = Depends(get_db),  # noqa: B008
) -> PaymentResponse:
    """Edit a payment; its cycle is recomputed. An explicit null clears the notes."""
    notes = payload.notes if "notes" in payload.model_fields_set else KEEP_NOTES
    payment = PaymentAllocator(db).update_payment(
        payment_id,
        amount=payload.amount,
        payment_date=payload.payment_date,
        method=payload.method,
        notes=notes,
    )
    return PaymentResponse.model_validate(payment)


@router.delete("/payments/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_payment(payment_id: int, db: Session = Depends(get_db)) -> Response:  # noqa: B008
    """Delete a payment, reversing its effect on the cycle."""
    PaymentAllocator(db).delete_payment(payment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Reports


@router.get("/summary", response_model=PeriodSummaryResponse)
def period_summary(
    month: int = Query(..., ge=1, le=12),
    year: int = Query(...),
    db: Session = Depends(get_db),  # noqa: B008
) -> PeriodSummaryResponse:
    """Billed, collected, outstanding and credit totals for one period."""
    return PeriodSummaryResponse.model_validate(ReportService(db).period_summary(month, year))


__all__ = ["router"]
