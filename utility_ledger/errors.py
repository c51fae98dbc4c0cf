"""Typed ledger errors.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer maps it to, so callers catch by type and never parse messages.
"""

from decimal import Decimal
from typing import Any, Dict

from fastapi import status


class LedgerError(Exception):
    """Base ledger error."""

    def __init__(self, message: str, code: str, http_status: int = status.HTTP_400_BAD_REQUEST):
        """Initialize error."""
        self.message = message
        self.code = code
        self.http_status = http_status
        super().__init__(message)

    def details(self) -> Dict[str, Any]:
        """Structured fields included in API error bodies."""
        return {}


class InvalidReadingError(LedgerError):
    """Current reading is below the previous one, or a reading is negative."""

    def __init__(self, previous_reading: Decimal, current_reading: Decimal, message: str | None = None):
        self.previous_reading = previous_reading
        self.current_reading = current_reading
        super().__init__(
            message
            or (
                f"Current reading ({current_reading}) cannot be less than "
                f"previous reading ({previous_reading})"
            ),
            "invalid_reading",
            status.HTTP_400_BAD_REQUEST,
        )

    def details(self) -> Dict[str, Any]:
        return {
            "previous_reading": str(self.previous_reading),
            "current_reading": str(self.current_reading),
        }


class InvalidAmountError(LedgerError):
    """Money amount is out of range (non-positive payment, negative tariff)."""

    def __init__(self, message: str, amount: Decimal | None = None):
        self.amount = amount
        super().__init__(message, "invalid_amount", status.HTTP_400_BAD_REQUEST)

    def details(self) -> Dict[str, Any]:
        return {"amount": str(self.amount) if self.amount is not None else None}


class InvalidPeriodError(LedgerError):
    """Month/year is invalid or would be inserted behind the tenant's latest cycle."""

    def __init__(self, message: str):
        super().__init__(message, "invalid_period", status.HTTP_400_BAD_REQUEST)


class InvalidTenantError(LedgerError):
    """Tenant reference is missing a required field."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Tenant {field} is required", "invalid_tenant", status.HTTP_400_BAD_REQUEST)

    def details(self) -> Dict[str, Any]:
        return {"field": self.field}


class DuplicateCycleError(LedgerError):
    """A cycle already exists for (tenant, month, year)."""

    def __init__(self, tenant_id: int, month: int, year: int, existing_cycle_id: int | None = None):
        self.tenant_id = tenant_id
        self.month = month
        self.year = year
        self.existing_cycle_id = existing_cycle_id
        super().__init__(
            f"Billing cycle for tenant {tenant_id} already exists for {year}-{month:02d}",
            "duplicate_cycle",
            status.HTTP_409_CONFLICT,
        )

    def details(self) -> Dict[str, Any]:
        return {"existing_cycle_id": self.existing_cycle_id}


class TenantNotFoundError(LedgerError):
    """Tenant is not known to the ledger."""

    def __init__(self, tenant_id: int):
        self.tenant_id = tenant_id
        super().__init__(f"Tenant {tenant_id} not found", "tenant_not_found", status.HTTP_404_NOT_FOUND)


class CycleNotFoundError(LedgerError):
    """Billing cycle does not exist, or does not belong to the given tenant."""

    def __init__(self, cycle_id: int | None, tenant_id: int | None = None, message: str | None = None):
        self.cycle_id = cycle_id
        self.tenant_id = tenant_id
        if message is None:
            message = f"Billing cycle {cycle_id} not found"
            if tenant_id is not None:
                message += f" for tenant {tenant_id}"
        super().__init__(message, "cycle_not_found", status.HTTP_404_NOT_FOUND)


class CycleInUseError(LedgerError):
    """Cycle cannot be deleted while a later cycle of the same tenant exists."""

    def __init__(self, cycle_id: int, blocking_cycle_id: int):
        self.cycle_id = cycle_id
        self.blocking_cycle_id = blocking_cycle_id
        super().__init__(
            f"Billing cycle {cycle_id} is followed by cycle {blocking_cycle_id}; "
            f"delete later cycles first",
            "cycle_in_use",
            status.HTTP_409_CONFLICT,
        )

    def details(self) -> Dict[str, Any]:
        return {"blocking_cycle_id": self.blocking_cycle_id}


class PaymentNotFoundError(LedgerError):
    """Payment does not exist."""

    def __init__(self, payment_id: int):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} not found", "payment_not_found", status.HTTP_404_NOT_FOUND)


class ConcurrencyConflictError(LedgerError):
    """Tenant chain stayed contended after all retries."""

    def __init__(self, tenant_id: int, attempts: int):
        self.tenant_id = tenant_id
        self.attempts = attempts
        super().__init__(
            f"Concurrent update on tenant {tenant_id} ledger; gave up after {attempts} attempts",
            "concurrency_conflict",
            status.HTTP_409_CONFLICT,
        )

    def details(self) -> Dict[str, Any]:
        return {"attempts": self.attempts}


__all__ = [
    "LedgerError",
    "InvalidReadingError",
    "InvalidAmountError",
    "InvalidPeriodError",
    "InvalidTenantError",
    "DuplicateCycleError",
    "TenantNotFoundError",
    "CycleNotFoundError",
    "CycleInUseError",
    "PaymentNotFoundError",
    "ConcurrencyConflictError",
]
