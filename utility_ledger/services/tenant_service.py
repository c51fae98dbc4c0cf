"""Tenant reference operations (mirror of the external tenant directory)."""

import logging

from sqlalchemy.orm import Session

from utility_ledger.errors import InvalidTenantError, TenantNotFoundError
from utility_ledger.models.tenant import Tenant, TenantStatus

logger = logging.getLogger(__name__)


class TenantDirectory:
    """Read access to tenant references plus the upsert the directory publishes through.

    The ledger never edits tenant identity on its own; ``register_tenant`` and
    ``set_status`` exist so the external directory can keep the mirror current.
    """

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    def find_tenant(self, tenant_id: int) -> Tenant | None:
        """Get tenant by ID, or None."""
        return self.db.get(Tenant, tenant_id)

    def get_tenant(self, tenant_id: int) -> Tenant:
        """Get tenant by ID.

        Raises:
            TenantNotFoundError: If no such tenant is mirrored
        """
        tenant = self.find_tenant(tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        return tenant

    def list_tenants(self, status: TenantStatus | None = None) -> list[Tenant]:
        """List tenants ordered by unit number, optionally filtered by status."""
        query = self.db.query(Tenant)
        if status is not None:
            query = query.filter(Tenant.status == status)
        return query.order_by(Tenant.unit_number, Tenant.id).all()

    def register_tenant(
        self,
        name: str,
        unit_number: str,
        meter_number: str | None = None,
        status: TenantStatus = TenantStatus.ACTIVE,
        tenant_id: int | None = None,
    ) -> Tenant:
        """Create or refresh a tenant reference.

        Args:
            name: Tenant full name
            unit_number: House/unit number
            meter_number: Meter connection number (optional)
            status: Active or vacated
            tenant_id: Directory ID to mirror; a new ID is assigned when omitted

        Returns:
            The stored Tenant

        Raises:
            InvalidTenantError: Blank name or unit number
        """
        if not name or not name.strip():
            raise InvalidTenantError("name")
        if not unit_number or not unit_number.strip():
            raise InvalidTenantError("unit_number")

        tenant = self.find_tenant(tenant_id) if tenant_id is not None else None
        if tenant is None:
            tenant = Tenant(id=tenant_id, ledger_version=0)
            self.db.add(tenant)
            action = "Registered"
        else:
            action = "Updated"

        tenant.name = name.strip()
        tenant.unit_number = unit_number.strip()
        tenant.meter_number = meter_number
        tenant.status = TenantStatus(status)

        self.db.commit()
        self.db.refresh(tenant)
        logger.info(f"{action} tenant reference: id={tenant.id}, unit={tenant.unit_number}")
        return tenant

    def set_status(self, tenant_id: int, status: TenantStatus) -> Tenant:
        """Mark a tenant active or vacated. Billing history is untouched."""
        tenant = self.get_tenant(tenant_id)
        tenant.status = TenantStatus(status)
        self.db.commit()
        self.db.refresh(tenant)
        logger.info(f"Tenant {tenant_id} status set to {tenant.status.value}")
        return tenant


__all__ = ["TenantDirectory"]
