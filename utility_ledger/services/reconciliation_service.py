"""Reconciliation auditor: verifies the carry-forward chain and repairs it on request."""

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from utility_ledger.models.billing_cycle import BillingCycle
from utility_ledger.services.chain import (
    Discrepancy,
    load_chain,
    payment_totals,
    recompute_chain,
    scan_chain,
)
from utility_ledger.services.tenant_lock import run_serialized

logger = logging.getLogger(__name__)


class ReconciliationAuditor:
    """Consistency checker for tenants' billing chains.

    ``audit`` never writes. ``repair`` is a separate, explicit operation that
    re-runs the cascade from the first inconsistent cycle forward.
    """

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    def audit(self, tenant_id: int) -> list[Discrepancy]:
        """Walk a tenant's cycles in chronological order and report inconsistencies.

        Args:
            tenant_id: Tenant to audit

        Returns:
            Discrepancies in chain order (empty when the chain is consistent)
        """
        cycles = load_chain(self.db, tenant_id)
        totals = payment_totals(self.db, [c.id for c in cycles])
        discrepancies = scan_chain(cycles, totals)
        if discrepancies:
            logger.warning(f"Audit of tenant {tenant_id}: {len(discrepancies)} discrepancy(ies)")
        else:
            logger.debug(f"Audit of tenant {tenant_id}: chain consistent ({len(cycles)} cycles)")
        return discrepancies

    def audit_all(self) -> dict[int, list[Discrepancy]]:
        """Audit every tenant that has billing cycles.

        Returns:
            Dict mapping tenant_id to its discrepancies (consistent tenants omitted)
        """
        tenant_ids = self.db.execute(
            select(BillingCycle.tenant_id).distinct().order_by(BillingCycle.tenant_id)
        ).scalars().all()

        report = {}
        for tenant_id in tenant_ids:
            discrepancies = self.audit(tenant_id)
            if discrepancies:
                report[tenant_id] = discrepancies
        return report

    def repair(self, tenant_id: int) -> list[Discrepancy]:
        """Recompute the chain from the first inconsistent cycle forward.

        The scan and the rewrite happen inside one serialized transaction, so
        the repair acts on the chain as it is when the tenant is claimed.

        Args:
            tenant_id: Tenant to repair

        Returns:
            The discrepancies that were found and fixed (empty if none)

        Raises:
            TenantNotFoundError: Unknown tenant
            ConcurrencyConflictError: Tenant stayed contended after retries
        """

        def work() -> list[Discrepancy]:
            cycles = load_chain(self.db, tenant_id)
            totals = payment_totals(self.db, [c.id for c in cycles])
            discrepancies = scan_chain(cycles, totals)
            if not discrepancies:
                return []

            broken_ids = {d.cycle_id for d in discrepancies}
            start = next(i for i, cycle in enumerate(cycles) if cycle.id in broken_ids)
            changed = recompute_chain(cycles, start, totals)
            self.db.flush()
            logger.warning(
                f"Repaired tenant {tenant_id} chain from cycle {cycles[start].id} "
                f"({cycles[start].year}-{cycles[start].month:02d}); {len(changed)} cycle(s) rewritten"
            )
            return discrepancies

        return run_serialized(self.db, tenant_id, work)


__all__ = ["ReconciliationAuditor"]
