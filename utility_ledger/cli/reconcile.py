"""CLI entry point for the reconciliation job.

Audits every tenant's carry-forward chain (or one tenant's) and, with
--repair, re-runs the cascade from each tenant's first broken cycle.

Usage:
    python -m utility_ledger.cli.reconcile
    python -m utility_ledger.cli.reconcile --tenant 42 --repair

Exit Codes:
    0 - Success: every audited chain is consistent (after repair, if requested)
    1 - Failure: discrepancies remain, or an error occurred
"""

import argparse
import logging
import sys

from utility_ledger.errors import LedgerError
from utility_ledger.services.logging import setup_server_logging

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Audit and repair tenant billing chains")
    parser.add_argument("--tenant", type=int, default=None, help="Audit a single tenant ID")
    parser.add_argument(
        "--repair",
        action="store_true",
        help="Recompute broken chains from the first inconsistent cycle",
    )
    parser.add_argument("--log-file", default=None, help="Log file path (default: LOG_FILE setting)")
    return parser.parse_args(argv)


def run(db, tenant_id: int | None = None, repair: bool = False) -> int:
    """Audit (and optionally repair) using an open session.

    Returns:
        Exit code: 0 when every audited chain ends consistent, 1 otherwise
    """
    from utility_ledger.services.reconciliation_service import ReconciliationAuditor

    auditor = ReconciliationAuditor(db)
    if tenant_id is not None:
        found = auditor.audit(tenant_id)
        report = {tenant_id: found} if found else {}
    else:
        report = auditor.audit_all()

    if not report:
        logger.info("All audited billing chains are consistent")
        return 0

    for broken_tenant, discrepancies in report.items():
        for d in discrepancies:
            logger.warning(
                f"Tenant {broken_tenant} cycle {d.cycle_id} ({d.year}-{d.month:02d}): "
                f"{d.kind.value} expected={d.expected} actual={d.actual}"
            )

    if not repair:
        logger.warning(f"{len(report)} tenant(s) with discrepancies; rerun with --repair to fix")
        return 1

    remaining = 0
    for broken_tenant in report:
        auditor.repair(broken_tenant)
        if auditor.audit(broken_tenant):
            remaining += 1
            logger.error(f"Tenant {broken_tenant} still inconsistent after repair")
    logger.info(f"Repaired {len(report) - remaining} of {len(report)} tenant(s)")
    return 0 if remaining == 0 else 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the reconciliation CLI."""
    args = parse_args(argv)
    setup_server_logging(args.log_file)

    from utility_ledger.services import SessionLocal

    db = SessionLocal()
    try:
        return run(db, tenant_id=args.tenant, repair=args.repair)
    except KeyboardInterrupt:
        logger.warning("Reconciliation interrupted by user")
        return 1
    except LedgerError as e:
        logger.error(f"Reconciliation failed: {e.code}: {e.message}")
        return 1
    except Exception as e:
        logger.error(f"Reconciliation failed: {e}", exc_info=True)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
