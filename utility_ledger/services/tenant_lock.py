"""Per-tenant serialization of ledger transactions.

Every mutating ledger operation runs through ``run_serialized``: it claims the
tenant's ``ledger_version`` with a compare-and-set UPDATE as the first write of
the transaction, runs the work, and commits. A lost claim means another writer
touched the same tenant's chain; the transaction is rolled back and the whole
operation re-run with exponential backoff. Different tenants never contend.
"""

import logging
import time
from typing import Callable, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from utility_ledger.config import settings
from utility_ledger.errors import ConcurrencyConflictError, TenantNotFoundError
from utility_ledger.models.tenant import Tenant

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StaleLedgerVersion(Exception):
    """Another transaction claimed the tenant first. Internal; triggers a retry."""

    def __init__(self, tenant_id: int, expected_version: int):
        self.tenant_id = tenant_id
        self.expected_version = expected_version
        super().__init__(f"Tenant {tenant_id} ledger moved past version {expected_version}")


def claim_tenant(db: Session, tenant_id: int) -> int:
    """Bump the tenant's ledger version if nobody else has since we read it.

    Args:
        db: Session with an open (or about to open) transaction
        tenant_id: Tenant whose chain is about to change

    Returns:
        The new ledger version held by this transaction

    Raises:
        TenantNotFoundError: If the tenant does not exist
        StaleLedgerVersion: If a concurrent transaction claimed it first
    """
    version = db.execute(
        select(Tenant.ledger_version).where(Tenant.id == tenant_id)
    ).scalar_one_or_none()
    if version is None:
        raise TenantNotFoundError(tenant_id)

    result = db.execute(
        update(Tenant)
        .where(Tenant.id == tenant_id, Tenant.ledger_version == version)
        .values(ledger_version=version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise StaleLedgerVersion(tenant_id, version)
    return version + 1


def _is_lock_contention(exc: OperationalError) -> bool:
    """SQLite reports writer contention as 'database is locked'."""
    return "locked" in str(exc.orig).lower()


def run_serialized(
    db: Session,
    tenant_id: int,
    work: Callable[[], T],
    max_attempts: int | None = None,
    backoff_seconds: float | None = None,
) -> T:
    """Run ``work`` as one committed transaction serialized on ``tenant_id``.

    ``work`` must load everything it needs itself: on retry the session has been
    rolled back and all previously loaded instances are expired.

    Args:
        db: Database session (must not hold uncommitted changes)
        tenant_id: Tenant whose chain is mutated
        work: Callable performing the reads and writes; its result is returned
        max_attempts: Attempts before giving up (default: LEDGER_MAX_RETRIES)
        backoff_seconds: Base delay, doubled per attempt (default: LEDGER_RETRY_BACKOFF)

    Returns:
        Whatever ``work`` returned, after commit

    Raises:
        ConcurrencyConflictError: If the tenant stayed contended after all attempts
        LedgerError: Any validation error raised by ``work`` (not retried)
    """
    attempts = max_attempts if max_attempts is not None else settings.ledger_max_retries
    backoff = backoff_seconds if backoff_seconds is not None else settings.ledger_retry_backoff

    for attempt in range(1, attempts + 1):
        try:
            claim_tenant(db, tenant_id)
            result = work()
            db.commit()
            return result
        except StaleLedgerVersion as e:
            db.rollback()
            logger.info(f"{e}; retrying (attempt {attempt}/{attempts})")
        except OperationalError as e:
            db.rollback()
            if not _is_lock_contention(e):
                raise
            logger.info(f"Tenant {tenant_id} ledger locked; retrying (attempt {attempt}/{attempts})")
        except Exception:
            db.rollback()
            raise

        if attempt < attempts:
            time.sleep(backoff * (2 ** (attempt - 1)))

    logger.error(f"Giving up on tenant {tenant_id} ledger after {attempts} attempts")
    raise ConcurrencyConflictError(tenant_id, attempts)


__all__ = ["StaleLedgerVersion", "claim_tenant", "run_serialized"]
