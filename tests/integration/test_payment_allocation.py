"""Integration tests for recording, editing and deleting payments."""

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from utility_ledger.errors import CycleNotFoundError, InvalidAmountError, PaymentNotFoundError, TenantNotFoundError
from utility_ledger.models.billing_cycle import BillingCycle, CycleStatus
from utility_ledger.models.payment import Payment, PaymentMethod
from utility_ledger.services.events import PaymentRecorded


@pytest.fixture
def jan(tenant, make_cycle):
    """Jan 0->10: bill 600, unpaid."""
    return make_cycle(tenant.id, 1, 10)


class TestRecordPayment:
    """Manual allocation to a chosen cycle."""

    def test_full_payment_settles_cycle(self, allocator, tenant, jan):
        payment = allocator.record_payment(tenant.id, jan.id, Decimal("600"), date(2025, 1, 20))

        assert payment.id is not None
        assert payment.method == PaymentMethod.CASH
        assert jan.paid_amount == Decimal("600")
        assert jan.current_balance == Decimal("0")
        assert jan.status == CycleStatus.PAID

    def test_partial_payments_accumulate(self, allocator, tenant, jan):
        allocator.record_payment(tenant.id, jan.id, Decimal("200"), date(2025, 1, 10))
        allocator.record_payment(
            tenant.id, jan.id, Decimal("150.50"), date(2025, 1, 15), method=PaymentMethod.MOBILE_MONEY
        )

        assert jan.paid_amount == Decimal("350.50")
        assert jan.current_balance == Decimal("249.50")
        assert jan.status == CycleStatus.OUTSTANDING

    def test_overpayment_becomes_credit(self, allocator, tenant, jan):
        allocator.record_payment(tenant.id, jan.id, Decimal("700"), date(2025, 1, 20))

        assert jan.current_balance == Decimal("-100")
        assert jan.status == CycleStatus.CREDITED

    def test_payment_on_earlier_cycle_carries_forward(self, allocator, auditor, tenant, jan, make_cycle):
        feb = make_cycle(tenant.id, 2, 25)
        assert feb.current_balance == Decimal("1450")

        allocator.record_payment(tenant.id, jan.id, Decimal("600"), date(2025, 2, 3))

        assert feb.previous_balance == Decimal("0")
        assert feb.current_balance == Decimal("850")
        assert auditor.audit(tenant.id) == []

    def test_deleting_earlier_payment_carries_forward(self, allocator, tenant, jan, make_cycle):
        payment = allocator.record_payment(tenant.id, jan.id, Decimal("600"), date(2025, 1, 20))
        feb = make_cycle(tenant.id, 2, 25)

        allocator.delete_payment(payment.id)

        assert feb.previous_balance == Decimal("600")
        assert feb.current_balance == Decimal("1450")

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10")])
    def test_non_positive_amount_rejected(self, allocator, tenant, jan, db_session, amount):
        with pytest.raises(InvalidAmountError):
            allocator.record_payment(tenant.id, jan.id, amount, date(2025, 1, 20))

        assert db_session.query(Payment).count() == 0

    def test_nan_amount_rejected(self, allocator, tenant, jan, db_session):
        with pytest.raises(InvalidAmountError):
            allocator.record_payment(tenant.id, jan.id, float("nan"), date(2025, 1, 20))

        assert db_session.query(Payment).count() == 0

    def test_unknown_cycle(self, allocator, tenant):
        with pytest.raises(CycleNotFoundError):
            allocator.record_payment(tenant.id, 999, Decimal("10"), date(2025, 1, 20))

    def test_cycle_of_another_tenant(self, allocator, other_tenant, jan, db_session):
        with pytest.raises(CycleNotFoundError):
            allocator.record_payment(other_tenant.id, jan.id, Decimal("10"), date(2025, 1, 20))

        assert db_session.query(Payment).count() == 0

    def test_unknown_tenant(self, allocator, jan):
        with pytest.raises(TenantNotFoundError):
            allocator.record_payment(999, jan.id, Decimal("10"), date(2025, 1, 20))

    def test_publishes_payment_recorded(self, allocator, tenant, jan, publisher):
        handler = MagicMock()
        publisher.subscribe(handler)

        payment = allocator.record_payment(tenant.id, jan.id, Decimal("250"), date(2025, 1, 20))

        handler.assert_called_once_with(
            PaymentRecorded(
                tenant_id=tenant.id,
                cycle_id=jan.id,
                payment_id=payment.id,
                amount=Decimal("250.00"),
                resulting_balance=Decimal("350.00"),
            )
        )

    def test_failing_subscriber_keeps_payment(self, allocator, tenant, jan, publisher, db_session):
        publisher.subscribe(MagicMock(side_effect=RuntimeError("sms gateway down")))

        allocator.record_payment(tenant.id, jan.id, Decimal("250"), date(2025, 1, 20))

        db_session.expire_all()
        assert db_session.get(BillingCycle, jan.id).paid_amount == Decimal("250")


class TestUpdatePayment:
    """Editing a payment."""

    def test_amount_change_recomputes_cycle(self, allocator, tenant, jan):
        payment = allocator.record_payment(tenant.id, jan.id, Decimal("600"), date(2025, 1, 20))

        allocator.update_payment(payment.id, amount=Decimal("450"))

        assert jan.paid_amount == Decimal("450")
        assert jan.current_balance == Decimal("150")

    def test_other_fields_only(self, allocator, tenant, jan):
        payment = allocator.record_payment(tenant.id, jan.id, Decimal("600"), date(2025, 1, 20))

        updated = allocator.update_payment(
            payment.id, payment_date=date(2025, 1, 21), method=PaymentMethod.BANK, notes="Receipt 0042"
        )

        assert updated.amount == Decimal("600")
        assert updated.payment_date == date(2025, 1, 21)
        assert updated.method == PaymentMethod.BANK
        assert updated.notes == "Receipt 0042"
        assert jan.current_balance == Decimal("0")

    def test_notes_can_be_cleared(self, allocator, tenant, jan):
        payment = allocator.record_payment(
            tenant.id, jan.id, Decimal("600"), date(2025, 1, 20), notes="Paid by neighbour"
        )

        kept = allocator.update_payment(payment.id, amount=Decimal("500"))
        assert kept.notes == "Paid by neighbour"

        cleared = allocator.update_payment(payment.id, notes=None)
        assert cleared.notes is None
        assert cleared.amount == Decimal("500")

    def test_invalid_amount(self, allocator, tenant, jan):
        payment = allocator.record_payment(tenant.id, jan.id, Decimal("600"), date(2025, 1, 20))

        with pytest.raises(InvalidAmountError):
            allocator.update_payment(payment.id, amount=Decimal("0"))

    def test_unknown_payment(self, allocator):
        with pytest.raises(PaymentNotFoundError):
            allocator.update_payment(999, amount=Decimal("1"))


class TestDeletePayment:
    """Deleting a payment reverses it exactly."""

    def test_restores_previous_values(self, allocator, tenant, jan):
        allocator.record_payment(tenant.id, jan.id, Decimal("100"), date(2025, 1, 5))
        before = (jan.paid_amount, jan.current_balance)
        payment = allocator.record_payment(tenant.id, jan.id, Decimal("333.33"), date(2025, 1, 20))

        allocator.delete_payment(payment.id)

        assert (jan.paid_amount, jan.current_balance) == before

    def test_unknown_payment(self, allocator):
        with pytest.raises(PaymentNotFoundError):
            allocator.delete_payment(999)


class TestAutoAllocate:
    """Oldest-first allocation across outstanding cycles."""

    def test_splits_oldest_first(self, allocator, tenant, jan, make_cycle):
        feb = make_cycle(tenant.id, 2, 25)

        payments = allocator.record_payment_auto_allocate(tenant.id, Decimal("1000"), date(2025, 2, 10))

        assert [(p.billing_cycle_id, p.amount) for p in payments] == [
            (jan.id, Decimal("600")),
            (feb.id, Decimal("400")),
        ]
        assert jan.current_balance == Decimal("0")
        assert feb.paid_amount == Decimal("400")
        assert feb.current_balance == Decimal("450")

    def test_surplus_merged_into_latest_cycle_payment(self, allocator, tenant, jan, make_cycle):
        feb = make_cycle(tenant.id, 2, 25)

        payments = allocator.record_payment_auto_allocate(tenant.id, Decimal("2500"), date(2025, 2, 10))

        assert len(payments) == 2
        assert payments[1].billing_cycle_id == feb.id
        assert payments[1].amount == Decimal("1900")
        assert feb.current_balance == Decimal("-1050")

    def test_nothing_outstanding_credits_latest(self, allocator, tenant, jan):
        allocator.record_payment(tenant.id, jan.id, Decimal("600"), date(2025, 1, 20))

        payments = allocator.record_payment_auto_allocate(
            tenant.id, Decimal("100"), date(2025, 1, 25), method=PaymentMethod.BANK
        )

        assert [(p.billing_cycle_id, p.amount, p.method) for p in payments] == [
            (jan.id, Decimal("100"), PaymentMethod.BANK)
        ]
        assert jan.current_balance == Decimal("-100")

    def test_publishes_one_event_per_payment(self, allocator, tenant, jan, make_cycle, publisher):
        make_cycle(tenant.id, 2, 25)
        handler = MagicMock()
        publisher.subscribe(handler)

        allocator.record_payment_auto_allocate(tenant.id, Decimal("1000"), date(2025, 2, 10))

        assert handler.call_count == 2

    def test_no_cycles(self, allocator, tenant):
        with pytest.raises(CycleNotFoundError):
            allocator.record_payment_auto_allocate(tenant.id, Decimal("100"), date(2025, 1, 1))

    def test_invalid_amount(self, allocator, tenant, jan):
        with pytest.raises(InvalidAmountError):
            allocator.record_payment_auto_allocate(tenant.id, Decimal("-1"), date(2025, 1, 1))


class TestListPayments:
    """Payment listings."""

    def test_newest_first_and_filtered_by_cycle(self, allocator, tenant, jan, make_cycle):
        feb = make_cycle(tenant.id, 2, 25)
        first = allocator.record_payment(tenant.id, jan.id, Decimal("10"), date(2025, 1, 5))
        second = allocator.record_payment(tenant.id, feb.id, Decimal("20"), date(2025, 2, 5))

        assert [p.id for p in allocator.list_payments(tenant.id)] == [second.id, first.id]
        assert [p.id for p in allocator.list_payments(tenant.id, billing_cycle_id=jan.id)] == [first.id]
