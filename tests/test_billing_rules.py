from datetime import date
from decimal import Decimal

import pytest

from hospital_invoicing.utils.billing import (
    accumulate_payments, calculate_patient_amounts, hospital_share_for, is_empty_payment,
    next_invoice_number, patient_invoice_status, payment_tds_amount, resolve_hospital_status,
    resolve_invoice_status, short_excess, to_money,
    HOSPITAL_ACTIVE, HOSPITAL_EXPIRED, HOSPITAL_EXPIRED_SOON, HOSPITAL_INACTIVE,
    INVOICE_AMOUNT_ADJUSTED, INVOICE_CANCELLED, INVOICE_HOLD, INVOICE_PAID, INVOICE_UNPAID,
    INVOICE_RAISED, NO_SHARE, TO_BE_RAISED,
)

TODAY = date(2026, 1, 15)


class TestHospitalStatus:

    def test_manual_inactive_wins(self):
        status = resolve_hospital_status(True, date(2025, 1, 1), date(2027, 1, 1), TODAY)
        assert status == HOSPITAL_INACTIVE

    def test_missing_window_is_active(self):
        assert resolve_hospital_status(False, None, date(2026, 1, 1), TODAY) == HOSPITAL_ACTIVE
        assert resolve_hospital_status(False, date(2025, 1, 1), None, TODAY) == HOSPITAL_ACTIVE

    def test_before_start_is_active(self):
        assert resolve_hospital_status(False, date(2026, 2, 1), date(2026, 2, 10), TODAY) == HOSPITAL_ACTIVE

    def test_expired_after_end(self):
        assert resolve_hospital_status(False, date(2025, 1, 1), date(2026, 1, 14), TODAY) == HOSPITAL_EXPIRED

    def test_expiring_within_thirty_days_inclusive(self):
        assert resolve_hospital_status(False, date(2025, 1, 1), date(2026, 2, 14), TODAY) == HOSPITAL_EXPIRED_SOON
        assert resolve_hospital_status(False, date(2025, 1, 1), TODAY, TODAY) == HOSPITAL_EXPIRED_SOON

    def test_active_beyond_warning_window(self):
        assert resolve_hospital_status(False, date(2025, 1, 1), date(2026, 2, 15), TODAY) == HOSPITAL_ACTIVE

    def test_ends_in_five_days(self):
        status = resolve_hospital_status(False, date(2025, 1, 1), date(2026, 1, 20), TODAY)
        assert status == HOSPITAL_EXPIRED_SOON


class TestInvoiceStatus:

    @pytest.mark.parametrize('sticky', [INVOICE_CANCELLED, INVOICE_HOLD])
    def test_sticky_statuses_are_kept(self, sticky):
        assert resolve_invoice_status(sticky, 1000, 1000, 0, 0) == sticky

    def test_nothing_received_is_unpaid(self):
        assert resolve_invoice_status(None, 1000, 0, 0, 0) == INVOICE_UNPAID

    def test_fully_received_is_paid(self):
        assert resolve_invoice_status(INVOICE_UNPAID, 1000, 900, 100, 0) == INVOICE_PAID

    def test_partial_with_adjustment(self):
        assert resolve_invoice_status(INVOICE_UNPAID, 1000, 100, 0, 50) == INVOICE_AMOUNT_ADJUSTED

    def test_partial_without_adjustment(self):
        assert resolve_invoice_status(INVOICE_PAID, 1000, 100, 0, 0) == INVOICE_UNPAID


class TestShortExcess:

    def test_short(self):
        assert short_excess(1000, 800) == (Decimal('200'), Decimal('0'))

    def test_excess(self):
        assert short_excess(1000, 1200) == (Decimal('0'), Decimal('200'))

    def test_exact(self):
        assert short_excess(1000, 1000) == (Decimal('0'), Decimal('0'))

    def test_never_both_positive(self):
        for received in (0, 500, 999, 1000, 1001, 5000):
            short, excess = short_excess(1000, received)
            assert not (short > 0 and excess > 0)


class TestLedger:

    def test_full_payment(self):
        totals = accumulate_payments([{'paid_amount': 1000, 'tds_amount': 0, 'adjustment_amount': 0}], 1000)
        assert totals.status == INVOICE_PAID
        assert totals.balance_amount == 0
        assert totals.short_amount == 0 and totals.excess_amount == 0

    def test_adjustment_only(self):
        totals = accumulate_payments([{'paid_amount': 0, 'tds_amount': 0, 'adjustment_amount': 200}], 1000)
        assert totals.status == INVOICE_AMOUNT_ADJUSTED
        assert totals.balance_amount == 800
        assert totals.short_amount == 800

    def test_two_payments_sum(self):
        payments = [
            {'paid_amount': 500, 'tds_amount': 50, 'adjustment_amount': 0},
            {'paid_amount': 450, 'tds_amount': 0, 'adjustment_amount': 0},
        ]
        totals = accumulate_payments(payments, 1000)
        assert totals.paid_amount == 950
        assert totals.tds_amount == 50
        assert totals.status == INVOICE_PAID

    def test_overpayment_reports_excess_and_zero_balance(self):
        totals = accumulate_payments([{'paid_amount': 1200, 'tds_amount': 0, 'adjustment_amount': 0}], 1000)
        assert totals.balance_amount == 0
        assert totals.excess_amount == 200

    def test_replay_is_idempotent(self):
        payments = [{'paid_amount': 300, 'tds_amount': 30, 'adjustment_amount': 20}]
        assert accumulate_payments(payments, 1000) == accumulate_payments(payments, 1000)

    def test_sticky_status_survives_payments(self):
        totals = accumulate_payments([{'paid_amount': 1000}], 1000, current_status=INVOICE_HOLD)
        assert totals.status == INVOICE_HOLD


class TestInvoiceNumbering:

    def test_next_after_gap(self):
        assert next_invoice_number(['INV-2026-001', 'INV-2026-003'], 2026) == 'INV-2026-004'

    def test_first_of_year(self):
        assert next_invoice_number(['INV-2025-041'], 2026) == 'INV-2026-001'

    def test_unparseable_numbers_count_as_zero(self):
        assert next_invoice_number(['INV-2026-abc'], 2026) == 'INV-2026-001'

    def test_sequence_beyond_padding(self):
        assert next_invoice_number(['INV-2026-999'], 2026) == 'INV-2026-1000'


class TestPatientAmounts:

    def test_final_and_share(self):
        final_amount, share_amount = calculate_patient_amounts('10000', '1000', '10')
        assert final_amount == Decimal('9000.00')
        assert share_amount == Decimal('900.00')

    def test_share_rounds_half_up(self):
        _, share_amount = calculate_patient_amounts('100.05', '0', '50')
        assert share_amount == Decimal('50.03')

    def test_zero_share_means_no_share(self):
        assert patient_invoice_status(0, TO_BE_RAISED) == NO_SHARE

    def test_share_restored_returns_to_pool(self):
        assert patient_invoice_status(10, NO_SHARE) == TO_BE_RAISED

    def test_invoiced_status_kept(self):
        assert patient_invoice_status(10, INVOICE_RAISED) == INVOICE_RAISED

    def test_hospital_share_for_service_type(self):
        class Stub:
            op_share, ip_share, diagnostic_share = 10, 20, 15
        assert hospital_share_for(Stub, 'IP') == 20
        assert hospital_share_for(Stub, 'Diagnostic') == 15
        assert hospital_share_for(None, 'OP') == 0


class TestPaymentHelpers:

    def test_empty_payment(self):
        assert is_empty_payment(0, 0)
        assert not is_empty_payment(0, 10)

    def test_tds_on_paid_amount(self):
        assert payment_tds_amount(1000, 0, 10) == Decimal('100.00')

    def test_tds_on_adjustment_when_nothing_paid(self):
        assert payment_tds_amount(0, 500, 2) == Decimal('10.00')

    def test_to_money(self):
        assert to_money('12.345') == Decimal('12.35')
        with pytest.raises(ValueError):
            to_money('abc')
