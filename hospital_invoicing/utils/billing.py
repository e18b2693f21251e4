"""
Billing rules: status derivation, share arithmetic, payment ledger and invoice numbering.

Everything here is a pure function of its arguments so the same rules can be
applied when writing cached values and when reading records back.
"""
import re
from collections import namedtuple
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

# Hospital statuses
HOSPITAL_ACTIVE = 'Active'
HOSPITAL_INACTIVE = 'Inactive'
HOSPITAL_EXPIRED = 'Expired'
HOSPITAL_EXPIRED_SOON = 'Expired Soon'
HOSPITAL_STATUSES = (HOSPITAL_ACTIVE, HOSPITAL_INACTIVE, HOSPITAL_EXPIRED, HOSPITAL_EXPIRED_SOON)

# Invoice statuses
INVOICE_UNPAID = 'Unpaid'
INVOICE_PAID = 'Paid'
INVOICE_CANCELLED = 'Cancelled'
INVOICE_AMOUNT_ADJUSTED = 'Amount Adjusted'
INVOICE_HOLD = 'Hold'
INVOICE_STATUSES = (INVOICE_UNPAID, INVOICE_PAID, INVOICE_CANCELLED, INVOICE_AMOUNT_ADJUSTED, INVOICE_HOLD)
STICKY_INVOICE_STATUSES = (INVOICE_CANCELLED, INVOICE_HOLD)

# Patient invoicing statuses
TO_BE_RAISED = 'To Be Raised'
INVOICE_RAISED = 'Invoice Raised'
NO_SHARE = 'No Share'
PATIENT_INVOICE_STATUSES = (TO_BE_RAISED, INVOICE_RAISED, NO_SHARE)

SERVICE_TYPES = ('OP', 'IP', 'Diagnostic')

EXPIRY_WARNING_DAYS = 30
ZERO = Decimal('0')
CENTS = Decimal('0.01')

INVOICE_NUMBER_PATTERN = re.compile(r'INV-\d+-(\d+)')

LedgerTotals = namedtuple('LedgerTotals', [
    'paid_amount', 'tds_amount', 'adjusted_amount', 'balance_amount',
    'short_amount', 'excess_amount', 'status',
])


def to_decimal(value):
    """Coerce a number, numeric string or None to Decimal"""
    if value is None or value == '':
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"Invalid amount: {value!r}")


def to_money(value):
    """Round an amount to two decimal places"""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def _as_date(value):
    if isinstance(value, datetime):
        return value.date()
    return value


def resolve_hospital_status(manual_inactive, mou_start, mou_end, today,
                            warning_days=EXPIRY_WARNING_DAYS):
    """Derive a hospital's display status from its agreement window.

    The manual flag always wins. Without a complete agreement window, or
    before the agreement starts, the hospital is active. Otherwise it is
    expired once the end date has passed and flagged as expiring soon within
    ``warning_days`` (inclusive) of the end date.
    """
    if manual_inactive:
        return HOSPITAL_INACTIVE

    mou_start = _as_date(mou_start)
    mou_end = _as_date(mou_end)
    today = _as_date(today)

    if not mou_start or not mou_end:
        return HOSPITAL_ACTIVE

    if today < mou_start:
        return HOSPITAL_ACTIVE

    days_until_expiry = (mou_end - today).days
    if days_until_expiry < 0:
        return HOSPITAL_EXPIRED
    if days_until_expiry <= warning_days:
        return HOSPITAL_EXPIRED_SOON
    return HOSPITAL_ACTIVE


def resolve_invoice_status(current_status, total_amount, paid_amount, tds_amount, adjusted_amount):
    """Derive an invoice's status from its received amounts.

    ``Cancelled`` and ``Hold`` are set by users and are kept as they are.
    Any adjustment on an invoice that is not fully covered reports
    ``Amount Adjusted``, even when most of the balance is still unpaid.
    """
    if current_status in STICKY_INVOICE_STATUSES:
        return current_status

    paid = to_decimal(paid_amount)
    tds = to_decimal(tds_amount)
    adjusted = to_decimal(adjusted_amount)
    received = paid + tds + adjusted

    if paid == ZERO and tds == ZERO and adjusted == ZERO:
        return INVOICE_UNPAID
    if received >= to_decimal(total_amount):
        return INVOICE_PAID
    if adjusted > ZERO:
        return INVOICE_AMOUNT_ADJUSTED
    return INVOICE_UNPAID


def short_excess(total_amount, received_amount):
    """Split the variance between received and invoiced into (short, excess)"""
    difference = to_decimal(received_amount) - to_decimal(total_amount)
    short_amount = -difference if difference < ZERO else ZERO
    excess_amount = difference if difference > ZERO else ZERO
    return short_amount, excess_amount


def is_empty_payment(paid_amount, adjustment_amount):
    """A payment line that records neither money nor an adjustment"""
    return to_decimal(paid_amount) <= ZERO and to_decimal(adjustment_amount) <= ZERO


def accumulate_payments(payments, total_amount, current_status=None):
    """Fold payment lines into invoice totals and re-derive status.

    ``payments`` is an ordered iterable of objects exposing ``paid_amount``,
    ``tds_amount`` and ``adjustment_amount`` (attributes or mapping keys).
    Replaying the same list always yields the same totals.
    """
    paid = tds = adjusted = ZERO
    for payment in payments:
        paid += to_decimal(_field(payment, 'paid_amount'))
        tds += to_decimal(_field(payment, 'tds_amount'))
        adjusted += to_decimal(_field(payment, 'adjustment_amount'))

    total = to_decimal(total_amount)
    balance = max(ZERO, total - paid - tds - adjusted)
    short_amount, excess_amount = short_excess(total, paid + tds + adjusted)
    status = resolve_invoice_status(current_status, total, paid, tds, adjusted)

    return LedgerTotals(
        paid_amount=paid,
        tds_amount=tds,
        adjusted_amount=adjusted,
        balance_amount=balance,
        short_amount=short_amount,
        excess_amount=excess_amount,
        status=status,
    )


def _field(entry, name):
    if isinstance(entry, dict):
        return entry.get(name)
    return getattr(entry, name, None)


def next_invoice_number(existing_numbers, year):
    """Next sequential invoice number for ``year``, formatted INV-{year}-{seq:03d}"""
    prefix = f'INV-{year}'
    sequences = []
    for number in existing_numbers:
        if not number or not number.startswith(prefix):
            continue
        match = INVOICE_NUMBER_PATTERN.match(number)
        sequences.append(int(match.group(1)) if match else 0)

    next_sequence = (max(sequences) if sequences else 0) + 1
    return f'{prefix}-{next_sequence:03d}'


def calculate_patient_amounts(bill_amount, dci_charges, share_percent):
    """Return (final_amount, share_amount) for a patient bill"""
    final_amount = to_decimal(bill_amount) - to_decimal(dci_charges)
    share_amount = final_amount * to_decimal(share_percent) / Decimal('100')
    return to_money(final_amount), to_money(share_amount)


def patient_invoice_status(share_percent, current_status=None):
    """Invoicing status of a patient after its share percent is set"""
    if to_decimal(share_percent) == ZERO:
        return NO_SHARE
    if current_status in (None, '', NO_SHARE):
        return TO_BE_RAISED
    return current_status


def hospital_share_for(hospital, service_type):
    """Default share percent a hospital grants for a service type"""
    if hospital is None:
        return ZERO
    if service_type == 'OP':
        return to_decimal(hospital.op_share)
    if service_type == 'IP':
        return to_decimal(hospital.ip_share)
    if service_type == 'Diagnostic':
        return to_decimal(hospital.diagnostic_share)
    return ZERO


def payment_tds_amount(paid_amount, adjustment_amount, tds_percent):
    """TDS withheld on a payment line.

    Computed on the paid amount, or on the adjustment when nothing was paid.
    """
    paid = to_decimal(paid_amount)
    base = paid if paid > ZERO else to_decimal(adjustment_amount)
    return to_money(base * to_decimal(tds_percent) / Decimal('100'))
