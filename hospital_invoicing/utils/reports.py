"""
Dashboard aggregations over invoices and patients
"""
import calendar

from hospital_invoicing.extensions import db
from hospital_invoicing.models.billing import Invoice
from hospital_invoicing.models.patients import Patient
from hospital_invoicing.utils.billing import (
    INVOICE_STATUSES, INVOICE_CANCELLED, INVOICE_HOLD, INVOICE_PAID, INVOICE_UNPAID,
    INVOICE_AMOUNT_ADJUSTED, PATIENT_INVOICE_STATUSES, TO_BE_RAISED, INVOICE_RAISED,
    NO_SHARE, SERVICE_TYPES, to_decimal, ZERO,
)

MONTH_NAMES = [calendar.month_abbr[m] for m in range(1, 13)]


def _total(records, field):
    return sum((to_decimal(getattr(r, field)) for r in records), ZERO)


def _money(value):
    return float(value)


def invoice_summary(invoices):
    """Totals for the invoice cards. Cancelled and held invoices only count in their own buckets."""
    active = [inv for inv in invoices if inv.status not in (INVOICE_CANCELLED, INVOICE_HOLD)]
    cancelled = [inv for inv in invoices if inv.status == INVOICE_CANCELLED]
    hold = [inv for inv in invoices if inv.status == INVOICE_HOLD]

    total_amount = _total(active, 'total_amount')
    paid_amount = _total(active, 'paid_amount')
    tds_amount = _total(active, 'tds_amount')
    adjusted_amount = _total(active, 'adjusted_amount')

    return {
        'totalInvoices': len(invoices),
        'totalInvoiceAmount': _money(total_amount),
        'totalPaidAmount': _money(paid_amount),
        'totalTdsAmount': _money(tds_amount),
        'totalAdjustmentAmount': _money(adjusted_amount),
        'totalUnpaidAmount': _money(_total(active, 'balance_amount')),
        'totalShortAmount': _money(_total(active, 'short_amount')),
        'totalExcessAmount': _money(_total(active, 'excess_amount')),
        'totalCancelledAmount': _money(_total(cancelled, 'total_amount')),
        'holdAmount': _money(_total(hold, 'total_amount')),
        'paidCount': sum(1 for inv in active if inv.status == INVOICE_PAID),
        'unpaidCount': sum(1 for inv in active if inv.status == INVOICE_UNPAID),
        'amountAdjustedCount': sum(1 for inv in active if inv.status == INVOICE_AMOUNT_ADJUSTED),
        'adjustedCount': sum(1 for inv in active if to_decimal(inv.adjusted_amount) > ZERO),
        'tdsCount': sum(1 for inv in active if to_decimal(inv.tds_amount) > ZERO),
        'cancelledCount': len(cancelled),
        'holdCount': len(hold),
        'statusCounts': {status: sum(1 for inv in invoices if inv.status == status)
                         for status in INVOICE_STATUSES},
    }


def monthly_invoice_series(invoices):
    """Invoiced amount per invoice month, skipping empty months"""
    series = []
    for index, name in enumerate(MONTH_NAMES, start=1):
        month_invoices = [inv for inv in invoices
                          if inv.month == index and inv.status not in (INVOICE_CANCELLED, INVOICE_HOLD)]
        total_amount = _total(month_invoices, 'total_amount')
        if total_amount > ZERO:
            series.append({
                'month': name,
                'totalAmount': _money(total_amount),
                'paidAmount': _money(_total(month_invoices, 'paid_amount')),
                'count': len(month_invoices),
            })
    return series


def _status_bucket(patients, status):
    matching = [p for p in patients if p.invoice_status == status]
    return {'amount': _money(_total(matching, 'share_amount')), 'count': len(matching)}


def service_type_stats(patients):
    """Share totals per service line, split by invoicing status"""
    stats = {}
    for service_type in SERVICE_TYPES:
        service_patients = [p for p in patients if p.service_type == service_type]
        no_share = [p for p in service_patients
                    if p.invoice_status == NO_SHARE or to_decimal(p.share_percent) == ZERO]
        stats[service_type] = {
            'count': len(service_patients),
            'total': _money(_total(service_patients, 'share_amount')),
            'raised': _status_bucket(service_patients, INVOICE_RAISED),
            'toBeRaised': _status_bucket(service_patients, TO_BE_RAISED),
            # No-share visits are reported at their billed value
            'noShare': {
                'amount': _money(sum((to_decimal(p.final_amount) or to_decimal(p.bill_amount)
                                      for p in no_share), ZERO)),
                'count': len(no_share),
            },
        }
    return stats


def patient_status_breakdown(patients):
    return {status: _status_bucket(patients, status) for status in PATIENT_INVOICE_STATUSES}


def monthly_patient_series(patients):
    """Share amounts and visit counts per appointment month and service line"""
    series = []
    for index, name in enumerate(MONTH_NAMES, start=1):
        month_patients = [p for p in patients if p.month == index]
        entry = {'month': name}
        has_amount = False
        for service_type in SERVICE_TYPES:
            key = service_type.lower()
            of_type = [p for p in month_patients if p.service_type == service_type]
            amount = _total(of_type, 'share_amount')
            has_amount = has_amount or amount > ZERO
            entry[key] = _money(amount)
            entry[f'{key}Count'] = len(of_type)
        if has_amount:
            series.append(entry)
    return series


def filter_invoices(years=None, months=None, hospital_ids=None, cities=None, areas=None,
                    statuses=None, appointment_months=None):
    query = Invoice.query
    if years:
        query = query.filter(Invoice.year.in_(years))
        if months:
            query = query.filter(Invoice.month.in_(months))
    if hospital_ids:
        query = query.filter(Invoice.hospital_id.in_(hospital_ids))
    if cities:
        query = query.filter(Invoice.hospital_city.in_(cities))
    if areas:
        query = query.filter(Invoice.hospital_area.in_(areas))
    if statuses:
        query = query.filter(Invoice.status.in_(statuses))
    invoices = query.order_by(Invoice.invoice_date.desc()).all()

    if appointment_months and years:
        invoices = [inv for inv in invoices
                    if any(item.patient_date and item.patient_date.month in appointment_months
                           for item in inv.items)]
    return invoices


def filter_patients(years=None, appointment_months=None, hospital_ids=None, cities=None, areas=None):
    query = Patient.query
    if years:
        query = query.filter(Patient.year.in_(years))
        if appointment_months:
            query = query.filter(Patient.month.in_(appointment_months))
    if hospital_ids:
        query = query.filter(Patient.hospital_id.in_(hospital_ids))
    if cities:
        query = query.filter(Patient.city.in_(cities))
    if areas:
        query = query.filter(Patient.area.in_(areas))
    return query.all()


def dashboard_stats(years=None, months=None, appointment_months=None, hospital_ids=None,
                    cities=None, areas=None, statuses=None):
    """Build the dashboard payload.

    Invoice figures follow the invoice month; patient figures follow the
    appointment month.
    """
    invoices = filter_invoices(years, months, hospital_ids, cities, areas, statuses, appointment_months)
    patients = filter_patients(years, appointment_months, hospital_ids, cities, areas)

    cities_available = sorted({row[0] for row in db.session.query(Invoice.hospital_city).distinct() if row[0]})

    return {
        'summary': invoice_summary(invoices),
        'monthlyInvoices': monthly_invoice_series(invoices),
        'serviceTypes': service_type_stats(patients),
        'patientStatus': patient_status_breakdown(patients),
        'monthlyPatients': monthly_patient_series(patients),
        'cities': cities_available,
    }
