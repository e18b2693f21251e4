"""
Invoice lifecycle: creation, item changes, deletion and payments.

Each public function that writes performs its invoice and patient changes as
a single unit of work. Either everything is committed or the session is
rolled back.
"""
from datetime import date

from flask import current_app
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import NotFound

from hospital_invoicing.extensions import db
from hospital_invoicing.models.billing import Invoice, InvoiceItem, Payment
from hospital_invoicing.models.patients import Patient
from hospital_invoicing.utils.billing import (
    INVOICE_STATUSES, is_empty_payment, payment_tds_amount, ZERO,
)
from hospital_invoicing.utils.validation import (
    ValidationError, parse_amount, parse_choice, parse_date, parse_id, parse_percent,
)


class ConflictError(Exception):
    """Raised when a change clashes with existing state; rendered as HTTP 409"""

    def __init__(self, message):
        super().__init__(message)
        self.message = message


def parse_patient_ids(values):
    """Parse a list of patient ids, dropping duplicates but keeping order"""
    if not isinstance(values, list):
        raise ValidationError('patientIds must be a list')
    ids = []
    for value in values:
        patient_id = parse_id(value, 'patient id')
        if patient_id not in ids:
            ids.append(patient_id)
    if not ids:
        raise ValidationError('Select at least one patient for the invoice')
    return ids


def load_invoiceable_patients(hospital, patient_ids):
    """Load patients that may be added to an invoice for ``hospital``.

    Every patient must exist, belong to the hospital and still be waiting to
    be invoiced.
    """
    if not patient_ids:
        return []
    rows = Patient.query.filter(Patient.id.in_(patient_ids)).with_for_update().all()
    by_id = {patient.id: patient for patient in rows}

    patients = []
    for patient_id in patient_ids:
        patient = by_id.get(patient_id)
        if patient is None:
            raise ValidationError(f'Patient {patient_id} not found')
        if patient.hospital_id != hospital.id:
            raise ValidationError(f'Patient {patient.name} does not belong to {hospital.name}')
        if not patient.is_eligible_for_invoice:
            raise ValidationError(f'Patient {patient.name} is not available for invoicing ({patient.invoice_status})')
        patients.append(patient)
    return patients


def _attach_patients(invoice, patients):
    position = len(invoice.items)
    for patient in patients:
        invoice.items.append(InvoiceItem.from_patient(patient, position))
        patient.mark_invoiced(invoice.invoice_number, invoice.invoice_date)
        position += 1


def create_invoice(hospital, patient_ids, invoice_date=None, invoice_number=None,
                   tds_percent=ZERO, created_by=None):
    """Raise an invoice for a set of patients and commit it.

    Without an explicit ``invoice_number`` the next number for the current
    year is allocated, retrying when a concurrent request took it first.
    """
    invoice_date = invoice_date or date.today()
    hospital_id = hospital.id

    if invoice_number:
        if Invoice.query.filter_by(invoice_number=invoice_number).first() is not None:
            raise ConflictError(f'Invoice number {invoice_number} already exists')
        attempts = 1
    else:
        attempts = max(1, int(current_app.config.get('INVOICE_NUMBER_RETRIES', 5)))

    for attempt in range(1, attempts + 1):
        hospital = db.session.get(type(hospital), hospital_id)
        patients = load_invoiceable_patients(hospital, patient_ids)
        number = invoice_number or Invoice.generate_invoice_number(date.today().year)

        invoice = Invoice(
            invoice_number=number,
            tds_percent=tds_percent,
            created_by_id=created_by.id if created_by else None,
        )
        invoice.set_invoice_date(invoice_date)
        invoice.snapshot_hospital(hospital)
        _attach_patients(invoice, patients)
        invoice.calculate_totals()
        db.session.add(invoice)

        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            if invoice_number:
                raise ConflictError(f'Invoice number {invoice_number} already exists')
            current_app.logger.warning(f'Invoice number {number} taken, retrying ({attempt}/{attempts})')
            continue

        current_app.logger.info(f'Invoice {invoice.invoice_number} raised for {len(patients)} patient(s)')
        return invoice

    raise ConflictError('Could not allocate an invoice number, please try again')


def replace_invoice_items(invoice, patient_ids):
    """Make the invoice cover exactly ``patient_ids``.

    Removed patients become invoiceable again, new patients are committed to
    the invoice and kept items retain their original snapshot. Does not
    commit.
    """
    if invoice.has_payments:
        raise ConflictError('Invoice items cannot be changed once payments are recorded')

    wanted = list(patient_ids)
    current = {item.patient_id: item for item in invoice.items if item.patient_id is not None}

    for patient_id, item in current.items():
        if patient_id in wanted:
            continue
        patient = db.session.get(Patient, patient_id)
        if patient is not None and patient.invoice_number == invoice.invoice_number:
            patient.release_from_invoice()
        invoice.items.remove(item)

    added = [patient_id for patient_id in wanted if patient_id not in current]
    _attach_patients(invoice, load_invoiceable_patients(invoice.hospital, added))

    order = {patient_id: index for index, patient_id in enumerate(wanted)}
    invoice.items.sort(key=lambda item: order.get(item.patient_id, len(order)))
    for position, item in enumerate(invoice.items):
        item.position = position

    invoice.calculate_totals()


def set_invoice_status(invoice, status):
    """Apply a status chosen by a user. Does not commit."""
    invoice.set_status(parse_choice(status, 'status', INVOICE_STATUSES))


def change_invoice_date(invoice, invoice_date):
    """Move the invoice date, keeping committed patients in step. Does not commit."""
    invoice.set_invoice_date(invoice_date)
    for patient_id in invoice.patient_ids:
        patient = db.session.get(Patient, patient_id)
        if patient is not None and patient.invoice_number == invoice.invoice_number:
            patient.invoice_date = invoice_date


def update_invoice(invoice, invoice_date=None, tds_percent=None, status=None, patient_ids=None):
    """Apply an edit to an invoice and commit it as one unit"""
    try:
        if patient_ids is not None:
            replace_invoice_items(invoice, patient_ids)
        if invoice_date is not None:
            change_invoice_date(invoice, invoice_date)
        if tds_percent is not None:
            invoice.tds_percent = tds_percent
        if status is not None:
            set_invoice_status(invoice, status)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return invoice


def delete_invoice(invoice):
    """Delete an invoice and return its patients to the invoiceable pool"""
    number = invoice.invoice_number
    try:
        released = 0
        for patient_id in invoice.patient_ids:
            patient = db.session.get(Patient, patient_id)
            if patient is not None and patient.invoice_number == number:
                patient.release_from_invoice()
                released += 1
        db.session.delete(invoice)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info(f'Invoice {number} deleted, {released} patient(s) released')
    return released


def parse_payment(data, default_tds_percent=ZERO):
    """Validate a payment line from a request body"""
    payment_date = parse_date(data.get('paymentDate'), 'paymentDate', required=True)
    paid_amount = parse_amount(data.get('paidAmount'), 'paidAmount')
    adjustment_amount = parse_amount(data.get('adjustmentAmount'), 'adjustmentAmount')
    tds_percent = parse_percent(data.get('tdsPercent'), 'tdsPercent', default=default_tds_percent)

    if data.get('tdsAmount') in (None, ''):
        tds_amount = payment_tds_amount(paid_amount, adjustment_amount, tds_percent)
    else:
        tds_amount = parse_amount(data.get('tdsAmount'), 'tdsAmount')

    return {
        'payment_date': payment_date,
        'paid_amount': paid_amount,
        'tds_percent': tds_percent,
        'tds_amount': tds_amount,
        'adjustment_amount': adjustment_amount,
        'remarks': str(data.get('remarks') or '').strip(),
    }


def record_payment(invoice, data, recorded_by=None):
    """Append a payment line, or replace the one named by ``data['id']``, and commit"""
    fields = parse_payment(data, default_tds_percent=invoice.tds_percent or ZERO)

    if data.get('id') not in (None, ''):
        payment_id = parse_id(data.get('id'), 'payment id')
        payment = next((p for p in invoice.payments if p.id == payment_id), None)
        if payment is None:
            raise NotFound('Payment not found')
    else:
        if is_empty_payment(fields['paid_amount'], fields['adjustment_amount']):
            raise ValidationError('Enter a paid amount or an adjustment amount')
        payment = Payment(position=len(invoice.payments))
        invoice.payments.append(payment)

    for name, value in fields.items():
        setattr(payment, name, value)
    if recorded_by is not None:
        payment.recorded_by_id = recorded_by.id

    try:
        invoice.apply_ledger()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return invoice
