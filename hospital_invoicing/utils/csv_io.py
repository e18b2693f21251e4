"""
CSV import/export for hospitals, patients and invoices
"""
import csv
import io
from decimal import Decimal

from hospital_invoicing.extensions import db
from hospital_invoicing.models.hospitals import Hospital
from hospital_invoicing.models.patients import Patient
from hospital_invoicing.utils.billing import SERVICE_TYPES, hospital_share_for, ZERO
from hospital_invoicing.utils.validation import (
    ValidationError, parse_amount, parse_date, parse_percent,
)

HOSPITAL_COLUMNS = [
    'Name', 'Alternate Name', 'Address', 'Area', 'City', 'State', 'PIN Code',
    'OP Share %', 'IP Share %', 'Diagnostic Share %', 'Contact Person', 'Phone', 'Email',
    'MOU Start Date', 'MOU End Date',
]

PATIENT_COLUMNS = [
    'Patient Name', 'Phone', 'Appointment Date', 'Service Type', 'Lead Type', 'Source Type',
    'Hospital Name', 'City', 'Area', 'Doctor Name', 'BD Name', 'Procedure',
    'Bill Amount', 'DCI Charges', 'Share %', 'Remarks',
]

PATIENT_EXPORT_COLUMNS = PATIENT_COLUMNS + [
    'Final Amount', 'Share Amount', 'Invoice Status', 'Invoice Number', 'Invoice Date',
]

INVOICE_COLUMNS = [
    'Invoice No', 'Date', 'Hospital', 'City', 'Area',
    'Bill Amount', 'DCI', 'Final Amount', 'Share %', 'Invoice Amount',
    'Paid Amount', 'Adjusted', 'TDS %', 'TDS Amount', 'Short', 'Excess', 'Balance', 'Status',
]


def read_csv(file_content):
    """Decode an uploaded CSV file into a list of row dicts"""
    if isinstance(file_content, bytes):
        try:
            file_content = file_content.decode('utf-8-sig')
        except UnicodeDecodeError:
            raise ValidationError('CSV file must be UTF-8 encoded')
    reader = csv.DictReader(io.StringIO(file_content))
    rows = []
    for row in reader:
        rows.append({(key or '').strip(): (value or '').strip() if isinstance(value, str) else ''
                     for key, value in row.items()})
    return rows


def write_csv(columns, rows):
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=columns, extrasaction='ignore')
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return output.getvalue()


def template_csv(columns):
    """Header-only CSV for users to fill in"""
    return write_csv(columns, [])


def _number(value):
    if value is None:
        return 0
    return float(value) if isinstance(value, Decimal) else value


def _iso(value):
    return value.isoformat() if value else ''


class HospitalImporter:
    """Creates hospitals from CSV rows, skipping names that already exist"""

    def __init__(self, created_by=None):
        self.created_by = created_by

    def import_rows(self, rows):
        imported = 0
        errors = []
        for row_number, row in enumerate(rows, start=2):
            try:
                hospital = self._build(row)
            except ValidationError as e:
                errors.append(f'Row {row_number}: {e.message}')
                continue
            db.session.add(hospital)
            db.session.flush()
            imported += 1

        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return {'imported': imported, 'skipped': len(errors), 'totalRows': len(rows), 'errors': errors}

    def _build(self, row):
        name = row.get('Name', '')
        if not name:
            raise ValidationError('Name is required')
        if Hospital.find_by_name(name) is not None:
            raise ValidationError(f'Hospital {name} already exists (skipped)')

        hospital = Hospital(
            name=name,
            alternate_name=row.get('Alternate Name') or None,
            address=row.get('Address', ''),
            area=row.get('Area', ''),
            city=row.get('City', ''),
            state=row.get('State', ''),
            pin_code=row.get('PIN Code', ''),
            op_share=parse_percent(row.get('OP Share %'), 'OP Share %'),
            ip_share=parse_percent(row.get('IP Share %'), 'IP Share %'),
            diagnostic_share=parse_percent(row.get('Diagnostic Share %'), 'Diagnostic Share %'),
            contact_person=row.get('Contact Person', ''),
            phone=row.get('Phone', ''),
            email=row.get('Email', ''),
            mou_start_date=parse_date(row.get('MOU Start Date'), 'MOU Start Date'),
            mou_end_date=parse_date(row.get('MOU End Date'), 'MOU End Date'),
            manual_inactive=False,
            created_by_id=self.created_by.id if self.created_by else None,
        )
        hospital.refresh_status()
        return hospital


class PatientImporter:
    """Creates patients from CSV rows.

    The hospital is matched by name or alternate name. A blank share percent
    falls back to the hospital's share for the row's service type.
    """

    def __init__(self, created_by=None):
        self.created_by = created_by
        self._hospitals = {}

    def import_rows(self, rows):
        imported = 0
        errors = []
        for row_number, row in enumerate(rows, start=2):
            try:
                patient = self._build(row)
            except ValidationError as e:
                errors.append(f'Row {row_number}: {e.message}')
                continue
            db.session.add(patient)
            imported += 1

        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return {'imported': imported, 'skipped': len(errors), 'totalRows': len(rows), 'errors': errors}

    def _hospital(self, name):
        key = name.lower()
        if key not in self._hospitals:
            self._hospitals[key] = Hospital.find_by_name(name)
        return self._hospitals[key]

    def _build(self, row):
        name = row.get('Patient Name', '')
        hospital_name = row.get('Hospital Name', '')
        if not name:
            raise ValidationError('Patient Name is required')
        if not hospital_name:
            raise ValidationError('Hospital Name is required')

        hospital = self._hospital(hospital_name)
        if hospital is None:
            raise ValidationError(f'Hospital not found: {hospital_name}')

        service_type = row.get('Service Type') or 'OP'
        if service_type not in SERVICE_TYPES:
            raise ValidationError(f"Service Type must be one of: {', '.join(SERVICE_TYPES)}")

        share_percent = parse_percent(row.get('Share %'), 'Share %', default=None)
        if share_percent is None:
            share_percent = hospital_share_for(hospital, service_type)

        patient = Patient(
            name=name,
            phone=row.get('Phone', ''),
            service_type=service_type,
            lead_type=row.get('Lead Type') or 'New',
            source_type=row.get('Source Type') or 'Meta',
            hospital_id=hospital.id,
            city=row.get('City') or hospital.city or '',
            area=row.get('Area') or hospital.area or '',
            doctor_name=row.get('Doctor Name', ''),
            bd_name=row.get('BD Name', ''),
            procedure=row.get('Procedure', ''),
            bill_amount=parse_amount(row.get('Bill Amount'), 'Bill Amount'),
            dci_charges=parse_amount(row.get('DCI Charges'), 'DCI Charges'),
            share_percent=share_percent,
            remarks=row.get('Remarks', ''),
            created_by_id=self.created_by.id if self.created_by else None,
        )
        if patient.dci_charges > patient.bill_amount:
            raise ValidationError('DCI Charges cannot exceed Bill Amount')
        patient.set_patient_date(parse_date(row.get('Appointment Date'), 'Appointment Date'))
        patient.calculate_amounts()
        return patient


def hospital_rows(hospitals):
    for hospital in hospitals:
        yield {
            'Name': hospital.name,
            'Alternate Name': hospital.alternate_name or '',
            'Address': hospital.address or '',
            'Area': hospital.area or '',
            'City': hospital.city or '',
            'State': hospital.state or '',
            'PIN Code': hospital.pin_code or '',
            'OP Share %': _number(hospital.op_share),
            'IP Share %': _number(hospital.ip_share),
            'Diagnostic Share %': _number(hospital.diagnostic_share),
            'Contact Person': hospital.contact_person or '',
            'Phone': hospital.phone or '',
            'Email': hospital.email or '',
            'MOU Start Date': _iso(hospital.mou_start_date),
            'MOU End Date': _iso(hospital.mou_end_date),
        }


def patient_rows(patients):
    for patient in patients:
        yield {
            'Patient Name': patient.name,
            'Phone': patient.phone or '',
            'Appointment Date': _iso(patient.patient_date),
            'Service Type': patient.service_type,
            'Lead Type': patient.lead_type or '',
            'Source Type': patient.source_type or '',
            'Hospital Name': patient.hospital.name if patient.hospital else '',
            'City': patient.city or '',
            'Area': patient.area or '',
            'Doctor Name': patient.doctor_name or '',
            'BD Name': patient.bd_name or '',
            'Procedure': patient.procedure or '',
            'Bill Amount': _number(patient.bill_amount),
            'DCI Charges': _number(patient.dci_charges),
            'Share %': _number(patient.share_percent),
            'Remarks': patient.remarks or '',
            'Final Amount': _number(patient.final_amount),
            'Share Amount': _number(patient.share_amount),
            'Invoice Status': patient.invoice_status,
            'Invoice Number': patient.invoice_number or '',
            'Invoice Date': _iso(patient.invoice_date),
        }


def invoice_rows(invoices):
    for invoice in invoices:
        items = invoice.items
        bill_amount = sum((item.bill_amount or ZERO for item in items), ZERO)
        dci_amount = sum((item.dci_charges or ZERO for item in items), ZERO)
        final_amount = sum((item.final_amount or ZERO for item in items), ZERO)
        average_share = (sum((item.share_percent or ZERO for item in items), ZERO) / len(items)) if items else ZERO
        yield {
            'Invoice No': invoice.invoice_number,
            'Date': _iso(invoice.invoice_date),
            'Hospital': invoice.hospital_name or '',
            'City': invoice.hospital_city or '',
            'Area': invoice.hospital_area or '',
            'Bill Amount': _number(bill_amount),
            'DCI': _number(dci_amount),
            'Final Amount': _number(final_amount),
            'Share %': f'{average_share:.2f}',
            'Invoice Amount': _number(invoice.total_amount),
            'Paid Amount': _number(invoice.paid_amount),
            'Adjusted': _number(invoice.adjusted_amount),
            'TDS %': _number(invoice.tds_percent),
            'TDS Amount': _number(invoice.tds_amount),
            'Short': _number(invoice.short_amount),
            'Excess': _number(invoice.excess_amount),
            'Balance': _number(invoice.balance_amount),
            'Status': invoice.status,
        }
