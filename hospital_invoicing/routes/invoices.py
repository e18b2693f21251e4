"""
Invoice and payment routes
"""
from datetime import date
from flask import Blueprint, request, jsonify, current_app, Response
from flask_jwt_extended import current_user
from hospital_invoicing.extensions import db
from hospital_invoicing.models.billing import Invoice
from hospital_invoicing.models.hospitals import Hospital
from hospital_invoicing.security import require_page_permission, audit_log
from hospital_invoicing.utils.billing import INVOICE_STATUSES
from hospital_invoicing.utils.csv_io import INVOICE_COLUMNS, invoice_rows, write_csv
from hospital_invoicing.utils.invoicing import (
    create_invoice as raise_invoice, delete_invoice as remove_invoice,
    parse_patient_ids, record_payment, update_invoice as apply_invoice_update,
)
from hospital_invoicing.utils.validation import (
    ValidationError, get_json_body, parse_choice, parse_date, parse_id, parse_percent, require_fields,
)

invoices_bp = Blueprint('invoices', __name__)


def get_invoice_or_404(invoice_id):
    return db.get_or_404(Invoice, parse_id(invoice_id), description='Not found')


def filtered_invoices():
    """Invoices matching the list filters in the query string"""
    query = Invoice.query

    status = request.args.get('status')
    if status:
        query = query.filter(Invoice.status == parse_choice(status, 'status', INVOICE_STATUSES))
    hospital_id = request.args.get('hospitalId')
    if hospital_id:
        query = query.filter(Invoice.hospital_id == parse_id(hospital_id, 'hospitalId'))
    year = request.args.get('year', type=int)
    if year:
        query = query.filter(Invoice.year == year)
    month = request.args.get('month', type=int)
    if month:
        query = query.filter(Invoice.month == month)

    return query.order_by(Invoice.invoice_date.desc(), Invoice.created_at.desc()).all()


@invoices_bp.route('', methods=['GET'])
@require_page_permission('invoices')
def list_invoices():
    """List invoices, newest first"""
    include_lines = request.args.get('summary') not in ('1', 'true')
    return jsonify([inv.to_dict(include_lines=include_lines) for inv in filtered_invoices()])


@invoices_bp.route('/next-number', methods=['GET'])
@require_page_permission('invoices')
def next_number():
    """Preview the number the next invoice will get"""
    year = request.args.get('year', type=int) or date.today().year
    return jsonify({'invoiceNumber': Invoice.generate_invoice_number(year)})


@invoices_bp.route('/export', methods=['GET'])
@require_page_permission('invoices')
def export_invoices():
    content = write_csv(INVOICE_COLUMNS, invoice_rows(filtered_invoices()))
    return Response(content, mimetype='text/csv',
                    headers={'Content-Disposition': 'attachment; filename=invoices.csv'})


@invoices_bp.route('/<invoice_id>', methods=['GET'])
@require_page_permission('invoices')
def get_invoice(invoice_id):
    invoice = get_invoice_or_404(invoice_id)
    return jsonify(invoice.to_dict())


@invoices_bp.route('', methods=['POST'])
@require_page_permission('invoices', edit=True)
def create_invoice():
    """Raise an invoice for a hospital's pending patients"""
    data = get_json_body(request)
    require_fields(data, 'hospitalId')

    hospital = db.session.get(Hospital, parse_id(data['hospitalId'], 'hospitalId'))
    if hospital is None:
        return jsonify({'error': 'Hospital not found'}), 400

    patient_ids = parse_patient_ids(data.get('patientIds') or [])
    invoice_number = str(data.get('invoiceNumber') or '').strip() or None

    invoice = raise_invoice(
        hospital,
        patient_ids,
        invoice_date=parse_date(data.get('invoiceDate'), 'invoiceDate'),
        invoice_number=invoice_number,
        tds_percent=parse_percent(data.get('tdsPercent'), 'tdsPercent'),
        created_by=current_user,
    )

    audit_log('create', 'Invoice', invoice.id, after_data=invoice.to_dict(include_lines=False))
    return jsonify(invoice.to_dict()), 201


@invoices_bp.route('/<invoice_id>', methods=['PUT'])
@require_page_permission('invoices', edit=True)
def update_invoice(invoice_id):
    """Edit the date, TDS percent, status or patient list of an invoice"""
    invoice = get_invoice_or_404(invoice_id)
    data = get_json_body(request)

    if 'invoiceNumber' in data and str(data['invoiceNumber'] or '').strip() != invoice.invoice_number:
        raise ValidationError('invoiceNumber cannot be changed')
    if 'hospitalId' in data and str(data['hospitalId']) != str(invoice.hospital_id):
        raise ValidationError('hospitalId cannot be changed')

    before_data = invoice.to_dict(include_lines=False)

    apply_invoice_update(
        invoice,
        invoice_date=parse_date(data['invoiceDate'], 'invoiceDate', required=True) if 'invoiceDate' in data else None,
        tds_percent=parse_percent(data['tdsPercent'], 'tdsPercent') if 'tdsPercent' in data else None,
        status=data.get('status') or None,
        patient_ids=parse_patient_ids(data['patientIds']) if 'patientIds' in data else None,
    )

    audit_log('update', 'Invoice', invoice.id, before_data=before_data,
              after_data=invoice.to_dict(include_lines=False))
    return jsonify(invoice.to_dict())


@invoices_bp.route('/<invoice_id>', methods=['DELETE'])
@require_page_permission('invoices', edit=True)
def delete_invoice(invoice_id):
    """Delete an invoice and release its patients"""
    invoice = get_invoice_or_404(invoice_id)
    before_data = invoice.to_dict(include_lines=False)
    invoice_pk = invoice.id

    released = remove_invoice(invoice)

    audit_log('delete', 'Invoice', invoice_pk, before_data=before_data, after_data={'releasedPatients': released})
    return '', 204


@invoices_bp.route('/<invoice_id>/payments', methods=['POST'])
@require_page_permission('invoices', edit=True)
def add_payment(invoice_id):
    """Record a payment, or correct an existing one when an id is given"""
    invoice = get_invoice_or_404(invoice_id)
    data = get_json_body(request)
    before_data = invoice.to_dict(include_lines=False)

    record_payment(invoice, data, recorded_by=current_user)

    current_app.logger.info(f'Payment recorded on {invoice.invoice_number}: status {invoice.status}')
    audit_log('payment', 'Invoice', invoice.id, before_data=before_data,
              after_data=invoice.to_dict(include_lines=False))
    return jsonify(invoice.to_dict())
