"""
Patient visit and billing routes
"""
from flask import Blueprint, request, jsonify, current_app, Response
from flask_jwt_extended import current_user
from hospital_invoicing.extensions import db
from hospital_invoicing.models.hospitals import Hospital
from hospital_invoicing.models.common import Document, ENTITY_PATIENT, remove_stored_file
from hospital_invoicing.models.patients import Patient
from hospital_invoicing.security import require_page_permission, audit_log
from hospital_invoicing.utils.billing import (
    PATIENT_INVOICE_STATUSES, SERVICE_TYPES, hospital_share_for, ZERO,
)
from hospital_invoicing.utils.invoicing import ConflictError
from hospital_invoicing.utils.csv_io import (
    PatientImporter, PATIENT_COLUMNS, PATIENT_EXPORT_COLUMNS, patient_rows, read_csv,
    template_csv, write_csv,
)
from hospital_invoicing.utils.validation import (
    ValidationError, get_json_body, parse_amount, parse_choice, parse_date, parse_id,
    parse_percent, require_fields,
)

patients_bp = Blueprint('patients', __name__)

TEXT_FIELDS = {
    'name': 'name',
    'phone': 'phone',
    'leadType': 'lead_type',
    'sourceType': 'source_type',
    'city': 'city',
    'area': 'area',
    'doctorName': 'doctor_name',
    'bdName': 'bd_name',
    'procedure': 'procedure',
    'remarks': 'remarks',
}


def get_patient_or_404(patient_id):
    return db.get_or_404(Patient, parse_id(patient_id), description='Not found')


def apply_patient_fields(patient, data):
    """Copy camelCase request fields onto a patient and recompute its amounts.

    Invoice status and number are owned by the invoicing workflow and are
    never taken from the request.
    """
    for key, attr in TEXT_FIELDS.items():
        if key in data:
            setattr(patient, attr, str(data[key] or '').strip())

    share_follows_hospital = patient.id is None

    if 'hospitalId' in data:
        hospital = db.session.get(Hospital, parse_id(data['hospitalId'], 'hospitalId'))
        if hospital is None:
            raise ValidationError('Hospital not found')
        if patient.is_invoiced and patient.hospital_id != hospital.id:
            raise ConflictError('Cannot move an invoiced patient to another hospital')
        if patient.hospital_id != hospital.id:
            share_follows_hospital = True
            # Location defaults to the hospital's unless given
            if 'city' not in data and hospital.city:
                patient.city = hospital.city
            if 'area' not in data and hospital.area:
                patient.area = hospital.area
        patient.hospital_id = hospital.id
        patient.hospital = hospital

    if 'serviceType' in data:
        service_type = parse_choice(data['serviceType'], 'serviceType', SERVICE_TYPES, default='OP')
        if service_type != patient.service_type:
            share_follows_hospital = True
        patient.service_type = service_type
    if 'patientDate' in data:
        patient.set_patient_date(parse_date(data['patientDate'], 'patientDate'))
    if 'billAmount' in data:
        patient.bill_amount = parse_amount(data['billAmount'], 'billAmount')
    if 'dciCharges' in data:
        patient.dci_charges = parse_amount(data['dciCharges'], 'dciCharges')
    if (patient.dci_charges or ZERO) > (patient.bill_amount or ZERO):
        raise ValidationError('dciCharges cannot exceed billAmount')

    if 'sharePercent' in data:
        share_percent = parse_percent(data['sharePercent'], 'sharePercent')
    elif share_follows_hospital:
        share_percent = hospital_share_for(patient.hospital, patient.service_type)
    else:
        share_percent = None

    if share_percent is not None:
        if share_percent == ZERO and patient.is_invoiced:
            raise ConflictError('Remove the patient from its invoice before setting a zero share')
        patient.share_percent = share_percent

    patient.calculate_amounts()


@patients_bp.route('', methods=['GET'])
@require_page_permission('patients')
def list_patients():
    """List patients, newest visit first"""
    query = Patient.query

    hospital_id = request.args.get('hospitalId')
    if hospital_id:
        query = query.filter(Patient.hospital_id == parse_id(hospital_id, 'hospitalId'))
    invoice_status = request.args.get('invoiceStatus')
    if invoice_status:
        query = query.filter(Patient.invoice_status == parse_choice(
            invoice_status, 'invoiceStatus', PATIENT_INVOICE_STATUSES))
    service_type = request.args.get('serviceType')
    if service_type:
        query = query.filter(Patient.service_type == parse_choice(service_type, 'serviceType', SERVICE_TYPES))
    year = request.args.get('year', type=int)
    if year:
        query = query.filter(Patient.year == year)
    month = request.args.get('month', type=int)
    if month:
        query = query.filter(Patient.month == month)
    search = request.args.get('search', '').strip()
    if search:
        query = query.filter(db.or_(
            Patient.name.ilike(f'%{search}%'),
            Patient.phone.ilike(f'%{search}%')
        ))

    patients = query.order_by(Patient.patient_date.desc(), Patient.created_at.desc()).all()
    return jsonify([p.to_dict() for p in patients])


@patients_bp.route('/<patient_id>', methods=['GET'])
@require_page_permission('patients')
def get_patient(patient_id):
    patient = get_patient_or_404(patient_id)
    return jsonify(patient.to_dict())


@patients_bp.route('', methods=['POST'])
@require_page_permission('patients', edit=True)
def create_patient():
    """Register a patient visit"""
    data = get_json_body(request)
    require_fields(data, 'name', 'hospitalId')

    patient = Patient(created_by_id=current_user.id, service_type='OP')
    apply_patient_fields(patient, data)

    try:
        db.session.add(patient)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Error creating patient: {e}')
        return jsonify({'error': 'Could not create patient'}), 500

    audit_log('create', 'Patient', patient.id, after_data=patient.to_dict())
    return jsonify(patient.to_dict()), 201


@patients_bp.route('/<patient_id>', methods=['PUT'])
@require_page_permission('patients', edit=True)
def update_patient(patient_id):
    """Update a patient's details and billing amounts"""
    patient = get_patient_or_404(patient_id)
    data = get_json_body(request)
    if 'name' in data and not str(data.get('name') or '').strip():
        return jsonify({'error': 'name is required'}), 400

    before_data = patient.to_dict()
    apply_patient_fields(patient, data)

    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Error updating patient {patient_id}: {e}')
        return jsonify({'error': 'Could not update patient'}), 500

    audit_log('update', 'Patient', patient.id, before_data=before_data, after_data=patient.to_dict())
    return jsonify(patient.to_dict())


@patients_bp.route('/<patient_id>', methods=['DELETE'])
@require_page_permission('patients', edit=True)
def delete_patient(patient_id):
    """Delete a patient that is not on an invoice"""
    patient = get_patient_or_404(patient_id)
    if patient.is_invoiced:
        return jsonify({'error': f'Patient is on invoice {patient.invoice_number} and cannot be deleted'}), 409

    before_data = patient.to_dict()
    patient_pk = patient.id
    documents = Document.for_entity(ENTITY_PATIENT, patient_pk)
    file_paths = [d.file_path for d in documents]
    try:
        for document in documents:
            db.session.delete(document)
        db.session.delete(patient)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Error deleting patient {patient_id}: {e}')
        return jsonify({'error': 'Could not delete patient'}), 500

    for file_path in file_paths:
        remove_stored_file(file_path)

    audit_log('delete', 'Patient', patient_pk, before_data=before_data)
    return '', 204


@patients_bp.route('/export', methods=['GET'])
@require_page_permission('patients')
def export_patients():
    patients = Patient.query.order_by(Patient.patient_date.desc(), Patient.created_at.desc()).all()
    content = write_csv(PATIENT_EXPORT_COLUMNS, patient_rows(patients))
    return Response(content, mimetype='text/csv',
                    headers={'Content-Disposition': 'attachment; filename=patients.csv'})


@patients_bp.route('/template', methods=['GET'])
@require_page_permission('patients')
def patient_template():
    return Response(template_csv(PATIENT_COLUMNS), mimetype='text/csv',
                    headers={'Content-Disposition': 'attachment; filename=patients_template.csv'})


@patients_bp.route('/import', methods=['POST'])
@require_page_permission('patients', edit=True)
def import_patients():
    """Bulk-create patients from an uploaded CSV file"""
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        return jsonify({'error': 'file is required'}), 400

    rows = read_csv(upload.read())
    result = PatientImporter(created_by=current_user).import_rows(rows)

    audit_log('import', 'Patient', None, after_data={'imported': result['imported'], 'skipped': result['skipped']})
    current_app.logger.info(f"Imported {result['imported']} patients, skipped {result['skipped']}")
    return jsonify(result)
