"""
Hospital partner routes
"""
from flask import Blueprint, request, jsonify, current_app, Response
from flask_jwt_extended import current_user
from hospital_invoicing.extensions import db
from hospital_invoicing.models.common import Document, ENTITY_HOSPITAL, remove_stored_file
from hospital_invoicing.models.hospitals import Hospital
from hospital_invoicing.security import require_page_permission, audit_log
from hospital_invoicing.utils.billing import HOSPITAL_INACTIVE, HOSPITAL_STATUSES
from hospital_invoicing.utils.csv_io import (
    HospitalImporter, HOSPITAL_COLUMNS, hospital_rows, read_csv, template_csv, write_csv,
)
from hospital_invoicing.utils.validation import (
    ValidationError, get_json_body, parse_bool, parse_date, parse_id, parse_percent,
)

hospitals_bp = Blueprint('hospitals', __name__)

TEXT_FIELDS = {
    'name': 'name',
    'alternateName': 'alternate_name',
    'address': 'address',
    'area': 'area',
    'city': 'city',
    'state': 'state',
    'pinCode': 'pin_code',
    'contactPerson': 'contact_person',
    'phone': 'phone',
    'email': 'email',
}

SHARE_FIELDS = {
    'opShare': 'op_share',
    'ipShare': 'ip_share',
    'diagnosticShare': 'diagnostic_share',
}


def get_hospital_or_404(hospital_id):
    return db.get_or_404(Hospital, parse_id(hospital_id), description='Not found')


def apply_hospital_fields(hospital, data):
    """Copy camelCase request fields onto a hospital"""
    for key, attr in TEXT_FIELDS.items():
        if key in data:
            setattr(hospital, attr, str(data[key] or '').strip())
    if 'alternateName' in data and not hospital.alternate_name:
        hospital.alternate_name = None

    for key, attr in SHARE_FIELDS.items():
        if key in data:
            setattr(hospital, attr, parse_percent(data[key], key))

    if 'mouStartDate' in data:
        hospital.mou_start_date = parse_date(data['mouStartDate'], 'mouStartDate')
    if 'mouEndDate' in data:
        hospital.mou_end_date = parse_date(data['mouEndDate'], 'mouEndDate')
    if hospital.mou_start_date and hospital.mou_end_date and hospital.mou_end_date < hospital.mou_start_date:
        raise ValidationError('mouEndDate must not be before mouStartDate')

    # The only status a user sets directly is the manual inactive flag
    if 'manualInactive' in data:
        hospital.manual_inactive = parse_bool(data['manualInactive'])
    elif data.get('status') in HOSPITAL_STATUSES:
        hospital.manual_inactive = data['status'] == HOSPITAL_INACTIVE

    hospital.refresh_status()


@hospitals_bp.route('', methods=['GET'])
@require_page_permission('hospitals')
def list_hospitals():
    """List hospitals with freshly derived status"""
    query = Hospital.query
    city = request.args.get('city')
    if city:
        query = query.filter(Hospital.city == city)
    search = request.args.get('search', '').strip()
    if search:
        query = query.filter(db.or_(
            Hospital.name.ilike(f'%{search}%'),
            Hospital.alternate_name.ilike(f'%{search}%')
        ))

    hospitals = query.order_by(Hospital.created_at.desc()).all()
    results = [h.to_dict() for h in hospitals]

    status = request.args.get('status')
    if status:
        results = [h for h in results if h['status'] == status]
    return jsonify(results)


@hospitals_bp.route('/<hospital_id>', methods=['GET'])
@require_page_permission('hospitals')
def get_hospital(hospital_id):
    hospital = get_hospital_or_404(hospital_id)
    return jsonify(hospital.to_dict())


@hospitals_bp.route('', methods=['POST'])
@require_page_permission('hospitals', edit=True)
def create_hospital():
    """Create a hospital"""
    data = get_json_body(request)
    if not str(data.get('name') or '').strip():
        return jsonify({'error': 'name is required'}), 400

    hospital = Hospital(created_by_id=current_user.id, manual_inactive=False)
    apply_hospital_fields(hospital, data)

    try:
        db.session.add(hospital)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Error creating hospital: {e}')
        return jsonify({'error': 'Could not create hospital'}), 500

    audit_log('create', 'Hospital', hospital.id, after_data=hospital.to_dict())
    return jsonify(hospital.to_dict()), 201


@hospitals_bp.route('/<hospital_id>', methods=['PUT'])
@require_page_permission('hospitals', edit=True)
def update_hospital(hospital_id):
    """Update a hospital"""
    hospital = get_hospital_or_404(hospital_id)
    data = get_json_body(request)
    if 'name' in data and not str(data.get('name') or '').strip():
        return jsonify({'error': 'name is required'}), 400

    before_data = hospital.to_dict()
    apply_hospital_fields(hospital, data)

    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Error updating hospital {hospital_id}: {e}')
        return jsonify({'error': 'Could not update hospital'}), 500

    audit_log('update', 'Hospital', hospital.id, before_data=before_data, after_data=hospital.to_dict())
    return jsonify(hospital.to_dict())


@hospitals_bp.route('/<hospital_id>', methods=['DELETE'])
@require_page_permission('hospitals', edit=True)
def delete_hospital(hospital_id):
    """Delete a hospital that nothing references"""
    hospital = get_hospital_or_404(hospital_id)
    if hospital.has_links:
        return jsonify({'error': 'Hospital has patients or invoices and cannot be deleted'}), 409

    before_data = hospital.to_dict()
    hospital_pk = hospital.id
    documents = Document.for_entity(ENTITY_HOSPITAL, hospital_pk)
    file_paths = [d.file_path for d in documents]
    try:
        for document in documents:
            db.session.delete(document)
        db.session.delete(hospital)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Error deleting hospital {hospital_id}: {e}')
        return jsonify({'error': 'Could not delete hospital'}), 500

    for file_path in file_paths:
        remove_stored_file(file_path)

    audit_log('delete', 'Hospital', hospital_pk, before_data=before_data)
    return '', 204


@hospitals_bp.route('/export', methods=['GET'])
@require_page_permission('hospitals')
def export_hospitals():
    hospitals = Hospital.query.order_by(Hospital.name).all()
    content = write_csv(HOSPITAL_COLUMNS, hospital_rows(hospitals))
    return Response(content, mimetype='text/csv',
                    headers={'Content-Disposition': 'attachment; filename=hospitals.csv'})


@hospitals_bp.route('/template', methods=['GET'])
@require_page_permission('hospitals')
def hospital_template():
    return Response(template_csv(HOSPITAL_COLUMNS), mimetype='text/csv',
                    headers={'Content-Disposition': 'attachment; filename=hospitals_template.csv'})


@hospitals_bp.route('/import', methods=['POST'])
@require_page_permission('hospitals', edit=True)
def import_hospitals():
    """Bulk-create hospitals from an uploaded CSV file"""
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        return jsonify({'error': 'file is required'}), 400

    rows = read_csv(upload.read())
    result = HospitalImporter(created_by=current_user).import_rows(rows)

    audit_log('import', 'Hospital', None, after_data={'imported': result['imported'], 'skipped': result['skipped']})
    current_app.logger.info(f"Imported {result['imported']} hospitals, skipped {result['skipped']}")
    return jsonify(result)
