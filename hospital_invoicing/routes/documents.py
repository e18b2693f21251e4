"""
Document attachment routes (hospital MOUs, patient bills)
"""
import os
import uuid
from flask import Blueprint, request, jsonify, current_app, send_file
from flask_jwt_extended import current_user
from werkzeug.utils import secure_filename
from hospital_invoicing.extensions import db
from hospital_invoicing.models.common import Document, DOCUMENT_ENTITIES, ENTITY_HOSPITAL, remove_stored_file
from hospital_invoicing.models.hospitals import Hospital
from hospital_invoicing.models.patients import Patient
from hospital_invoicing.security import jwt_user_required, check_entity_permission, audit_log
from hospital_invoicing.utils.validation import ValidationError, parse_choice, parse_id

documents_bp = Blueprint('documents', __name__)

ALLOWED_EXTENSIONS = {'pdf', 'png', 'jpg', 'jpeg', 'doc', 'docx', 'xls', 'xlsx', 'csv', 'txt'}
DOCUMENT_TYPES = ('mou', 'bill', 'attachment')


def page_for(entity_type):
    return 'hospitals' if entity_type == ENTITY_HOSPITAL else 'patients'


def get_owner_or_404(entity_type, entity_id):
    model = Hospital if entity_type == ENTITY_HOSPITAL else Patient
    return db.get_or_404(model, entity_id, description=f'{entity_type.title()} not found')


def storage_dir(entity_type, entity_id):
    path = os.path.join(os.path.abspath(current_app.config['UPLOAD_FOLDER']), entity_type, str(entity_id))
    os.makedirs(path, exist_ok=True)
    return path


@documents_bp.route('', methods=['GET'])
@jwt_user_required
def list_documents():
    """Documents attached to one hospital or patient"""
    entity_type = parse_choice(request.args.get('entityType'), 'entityType', DOCUMENT_ENTITIES)
    entity_id = parse_id(request.args.get('entityId'), 'entityId')

    denied = check_entity_permission(current_user, page_for(entity_type))
    if denied:
        return denied

    return jsonify([d.to_dict() for d in Document.for_entity(entity_type, entity_id)])


@documents_bp.route('', methods=['POST'])
@jwt_user_required
def upload_document():
    """Store an uploaded file against a hospital or patient"""
    entity_type = parse_choice(request.form.get('entityType'), 'entityType', DOCUMENT_ENTITIES)
    entity_id = parse_id(request.form.get('entityId'), 'entityId')
    document_type = parse_choice(request.form.get('documentType'), 'documentType', DOCUMENT_TYPES,
                                 default='attachment')

    denied = check_entity_permission(current_user, page_for(entity_type), edit=True)
    if denied:
        return denied
    get_owner_or_404(entity_type, entity_id)

    upload = request.files.get('file')
    if upload is None or not upload.filename:
        return jsonify({'error': 'file is required'}), 400

    file_name = secure_filename(upload.filename)
    extension = file_name.rsplit('.', 1)[-1].lower() if '.' in file_name else ''
    if extension not in ALLOWED_EXTENSIONS:
        raise ValidationError(f"File type not allowed. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}")

    file_path = os.path.join(storage_dir(entity_type, entity_id), f'{uuid.uuid4().hex}.{extension}')
    upload.save(file_path)

    document = Document(
        entity_type=entity_type,
        entity_id=entity_id,
        document_type=document_type,
        file_name=file_name,
        file_path=file_path,
        file_size=os.path.getsize(file_path),
        mime_type=upload.mimetype,
        uploaded_by_id=current_user.id,
    )

    try:
        db.session.add(document)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        os.remove(file_path)
        current_app.logger.error(f'Error saving document for {entity_type} {entity_id}: {e}')
        return jsonify({'error': 'Could not save document'}), 500

    audit_log('upload', 'Document', document.id, after_data=document.to_dict())
    return jsonify(document.to_dict()), 201


@documents_bp.route('/<document_id>/download', methods=['GET'])
@jwt_user_required
def download_document(document_id):
    document = db.get_or_404(Document, parse_id(document_id), description='Not found')

    denied = check_entity_permission(current_user, page_for(document.entity_type))
    if denied:
        return denied

    if not os.path.exists(document.file_path):
        current_app.logger.warning(f'Document {document.id} is missing from storage: {document.file_path}')
        return jsonify({'error': 'File not found'}), 404

    return send_file(document.file_path, mimetype=document.mime_type or None,
                     as_attachment=True, download_name=document.file_name)


@documents_bp.route('/<document_id>', methods=['DELETE'])
@jwt_user_required
def delete_document(document_id):
    document = db.get_or_404(Document, parse_id(document_id), description='Not found')

    denied = check_entity_permission(current_user, page_for(document.entity_type), edit=True)
    if denied:
        return denied

    before_data = document.to_dict()
    document_pk = document.id
    file_path = document.file_path
    try:
        db.session.delete(document)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Error deleting document {document_id}: {e}')
        return jsonify({'error': 'Could not delete document'}), 500

    remove_stored_file(file_path)
    audit_log('delete', 'Document', document_pk, before_data=before_data)
    return '', 204
