"""
Account administration routes for website heads
"""
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import current_user
from hospital_invoicing.extensions import db
from hospital_invoicing.models.users import User, ROLES, USER_STATUSES
from hospital_invoicing.security import require_website_head, validate_permissions, audit_log
from hospital_invoicing.utils.validation import get_json_body, parse_choice, parse_id

admin_bp = Blueprint('admin', __name__)


def get_user_or_404(user_id):
    return db.get_or_404(User, parse_id(user_id), description='Not found')


@admin_bp.route('/users', methods=['GET'])
@require_website_head
def list_users():
    """All accounts, newest first"""
    query = User.query
    status = request.args.get('status')
    if status:
        query = query.filter(User.status == parse_choice(status, 'status', USER_STATUSES))
    users = query.order_by(User.created_at.desc()).all()
    return jsonify([u.to_dict() for u in users])


@admin_bp.route('/users/<user_id>', methods=['PATCH'])
@require_website_head
def update_user(user_id):
    """Approve, deactivate or re-permission an account"""
    user = get_user_or_404(user_id)
    data = get_json_body(request)
    before_data = user.to_dict()

    if data.get('status'):
        user.status = parse_choice(data['status'], 'status', USER_STATUSES)
    if data.get('role'):
        user.role = parse_choice(data['role'], 'role', ROLES)
    if 'name' in data:
        name = str(data['name'] or '').strip()
        if not name:
            return jsonify({'error': 'name is required'}), 400
        user.name = name
    if 'department' in data:
        user.department = str(data['department'] or '').strip()
    if 'permissions' in data:
        user.set_permissions(validate_permissions(data['permissions'] or []))

    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Error updating user {user_id}: {e}')
        return jsonify({'error': 'Could not update user'}), 500

    audit_log('update', 'User', user.id, before_data=before_data, after_data=user.to_dict())
    current_app.logger.info(f'{current_user.email} updated account {user.email}')
    return jsonify(user.to_dict())


@admin_bp.route('/users/<user_id>', methods=['DELETE'])
@require_website_head
def delete_user(user_id):
    """Delete an account"""
    user = get_user_or_404(user_id)
    if user.id == current_user.id:
        return jsonify({'error': 'You cannot delete your own account'}), 409

    before_data = user.to_dict()
    user_pk = user.id
    try:
        db.session.delete(user)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Error deleting user {user_id}: {e}')
        return jsonify({'error': 'Could not delete user'}), 500

    audit_log('delete', 'User', user_pk, before_data=before_data)
    return '', 204
