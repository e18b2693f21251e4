"""
Security and page-permission access control
"""
from functools import wraps
from flask import current_app, request, jsonify
from flask_jwt_extended import verify_jwt_in_request, get_current_user
from hospital_invoicing.extensions import db
from hospital_invoicing.models.users import ROLE_WEBSITE_HEAD, STATUS_PENDING, STATUS_INACTIVE

# Pages of the admin tool that carry view/edit permissions
PAGES = {
    'dashboard': 'Dashboard',
    'hospitals': 'Hospitals',
    'patients': 'Patients',
    'invoices': 'Invoices',
    'credentials': 'Credentials',
}


def _permission_field(entry, name):
    if isinstance(entry, dict):
        return entry.get(name)
    return getattr(entry, name, None)


def _role_of(user):
    return _permission_field(user, 'role')


def _find_permission(user, page_name):
    for entry in _permission_field(user, 'permissions') or []:
        if _permission_field(entry, 'page_name') == page_name:
            return entry
    return None


def is_website_head(user):
    """Website heads have full access to every page"""
    return user is not None and _role_of(user) == ROLE_WEBSITE_HEAD


def can_view(user, page_name):
    """Check if user may view a page"""
    if user is None:
        return False
    if is_website_head(user):
        return True
    permission = _find_permission(user, page_name)
    return bool(_permission_field(permission, 'can_view')) if permission is not None else False


def can_edit(user, page_name):
    """Check if user may edit on a page"""
    if user is None:
        return False
    if is_website_head(user):
        return True
    permission = _find_permission(user, page_name)
    return bool(_permission_field(permission, 'can_edit')) if permission is not None else False


def validate_permissions(permissions):
    """Normalise a permission list from a request body"""
    from hospital_invoicing.utils.validation import ValidationError

    if not isinstance(permissions, list):
        raise ValidationError('permissions must be a list')
    cleaned = []
    seen = set()
    for entry in permissions:
        if not isinstance(entry, dict) or not entry.get('page_name'):
            raise ValidationError('each permission needs a page_name')
        if entry['page_name'] not in PAGES:
            raise ValidationError(f"Unknown page: {entry['page_name']}")
        if entry['page_name'] in seen:
            raise ValidationError(f"Duplicate page: {entry['page_name']}")
        seen.add(entry['page_name'])
        cleaned.append({
            'page_name': entry['page_name'],
            'can_view': bool(entry.get('can_view')),
            'can_edit': bool(entry.get('can_edit')),
        })
    return cleaned


def _authenticate():
    """Verify the bearer token and return (user, error_response)"""
    if not current_app.config.get('JWT_SECRET_KEY'):
        current_app.logger.error('JWT_SECRET is not configured')
        return None, (jsonify({'error': 'Server misconfigured (JWT_SECRET missing)'}), 500)

    verify_jwt_in_request()
    user = get_current_user()

    if user.status == STATUS_PENDING:
        return None, (jsonify({'error': 'Account pending approval'}), 403)
    if user.status == STATUS_INACTIVE:
        return None, (jsonify({'error': 'Account inactive'}), 403)

    return user, None


def jwt_user_required(f):
    """Decorator to require a valid bearer token for an active account"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user, error = _authenticate()
        if error:
            return error
        return f(*args, **kwargs)
    return decorated_function


def require_page_permission(page_name, edit=False):
    """Decorator to require view (or edit) permission on a page"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user, error = _authenticate()
            if error:
                return error

            allowed = can_edit(user, page_name) if edit else can_view(user, page_name)
            if not allowed:
                return jsonify({'error': 'Forbidden'}), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator


def require_website_head(f):
    """Decorator to restrict a route to website heads"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user, error = _authenticate()
        if error:
            return error

        if not is_website_head(user):
            return jsonify({'error': 'Forbidden'}), 403

        return f(*args, **kwargs)
    return decorated_function


def check_entity_permission(user, page_name, edit=False):
    """Inline permission check for routes whose page depends on the payload"""
    allowed = can_edit(user, page_name) if edit else can_view(user, page_name)
    if not allowed:
        return jsonify({'error': 'Forbidden'}), 403
    return None


def audit_log(action, entity, entity_id, before_data=None, after_data=None, actor_id=None):
    """Log audit trail for important actions"""
    from hospital_invoicing.models.common import AuditLog

    if actor_id is None:
        actor_id = get_current_user().id

    audit_entry = AuditLog(
        actor_id=actor_id,
        action=action,
        entity=entity,
        entity_id=entity_id,
        before_json=before_data,
        after_json=after_data,
        ip_address=request.remote_addr if request else None
    )

    try:
        db.session.add(audit_entry)
        db.session.commit()
    except Exception as e:
        current_app.logger.error(f"Failed to log audit trail: {e}")
        db.session.rollback()
