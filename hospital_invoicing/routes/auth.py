"""
Authentication routes for signup, login and the current session
"""
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import create_access_token, get_jwt
from hospital_invoicing.extensions import db
from hospital_invoicing.models.users import User, normalize_email, STATUS_PENDING, STATUS_INACTIVE, ROLE_USER
from hospital_invoicing.security import jwt_user_required, audit_log
from hospital_invoicing.utils.validation import get_json_body

auth_bp = Blueprint('auth', __name__)

MIN_PASSWORD_LENGTH = 6


@auth_bp.route('/signup', methods=['POST'])
def signup():
    """Register a new account awaiting approval"""
    data = get_json_body(request)
    email = normalize_email(data.get('email'))
    password = data.get('password')

    if not email or not password:
        return jsonify({'error': 'email and password are required'}), 400

    if len(str(password)) < MIN_PASSWORD_LENGTH:
        return jsonify({'error': f'Password must be at least {MIN_PASSWORD_LENGTH} characters'}), 400

    if User.find_by_email(email):
        return jsonify({'error': 'Email already registered'}), 409

    try:
        user = User(
            email=email,
            password=str(password),
            name=str(data.get('fullName') or '').strip() or email.split('@')[0],
            department=str(data.get('department') or '').strip(),
            status=STATUS_PENDING,
            role=ROLE_USER,
        )
        db.session.add(user)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Signup failed for {email}: {e}')
        return jsonify({'error': 'Could not create account'}), 500

    audit_log('signup', 'User', user.id, after_data={'email': user.email}, actor_id=user.id)
    current_app.logger.info(f'New account pending approval: {user.email}')

    return jsonify({'user': user.to_dict()}), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    """Exchange credentials for a bearer token"""
    data = get_json_body(request)
    email = normalize_email(data.get('email'))
    password = data.get('password')

    if not email or not password:
        return jsonify({'error': 'email and password are required'}), 400

    user = User.find_by_email(email)
    if not user or not user.check_password(str(password)):
        if user:
            audit_log('login', 'User', user.id,
                      after_data={'success': False, 'reason': 'invalid_password'}, actor_id=user.id)
        return jsonify({'error': 'Invalid email or password'}), 401

    if user.status == STATUS_PENDING:
        return jsonify({'error': 'Account pending approval'}), 403
    if user.status == STATUS_INACTIVE:
        return jsonify({'error': 'Account inactive'}), 403

    if not current_app.config.get('JWT_SECRET_KEY'):
        current_app.logger.error('JWT_SECRET is not configured')
        return jsonify({'error': 'Server misconfigured (JWT_SECRET missing)'}), 500

    token = create_access_token(identity=str(user.id), additional_claims=user.token_claims())

    audit_log('login', 'User', user.id, after_data={'success': True}, actor_id=user.id)

    return jsonify({'token': token, 'user': user.to_dict()})


@auth_bp.route('/me', methods=['GET'])
@jwt_user_required
def me():
    """Return the claims carried by the caller's token"""
    claims = get_jwt()
    return jsonify({'user': {
        'id': claims.get('sub'),
        'email': claims.get('email'),
        'name': claims.get('name'),
        'role': claims.get('role'),
        'isWebsiteHead': claims.get('isWebsiteHead', False),
        'permissions': claims.get('permissions', []),
    }})
