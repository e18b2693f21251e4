"""
Bootstrap data: the first website head account
"""
from flask import current_app

from hospital_invoicing.extensions import db
from hospital_invoicing.models.users import User, normalize_email, ROLE_WEBSITE_HEAD, STATUS_ACTIVE
from hospital_invoicing.security import PAGES


def seed_admin(email=None, password=None):
    """Create (or re-activate) the website head named by SEED_ADMIN_EMAIL.

    An existing account keeps its password. Returns None when no seed
    credentials are configured.
    """
    email = normalize_email(email or current_app.config.get('SEED_ADMIN_EMAIL'))
    password = password or current_app.config.get('SEED_ADMIN_PASSWORD')
    if not email or not password:
        return None

    user = User.find_by_email(email)
    created = user is None
    if created:
        user = User(email=email, password=password, name=email.split('@')[0])
        db.session.add(user)

    user.role = ROLE_WEBSITE_HEAD
    user.status = STATUS_ACTIVE
    user.set_permissions([
        {'page_name': page_name, 'can_view': True, 'can_edit': True} for page_name in PAGES
    ])

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(f"{'Created' if created else 'Updated'} admin account {user.email}")
    return user
