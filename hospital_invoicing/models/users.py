"""
User and page permission models for authentication and access control
"""
from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash
from hospital_invoicing.extensions import db

ROLE_USER = 'user'
ROLE_WEBSITE_HEAD = 'website_head'
ROLES = (ROLE_USER, ROLE_WEBSITE_HEAD)

STATUS_PENDING = 'pending'
STATUS_ACTIVE = 'active'
STATUS_INACTIVE = 'inactive'
USER_STATUSES = (STATUS_PENDING, STATUS_ACTIVE, STATUS_INACTIVE)


def normalize_email(email):
    return str(email or '').strip().lower()


class User(db.Model):
    """Staff account with a role, approval status and per-page permissions"""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    department = db.Column(db.String(100), default='')
    role = db.Column(db.String(20), default=ROLE_USER, nullable=False)
    status = db.Column(db.String(20), default=STATUS_PENDING, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    permissions = db.relationship('PagePermission', backref='user', lazy='select',
                                  cascade='all, delete-orphan', order_by='PagePermission.id')

    def __init__(self, **kwargs):
        password = kwargs.pop('password', None)
        super(User, self).__init__(**kwargs)
        if password is not None:
            self.set_password(password)

    def set_password(self, password):
        """Set password hash"""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        """Check password against hash"""
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def is_website_head(self):
        return self.role == ROLE_WEBSITE_HEAD

    def set_permissions(self, permissions):
        """Replace the page permission list with ``[{page_name, can_view, can_edit}]``"""
        by_page = {p.page_name: p for p in self.permissions}
        seen = set()
        for entry in permissions:
            page_name = entry['page_name']
            seen.add(page_name)
            permission = by_page.get(page_name)
            if permission is None:
                permission = PagePermission(page_name=page_name)
                self.permissions.append(permission)
            permission.can_view = bool(entry.get('can_view'))
            permission.can_edit = bool(entry.get('can_edit'))
        for page_name, permission in by_page.items():
            if page_name not in seen:
                self.permissions.remove(permission)

    def permission_list(self):
        return [p.to_dict() for p in self.permissions]

    def token_claims(self):
        """Claims embedded in the access token"""
        return {
            'email': self.email,
            'name': self.name,
            'role': self.role,
            'isWebsiteHead': self.is_website_head,
            'permissions': self.permission_list(),
        }

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            'id': str(self.id),
            'email': self.email,
            'name': self.name,
            'department': self.department or '',
            'status': self.status or STATUS_PENDING,
            'role': self.role or ROLE_USER,
            'isWebsiteHead': self.is_website_head,
            'permissions': self.permission_list(),
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<User {self.email} ({self.role})>'

    @classmethod
    def find_by_email(cls, email):
        """Find user by email"""
        return cls.query.filter_by(email=normalize_email(email)).first()


class PagePermission(db.Model):
    """View/edit flags for one page of the admin tool"""
    __tablename__ = 'page_permissions'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'page_name', name='uq_page_permission_user_page'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    page_name = db.Column(db.String(50), nullable=False)
    can_view = db.Column(db.Boolean, default=False, nullable=False)
    can_edit = db.Column(db.Boolean, default=False, nullable=False)

    def to_dict(self):
        return {
            'page_name': self.page_name,
            'can_view': bool(self.can_view),
            'can_edit': bool(self.can_edit)
        }

    def __repr__(self):
        return f'<PagePermission {self.page_name}: view={self.can_view} edit={self.can_edit}>'
