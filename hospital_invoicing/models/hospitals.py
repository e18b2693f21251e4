"""
Hospital partner model
"""
from datetime import datetime, date
from flask import current_app, has_app_context
from hospital_invoicing.extensions import db
from hospital_invoicing.utils.billing import resolve_hospital_status, EXPIRY_WARNING_DAYS, HOSPITAL_ACTIVE


def expiry_warning_days():
    if has_app_context():
        return current_app.config.get('HOSPITAL_EXPIRY_WARNING_DAYS', EXPIRY_WARNING_DAYS)
    return EXPIRY_WARNING_DAYS


class Hospital(db.Model):
    """Partner hospital with negotiated service-line shares and an MOU window"""
    __tablename__ = 'hospitals'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, index=True)
    alternate_name = db.Column(db.String(200), index=True)
    address = db.Column(db.Text, default='')
    area = db.Column(db.String(100), default='', index=True)
    city = db.Column(db.String(100), default='', index=True)
    state = db.Column(db.String(100), default='')
    pin_code = db.Column(db.String(20), default='')

    # Share percentages per service line
    op_share = db.Column(db.Numeric(5, 2), default=0, nullable=False)
    ip_share = db.Column(db.Numeric(5, 2), default=0, nullable=False)
    diagnostic_share = db.Column(db.Numeric(5, 2), default=0, nullable=False)

    contact_person = db.Column(db.String(100), default='')
    phone = db.Column(db.String(20), default='')
    email = db.Column(db.String(120), default='')

    # Agreement window
    mou_start_date = db.Column(db.Date)
    mou_end_date = db.Column(db.Date)
    manual_inactive = db.Column(db.Boolean, default=False, nullable=False)
    status = db.Column(db.String(20), default=HOSPITAL_ACTIVE, nullable=False, index=True)  # cached

    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    patients = db.relationship('Patient', backref='hospital', lazy='dynamic')
    invoices = db.relationship('Invoice', backref='hospital', lazy='dynamic')

    def current_status(self, today=None):
        """Status derived from the manual flag and the MOU window"""
        return resolve_hospital_status(
            self.manual_inactive,
            self.mou_start_date,
            self.mou_end_date,
            today or date.today(),
            warning_days=expiry_warning_days(),
        )

    def refresh_status(self, today=None):
        """Recompute the cached status; returns True when it changed"""
        status = self.current_status(today)
        changed = status != self.status
        self.status = status
        return changed

    @property
    def has_links(self):
        return self.patients.count() > 0 or self.invoices.count() > 0

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            'id': str(self.id),
            'name': self.name,
            'alternateName': self.alternate_name or '',
            'address': self.address or '',
            'area': self.area or '',
            'city': self.city or '',
            'state': self.state or '',
            'pinCode': self.pin_code or '',
            'opShare': float(self.op_share or 0),
            'ipShare': float(self.ip_share or 0),
            'diagnosticShare': float(self.diagnostic_share or 0),
            'contactPerson': self.contact_person or '',
            'phone': self.phone or '',
            'email': self.email or '',
            'mouStartDate': self.mou_start_date.isoformat() if self.mou_start_date else None,
            'mouEndDate': self.mou_end_date.isoformat() if self.mou_end_date else None,
            'manualInactive': bool(self.manual_inactive),
            'status': self.current_status(),
            'createdBy': str(self.created_by_id) if self.created_by_id else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<Hospital {self.name}>'

    @classmethod
    def find_by_name(cls, name):
        """Find hospital by name or alternate name, case-insensitive"""
        key = str(name or '').strip().lower()
        if not key:
            return None
        return cls.query.filter(
            db.or_(db.func.lower(cls.name) == key, db.func.lower(cls.alternate_name) == key)
        ).first()
