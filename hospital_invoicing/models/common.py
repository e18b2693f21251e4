"""
Common models for document attachments and audit trails
"""
import os
from datetime import datetime
from hospital_invoicing.extensions import db

ENTITY_HOSPITAL = 'hospital'
ENTITY_PATIENT = 'patient'
DOCUMENT_ENTITIES = (ENTITY_HOSPITAL, ENTITY_PATIENT)


def remove_stored_file(file_path):
    """Delete an uploaded file if it is still on disk"""
    if file_path and os.path.exists(file_path):
        os.remove(file_path)


class Document(db.Model):
    """File attached to a hospital (MOU) or a patient (bill)"""
    __tablename__ = 'documents'

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(20), nullable=False, index=True)  # hospital, patient
    entity_id = db.Column(db.Integer, nullable=False, index=True)
    document_type = db.Column(db.String(50), default='attachment', nullable=False)  # mou, bill, attachment
    file_name = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.String(500), nullable=False)
    file_size = db.Column(db.Integer)  # Size in bytes
    mime_type = db.Column(db.String(100))
    uploaded_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            'id': str(self.id),
            'entityType': self.entity_type,
            'entityId': str(self.entity_id),
            'documentType': self.document_type,
            'fileName': self.file_name,
            'fileSize': self.file_size,
            'mimeType': self.mime_type,
            'uploadedBy': str(self.uploaded_by_id) if self.uploaded_by_id else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<Document {self.entity_type}:{self.entity_id} {self.file_name}>'

    @classmethod
    def for_entity(cls, entity_type, entity_id):
        return cls.query.filter_by(entity_type=entity_type, entity_id=entity_id)\
                        .order_by(cls.created_at.desc()).all()


class AuditLog(db.Model):
    """Audit log model for tracking system changes"""
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), index=True)
    action = db.Column(db.String(100), nullable=False, index=True)  # create, update, delete, login, payment, etc.
    entity = db.Column(db.String(100), nullable=False, index=True)  # Hospital, Patient, Invoice, User
    entity_id = db.Column(db.Integer, index=True)
    before_json = db.Column(db.JSON)
    after_json = db.Column(db.JSON)
    ip_address = db.Column(db.String(45))
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f'<AuditLog {self.action} {self.entity}:{self.entity_id}>'
