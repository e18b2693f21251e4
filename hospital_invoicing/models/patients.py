"""
Patient visit and billing record model
"""
from datetime import datetime
from hospital_invoicing.extensions import db
from hospital_invoicing.utils.billing import (
    calculate_patient_amounts, patient_invoice_status,
    TO_BE_RAISED, INVOICE_RAISED,
)


class Patient(db.Model):
    """A billable patient visit referred to a partner hospital"""
    __tablename__ = 'patients'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False, index=True)
    phone = db.Column(db.String(20), default='')
    patient_date = db.Column(db.Date, index=True)
    month = db.Column(db.Integer, index=True)
    year = db.Column(db.Integer, index=True)
    service_type = db.Column(db.String(20), default='OP', nullable=False, index=True)  # OP, IP, Diagnostic
    lead_type = db.Column(db.String(20), default='New')  # New, Online, Camp, Review
    source_type = db.Column(db.String(30), default='Meta')  # Meta, Credit Health, GBR, Website, Referral

    hospital_id = db.Column(db.Integer, db.ForeignKey('hospitals.id'), nullable=False, index=True)
    city = db.Column(db.String(100), default='')
    area = db.Column(db.String(100), default='')
    doctor_name = db.Column(db.String(100), default='')
    bd_name = db.Column(db.String(100), default='')
    procedure = db.Column(db.String(200), default='')

    # Billing
    bill_amount = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    dci_charges = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    final_amount = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    share_percent = db.Column(db.Numeric(5, 2), default=0, nullable=False)
    share_amount = db.Column(db.Numeric(12, 2), default=0, nullable=False)

    # Invoicing
    invoice_status = db.Column(db.String(20), default=TO_BE_RAISED, nullable=False, index=True)
    invoice_number = db.Column(db.String(30), default='', index=True)
    invoice_date = db.Column(db.Date)

    remarks = db.Column(db.Text, default='')
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def set_patient_date(self, patient_date):
        self.patient_date = patient_date
        self.month = patient_date.month if patient_date else None
        self.year = patient_date.year if patient_date else None

    def calculate_amounts(self):
        """Recompute final/share amounts and the share-driven invoice status"""
        self.final_amount, self.share_amount = calculate_patient_amounts(
            self.bill_amount, self.dci_charges, self.share_percent
        )
        self.invoice_status = patient_invoice_status(self.share_percent, self.invoice_status)

    @property
    def is_invoiced(self):
        return self.invoice_status == INVOICE_RAISED

    @property
    def is_eligible_for_invoice(self):
        return self.invoice_status == TO_BE_RAISED

    def mark_invoiced(self, invoice_number, invoice_date):
        """Commit the patient to an invoice"""
        self.invoice_status = INVOICE_RAISED
        self.invoice_number = invoice_number
        self.invoice_date = invoice_date

    def release_from_invoice(self):
        """Return the patient to the pool of invoiceable visits"""
        self.invoice_status = TO_BE_RAISED
        self.invoice_number = ''
        self.invoice_date = None

    def to_dict(self):
        """Convert to dictionary for API responses"""
        hospital = self.hospital
        return {
            'id': str(self.id),
            'name': self.name,
            'phone': self.phone or '',
            'patientDate': self.patient_date.isoformat() if self.patient_date else None,
            'month': self.month,
            'year': self.year,
            'serviceType': self.service_type,
            'leadType': self.lead_type or 'New',
            'sourceType': self.source_type or 'Meta',
            'hospitalId': str(self.hospital_id),
            'hospitalName': hospital.name if hospital else '',
            'hospitalAddress': hospital.address if hospital else '',
            'city': self.city or '',
            'area': self.area or '',
            'doctorName': self.doctor_name or '',
            'bdName': self.bd_name or '',
            'procedure': self.procedure or '',
            'billAmount': float(self.bill_amount or 0),
            'dciCharges': float(self.dci_charges or 0),
            'finalAmount': float(self.final_amount or 0),
            'sharePercent': float(self.share_percent or 0),
            'shareAmount': float(self.share_amount or 0),
            'invoiceStatus': self.invoice_status,
            'invoiceNumber': self.invoice_number or '',
            'invoiceDate': self.invoice_date.isoformat() if self.invoice_date else '',
            'remarks': self.remarks or '',
            'createdBy': str(self.created_by_id) if self.created_by_id else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<Patient {self.name}: {self.share_amount} ({self.invoice_status})>'
