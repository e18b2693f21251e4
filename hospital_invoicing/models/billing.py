"""
Billing models for invoices, invoice items and payments
"""
from datetime import datetime
from hospital_invoicing.extensions import db
from hospital_invoicing.utils.billing import (
    accumulate_payments, next_invoice_number, to_money,
    INVOICE_UNPAID, STICKY_INVOICE_STATUSES, ZERO,
)


class Invoice(db.Model):
    """Invoice raised against a hospital for a set of patient shares"""
    __tablename__ = 'invoices'

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(30), unique=True, nullable=False, index=True)
    invoice_date = db.Column(db.Date, nullable=False, index=True)
    month = db.Column(db.Integer, index=True)
    year = db.Column(db.Integer, index=True)

    hospital_id = db.Column(db.Integer, db.ForeignKey('hospitals.id'), nullable=False, index=True)
    # Hospital details as printed on the invoice
    hospital_name = db.Column(db.String(200), default='')
    hospital_address = db.Column(db.Text, default='')
    hospital_city = db.Column(db.String(100), default='')
    hospital_area = db.Column(db.String(100), default='')

    tds_percent = db.Column(db.Numeric(5, 2), default=0, nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    paid_amount = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    tds_amount = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    adjusted_amount = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    balance_amount = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    short_amount = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    excess_amount = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    status = db.Column(db.String(20), default=INVOICE_UNPAID, nullable=False, index=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    items = db.relationship('InvoiceItem', backref='invoice', order_by='InvoiceItem.position',
                            cascade='all, delete-orphan')
    payments = db.relationship('Payment', backref='invoice', order_by='Payment.position',
                               cascade='all, delete-orphan')

    def set_invoice_date(self, invoice_date):
        self.invoice_date = invoice_date
        self.month = invoice_date.month
        self.year = invoice_date.year

    def snapshot_hospital(self, hospital):
        """Copy the hospital details printed on the invoice"""
        self.hospital_id = hospital.id
        self.hospital_name = hospital.name
        self.hospital_address = hospital.address or ''
        self.hospital_city = hospital.city or ''
        self.hospital_area = hospital.area or ''

    @property
    def patient_ids(self):
        return [item.patient_id for item in self.items if item.patient_id is not None]

    @property
    def has_payments(self):
        return len(self.payments) > 0

    def calculate_totals(self):
        """Recompute the item total and then the payment ledger"""
        self.total_amount = to_money(sum((item.share_amount or ZERO for item in self.items), ZERO))
        self.apply_ledger()

    def apply_ledger(self):
        """Fold the payment lines into the aggregate amounts and status"""
        totals = accumulate_payments(self.payments, self.total_amount, self.status)
        self.paid_amount = to_money(totals.paid_amount)
        self.tds_amount = to_money(totals.tds_amount)
        self.adjusted_amount = to_money(totals.adjusted_amount)
        self.balance_amount = to_money(totals.balance_amount)
        self.short_amount = to_money(totals.short_amount)
        self.excess_amount = to_money(totals.excess_amount)
        self.status = totals.status

    def set_status(self, status):
        """Apply an explicit status change from a user.

        Cancelled and Hold are stored as given; any other choice releases the
        manual status and the ledger decides.
        """
        if status in STICKY_INVOICE_STATUSES:
            self.status = status
            return
        self.status = INVOICE_UNPAID
        self.apply_ledger()

    def to_dict(self, include_lines=True):
        """Convert to dictionary for API responses"""
        data = {
            'id': str(self.id),
            'invoiceNumber': self.invoice_number,
            'invoiceDate': self.invoice_date.isoformat() if self.invoice_date else None,
            'month': self.month,
            'year': self.year,
            'hospitalId': str(self.hospital_id),
            'hospitalName': self.hospital_name or '',
            'hospitalAddress': self.hospital_address or '',
            'hospitalCity': self.hospital_city or '',
            'hospitalArea': self.hospital_area or '',
            'tdsPercent': float(self.tds_percent or 0),
            'totalAmount': float(self.total_amount or 0),
            'paidAmount': float(self.paid_amount or 0),
            'tdsAmount': float(self.tds_amount or 0),
            'adjustedAmount': float(self.adjusted_amount or 0),
            'balanceAmount': float(self.balance_amount or 0),
            'shortAmount': float(self.short_amount or 0),
            'excessAmount': float(self.excess_amount or 0),
            'status': self.status,
            'createdBy': str(self.created_by_id) if self.created_by_id else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None
        }
        if include_lines:
            data['items'] = [item.to_dict() for item in self.items]
            data['payments'] = [payment.to_dict() for payment in self.payments]
        return data

    def __repr__(self):
        return f'<Invoice {self.invoice_number}: {self.total_amount} ({self.status})>'

    @classmethod
    def generate_invoice_number(cls, year):
        """Next sequential number for the year, from the numbers already issued"""
        numbers = [row[0] for row in db.session.query(cls.invoice_number)
                   .filter(cls.invoice_number.like(f'INV-{year}%')).all()]
        return next_invoice_number(numbers, year)


class InvoiceItem(db.Model):
    """Snapshot of a patient's billing fields at the time it was invoiced"""
    __tablename__ = 'invoice_items'

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False, index=True)
    position = db.Column(db.Integer, default=0, nullable=False)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id', ondelete='SET NULL'), index=True)
    patient_name = db.Column(db.String(150), nullable=False)
    patient_date = db.Column(db.Date)
    service_type = db.Column(db.String(20), default='')
    bill_amount = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    dci_charges = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    final_amount = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    share_percent = db.Column(db.Numeric(5, 2), default=0, nullable=False)
    share_amount = db.Column(db.Numeric(12, 2), default=0, nullable=False)

    @classmethod
    def from_patient(cls, patient, position=0):
        """Copy the patient's current billing fields"""
        return cls(
            position=position,
            patient_id=patient.id,
            patient_name=patient.name,
            patient_date=patient.patient_date,
            service_type=patient.service_type,
            bill_amount=patient.bill_amount,
            dci_charges=patient.dci_charges,
            final_amount=patient.final_amount,
            share_percent=patient.share_percent,
            share_amount=patient.share_amount,
        )

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            'id': str(self.id) if self.id else None,
            'patientId': str(self.patient_id) if self.patient_id else None,
            'patientName': self.patient_name,
            'patientDate': self.patient_date.isoformat() if self.patient_date else None,
            'serviceType': self.service_type,
            'billAmount': float(self.bill_amount or 0),
            'dciCharges': float(self.dci_charges or 0),
            'finalAmount': float(self.final_amount or 0),
            'sharePercent': float(self.share_percent or 0),
            'shareAmount': float(self.share_amount or 0)
        }

    def __repr__(self):
        return f'<InvoiceItem {self.patient_name}: {self.share_amount}>'


class Payment(db.Model):
    """One ledger line recorded against an invoice"""
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False, index=True)
    position = db.Column(db.Integer, default=0, nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    paid_amount = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    tds_percent = db.Column(db.Numeric(5, 2), default=0, nullable=False)
    tds_amount = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    adjustment_amount = db.Column(db.Numeric(12, 2), default=0, nullable=False)
    remarks = db.Column(db.Text, default='')
    recorded_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            'id': str(self.id) if self.id else None,
            'invoiceId': str(self.invoice_id) if self.invoice_id else None,
            'paymentDate': self.payment_date.isoformat() if self.payment_date else None,
            'paidAmount': float(self.paid_amount or 0),
            'tdsPercent': float(self.tds_percent or 0),
            'tdsAmount': float(self.tds_amount or 0),
            'adjustmentAmount': float(self.adjustment_amount or 0),
            'remarks': self.remarks or '',
            'createdAt': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<Payment {self.payment_date}: {self.paid_amount}>'
