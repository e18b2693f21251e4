"""
Database models package
"""
from hospital_invoicing.models.users import User, PagePermission
from hospital_invoicing.models.hospitals import Hospital
from hospital_invoicing.models.patients import Patient
from hospital_invoicing.models.billing import Invoice, InvoiceItem, Payment
from hospital_invoicing.models.common import Document, AuditLog

__all__ = [
    'User', 'PagePermission', 'Hospital', 'Patient',
    'Invoice', 'InvoiceItem', 'Payment', 'Document', 'AuditLog'
]
