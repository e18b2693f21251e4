"""
Background jobs that keep cached statuses in step with their rules
"""
from datetime import date

from flask import current_app

from hospital_invoicing.extensions import db, celery
from hospital_invoicing.models.billing import Invoice
from hospital_invoicing.models.hospitals import Hospital
from hospital_invoicing.utils.billing import STICKY_INVOICE_STATUSES


def refresh_hospital_status_cache(today=None):
    """Recompute every hospital's stored status; returns how many changed"""
    today = today or date.today()
    changed = 0
    try:
        for hospital in Hospital.query.all():
            if hospital.refresh_status(today):
                changed += 1
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(f'Hospital status refresh on {today.isoformat()}: {changed} changed')
    return changed


def refresh_invoice_status_cache():
    """Replay each invoice's payment ledger; returns how many changed"""
    changed = 0
    try:
        invoices = Invoice.query.filter(Invoice.status.notin_(STICKY_INVOICE_STATUSES)).all()
        for invoice in invoices:
            before = (invoice.status, invoice.balance_amount)
            invoice.apply_ledger()
            if (invoice.status, invoice.balance_amount) != before:
                changed += 1
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(f'Invoice status refresh: {changed} changed')
    return changed


@celery.task(name='hospital_invoicing.tasks.refresh_hospital_statuses')
def refresh_hospital_statuses():
    return refresh_hospital_status_cache()


@celery.task(name='hospital_invoicing.tasks.refresh_invoice_statuses')
def refresh_invoice_statuses():
    return refresh_invoice_status_cache()
