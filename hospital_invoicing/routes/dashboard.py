"""
Dashboard routes
"""
from flask import Blueprint, request, jsonify
from hospital_invoicing.security import require_page_permission
from hospital_invoicing.utils.billing import INVOICE_STATUSES
from hospital_invoicing.utils.reports import dashboard_stats
from hospital_invoicing.utils.validation import ValidationError, parse_id

dashboard_bp = Blueprint('dashboard', __name__)


def _list_arg(name):
    """Values of a filter given as repeated or comma-separated query parameters"""
    values = []
    for raw in request.args.getlist(name):
        values.extend(part.strip() for part in raw.split(',') if part.strip())
    return values


def _int_list_arg(name, low=None, high=None):
    values = []
    for value in _list_arg(name):
        if not value.isdigit():
            raise ValidationError(f'{name} must be a number')
        number = int(value)
        if (low is not None and number < low) or (high is not None and number > high):
            raise ValidationError(f'{name} must be between {low} and {high}')
        values.append(number)
    return values


@dashboard_bp.route('/stats', methods=['GET'])
@require_page_permission('dashboard')
def stats():
    """Invoice and patient figures for the dashboard"""
    statuses = _list_arg('status')
    for status in statuses:
        if status not in INVOICE_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(INVOICE_STATUSES)}")

    return jsonify(dashboard_stats(
        years=_int_list_arg('year'),
        months=_int_list_arg('month', 1, 12),
        appointment_months=_int_list_arg('appointmentMonth', 1, 12),
        hospital_ids=[parse_id(value, 'hospitalId') for value in _list_arg('hospitalId')],
        cities=_list_arg('city'),
        areas=_list_arg('area'),
        statuses=statuses,
    ))
