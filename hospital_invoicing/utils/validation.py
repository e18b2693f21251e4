"""
Request payload parsing helpers
"""
from datetime import datetime
from decimal import Decimal

from hospital_invoicing.utils.billing import to_decimal, to_money, ZERO

DATE_FORMATS = ('%Y-%m-%d', '%d-%m-%Y', '%d/%m/%Y', '%m/%d/%Y', '%Y/%m/%d')


class ValidationError(ValueError):
    """Raised when request data fails validation; rendered as HTTP 400"""

    def __init__(self, message):
        super().__init__(message)
        self.message = message


def parse_id(value, label='id'):
    """Parse a string path id into an integer primary key"""
    if isinstance(value, int):
        return value
    if value is None or not str(value).strip().isdigit():
        raise ValidationError(f'Invalid {label}')
    return int(str(value).strip())


def parse_date(value, field, required=False):
    """Parse an ISO (or common day-first) date string"""
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f'{field} is required')
        return None
    if isinstance(value, datetime):
        return value.date()

    text = str(value).strip()
    # Accept full ISO timestamps as sent by browsers
    if 'T' in text:
        text = text.split('T', 1)[0]
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValidationError(f'{field} must be a valid date (YYYY-MM-DD)')


def parse_amount(value, field, default=ZERO):
    """Parse a non-negative monetary amount"""
    if value is None or value == '':
        return default
    try:
        amount = to_money(value)
    except (ValueError, ArithmeticError):
        raise ValidationError(f'{field} must be a number')
    if not amount.is_finite():
        raise ValidationError(f'{field} must be a number')
    if amount < ZERO:
        raise ValidationError(f'{field} must not be negative')
    return amount


def parse_percent(value, field, default=ZERO):
    """Parse a percentage between 0 and 100"""
    if value is None or value == '':
        return default
    try:
        percent = to_decimal(value)
    except (ValueError, ArithmeticError):
        raise ValidationError(f'{field} must be a number')
    if not percent.is_finite() or percent < ZERO or percent > Decimal('100'):
        raise ValidationError(f'{field} must be between 0 and 100')
    return percent


def parse_bool(value):
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ('true', '1', 'yes', 'on')


def parse_choice(value, field, choices, default=None):
    if value is None or value == '':
        if default is None:
            raise ValidationError(f'{field} is required')
        return default
    if value not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return value


def require_fields(data, *fields):
    """Raise for the first missing or blank field"""
    missing = [f for f in fields if data.get(f) in (None, '')]
    if missing:
        raise ValidationError(f"{' and '.join(missing)} {'is' if len(missing) == 1 else 'are'} required")


def get_json_body(request):
    """Return the JSON object body of a request or raise"""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data
