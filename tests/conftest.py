import pytest
from datetime import date
from decimal import Decimal

from flask_jwt_extended import create_access_token

from hospital_invoicing import create_app, db as _db
from hospital_invoicing.models import User, Hospital, Patient
from hospital_invoicing.security import PAGES


@pytest.fixture
def app(tmp_path):
    app = create_app('testing')
    app.config['UPLOAD_FOLDER'] = str(tmp_path / 'uploads')
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


def make_user(email, role='user', status='active', permissions=None, password='secret123'):
    user = User(email=email, password=password, name=email.split('@')[0], role=role, status=status)
    if permissions:
        user.set_permissions(permissions)
    _db.session.add(user)
    _db.session.commit()
    return user


def bearer(user):
    token = create_access_token(identity=str(user.id), additional_claims=user.token_claims())
    return {'Authorization': f'Bearer {token}'}


def all_pages(can_edit):
    return [{'page_name': page, 'can_view': True, 'can_edit': can_edit} for page in PAGES]


@pytest.fixture
def admin(app):
    return make_user('head@example.com', role='website_head')


@pytest.fixture
def admin_headers(admin):
    return bearer(admin)


@pytest.fixture
def editor(app):
    return make_user('editor@example.com', permissions=all_pages(can_edit=True))


@pytest.fixture
def editor_headers(editor):
    return bearer(editor)


@pytest.fixture
def viewer(app):
    return make_user('viewer@example.com', permissions=all_pages(can_edit=False))


@pytest.fixture
def viewer_headers(viewer):
    return bearer(viewer)


@pytest.fixture
def make_hospital(app):
    def factory(name='City Care', **kwargs):
        fields = {
            'address': '12 MG Road',
            'city': 'Bengaluru',
            'area': 'Indiranagar',
            'op_share': Decimal('10'),
            'ip_share': Decimal('20'),
            'diagnostic_share': Decimal('15'),
            'manual_inactive': False,
        }
        fields.update(kwargs)
        hospital = Hospital(name=name, **fields)
        hospital.refresh_status()
        _db.session.add(hospital)
        _db.session.commit()
        return hospital
    return factory


@pytest.fixture
def make_patient(app):
    def factory(hospital, name='Asha', bill_amount='10000', dci_charges='0', share_percent='10',
                service_type='OP', patient_date=None):
        patient = Patient(
            name=name,
            hospital_id=hospital.id,
            service_type=service_type,
            bill_amount=Decimal(bill_amount),
            dci_charges=Decimal(dci_charges),
            share_percent=Decimal(share_percent),
        )
        patient.set_patient_date(patient_date or date(2026, 3, 10))
        patient.calculate_amounts()
        _db.session.add(patient)
        _db.session.commit()
        return patient
    return factory
