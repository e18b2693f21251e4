from datetime import date

import pytest

from hospital_invoicing.models import Invoice, Patient


@pytest.fixture
def hospital(make_hospital):
    return make_hospital()


@pytest.fixture
def raise_invoice(client, editor_headers):
    def post(hospital, patients, **extra):
        body = {'hospitalId': str(hospital.id), 'patientIds': [str(p.id) for p in patients]}
        body.update(extra)
        return client.post('/api/invoices', json=body, headers=editor_headers)
    return post


def reload_patient(patient_id):
    return Patient.query.filter_by(id=patient_id).one()


def test_create_invoice_snapshots_patients(raise_invoice, hospital, make_patient):
    first = make_patient(hospital, name='Asha', bill_amount='10000', share_percent='10')
    second = make_patient(hospital, name='Bala', bill_amount='5000', share_percent='20')

    response = raise_invoice(hospital, [first, second], invoiceDate='2026-04-05')

    assert response.status_code == 201
    data = response.get_json()
    year = date.today().year
    assert data['invoiceNumber'] == f'INV-{year}-001'
    assert data['invoiceDate'] == '2026-04-05'
    assert data['totalAmount'] == 2000
    assert data['balanceAmount'] == 2000
    assert data['status'] == 'Unpaid'
    assert data['hospitalName'] == 'City Care'
    assert [item['patientName'] for item in data['items']] == ['Asha', 'Bala']

    for patient_id in (first.id, second.id):
        patient = reload_patient(patient_id)
        assert patient.invoice_status == 'Invoice Raised'
        assert patient.invoice_number == data['invoiceNumber']
        assert patient.invoice_date == date(2026, 4, 5)


def test_numbers_are_sequential(raise_invoice, hospital, make_patient):
    year = date.today().year
    first = raise_invoice(hospital, [make_patient(hospital, name='A')]).get_json()
    second = raise_invoice(hospital, [make_patient(hospital, name='B')]).get_json()
    assert first['invoiceNumber'] == f'INV-{year}-001'
    assert second['invoiceNumber'] == f'INV-{year}-002'


def test_next_number_preview(client, viewer_headers, raise_invoice, hospital, make_patient):
    year = date.today().year
    raise_invoice(hospital, [make_patient(hospital)])
    response = client.get('/api/invoices/next-number', headers=viewer_headers)
    assert response.get_json() == {'invoiceNumber': f'INV-{year}-002'}

    response = client.get('/api/invoices/next-number?year=2020', headers=viewer_headers)
    assert response.get_json() == {'invoiceNumber': 'INV-2020-001'}


def test_duplicate_supplied_number_conflicts(raise_invoice, hospital, make_patient):
    raise_invoice(hospital, [make_patient(hospital, name='A')], invoiceNumber='INV-2026-050')
    response = raise_invoice(hospital, [make_patient(hospital, name='B')], invoiceNumber='INV-2026-050')
    assert response.status_code == 409
    assert reload_patient(Patient.query.filter_by(name='B').one().id).invoice_status == 'To Be Raised'


def test_patient_cannot_be_invoiced_twice(raise_invoice, hospital, make_patient):
    patient = make_patient(hospital)
    raise_invoice(hospital, [patient])
    response = raise_invoice(hospital, [patient])
    assert response.status_code == 400
    assert Invoice.query.count() == 1


def test_no_share_patient_rejected(raise_invoice, hospital, make_patient):
    patient = make_patient(hospital, share_percent='0')
    response = raise_invoice(hospital, [patient])
    assert response.status_code == 400


def test_patient_from_other_hospital_rejected(raise_invoice, hospital, make_hospital, make_patient):
    other = make_patient(make_hospital('Elsewhere'))
    response = raise_invoice(hospital, [make_patient(hospital), other])
    assert response.status_code == 400
    assert 'does not belong' in response.get_json()['error']
    assert Invoice.query.count() == 0


def test_empty_patient_list_rejected(raise_invoice, hospital):
    response = raise_invoice(hospital, [])
    assert response.status_code == 400


def test_unknown_hospital(client, editor_headers):
    response = client.post('/api/invoices', json={'hospitalId': '999', 'patientIds': ['1']},
                           headers=editor_headers)
    assert response.status_code == 400
    assert response.get_json() == {'error': 'Hospital not found'}


def test_full_payment_marks_paid(client, editor_headers, raise_invoice, hospital, make_patient):
    invoice = raise_invoice(hospital, [make_patient(hospital)]).get_json()
    response = client.post(f"/api/invoices/{invoice['id']}/payments", json={
        'paymentDate': '2026-04-20', 'paidAmount': 900, 'tdsAmount': 100
    }, headers=editor_headers)

    data = response.get_json()
    assert response.status_code == 200
    assert data['status'] == 'Paid'
    assert data['balanceAmount'] == 0
    assert data['shortAmount'] == 0
    assert len(data['payments']) == 1


def test_adjustment_only_payment(client, editor_headers, raise_invoice, hospital, make_patient):
    invoice = raise_invoice(hospital, [make_patient(hospital)]).get_json()
    response = client.post(f"/api/invoices/{invoice['id']}/payments", json={
        'paymentDate': '2026-04-20', 'adjustmentAmount': 200
    }, headers=editor_headers)

    data = response.get_json()
    assert data['status'] == 'Amount Adjusted'
    assert data['balanceAmount'] == 800
    assert data['adjustedAmount'] == 200


def test_tds_computed_from_invoice_percent(client, editor_headers, raise_invoice, hospital, make_patient):
    invoice = raise_invoice(hospital, [make_patient(hospital)], tdsPercent=10).get_json()
    data = client.post(f"/api/invoices/{invoice['id']}/payments", json={
        'paymentDate': '2026-04-20', 'paidAmount': 900
    }, headers=editor_headers).get_json()

    assert data['payments'][0]['tdsAmount'] == 90
    assert data['tdsAmount'] == 90
    assert data['balanceAmount'] == 10
    assert data['status'] == 'Unpaid'


def test_payment_replaced_by_id(client, editor_headers, raise_invoice, hospital, make_patient):
    invoice = raise_invoice(hospital, [make_patient(hospital)]).get_json()
    url = f"/api/invoices/{invoice['id']}/payments"
    payment = client.post(url, json={'paymentDate': '2026-04-20', 'paidAmount': 300},
                          headers=editor_headers).get_json()['payments'][0]

    data = client.post(url, json={'id': payment['id'], 'paymentDate': '2026-04-21', 'paidAmount': 1000},
                       headers=editor_headers).get_json()

    assert len(data['payments']) == 1
    assert data['payments'][0]['paymentDate'] == '2026-04-21'
    assert data['paidAmount'] == 1000
    assert data['status'] == 'Paid'


def test_overpayment_reports_excess(client, editor_headers, raise_invoice, hospital, make_patient):
    invoice = raise_invoice(hospital, [make_patient(hospital)]).get_json()
    data = client.post(f"/api/invoices/{invoice['id']}/payments", json={
        'paymentDate': '2026-04-20', 'paidAmount': 1200
    }, headers=editor_headers).get_json()
    assert data['excessAmount'] == 200
    assert data['balanceAmount'] == 0


def test_payment_errors(client, editor_headers, raise_invoice, hospital, make_patient):
    invoice = raise_invoice(hospital, [make_patient(hospital)]).get_json()
    url = f"/api/invoices/{invoice['id']}/payments"

    unknown = client.post(url, json={'id': '999', 'paymentDate': '2026-04-20', 'paidAmount': 10},
                          headers=editor_headers)
    assert unknown.status_code == 404

    empty = client.post(url, json={'paymentDate': '2026-04-20'}, headers=editor_headers)
    assert empty.status_code == 400

    undated = client.post(url, json={'paidAmount': 10}, headers=editor_headers)
    assert undated.status_code == 400


def test_hold_is_sticky_until_released(client, editor_headers, raise_invoice, hospital, make_patient):
    invoice = raise_invoice(hospital, [make_patient(hospital)]).get_json()
    url = f"/api/invoices/{invoice['id']}"

    held = client.put(url, json={'status': 'Hold'}, headers=editor_headers).get_json()
    assert held['status'] == 'Hold'

    paid = client.post(f'{url}/payments', json={'paymentDate': '2026-04-20', 'paidAmount': 1000},
                       headers=editor_headers).get_json()
    assert paid['status'] == 'Hold'
    assert paid['balanceAmount'] == 0

    released = client.put(url, json={'status': 'Unpaid'}, headers=editor_headers).get_json()
    assert released['status'] == 'Paid'


def test_invalid_status_rejected(client, editor_headers, raise_invoice, hospital, make_patient):
    invoice = raise_invoice(hospital, [make_patient(hospital)]).get_json()
    response = client.put(f"/api/invoices/{invoice['id']}", json={'status': 'Lost'}, headers=editor_headers)
    assert response.status_code == 400


def test_number_and_hospital_are_fixed(client, editor_headers, raise_invoice, hospital, make_patient):
    invoice = raise_invoice(hospital, [make_patient(hospital)]).get_json()
    url = f"/api/invoices/{invoice['id']}"
    assert client.put(url, json={'invoiceNumber': 'INV-1999-001'}, headers=editor_headers).status_code == 400
    assert client.put(url, json={'hospitalId': '42'}, headers=editor_headers).status_code == 400
    assert client.put(url, json={'invoiceNumber': invoice['invoiceNumber']},
                      headers=editor_headers).status_code == 200


def test_change_date_moves_patients(client, editor_headers, raise_invoice, hospital, make_patient):
    patient = make_patient(hospital)
    invoice = raise_invoice(hospital, [patient]).get_json()
    data = client.put(f"/api/invoices/{invoice['id']}", json={'invoiceDate': '2026-06-30'},
                      headers=editor_headers).get_json()
    assert data['month'] == 6
    assert reload_patient(patient.id).invoice_date == date(2026, 6, 30)


def test_replace_items(client, editor_headers, raise_invoice, hospital, make_patient):
    kept = make_patient(hospital, name='Kept', bill_amount='10000')
    dropped = make_patient(hospital, name='Dropped', bill_amount='5000')
    added = make_patient(hospital, name='Added', bill_amount='3000')
    invoice = raise_invoice(hospital, [kept, dropped]).get_json()

    data = client.put(f"/api/invoices/{invoice['id']}", json={
        'patientIds': [str(added.id), str(kept.id)]
    }, headers=editor_headers).get_json()

    assert [item['patientName'] for item in data['items']] == ['Added', 'Kept']
    assert data['totalAmount'] == 1300
    assert reload_patient(dropped.id).invoice_status == 'To Be Raised'
    assert reload_patient(dropped.id).invoice_number == ''
    assert reload_patient(added.id).invoice_number == invoice['invoiceNumber']


def test_items_locked_after_payment(client, editor_headers, raise_invoice, hospital, make_patient):
    patient = make_patient(hospital)
    invoice = raise_invoice(hospital, [patient]).get_json()
    url = f"/api/invoices/{invoice['id']}"
    client.post(f'{url}/payments', json={'paymentDate': '2026-04-20', 'paidAmount': 100}, headers=editor_headers)

    other = make_patient(hospital, name='Late')
    response = client.put(url, json={'patientIds': [str(patient.id), str(other.id)]}, headers=editor_headers)
    assert response.status_code == 409
    assert reload_patient(other.id).invoice_status == 'To Be Raised'


def test_delete_releases_patients(client, editor_headers, raise_invoice, hospital, make_patient):
    patient = make_patient(hospital)
    invoice = raise_invoice(hospital, [patient]).get_json()

    response = client.delete(f"/api/invoices/{invoice['id']}", headers=editor_headers)

    assert response.status_code == 204
    assert Invoice.query.count() == 0
    released = reload_patient(patient.id)
    assert released.invoice_status == 'To Be Raised'
    assert released.invoice_number == ''
    assert released.invoice_date is None


def test_item_snapshot_survives_patient_edit(client, editor_headers, raise_invoice, hospital, make_patient):
    patient = make_patient(hospital)
    invoice = raise_invoice(hospital, [patient]).get_json()
    client.put(f'/api/patients/{patient.id}', json={'name': 'Renamed'}, headers=editor_headers)

    data = client.get(f"/api/invoices/{invoice['id']}", headers=editor_headers).get_json()
    assert data['items'][0]['patientName'] == 'Asha'


def test_list_filters_and_summary(client, viewer_headers, raise_invoice, hospital, make_hospital, make_patient):
    other = make_hospital('Other')
    raise_invoice(hospital, [make_patient(hospital)], invoiceDate='2026-01-10')
    raise_invoice(other, [make_patient(other)], invoiceDate='2026-02-10')

    by_hospital = client.get(f'/api/invoices?hospitalId={other.id}', headers=viewer_headers).get_json()
    assert [inv['hospitalName'] for inv in by_hospital] == ['Other']

    by_month = client.get('/api/invoices?year=2026&month=1', headers=viewer_headers).get_json()
    assert [inv['hospitalName'] for inv in by_month] == ['City Care']

    summary = client.get('/api/invoices?summary=1', headers=viewer_headers).get_json()
    assert len(summary) == 2
    assert 'items' not in summary[0]
    assert summary[0]['invoiceDate'] == '2026-02-10'


def test_export(client, viewer_headers, raise_invoice, hospital, make_patient):
    number = raise_invoice(hospital, [make_patient(hospital)]).get_json()['invoiceNumber']
    response = client.get('/api/invoices/export', headers=viewer_headers)
    assert response.mimetype == 'text/csv'
    lines = response.get_data(as_text=True).strip().splitlines()
    assert len(lines) == 2
    assert number in lines[1]


def test_viewer_cannot_raise_invoice(client, viewer_headers, hospital, make_patient):
    patient = make_patient(hospital)
    response = client.post('/api/invoices', json={'hospitalId': hospital.id, 'patientIds': [patient.id]},
                           headers=viewer_headers)
    assert response.status_code == 403
