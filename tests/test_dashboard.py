import pytest

from hospital_invoicing.utils.reports import invoice_summary


@pytest.fixture
def billed(client, editor_headers, make_hospital, make_patient):
    """One paid OP invoice, one cancelled IP invoice and an uninvoiced no-share visit"""
    hospital = make_hospital()
    op_patient = make_patient(hospital, name='Op', bill_amount='10000', share_percent='10', service_type='OP')
    ip_patient = make_patient(hospital, name='Ip', bill_amount='5000', share_percent='20', service_type='IP')
    make_patient(hospital, name='Free', bill_amount='2000', share_percent='0', service_type='OP')

    paid = client.post('/api/invoices', json={
        'hospitalId': hospital.id, 'patientIds': [op_patient.id], 'invoiceDate': '2026-03-15'
    }, headers=editor_headers).get_json()
    client.post(f"/api/invoices/{paid['id']}/payments", json={
        'paymentDate': '2026-03-20', 'paidAmount': 1000
    }, headers=editor_headers)

    cancelled = client.post('/api/invoices', json={
        'hospitalId': hospital.id, 'patientIds': [ip_patient.id], 'invoiceDate': '2026-03-16'
    }, headers=editor_headers).get_json()
    client.put(f"/api/invoices/{cancelled['id']}", json={'status': 'Cancelled'}, headers=editor_headers)
    return hospital


def test_summary_excludes_cancelled(client, viewer_headers, billed):
    response = client.get('/api/dashboard/stats', headers=viewer_headers)
    assert response.status_code == 200
    summary = response.get_json()['summary']

    assert summary['totalInvoices'] == 2
    assert summary['totalInvoiceAmount'] == 1000
    assert summary['totalPaidAmount'] == 1000
    assert summary['totalUnpaidAmount'] == 0
    assert summary['totalCancelledAmount'] == 1000
    assert summary['paidCount'] == 1
    assert summary['cancelledCount'] == 1
    assert summary['statusCounts']['Cancelled'] == 1


def test_monthly_series(client, viewer_headers, billed):
    stats = client.get('/api/dashboard/stats?year=2026', headers=viewer_headers).get_json()
    assert stats['monthlyInvoices'] == [{'month': 'Mar', 'totalAmount': 1000, 'paidAmount': 1000, 'count': 1}]

    march = stats['monthlyPatients'][0]
    assert march['month'] == 'Mar'
    assert march['op'] == 1000 and march['opCount'] == 2
    assert march['ip'] == 1000 and march['ipCount'] == 1


def test_service_type_breakdown(client, viewer_headers, billed):
    stats = client.get('/api/dashboard/stats', headers=viewer_headers).get_json()
    op = stats['serviceTypes']['OP']
    assert op['count'] == 2
    assert op['raised'] == {'amount': 1000, 'count': 1}
    assert op['noShare'] == {'amount': 2000, 'count': 1}
    assert stats['serviceTypes']['Diagnostic']['count'] == 0

    assert stats['patientStatus']['Invoice Raised'] == {'amount': 2000, 'count': 2}
    assert stats['patientStatus']['No Share']['count'] == 1
    assert stats['cities'] == ['Bengaluru']


def test_filters(client, viewer_headers, billed):
    empty = client.get('/api/dashboard/stats?year=2025', headers=viewer_headers).get_json()
    assert empty['summary']['totalInvoices'] == 0
    assert empty['monthlyPatients'] == []

    paid_only = client.get('/api/dashboard/stats?status=Paid', headers=viewer_headers).get_json()
    assert paid_only['summary']['totalInvoices'] == 1

    by_hospital = client.get(f'/api/dashboard/stats?hospitalId={billed.id}&month=3&year=2026',
                             headers=viewer_headers).get_json()
    assert by_hospital['summary']['totalInvoices'] == 2


def test_invalid_filters(client, viewer_headers):
    assert client.get('/api/dashboard/stats?status=Lost', headers=viewer_headers).status_code == 400
    assert client.get('/api/dashboard/stats?month=13', headers=viewer_headers).status_code == 400
    assert client.get('/api/dashboard/stats?year=abc', headers=viewer_headers).status_code == 400


def test_empty_summary():
    summary = invoice_summary([])
    assert summary['totalInvoices'] == 0
    assert summary['totalInvoiceAmount'] == 0
    assert set(summary['statusCounts']) == {'Unpaid', 'Paid', 'Cancelled', 'Amount Adjusted', 'Hold'}
