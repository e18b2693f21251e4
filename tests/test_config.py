from datetime import timedelta

import pytest

from hospital_invoicing import create_app
from hospital_invoicing.config import parse_duration


@pytest.mark.parametrize('value, expected', [
    ('7d', timedelta(days=7)),
    ('12h', timedelta(hours=12)),
    ('30m', timedelta(minutes=30)),
    ('45s', timedelta(seconds=45)),
    ('2w', timedelta(weeks=2)),
    ('90', timedelta(seconds=90)),
])
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


def test_parse_duration_default():
    assert parse_duration(None) == timedelta(days=7)
    assert parse_duration('', default=timedelta(hours=1)) == timedelta(hours=1)


def test_parse_duration_rejects_garbage():
    with pytest.raises(ValueError):
        parse_duration('soon')


def test_testing_config():
    app = create_app('testing')
    assert app.config['TESTING'] is True
    assert app.config['SQLALCHEMY_DATABASE_URI'] == 'sqlite:///:memory:'
    assert app.config['JWT_SECRET_KEY']


def test_unknown_route_uses_error_shape(client):
    response = client.get('/api/nothing-here')
    assert response.status_code == 404
    assert 'error' in response.get_json()
