"""
Unit tests for the form provider client.
"""

from unittest import mock

import pytest
import requests

from formwizard.errors import AcquisitionError, SchemaError
from formwizard.provider import FormProviderClient


def fake_response(status_code=200, body=None, json_error=False):
    response = mock.Mock()
    response.status_code = status_code
    response.ok = status_code < 400
    if json_error:
        response.json.side_effect = ValueError('No JSON object could be decoded')
    else:
        response.json.return_value = body
    return response


FORM_BODY = {
    'message': 'Form fetched successfully',
    'form': {
        'formTitle': 'Enrolment',
        'sections': [{
            'title': 'About you',
            'fields': [{'fieldId': 'name', 'type': 'text', 'label': 'Name', 'required': True}]
        }]
    }
}


@pytest.fixture
def http():
    return mock.Mock(spec=requests.Session)


@pytest.fixture
def client(http):
    return FormProviderClient(base_url='https://forms.example.com/', timeout=5, http=http)


class TestCreateUser:
    def test_posts_identity(self, client, http):
        http.request.return_value = fake_response(200, {'message': 'User created'})

        user = client.create_user('R-7', 'Ada')

        assert user.roll_number == 'R-7'
        assert user.name == 'Ada'
        http.request.assert_called_once_with(
            'POST', 'https://forms.example.com/create-user', timeout=5,
            json={'rollNumber': 'R-7', 'name': 'Ada'}
        )

    def test_rejection_uses_provider_message(self, client, http):
        http.request.return_value = fake_response(400, {'message': 'Roll number taken'})

        with pytest.raises(AcquisitionError) as excinfo:
            client.create_user('R-7', 'Ada')

        assert excinfo.value.message == 'Roll number taken'
        assert excinfo.value.status_code == 400

    def test_rejection_without_message(self, client, http):
        http.request.return_value = fake_response(500, json_error=True)

        with pytest.raises(AcquisitionError, match='Failed to login'):
            client.create_user('R-7', 'Ada')


class TestGetForm:
    def test_fetches_and_parses(self, client, http):
        http.request.return_value = fake_response(200, FORM_BODY)

        form = client.get_form('R-7')

        assert form.form_title == 'Enrolment'
        assert form.get_field('name').required is True
        http.request.assert_called_once_with(
            'GET', 'https://forms.example.com/get-form', timeout=5,
            params={'rollNumber': 'R-7'}
        )

    def test_not_found(self, client, http):
        http.request.return_value = fake_response(404, {})

        with pytest.raises(AcquisitionError, match='Failed to fetch form structure'):
            client.get_form('R-7')

    def test_unreadable_body(self, client, http):
        http.request.return_value = fake_response(200, json_error=True)

        with pytest.raises(AcquisitionError, match='unreadable'):
            client.get_form('R-7')

    def test_malformed_form(self, client, http):
        http.request.return_value = fake_response(200, {'form': {'formTitle': 'Empty', 'sections': []}})

        with pytest.raises(SchemaError):
            client.get_form('R-7')

    def test_timeout(self, client, http):
        http.request.side_effect = requests.Timeout('read timed out')

        with pytest.raises(AcquisitionError, match='did not respond in time'):
            client.get_form('R-7')

    def test_connection_error(self, client, http):
        http.request.side_effect = requests.ConnectionError('refused')

        with pytest.raises(AcquisitionError, match='Unable to reach'):
            client.get_form('R-7')


class TestFromConfig:
    def test_reads_provider_settings(self):
        client = FormProviderClient.from_config({
            'FORM_PROVIDER_URL': 'http://localhost:9000',
            'FORM_PROVIDER_TIMEOUT': 3
        })
        assert client.base_url == 'http://localhost:9000'
        assert client.timeout == 3
