"""
Client for the remote form provider.

The provider creates user identities and serves each user's form schema:

    POST {base}/create-user            {"rollNumber": ..., "name": ...}
    GET  {base}/get-form?rollNumber=...

Every failure (transport error, non-success status, non-JSON or malformed
body) is raised as AcquisitionError carrying a message fit for the user.
"""

import logging
from typing import Any, Dict, Optional

import requests

from formwizard.errors import AcquisitionError
from formwizard.schema import FormDefinition, User, parse_form_response

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_URL = 'https://dynamic-form-generator-9rl7.onrender.com'
DEFAULT_TIMEOUT = 10


class FormProviderClient:
    """Blocking HTTP client for the identity and schema endpoints."""

    def __init__(self, base_url: str = DEFAULT_PROVIDER_URL, timeout: float = DEFAULT_TIMEOUT,
                 http: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.http = http or requests.Session()

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'FormProviderClient':
        return cls(
            base_url=config.get('FORM_PROVIDER_URL', DEFAULT_PROVIDER_URL),
            timeout=config.get('FORM_PROVIDER_TIMEOUT', DEFAULT_TIMEOUT)
        )

    def create_user(self, roll_number: str, name: str) -> User:
        """
        Register (or re-register) a user with the provider.

        Raises:
            AcquisitionError: if the provider rejects the login
        """
        self._request(
            'POST', '/create-user',
            default_error='Failed to login',
            json={'rollNumber': roll_number, 'name': name}
        )
        return User(roll_number=roll_number, name=name)

    def get_form(self, roll_number: str) -> FormDefinition:
        """
        Fetch and parse the form schema for a user.

        Raises:
            AcquisitionError: on any failure, SchemaError for a malformed form
        """
        body = self._request(
            'GET', '/get-form',
            default_error='Failed to fetch form structure',
            params={'rollNumber': roll_number}
        )
        return parse_form_response(body)

    def _request(self, method: str, path: str, default_error: str, **kwargs) -> Any:
        url = f'{self.base_url}{path}'
        try:
            response = self.http.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout:
            logger.warning('%s %s timed out after %ss', method, url, self.timeout)
            raise AcquisitionError('The form service did not respond in time')
        except requests.RequestException as e:
            logger.warning('%s %s failed: %s', method, url, e)
            raise AcquisitionError('Unable to reach the form service')

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.ok:
            message = default_error
            if isinstance(body, dict) and body.get('message'):
                message = str(body['message'])
            logger.warning('%s %s returned %s: %s', method, url, response.status_code, message)
            raise AcquisitionError(message, status_code=response.status_code)

        if body is None:
            raise AcquisitionError('The form service returned an unreadable response',
                                   status_code=response.status_code)
        return body
