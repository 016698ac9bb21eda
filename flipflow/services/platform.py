"""
Hosted platform client.

Thin wrapper over the platform's REST (PostgREST), auth (GoTrue) and storage
HTTP APIs. Every request carries the anon key; calls made on behalf of a
signed-in user also carry the user's access token so row-level security
applies on the server.

Failures are raised as the typed errors in ``flipflow.errors``.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests

from flipflow.errors import (
    AuthError, NetworkError, NotFoundError, PermissionDeniedError, RequestTimeoutError,
    ServerError, SessionExpiredError, ValidationError, FlipFlowError,
)

logger = logging.getLogger(__name__)

SINGLE_OBJECT = 'application/vnd.pgrst.object+json'


def _error_message(response) -> Tuple[str, Optional[str]]:
    try:
        body = response.json()
    except ValueError:
        return (response.text or response.reason or f'HTTP {response.status_code}'), None
    if not isinstance(body, dict):
        return str(body), None
    message = (body.get('message') or body.get('msg') or body.get('error_description')
               or body.get('error') or f'HTTP {response.status_code}')
    return str(message), body.get('code') and str(body.get('code'))


def error_from_response(response) -> FlipFlowError:
    """Map a failed platform response to a typed error."""
    status = response.status_code
    message, code = _error_message(response)
    details = {'status': status, 'code': code}

    if status == 401:
        if 'jwt expired' in message.lower() or code == 'PGRST301':
            return SessionExpiredError(message, details=details)
        return AuthError(message, details=details)
    if status == 403 or code == '42501':
        return PermissionDeniedError(message, details=details)
    if status == 404 or (status == 406 and code == 'PGRST116'):
        return NotFoundError(message, details=details)
    if status in (400, 409, 422):
        return ValidationError(message, details=details)
    if status in (408, 504):
        return RequestTimeoutError(message, details=details)
    if status >= 500:
        return ServerError(message, details=details)
    return FlipFlowError(message, details=details)


def _eq_filters(filters: Optional[Dict[str, Any]]) -> Dict[str, str]:
    params = {}
    for column, value in (filters or {}).items():
        if isinstance(value, bool):
            value = 'true' if value else 'false'
        params[column] = f'eq.{value}'
    return params


class PlatformClient:
    """Client for the hosted database, auth and storage APIs."""

    def __init__(self, base_url: str, anon_key: str, timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.anon_key = anon_key
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config) -> 'PlatformClient':
        return cls(config['SUPABASE_URL'], config['SUPABASE_ANON_KEY'],
                   timeout=config.get('PLATFORM_TIMEOUT', 10.0))

    def _headers(self, token: Optional[str] = None, extra: Optional[Dict[str, str]] = None):
        headers = {
            'apikey': self.anon_key,
            'Authorization': f'Bearer {token or self.anon_key}',
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(self, method: str, path: str, token: Optional[str] = None,
                 headers: Optional[Dict[str, str]] = None, **kwargs):
        url = f'{self.base_url}{path}'
        try:
            response = self.session.request(method, url, headers=self._headers(token, headers),
                                            timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout:
            logger.warning(f"Platform timeout: {method} {path}")
            raise RequestTimeoutError(f'Request timed out: {method} {path}')
        except requests.exceptions.RequestException as e:
            logger.warning(f"Platform request failed: {method} {path}: {e}")
            raise NetworkError(f'Network error: {e}')

        if not response.ok:
            error = error_from_response(response)
            logger.info(f"Platform {method} {path} -> {response.status_code}: {error.message}")
            raise error

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.content

    # Database

    def select(self, table: str, filters: Optional[Dict[str, Any]] = None, token: Optional[str] = None,
               columns: str = '*', order: Optional[str] = None, limit: Optional[int] = None) -> List[Dict]:
        params = {'select': columns}
        params.update(_eq_filters(filters))
        if order:
            params['order'] = order
        if limit is not None:
            params['limit'] = str(limit)
        return self._request('GET', f'/rest/v1/{table}', token=token, params=params) or []

    def select_one(self, table: str, filters: Dict[str, Any], token: Optional[str] = None,
                   columns: str = '*') -> Dict:
        """Fetch exactly one row; raises NotFoundError when there is none."""
        params = {'select': columns}
        params.update(_eq_filters(filters))
        return self._request('GET', f'/rest/v1/{table}', token=token, params=params,
                             headers={'Accept': SINGLE_OBJECT})

    def insert(self, table: str, row: Dict[str, Any], token: Optional[str] = None) -> Dict:
        rows = self._request('POST', f'/rest/v1/{table}', token=token, json=row,
                             headers={'Prefer': 'return=representation'})
        return rows[0] if isinstance(rows, list) and rows else rows

    def update(self, table: str, filters: Dict[str, Any], values: Dict[str, Any],
               token: Optional[str] = None) -> List[Dict]:
        return self._request('PATCH', f'/rest/v1/{table}', token=token, params=_eq_filters(filters),
                             json=values, headers={'Prefer': 'return=representation'}) or []

    def delete(self, table: str, filters: Dict[str, Any], token: Optional[str] = None) -> None:
        self._request('DELETE', f'/rest/v1/{table}', token=token, params=_eq_filters(filters))

    def rpc(self, function: str, params: Optional[Dict[str, Any]] = None, token: Optional[str] = None):
        return self._request('POST', f'/rest/v1/rpc/{function}', token=token, json=params or {})

    # Auth

    def sign_in(self, email: str, password: str) -> Dict:
        return self._request('POST', '/auth/v1/token', params={'grant_type': 'password'},
                             json={'email': email, 'password': password})

    def sign_up(self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None) -> Dict:
        return self._request('POST', '/auth/v1/signup',
                             json={'email': email, 'password': password, 'data': metadata or {}})

    def sign_out(self, token: str) -> None:
        self._request('POST', '/auth/v1/logout', token=token)

    def get_user(self, token: str) -> Dict:
        return self._request('GET', '/auth/v1/user', token=token)

    # Storage

    def upload(self, bucket: str, path: str, data: bytes, content_type: str,
               token: Optional[str] = None, upsert: bool = False) -> Dict:
        return self._request('POST', f'/storage/v1/object/{bucket}/{path}', token=token, data=data,
                             headers={'Content-Type': content_type,
                                      'x-upsert': 'true' if upsert else 'false',
                                      'cache-control': 'max-age=3600'})

    def remove(self, bucket: str, paths: Iterable[str], token: Optional[str] = None):
        return self._request('DELETE', f'/storage/v1/object/{bucket}', token=token,
                             json={'prefixes': list(paths)})

    def create_signed_url(self, bucket: str, path: str, expires_in: int,
                          token: Optional[str] = None) -> str:
        body = self._request('POST', f'/storage/v1/object/sign/{bucket}/{path}', token=token,
                             json={'expiresIn': int(expires_in)})
        signed = (body or {}).get('signedURL') or (body or {}).get('signedUrl')
        if not signed:
            raise ServerError('Signed URL missing from storage response')
        return f'{self.base_url}/storage/v1{signed}'

    def public_url(self, bucket: str, path: str) -> str:
        return f'{self.base_url}/storage/v1/object/public/{bucket}/{path}'
