"""
Admin API client: typed wrapper over the ``/api`` admin endpoints.

Wraps an ``httpx.Client`` (or a subclass such as Starlette's TestClient)
whose base URL points at the portal server.  Non-2xx responses raise
ApiError; transport failures are reported the same way with status 0.
"""

import logging

import httpx

from .errors import PortalError

logger = logging.getLogger(__name__)


class ApiError(PortalError):
    def __init__(self, status: int, message: str, details=None):
        super().__init__(message, details)
        self.status_code = status


def error_message(response: httpx.Response) -> str:
    """Prefer the server's details string, then its error, then a generic text."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if isinstance(body, dict):
        if isinstance(body.get('details'), str) and body['details']:
            return body['details']
        if body.get('error'):
            return str(body['error'])
    return f"Request failed with status {response.status_code}"


class AdminApi:
    def __init__(self, http: httpx.Client, prefix: str = '/api'):
        self.http = http
        self.prefix = prefix.rstrip('/')

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.prefix}{path}"
        try:
            response = self.http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, url, e)
            raise ApiError(0, f"Network error: {e}") from e

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            details = body.get('details') if isinstance(body, dict) else None
            raise ApiError(response.status_code, error_message(response), details)
        return response

    # ------------------------------------------------------------------
    # Identity and schemas
    # ------------------------------------------------------------------

    def admin_status(self) -> bool:
        return bool(self._request('GET', '/admin/status').json().get('isAdmin'))

    def list_schemas(self) -> list[str]:
        return self._request('GET', '/schemas').json()

    def get_schema(self, table: str) -> dict:
        return self._request('GET', f'/schemas/{table}').json()

    # ------------------------------------------------------------------
    # Table rows
    # ------------------------------------------------------------------

    @staticmethod
    def _query(page=None, limit=None, sort=None, filters=None) -> dict:
        params = {}
        if page is not None:
            params['page'] = page
        if limit is not None:
            params['limit'] = limit
        if sort:
            params['sort'] = sort
        for field, term in (filters or {}).items():
            if term not in (None, ''):
                params[f'{field}_like'] = term
        return params

    def get_table_rows(self, table: str, page=1, limit=50, sort=None, filters=None) -> dict:
        """One page of rows: ``{data, total, page, limit}``."""
        params = self._query(page, limit, sort, filters)
        return self._request('GET', f'/tables/{table}', params=params).json()

    def create_row(self, table: str, data: dict):
        return self._request('POST', f'/tables/{table}', json=data).json()['id']

    def update_row(self, table: str, row_id, data: dict) -> bool:
        return bool(self._request('PUT', f'/tables/{table}/{row_id}', json=data).json()['success'])

    def delete_row(self, table: str, row_id) -> dict:
        return self._request('DELETE', f'/tables/{table}/{row_id}').json()

    def export_csv(self, table: str, sort=None, filters=None) -> bytes:
        params = self._query(sort=sort, filters=filters)
        return self._request('GET', f'/tables/{table}/export', params=params).content

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    def _upload(self, kind: str, filename: str, data: bytes, content_type: str) -> str:
        files = {'file': (filename, data, content_type)}
        return self._request('POST', f'/upload/{kind}', files=files).json()['url']

    def upload_media(self, filename: str, data: bytes,
                     content_type: str = 'application/octet-stream') -> str:
        return self._upload('media', filename, data, content_type)

    def upload_file(self, filename: str, data: bytes,
                    content_type: str = 'application/octet-stream') -> str:
        return self._upload('file', filename, data, content_type)
