"""
FinSync - Hosted Backend Client

PURPOSE: HTTPS access to the hosted backend's table, auth and function endpoints
SCOPE: PostgREST-style select/insert/update/delete, error translation
DEPENDENCIES: httpx, config.py, errors.py

Every row-level call is scoped by ``user_id``; the backend enforces the same
rule through row-level security, this is a second check on our side.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from .config import config
from .errors import RemoteRejected

logger = logging.getLogger(__name__)

REST_PREFIX = '/rest/v1'
AUTH_PREFIX = '/auth/v1'
FUNCTIONS_PREFIX = '/functions/v1'


def _error_message(response: httpx.Response) -> str:
    """Best-effort human message from an error response body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        for key in ('message', 'msg', 'error_description', 'error', 'detail'):
            if body.get(key):
                return str(body[key])
    return response.reason_phrase or f"HTTP {response.status_code}"


def decode_json(response: httpx.Response, source: str) -> Any:
    """Body of a successful response as JSON. An empty body decodes to ``None``."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as e:
        logger.error(f"Malformed response from {source} (status={response.status_code}): {e}")
        raise RemoteRejected(f"Malformed response from {source}", status_code=response.status_code,
                             retryable=False) from e


def eq(value: Any) -> str:
    """PostgREST equality filter."""
    if isinstance(value, bool):
        value = 'true' if value else 'false'
    return f"eq.{value}"


class BackendClient:
    """Owns the HTTP connection pool shared by all tables of one backend.

    ``token_provider`` returns the signed-in user's access token, or ``None``
    to fall back to the anonymous key.
    """

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None,
                 client: Optional[httpx.AsyncClient] = None,
                 token_provider: Optional[Callable[[], Optional[str]]] = None,
                 timeout: Optional[float] = None):
        self.api_key = api_key if api_key is not None else config.SUPABASE_ANON_KEY
        self.token_provider = token_provider
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=base_url or config.SUPABASE_URL,
            timeout=timeout or config.REQUEST_TIMEOUT,
        )

    async def __aenter__(self) -> 'BackendClient':
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def table(self, name: str) -> 'RestTable':
        return RestTable(self, name)

    def headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        token = self.token_provider() if self.token_provider else None
        headers = {
            'apikey': self.api_key,
            'Authorization': f"Bearer {token or self.api_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request, translating every failure into ``RemoteRejected``."""
        headers = self.headers(kwargs.pop('headers', None))
        try:
            response = await self.client.request(method, path, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            message = _error_message(e.response)
            logger.error(f"{method} {path} rejected with {e.response.status_code}: {message}")
            raise RemoteRejected(message, status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e!r}")
            raise RemoteRejected(str(e) or type(e).__name__) from e
        return response

    async def invoke_function(self, name: str, body: Dict[str, Any]) -> Any:
        response = await self.request('POST', f"{FUNCTIONS_PREFIX}/{name}", json=body)
        return decode_json(response, name)


class RestTable:
    """One backend table: the CRUD-over-HTTPS contract the stores consume."""

    def __init__(self, backend: BackendClient, name: str):
        self.backend = backend
        self.name = name
        self.path = f"{REST_PREFIX}/{name}"

    async def select(self, filters: Dict[str, Any], order: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {'select': '*'}
        params.update({column: eq(value) for column, value in filters.items()})
        if order:
            params['order'] = order
        response = await self.backend.request('GET', self.path, params=params)
        rows = decode_json(response, self.name)
        if not isinstance(rows, list):
            raise RemoteRejected(f"Unexpected response from {self.name}", status_code=response.status_code,
                                 retryable=False)
        return rows

    async def insert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one row and return it as stored (server-assigned id, timestamps)."""
        response = await self.backend.request(
            'POST', self.path, json=row, headers={'Prefer': 'return=representation'}
        )
        data = decode_json(response, self.name)
        if isinstance(data, list):
            data = data[0] if data else None
        if not isinstance(data, dict):
            raise RemoteRejected(f"Insert into {self.name} returned no row", status_code=response.status_code,
                                 retryable=False)
        return data

    async def update(self, record_id: str, owner_id: str, partial: Dict[str, Any]) -> None:
        params = {'id': eq(record_id), 'user_id': eq(owner_id)}
        await self.backend.request('PATCH', self.path, params=params, json=partial)

    async def delete(self, record_id: str, owner_id: str) -> None:
        params = {'id': eq(record_id), 'user_id': eq(owner_id)}
        await self.backend.request('DELETE', self.path, params=params)

    async def delete_where(self, owner_id: str, filters: Dict[str, Any]) -> None:
        params = {column: eq(value) for column, value in filters.items()}
        params['user_id'] = eq(owner_id)
        await self.backend.request('DELETE', self.path, params=params)
