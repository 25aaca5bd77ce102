"""
Async Supabase REST client.

A thin layer over ``httpx`` that speaks PostgREST (``/rest/v1``) and GoTrue
(``/auth/v1``). Every client carries the credential it queries with: the
service role key for privileged work, or a caller's access token so that
row-level security is enforced by the database.
"""

from typing import Any, Dict, List, Optional, Tuple, Union

import httpx

from .query import QueryBuilder
from ...domain.exceptions import BackingStoreQueryError

ParamsType = Union[Dict[str, Any], List[Tuple[str, str]], None]


def _error_message(response: httpx.Response) -> Tuple[str, Optional[str]]:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase, None
    if isinstance(body, dict):
        message = (
            body.get("message")
            or body.get("msg")
            or body.get("error_description")
            or body.get("error")
            or response.reason_phrase
        )
        code = body.get("code") or body.get("error_code")
        return str(message), str(code) if code is not None else None
    return response.reason_phrase, None


class SupabaseClient:
    """Client bound to one credential, sharing a pooled ``httpx.AsyncClient``."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str,
        access_token: Optional[str] = None,
    ):
        self._http = http
        self._api_key = api_key
        self._access_token = access_token or api_key

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._access_token}",
        }

    @staticmethod
    def decode_json(response: httpx.Response, resource: str) -> Any:
        """Decode a successful response body, raising :class:`BackingStoreQueryError` if it is not JSON."""
        try:
            return response.json()
        except ValueError as e:
            raise BackingStoreQueryError(
                f"{resource}: invalid JSON body",
                resource=resource,
                upstream_status=response.status_code,
            ) from e

    def table(self, name: str) -> QueryBuilder:
        return QueryBuilder(self, name)

    async def request(
        self,
        method: str,
        path: str,
        resource: str,
        params: ParamsType = None,
        headers: Optional[Dict[str, str]] = None,
        json: Any = None,
    ) -> httpx.Response:
        """Send one request, raising :class:`BackingStoreQueryError` on failure."""
        merged = dict(self.headers)
        if headers:
            merged.update(headers)
        try:
            response = await self._http.request(
                method, path, params=params, headers=merged, json=json
            )
        except httpx.HTTPError as e:
            raise BackingStoreQueryError(
                f"{resource}: {type(e).__name__}: {e}", resource=resource
            ) from e

        if response.status_code >= 400:
            message, code = _error_message(response)
            raise BackingStoreQueryError(
                f"{resource}: {message}",
                resource=resource,
                upstream_status=response.status_code,
                code=code,
            )
        return response

    async def rpc(self, function: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Call a Postgres function exposed at ``/rest/v1/rpc/<function>``."""
        response = await self.request(
            "POST",
            f"/rest/v1/rpc/{function}",
            resource=function,
            json=params or {},
        )
        if not response.content:
            return None
        return self.decode_json(response, function)

    async def get_user(self) -> Dict[str, Any]:
        """Resolve the access token to its auth user."""
        response = await self.request("GET", "/auth/v1/user", resource="auth.user")
        body = self.decode_json(response, "auth.user")
        if isinstance(body, dict) and isinstance(body.get("user"), dict):
            return body["user"]
        return body if isinstance(body, dict) else {}
