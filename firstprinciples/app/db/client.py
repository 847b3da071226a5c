"""
HTTP client for the hosted backend (auth + row query surface).

The backend exposes two surfaces that this module wraps:
- ``/auth/v1``: password sign-in, current user, and (service key only)
  admin invite/delete
- ``/rest/v1/<table>``: equality-filtered selects, inserts and updates, with
  row-level policies evaluated against the bearer token's identity

Every table request sends the project API key in the ``apikey`` header and a
bearer token in ``Authorization``. The bearer is the signed-in user's access
token when one is held, otherwise the API key itself. Which key is used
decides whether row-level policies apply, so clients are built only through
firstprinciples.app.db.server and firstprinciples.app.db.admin.
"""

from typing import Any, Dict, List, Optional, Tuple

import requests
from pydantic import BaseModel, Field

from firstprinciples.app.config import get_backend_timeout
from firstprinciples.app.db.errors import (
    AuthenticationError,
    BackendError,
    NotFoundError,
    TransportError,
    auth_error_from_payload,
    error_from_payload,
)

SINGLE_OBJECT_MEDIA_TYPE = "application/vnd.pgrst.object+json"


class AuthUser(BaseModel):
    """User record returned by the auth subsystem."""

    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = Field(default_factory=dict)


class AuthSession(BaseModel):
    """Session returned by a successful sign-in."""

    access_token: str
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    user: AuthUser


class QueryResult:
    """Result of a table request. ``data`` is a dict for single-row requests."""

    def __init__(self, data: Any, status_code: int):
        self.data = data
        self.status_code = status_code

    def __repr__(self) -> str:
        return f"QueryResult(status_code={self.status_code}, data={self.data!r})"


def _decode(response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as e:
        raise TransportError(
            f"Backend returned a non-JSON body (HTTP {response.status_code})",
            status_code=response.status_code,
        ) from e


def _format_filter_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class BackendClient:
    """
    Minimal client for the hosted backend.

    Args:
        url: Backend base URL (e.g. ``http://127.0.0.1:54321``)
        api_key: Project API key (publishable or service-role)
        access_token: Optional end-user access token to act as
        persist_session: Keep the session returned by sign-in on this client
        session: Optional ``requests.Session`` (tests inject a fake)
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        access_token: Optional[str] = None,
        persist_session: bool = True,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        if not url or not api_key:
            raise ValueError("BackendClient requires both url and api_key")

        self.url = url.rstrip("/")
        self.api_key = api_key
        self.persist_session = persist_session
        self.timeout = timeout if timeout is not None else get_backend_timeout()
        self._access_token = access_token
        self._current_session: Optional[AuthSession] = None
        self._http = session if session is not None else requests.Session()
        self.auth = AuthAPI(self)

    @property
    def access_token(self) -> Optional[str]:
        if self._current_session is not None:
            return self._current_session.access_token
        return self._access_token

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[List[Tuple[str, str]]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        bearer: Optional[str] = None,
    ):
        """
        Send one request to the backend.

        Raises:
            TransportError: If the request could not be completed
        """
        all_headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {bearer or self.access_token or self.api_key}",
        }
        if headers:
            all_headers.update(headers)

        try:
            return self._http.request(
                method,
                f"{self.url}{path}",
                params=params,
                json=json,
                headers=all_headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"Backend request failed: {e}") from e

    def table(self, name: str) -> "TableQuery":
        return TableQuery(self, name)


class AuthAPI:
    """Auth subsystem calls (``/auth/v1``)."""

    def __init__(self, client: BackendClient):
        self._client = client
        self.admin = AdminAuthAPI(client)

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        """
        Sign in with email and password.

        Returns:
            AuthSession bound to the user's identity

        Raises:
            AuthenticationError: If the credentials are rejected
        """
        client = self._client
        response = client.request(
            "POST",
            "/auth/v1/token",
            params=[("grant_type", "password")],
            json={"email": email, "password": password},
            bearer=client.api_key,
        )
        payload = _decode(response)
        if response.status_code >= 400:
            raise auth_error_from_payload(response.status_code, payload)

        session = AuthSession.model_validate(payload)
        if client.persist_session:
            client._current_session = session
        return session

    def get_session(self) -> Optional[AuthSession]:
        return self._client._current_session

    def get_user(self, access_token: Optional[str] = None) -> AuthUser:
        """
        Return the user the access token belongs to.

        Raises:
            AuthenticationError: If there is no token or it is rejected
        """
        client = self._client
        token = access_token or client.access_token
        if not token:
            raise AuthenticationError("Auth session missing")

        response = client.request("GET", "/auth/v1/user", bearer=token)
        payload = _decode(response)
        if response.status_code >= 400:
            raise auth_error_from_payload(response.status_code, payload)
        return AuthUser.model_validate(payload)

    def sign_out(self) -> None:
        self._client._current_session = None


class AdminAuthAPI:
    """Auth admin calls. The backend only honours these with the service-role key."""

    def __init__(self, client: BackendClient):
        self._client = client

    def invite_user_by_email(
        self,
        email: str,
        data: Optional[Dict[str, Any]] = None,
        redirect_to: Optional[str] = None,
    ) -> AuthUser:
        params = [("redirect_to", redirect_to)] if redirect_to else None
        response = self._client.request(
            "POST",
            "/auth/v1/invite",
            params=params,
            json={"email": email, "data": data or {}},
        )
        payload = _decode(response)
        if response.status_code >= 400:
            raise auth_error_from_payload(response.status_code, payload)
        return AuthUser.model_validate(payload)

    def delete_user(self, user_id: str) -> None:
        response = self._client.request("DELETE", f"/auth/v1/admin/users/{user_id}")
        if response.status_code >= 400:
            raise auth_error_from_payload(response.status_code, _decode(response))


class TableQuery:
    """
    Builder for a single request against ``/rest/v1/<table>``.

    Usage:
        client.table("profiles").select("*").eq("id", user_id).single().execute()
        client.table("profiles").insert(row).select().single().execute()
        client.table("profiles").update({"role": "ORG_ADMIN"}).eq("id", user_id).execute()
    """

    def __init__(self, client: BackendClient, table: str):
        self._client = client
        self._table = table
        self._method = "GET"
        self._columns = "*"
        self._filters: List[Tuple[str, str]] = []
        self._order: Optional[str] = None
        self._limit: Optional[int] = None
        self._payload: Any = None
        self._returning = False
        self._single = False
        self._maybe_single = False

    def select(self, columns: str = "*") -> "TableQuery":
        self._columns = columns
        if self._method != "GET":
            self._returning = True
        return self

    def eq(self, column: str, value: Any) -> "TableQuery":
        if value is None:
            self._filters.append((column, "is.null"))
        else:
            self._filters.append((column, f"eq.{_format_filter_value(value)}"))
        return self

    def order(self, column: str, desc: bool = False) -> "TableQuery":
        self._order = f"{column}.{'desc' if desc else 'asc'}"
        return self

    def limit(self, count: int) -> "TableQuery":
        self._limit = count
        return self

    def insert(self, row: Dict[str, Any]) -> "TableQuery":
        self._method = "POST"
        self._payload = row
        return self

    def update(self, values: Dict[str, Any]) -> "TableQuery":
        self._method = "PATCH"
        self._payload = values
        return self

    def single(self) -> "TableQuery":
        """Expect exactly one row; zero raises NotFoundError, several MultipleRowsError."""
        self._single = True
        return self

    def maybe_single(self) -> "TableQuery":
        """Expect at most one row; zero yields ``data=None``."""
        self._single = True
        self._maybe_single = True
        return self

    def _params(self) -> List[Tuple[str, str]]:
        params: List[Tuple[str, str]] = []
        if self._method == "GET" or self._returning:
            params.append(("select", self._columns))
        params.extend(self._filters)
        if self._order:
            params.append(("order", self._order))
        if self._limit is not None:
            params.append(("limit", str(self._limit)))
        return params

    def _headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self._single:
            headers["Accept"] = SINGLE_OBJECT_MEDIA_TYPE
        if self._method != "GET":
            headers["Prefer"] = "return=representation" if self._returning else "return=minimal"
        return headers

    def execute(self) -> QueryResult:
        """
        Send the request.

        Raises:
            BackendError: Subclass matching the backend's error code
        """
        response = self._client.request(
            self._method,
            f"/rest/v1/{self._table}",
            params=self._params(),
            json=self._payload,
            headers=self._headers(),
        )
        payload = _decode(response)

        if response.status_code >= 400:
            error = error_from_payload(response.status_code, payload)
            if self._maybe_single and isinstance(error, NotFoundError):
                return QueryResult(None, response.status_code)
            raise error

        return QueryResult(payload, response.status_code)


__all__ = [
    "AuthSession",
    "AuthUser",
    "BackendClient",
    "BackendError",
    "QueryResult",
    "TableQuery",
]
