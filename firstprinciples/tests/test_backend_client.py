"""
Tests for the backend wire client.
"""

import pytest

from firstprinciples.app.db.client import SINGLE_OBJECT_MEDIA_TYPE, BackendClient
from firstprinciples.app.db.errors import (
    AuthenticationError,
    MultipleRowsError,
    NotFoundError,
    PermissionDeniedError,
    PolicyRecursionError,
    TransportError,
    UniqueViolationError,
    error_from_payload,
)
from firstprinciples.app.db.server import create_session_client
from firstprinciples.tests.test_helpers import (
    ALPHA_ORG_ID,
    ANON_KEY,
    BACKEND_URL,
    user_id_for,
)


@pytest.fixture
def client(backend):
    return create_session_client(session=backend)


def test_requires_url_and_key():
    with pytest.raises(ValueError):
        BackendClient("", "key")
    with pytest.raises(ValueError):
        BackendClient(BACKEND_URL, "")


def test_sign_in_persists_session(client, backend):
    session = client.auth.sign_in_with_password("admin@alphaspine.io", "Demo2024!")

    assert session.user.email == "admin@alphaspine.io"
    assert client.auth.get_session() == session
    assert client.access_token == session.access_token

    call = backend.calls[-1]
    assert call["path"] == "/auth/v1/token"
    assert ("grant_type", "password") in call["params"]
    assert call["headers"]["apikey"] == ANON_KEY


def test_sign_in_without_persistence_keeps_client_anonymous(backend):
    client = BackendClient(BACKEND_URL, ANON_KEY, persist_session=False, session=backend)
    client.auth.sign_in_with_password("admin@alphaspine.io", "Demo2024!")
    assert client.auth.get_session() is None
    assert client.access_token is None


def test_bad_credentials_raise_authentication_error(client):
    with pytest.raises(AuthenticationError) as exc_info:
        client.auth.sign_in_with_password("admin@alphaspine.io", "wrong")
    assert exc_info.value.message == "Invalid login credentials"


def test_get_user_without_session_raises(client):
    with pytest.raises(AuthenticationError, match="Auth session missing"):
        client.auth.get_user()


def test_get_user_after_sign_in(client):
    client.auth.sign_in_with_password("clinician1@alphaspine.io", "Demo2024!")
    user = client.auth.get_user()
    assert user.email == "clinician1@alphaspine.io"


def test_sign_out_clears_session(client):
    client.auth.sign_in_with_password("clinician1@alphaspine.io", "Demo2024!")
    client.auth.sign_out()
    assert client.access_token is None


def test_single_row_select_sends_object_header(client, backend):
    client.auth.sign_in_with_password("admin@alphaspine.io", "Demo2024!")
    user_id = user_id_for(backend, "admin@alphaspine.io")

    result = client.table("profiles").select("*").eq("id", user_id).single().execute()

    assert result.data["role"] == "ORG_ADMIN"
    call = backend.calls[-1]
    assert call["headers"]["Accept"] == SINGLE_OBJECT_MEDIA_TYPE
    assert call["headers"]["Authorization"] == f"Bearer {client.access_token}"
    assert ("id", f"eq.{user_id}") in call["params"]


def test_single_row_with_no_match_is_not_found(client):
    client.auth.sign_in_with_password("admin@alphaspine.io", "Demo2024!")
    with pytest.raises(NotFoundError) as exc_info:
        client.table("profiles").select("*").eq("id", "missing").single().execute()
    assert exc_info.value.code == "PGRST116"


def test_single_row_with_many_matches_is_multiple_rows(client):
    client.auth.sign_in_with_password("admin@alphaspine.io", "Demo2024!")
    with pytest.raises(MultipleRowsError):
        client.table("profiles").select("*").eq("org_id", ALPHA_ORG_ID).single().execute()


def test_maybe_single_returns_none_for_no_rows(client):
    client.auth.sign_in_with_password("admin@alphaspine.io", "Demo2024!")
    result = client.table("profiles").select("*").eq("id", "missing").maybe_single().execute()
    assert result.data is None


def test_filters_encode_none_and_booleans(client, backend):
    client.table("notifications").select("id").eq("read_at", None).eq("is_read", False).order("created_at", desc=True).limit(5).execute()
    params = backend.calls[-1]["params"]
    assert ("read_at", "is.null") in params
    assert ("is_read", "eq.false") in params
    assert ("order", "created_at.desc") in params
    assert ("limit", "5") in params


def test_policy_recursion_maps_to_typed_error(client, backend):
    backend.recursion_tables.add("profiles")
    client.auth.sign_in_with_password("admin@alphaspine.io", "Demo2024!")
    with pytest.raises(PolicyRecursionError) as exc_info:
        client.table("profiles").select("*").eq("id", "x").single().execute()
    assert exc_info.value.code == "42P17"


def test_update_without_select_returns_minimal(client, backend):
    user_id = user_id_for(backend, "admin@alphaspine.io")
    client.auth.sign_in_with_password("admin@alphaspine.io", "Demo2024!")
    result = client.table("profiles").update({"name": "Renamed"}).eq("id", user_id).execute()

    assert result.data is None
    assert backend.calls[-1]["headers"]["Prefer"] == "return=minimal"
    assert backend.profile(user_id)["name"] == "Renamed"


def test_transport_failure_raises_transport_error(client, backend):
    backend.unavailable = True
    with pytest.raises(TransportError):
        client.table("organizations").select("*").execute()


class _NonJsonResponse:
    status_code = 502
    content = b"<html>Bad Gateway</html>"

    def json(self):
        raise ValueError("not json")


class _NonJsonTransport:
    def request(self, *args, **kwargs):
        return _NonJsonResponse()


def test_non_json_body_raises_transport_error():
    client = BackendClient(BACKEND_URL, ANON_KEY, session=_NonJsonTransport())
    with pytest.raises(TransportError, match="non-JSON"):
        client.table("organizations").select("*").execute()


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"code": "42501", "message": "permission denied"}, PermissionDeniedError),
        ({"code": "23505", "message": "duplicate key"}, UniqueViolationError),
        ({"code": "PGRST116", "message": "m", "details": "The result contains 0 rows"}, NotFoundError),
        ({"code": "PGRST116", "message": "m", "details": "The result contains 2 rows"}, MultipleRowsError),
    ],
)
def test_error_from_payload(payload, expected):
    error = error_from_payload(400, payload)
    assert type(error) is expected
    assert error.code == payload["code"]


def test_error_from_non_dict_payload():
    error = error_from_payload(503, None)
    assert error.status_code == 503
    assert error.code is None
