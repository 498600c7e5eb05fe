from unittest.mock import MagicMock, patch

import pytest
import requests
from firebase_admin import auth

from carelink.core.exceptions import AuthError, ProviderError
from carelink.core.identity import IdentityProvider


def response(ok=True, status=200, body=None):
    r = MagicMock()
    r.ok = ok
    r.status_code = status
    r.json.return_value = body or {}
    r.text = str(body)
    return r


@pytest.fixture
def http():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def provider(http):
    return IdentityProvider(api_key="web-key", base_url="https://idt.test/v1/", timeout=3, http=http)


def test_sign_in_posts_to_identity_toolkit(provider, http):
    http.post.return_value = response(
        body={"localId": "u1", "email": "d@x.com", "idToken": "tok", "refreshToken": "ref"}
    )

    ident = provider.sign_in("d@x.com", "secret1")

    assert (ident.uid, ident.email, ident.id_token, ident.refresh_token) == ("u1", "d@x.com", "tok", "ref")
    http.post.assert_called_once_with(
        "https://idt.test/v1/accounts:signInWithPassword",
        params={"key": "web-key"},
        json={"email": "d@x.com", "password": "secret1", "returnSecureToken": True},
        timeout=3,
    )


def test_create_account_error_message_is_passed_through(provider, http):
    http.post.return_value = response(ok=False, status=400, body={"error": {"message": "EMAIL_EXISTS"}})

    with pytest.raises(ProviderError) as info:
        provider.create_account("d@x.com", "secret1")
    assert info.value.message == "EMAIL_EXISTS"
    assert http.post.call_args[0][0].endswith("accounts:signUp")


def test_network_failure_is_a_provider_error(provider, http):
    http.post.side_effect = requests.ConnectionError("unreachable")

    with pytest.raises(ProviderError):
        provider.sign_in("d@x.com", "secret1")


def test_missing_api_key(http):
    with pytest.raises(ProviderError):
        IdentityProvider(api_key="", http=http).sign_in("d@x.com", "secret1")
    http.post.assert_not_called()


def test_verify_checks_revocation(provider):
    with patch.object(auth, "verify_id_token", return_value={"uid": "u1", "email": "d@x.com"}) as verify:
        ident = provider.verify("tok")

    verify.assert_called_once_with("tok", check_revoked=True)
    assert ident.uid == "u1"
    assert ident.id_token == "tok"


def test_verify_rejects_bad_tokens(provider):
    with patch.object(auth, "verify_id_token", side_effect=ValueError("malformed")):
        with pytest.raises(AuthError):
            provider.verify("tok")


def test_sign_out_revokes_refresh_tokens(provider):
    with patch.object(auth, "revoke_refresh_tokens") as revoke:
        provider.sign_out("u1")
    revoke.assert_called_once_with("u1")
