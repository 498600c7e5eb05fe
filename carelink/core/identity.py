"""
Firebase Authentication client.

Password checks and account creation go through the Identity Toolkit
REST API (the same calls the Firebase web SDK makes); token
verification and session revocation use the Admin SDK.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import requests
from firebase_admin import auth
from firebase_admin.exceptions import FirebaseError

from carelink.core.config import settings
from carelink.core.exceptions import AuthError, ProviderError

logger = logging.getLogger(__name__)


@dataclass
class Identity:
    uid: str
    email: Optional[str] = None
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None


class IdentityProvider:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        http: Optional[requests.Session] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.FIREBASE_WEB_API_KEY
        self.base_url = (base_url or settings.IDENTITY_TOOLKIT_URL).rstrip("/")
        self.timeout = timeout or settings.IDENTITY_TIMEOUT
        self.http = http or requests.Session()

    def _call(self, method: str, payload: dict) -> dict:
        if not self.api_key:
            raise ProviderError("FIREBASE_WEB_API_KEY is not set")

        url = f"{self.base_url}/accounts:{method}"
        try:
            r = self.http.post(url, params={"key": self.api_key}, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.exception("Identity Toolkit %s unreachable", method)
            raise ProviderError(str(exc)) from exc

        if not r.ok:
            try:
                message = r.json().get("error", {}).get("message") or r.text
            except ValueError:
                message = r.text
            logger.warning("Identity Toolkit %s failed: %s %s", method, r.status_code, message)
            raise ProviderError(message)
        return r.json()

    @staticmethod
    def _identity(data: dict) -> Identity:
        return Identity(
            uid=data["localId"],
            email=data.get("email"),
            id_token=data.get("idToken"),
            refresh_token=data.get("refreshToken"),
        )

    def create_account(self, email: str, password: str) -> Identity:
        data = self._call("signUp", {"email": email, "password": password, "returnSecureToken": True})
        return self._identity(data)

    def sign_in(self, email: str, password: str) -> Identity:
        data = self._call(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._identity(data)

    def sign_out(self, uid: str) -> None:
        """Revoke every refresh token of ``uid``; its ID tokens stop verifying."""
        try:
            auth.revoke_refresh_tokens(uid)
        except FirebaseError as exc:
            logger.exception("Could not revoke tokens for %s", uid)
            raise ProviderError(str(exc)) from exc

    def verify(self, id_token: str) -> Identity:
        try:
            decoded = auth.verify_id_token(id_token, check_revoked=True)
        except (ValueError, FirebaseError) as exc:
            raise AuthError("Invalid ID token") from exc
        return Identity(uid=decoded["uid"], email=decoded.get("email"), id_token=id_token)
