# services/auth_service.py
"""
Email/password accounts through the Firebase Identity Toolkit REST API.

Callers only rely on the stable uid returned after a successful sign-up or
sign-in; failures are reduced to a small set of error codes.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

import requests

logger = logging.getLogger(__name__)

IDENTITY_URL = "https://identitytoolkit.googleapis.com/v1/accounts:{action}"

INVALID_CREDENTIALS = "invalid-credentials"
EMAIL_IN_USE = "email-already-in-use"
WEAK_PASSWORD = "weak-password"
UNKNOWN = "unknown"

# Identity Toolkit error message prefix -> our code
_ERROR_CODES = {
    "EMAIL_NOT_FOUND": INVALID_CREDENTIALS,
    "INVALID_PASSWORD": INVALID_CREDENTIALS,
    "INVALID_LOGIN_CREDENTIALS": INVALID_CREDENTIALS,
    "INVALID_EMAIL": INVALID_CREDENTIALS,
    "USER_DISABLED": INVALID_CREDENTIALS,
    "EMAIL_EXISTS": EMAIL_IN_USE,
    "WEAK_PASSWORD": WEAK_PASSWORD,
}


class AuthError(Exception):
    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code


@dataclass(frozen=True)
class AuthSession:
    uid: str
    id_token: str
    email: str
    display_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uid": self.uid,
            "idToken": self.id_token,
            "email": self.email,
            "displayName": self.display_name,
        }


def error_code_for(message: str) -> str:
    key = (message or "").split(" ", 1)[0].split(":", 1)[0].strip()
    return _ERROR_CODES.get(key, UNKNOWN)


class CredentialIssuer:
    def __init__(self, api_key: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.timeout = timeout
        self.http = session or requests.Session()

    def _call(self, action: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise AuthError(UNKNOWN, "FIREBASE_WEB_API_KEY is not set")
        try:
            resp = self.http.post(
                IDENTITY_URL.format(action=action),
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("Identity Toolkit %s request failed: %s", action, e)
            raise AuthError(UNKNOWN, str(e)) from e

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not resp.ok:
            message = ((data.get("error") or {}).get("message")) or f"HTTP {resp.status_code}"
            raise AuthError(error_code_for(message), message)
        return data

    def sign_up(self, email: str, password: str, display_name: str) -> AuthSession:
        if not display_name or not display_name.strip():
            raise AuthError(UNKNOWN, "Display name is required")
        created = self._call("signUp", {"email": email, "password": password, "returnSecureToken": True})
        updated = self._call("update", {
            "idToken": created["idToken"],
            "displayName": display_name.strip(),
            "returnSecureToken": True,
        })
        return AuthSession(
            uid=created["localId"],
            id_token=updated.get("idToken") or created["idToken"],
            email=email,
            display_name=display_name.strip(),
        )

    def sign_in(self, email: str, password: str) -> AuthSession:
        data = self._call("signInWithPassword", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        return AuthSession(
            uid=data["localId"],
            id_token=data["idToken"],
            email=data.get("email", email),
            display_name=data.get("displayName", ""),
        )
