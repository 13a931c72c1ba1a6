"""
Identity provider abstraction over Firebase Authentication.

Token verification and account administration go through the Admin SDK.
Password sign-in and reset mails are not part of the Admin SDK, so those
call the Identity Toolkit REST API with the project's web API key.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import requests
from firebase_admin import auth as firebase_auth
from firebase_admin import exceptions as firebase_exceptions

from jobboard.errors import (
    AuthSyncFailed,
    Conflict,
    NotFound,
    Unauthenticated,
    Unauthorized,
)

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"

# Identity Toolkit error codes that mean "wrong email or password".
BAD_CREDENTIAL_CODES = {
    "EMAIL_NOT_FOUND",
    "INVALID_PASSWORD",
    "INVALID_LOGIN_CREDENTIALS",
    "INVALID_EMAIL",
    "USER_DISABLED",
}


class ToolkitRejected(Exception):
    """Non-2xx answer from the Identity Toolkit REST API."""

    def __init__(self, message: str):
        super().__init__(message)
        # Messages look like "INVALID_PASSWORD" or "TOO_MANY_ATTEMPTS_TRY_LATER : ...".
        self.code = (message or "").split(" ")[0]


@dataclass
class VerifiedToken:
    uid: str
    claims: dict = field(default_factory=dict)


@dataclass
class SignInResult:
    uid: str
    id_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None


@dataclass
class Account:
    uid: str
    email: Optional[str]


class IdentityProvider(Protocol):
    """Account and token operations the services rely on."""

    def verify_token(self, token: str) -> VerifiedToken:
        ...

    def create_account(self, email: str, password: str) -> str:
        ...

    def sign_in(self, email: str, password: str) -> SignInResult:
        ...

    def get_account(self, uid: str) -> Account:
        ...

    def update_email(self, uid: str, email: str) -> None:
        ...

    def set_password(self, uid: str, password: str) -> None:
        ...

    def revoke_sessions(self, uid: str) -> None:
        ...

    def send_password_reset(self, email: str) -> None:
        ...

    def delete_account(self, uid: str) -> None:
        ...


def parse_bearer(header: Optional[str]) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not header:
        raise Unauthenticated("Authorization token missing")
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("Malformed authorization header")
    return token.strip()


class InMemoryIdentityProvider:
    """Account registry with opaque tokens, for development and tests."""

    def __init__(self):
        self.accounts: dict[str, dict] = {}
        self.tokens: dict[str, str] = {}
        self.reset_requests: list[str] = []

    def reset(self) -> None:
        self.accounts.clear()
        self.tokens.clear()
        self.reset_requests.clear()

    def _uid_for_email(self, email: str) -> Optional[str]:
        for uid, account in self.accounts.items():
            if account["email"] == email.lower():
                return uid
        return None

    def issue_token(self, uid: str) -> str:
        token = f"test-token-{uuid.uuid4().hex}"
        self.tokens[token] = uid
        return token

    def verify_token(self, token: str) -> VerifiedToken:
        uid = self.tokens.get(token)
        if uid is None or uid not in self.accounts:
            raise Unauthenticated("Invalid authentication token")
        return VerifiedToken(uid=uid, claims={"sub": uid, "email": self.accounts[uid]["email"]})

    def create_account(self, email: str, password: str) -> str:
        if self._uid_for_email(email):
            raise Conflict("The email address is already in use by another account.")
        uid = uuid.uuid4().hex[:28]
        self.accounts[uid] = {"email": email.lower(), "password": password}
        return uid

    def sign_in(self, email: str, password: str) -> SignInResult:
        uid = self._uid_for_email(email)
        if uid is None or self.accounts[uid]["password"] != password:
            raise Unauthorized("Invalid email or password")
        return SignInResult(uid=uid, id_token=self.issue_token(uid), expires_in=3600)

    def get_account(self, uid: str) -> Account:
        account = self.accounts.get(uid)
        if account is None:
            raise NotFound("Authentication account not found")
        return Account(uid=uid, email=account["email"])

    def update_email(self, uid: str, email: str) -> None:
        if uid not in self.accounts:
            raise AuthSyncFailed("Could not update email: account not found")
        other = self._uid_for_email(email)
        if other and other != uid:
            raise AuthSyncFailed("Could not update email: address already in use")
        self.accounts[uid]["email"] = email.lower()

    def set_password(self, uid: str, password: str) -> None:
        if uid not in self.accounts:
            raise AuthSyncFailed("Could not update password: account not found")
        self.accounts[uid]["password"] = password

    def revoke_sessions(self, uid: str) -> None:
        self.tokens = {token: owner for token, owner in self.tokens.items() if owner != uid}

    def send_password_reset(self, email: str) -> None:
        self.reset_requests.append(email.lower())

    def delete_account(self, uid: str) -> None:
        if self.accounts.pop(uid, None) is None:
            raise NotFound("Authentication account not found")
        self.revoke_sessions(uid)


@dataclass
class FirebaseIdentityProvider:
    """Firebase Authentication via the Admin SDK and Identity Toolkit."""

    web_api_key: Optional[str] = None
    app: Optional[Any] = None
    timeout: float = 30.0
    session: requests.Session = field(default_factory=requests.Session, repr=False)

    def verify_token(self, token: str) -> VerifiedToken:
        try:
            claims = firebase_auth.verify_id_token(token, app=self.app, check_revoked=True)
        except (
            firebase_auth.ExpiredIdTokenError,
            firebase_auth.RevokedIdTokenError,
            firebase_auth.InvalidIdTokenError,
            firebase_auth.UserDisabledError,
        ) as e:
            raise Unauthenticated("Invalid authentication token", detail=str(e)) from e
        except firebase_auth.CertificateFetchError as e:
            raise Unauthenticated("Could not verify authentication token", detail=str(e)) from e
        except ValueError as e:
            raise Unauthenticated("Invalid authentication token", detail=str(e)) from e
        return VerifiedToken(uid=claims.get("sub") or claims["uid"], claims=claims)

    def create_account(self, email: str, password: str) -> str:
        try:
            record = firebase_auth.create_user(email=email, password=password, app=self.app)
        except firebase_auth.EmailAlreadyExistsError as e:
            raise Conflict("The email address is already in use by another account.") from e
        except (ValueError, firebase_exceptions.FirebaseError) as e:
            raise AuthSyncFailed("Could not create account", detail=str(e)) from e
        return record.uid

    def sign_in(self, email: str, password: str) -> SignInResult:
        try:
            payload = self._toolkit_call(
                "accounts:signInWithPassword",
                {"email": email, "password": password, "returnSecureToken": True},
            )
        except ToolkitRejected as e:
            if e.code in BAD_CREDENTIAL_CODES:
                raise Unauthorized("Invalid email or password", detail=e.code) from e
            raise AuthSyncFailed("Sign-in failed", detail=e.code) from e
        return SignInResult(
            uid=payload["localId"],
            id_token=payload["idToken"],
            refresh_token=payload.get("refreshToken"),
            expires_in=int(payload["expiresIn"]) if payload.get("expiresIn") else None,
        )

    def get_account(self, uid: str) -> Account:
        try:
            record = firebase_auth.get_user(uid, app=self.app)
        except firebase_auth.UserNotFoundError as e:
            raise NotFound("Authentication account not found") from e
        except firebase_exceptions.FirebaseError as e:
            raise AuthSyncFailed("Could not fetch account", detail=str(e)) from e
        return Account(uid=record.uid, email=record.email)

    def update_email(self, uid: str, email: str) -> None:
        self._update_user(uid, "email", email=email)

    def set_password(self, uid: str, password: str) -> None:
        self._update_user(uid, "password", password=password)

    def revoke_sessions(self, uid: str) -> None:
        try:
            firebase_auth.revoke_refresh_tokens(uid, app=self.app)
        except firebase_exceptions.FirebaseError as e:
            raise AuthSyncFailed("Could not revoke sessions", detail=str(e)) from e

    def send_password_reset(self, email: str) -> None:
        try:
            self._toolkit_call(
                "accounts:sendOobCode",
                {"requestType": "PASSWORD_RESET", "email": email},
            )
        except ToolkitRejected as e:
            raise AuthSyncFailed("Could not send password reset email", detail=e.code) from e

    def delete_account(self, uid: str) -> None:
        try:
            firebase_auth.delete_user(uid, app=self.app)
        except firebase_auth.UserNotFoundError as e:
            raise NotFound("Authentication account not found") from e
        except firebase_exceptions.FirebaseError as e:
            raise AuthSyncFailed("Could not delete account", detail=str(e)) from e

    def _update_user(self, uid: str, what: str, **changes) -> None:
        try:
            firebase_auth.update_user(uid, app=self.app, **changes)
        except (ValueError, firebase_exceptions.FirebaseError) as e:
            raise AuthSyncFailed(f"Could not update {what} in Firebase Auth", detail=str(e)) from e

    def _toolkit_call(self, method: str, body: dict) -> dict:
        if not self.web_api_key:
            raise AuthSyncFailed("FIREBASE_WEB_API_KEY is not configured")
        try:
            response = self.session.post(
                f"{IDENTITY_TOOLKIT_URL}/{method}",
                params={"key": self.web_api_key},
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AuthSyncFailed("Identity service unreachable", detail=str(e)) from e

        if response.ok:
            return response.json()

        try:
            message = response.json().get("error", {}).get("message", "")
        except ValueError:
            message = response.text
        logger.info("Identity Toolkit %s rejected: %s", method, message)
        raise ToolkitRejected(message)
