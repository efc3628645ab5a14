"""
Authentication provider abstraction: Firebase Authentication and an
in-memory implementation for development and tests.

Admin operations go through firebase_admin.auth. Password sign-in and the
password-reset mail are end-user operations that the Admin SDK does not
expose, so those call the Identity Toolkit REST API.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol

import requests
from firebase_admin import auth as firebase_auth

from marketplace.errors import AuthError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1/accounts"
REQUEST_TIMEOUT = 10

LOGIN_ERROR_MESSAGES = {
    "EMAIL_NOT_FOUND": "No user found with this email address.",
    "INVALID_PASSWORD": "Incorrect password. Please try again.",
}
DEFAULT_LOGIN_ERROR = "Login failed. Please check your credentials and try again."


@dataclass
class Identity:
    """The caller behind a verified ID token."""

    uid: str
    display_name: str = ""
    email: Optional[str] = None
    admin: bool = False


@dataclass
class SignInResult:
    uid: str
    id_token: str
    refresh_token: str = ""
    expires_in: int = 3600


class AuthProvider(Protocol):
    def create_user(self, email: str, password: str, display_name: str) -> str:
        """Creates an email/password account and returns its uid."""
        ...

    def update_display_name(self, uid: str, display_name: str) -> None:
        ...

    def delete_user(self, uid: str) -> None:
        ...

    def sign_in(self, email: str, password: str) -> SignInResult:
        ...

    def sign_out(self, uid: str) -> None:
        ...

    def send_password_reset_email(self, email: str) -> None:
        ...

    def verify_id_token(self, id_token: str) -> Identity:
        ...


class FirebaseAuthProvider:
    def __init__(self, app=None, web_api_key: Optional[str] = None):
        self.app = app
        self.web_api_key = web_api_key

    def create_user(self, email: str, password: str, display_name: str) -> str:
        try:
            record = firebase_auth.create_user(
                email=email,
                password=password,
                display_name=display_name,
                app=self.app,
            )
        except firebase_auth.EmailAlreadyExistsError as e:
            raise ValidationError("Email already in use.", field="email") from e
        return record.uid

    def update_display_name(self, uid: str, display_name: str) -> None:
        firebase_auth.update_user(uid, display_name=display_name, app=self.app)

    def delete_user(self, uid: str) -> None:
        try:
            firebase_auth.delete_user(uid, app=self.app)
        except firebase_auth.UserNotFoundError as e:
            raise NotFoundError("auth", uid) from e

    def _identity_toolkit(self, method: str, payload: dict) -> dict:
        if not self.web_api_key:
            raise AuthError("FIREBASE_WEB_API_KEY is not configured")
        response = requests.post(
            f"{IDENTITY_TOOLKIT_URL}:{method}",
            params={"key": self.web_api_key},
            json=payload,
            timeout=REQUEST_TIMEOUT,
        )
        body = response.json()
        if response.status_code != 200:
            code = body.get("error", {}).get("message", "")
            # Codes may carry a suffix, e.g. "TOO_MANY_ATTEMPTS_TRY_LATER : ...".
            raise AuthError(code.split(" ")[0])
        return body

    def sign_in(self, email: str, password: str) -> SignInResult:
        try:
            body = self._identity_toolkit(
                "signInWithPassword",
                {"email": email, "password": password, "returnSecureToken": True},
            )
        except AuthError as e:
            logger.info(f"Login failed for {email}: {e}")
            raise AuthError(
                LOGIN_ERROR_MESSAGES.get(str(e), DEFAULT_LOGIN_ERROR)
            ) from e
        return SignInResult(
            uid=body["localId"],
            id_token=body["idToken"],
            refresh_token=body.get("refreshToken", ""),
            expires_in=int(body.get("expiresIn", 3600)),
        )

    def sign_out(self, uid: str) -> None:
        firebase_auth.revoke_refresh_tokens(uid, app=self.app)

    def send_password_reset_email(self, email: str) -> None:
        self._identity_toolkit(
            "sendOobCode", {"requestType": "PASSWORD_RESET", "email": email}
        )

    def verify_id_token(self, id_token: str) -> Identity:
        try:
            claims = firebase_auth.verify_id_token(
                id_token, app=self.app, check_revoked=True
            )
        except (
            firebase_auth.InvalidIdTokenError,
            firebase_auth.UserDisabledError,
            ValueError,
        ) as e:
            raise AuthError("Invalid token") from e
        return Identity(
            uid=claims["uid"],
            display_name=claims.get("name", ""),
            email=claims.get("email"),
            admin=bool(claims.get("admin", False)),
        )


@dataclass
class _AccountRecord:
    uid: str
    email: str
    password: str
    display_name: str
    admin: bool = False


@dataclass
class InMemoryAuthProvider:
    """Test double for Firebase Authentication."""

    accounts: dict[str, _AccountRecord] = field(default_factory=dict)
    tokens: dict[str, str] = field(default_factory=dict)
    reset_emails: list[str] = field(default_factory=list)

    def _by_email(self, email: str) -> Optional[_AccountRecord]:
        for account in self.accounts.values():
            if account.email == email:
                return account
        return None

    def create_user(self, email: str, password: str, display_name: str) -> str:
        if self._by_email(email):
            raise ValidationError("Email already in use.", field="email")
        uid = uuid.uuid4().hex[:28]
        self.accounts[uid] = _AccountRecord(
            uid=uid, email=email, password=password, display_name=display_name
        )
        return uid

    def update_display_name(self, uid: str, display_name: str) -> None:
        if uid not in self.accounts:
            raise NotFoundError("auth", uid)
        self.accounts[uid].display_name = display_name

    def delete_user(self, uid: str) -> None:
        if self.accounts.pop(uid, None) is None:
            raise NotFoundError("auth", uid)
        self.sign_out(uid)

    def sign_in(self, email: str, password: str) -> SignInResult:
        account = self._by_email(email)
        if account is None:
            raise AuthError(LOGIN_ERROR_MESSAGES["EMAIL_NOT_FOUND"])
        if account.password != password:
            raise AuthError(LOGIN_ERROR_MESSAGES["INVALID_PASSWORD"])
        token = uuid.uuid4().hex
        self.tokens[token] = account.uid
        return SignInResult(uid=account.uid, id_token=token)

    def sign_out(self, uid: str) -> None:
        for token in [t for t, owner in self.tokens.items() if owner == uid]:
            del self.tokens[token]

    def send_password_reset_email(self, email: str) -> None:
        if self._by_email(email) is None:
            raise AuthError("EMAIL_NOT_FOUND")
        self.reset_emails.append(email)

    def verify_id_token(self, id_token: str) -> Identity:
        uid = self.tokens.get(id_token)
        if uid is None or uid not in self.accounts:
            raise AuthError("Invalid token")
        account = self.accounts[uid]
        return Identity(
            uid=uid,
            display_name=account.display_name,
            email=account.email,
            admin=account.admin,
        )

    def set_admin(self, uid: str, admin: bool = True) -> None:
        self.accounts[uid].admin = admin
