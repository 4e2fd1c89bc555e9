"""
Credential verification and identity administration.

Firebase Auth backs production; the in-memory provider mints and checks
tokens for tests and local runs.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol

from firebase_admin import App, auth, exceptions

from relay.errors import InvalidCredential, MissingCredential, ValidationFailed
from shared.types import CallerIdentity

logger = logging.getLogger(__name__)

BEARER_SCHEME = "bearer"


class CredentialVerifier(Protocol):
    """Validates a bearer token and returns the identity it proves."""

    def verify(self, token: str) -> CallerIdentity:
        ...


class IdentityAdmin(Protocol):
    """Provisions accounts with the identity provider."""

    def create_user(self, email: str, password: str) -> str:
        ...


def bearer_token(authorization: Optional[str]) -> str:
    """
    Extract the token from an `Authorization: Bearer <token>` header.

    Fails before any provider call when the header or token is absent.
    """
    if not authorization:
        raise MissingCredential()
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != BEARER_SCHEME or not parts[1].strip():
        raise MissingCredential()
    return parts[1]


class FirebaseCredentialVerifier:
    """Verifies Firebase ID tokens with the Admin SDK."""

    def __init__(self, app: Optional[App] = None, check_revoked: bool = False):
        self._app = app
        self._check_revoked = check_revoked

    def verify(self, token: str) -> CallerIdentity:
        try:
            claims = auth.verify_id_token(
                token, app=self._app, check_revoked=self._check_revoked
            )
        except (
            auth.ExpiredIdTokenError,
            auth.RevokedIdTokenError,
            auth.InvalidIdTokenError,
            auth.CertificateFetchError,
            auth.UserDisabledError,
            ValueError,
        ) as exc:
            logger.info("Rejected ID token: %s", exc)
            raise InvalidCredential(detail=str(exc)) from exc
        return CallerIdentity(
            subject_id=claims["uid"], email=claims.get("email") or ""
        )


class FirebaseIdentityAdmin:
    def __init__(self, app: Optional[App] = None):
        self._app = app

    def create_user(self, email: str, password: str) -> str:
        try:
            record = auth.create_user(email=email, password=password, app=self._app)
        except (exceptions.FirebaseError, ValueError) as exc:
            logger.info("Identity provider refused sign-up for %s: %s", email, exc)
            raise ValidationFailed(str(exc)) from exc
        return record.uid


@dataclass
class InMemoryIdentityProvider:
    """Test double acting as both token issuer and account registry."""

    tokens: dict = field(default_factory=dict)
    users: dict = field(default_factory=dict)

    def issue_token(self, subject_id: str, email: str = "") -> str:
        token = uuid.uuid4().hex
        self.tokens[token] = CallerIdentity(subject_id=subject_id, email=email)
        return token

    def revoke(self, token: str) -> None:
        self.tokens.pop(token, None)

    def verify(self, token: str) -> CallerIdentity:
        identity = self.tokens.get(token)
        if identity is None:
            raise InvalidCredential(detail="Unknown or expired token")
        return identity

    def create_user(self, email: str, password: str) -> str:
        if any(existing == email for existing in self.users.values()):
            raise ValidationFailed(
                f"The user with the provided email ({email}) already exists."
            )
        if len(password) < 6:
            raise ValidationFailed("Password must be a string at least 6 characters long.")
        uid = uuid.uuid4().hex[:28]
        self.users[uid] = email
        return uid
