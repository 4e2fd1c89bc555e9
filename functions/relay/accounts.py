"""
Sign-up and sign-in confirmation.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Optional

from relay.auth import CredentialVerifier, IdentityAdmin
from relay.errors import MetadataReadError, MetadataWriteError, UserNotFound, ValidationFailed
from relay.metadata import MetadataStore, MetadataStoreError
from relay.schemas import SignupRequest
from shared.firebase_constants import CREATED_AT_FIELD
from shared.types import CallerIdentity, UserProfile

logger = logging.getLogger(__name__)


def _validate_signup(payload: SignupRequest) -> None:
    if not payload.email or not payload.password or not payload.name:
        raise ValidationFailed("Email, password, and name are required")
    if (
        not payload.income
        or not payload.location
        or not payload.working_status
        or payload.interests is None
        or not payload.about
    ):
        raise ValidationFailed(
            "Income, location, working status, interests, and about are required"
        )
    if not isinstance(payload.interests, list) or len(payload.interests) == 0:
        raise ValidationFailed("Interests must be a non-empty array")


class AccountService:
    def __init__(
        self,
        identity: IdentityAdmin,
        verifier: CredentialVerifier,
        metadata: MetadataStore,
        *,
        users_collection: str,
    ):
        self._identity = identity
        self._verifier = verifier
        self._metadata = metadata
        self._users_collection = users_collection

    async def sign_up(self, payload: SignupRequest) -> CallerIdentity:
        _validate_signup(payload)
        uid = await asyncio.to_thread(
            self._identity.create_user, payload.email, payload.password
        )
        profile = UserProfile(
            id=uid,
            email=payload.email,
            name=payload.name,
            about=payload.about,
            income=payload.income,
            location=payload.location,
            working_status=payload.working_status,
            interests=list(payload.interests),
        )
        document = asdict(profile)
        document[CREATED_AT_FIELD] = datetime.now(timezone.utc)
        try:
            await asyncio.to_thread(
                self._metadata.set, self._users_collection, uid, document
            )
        except MetadataStoreError as exc:
            logger.error("Created user %s but could not store the profile", uid)
            raise MetadataWriteError("Failed to store user profile", detail=str(exc)) from exc
        logger.info("Created user %s", uid)
        return CallerIdentity(subject_id=uid, email=payload.email)

    async def sign_in(self, id_token: Optional[str]) -> CallerIdentity:
        if not id_token:
            raise ValidationFailed("ID token is required")
        caller = await asyncio.to_thread(self._verifier.verify, id_token)
        try:
            profile = await asyncio.to_thread(
                self._metadata.get, self._users_collection, caller.subject_id
            )
        except MetadataStoreError as exc:
            raise MetadataReadError("Failed to fetch user data", detail=str(exc)) from exc
        if profile is None:
            raise UserNotFound()
        return caller
