"""
Dependency wiring for the FastAPI app.

All service clients live on one `RelayContext`, built once at startup and
stored on `app.state`; request handlers reach it through `get_context`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

import firebase_admin
from fastapi import Depends, Header, Request
from firebase_admin import credentials, firestore

from relay.accounts import AccountService
from relay.auth import (
    CredentialVerifier,
    FirebaseCredentialVerifier,
    FirebaseIdentityAdmin,
    IdentityAdmin,
    InMemoryIdentityProvider,
    bearer_token,
)
from relay.blobstore import BlobStoreClient, DriveBlobStoreClient, InMemoryBlobStoreClient
from relay.config import Settings
from relay.metadata import (
    FirestoreMetadataStore,
    InMemoryMetadataStore,
    MetadataStore,
    SqlMetadataStore,
)
from relay.pipeline import UploadPipeline
from relay.queries import QueryService
from relay.staging import StagingArea
from shared.types import CallerIdentity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelayContext:
    settings: Settings
    verifier: CredentialVerifier
    identity_admin: IdentityAdmin
    staging: StagingArea
    blob_store: BlobStoreClient
    metadata: MetadataStore
    pipeline: UploadPipeline
    queries: QueryService
    accounts: AccountService


def _init_firebase_app(settings: Settings):
    options = {}
    if settings.firebase_database_url:
        options["databaseURL"] = settings.firebase_database_url
    return firebase_admin.initialize_app(
        credentials.Certificate(settings.firebase_credentials_path), options
    )


def build_context(
    settings: Settings,
    *,
    verifier: Optional[CredentialVerifier] = None,
    identity_admin: Optional[IdentityAdmin] = None,
    blob_store: Optional[BlobStoreClient] = None,
    metadata: Optional[MetadataStore] = None,
) -> RelayContext:
    """
    Build every collaborator once. Explicit arguments win; otherwise real
    backends are used when their credentials are present and in-memory ones
    when they are not (or when in-memory backends are forced).
    """
    in_memory = settings.use_in_memory_backends
    firebase_ready = not in_memory and os.path.exists(settings.firebase_credentials_path)
    drive_ready = not in_memory and os.path.exists(settings.drive_credentials_path)
    if drive_ready and blob_store is None and not settings.drive_folder_id:
        raise ValueError(
            "RELAY_DRIVE_FOLDER_ID must be set when Drive credentials are configured"
        )

    firebase_app = None
    if firebase_ready and (verifier is None or identity_admin is None or metadata is None):
        firebase_app = _init_firebase_app(settings)

    if verifier is None or identity_admin is None:
        if firebase_app is not None:
            verifier = verifier or FirebaseCredentialVerifier(firebase_app)
            identity_admin = identity_admin or FirebaseIdentityAdmin(firebase_app)
        else:
            if not in_memory:
                logger.warning(
                    "Firebase credentials not found at %s; using in-memory identity provider",
                    settings.firebase_credentials_path,
                )
            provider = InMemoryIdentityProvider()
            verifier = verifier or provider
            identity_admin = identity_admin or provider

    if metadata is None:
        if settings.database_url and not in_memory:
            metadata = SqlMetadataStore(settings.database_url)
        elif firebase_app is not None:
            metadata = FirestoreMetadataStore(firestore.client(firebase_app))
        else:
            metadata = InMemoryMetadataStore()

    if blob_store is None:
        if drive_ready:
            blob_store = DriveBlobStoreClient.from_service_account_file(
                settings.drive_credentials_path
            )
        else:
            if not in_memory:
                logger.warning(
                    "Drive credentials not found at %s; using in-memory blob store",
                    settings.drive_credentials_path,
                )
            blob_store = InMemoryBlobStoreClient()

    staging = StagingArea(
        settings.staging_dir,
        max_bytes=settings.max_upload_bytes,
        chunk_size=settings.staging_chunk_size,
    )
    pipeline = UploadPipeline(
        verifier,
        staging,
        blob_store,
        metadata,
        container_id=settings.drive_folder_id,
        uploads_collection=settings.uploads_collection,
        download_host=settings.download_host,
        timeout_seconds=settings.remote_call_timeout_seconds,
    )
    queries = QueryService(
        verifier,
        blob_store,
        metadata,
        container_id=settings.drive_folder_id,
        uploads_collection=settings.uploads_collection,
        video_mime_type=settings.video_mime_type,
        download_host=settings.download_host,
        timeout_seconds=settings.remote_call_timeout_seconds,
    )
    accounts = AccountService(
        identity_admin,
        verifier,
        metadata,
        users_collection=settings.users_collection,
    )
    return RelayContext(
        settings=settings,
        verifier=verifier,
        identity_admin=identity_admin,
        staging=staging,
        blob_store=blob_store,
        metadata=metadata,
        pipeline=pipeline,
        queries=queries,
        accounts=accounts,
    )


def get_context(request: Request) -> RelayContext:
    return request.app.state.context


def get_bearer_token(authorization: Optional[str] = Header(default=None)) -> str:
    return bearer_token(authorization)


async def require_caller(
    token: str = Depends(get_bearer_token),
    context: RelayContext = Depends(get_context),
) -> CallerIdentity:
    """Gate for protected routes; verifies the header token on every request."""
    return await context.pipeline.authenticate(token)
