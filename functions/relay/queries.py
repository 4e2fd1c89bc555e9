"""
Read paths: the caller's indexed uploads, and a live listing of the shared
container. The two are independent and not guaranteed to agree.
"""

from __future__ import annotations

import asyncio
import logging

from relay.auth import CredentialVerifier
from relay.blobstore import BlobStoreClient, download_url
from relay.errors import BlobStoreUnavailable, MetadataReadError, NoVideosFound
from relay.metadata import MetadataStore, MetadataStoreError
from relay.pipeline import call_remote
from shared.firebase_constants import UPLOADED_AT_FIELD
from shared.types import CallerIdentity, UploadRecord, VideoRef

logger = logging.getLogger(__name__)


class QueryService:
    def __init__(
        self,
        verifier: CredentialVerifier,
        blob_store: BlobStoreClient,
        metadata: MetadataStore,
        *,
        container_id: str,
        uploads_collection: str,
        video_mime_type: str,
        download_host: str,
        timeout_seconds: float,
    ):
        self._verifier = verifier
        self._blob_store = blob_store
        self._metadata = metadata
        self._container_id = container_id
        self._uploads_collection = uploads_collection
        self._video_mime_type = video_mime_type
        self._download_host = download_host
        self._timeout = timeout_seconds

    async def list_mine(self, token: str) -> list[UploadRecord]:
        caller = await asyncio.to_thread(self._verifier.verify, token)
        return await self.list_for(caller)

    async def list_for(self, caller: CallerIdentity) -> list[UploadRecord]:
        """Upload records owned by `caller`, most recent first."""
        try:
            documents = await call_remote(
                self._metadata.query_by_owner,
                self._uploads_collection,
                caller.subject_id,
                UPLOADED_AT_FIELD,
                True,
                timeout=self._timeout,
                on_timeout=lambda: MetadataReadError(
                    detail=f"Metadata store did not answer within {self._timeout}s"
                ),
            )
        except MetadataStoreError as exc:
            raise MetadataReadError(detail=str(exc)) from exc
        return [UploadRecord.from_document(doc) for doc in documents]

    async def list_container_videos(self) -> list[VideoRef]:
        objects = await call_remote(
            self._blob_store.list,
            self._container_id,
            self._video_mime_type,
            timeout=self._timeout,
            on_timeout=lambda: BlobStoreUnavailable(
                "Failed to fetch videos",
                detail=f"Blob store did not answer within {self._timeout}s",
            ),
        )
        if not objects:
            logger.info("No videos found in container %s", self._container_id)
            raise NoVideosFound()
        logger.info("Found %d videos in container %s", len(objects), self._container_id)
        return [
            VideoRef(
                object_id=remote.object_id,
                name=remote.name,
                url=download_url(remote.object_id, self._download_host),
            )
            for remote in objects
        ]
