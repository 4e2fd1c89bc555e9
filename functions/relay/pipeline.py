"""
Authenticated upload pipeline: verify, stage, push to the blob store, index.

Each collaborator call is made once, off the event loop, bounded by the
configured timeout. Metadata is written only after the blob store has
confirmed the object. If that write fails the remote object stays in place
and is logged as orphaned; no compensating delete is attempted.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, BinaryIO, Callable, Optional

from relay.auth import CredentialVerifier
from relay.blobstore import BlobStoreClient, download_url
from relay.errors import (
    BlobStoreUnavailable,
    MetadataWriteError,
    MissingFile,
    RelayError,
    StagingIOError,
)
from relay.metadata import MetadataStore, MetadataStoreError
from relay.staging import StagedFile, StagingArea
from shared.types import CallerIdentity, UploadRecord, UploadResult

logger = logging.getLogger(__name__)


@dataclass
class InboundFile:
    """A file attached to an upload request, not yet staged."""

    stream: BinaryIO
    filename: str
    content_type: Optional[str] = None
    declared_size: Optional[int] = None


async def call_remote(
    func: Callable[..., Any],
    *args,
    timeout: float,
    on_timeout: Callable[[], RelayError],
) -> Any:
    """Run a blocking collaborator call in a thread, bounded by `timeout`."""
    try:
        return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise on_timeout() from exc


def build_object_name(owner_id: str, timestamp_ms: int, original_name: str) -> str:
    return f"{owner_id}_{timestamp_ms}_{original_name}"


class UploadPipeline:
    def __init__(
        self,
        verifier: CredentialVerifier,
        staging: StagingArea,
        blob_store: BlobStoreClient,
        metadata: MetadataStore,
        *,
        container_id: str,
        uploads_collection: str,
        download_host: str,
        timeout_seconds: float,
        clock: Callable[[], float] = time.time,
    ):
        self._verifier = verifier
        self._staging = staging
        self._blob_store = blob_store
        self._metadata = metadata
        self._container_id = container_id
        self._uploads_collection = uploads_collection
        self._download_host = download_host
        self._timeout = timeout_seconds
        self._clock = clock

    async def authenticate(self, token: str) -> CallerIdentity:
        return await asyncio.to_thread(self._verifier.verify, token)

    async def handle_upload(self, token: str, inbound: Optional[InboundFile]) -> UploadResult:
        caller = await self.authenticate(token)
        return await self.upload(caller, inbound)

    async def upload(self, caller: CallerIdentity, inbound: Optional[InboundFile]) -> UploadResult:
        if inbound is None or not inbound.filename:
            raise MissingFile()

        async with self._staging.hold(
            inbound.stream,
            inbound.filename,
            inbound.content_type,
            inbound.declared_size,
        ) as staged:
            return await self._relay(caller, staged)

    async def upload_staged(self, caller: CallerIdentity, staged: StagedFile) -> UploadResult:
        """Relay a file the intake has already staged; it is released here."""
        async with self._staging.held(staged):
            return await self._relay(caller, staged)

    async def _relay(self, caller: CallerIdentity, staged: StagedFile) -> UploadResult:
        now = self._clock()
        object_name = build_object_name(caller.subject_id, int(now * 1000), staged.original_name)
        object_id = await self._push(staged, object_name)
        object_url = download_url(object_id, self._download_host)

        record = UploadRecord(
            owner_id=caller.subject_id,
            object_id=object_id,
            object_url=object_url,
            file_name=staged.original_name,
            mime_type=staged.mime_type,
            uploaded_at=datetime.fromtimestamp(now, tz=timezone.utc),
        )
        await self._record(record)

        logger.info(
            "Uploaded %s for %s as %s (%d bytes)",
            staged.original_name,
            caller.subject_id,
            object_id,
            staged.size_bytes,
        )
        return UploadResult(object_id=object_id, object_url=object_url)

    async def _push(self, staged: StagedFile, object_name: str) -> str:
        def push() -> str:
            try:
                stream = staged.open()
            except OSError as exc:
                raise StagingIOError(detail=str(exc)) from exc
            with stream:
                remote = self._blob_store.create(
                    object_name, self._container_id, staged.mime_type, stream
                )
            return remote.object_id

        return await call_remote(
            push,
            timeout=self._timeout,
            on_timeout=lambda: self._push_timed_out(object_name),
        )

    def _push_timed_out(self, object_name: str) -> RelayError:
        # The worker thread is not cancelled and may still create the object.
        logger.error(
            "Push of %s timed out after %ss; a late completion leaves it without an "
            "upload record, reconcile manually",
            object_name,
            self._timeout,
        )
        return BlobStoreUnavailable(detail=f"Blob store did not answer within {self._timeout}s")

    async def _record(self, record: UploadRecord) -> None:
        try:
            await call_remote(
                self._metadata.insert,
                self._uploads_collection,
                record.as_document(),
                timeout=self._timeout,
                on_timeout=lambda: MetadataWriteError(
                    detail=f"Metadata store did not answer within {self._timeout}s"
                ),
            )
        except MetadataWriteError:
            self._log_orphan(record)
            raise
        except MetadataStoreError as exc:
            self._log_orphan(record)
            raise MetadataWriteError(detail=str(exc)) from exc

    def _log_orphan(self, record: UploadRecord) -> None:
        logger.error(
            "Object %s for owner %s has no upload record; reconcile manually",
            record.object_id,
            record.owner_id,
        )
