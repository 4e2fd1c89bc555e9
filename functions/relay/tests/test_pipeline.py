import io
import itertools
import os
import shutil
import tempfile
import time
import unittest
from unittest.mock import patch

from relay.auth import InMemoryIdentityProvider
from relay.blobstore import InMemoryBlobStoreClient, download_url
from relay.errors import (
    BlobStoreUnavailable,
    InvalidCredential,
    MetadataWriteError,
    MissingFile,
    PayloadTooLarge,
    StagingIOError,
)
from relay.metadata import InMemoryMetadataStore, MetadataStoreError
from relay.pipeline import InboundFile, UploadPipeline, build_object_name
from relay.staging import StagedFile, StagingArea
from shared.types import CallerIdentity, UploadRecord

FOLDER_ID = "folder-1"


class FailingBlobStore(InMemoryBlobStoreClient):
    def create(self, name, container_id, mime_type, stream):
        raise BlobStoreUnavailable(detail="drive is down")


class SlowBlobStore(InMemoryBlobStoreClient):
    def create(self, name, container_id, mime_type, stream):
        time.sleep(0.5)
        return super().create(name, container_id, mime_type, stream)


class FailingMetadataStore(InMemoryMetadataStore):
    def insert(self, collection, document):
        raise MetadataStoreError("firestore unavailable")


def _inbound(data: bytes = b"video-bytes", filename: str = "clip.mp4") -> InboundFile:
    return InboundFile(
        stream=io.BytesIO(data),
        filename=filename,
        content_type="video/mp4",
        declared_size=len(data),
    )


class UploadPipelineTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.directory = tempfile.mkdtemp()
        self.identity = InMemoryIdentityProvider()
        self.blob_store = InMemoryBlobStoreClient()
        self.metadata = InMemoryMetadataStore()
        self.staging = StagingArea(self.directory, max_bytes=64, chunk_size=8)
        self.ticks = itertools.count(1_700_000_000)

    def tearDown(self):
        shutil.rmtree(self.directory, ignore_errors=True)

    def _pipeline(self, blob_store=None, metadata=None, timeout=5.0):
        return UploadPipeline(
            self.identity,
            self.staging,
            blob_store or self.blob_store,
            metadata or self.metadata,
            container_id=FOLDER_ID,
            uploads_collection="uploads",
            download_host="drive.google.com",
            timeout_seconds=timeout,
            clock=lambda: float(next(self.ticks)),
        )

    def _records(self, owner_id):
        docs = self.metadata.query_by_owner("uploads", owner_id, "uploadedAt")
        return [UploadRecord.from_document(doc) for doc in docs]

    def assertStagingEmpty(self):
        self.assertEqual(os.listdir(self.directory), [])

    async def test_successful_upload_is_stored_and_indexed(self):
        token = self.identity.issue_token("alice", "alice@example.com")
        result = await self._pipeline().handle_upload(token, _inbound())

        self.assertEqual(result.object_url, download_url(result.object_id))
        container, remote, data = self.blob_store.objects[result.object_id]
        self.assertEqual(container, FOLDER_ID)
        self.assertEqual(remote.name, "alice_1700000000000_clip.mp4")
        self.assertEqual(data, b"video-bytes")

        records = self._records("alice")
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].object_id, result.object_id)
        self.assertEqual(records[0].owner_id, "alice")
        self.assertEqual(records[0].file_name, "clip.mp4")
        self.assertEqual(records[0].mime_type, "video/mp4")
        self.assertStagingEmpty()

    async def test_owner_is_always_the_verified_caller(self):
        token = self.identity.issue_token("bob")
        result = await self._pipeline().handle_upload(token, _inbound())
        self.assertEqual(self._records("alice"), [])
        self.assertEqual([r.object_id for r in self._records("bob")], [result.object_id])

    async def test_invalid_token_stops_before_staging(self):
        with self.assertRaises(InvalidCredential):
            await self._pipeline().handle_upload("forged", _inbound())
        self.assertEqual(self.blob_store.objects, {})
        self.assertStagingEmpty()

    async def test_missing_file(self):
        token = self.identity.issue_token("alice")
        for inbound in (None, _inbound(filename="")):
            with self.subTest(inbound=inbound):
                with self.assertRaises(MissingFile):
                    await self._pipeline().handle_upload(token, inbound)
        self.assertEqual(self.metadata.count("uploads"), 0)
        self.assertStagingEmpty()

    async def test_oversized_upload(self):
        token = self.identity.issue_token("alice")
        with self.assertRaises(PayloadTooLarge):
            await self._pipeline().handle_upload(token, _inbound(b"x" * 65))
        self.assertEqual(self.blob_store.objects, {})
        self.assertStagingEmpty()

    async def test_upload_at_ceiling(self):
        token = self.identity.issue_token("alice")
        result = await self._pipeline().handle_upload(token, _inbound(b"x" * 64))
        self.assertEqual(self.blob_store.get_bytes(result.object_id), b"x" * 64)

    async def test_blob_store_failure_leaves_no_record(self):
        token = self.identity.issue_token("alice")
        with self.assertRaises(BlobStoreUnavailable):
            await self._pipeline(blob_store=FailingBlobStore()).handle_upload(token, _inbound())
        self.assertEqual(self.metadata.count("uploads"), 0)
        self.assertStagingEmpty()

    async def test_metadata_failure_keeps_remote_object(self):
        token = self.identity.issue_token("alice")
        pipeline = self._pipeline(metadata=FailingMetadataStore())
        with self.assertLogs("relay.pipeline", level="ERROR") as logs:
            with self.assertRaises(MetadataWriteError) as ctx:
                await pipeline.handle_upload(token, _inbound())
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(len(self.blob_store.objects), 1)
        orphan_id = next(iter(self.blob_store.objects))
        self.assertIn(orphan_id, "\n".join(logs.output))
        self.assertStagingEmpty()

    async def test_slow_blob_store_times_out(self):
        token = self.identity.issue_token("alice")
        pipeline = self._pipeline(blob_store=SlowBlobStore(), timeout=0.05)
        with self.assertLogs("relay.pipeline", level="ERROR") as logs:
            with self.assertRaises(BlobStoreUnavailable):
                await pipeline.handle_upload(token, _inbound())
        # The late push may still land, so its name must be traceable.
        self.assertIn("alice_1700000000000_clip.mp4", "\n".join(logs.output))
        self.assertEqual(self.metadata.count("uploads"), 0)
        self.assertStagingEmpty()

    async def test_unreadable_staged_file_is_staging_error(self):
        token = self.identity.issue_token("alice")
        with patch.object(StagedFile, "open", side_effect=OSError("disk went away")):
            with self.assertRaises(StagingIOError) as ctx:
                await self._pipeline().handle_upload(token, _inbound())
        self.assertIn("disk went away", ctx.exception.detail)
        self.assertEqual(self.blob_store.objects, {})
        self.assertEqual(self.metadata.count("uploads"), 0)
        self.assertStagingEmpty()

    async def test_upload_staged_relays_and_releases(self):
        staged = self.staging.stage(io.BytesIO(b"streamed"), "clip.mp4", "video/mp4")
        result = await self._pipeline().upload_staged(CallerIdentity("alice"), staged)

        self.assertEqual(self.blob_store.get_bytes(result.object_id), b"streamed")
        self.assertEqual([r.object_id for r in self._records("alice")], [result.object_id])
        self.assertTrue(staged.released)
        self.assertStagingEmpty()

    async def test_upload_staged_releases_on_failure(self):
        staged = self.staging.stage(io.BytesIO(b"streamed"), "clip.mp4", "video/mp4")
        pipeline = self._pipeline(blob_store=FailingBlobStore())
        with self.assertRaises(BlobStoreUnavailable):
            await pipeline.upload_staged(CallerIdentity("alice"), staged)
        self.assertTrue(staged.released)
        self.assertStagingEmpty()


class ObjectNameTests(unittest.TestCase):
    def test_name_combines_owner_timestamp_and_file(self):
        self.assertEqual(build_object_name("u1", 1700000000123, "a b.mp4"), "u1_1700000000123_a b.mp4")


if __name__ == "__main__":
    unittest.main()
