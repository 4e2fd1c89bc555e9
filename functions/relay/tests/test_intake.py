import os
import shutil
import tempfile
import unittest

from relay.errors import MissingFile, PayloadTooLarge, ValidationFailed
from relay.intake import receive_upload
from relay.staging import StagingArea

BOUNDARY = "relay-test-boundary"
CONTENT_TYPE = f"multipart/form-data; boundary={BOUNDARY}"


def _multipart(*parts) -> bytes:
    """Build a body from (name, filename, content_type, data) tuples."""
    body = b""
    for name, filename, content_type, data in parts:
        disposition = f'form-data; name="{name}"'
        if filename is not None:
            disposition += f'; filename="{filename}"'
        head = f"--{BOUNDARY}\r\nContent-Disposition: {disposition}\r\n"
        if content_type:
            head += f"Content-Type: {content_type}\r\n"
        body += head.encode("utf-8") + b"\r\n" + data + b"\r\n"
    return body + f"--{BOUNDARY}--\r\n".encode("utf-8")


class ReceiveUploadTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.directory = tempfile.mkdtemp()
        self.staging = StagingArea(self.directory, max_bytes=1024)
        self.sent = []

    def tearDown(self):
        shutil.rmtree(self.directory, ignore_errors=True)

    async def _chunks(self, body: bytes, size: int):
        for start in range(0, len(body), size):
            chunk = body[start : start + size]
            self.sent.append(len(chunk))
            yield chunk

    async def _receive(self, body: bytes, size: int = 7, content_type: str = CONTENT_TYPE):
        return await receive_upload(self._chunks(body, size), content_type, self.staging)

    async def test_file_part_is_staged(self):
        body = _multipart(
            ("ownerId", None, None, b"mallory"),
            ("file", "clip.mp4", "video/mp4", b"video-bytes" * 10),
        )
        staged = await self._receive(body)

        self.assertEqual(staged.original_name, "clip.mp4")
        self.assertEqual(staged.mime_type, "video/mp4")
        self.assertEqual(staged.size_bytes, 110)
        self.assertEqual(staged.local_path.read_bytes(), b"video-bytes" * 10)
        self.assertEqual(sum(self.sent), len(body))
        self.staging.release(staged)

    async def test_reading_stops_once_ceiling_is_crossed(self):
        body = _multipart(("file", "big.mp4", "video/mp4", b"x" * (256 * 1024)))
        with self.assertRaises(PayloadTooLarge):
            await self._receive(body, size=4096)
        self.assertLessEqual(sum(self.sent), 2 * 4096)
        self.assertEqual(os.listdir(self.directory), [])

    async def test_body_without_file_part(self):
        body = _multipart(("description", None, None, b"no file here"))
        with self.assertRaises(MissingFile):
            await self._receive(body)
        self.assertEqual(os.listdir(self.directory), [])

    async def test_file_field_without_filename(self):
        body = _multipart(("file", None, None, b"just text"))
        with self.assertRaises(MissingFile):
            await self._receive(body)

    async def test_other_file_fields_are_ignored(self):
        body = _multipart(
            ("avatar", "me.png", "image/png", b"png"),
            ("file", "clip.mp4", "video/mp4", b"video"),
        )
        staged = await self._receive(body)
        self.assertEqual(staged.original_name, "clip.mp4")
        self.assertEqual(os.listdir(self.directory), [staged.local_path.name])
        self.staging.release(staged)

    async def test_non_multipart_body(self):
        for content_type in (None, "application/x-www-form-urlencoded", "multipart/form-data"):
            with self.subTest(content_type=content_type):
                with self.assertRaises(MissingFile):
                    await self._receive(b"a=b", content_type=content_type)

    async def test_truncated_body_is_rejected_and_cleaned(self):
        body = _multipart(("file", "clip.mp4", "video/mp4", b"v" * 200))
        with self.assertRaises(ValidationFailed):
            await self._receive(body[:-60])
        self.assertEqual(os.listdir(self.directory), [])


if __name__ == "__main__":
    unittest.main()
