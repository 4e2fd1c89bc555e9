import io
import unittest
from unittest.mock import MagicMock

import httplib2
from googleapiclient.errors import HttpError

from relay.blobstore import DriveBlobStoreClient, InMemoryBlobStoreClient, download_url
from relay.errors import BlobStoreRejected, BlobStoreUnavailable


def _http_error(status: int) -> HttpError:
    return HttpError(httplib2.Response({"status": status}), b"drive says no")


class DownloadUrlTests(unittest.TestCase):
    def test_locator_is_derived_from_object_id(self):
        self.assertEqual(
            download_url("abc123"),
            "https://drive.google.com/uc?export=download&id=abc123",
        )
        self.assertEqual(
            download_url("abc123", "files.example.test"),
            "https://files.example.test/uc?export=download&id=abc123",
        )


class InMemoryBlobStoreClientTests(unittest.TestCase):
    def test_create_and_filtered_list(self):
        store = InMemoryBlobStoreClient()
        video = store.create("a.mp4", "folder", "video/mp4", io.BytesIO(b"v"))
        store.create("b.jpg", "folder", "image/jpeg", io.BytesIO(b"i"))
        store.create("c.mp4", "other-folder", "video/mp4", io.BytesIO(b"v"))

        listed = store.list("folder", "video/mp4")
        self.assertEqual([obj.object_id for obj in listed], [video.object_id])
        self.assertEqual(len(store.list("folder")), 2)
        self.assertEqual(store.get_bytes(video.object_id), b"v")


class DriveBlobStoreClientTests(unittest.TestCase):
    def setUp(self):
        self.service = MagicMock()
        self.files = self.service.files.return_value
        self.client = DriveBlobStoreClient(self.service)

    def test_create_places_object_in_folder(self):
        self.files.create.return_value.execute.return_value = {
            "id": "drive-id",
            "name": "u1_1_clip.mp4",
            "mimeType": "video/mp4",
        }
        remote = self.client.create("u1_1_clip.mp4", "folder-1", "video/mp4", io.BytesIO(b"data"))

        self.assertEqual(remote.object_id, "drive-id")
        kwargs = self.files.create.call_args.kwargs
        self.assertEqual(kwargs["body"], {"name": "u1_1_clip.mp4", "parents": ["folder-1"]})
        self.assertEqual(kwargs["media_body"].mimetype(), "video/mp4")

    def test_create_client_error_is_rejection(self):
        self.files.create.return_value.execute.side_effect = _http_error(403)
        with self.assertRaises(BlobStoreRejected):
            self.client.create("n", "folder-1", "video/mp4", io.BytesIO(b"data"))

    def test_create_server_error_is_unavailable(self):
        self.files.create.return_value.execute.side_effect = _http_error(503)
        with self.assertRaises(BlobStoreUnavailable):
            self.client.create("n", "folder-1", "video/mp4", io.BytesIO(b"data"))

    def test_create_transport_error_is_unavailable(self):
        self.files.create.return_value.execute.side_effect = ConnectionResetError("reset")
        with self.assertRaises(BlobStoreUnavailable):
            self.client.create("n", "folder-1", "video/mp4", io.BytesIO(b"data"))

    def test_list_filters_by_folder_and_type_across_pages(self):
        self.files.list.return_value.execute.side_effect = [
            {"files": [{"id": "1", "name": "a.mp4", "mimeType": "video/mp4"}], "nextPageToken": "p2"},
            {"files": [{"id": "2", "name": "b.mp4", "mimeType": "video/mp4"}]},
        ]
        objects = self.client.list("folder-1", "video/mp4")

        self.assertEqual([obj.object_id for obj in objects], ["1", "2"])
        first_call, second_call = self.files.list.call_args_list
        self.assertEqual(
            first_call.kwargs["q"],
            "'folder-1' in parents and trashed = false and mimeType = 'video/mp4'",
        )
        self.assertIsNone(first_call.kwargs["pageToken"])
        self.assertEqual(second_call.kwargs["pageToken"], "p2")

    def test_list_error_is_unavailable(self):
        self.files.list.return_value.execute.side_effect = _http_error(500)
        with self.assertRaises(BlobStoreUnavailable):
            self.client.list("folder-1", "video/mp4")


if __name__ == "__main__":
    unittest.main()
