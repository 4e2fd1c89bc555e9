"""
Blob store abstraction for Google Drive and in-memory testing.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import BinaryIO, Optional, Protocol

import httplib2
from google.auth import exceptions as google_auth_exceptions
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from relay.errors import BlobStoreRejected, BlobStoreUnavailable
from shared.types import RemoteObject

logger = logging.getLogger(__name__)

DRIVE_FILE_SCOPE = "https://www.googleapis.com/auth/drive.file"
DEFAULT_DOWNLOAD_HOST = "drive.google.com"
UPLOAD_CHUNK_SIZE = 8 * 1024 * 1024

TRANSPORT_ERRORS = (OSError, httplib2.HttpLib2Error, google_auth_exceptions.GoogleAuthError)


def download_url(object_id: str, host: str = DEFAULT_DOWNLOAD_HOST) -> str:
    """Direct download locator; a pure function of the object id."""
    return f"https://{host}/uc?export=download&id={object_id}"


class BlobStoreClient(Protocol):
    """Defines the operations the relay needs from the blob store."""

    def create(
        self, name: str, container_id: str, mime_type: Optional[str], stream: BinaryIO
    ) -> RemoteObject:
        ...

    def list(self, container_id: str, mime_type: Optional[str] = None) -> list[RemoteObject]:
        ...


@dataclass
class InMemoryBlobStoreClient:
    """Test double for blob store interactions."""

    objects: dict = field(default_factory=dict)

    def create(
        self, name: str, container_id: str, mime_type: Optional[str], stream: BinaryIO
    ) -> RemoteObject:
        object_id = uuid.uuid4().hex
        remote = RemoteObject(object_id=object_id, name=name, mime_type=mime_type)
        self.objects[object_id] = (container_id, remote, stream.read())
        return remote

    def list(self, container_id: str, mime_type: Optional[str] = None) -> list[RemoteObject]:
        return [
            remote
            for container, remote, _ in self.objects.values()
            if container == container_id
            and (mime_type is None or remote.mime_type == mime_type)
        ]

    def get_bytes(self, object_id: str) -> bytes:
        stored = self.objects.get(object_id)
        if stored is None:
            raise FileNotFoundError(object_id)
        return stored[2]


def _translate_http_error(exc: HttpError, action: str, message: Optional[str] = None) -> Exception:
    status = getattr(exc.resp, "status", None)
    try:
        status = int(status)
    except (TypeError, ValueError):
        status = None
    if status is not None and 400 <= status < 500:
        return BlobStoreRejected(f"Drive rejected {action}", detail=str(exc))
    return BlobStoreUnavailable(message, detail=str(exc))


class DriveBlobStoreClient:
    """
    Google Drive v3 client. A container is a Drive folder id.
    """

    def __init__(self, service):
        self._service = service

    @classmethod
    def from_service_account_file(cls, path: str) -> "DriveBlobStoreClient":
        credentials = service_account.Credentials.from_service_account_file(
            path, scopes=[DRIVE_FILE_SCOPE]
        )
        service = build("drive", "v3", credentials=credentials, cache_discovery=False)
        return cls(service)

    def create(
        self, name: str, container_id: str, mime_type: Optional[str], stream: BinaryIO
    ) -> RemoteObject:
        body = {"name": name, "parents": [container_id]}
        media = MediaIoBaseUpload(
            stream,
            mimetype=mime_type or "application/octet-stream",
            chunksize=UPLOAD_CHUNK_SIZE,
            resumable=True,
        )
        try:
            response = (
                self._service.files()
                .create(body=body, media_body=media, fields="id, name, mimeType")
                .execute()
            )
        except HttpError as exc:
            raise _translate_http_error(exc, "upload") from exc
        except TRANSPORT_ERRORS as exc:
            raise BlobStoreUnavailable(detail=str(exc)) from exc
        logger.info("Created Drive object %s in folder %s", response["id"], container_id)
        return RemoteObject(
            object_id=response["id"],
            name=response.get("name", name),
            mime_type=response.get("mimeType", mime_type),
        )

    def list(self, container_id: str, mime_type: Optional[str] = None) -> list[RemoteObject]:
        clauses = [f"'{container_id}' in parents", "trashed = false"]
        if mime_type:
            clauses.append(f"mimeType = '{mime_type}'")
        query = " and ".join(clauses)

        objects: list[RemoteObject] = []
        page_token = None
        while True:
            try:
                response = (
                    self._service.files()
                    .list(
                        q=query,
                        fields="nextPageToken, files(id, name, mimeType)",
                        pageToken=page_token,
                    )
                    .execute()
                )
            except HttpError as exc:
                raise _translate_http_error(exc, "listing", "Failed to fetch videos") from exc
            except TRANSPORT_ERRORS as exc:
                raise BlobStoreUnavailable(
                    "Failed to fetch videos", detail=str(exc)
                ) from exc
            for item in response.get("files", []):
                objects.append(
                    RemoteObject(
                        object_id=item["id"],
                        name=item.get("name", ""),
                        mime_type=item.get("mimeType"),
                    )
                )
            page_token = response.get("nextPageToken")
            if not page_token:
                break
        return objects
