# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from dacite import Config, from_dict

from shared.firebase_constants import (
    FILE_NAME_FIELD,
    MIME_TYPE_FIELD,
    OBJECT_ID_FIELD,
    OBJECT_URL_FIELD,
    OWNER_ID_FIELD,
    UPLOADED_AT_FIELD,
)

# Maps snake_case dataclass fields to the camelCase keys stored in documents.
UPLOAD_RECORD_KEYS = {
    "owner_id": OWNER_ID_FIELD,
    "object_id": OBJECT_ID_FIELD,
    "object_url": OBJECT_URL_FIELD,
    "file_name": FILE_NAME_FIELD,
    "mime_type": MIME_TYPE_FIELD,
    "uploaded_at": UPLOADED_AT_FIELD,
}


def _parse_datetime(value: Any) -> datetime:
    # SQL and JSON backends hand timestamps back as ISO strings; Firestore
    # returns a datetime subclass.
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass(frozen=True)
class CallerIdentity:
    """The verified identity behind a bearer token."""

    subject_id: str
    email: str = ""


@dataclass(frozen=True)
class RemoteObject:
    """An object held by the blob store."""

    object_id: str
    name: str
    mime_type: Optional[str] = None


@dataclass(frozen=True)
class VideoRef:
    """A playable video listed straight from the blob store container."""

    object_id: str
    name: str
    url: str


@dataclass(frozen=True)
class UploadResult:
    object_id: str
    object_url: str


@dataclass(frozen=True)
class UploadRecord:
    """Metadata indexed for each upload. Never updated after creation."""

    owner_id: str
    object_id: str
    object_url: str
    file_name: str
    mime_type: Optional[str]
    uploaded_at: datetime

    def as_document(self) -> dict:
        return {
            UPLOAD_RECORD_KEYS[name]: getattr(self, name)
            for name in UPLOAD_RECORD_KEYS
        }

    @classmethod
    def from_document(cls, document: dict) -> "UploadRecord":
        data = {
            name: document.get(key) for name, key in UPLOAD_RECORD_KEYS.items()
        }
        return from_dict(
            data_class=cls,
            data=data,
            config=Config(type_hooks={datetime: _parse_datetime}),
        )


@dataclass
class UserProfile:
    """Profile captured at sign-up and stored under the user's uid."""

    id: str
    email: str
    name: str
    about: str
    income: Any
    location: Any
    working_status: Any
    interests: list = field(default_factory=list)
