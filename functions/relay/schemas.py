"""
Pydantic schemas for the relay API. JSON keys are camelCase.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SignupRequest(BaseModel):
    # Presence is checked by AccountService so the messages stay specific.
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    about: Optional[str] = None
    income: Optional[Any] = None
    location: Optional[Any] = None
    working_status: Optional[Any] = None
    interests: Optional[Any] = None


class SignupResponse(BaseModel):
    message: str
    uid: str
    email: str


class SigninRequest(CamelModel):
    id_token: Optional[str] = None


class SigninResponse(BaseModel):
    message: str
    uid: str
    email: str


class UploadResponse(CamelModel):
    message: str
    object_id: str
    object_url: str


class UploadRecordOut(CamelModel):
    owner_id: str
    object_id: str
    object_url: str
    file_name: str
    mime_type: Optional[str] = None
    uploaded_at: datetime


class ListUploadsResponse(BaseModel):
    uploads: list[UploadRecordOut]


class VideoOut(BaseModel):
    id: str
    name: str
    url: str


class ListVideosResponse(BaseModel):
    videos: list[VideoOut]


class MessageResponse(BaseModel):
    message: str


class ProtectedResponse(BaseModel):
    message: str
    uid: str


class ErrorResponse(BaseModel):
    error: str
    kind: str
    details: Optional[str] = Field(default=None)
