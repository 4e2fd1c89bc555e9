"""
HTTP routes for the media relay.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from relay.dependencies import RelayContext, get_context, require_caller
from relay.intake import receive_upload
from relay.schemas import (
    ErrorResponse,
    ListUploadsResponse,
    ListVideosResponse,
    MessageResponse,
    ProtectedResponse,
    SigninRequest,
    SigninResponse,
    SignupRequest,
    SignupResponse,
    UploadRecordOut,
    UploadResponse,
    VideoOut,
)
from shared.types import CallerIdentity

logger = logging.getLogger(__name__)

router = APIRouter()

FILE_FIELD = "file"

# Multipart framing (boundaries, part headers) tolerated on top of the file
# size limit when checking Content-Length.
MULTIPART_ENVELOPE_BYTES = 64 * 1024


@router.get("/", response_class=PlainTextResponse)
def root() -> str:
    return "API is running"


@router.post("/signup", response_model=SignupResponse, status_code=201)
async def signup(
    payload: SignupRequest,
    context: RelayContext = Depends(get_context),
):
    caller = await context.accounts.sign_up(payload)
    return SignupResponse(
        message="User created successfully",
        uid=caller.subject_id,
        email=caller.email,
    )


@router.post("/signin", response_model=SigninResponse)
async def signin(
    payload: SigninRequest,
    context: RelayContext = Depends(get_context),
):
    caller = await context.accounts.sign_in(payload.id_token)
    return SigninResponse(
        message="Sign-in successful", uid=caller.subject_id, email=caller.email
    )


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def upload(
    request: Request,
    caller: CallerIdentity = Depends(require_caller),
    context: RelayContext = Depends(get_context),
):
    """
    Stream the multipart `file` field into staging and relay it to the blob store.

    The body is read here, after the caller has been verified, so bad
    credentials are rejected before any of it is consumed. A declared
    Content-Length over the ceiling is refused up front; otherwise reading
    stops as soon as the file part crosses it.
    """
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit():
        context.staging.ensure_within_limit(
            int(content_length), allowance=MULTIPART_ENVELOPE_BYTES
        )

    staged = await receive_upload(
        request.stream(),
        request.headers.get("content-type"),
        context.staging,
        field_name=FILE_FIELD,
    )
    result = await context.pipeline.upload_staged(caller, staged)

    return UploadResponse(
        message="File uploaded successfully",
        object_id=result.object_id,
        object_url=result.object_url,
    )


@router.get("/uploads", response_model=ListUploadsResponse)
async def list_uploads(
    caller: CallerIdentity = Depends(require_caller),
    context: RelayContext = Depends(get_context),
):
    records = await context.queries.list_for(caller)
    return ListUploadsResponse(
        uploads=[
            UploadRecordOut(
                owner_id=record.owner_id,
                object_id=record.object_id,
                object_url=record.object_url,
                file_name=record.file_name,
                mime_type=record.mime_type,
                uploaded_at=record.uploaded_at,
            )
            for record in records
        ]
    )


@router.get("/videos", response_model=ListVideosResponse)
async def list_videos(context: RelayContext = Depends(get_context)):
    videos = await context.queries.list_container_videos()
    return ListVideosResponse(
        videos=[VideoOut(id=video.object_id, name=video.name, url=video.url) for video in videos]
    )


@router.get("/protected", response_model=ProtectedResponse)
def protected(caller: CallerIdentity = Depends(require_caller)):
    return ProtectedResponse(message="This is a protected route", uid=caller.subject_id)


@router.get("/api/health", response_model=MessageResponse)
def health():
    return MessageResponse(message="Server is running")
