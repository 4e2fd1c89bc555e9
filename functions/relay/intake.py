"""
Streaming multipart intake for uploads.

The request body is parsed as it arrives and the bytes of the file field go
straight into the staging area, so the size ceiling applies to the inbound
stream itself. Other form fields are read and ignored.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterable, Optional

from python_multipart.exceptions import FormParserError
from python_multipart.multipart import MultipartParser, parse_options_header

from relay.errors import MissingFile, ValidationFailed
from relay.staging import StagedFile, StagingArea, StagingWriter

logger = logging.getLogger(__name__)

MULTIPART_FORM_DATA = b"multipart/form-data"


class MultipartIntake:
    """Feeds one multipart body into the staging area, keeping the first `field_name` file part."""

    def __init__(self, staging: StagingArea, boundary: bytes, field_name: str):
        self._staging = staging
        self._field_name = field_name.encode("utf-8")
        self._header_field = b""
        self._header_value = b""
        self._headers: dict[bytes, bytes] = {}
        self._writer: Optional[StagingWriter] = None
        self._staged: Optional[StagedFile] = None
        self._parser = MultipartParser(
            boundary,
            {
                "on_part_begin": self._on_part_begin,
                "on_header_field": self._on_header_field,
                "on_header_value": self._on_header_value,
                "on_header_end": self._on_header_end,
                "on_headers_finished": self._on_headers_finished,
                "on_part_data": self._on_part_data,
                "on_part_end": self._on_part_end,
            },
        )

    @classmethod
    def for_content_type(
        cls, content_type: Optional[str], staging: StagingArea, field_name: str
    ) -> "MultipartIntake":
        """Anything other than a multipart body with a boundary carries no file."""
        media_type, params = parse_options_header(content_type)
        boundary = params.get(b"boundary")
        if media_type.lower() != MULTIPART_FORM_DATA or not boundary:
            raise MissingFile()
        try:
            return cls(staging, boundary, field_name)
        except FormParserError as exc:
            raise ValidationFailed("Malformed multipart body", detail=str(exc)) from exc

    def feed(self, chunk: bytes) -> None:
        try:
            self._parser.write(chunk)
        except FormParserError as exc:
            raise ValidationFailed("Malformed multipart body", detail=str(exc)) from exc

    def finish(self) -> StagedFile:
        """Hand over the staged file once the body has ended."""
        self._parser.finalize()
        if self._writer is not None:
            raise ValidationFailed("Malformed multipart body", detail="File part was truncated")
        if self._staged is None:
            raise MissingFile()
        staged, self._staged = self._staged, None
        return staged

    def abort(self) -> None:
        """Remove whatever this body has staged so far."""
        if self._writer is not None:
            self._writer.discard()
            self._writer = None
        if self._staged is not None:
            self._staging.release(self._staged)
            self._staged = None

    def _on_part_begin(self) -> None:
        self._headers = {}

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._headers[self._header_field.lower()] = self._header_value
        self._header_field = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        if self._staged is not None:
            return
        _, options = parse_options_header(self._headers.get(b"content-disposition"))
        filename = options.get(b"filename")
        if options.get(b"name") != self._field_name or not filename:
            return
        content_type = self._headers.get(b"content-type")
        self._writer = self._staging.open_writer(
            filename.decode("utf-8", errors="replace"),
            content_type.decode("latin-1") if content_type else None,
        )

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self._writer is not None:
            self._writer.write(data[start:end])

    def _on_part_end(self) -> None:
        if self._writer is not None:
            self._staged = self._writer.close()
            self._writer = None


async def receive_upload(
    chunks: AsyncIterable[bytes],
    content_type: Optional[str],
    staging: StagingArea,
    field_name: str = "file",
) -> StagedFile:
    """
    Stage the `field_name` file part of a streamed multipart body.

    Reading stops at the first chunk that pushes the file past the ceiling.
    The caller owns the returned file and must release it; on any failure
    nothing is left behind.
    """
    intake = MultipartIntake.for_content_type(content_type, staging, field_name)
    staged = None
    try:
        async for chunk in chunks:
            if chunk:
                await asyncio.to_thread(intake.feed, chunk)
        staged = await asyncio.to_thread(intake.finish)
    finally:
        if staged is None:
            intake.abort()
    return staged
