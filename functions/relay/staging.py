"""
Temporary local staging for inbound uploads.

Uploads are copied to disk in fixed-size chunks so memory use stays flat
regardless of file size. Each staged file belongs to exactly one request.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Optional

from relay.errors import PayloadTooLarge, StagingIOError

logger = logging.getLogger(__name__)

STAGED_FILE_PREFIX = "upload-"


@dataclass
class StagedFile:
    local_path: Path
    original_name: str
    mime_type: Optional[str]
    size_bytes: int
    released: bool = False

    def open(self) -> BinaryIO:
        return open(self.local_path, "rb")


class StagingWriter:
    """
    One staged file being written chunk by chunk.

    The running byte count is checked on every write; crossing the ceiling
    deletes the partial file and raises `PayloadTooLarge`.
    """

    def __init__(
        self,
        out: BinaryIO,
        path: Path,
        original_name: str,
        mime_type: Optional[str],
        max_bytes: int,
    ):
        self._out = out
        self.path = path
        self.original_name = original_name
        self.mime_type = mime_type
        self.max_bytes = max_bytes
        self.written = 0
        self._discarded = False

    def write(self, chunk: bytes) -> None:
        self.written += len(chunk)
        if self.written > self.max_bytes:
            self.discard()
            raise PayloadTooLarge(detail=f"Upload exceeded {self.max_bytes} bytes")
        try:
            self._out.write(chunk)
        except OSError as exc:
            self.discard()
            raise StagingIOError(detail=str(exc)) from exc

    def close(self) -> StagedFile:
        try:
            self._out.close()
        except OSError as exc:
            self.discard()
            raise StagingIOError(detail=str(exc)) from exc
        logger.info("Staged %s (%d bytes) at %s", self.original_name, self.written, self.path)
        return StagedFile(
            local_path=self.path,
            original_name=self.original_name,
            mime_type=self.mime_type,
            size_bytes=self.written,
        )

    def discard(self) -> None:
        """Drop the partial file. Safe to call more than once."""
        if self._discarded:
            return
        self._discarded = True
        try:
            self._out.close()
        except OSError:
            logger.warning("Could not close partial file %s", self.path, exc_info=True)
        try:
            self.path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove partial file %s", self.path, exc_info=True)


class StagingArea:
    def __init__(self, directory: Path | str, max_bytes: int, chunk_size: int = 1024 * 1024):
        self.directory = Path(directory)
        self.max_bytes = max_bytes
        self.chunk_size = chunk_size
        self.directory.mkdir(parents=True, exist_ok=True)

    def ensure_within_limit(self, declared_size: Optional[int], allowance: int = 0) -> None:
        """Reject a body whose declared size already exceeds the ceiling."""
        if declared_size is not None and declared_size > self.max_bytes + allowance:
            raise PayloadTooLarge(
                detail=f"{declared_size} bytes declared, limit is {self.max_bytes}"
            )

    def stage(
        self,
        stream: BinaryIO,
        original_name: str,
        mime_type: Optional[str] = None,
        declared_size: Optional[int] = None,
    ) -> StagedFile:
        self.ensure_within_limit(declared_size)

        writer = self.open_writer(original_name, mime_type)
        try:
            while True:
                try:
                    chunk = stream.read(self.chunk_size)
                except OSError as exc:
                    raise StagingIOError(detail=str(exc)) from exc
                if not chunk:
                    break
                writer.write(chunk)
        except Exception:
            writer.discard()
            raise
        return writer.close()

    def open_writer(self, original_name: str, mime_type: Optional[str] = None) -> StagingWriter:
        """Open a fresh staged file to be filled incrementally."""
        suffix = Path(original_name).suffix
        try:
            fd, raw_path = tempfile.mkstemp(
                prefix=STAGED_FILE_PREFIX, suffix=suffix, dir=self.directory
            )
        except OSError as exc:
            raise StagingIOError(detail=str(exc)) from exc
        return StagingWriter(
            os.fdopen(fd, "wb"), Path(raw_path), original_name, mime_type, self.max_bytes
        )

    def release(self, staged: StagedFile) -> None:
        """Delete the staged artifact. Safe to call any number of times."""
        if staged.released:
            return
        staged.released = True
        try:
            staged.local_path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove staged file %s", staged.local_path, exc_info=True)

    @asynccontextmanager
    async def hold(
        self,
        stream: BinaryIO,
        original_name: str,
        mime_type: Optional[str] = None,
        declared_size: Optional[int] = None,
    ) -> AsyncIterator[StagedFile]:
        """Stage off the event loop and release on every exit path."""
        staged = await asyncio.to_thread(
            self.stage, stream, original_name, mime_type, declared_size
        )
        async with self.held(staged):
            yield staged

    @asynccontextmanager
    async def held(self, staged: StagedFile) -> AsyncIterator[StagedFile]:
        """Take ownership of an already staged file and release it on exit."""
        try:
            yield staged
        finally:
            self.release(staged)
