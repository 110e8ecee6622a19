"""Chunked upload protocol for SharePoint files.

SharePoint accepts large files through a three-phase upload against an
existing file: ``startupload`` with the first chunk, ``continueupload``
for each middle chunk and ``finishupload`` for the last one. Every call
carries the same upload id, and every call after the first carries the
byte offset SharePoint reported for the previous one. ``cancelupload``
discards a partial upload.

This module is split into:
- UploadSession: the state of one upload attempt
- UploadStateMachine: decides and issues the next phase-call per chunk
- UploadDriver: pulls chunks from a byte source into the state machine,
  never requesting the next chunk before the previous call has completed
- RestUploadTransport: issues phase-calls against the REST API
"""

import inspect
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4

import httpx
import structlog

from sharepoint_fs.core.client import (
    ODATA_NOMETADATA,
    SharePointRestClient,
    odata_literal,
)
from sharepoint_fs.core.exceptions import (
    SharePointUploadError,
    SharePointValidationError,
    UploadStateError,
)
from sharepoint_fs.core.logging import get_logger

logger = get_logger(__name__)


class UploadPhase(str, Enum):
    """Lifecycle phase of an upload session."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_PHASES = frozenset(
    {UploadPhase.FINISHED, UploadPhase.CANCELLED, UploadPhase.FAILED}
)


class UploadAction(str, Enum):
    """Phase-call kinds, valued by their REST method names."""

    START = "startupload"
    CONTINUE = "continueupload"
    FINISH = "finishupload"
    CANCEL = "cancelupload"


def generate_upload_id() -> str:
    """Generate a new upload session id."""
    return str(uuid4())


@dataclass
class UploadSession:
    """State of one chunked upload attempt.

    Attributes:
        upload_id: Id sent with every phase-call of this attempt
        target_path: Server-relative path of the file being written
        total_size: Declared size of the source in bytes
        chunk_size: Chunk size hint used to detect the last chunk
        bytes_acknowledged: Offset last reported by SharePoint
        phase: Current lifecycle phase
    """

    upload_id: str
    target_path: str
    total_size: int
    chunk_size: int
    bytes_acknowledged: int = 0
    phase: UploadPhase = UploadPhase.NOT_STARTED

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES


class UploadTransport(Protocol):
    """Issues one phase-call and reports the resulting server offset."""

    async def request(
        self,
        action: UploadAction,
        upload_id: str,
        path: str,
        offset: int,
        payload: bytes | None = None,
    ) -> int | None:
        """Send a phase-call.

        Returns:
            New server offset for START and CONTINUE, None otherwise
        """
        ...


class UploadStateMachine:
    """Drives the start/continue/finish protocol for one session.

    Each call to feed() issues the phase-call(s) for exactly one chunk and
    returns once SharePoint has answered. Whether a chunk is the last one
    is decided from the chunk size hint, not from the chunk's own length:
    a chunk is sent with FINISH when ``bytes_acknowledged + chunk_size``
    reaches ``total_size``.

    Any failing phase-call triggers a best-effort CANCEL before the
    original exception is re-raised.
    """

    def __init__(self, session: UploadSession, transport: UploadTransport) -> None:
        self.session = session
        self._transport = transport
        self._in_flight = False

    @property
    def phase(self) -> UploadPhase:
        return self.session.phase

    async def feed(self, data: bytes) -> UploadPhase:
        """Upload one chunk.

        Args:
            data: Chunk payload

        Returns:
            The session phase after the chunk was handled

        Raises:
            UploadStateError: If the session is terminal or a call is in flight
            SharePointError: If a phase-call fails (after CANCEL was attempted)
        """
        self._ensure_can_call()
        session = self.session
        try:
            if session.phase == UploadPhase.NOT_STARTED:
                offset = await self._call(UploadAction.START, 0, data)
                self._acknowledge(offset)
                if session.bytes_acknowledged >= session.total_size:
                    # START already carried the whole file
                    await self._call(
                        UploadAction.FINISH, session.bytes_acknowledged, b""
                    )
                    session.phase = UploadPhase.FINISHED
                else:
                    session.phase = UploadPhase.IN_PROGRESS
            elif session.bytes_acknowledged + session.chunk_size >= session.total_size:
                await self._call(UploadAction.FINISH, session.bytes_acknowledged, data)
                session.phase = UploadPhase.FINISHED
            else:
                offset = await self._call(
                    UploadAction.CONTINUE, session.bytes_acknowledged, data
                )
                self._acknowledge(offset)
        except Exception as e:
            await self.abort(e)
            raise

        if session.phase == UploadPhase.FINISHED:
            logger.info(
                "upload_finished",
                path=session.target_path,
                total_size=session.total_size,
            )
        return session.phase

    async def abort(self, error: BaseException) -> UploadPhase:
        """Cancel the remote upload after a failure.

        The CANCEL outcome is never raised: a refused or failed cancel
        leaves the session FAILED, an acknowledged one CANCELLED.
        Aborting a terminal session does nothing.

        Args:
            error: The failure that ends the session

        Returns:
            The terminal phase reached

        Raises:
            UploadStateError: If a phase-call is in flight
        """
        session = self.session
        if session.is_terminal:
            return session.phase
        if self._in_flight:
            raise UploadStateError(
                f"Upload {session.upload_id} already has a request in flight"
            )

        logger.warning(
            "upload_aborting",
            path=session.target_path,
            bytes_acknowledged=session.bytes_acknowledged,
            error_type=type(error).__name__,
            error=str(error),
        )
        try:
            await self._call(UploadAction.CANCEL, session.bytes_acknowledged)
        except Exception as cancel_error:
            logger.warning(
                "upload_cancel_failed",
                path=session.target_path,
                error_type=type(cancel_error).__name__,
                error=str(cancel_error),
            )
            session.phase = UploadPhase.FAILED
        else:
            session.phase = UploadPhase.CANCELLED
        return session.phase

    def _ensure_can_call(self) -> None:
        if self.session.is_terminal:
            raise UploadStateError(
                f"Upload {self.session.upload_id} is already "
                f"{self.session.phase.value}"
            )
        if self._in_flight:
            raise UploadStateError(
                f"Upload {self.session.upload_id} already has a request in flight"
            )

    async def _call(
        self,
        action: UploadAction,
        offset: int,
        payload: bytes | None = None,
    ) -> int | None:
        self._in_flight = True
        try:
            logger.debug(
                "upload_phase_call",
                action=action.value,
                offset=offset,
                size=len(payload) if payload is not None else None,
            )
            return await self._transport.request(
                action,
                self.session.upload_id,
                self.session.target_path,
                offset,
                payload,
            )
        finally:
            self._in_flight = False

    def _acknowledge(self, offset: int | None) -> None:
        """Take the server-reported offset as the new acknowledged offset."""
        session = self.session
        if offset is None or offset < session.bytes_acknowledged:
            raise SharePointUploadError(
                f"Invalid upload offset {offset!r} reported after "
                f"{session.bytes_acknowledged} acknowledged bytes",
                bytes_uploaded=session.bytes_acknowledged,
            )
        session.bytes_acknowledged = offset
        logger.debug(
            "upload_offset_acknowledged",
            offset=offset,
            total_size=session.total_size,
        )


def is_supported_stream(source: Any) -> bool:
    """Whether iter_chunks() can read from source."""
    if isinstance(source, (bytes, bytearray, memoryview)):
        return True
    if isinstance(source, str):
        return False
    return (
        hasattr(source, "read")
        or hasattr(source, "__aiter__")
        or isinstance(source, Iterable)
    )


async def iter_chunks(source: Any, read_size: int) -> AsyncIterator[bytes]:
    """Yield byte chunks from a source, one per request.

    Supported sources:
    - bytes, bytearray or memoryview (sliced into read_size pieces)
    - binary file-like objects with a sync or async read() method
    - async iterables of bytes
    - sync iterables of bytes

    Empty chunks are skipped.

    Raises:
        SharePointValidationError: If the source type is not supported
    """
    if not is_supported_stream(source):
        raise SharePointValidationError(
            f"Unsupported stream type: {type(source).__name__}"
        )

    if isinstance(source, (bytes, bytearray, memoryview)):
        view = memoryview(source)
        for start in range(0, len(view), read_size):
            yield bytes(view[start : start + read_size])
        return

    if hasattr(source, "read"):
        while True:
            data = source.read(read_size)
            if inspect.isawaitable(data):
                data = await data
            if not data:
                return
            yield bytes(data)

    if hasattr(source, "__aiter__"):
        async for data in source:
            if data:
                yield bytes(data)
        return

    for data in source:
        if data:
            yield bytes(data)


class UploadDriver:
    """Feeds a byte source into an UploadStateMachine.

    The next chunk is only requested from the source once the previous
    phase-call has completed, and the source is not read any further once
    the session is terminal.
    """

    def __init__(self, machine: UploadStateMachine, filename: str | None = None):
        self.machine = machine
        self._filename = filename

    async def run(self, source: Any) -> UploadSession:
        """Upload the whole source.

        Args:
            source: Byte source accepted by iter_chunks()

        Returns:
            The FINISHED session

        Raises:
            Exception: Whatever the source raised, after CANCEL was attempted
            SharePointError: A failed phase-call, after CANCEL was attempted
            SharePointUploadError: If the source ends before the upload finished
        """
        session = self.machine.session
        chunks = iter_chunks(source, session.chunk_size)

        with structlog.contextvars.bound_contextvars(upload_id=session.upload_id):
            logger.info(
                "upload_started",
                path=session.target_path,
                total_size=session.total_size,
                chunk_size=session.chunk_size,
            )
            try:
                while not session.is_terminal:
                    try:
                        data = await anext(chunks)
                    except StopAsyncIteration:
                        await self._handle_premature_end()
                    except Exception as e:
                        logger.error(
                            "upload_stream_error",
                            error_type=type(e).__name__,
                            error=str(e),
                        )
                        await self.machine.abort(e)
                        raise
                    else:
                        await self.machine.feed(data)
            finally:
                await chunks.aclose()

        return session

    async def _handle_premature_end(self) -> None:
        session = self.machine.session
        error = SharePointUploadError(
            f"Stream ended before the upload finished "
            f"({session.bytes_acknowledged} of {session.total_size} bytes "
            f"acknowledged)",
            filename=self._filename,
            bytes_uploaded=session.bytes_acknowledged,
        )
        if session.phase == UploadPhase.NOT_STARTED:
            # Nothing was sent, so there is nothing to cancel
            session.phase = UploadPhase.FAILED
        else:
            await self.machine.abort(error)
        raise error


class RestUploadTransport:
    """UploadTransport that calls the SharePoint REST upload methods."""

    def __init__(self, client: SharePointRestClient, form_digest: str) -> None:
        self._client = client
        self._form_digest = form_digest

    @staticmethod
    def build_path(
        action: UploadAction, upload_id: str, path: str, offset: int
    ) -> str:
        """Build the REST path of a phase-call."""
        params = f"uploadId=guid'{upload_id}'"
        if action in (UploadAction.CONTINUE, UploadAction.FINISH):
            params += f",fileoffset={offset}"
        return (
            f"/_api/web/GetFileByServerRelativeUrl('{odata_literal(path)}')"
            f"/{action.value}({params})"
        )

    async def request(
        self,
        action: UploadAction,
        upload_id: str,
        path: str,
        offset: int,
        payload: bytes | None = None,
    ) -> int | None:
        response = await self._client.request(
            "POST",
            self.build_path(action, upload_id, path, offset),
            f"Unable to {action.value}",
            headers={
                "Accept": ODATA_NOMETADATA,
                "X-RequestDigest": self._form_digest,
            },
            content=payload,
        )
        if action in (UploadAction.START, UploadAction.CONTINUE):
            return self._parse_offset(response, path)
        return None

    @staticmethod
    def _parse_offset(response: httpx.Response, path: str) -> int:
        try:
            return int(response.json()["value"])
        except (KeyError, TypeError, ValueError) as e:
            raise SharePointUploadError(
                f"Unexpected upload response: {response.text[:200]}",
                filename=path,
            ) from e
