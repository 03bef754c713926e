"""Streaming access to one file field of a multipart request body.

Starlette's ``request.form()`` spools every file part to a temporary file
before the handler sees it. Uploads here are read straight off the request
stream instead, so caps and content-type checks run before anything touches
the disk.
"""

from __future__ import annotations

from typing import AsyncIterator, Mapping

from fastapi import Request
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from tubely.core.errors import ResourceLimitError, ValidationError

# Slack for multipart boundaries and part headers on top of the file cap.
FORM_OVERHEAD_BYTES = 64 * 1024


def reject_declared_oversize(request: Request, limit: int) -> None:
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit + FORM_OVERHEAD_BYTES:
        raise ResourceLimitError("upload_too_large")


class MultipartFileStream:
    """Hands the data of a single named file part to the caller as it arrives.

    Other parts are parsed and dropped. The raw body is cut off with
    ``ResourceLimitError`` as soon as it exceeds ``limit`` plus form overhead,
    whether or not the client declared a ``Content-Length``.
    """

    def __init__(self, headers: Mapping[str, str], body: AsyncIterator[bytes], *, field: str, limit: int):
        media_type, options = parse_options_header(headers.get("content-type"))
        boundary = options.get(b"boundary")
        if media_type.strip().lower() != b"multipart/form-data" or not boundary:
            raise ValidationError("expected_multipart_form")

        self.field = field
        self.filename: str | None = None
        self.content_type: str | None = None

        self._body = body
        self._max_body = limit + FORM_OVERHEAD_BYTES
        self._received = 0
        self._buffer = bytearray()
        self._part_headers: dict[bytes, bytes] = {}
        self._header_field = b""
        self._header_value = b""
        self._in_field = False
        self._found = False
        self._part_complete = False
        self._exhausted = False
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
    async def open(cls, request: Request, *, field: str, limit: int) -> "MultipartFileStream":
        reader = cls(request.headers, request.stream(), field=field, limit=limit)
        await reader.wait_for_field()
        return reader

    async def wait_for_field(self) -> None:
        """Consume the body up to the end of the named part's headers."""
        while not self._found:
            if not await self._pump():
                raise ValidationError(f"missing_{self.field}_file")

    async def read(self, size: int = -1) -> bytes:
        while not self._part_complete and (size < 0 or len(self._buffer) < size):
            if not await self._pump() and not self._part_complete:
                raise ValidationError("truncated_multipart_body")
        if size < 0 or size > len(self._buffer):
            size = len(self._buffer)
        chunk = bytes(self._buffer[:size])
        del self._buffer[:size]
        return chunk

    async def _pump(self) -> bool:
        if self._exhausted:
            return False
        try:
            chunk = await self._body.__anext__()
        except StopAsyncIteration:
            self._exhausted = True
            self._feed(None)
            return False
        self._received += len(chunk)
        if self._received > self._max_body:
            raise ResourceLimitError("upload_too_large")
        if chunk:
            self._feed(chunk)
        return True

    def _feed(self, chunk: bytes | None) -> None:
        try:
            if chunk is None:
                self._parser.finalize()
            else:
                self._parser.write(chunk)
        except MultipartParseError as exc:
            raise ValidationError("malformed_multipart_body") from exc

    def _on_part_begin(self) -> None:
        self._part_headers = {}

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._part_headers[self._header_field.lower()] = self._header_value
        self._header_field = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        _, options = parse_options_header(self._part_headers.get(b"content-disposition"))
        name = options.get(b"name", b"").decode("utf-8", "replace")
        filename = options.get(b"filename")
        # Only the first file part with the expected name counts; plain fields never do.
        if self._found or name != self.field or filename is None:
            return
        self._found = True
        self._in_field = True
        self.filename = filename.decode("utf-8", "replace")
        self.content_type = self._part_headers.get(b"content-type", b"").decode("latin-1").strip() or None

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self._in_field:
            self._buffer.extend(data[start:end])

    def _on_part_end(self) -> None:
        if self._in_field:
            self._in_field = False
            self._part_complete = True


__all__ = ["FORM_OVERHEAD_BYTES", "MultipartFileStream", "reject_declared_oversize"]
