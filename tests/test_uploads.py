from __future__ import annotations

import asyncio

import pytest

from tubely.api.uploads import FORM_OVERHEAD_BYTES, MultipartFileStream
from tubely.core.errors import ResourceLimitError, ValidationError

BOUNDARY = "tubelyboundary42"
HEADERS = {"content-type": f"multipart/form-data; boundary={BOUNDARY}"}


def _part(name: str, payload: bytes, *, filename: str | None = None, content_type: str | None = None) -> bytes:
    disposition = f'form-data; name="{name}"'
    if filename is not None:
        disposition += f'; filename="{filename}"'
    lines = [f"--{BOUNDARY}", f"Content-Disposition: {disposition}"]
    if content_type:
        lines.append(f"Content-Type: {content_type}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode() + payload + b"\r\n"


def _body(*parts: bytes) -> bytes:
    return b"".join(parts) + f"--{BOUNDARY}--\r\n".encode()


class ChunkedBody:
    """Async request body that records how much of itself has been pulled."""

    def __init__(self, chunks):
        self._chunks = iter(chunks)
        self.consumed = 0

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        try:
            chunk = next(self._chunks)
        except StopIteration:
            raise StopAsyncIteration from None
        self.consumed += len(chunk)
        return chunk


def _split(data: bytes, size: int):
    return [data[i:i + size] for i in range(0, len(data), size)]


async def _read_all(stream: MultipartFileStream) -> bytes:
    out = bytearray()
    while True:
        chunk = await stream.read(5)
        if not chunk:
            return bytes(out)
        out.extend(chunk)


def _open(body, *, field="video", limit=1 << 20, headers=HEADERS) -> MultipartFileStream:
    stream = MultipartFileStream(headers, body, field=field, limit=limit)
    asyncio.run(stream.wait_for_field())
    return stream


def test_reads_named_file_part_across_small_chunks():
    payload = b"\x00\x00\x00\x18ftypisom" * 20
    data = _body(
        _part("title", b"ignored text field"),
        _part("video", payload, filename="clip.mp4", content_type="video/mp4"),
    )
    stream = _open(ChunkedBody(_split(data, 7)))
    assert stream.filename == "clip.mp4"
    assert stream.content_type == "video/mp4"
    assert asyncio.run(_read_all(stream)) == payload


def test_content_type_is_known_before_the_part_is_read():
    payload = b"x" * 4096
    body = ChunkedBody(_split(_body(_part("video", payload, filename="a.webm", content_type="video/webm")), 256))
    stream = _open(body)
    assert stream.content_type == "video/webm"
    assert body.consumed < len(payload)


def test_plain_field_with_the_same_name_is_not_a_file():
    data = _body(_part("video", b"not a file"))
    with pytest.raises(ValidationError, match="missing_video_file"):
        _open(ChunkedBody([data]))


def test_missing_field():
    data = _body(_part("attachment", b"data", filename="clip.mp4", content_type="video/mp4"))
    with pytest.raises(ValidationError, match="missing_thumbnail_file"):
        _open(ChunkedBody([data]), field="thumbnail")


def test_rejects_non_multipart_requests():
    with pytest.raises(ValidationError, match="expected_multipart_form"):
        MultipartFileStream({"content-type": "application/json"}, ChunkedBody([]), field="video", limit=10)


def test_truncated_body():
    data = _part("video", b"partial payload", filename="clip.mp4", content_type="video/mp4")
    stream = _open(ChunkedBody([data[:-5]]))
    with pytest.raises(ValidationError, match="truncated_multipart_body"):
        asyncio.run(_read_all(stream))


def test_oversized_chunked_body_is_cut_off_early():
    limit = 1024
    chunk = 16 * 1024
    head = _part("video", b"", filename="big.mp4", content_type="video/mp4")[:-2]
    chunks = [head] + [b"\x00" * chunk] * 512
    body = ChunkedBody(chunks)

    stream = _open(body, limit=limit)
    with pytest.raises(ResourceLimitError):
        asyncio.run(_read_all(stream))
    assert body.consumed <= limit + FORM_OVERHEAD_BYTES + chunk
