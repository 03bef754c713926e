from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from tubely.core.errors import ProcessingError

from .runner import ToolRunner


@dataclass(frozen=True, slots=True)
class ProbeResult:
    """Geometry of the primary video stream."""

    width: int
    height: int


def build_probe_command(path: Path, *, binary: str = "ffprobe") -> list[str]:
    return [
        binary,
        "-v",
        "error",
        "-print_format",
        "json",
        "-show_streams",
        str(path),
    ]


def probe(path: Path, runner: ToolRunner, *, binary: str = "ffprobe", timeout: float | None = None) -> ProbeResult:
    """Run ffprobe against ``path`` and return the first video stream's geometry.

    Args:
        path: Local media file to inspect.
        runner: Tool runner used to invoke ffprobe.
        binary: ffprobe executable name or path.
        timeout: Optional timeout in seconds for the tool invocation.

    Returns:
        The probe result.

    Raises:
        ProcessingError: ffprobe failed, printed unparseable output, or reported no video stream.
    """
    result = runner.run(build_probe_command(path, binary=binary), timeout=timeout)
    if not result.ok:
        raise ProcessingError(
            f"ffprobe exited with status {result.returncode}",
            diagnostics=result.stderr.strip() or None,
        )
    try:
        raw = json.loads(result.stdout)
    except (TypeError, ValueError) as exc:
        raise ProcessingError("could not parse ffprobe output") from exc
    return parse_probe_output(raw)


def parse_probe_output(raw: Any) -> ProbeResult:
    if not isinstance(raw, dict):
        raise ProcessingError("could not parse ffprobe output")
    streams = raw.get("streams")
    if not isinstance(streams, list) or not streams:
        raise ProcessingError("no video streams found")

    selected = _select_video_stream(streams)
    if selected is None:
        raise ProcessingError("no video streams found")

    width = _positive_int(selected.get("width"))
    height = _positive_int(selected.get("height"))
    if width is None or height is None:
        raise ProcessingError("video stream is missing its dimensions")
    return ProbeResult(width=width, height=height)


def _select_video_stream(streams: list[Any]) -> Optional[Dict[str, Any]]:
    # Streams without a codec_type still count when they carry geometry.
    for stream in streams:
        if not isinstance(stream, dict):
            continue
        codec_type = stream.get("codec_type")
        if codec_type == "video" or (codec_type is None and "width" in stream and "height" in stream):
            return stream
    return None


def _positive_int(value: Any) -> Optional[int]:
    if value in (None, "N/A", ""):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


__all__ = ["ProbeResult", "build_probe_command", "probe", "parse_probe_output"]
