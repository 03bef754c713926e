from __future__ import annotations

import json
import shutil
from pathlib import Path
from urllib.parse import urlsplit

import jwt
import pytest

from tubely.media.runner import ToolResult

TEST_SECRET = "test-secret"
TEST_ISSUER = "tubely-test"
TEST_AUDIENCE = "tubely"

requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
    reason="ffmpeg/ffprobe not installed",
)


class FakeRunner:
    """Stands in for ffprobe/ffmpeg; records every invocation."""

    def __init__(self):
        self.calls: list[list[str]] = []
        self.width = 1920
        self.height = 1080
        self.probe_returncode = 0
        self.probe_stdout: str | None = None
        self.remux_returncode = 0
        self.remux_stderr = ""
        self.remux_payload: bytes | None = b"\x00\x00\x00\x18ftypisom-faststart-payload"

    @property
    def tools(self) -> list[str]:
        return [Path(call[0]).name for call in self.calls]

    def run(self, args, *, timeout=None):
        command = [str(arg) for arg in args]
        self.calls.append(command)
        if Path(command[0]).name.startswith("ffprobe"):
            stdout = self.probe_stdout
            if stdout is None:
                stdout = json.dumps(
                    {"streams": [{"index": 0, "codec_type": "video", "width": self.width, "height": self.height}]}
                )
            stderr = "" if self.probe_returncode == 0 else "Invalid data found when processing input"
            return ToolResult(stdout=stdout, stderr=stderr, returncode=self.probe_returncode)

        output = Path(command[-1])
        if self.remux_payload is not None:
            output.write_bytes(self.remux_payload)
        return ToolResult(stdout="", stderr=self.remux_stderr, returncode=self.remux_returncode)


def build_token(user_id: str, *, scopes: list[str] | None = None) -> str:
    payload: dict[str, object] = {"sub": user_id, "iss": TEST_ISSUER, "aud": TEST_AUDIENCE}
    if scopes:
        payload["scopes"] = scopes
    return jwt.encode(payload, TEST_SECRET, algorithm="HS256")


def relative_url(url: str) -> str:
    """Strip scheme and host so TestClient can follow a signed link."""
    parts = urlsplit(url)
    return f"{parts.path}?{parts.query}" if parts.query else parts.path


def staged_files(staging_dir: Path) -> list[Path]:
    if not staging_dir.exists():
        return []
    return sorted(staging_dir.iterdir())
