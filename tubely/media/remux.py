from __future__ import annotations

from pathlib import Path

from tubely.core.errors import ProcessingError

from .runner import ToolRunner

REMUX_SUFFIX = ".processing"


def remux_output_path(input_path: Path) -> Path:
    return input_path.with_name(input_path.name + REMUX_SUFFIX)


def build_faststart_command(input_path: Path, output_path: Path, *, binary: str = "ffmpeg") -> list[str]:
    return [
        binary,
        "-nostdin",
        "-v",
        "error",
        "-y",
        "-i",
        str(input_path),
        "-movflags",
        "faststart",
        "-codec",
        "copy",
        "-f",
        "mp4",
        str(output_path),
    ]


def remux_faststart(
    input_path: Path,
    runner: ToolRunner,
    *,
    binary: str = "ffmpeg",
    timeout: float | None = None,
) -> Path:
    """Copy all streams into a sibling file with the moov atom moved to the front.

    The caller owns the returned file and must delete it.

    Raises:
        ProcessingError: ffmpeg failed or produced an empty file. Any partial
            output is removed before raising.
    """
    output_path = remux_output_path(input_path)
    try:
        result = runner.run(build_faststart_command(input_path, output_path, binary=binary), timeout=timeout)
        if not result.ok:
            raise ProcessingError(
                f"ffmpeg exited with status {result.returncode}",
                diagnostics=result.stderr.strip() or None,
            )
        try:
            size = output_path.stat().st_size
        except FileNotFoundError as exc:
            raise ProcessingError("remuxed file was not produced") from exc
        if size == 0:
            raise ProcessingError("remuxed file is empty")
    except BaseException:
        output_path.unlink(missing_ok=True)
        raise
    return output_path


__all__ = ["REMUX_SUFFIX", "remux_output_path", "build_faststart_command", "remux_faststart"]
