from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Protocol, Sequence

from tubely.core.errors import ProcessingError


@dataclass(frozen=True, slots=True)
class ToolResult:
    stdout: str
    stderr: str
    returncode: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ToolRunner(Protocol):
    """Capability used to invoke external media tools.

    Any executor honouring this signature (subprocess, sandbox, fake) can be
    swapped in without touching the pipeline.
    """

    def run(self, args: Sequence[str], *, timeout: float | None = None) -> ToolResult: ...


class SubprocessRunner:
    def run(self, args: Sequence[str], *, timeout: float | None = None) -> ToolResult:
        command = [str(arg) for arg in args]
        try:
            proc = subprocess.run(
                command,
                check=False,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError as exc:
            return ToolResult(stdout="", stderr=str(exc), returncode=127)
        except subprocess.TimeoutExpired as exc:
            raise ProcessingError(f"{command[0]} timed out after {timeout}s") from exc
        return ToolResult(stdout=proc.stdout, stderr=proc.stderr, returncode=proc.returncode)


__all__ = ["ToolResult", "ToolRunner", "SubprocessRunner"]
