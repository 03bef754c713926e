"""Media inspection and container rewriting helpers."""

from .keys import make_key
from .orientation import Orientation, classify
from .probe import ProbeResult, probe
from .remux import remux_faststart
from .runner import SubprocessRunner, ToolResult, ToolRunner

__all__ = [
    "Orientation",
    "ProbeResult",
    "SubprocessRunner",
    "ToolResult",
    "ToolRunner",
    "classify",
    "make_key",
    "probe",
    "remux_faststart",
]
