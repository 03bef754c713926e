from __future__ import annotations

import enum

from .probe import ProbeResult


class Orientation(str, enum.Enum):
    landscape = "landscape"
    portrait = "portrait"
    other = "other"


def classify(result: ProbeResult) -> Orientation:
    """Map geometry to an orientation using an exact 16:9 integer ratio.

    Near-16:9 sizes such as 1920x1088 fall through to ``other``.
    """
    width, height = result.width, result.height
    if width * 9 == height * 16:
        return Orientation.landscape
    if height * 9 == width * 16:
        return Orientation.portrait
    return Orientation.other


__all__ = ["Orientation", "classify"]
