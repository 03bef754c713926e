from __future__ import annotations

import base64
import secrets

from .orientation import Orientation


def extension_for(content_type: str) -> str:
    """``video/mp4`` -> ``.mp4``; parameters and casing are ignored."""
    media_type = content_type.split(";", 1)[0].strip().lower()
    _, _, subtype = media_type.partition("/")
    subtype = subtype.split("+", 1)[0]
    return f".{subtype}" if subtype else ".bin"


def random_identifier(nbytes: int = 32) -> str:
    return base64.urlsafe_b64encode(secrets.token_bytes(nbytes)).decode("ascii").rstrip("=")


def make_key(content_type: str, orientation: Orientation) -> str:
    return f"{orientation.value}/{random_identifier()}{extension_for(content_type)}"


__all__ = ["extension_for", "random_identifier", "make_key"]
