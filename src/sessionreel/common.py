"""sessionreel.common — shared helpers for paths, timing and media handles.

Contains: path variable resolution, storage path joining, time rounding,
access token generation, and clip loading.
"""

import re
import uuid
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path

from moviepy import VideoFileClip


# ── Path utilities ─────────────────────────────────────────────────

def resolve_path_vars(text: str, paths: dict[str, str]) -> str:
    """Replace ${name} variables in a string using the paths dict."""
    def _replace(match):
        key = match.group(1)
        if key not in paths:
            raise ValueError(f"Unknown path variable: ${{{key}}}")
        return paths[key]
    return re.sub(r"\$\{(\w+)\}", _replace, text)


def join_storage_path(*parts: str, trailing_slash: bool = False) -> str:
    """Join object-storage path segments with single '/' separators.

    Object paths are not filesystem paths: no leading slash, no
    normalization of '..', empty segments dropped.
    """
    cleaned = [p.strip("/") for p in parts if p and p.strip("/")]
    joined = "/".join(cleaned)
    if trailing_slash and joined:
        joined += "/"
    return joined


# ── Timing ─────────────────────────────────────────────────────────

def round_to_places(value: float, places: int = 2) -> float:
    """Round a duration/offset in seconds for storage.

    Exact halves round away from zero (1.125 -> 1.13). The float's exact
    binary value is what gets rounded, so 2.675 (stored as 2.67499...) -> 2.67.
    """
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(float(value)).quantize(quantum, rounding=ROUND_HALF_UP))


# ── Tokens ─────────────────────────────────────────────────────────

def new_access_token() -> str:
    """Random token attached to uploaded objects for unguessable URLs."""
    return str(uuid.uuid4())


# ── Clip loading ───────────────────────────────────────────────────

def load_clip(path: str | Path) -> VideoFileClip:
    """Open a media file (local path or http(s) URL) with moviepy.

    Callers own the returned clip and must close it.
    """
    return VideoFileClip(str(path))
