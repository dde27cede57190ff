"""Helpers shared by the test modules."""

import io
from pathlib import Path

from PIL import Image

FIXED_TIME = 1_700_000_000.0


def png_bytes(size: tuple[int, int] = (16, 16)) -> bytes:
    """A small, deliberately unoptimized PNG."""
    buffer = io.BytesIO()
    Image.new("RGB", size, (200, 30, 30)).save(buffer, format="PNG", compress_level=0)
    return buffer.getvalue()


def write(path: Path, content: str | bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")
    return path
