"""Image optimization stage."""

from __future__ import annotations

import hashlib
import io
import logging
from typing import Any

from PIL import Image

from assetflow.cache import ImageCache
from assetflow.stages.base import Asset, Stage

logger = logging.getLogger(__name__)

# Bump when the save options below change so stale cache entries are ignored
OPTIMIZER_VERSION = "1"

_FORMATS: dict[str, tuple[str, dict[str, Any]]] = {
    ".png": ("PNG", {"optimize": True}),
    ".jpg": ("JPEG", {"quality": "keep", "optimize": True, "progressive": True}),
    ".jpeg": ("JPEG", {"quality": "keep", "optimize": True, "progressive": True}),
    ".gif": ("GIF", {"optimize": True, "save_all": True}),
}


def cache_key(content: bytes, suffix: str) -> str:
    """Content-addressed key: source bytes plus the optimizer settings applied."""
    digest = hashlib.sha256()
    digest.update(f"{OPTIMIZER_VERSION}:{suffix}:".encode())
    digest.update(content)
    return digest.hexdigest()


class OptimizeImage(Stage):
    """Losslessly recompress PNG, JPEG and GIF images with Pillow.

    Other formats (SVG, WebP, ICO, ...) pass through unchanged. If the
    optimized file is not smaller, the original bytes are kept. Results are
    cached by content so unchanged images are skipped on later runs.
    """

    name = "imagemin"

    def __init__(self, cache: ImageCache | None = None) -> None:
        self.cache = cache

    def apply(self, asset: Asset) -> Asset:
        suffix = asset.relative_path.suffix.lower()
        if suffix not in _FORMATS:
            return asset

        key = cache_key(asset.content, suffix)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Image cache hit: %s", asset.source)
                return asset.with_content(cached)

        optimized = self._optimize(asset, suffix)
        if self.cache is not None:
            self.cache.put(key, optimized)
        return asset.with_content(optimized)

    def _optimize(self, asset: Asset, suffix: str) -> bytes:
        image_format, options = _FORMATS[suffix]
        buffer = io.BytesIO()
        try:
            with Image.open(io.BytesIO(asset.content)) as image:
                if image_format == "JPEG" and image.format != "JPEG":
                    raise self.fail(
                        f"expected JPEG data, found {image.format or 'unknown'}", asset
                    )
                image.save(buffer, format=image_format, **options)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            raise self.fail(f"cannot optimize image: {e}", asset) from e

        optimized = buffer.getvalue()
        if len(optimized) >= len(asset.content):
            return asset.content
        logger.debug(
            "Optimized %s: %d -> %d bytes", asset.source, len(asset.content), len(optimized)
        )
        return optimized
