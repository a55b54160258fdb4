"""Pillow-based resize and WebP re-encode of edited images."""

from __future__ import annotations

import io

from PIL import Image, UnidentifiedImageError

from news_publisher.config import ImageSettings
from news_publisher.errors import IntegrationError


class WebpTransformer:
    """Stretch to the fixed output size and encode as WebP."""

    mime_type = "image/webp"
    extension = "webp"

    def __init__(self, settings: ImageSettings) -> None:
        self._size = (settings.output_width, settings.output_height)
        self._quality = settings.webp_quality

    def transform(self, data: bytes) -> bytes:
        try:
            with Image.open(io.BytesIO(data)) as source:
                image = source.convert("RGBA" if _has_alpha(source) else "RGB")
        except (UnidentifiedImageError, OSError) as exc:
            raise IntegrationError("image-transform", f"cannot decode image: {exc}") from exc

        resized = image.resize(self._size, Image.Resampling.LANCZOS)
        output = io.BytesIO()
        resized.save(output, format="WEBP", quality=self._quality)
        return output.getvalue()


def _has_alpha(image: Image.Image) -> bool:
    return image.mode in {"RGBA", "LA"} or (image.mode == "P" and "transparency" in image.info)
