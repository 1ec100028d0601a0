from __future__ import annotations

from io import BytesIO

from PIL import Image, UnidentifiedImageError

JPEG_QUALITY = 75


class ImageConversionError(RuntimeError):
    pass


def convert_to_jpeg(image_bytes: bytes, *, quality: int = JPEG_QUALITY) -> bytes:
    """Decode any raster Pillow understands and re-encode it as JPEG."""
    try:
        with Image.open(BytesIO(image_bytes)) as src:
            src.load()
            # JPEG has no alpha channel or palette.
            img = src.convert("RGB")
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageConversionError(f"unable to decode image: {exc}") from exc

    out = BytesIO()
    try:
        img.save(out, format="JPEG", quality=quality)
    except OSError as exc:
        raise ImageConversionError(f"unable to encode jpeg: {exc}") from exc
    return out.getvalue()
