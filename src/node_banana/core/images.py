"""
Image Payloads - Helpers for the data-URL images that flow through the graph.

Images travel between nodes as ``data:<mime>;base64,<data>`` strings. Providers
need the raw base64 and MIME type, and image inputs record their dimensions.
"""

from __future__ import annotations

import base64
import binascii
from io import BytesIO

from PIL import Image, UnidentifiedImageError


def split_data_url(image: str) -> tuple[str, str]:
    """
    Split a data URL into ``(mime_type, base64_data)``.

    Bare base64 strings are assumed to be PNG.
    """
    if image.startswith("data:") and "base64," in image:
        header, data = image.split("base64,", 1)
        mime_type = header[len("data:"):].rstrip(";") or "image/png"
        return mime_type, data
    return "image/png", image


def to_data_url(data: str | bytes, mime_type: str = "image/png") -> str:
    """Build a data URL from base64 text or raw bytes."""
    if isinstance(data, bytes):
        data = base64.b64encode(data).decode()
    return f"data:{mime_type};base64,{data}"


def decode_image(image: str) -> Image.Image:
    """Open a data-URL image with Pillow."""
    _, data = split_data_url(image)
    try:
        raw = base64.b64decode(data, validate=True)
        return Image.open(BytesIO(raw))
    except (binascii.Error, UnidentifiedImageError) as e:
        raise ValueError(f"Not a decodable image: {e}") from e


def image_dimensions(image: str) -> dict[str, int]:
    """Width and height of a data-URL image."""
    with decode_image(image) as img:
        return {"width": img.width, "height": img.height}


def to_png_data_url(image: str) -> str:
    """Re-encode any supported image as a PNG data URL."""
    mime_type, _ = split_data_url(image)
    if mime_type == "image/png":
        return image
    with decode_image(image) as img:
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA")
        buf = BytesIO()
        img.save(buf, format="PNG")
    return to_data_url(buf.getvalue())


def load_image_file(path: str) -> str:
    """Read an image file into a data URL."""
    with Image.open(path) as img:
        fmt = (img.format or "PNG").lower()
    with open(path, "rb") as f:
        raw = f.read()
    return to_data_url(raw, f"image/{'jpeg' if fmt == 'jpg' else fmt}")
