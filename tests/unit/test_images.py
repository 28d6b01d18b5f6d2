"""
Tests for data-URL image helpers.
"""

import base64
from io import BytesIO

import pytest
from PIL import Image

from node_banana.core.images import (
    decode_image,
    image_dimensions,
    load_image_file,
    split_data_url,
    to_data_url,
    to_png_data_url,
)


def encoded(fmt="PNG", size=(4, 3), mode="RGB"):
    buf = BytesIO()
    Image.new(mode, size, color=0).save(buf, format=fmt)
    return buf.getvalue()


class TestDataUrls:

    def test_split(self):
        assert split_data_url("data:image/jpeg;base64,QUJD") == ("image/jpeg", "QUJD")

    def test_split_bare_base64(self):
        assert split_data_url("QUJD") == ("image/png", "QUJD")

    def test_to_data_url_from_bytes(self):
        assert to_data_url(b"ABC", "image/webp") == "data:image/webp;base64,QUJD"

    def test_to_data_url_from_text(self):
        assert to_data_url("QUJD") == "data:image/png;base64,QUJD"


class TestDecoding:

    def test_dimensions(self):
        assert image_dimensions(to_data_url(encoded(size=(7, 5)))) == {"width": 7, "height": 5}

    def test_invalid_image(self):
        with pytest.raises(ValueError):
            decode_image(to_data_url(b"not an image"))

    def test_png_passthrough(self):
        url = to_data_url(encoded())
        assert to_png_data_url(url) == url

    def test_gif_converted_to_png(self):
        url = to_data_url(encoded("GIF", mode="P"), "image/gif")
        converted = to_png_data_url(url)
        mime_type, data = split_data_url(converted)
        assert mime_type == "image/png"
        assert Image.open(BytesIO(base64.b64decode(data))).format == "PNG"

    def test_load_image_file(self, tmp_path):
        path = tmp_path / "photo.jpg"
        path.write_bytes(encoded("JPEG"))
        url = load_image_file(str(path))
        assert url.startswith("data:image/jpeg;base64,")
        assert image_dimensions(url) == {"width": 4, "height": 3}
