"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

images.py - image sniffing and data-URL helpers

Images travel through the pipeline as self-contained data URLs. This module
assigns MIME types from magic numbers, builds/decodes data URLs and decodes
pixel dimensions with Pillow.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
from typing import Optional, Tuple

from PIL import Image as PILImage

from quizforge.model import Image, generate_id


logger = logging.getLogger(__name__)

# Vector formats that target viewers cannot render
UNRENDERABLE_MIME_TYPES = frozenset({"image/emf", "image/wmf", "image/x-emf", "image/x-wmf"})

_EXTENSION_BY_MIME = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
    "image/bmp": "bmp",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "image/emf": "emf",
    "image/wmf": "wmf",
}

_MIME_BY_EXTENSION = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "emf": "image/emf",
    "wmf": "image/wmf",
}


def detect_image_type(data: bytes, filename: Optional[str] = None) -> str:
    """
    Assign a MIME type from the leading bytes of an image payload.

    Raster formats are recognised from their first 12 bytes. EMF/WMF
    metafiles are recognised from their record headers (or extension) so
    callers can discard them. Anything unknown is assumed to be PNG.
    """
    head = data[:12]
    if head[:4] == b"\x89PNG":
        return "image/png"
    if head[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if head[:3] == b"GIF":
        return "image/gif"
    if head[:2] == b"BM":
        return "image/bmp"
    if head[:4] == b"RIFF":
        return "image/webp"

    if head[:4] == b"\x01\x00\x00\x00" and data[40:44] == b" EMF":
        return "image/emf"
    if head[:4] == b"\xd7\xcd\xc6\x9a" or head[:4] in (b"\x01\x00\x09\x00", b"\x02\x00\x09\x00"):
        return "image/wmf"

    if filename and "." in filename:
        by_ext = _MIME_BY_EXTENSION.get(filename.rsplit(".", 1)[-1].lower())
        if by_ext:
            return by_ext

    return "image/png"


def is_renderable(mime_type: str) -> bool:
    return mime_type.lower() not in UNRENDERABLE_MIME_TYPES


def extension_for_mime(mime_type: Optional[str]) -> str:
    if not mime_type:
        return "png"
    mime_type = mime_type.lower()
    return _EXTENSION_BY_MIME.get(mime_type, mime_type.split("/")[-1] or "png")


def to_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def data_url_mime(data_url: str) -> str:
    """MIME type declared in a data URL prefix (image/png if absent)."""
    if data_url.startswith("data:"):
        declared = data_url[5:].split(",", 1)[0].split(";", 1)[0]
        if declared:
            return declared
    return "image/png"


def data_url_to_bytes(data_url: str) -> bytes:
    """Decode the payload of a base64 data URL."""
    if "," not in data_url:
        raise ValueError("Not a data URL")
    header, payload = data_url.split(",", 1)
    if ";base64" not in header:
        raise ValueError("Only base64 data URLs are supported")
    try:
        return base64.b64decode(payload, validate=False)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}")


def get_image_dimensions(data: bytes) -> Tuple[int, int]:
    """
    Decode pixel dimensions; (0, 0) when the payload cannot be decoded.

    A bad image never aborts the pipeline.
    """
    try:
        with PILImage.open(io.BytesIO(data)) as img:
            return img.size
    except Exception as e:
        logger.debug("Could not decode image dimensions: %s", e)
        return 0, 0


def make_image(
    data: bytes,
    filename: str,
    source: str,
    mime_type: Optional[str] = None,
) -> Image:
    """Build an Image record from raw bytes, sniffing the type if not given."""
    mime_type = mime_type or detect_image_type(data, filename)
    width, height = get_image_dimensions(data)
    return Image(
        id=generate_id(),
        filename=filename,
        data_url=to_data_url(data, mime_type),
        mime_type=mime_type,
        size=len(data),
        width=width,
        height=height,
        source=source,
    )


def image_from_data_url(data_url: str, filename: str, source: str) -> Image:
    """Build an Image record from an inline data URL (e.g. a QTI <img src="data:...">)."""
    mime_type = data_url_mime(data_url)
    try:
        data = data_url_to_bytes(data_url)
    except ValueError:
        data = b""
    width, height = get_image_dimensions(data) if data else (0, 0)
    return Image(
        id=generate_id(),
        filename=filename,
        data_url=data_url,
        mime_type=mime_type,
        size=len(data),
        width=width,
        height=height,
        source=source,
    )


def image_from_upload(data: bytes, filename: str, mime_type: Optional[str] = None) -> Image:
    """Image attached by hand in the editor."""
    return make_image(data, filename, source="upload", mime_type=mime_type)
