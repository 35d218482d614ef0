"""MIME helpers for uploads and delivery.

The decoded Pillow format is authoritative; the client-declared content type
is only used for the allow-list pre-check before any decoding happens.
"""

from __future__ import annotations

from typing import Iterable, Optional

from PIL import Image

EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/avif": "avif",
}

# Output format name (as used in gallery settings and ?f=) -> Pillow format
OUTPUT_FORMATS = {
    "jpeg": "JPEG",
    "webp": "WEBP",
    "avif": "AVIF",
    "png": "PNG",
}


def normalize_mime(content_type: Optional[str]) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def is_allowed_mime(content_type: Optional[str], allowed: Iterable[str]) -> bool:
    return normalize_mime(content_type) in {normalize_mime(a) for a in allowed}


def mime_for_pil_format(pil_format: Optional[str]) -> str:
    if not pil_format:
        return "application/octet-stream"
    pil_format = pil_format.upper()
    if pil_format not in Image.MIME:
        # Plugins register their MIME types lazily
        Image.init()
    return Image.MIME.get(pil_format, "application/octet-stream")


def extension_for_mime(mime: str) -> str:
    return EXTENSIONS.get(normalize_mime(mime), "bin")


def pil_format_for_output(name: str) -> str:
    return OUTPUT_FORMATS[name.lower()]
