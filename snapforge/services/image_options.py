"""Resolution of image processing options.

Options come from three layers: system defaults, the gallery's nullable
overrides and the parameters of the current request. ``merge_options`` applies
them left to right; a layer only overrides the fields it actually sets.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, fields, replace
from typing import Mapping, Optional, Tuple

from PIL import features

from snapforge.services.errors import ValidationError

OUTPUT_FORMAT_CHOICES = ("original", "jpeg", "webp", "avif", "png")
RESIZE_METHODS = ("lanczos3", "lanczos2", "mitchell", "catrom", "nearest")
CHROMA_SUBSAMPLING_CHOICES = ("4:2:0", "4:2:2", "4:4:4")

MAX_DIMENSION = 8192

_FORMAT_ALIASES = {"jpg": "jpeg", "jpeg": "jpeg", "webp": "webp", "avif": "avif", "png": "png"}
_SIZE_RE = re.compile(r"^(\d+)?x?(\d+)?$")


@dataclass(frozen=True)
class ImageOptions:
    width: Optional[int] = None
    height: Optional[int] = None
    thumb: Optional[bool] = None
    # Request-level quality; applies to the finally selected output format only
    quality: Optional[int] = None
    output_format: Optional[str] = None
    thumb_size: Optional[int] = None
    thumb_quality: Optional[int] = None
    resize_method: Optional[str] = None
    jpeg_quality: Optional[int] = None
    webp_quality: Optional[int] = None
    avif_quality: Optional[int] = None
    png_compression_level: Optional[int] = None
    effort: Optional[int] = None
    chroma_subsampling: Optional[str] = None
    strip_metadata: Optional[bool] = None
    auto_orient: Optional[bool] = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


@dataclass(frozen=True)
class RequestOptions:
    options: ImageOptions
    # True when ?auto was given; the response must then vary on Accept
    negotiated: bool = False


def merge_options(*layers: Optional[ImageOptions]) -> ImageOptions:
    merged = {}
    for layer in layers:
        if layer is None:
            continue
        for f in fields(layer):
            value = getattr(layer, f.name)
            if value is not None:
                merged[f.name] = value
    return ImageOptions(**merged)


def system_defaults(image_settings) -> ImageOptions:
    """Layer 1: compiled-in encoder defaults plus the ``images`` setting."""
    return ImageOptions(
        thumb_size=image_settings.thumb_size,
        thumb_quality=image_settings.thumb_quality,
        output_format="original",
        resize_method="lanczos3",
        jpeg_quality=80,
        webp_quality=80,
        avif_quality=50,
        png_compression_level=6,
        effort=4,
        chroma_subsampling="4:2:0",
        strip_metadata=True,
        auto_orient=True,
    )


def gallery_overrides(gallery) -> ImageOptions:
    """Layer 2: the gallery's processing columns (NULL means not set)."""
    if gallery is None:
        return ImageOptions()
    return ImageOptions(
        thumb_size=gallery.ThumbSize,
        thumb_quality=gallery.ThumbQuality,
        output_format=gallery.OutputFormat,
        resize_method=gallery.ResizeMethod,
        jpeg_quality=gallery.JpegQuality,
        webp_quality=gallery.WebpQuality,
        avif_quality=gallery.AvifQuality,
        png_compression_level=gallery.PngCompressionLevel,
        effort=gallery.Effort,
        chroma_subsampling=gallery.ChromaSubsampling,
        strip_metadata=gallery.StripMetadata,
        auto_orient=gallery.AutoOrient,
    )


def has_encode_overrides(gallery) -> bool:
    """Whether uploads to ``gallery`` must be re-encoded before storing."""
    layer = gallery_overrides(gallery)
    if layer.output_format not in (None, "original"):
        return True
    encode_fields = (
        layer.jpeg_quality,
        layer.webp_quality,
        layer.avif_quality,
        layer.png_compression_level,
        layer.effort,
        layer.chroma_subsampling,
        layer.strip_metadata,
        layer.auto_orient,
    )
    return any(v is not None for v in encode_fields)


def avif_supported() -> bool:
    return bool(features.check("avif"))


def normalize_format(value: str) -> str:
    fmt = _FORMAT_ALIASES.get(value.strip().lower())
    if fmt is None:
        raise ValidationError(f"Unsupported output format: {value}")
    if fmt == "avif" and not avif_supported():
        raise ValidationError("AVIF output is not available on this server")
    return fmt


def parse_size(value: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    """Parse ``800x600``, ``800x``, ``x600`` or ``800`` into (width, height)."""
    if not value:
        return None, None
    match = _SIZE_RE.match(value.strip())
    if not match:
        raise ValidationError("Invalid size; expected WxH, Wx or xH")
    w, h = match.groups()
    if w is None and h is None:
        raise ValidationError("Invalid size; expected WxH, Wx or xH")
    return (_dimension(w, "size") if w else None, _dimension(h, "size") if h else None)


def _dimension(raw: str, name: str) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name}") from None
    if not 1 <= value <= MAX_DIMENSION:
        raise ValidationError(f"{name} must be between 1 and {MAX_DIMENSION}")
    return value


def negotiate_format(accept: Optional[str], explicit: Optional[str] = None) -> Optional[str]:
    """Pick an output format: a valid explicit one, else AVIF, else WebP, else None."""
    if explicit:
        return normalize_format(explicit)
    accept = (accept or "").lower()
    if "image/avif" in accept and avif_supported():
        return "avif"
    if "image/webp" in accept:
        return "webp"
    return None


def parse_request_options(query: Mapping[str, str], accept: Optional[str] = None) -> RequestOptions:
    """Layer 3 from the delivery query string (size, w, h, q, f/format, thumb, auto)."""
    width, height = parse_size(query.get("size"))
    if query.get("w"):
        width = _dimension(query["w"], "w")
    if query.get("h"):
        height = _dimension(query["h"], "h")

    quality = None
    if query.get("q"):
        try:
            quality = int(query["q"])
        except ValueError:
            raise ValidationError("q must be an integer between 1 and 100") from None
        if not 1 <= quality <= 100:
            raise ValidationError("q must be between 1 and 100")

    explicit = query.get("f") or query.get("format")
    negotiated = "auto" in query
    if negotiated:
        output_format = negotiate_format(accept, explicit)
    else:
        output_format = normalize_format(explicit) if explicit else None

    options = ImageOptions(
        width=width,
        height=height,
        thumb=True if "thumb" in query else None,
        quality=quality,
        output_format=output_format,
    )
    return RequestOptions(options=options, negotiated=negotiated)


def needs_transform(request_layer: ImageOptions) -> bool:
    """False when the stored bytes can be served unchanged."""
    return any(
        (
            request_layer.width,
            request_layer.height,
            request_layer.thumb,
            request_layer.quality,
            request_layer.output_format,
        )
    )


def resolve_options(
    defaults: ImageOptions, gallery_layer: ImageOptions, request_layer: ImageOptions
) -> ImageOptions:
    """Merge the three layers into the effective options for one render."""
    effective = merge_options(defaults, gallery_layer, request_layer)
    if request_layer.thumb and request_layer.output_format is None:
        # Thumbnails are JPEG unless the request picked a format
        effective = replace(effective, output_format="jpeg")
    return effective
