"""Pillow rendering for resolved ImageOptions."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from snapforge.services.errors import ImageProcessingError, ValidationError
from snapforge.services.image_options import ImageOptions
from snapforge.services.mime_utils import mime_for_pil_format, pil_format_for_output

logger = logging.getLogger(__name__)

RESAMPLING = {
    "lanczos3": Image.Resampling.LANCZOS,
    "lanczos2": Image.Resampling.LANCZOS,
    "mitchell": Image.Resampling.BICUBIC,
    "catrom": Image.Resampling.BICUBIC,
    "nearest": Image.Resampling.NEAREST,
}

# Containers Pillow can write back when the output format is "original"
_WRITABLE_SOURCE_FORMATS = {"JPEG", "PNG", "WEBP", "GIF", "AVIF"}

# Multi-picture JPEGs from phones and cameras decode as MPO; the first frame is a plain JPEG
_SOURCE_FORMAT_ALIASES = {"MPO": "JPEG"}


def source_format(im: Image.Image) -> str:
    fmt = (im.format or "").upper()
    return _SOURCE_FORMAT_ALIASES.get(fmt, fmt)


@dataclass(frozen=True)
class RenderResult:
    data: bytes
    width: int
    height: int
    format: str
    mime_type: str


def probe(data: bytes) -> Tuple[int, int, str]:
    """Decode ``data`` fully and return (width, height, pillow format)."""
    try:
        with Image.open(io.BytesIO(data)) as im:
            im.load()
            if not im.width or not im.height:
                raise ValidationError("Invalid image file")
            return im.width, im.height, source_format(im)
    except (UnidentifiedImageError, OSError, SyntaxError, Image.DecompressionBombError) as e:
        raise ValidationError("Invalid image file") from e


def _target_format(options: ImageOptions, src_format: str) -> str:
    name = options.output_format or "original"
    if name == "original":
        return src_format if src_format in _WRITABLE_SOURCE_FORMATS else "PNG"
    return pil_format_for_output(name)


def _resize(im: Image.Image, options: ImageOptions) -> Image.Image:
    resample = RESAMPLING.get(options.resize_method or "lanczos3", Image.Resampling.LANCZOS)
    if options.thumb:
        size = int(options.thumb_size or 150)
        im = im.copy()
        # thumbnail() keeps the aspect ratio and never enlarges
        im.thumbnail((size, size), resample)
        return im
    if options.width and options.height:
        return ImageOps.fit(im, (options.width, options.height), method=resample, centering=(0.5, 0.5))
    if options.width and options.width < im.width:
        height = max(1, round(im.height * options.width / im.width))
        return im.resize((options.width, height), resample)
    if options.height and options.height < im.height:
        width = max(1, round(im.width * options.height / im.height))
        return im.resize((width, options.height), resample)
    return im


def _quality(options: ImageOptions, fmt: str) -> int:
    if options.quality:
        return options.quality
    if options.thumb and options.thumb_quality:
        return options.thumb_quality
    if fmt == "WEBP":
        return options.webp_quality or 80
    if fmt == "AVIF":
        return options.avif_quality or 50
    return options.jpeg_quality or 80


def _prepare_mode(im: Image.Image, fmt: str) -> Image.Image:
    if fmt == "JPEG" and im.mode not in ("RGB", "L"):
        if im.mode in ("RGBA", "LA", "P"):
            rgba = im.convert("RGBA")
            background = Image.new("RGB", rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.getchannel("A"))
            return background
        return im.convert("RGB")
    if fmt in ("WEBP", "AVIF") and im.mode not in ("RGB", "RGBA"):
        return im.convert("RGBA" if "A" in im.getbands() or im.mode == "P" else "RGB")
    return im


def _save_kwargs(options: ImageOptions, fmt: str, im: Image.Image) -> dict:
    effort = 4 if options.effort is None else int(options.effort)
    chroma = options.chroma_subsampling or "4:2:0"
    kwargs: dict = {}
    if fmt == "JPEG":
        kwargs.update(quality=_quality(options, fmt), subsampling=chroma, optimize=True)
    elif fmt == "WEBP":
        kwargs.update(quality=_quality(options, fmt), method=min(6, max(0, effort)))
    elif fmt == "AVIF":
        kwargs.update(
            quality=_quality(options, fmt),
            speed=min(10, max(0, 10 - effort)),
            subsampling=chroma,
        )
    elif fmt == "PNG":
        level = 6 if options.png_compression_level is None else options.png_compression_level
        kwargs.update(compress_level=int(level))

    icc = im.info.get("icc_profile")
    if icc:
        kwargs["icc_profile"] = icc
    if options.strip_metadata is False and im.info.get("exif") and fmt != "GIF":
        kwargs["exif"] = im.info["exif"]
    return kwargs


def render(data: bytes, options: ImageOptions) -> RenderResult:
    """Decode ``data``, apply orientation, resize and encode per ``options``."""
    try:
        with Image.open(io.BytesIO(data)) as source:
            source.load()
            src_format = source_format(source)
            im: Image.Image = source
            if options.auto_orient is not False:
                im = ImageOps.exif_transpose(im)
            im = _resize(im, options)
            fmt = _target_format(options, src_format)
            im = _prepare_mode(im, fmt)
            out = io.BytesIO()
            im.save(out, format=fmt, **_save_kwargs(options, fmt, im))
            width, height = im.size
    except (UnidentifiedImageError, Image.DecompressionBombError) as e:
        raise ValidationError("Invalid image file") from e
    except (OSError, ValueError, KeyError) as e:
        logger.exception("Image render failed")
        raise ImageProcessingError() from e
    return RenderResult(
        data=out.getvalue(),
        width=width,
        height=height,
        format=fmt.lower(),
        mime_type=mime_for_pil_format(fmt),
    )
