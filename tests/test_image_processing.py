import io

import pytest
from PIL import Image as PILImage

from conftest import make_image_bytes, make_mpo_bytes
from snapforge.services.errors import ValidationError
from snapforge.services.image_options import ImageOptions, resolve_options, system_defaults
from snapforge.services.image_processing import probe, render
from snapforge.services.settings_store import ImageSettings


def _options(**request):
    return resolve_options(system_defaults(ImageSettings()), ImageOptions(), ImageOptions(**request))


def _open(data):
    return PILImage.open(io.BytesIO(data))


def test_probe():
    assert probe(make_image_bytes(30, 20, "PNG")) == (30, 20, "PNG")
    with pytest.raises(ValidationError):
        probe(b"definitely not an image")


def test_thumbnail_is_bounded_square():
    data = make_image_bytes(4000, 3000)
    result = render(data, _options(thumb=True))
    assert max(result.width, result.height) <= 150
    assert result.width == 150
    assert result.mime_type == "image/jpeg"
    assert _open(result.data).format == "JPEG"


def test_thumbnail_never_upscales():
    result = render(make_image_bytes(40, 30), _options(thumb=True))
    assert (result.width, result.height) == (40, 30)


def test_cover_crop_with_both_dimensions():
    result = render(make_image_bytes(1200, 800), _options(width=300, height=300))
    assert (result.width, result.height) == (300, 300)


def test_single_dimension_is_proportional():
    result = render(make_image_bytes(1200, 800), _options(width=600))
    assert (result.width, result.height) == (600, 400)
    result = render(make_image_bytes(1200, 800), _options(height=200))
    assert (result.width, result.height) == (300, 200)
    result = render(make_image_bytes(100, 80), _options(width=500))
    assert (result.width, result.height) == (100, 80)


def test_original_format_is_kept():
    result = render(make_image_bytes(50, 50, "PNG"), _options(width=25))
    assert result.format == "png"
    assert result.mime_type == "image/png"


def test_convert_to_webp_and_png():
    webp = render(make_image_bytes(80, 60), _options(output_format="webp"))
    assert _open(webp.data).format == "WEBP"
    assert webp.mime_type == "image/webp"
    png = render(make_image_bytes(80, 60), _options(output_format="png"))
    assert _open(png.data).format == "PNG"


def test_transparent_png_to_jpeg_is_flattened():
    data = make_image_bytes(20, 20, "PNG", color=(0, 0, 0, 0), mode="RGBA")
    result = render(data, _options(output_format="jpeg"))
    im = _open(result.data)
    assert im.mode == "RGB"
    assert im.getpixel((10, 10)) == pytest.approx((255, 255, 255), abs=3)


def test_request_quality_changes_output():
    noisy = PILImage.effect_noise((400, 300), 64).convert("RGB")
    buf = io.BytesIO()
    noisy.save(buf, format="JPEG", quality=95)
    data = buf.getvalue()
    low = render(data, _options(quality=10))
    high = render(data, _options(quality=95))
    assert len(low.data) < len(high.data)


def test_auto_orient_applies_exif_rotation():
    im = PILImage.new("RGB", (60, 30), (0, 200, 0))
    exif = PILImage.Exif()
    exif[0x0112] = 6  # rotate 90 CW on display
    buf = io.BytesIO()
    im.save(buf, format="JPEG", exif=exif.tobytes())
    data = buf.getvalue()
    assert render(data, _options(quality=80)).width == 30
    kept = resolve_options(
        system_defaults(ImageSettings()), ImageOptions(auto_orient=False), ImageOptions(quality=80)
    )
    assert render(data, kept).width == 60


def test_multi_picture_jpeg_probes_and_renders_as_jpeg():
    data = make_mpo_bytes(80, 40)
    assert probe(data) == (80, 40, "JPEG")
    result = render(data, _options(width=40))
    assert result.mime_type == "image/jpeg"
    assert _open(result.data).format == "JPEG"
    assert _open(result.data).size == (40, 20)
