import pytest

from snapforge.services.errors import ValidationError
from snapforge.services.image_options import (
    ImageOptions,
    avif_supported,
    merge_options,
    needs_transform,
    negotiate_format,
    parse_request_options,
    parse_size,
    resolve_options,
    system_defaults,
)
from snapforge.services.settings_store import ImageSettings


def test_merge_only_overrides_set_fields():
    base = ImageOptions(jpeg_quality=80, thumb_size=150, output_format="original")
    gallery = ImageOptions(jpeg_quality=90)
    request = ImageOptions(width=300)
    merged = merge_options(base, gallery, None, request)
    assert merged.jpeg_quality == 90
    assert merged.thumb_size == 150
    assert merged.output_format == "original"
    assert merged.width == 300


def test_system_defaults():
    defaults = system_defaults(ImageSettings(thumb_size=150, thumb_quality=60))
    assert defaults.thumb_size == 150
    assert defaults.thumb_quality == 60
    assert defaults.jpeg_quality == 80
    assert defaults.webp_quality == 80
    assert defaults.avif_quality == 50
    assert defaults.png_compression_level == 6
    assert defaults.effort == 4
    assert defaults.chroma_subsampling == "4:2:0"
    assert defaults.resize_method == "lanczos3"


@pytest.mark.parametrize(
    "value,expected",
    [
        ("800x600", (800, 600)),
        ("800x", (800, None)),
        ("x600", (None, 600)),
        ("800", (800, None)),
        ("", (None, None)),
        (None, (None, None)),
    ],
)
def test_parse_size(value, expected):
    assert parse_size(value) == expected


@pytest.mark.parametrize("value", ["abc", "x", " x ", "0x10", "10x0", "99999x1", "-5x10", "10y10"])
def test_parse_size_rejects(value):
    with pytest.raises(ValidationError):
        parse_size(value)


def test_negotiation_prefers_explicit_then_avif_then_webp():
    assert negotiate_format("image/avif,image/webp", "png") == "png"
    expected = "avif" if avif_supported() else "webp"
    assert negotiate_format("image/avif,image/webp,*/*", None) == expected
    assert negotiate_format("image/webp,*/*", None) == "webp"
    assert negotiate_format("image/png,*/*", None) is None
    assert negotiate_format(None, None) is None


def test_parse_request_options():
    req = parse_request_options({"size": "400x300", "q": "70", "f": "jpg"})
    assert req.options == ImageOptions(width=400, height=300, quality=70, output_format="jpeg")
    assert req.negotiated is False

    req = parse_request_options({"w": "200", "thumb": ""})
    assert req.options.width == 200
    assert req.options.thumb is True

    req = parse_request_options({"auto": ""}, "image/webp")
    assert req.negotiated is True
    assert req.options.output_format == "webp"


@pytest.mark.parametrize(
    "query",
    [{"q": "0"}, {"q": "101"}, {"q": "high"}, {"f": "tiff"}, {"w": "0"}, {"h": "abc"}],
)
def test_parse_request_options_rejects(query):
    with pytest.raises(ValidationError):
        parse_request_options(query)


def test_needs_transform():
    assert not needs_transform(ImageOptions())
    assert not needs_transform(parse_request_options({}).options)
    # ?auto with an Accept header that asks for nothing special keeps the original
    assert not needs_transform(parse_request_options({"auto": ""}, "image/png").options)
    assert needs_transform(ImageOptions(thumb=True))
    assert needs_transform(ImageOptions(quality=50))
    assert needs_transform(ImageOptions(output_format="png"))


def test_thumbnails_default_to_jpeg():
    defaults = system_defaults(ImageSettings())
    thumb = resolve_options(defaults, ImageOptions(output_format="png"), ImageOptions(thumb=True))
    assert thumb.output_format == "jpeg"
    explicit = resolve_options(
        defaults, ImageOptions(), ImageOptions(thumb=True, output_format="webp")
    )
    assert explicit.output_format == "webp"
    plain = resolve_options(defaults, ImageOptions(output_format="png"), ImageOptions(width=10))
    assert plain.output_format == "png"
