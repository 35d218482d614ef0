import io

import pytest
from PIL import Image as PILImage
from sqlalchemy.exc import OperationalError

from conftest import make_image_bytes, make_mpo_bytes
from snapforge.models import Image
from snapforge.services import images as image_service
from snapforge.services.errors import NotFoundError, PermissionDeniedError, StorageError, ValidationError
from snapforge.services.galleries import create_gallery, update_gallery_settings
from snapforge.services.image_options import ImageOptions
from snapforge.services.settings_store import ImageSettings

SETTINGS = ImageSettings()


def _upload(db, storage, gallery, data=None, content_type="image/jpeg", name="photo.jpg", image_settings=SETTINGS):
    data = make_image_bytes(120, 80) if data is None else data
    return image_service.upload_image(db, storage, gallery, name, content_type, data, image_settings)


def test_upload_stores_blob_and_row(db_session, storage, gallery):
    data = make_image_bytes(120, 80)
    image = _upload(db_session, storage, gallery, data)
    assert image.StoragePath == f"{gallery.GalleryID}/{image.ImageID}.jpg"
    assert (image.Width, image.Height, image.MimeType) == (120, 80, "image/jpeg")
    assert image.SizeBytes == len(data)
    assert image.OriginalFileName == "photo.jpg"
    assert storage.read(image.StoragePath) == data


def test_upload_rejections_have_no_side_effects(db_session, storage, gallery, tmp_path):
    with pytest.raises(ValidationError):
        _upload(db_session, storage, gallery, b"%PDF-1.4", content_type="application/pdf")
    with pytest.raises(ValidationError):
        _upload(db_session, storage, gallery, b"not an image at all")
    with pytest.raises(ValidationError):
        _upload(db_session, storage, gallery, b"")
    tiny_limit = ImageSettings(max_upload_size_mb=1)
    with pytest.raises(ValidationError):
        _upload(db_session, storage, gallery, b"\xff" * (1024 * 1024 + 1), image_settings=tiny_limit)
    assert db_session.query(Image).count() == 0
    assert not (tmp_path / "blobs" / gallery.GalleryID).exists()


def test_decoded_format_wins_over_declared_type(db_session, storage, gallery):
    image = _upload(db_session, storage, gallery, make_image_bytes(10, 10, "PNG"), content_type="image/jpeg")
    assert image.MimeType == "image/png"
    assert image.StoragePath.endswith(".png")



def test_multi_picture_jpeg_is_accepted_as_jpeg(db_session, storage, gallery):
    data = make_mpo_bytes(90, 60)
    assert PILImage.open(io.BytesIO(data)).format == "MPO"
    image = _upload(db_session, storage, gallery, data, name="phone.jpg")
    assert (image.Width, image.Height, image.MimeType) == (90, 60, "image/jpeg")
    assert image.StoragePath.endswith(".jpg")
    assert storage.read(image.StoragePath) == data


def test_gallery_overrides_reencode_on_upload(db_session, storage, gallery):
    update_gallery_settings(db_session, gallery, {"outputFormat": "webp"})
    image = _upload(db_session, storage, gallery)
    assert image.MimeType == "image/webp"
    assert image.StoragePath.endswith(".webp")


def test_blob_removed_when_row_insert_fails(db_session, storage, gallery, monkeypatch):
    def failing_commit():
        raise OperationalError("INSERT", {}, Exception("disk full"))

    monkeypatch.setattr(db_session, "commit", failing_commit)
    with pytest.raises(OperationalError):
        _upload(db_session, storage, gallery)
    monkeypatch.undo()
    assert not any(storage.base_path.rglob("*.jpg"))


def test_fast_path_returns_stored_bytes(db_session, storage, gallery, monkeypatch):
    data = make_image_bytes(120, 80)
    image = _upload(db_session, storage, gallery, data)

    def boom(*args, **kwargs):
        raise AssertionError("render must not be called")

    monkeypatch.setattr(image_service.image_processing, "render", boom)
    result = image_service.get_image_bytes(db_session, storage, image, ImageOptions(), SETTINGS)
    assert result.data == data
    assert result.mime_type == "image/jpeg"


def test_transform_path(db_session, storage, gallery):
    image = _upload(db_session, storage, gallery, make_image_bytes(1200, 800))
    result = image_service.get_image_bytes(db_session, storage, image, ImageOptions(thumb=True), SETTINGS)
    assert result.mime_type == "image/jpeg"
    assert result.data != storage.read(image.StoragePath)


def test_require_image(db_session, storage, gallery, owner):
    image = _upload(db_session, storage, gallery)
    other = create_gallery(db_session, owner.UserID, "Other")
    assert image_service.require_image(db_session, image.ImageID, gallery.GalleryID) is image
    with pytest.raises(PermissionDeniedError):
        image_service.require_image(db_session, image.ImageID, other.GalleryID)
    with pytest.raises(NotFoundError):
        image_service.require_image(db_session, "missing")


def test_delete_image_removes_blob_then_row(db_session, storage, gallery):
    image = _upload(db_session, storage, gallery)
    path = image.StoragePath
    image_service.delete_image(db_session, storage, image)
    assert not storage.exists(path)
    assert db_session.query(Image).count() == 0


def test_delete_image_with_missing_blob_succeeds(db_session, storage, gallery):
    image = _upload(db_session, storage, gallery)
    storage.delete(image.StoragePath)
    image_service.delete_image(db_session, storage, image)
    assert db_session.query(Image).count() == 0


def test_storage_failure_keeps_row(db_session, storage, gallery, monkeypatch):
    image = _upload(db_session, storage, gallery)

    def failing_delete(path):
        raise StorageError()

    monkeypatch.setattr(storage, "delete", failing_delete)
    with pytest.raises(StorageError):
        image_service.delete_image(db_session, storage, image)
    assert db_session.query(Image).count() == 1
    assert image_service.delete_images(db_session, storage, [image]) == [image.ImageID]


def test_update_metadata(db_session, storage, gallery):
    image = _upload(db_session, storage, gallery)
    image_service.update_image_metadata(
        db_session,
        image,
        {
            "latitude": 48.8584,
            "longitude": "2.2945",
            "altitude": 35,
            "locationName": " Eiffel Tower ",
            "takenAt": "2024-05-01T12:30:00+02:00",
        },
    )
    data = image_service.image_to_dict(image)
    assert data["latitude"] == pytest.approx(48.8584)
    assert data["longitude"] == pytest.approx(2.2945)
    assert data["locationName"] == "Eiffel Tower"
    assert data["takenAt"] == "2024-05-01T10:30:00"
    for bad in ({"latitude": 91}, {"longitude": -181}, {"takenAt": "yesterday"}, {"altitude": True}):
        with pytest.raises(ValidationError):
            image_service.update_image_metadata(db_session, image, bad)


def test_list_is_paginated(db_session, storage, gallery):
    for _ in range(3):
        _upload(db_session, storage, gallery)
    page = image_service.list_gallery_images(db_session, gallery.GalleryID, page=2, per_page=2)
    assert page["pagination"] == {"page": 2, "perPage": 2, "total": 3, "totalPages": 2}
    assert len(page["images"]) == 1
    capped = image_service.list_gallery_images(db_session, gallery.GalleryID, per_page=1000)
    assert capped["pagination"]["perPage"] == 100
