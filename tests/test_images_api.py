from fastapi.testclient import TestClient

from conftest import make_image_bytes
from snapforge.models import GalleryCollaborator
from snapforge.services.galleries import create_gallery
from snapforge.services.tags import create_tag


def _upload(client, data=None):
    data = make_image_bytes() if data is None else data
    r = client.post("/api/images/upload", files={"file": ("a.jpg", data, "image/jpeg")})
    assert r.status_code == 201, r.text
    return r.json()["image"]


def test_missing_or_malformed_bearer(client):
    assert client.get("/api/images").status_code == 401
    r = client.get("/api/images", headers={"Authorization": "Token abc"})
    assert r.status_code == 401
    assert "Bearer" in r.json()["error"]
    assert client.get("/api/images", headers={"Authorization": "Bearer wrong"}).status_code == 401


def test_upload_list_get_delete(api_client):
    image = _upload(api_client)
    listed = api_client.get("/api/images").json()
    assert [i["id"] for i in listed["images"]] == [image["id"]]
    assert api_client.get(f"/api/images/{image['id']}").json()["id"] == image["id"]
    assert api_client.delete(f"/api/images/{image['id']}").status_code == 204
    assert api_client.get(f"/api/images/{image['id']}").status_code == 404


def test_image_from_other_gallery_is_forbidden(db_session, api_client, owner, app):
    other = create_gallery(db_session, owner.UserID, "Other")
    other_client = TestClient(app, headers={"Authorization": f"Bearer {other.AccessToken}"})
    foreign = _upload(other_client)
    assert api_client.get(f"/api/images/{foreign['id']}").status_code == 403
    assert api_client.delete(f"/api/images/{foreign['id']}").status_code == 403
    r = api_client.request("DELETE", "/api/images", json={"ids": [foreign["id"]]})
    assert r.status_code == 403
    assert other_client.get(f"/api/images/{foreign['id']}").status_code == 200


def test_bulk_delete(api_client):
    a = _upload(api_client)
    b = _upload(api_client)
    assert api_client.request("DELETE", "/api/images", json={"ids": []}).status_code == 400
    r = api_client.request("DELETE", "/api/images", json={"ids": [a["id"], b["id"], "missing"]})
    assert r.status_code == 204
    assert api_client.get("/api/images").json()["pagination"]["total"] == 0


def test_metadata_via_bearer(api_client):
    image = _upload(api_client)
    r = api_client.patch(
        f"/api/images/{image['id']}/metadata",
        json={"latitude": 51.5, "longitude": -0.12, "locationName": "London"},
    )
    assert r.status_code == 200
    assert r.json()["image"]["locationName"] == "London"
    r = api_client.patch(f"/api/images/{image['id']}/metadata", json={"latitude": 100})
    assert r.status_code == 400


def test_tags_via_session_follow_roles(db_session, api_client, gallery, make_user, login_client):
    image = _upload(api_client)
    viewer = make_user("viewer@example.com")
    db_session.add(GalleryCollaborator(GalleryID=gallery.GalleryID, UserID=viewer.UserID, Role="viewer"))
    db_session.commit()
    tag = create_tag(db_session, gallery.GalleryID, "Pets")
    # The bearer token may tag images of its own gallery
    r = api_client.post(f"/api/images/{image['id']}/tags", json={"tagIds": [tag.TagID]})
    assert r.status_code == 200
    assert [t["name"] for t in r.json()["tags"]] == ["Pets"]

    v = login_client(viewer)
    assert v.get(f"/api/images/{image['id']}/tags").json()["tags"][0]["name"] == "Pets"
    assert v.post(f"/api/images/{image['id']}/tags", json={"tagIds": []}).status_code == 403

    stranger = login_client(make_user("stranger@example.com"))
    assert stranger.get(f"/api/images/{image['id']}/tags").status_code == 404
