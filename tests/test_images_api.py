"""Image listing, details, bookmarks, sharing, AI metadata and deletion over HTTP."""
from pathlib import Path

import pytest

from panorama_api.errors import ExternalServiceUnavailable
from panorama_api.suggester import MetadataSuggester


def upload_one(upload, headers, name="pano.jpg"):
    response = upload(headers, (name, 320, 160, "JPEG"))
    assert response.status_code == 201
    return response.json()[0]


def set_details(client, headers, image_id, **body):
    response = client.patch(f"/api/images/{image_id}/details", json=body, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


def test_list_images_pagination(test_client, auth_headers, upload):
    specs = [(f"p{i}.jpg", 64, 32, "JPEG") for i in range(5)]
    assert upload(auth_headers, *specs).status_code == 201

    response = test_client.get("/api/images?page=2&pageSize=2", headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 5
    assert body["page"] == 2 and body["pageSize"] == 2
    assert len(body["data"]) == 2

    last = test_client.get("/api/images?page=3&pageSize=2", headers=auth_headers).json()
    assert len(last["data"]) == 1 and last["total"] == 5


def test_list_images_unknown_sort_field(test_client, auth_headers, upload):
    first = upload_one(upload, auth_headers, "first.jpg")
    second = upload_one(upload, auth_headers, "second.jpg")
    body = test_client.get("/api/images?sortField=hash&sortOrder=ascend", headers=auth_headers).json()
    assert [r["id"] for r in body["data"]] == [second["id"], first["id"]]


def test_tags_and_bookmarked_filter(test_client, upload, register_user):
    alice = register_user("alice@example.com", "Alice")
    bob = register_user("bob@example.com", "Bob")

    sunset = upload_one(upload, alice, "sunset.jpg")
    beach = upload_one(upload, alice, "beach.jpg")
    city = upload_one(upload, alice, "city.jpg")
    unmarked = upload_one(upload, alice, "plain.jpg")
    bobs = upload_one(upload, bob, "bob.jpg")

    set_details(test_client, alice, sunset["id"], tags=["sunset"])
    set_details(test_client, alice, beach["id"], tags=["beach", "sea"])
    set_details(test_client, alice, city["id"], tags=["city"])
    set_details(test_client, alice, unmarked["id"], tags=["sunset"])
    set_details(test_client, bob, bobs["id"], tags=["sunset"])
    for record, headers in ((sunset, alice), (beach, alice), (city, alice), (bobs, bob)):
        test_client.patch(f"/api/images/{record['id']}/bookmark", json={"bookmarked": True}, headers=headers)

    body = test_client.get("/api/images?tags=sunset,beach&bookmarked=true", headers=alice).json()

    assert body["total"] == 2
    assert {r["id"] for r in body["data"]} == {sunset["id"], beach["id"]}
    for record in body["data"]:
        assert record["bookmarked"] is True
        assert record["user"] == sunset["user"]
        assert {"sunset", "beach"} & set(record["tags"])


def test_title_search(test_client, auth_headers, upload):
    image = upload_one(upload, auth_headers)
    set_details(test_client, auth_headers, image["id"], title="Lake Bled at Dawn")
    upload_one(upload, auth_headers, "other.jpg")

    body = test_client.get("/api/images?title=bled", headers=auth_headers).json()
    assert [r["id"] for r in body["data"]] == [image["id"]]


def test_bookmark_toggles_without_body(test_client, auth_headers, upload):
    image = upload_one(upload, auth_headers)
    assert image["bookmarked"] is False

    first = test_client.patch(f"/api/images/{image['id']}/bookmark", headers=auth_headers)
    assert first.status_code == 200
    assert first.json()["bookmarked"] is True

    second = test_client.patch(f"/api/images/{image['id']}/bookmark", headers=auth_headers)
    assert second.json()["bookmarked"] is False


def test_bookmark_explicit_value(test_client, auth_headers, upload):
    image = upload_one(upload, auth_headers)
    for _ in range(2):
        response = test_client.patch(
            f"/api/images/{image['id']}/bookmark", json={"bookmarked": True}, headers=auth_headers
        )
        assert response.json()["bookmarked"] is True


def test_details_update_overwrites_all_fields(test_client, auth_headers, upload):
    image = upload_one(upload, auth_headers)
    updated = set_details(
        test_client, auth_headers, image["id"],
        title="Old Town", description="Roofs", tags=[" Roofs ", "", "City"], sharePassword="pw",
    )
    assert updated["tags"] == ["Roofs", "City"]
    assert updated["hasSharePassword"] is True

    # Omitted fields are cleared
    cleared = set_details(test_client, auth_headers, image["id"], title="Only title")
    assert cleared["title"] == "Only title"
    assert cleared["description"] is None
    assert cleared["tags"] == []
    assert cleared["hasSharePassword"] is False


def test_other_users_images_are_not_found(test_client, upload, register_user):
    alice = register_user("alice@example.com", "Alice")
    bob = register_user("bob@example.com", "Bob")
    image = upload_one(upload, alice)

    assert test_client.patch(f"/api/images/{image['id']}/bookmark", headers=bob).status_code == 404
    assert test_client.patch(f"/api/images/{image['id']}/details", json={}, headers=bob).status_code == 404
    assert test_client.delete(f"/api/images/{image['id']}", headers=bob).status_code == 404
    assert test_client.get("/api/images", headers=bob).json()["total"] == 0


def test_stats_and_tags(test_client, auth_headers, upload):
    a = upload_one(upload, auth_headers, "a.jpg")
    b = upload_one(upload, auth_headers, "b.jpg")
    set_details(test_client, auth_headers, a["id"], tags=["Sunset", "Beach"])
    set_details(test_client, auth_headers, b["id"], tags=["Alps", "Beach"])
    test_client.patch(f"/api/images/{a['id']}/bookmark", headers=auth_headers)

    stats = test_client.get("/api/images/stats", headers=auth_headers).json()
    assert stats == {
        "totalImages": 2,
        "totalSizeBytes": a["fileSize"] + b["fileSize"],
        "totalViews": 0,
        "bookmark": {"bookmarked": 1, "unbookmarked": 1},
    }

    tags = test_client.get("/api/images/tags", headers=auth_headers).json()
    assert tags == ["Alps", "Beach", "Sunset"]


def test_delete_removes_record_and_artifacts(test_client, auth_headers, upload, store):
    image = upload_one(upload, auth_headers)
    root = Path(store.adapter.base_path)
    assert (root / "originals" / image["filename"]).exists()

    response = test_client.delete(f"/api/images/{image['id']}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json() == {"message": "Image deleted"}

    assert not (root / "originals" / image["filename"]).exists()
    assert not (root / "thumbnails" / image["filename"]).exists()
    assert test_client.patch(f"/api/images/{image['id']}/bookmark", headers=auth_headers).status_code == 404
    assert test_client.delete(f"/api/images/{image['id']}", headers=auth_headers).status_code == 404
    assert test_client.post(f"/api/images/hash/{image['hash']}", json={}).status_code == 404


def test_shared_access_with_password(test_client, auth_headers, upload):
    image = upload_one(upload, auth_headers)
    set_details(test_client, auth_headers, image["id"], sharePassword="s3cret")

    wrong = test_client.post(f"/api/images/hash/{image['hash']}", json={"sharePassword": "nope"})
    assert wrong.status_code == 404
    missing = test_client.post(f"/api/images/hash/{image['hash']}")
    assert missing.status_code == 404
    views = test_client.get("/api/images", headers=auth_headers).json()["data"][0]["viewCount"]
    assert views == 0

    ok = test_client.post(f"/api/images/hash/{image['hash']}", json={"sharePassword": "s3cret"})
    assert ok.status_code == 200
    assert ok.json() == {
        "id": image["id"],
        "hash": image["hash"],
        "imageUrl": f"http://testserver{image['originalUrl']}",
    }
    views = test_client.get("/api/images", headers=auth_headers).json()["data"][0]["viewCount"]
    assert views == 1


def test_shared_access_without_password(test_client, auth_headers, upload):
    image = upload_one(upload, auth_headers)

    assert test_client.post(f"/api/images/hash/{image['hash']}", json={}).status_code == 200
    assert test_client.post(f"/api/images/hash/{image['hash']}", json={"sharePassword": ""}).status_code == 200
    assert test_client.post(f"/api/images/hash/{image['hash']}", json={"sharePassword": "x"}).status_code == 404


def test_unknown_hash_is_not_found(test_client):
    response = test_client.post("/api/images/hash/" + "0" * 64, json={})
    assert response.status_code == 404
    assert response.json()["message"] == "Image not found"


def test_ai_metadata_unconfigured(test_client, auth_headers, upload):
    image = upload_one(upload, auth_headers)
    response = test_client.post(f"/api/images/{image['id']}/ai-metadata", json={}, headers=auth_headers)
    assert response.status_code == 500
    assert response.json()["message"] == "OpenAI API key not configured on server."


def test_routes_require_a_token(test_client):
    assert test_client.get("/api/images").status_code == 401
    assert test_client.get("/api/images/stats").status_code == 401
    response = test_client.get("/api/images/tags", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or expired token"


class RecordingSuggester(MetadataSuggester):
    def __init__(self):
        self.calls = []

    async def suggest(self, data, mime_type, lang=None):
        self.calls.append((len(data), mime_type, lang))
        if lang == "fail":
            raise ExternalServiceUnavailable("Error generating AI metadata", error="upstream down")
        return {"title": "Harbor", "tags": ["Sea", "Boats"]}


class TestWithSuggester:
    @pytest.fixture
    def fake_suggester(self):
        return RecordingSuggester()

    def test_ai_metadata(self, test_client, auth_headers, upload, fake_suggester):
        image = upload_one(upload, auth_headers)
        response = test_client.post(
            f"/api/images/{image['id']}/ai-metadata", json={"lang": "zh-CN"}, headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json() == {"title": "Harbor", "tags": ["Sea", "Boats"]}
        assert fake_suggester.calls == [(image["fileSize"], "image/jpeg", "zh-CN")]

    def test_ai_metadata_for_missing_image(self, test_client, auth_headers):
        response = test_client.post("/api/images/999/ai-metadata", headers=auth_headers)
        assert response.status_code == 404

    def test_ai_metadata_upstream_failure(self, test_client, auth_headers, upload):
        image = upload_one(upload, auth_headers)
        response = test_client.post(
            f"/api/images/{image['id']}/ai-metadata", json={"lang": "fail"}, headers=auth_headers
        )
        assert response.status_code == 500
        assert response.json() == {"message": "Error generating AI metadata", "error": "upstream down"}
