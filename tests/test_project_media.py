from unittest.mock import MagicMock

import pytest

from expiring_store import ExpiringStore, thumbnail_cache_key

VIDEOS = [
    {"id": "v1", "name": "vows.mp4", "file_path": "stream://abc123", "stream_video_id": "abc123",
     "uploaded_by_guest": True, "guest_name": "Sam"},
    {"id": "v2", "name": "toast.mp4", "file_path": "r2://media/p1/toast.mp4", "r2_object_key": "media/p1/toast.mp4"},
]


@pytest.fixture
def project_media(load_function, monkeypatch):
    module = load_function("media/project-media")
    projects_db = MagicMock()
    projects_db.get_item.return_value = {"id": "p1", "user_id": "u1", "edited_video_url": None}
    videos_db = MagicMock()
    videos_db.query.return_value = [dict(v) for v in VIDEOS]
    subscriptions_db = MagicMock()
    subscriptions_db.get_item.return_value = None
    purchases_db = MagicMock()
    purchases_db.query.return_value = []
    monkeypatch.setattr(module, "projects_db", projects_db)
    monkeypatch.setattr(module, "videos_db", videos_db)
    monkeypatch.setattr(module, "subscriptions_db", subscriptions_db)
    monkeypatch.setattr(module, "purchases_db", purchases_db)
    monkeypatch.setattr(module, "thumbnail_cache", ExpiringStore(300))

    r2_client = MagicMock()
    r2_client.generate_presigned_url.return_value = "https://signed.example/toast"
    monkeypatch.setattr(module, "_r2_access", lambda: (r2_client, MagicMock(bucket="wedding-media")))
    return module


def test_owner_gets_stream_and_r2_media(project_media, make_event, body_of):
    response = project_media.lambda_handler(make_event({"projectId": "p1"}, user_id="u1"), None)

    assert response["statusCode"] == 200
    body = body_of(response)
    stream, stored = body["media"]
    assert stream["source"] == "stream"
    assert stream["playbackUrl"] == "https://videodelivery.net/abc123/manifest/video.m3u8"
    assert set(stream["thumbnails"]) == {"mobile", "tablet", "desktop", "original"}
    assert stream["uploadedByGuest"] is True
    assert stored["source"] == "r2"
    assert stored["signedUrl"] == "https://signed.example/toast"


def test_free_owner_cannot_download(project_media, make_event, body_of):
    body = body_of(project_media.lambda_handler(make_event({"projectId": "p1"}, user_id="u1"), None))

    assert body["canDownload"] is False
    assert body["downloadUpgradeMessage"] == "Upgrade to Premium to download your videos"


def test_paid_project_can_download(project_media, make_event, body_of):
    project_media.purchases_db.query.return_value = [
        {"user_id": "u1", "id": "x", "project_id": "p1", "tier": "premium", "status": "paid"}]

    body = body_of(project_media.lambda_handler(make_event({"projectId": "p1"}, user_id="u1"), None))

    assert body["canDownload"] is True
    assert body["downloadUpgradeMessage"] is None


def test_thumbnails_are_served_from_cache(project_media):
    project_media.thumbnail_cache.set(thumbnail_cache_key("abc123", "mobile"), "cached-url", now=100)

    thumbnails = project_media.cached_thumbnails("abc123", now=200)

    assert thumbnails["mobile"] == "cached-url"
    # expired entries are rebuilt
    assert project_media.cached_thumbnails("abc123", now=1000)["mobile"].startswith("https://videodelivery.net/abc123/")



def test_stale_thumbnails_of_other_streams_are_purged(project_media):
    project_media.thumbnail_cache.set(thumbnail_cache_key("old-stream", "mobile"), "stale-url", now=0)

    project_media.cached_thumbnails("abc123", now=1000)

    assert len(project_media.thumbnail_cache) == 4
    assert project_media.thumbnail_cache.get(thumbnail_cache_key("old-stream", "mobile"), now=1000) is None


def test_other_users_project_is_forbidden(project_media, make_event):
    response = project_media.lambda_handler(make_event({"projectId": "p1"}, user_id="u2"), None)
    assert response["statusCode"] == 403


def test_unknown_project_is_not_found(project_media, make_event):
    project_media.projects_db.get_item.return_value = None
    response = project_media.lambda_handler(make_event({"projectId": "nope"}, user_id="u1"), None)
    assert response["statusCode"] == 404
