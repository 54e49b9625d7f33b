from unittest.mock import MagicMock

import httpx
import pytest

import constants
from exceptions import DynamoDBError
from expiring_store import RateLimiter

PROJECT = {"id": "p1", "user_id": "owner-1", "privacy_settings": {"guest_upload": True}}


@pytest.fixture
def stream_upload(load_function, monkeypatch):
    module = load_function("media/stream-upload")
    monkeypatch.setenv("CLOUDFLARE_ACCOUNT_ID", "acct")
    monkeypatch.setenv("CLOUDFLARE_API_TOKEN", "token")
    projects_db = MagicMock()
    projects_db.get_item.return_value = dict(PROJECT)
    monkeypatch.setattr(module, "projects_db", projects_db)
    monkeypatch.setattr(module, "videos_db", MagicMock())
    monkeypatch.setattr(module, "notifications_db", MagicMock())
    monkeypatch.setattr(module, "guest_rate_limiter", RateLimiter(10, 60))
    return module


@pytest.fixture
def cloudflare(stream_upload, monkeypatch):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "POST":
            return httpx.Response(200, json={"success": True, "result": {"uid": "vid123", "uploadURL": "https://upload.example/vid123"}})
        return httpx.Response(200, json={"success": True})

    monkeypatch.setattr(
        stream_upload,
        "_http_client",
        lambda: httpx.Client(base_url=constants.CLOUDFLARE_API_BASE, transport=httpx.MockTransport(handler)),
    )
    return requests


def test_owner_upload_creates_stream_video_and_records_it(stream_upload, cloudflare, make_event, body_of):
    event = make_event({"projectId": "p1", "fileName": "vows.mp4", "fileSize": 1024, "contentType": "video/mp4"})

    response = stream_upload.lambda_handler(event, None)

    assert response["statusCode"] == 200
    body = body_of(response)
    assert body["success"] is True
    assert body["uploadUrl"] == "https://upload.example/vid123"
    assert body["videoId"] == "vid123"

    video = stream_upload.videos_db.put_item.call_args.args[0]
    assert video["file_path"] == "stream://vid123"
    assert video["user_id"] == "owner-1"
    assert video["uploaded_by_guest"] is False
    assert body["databaseId"] == video["id"]

    sent = cloudflare[0]
    assert sent.url.path == "/client/v4/accounts/acct/stream/direct_upload"
    assert sent.headers["Authorization"] == "Bearer token"

    notification = stream_upload.notifications_db.put_item.call_args.args[0]
    assert notification["notification_type"] == "upload_confirmation"


def test_failed_insert_deletes_stream_video(stream_upload, cloudflare, make_event, body_of):
    stream_upload.videos_db.put_item.side_effect = DynamoDBError("write failed")
    event = make_event({"projectId": "p1", "fileName": "vows.mp4", "fileSize": 1024})

    response = stream_upload.lambda_handler(event, None)

    assert response["statusCode"] == 500
    assert [r.method for r in cloudflare] == ["POST", "DELETE"]
    assert cloudflare[1].url.path.endswith("/stream/vid123")
    stream_upload.notifications_db.put_item.assert_not_called()


def test_unsupported_type_is_rejected_before_any_call(stream_upload, cloudflare, make_event, body_of):
    event = make_event({"projectId": "p1", "fileName": "menu.pdf", "fileSize": 10, "contentType": "application/pdf"})

    response = stream_upload.lambda_handler(event, None)

    assert response["statusCode"] == 400
    assert body_of(response)["error"].startswith("menu.pdf: Only MP4")
    assert cloudflare == []


def test_missing_project_id_is_bad_request(stream_upload, make_event):
    response = stream_upload.lambda_handler(make_event({"fileName": "a.mp4"}), None)
    assert response["statusCode"] == 400


def test_guest_upload_blocked_when_disabled(stream_upload, cloudflare, make_event):
    stream_upload.projects_db.get_item.return_value = {"id": "p1", "user_id": "owner-1",
                                                       "privacy_settings": {"guest_upload": False}}
    event = make_event({"projectId": "p1", "fileName": "a.mp4", "guestName": "Sam"})

    assert stream_upload.lambda_handler(event, None)["statusCode"] == 403
    assert cloudflare == []


def test_guest_upload_is_sanitised_and_rate_limited(stream_upload, cloudflare, make_event, monkeypatch, body_of):
    monkeypatch.setattr(stream_upload, "guest_rate_limiter", RateLimiter(1, 60))
    event = make_event({"projectId": "p1", "fileName": "a.mp4", "guestName": "<b>Sam</b>", "guestMessage": "Congrats"})

    first = stream_upload.lambda_handler(event, None)
    second = stream_upload.lambda_handler(event, None)

    assert first["statusCode"] == 200
    video = stream_upload.videos_db.put_item.call_args.args[0]
    assert video["guest_name"] == "Sam"
    assert video["uploaded_by_guest"] is True
    assert second["statusCode"] == 429


def test_missing_credentials_is_server_error(stream_upload, cloudflare, make_event, monkeypatch, body_of):
    monkeypatch.delenv("CLOUDFLARE_API_TOKEN")

    response = stream_upload.lambda_handler(make_event({"projectId": "p1", "fileName": "a.mp4"}), None)

    assert response["statusCode"] == 500
    assert body_of(response)["error"] == "Cloudflare credentials not configured"


def test_preflight(stream_upload, make_event):
    assert stream_upload.lambda_handler(make_event(method="OPTIONS"), None)["statusCode"] == 200


def test_notification_failure_does_not_fail_the_upload(stream_upload, cloudflare, make_event, body_of):
    stream_upload.notifications_db.put_item.side_effect = DynamoDBError("throttled")
    event = make_event({"projectId": "p1", "fileName": "vows.mp4", "fileSize": 1024})

    response = stream_upload.lambda_handler(event, None)

    assert response["statusCode"] == 200
    assert body_of(response)["videoId"] == "vid123"
    stream_upload.videos_db.put_item.assert_called_once()
    assert [r.method for r in cloudflare] == ["POST"]
