import base64
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

import object_storage
from exceptions import DynamoDBError

R2_ENV = {
    "CLOUDFLARE_ACCOUNT_ID": "acct",
    "CLOUDFLARE_R2_BUCKET": "wedding-media",
    "CLOUDFLARE_R2_ACCESS_KEY_ID": "key",
    "CLOUDFLARE_R2_SECRET_ACCESS_KEY": "secret",
}


@pytest.fixture
def s3_client():
    client = MagicMock()
    client.generate_presigned_url.return_value = "https://signed.example/media/p1/a.mp4?sig=1"
    return client


@pytest.fixture
def r2_storage(load_function, monkeypatch, s3_client):
    module = load_function("media/r2-storage")
    for name, value in R2_ENV.items():
        monkeypatch.setenv(name, value)
    monkeypatch.setattr(module, "videos_db", MagicMock())
    monkeypatch.setattr(object_storage, "build_client", lambda settings: s3_client)
    return module


def upload_event(make_event, **overrides):
    body = {"action": "upload", "projectId": "p1", "fileName": "first dance.mp4",
            "fileContent": list(b"video-bytes"), "contentType": "video/mp4"}
    body.update(overrides)
    return make_event(body)


def test_upload_writes_object_and_records_row(r2_storage, s3_client, make_event, body_of):
    response = r2_storage.lambda_handler(upload_event(make_event), None)

    assert response["statusCode"] == 200
    body = body_of(response)
    assert body["objectKey"] == "media/p1/first_dance.mp4"
    assert body["publicUrl"].endswith("/media/p1/first_dance.mp4")

    put = s3_client.put_object.call_args.kwargs
    assert put["Bucket"] == "wedding-media"
    assert put["Body"] == b"video-bytes"
    row = r2_storage.videos_db.put_item.call_args.args[0]
    assert row["file_path"] == "r2://media/p1/first_dance.mp4"
    assert row["size"] == len(b"video-bytes")


def test_base64_file_content_is_accepted(r2_storage, s3_client, make_event):
    event = upload_event(make_event, fileContent=base64.b64encode(b"abc").decode())

    assert r2_storage.lambda_handler(event, None)["statusCode"] == 200
    assert s3_client.put_object.call_args.kwargs["Body"] == b"abc"


def test_failed_insert_deletes_uploaded_object(r2_storage, s3_client, make_event):
    r2_storage.videos_db.put_item.side_effect = DynamoDBError("write failed")

    response = r2_storage.lambda_handler(upload_event(make_event), None)

    assert response["statusCode"] == 500
    s3_client.delete_object.assert_called_once_with(Bucket="wedding-media", Key="media/p1/first_dance.mp4")


def test_r2_auth_error_is_readable(r2_storage, s3_client, make_event, body_of):
    s3_client.put_object.side_effect = ClientError(
        {"Error": {"Code": "SignatureDoesNotMatch"}, "ResponseMetadata": {"HTTPStatusCode": 403}}, "PutObject")

    response = r2_storage.lambda_handler(upload_event(make_event), None)

    assert response["statusCode"] == 500
    assert body_of(response)["error"] == "Cloudflare authentication failed. Please check your access keys."
    r2_storage.videos_db.put_item.assert_not_called()


def test_get_signed_url(r2_storage, s3_client, make_event, body_of):
    event = make_event({"action": "get_signed_url", "projectId": "p1", "fileName": "a.mp4"})

    body = body_of(r2_storage.lambda_handler(event, None))

    assert body == {"success": True, "signedUrl": "https://signed.example/media/p1/a.mp4?sig=1", "expiresIn": 3600}
    s3_client.generate_presigned_url.assert_called_once_with(
        "get_object", Params={"Bucket": "wedding-media", "Key": "media/p1/a.mp4"}, ExpiresIn=3600)


def test_unknown_action_is_bad_request(r2_storage, make_event, body_of):
    response = r2_storage.lambda_handler(make_event({"action": "list", "projectId": "p1", "fileName": "a"}), None)

    assert response["statusCode"] == 400
    assert body_of(response)["error"] == "Invalid action"


def test_missing_credentials_name_the_variables(r2_storage, make_event, monkeypatch, body_of):
    monkeypatch.delenv("CLOUDFLARE_R2_BUCKET")
    monkeypatch.delenv("CLOUDFLARE_R2_SECRET_ACCESS_KEY")

    response = r2_storage.lambda_handler(upload_event(make_event), None)

    assert response["statusCode"] == 500
    assert body_of(response)["error"] == (
        "Missing Cloudflare credentials: CLOUDFLARE_R2_BUCKET, CLOUDFLARE_R2_SECRET_ACCESS_KEY")
