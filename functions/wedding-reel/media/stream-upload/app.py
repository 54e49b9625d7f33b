import os
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Tuple

import httpx
from aws_lambda_powertools import Logger

import constants
from common_response_utils import (
    exception_response,
    get_request_origin,
    is_preflight,
    options_response,
    parse_request_body,
    success_response,
    too_many_requests_response,
)
from dynamodb_helper import DynamoDBHelper
from exceptions import AccessDeniedError, ConfigurationError, DynamoDBError, ExternalServiceError, NotFoundError, ValidationError
from expiring_store import RateLimiter
from request_schemas import StreamUploadRequest
from upload_validation import (
    MAX_FILE_SIZE,
    SIZE_ERROR,
    UploadCandidate,
    check_file,
    sanitize_input,
    validate_guest_upload_data,
)

logger = Logger(service=f"{constants.SERVICE_NAME}-stream-upload")

videos_db = DynamoDBHelper(constants.VIDEOS_TABLE, constants.AWS_REGION)
projects_db = DynamoDBHelper(constants.PROJECTS_TABLE, constants.AWS_REGION)
notifications_db = DynamoDBHelper(constants.NOTIFICATIONS_TABLE, constants.AWS_REGION)

guest_rate_limiter = RateLimiter(constants.GUEST_UPLOAD_MAX_REQUESTS, constants.GUEST_UPLOAD_WINDOW_SECONDS)


def _http_client() -> httpx.Client:
    return httpx.Client(base_url=constants.CLOUDFLARE_API_BASE, timeout=constants.HTTP_TIMEOUT_SECONDS)


def _cloudflare_credentials() -> Tuple[str, str]:
    missing = constants.missing_env_vars("CLOUDFLARE_ACCOUNT_ID", "CLOUDFLARE_API_TOKEN")
    if missing:
        raise ConfigurationError("Cloudflare credentials not configured", missing=missing)
    return os.environ["CLOUDFLARE_ACCOUNT_ID"], os.environ["CLOUDFLARE_API_TOKEN"]


def create_direct_upload(client: httpx.Client, account_id: str, api_token: str,
                         request: StreamUploadRequest) -> Dict[str, Any]:
    """Ask Cloudflare Stream for a one-time direct upload URL."""
    response = client.post(
        f"/accounts/{account_id}/stream/direct_upload",
        headers={"Authorization": f"Bearer {api_token}"},
        json={
            "maxDurationSeconds": constants.STREAM_MAX_DURATION_SECONDS,
            "metadata": {
                "name": request.fileName,
                "projectId": request.projectId,
                "guestName": request.guestName or "Anonymous",
                "uploadedAt": datetime.now(timezone.utc).isoformat(),
            },
        },
    )
    if response.is_error:
        raise ExternalServiceError(f"Cloudflare Stream API error: {response.status_code}", response.status_code)
    return response.json()["result"]


def delete_stream_video(client: httpx.Client, account_id: str, api_token: str, video_uid: str) -> None:
    """Remove a Stream video whose database record could not be written."""
    try:
        response = client.delete(
            f"/accounts/{account_id}/stream/{video_uid}",
            headers={"Authorization": f"Bearer {api_token}"},
        )
        if response.is_error:
            logger.error(f"Could not delete orphaned Stream video {video_uid}: {response.status_code}")
    except httpx.HTTPError as e:
        logger.error(f"Could not delete orphaned Stream video {video_uid}: {e}")


def record_upload_confirmation(project_id: str, video_item: Dict[str, Any]) -> None:
    """Store the owner's upload notification; failures are logged, not raised."""
    try:
        notifications_db.put_item({
            "project_id": project_id,
            "notification_key": f"upload_confirmation#{video_item['id']}",
            "notification_type": "upload_confirmation",
            "user_id": video_item["user_id"],
            "created_at": video_item["created_at"],
        })
    except DynamoDBError as e:
        logger.error(f"Error recording upload confirmation for video {video_item['id']}: {e}")


def _validate_file(request: StreamUploadRequest) -> None:
    if request.contentType:
        error = check_file(UploadCandidate(request.fileName, request.contentType, request.fileSize))
    elif request.fileSize > MAX_FILE_SIZE:
        error = SIZE_ERROR.format(name=request.fileName)
    else:
        error = None
    if error:
        raise ValidationError(error)


def _rate_limit_key(event: Dict[str, Any], request: StreamUploadRequest) -> str:
    identity = ((event.get("requestContext") or {}).get("identity") or {})
    return f"{request.projectId}:{identity.get('sourceIp') or request.guestName}"


def lambda_handler(event, context):
    origin = get_request_origin(event)
    if is_preflight(event):
        return options_response(origin)

    try:
        request = StreamUploadRequest.model_validate(parse_request_body(event))
        is_guest = bool(request.guestName)
        if is_guest:
            request.guestName = sanitize_input(request.guestName)
            request.guestMessage = sanitize_input(request.guestMessage) if request.guestMessage else None
            guest_errors = validate_guest_upload_data(request.guestName, request.guestMessage)
            if guest_errors:
                raise ValidationError("; ".join(guest_errors))
        _validate_file(request)

        project = projects_db.get_item({"id": request.projectId})
        if not project:
            raise NotFoundError(f"Project {request.projectId} not found")

        if is_guest:
            privacy = project.get("privacy_settings") or {}
            if privacy.get("guest_upload") is False:
                raise AccessDeniedError("Guest uploads are disabled for this project")
            if not guest_rate_limiter.check(_rate_limit_key(event, request), time.time()):
                return too_many_requests_response(origin=origin)

        account_id, api_token = _cloudflare_credentials()
        logger.info(f"Creating Stream upload for project {request.projectId}, file {request.fileName}")

        with _http_client() as client:
            stream = create_direct_upload(client, account_id, api_token, request)
            video_uid = stream["uid"]

            video_item = {
                "id": str(uuid.uuid4()),
                "name": request.fileName,
                "file_path": f"stream://{video_uid}",
                "stream_video_id": video_uid,
                "project_id": request.projectId,
                "user_id": project.get("user_id"),
                "size": request.fileSize or 0,
                "guest_name": request.guestName,
                "guest_message": request.guestMessage,
                "uploaded_by_guest": is_guest,
                "created_at": datetime.now(timezone.utc).isoformat(),
            }
            try:
                videos_db.put_item(video_item)
            except DynamoDBError:
                logger.error(f"Failed to store video record for Stream video {video_uid}, removing it")
                delete_stream_video(client, account_id, api_token, video_uid)
                raise

        record_upload_confirmation(request.projectId, video_item)

        return success_response(
            {
                "uploadUrl": stream["uploadURL"],
                "videoId": video_uid,
                "databaseId": video_item["id"],
            },
            message=f"Stream upload created for {request.fileName}",
            origin=origin,
        )

    except Exception as e:
        logger.error(f"Error in stream-upload: {e}", exc_info=True)
        return exception_response(e, origin)
