import time
from typing import Any, Dict, List, Optional

from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Key

import constants
import entitlements
import object_storage
import stream_utils
from common_response_utils import (
    exception_response,
    get_caller_id,
    get_request_origin,
    is_preflight,
    options_response,
    parse_request_body,
    success_response,
)
from dynamodb_helper import DynamoDBHelper
from exceptions import AccessDeniedError, ConfigurationError, NotFoundError, ValidationError
from expiring_store import ExpiringStore, thumbnail_cache_key

logger = Logger(service=f"{constants.SERVICE_NAME}-project-media")

projects_db = DynamoDBHelper(constants.PROJECTS_TABLE, constants.AWS_REGION)
videos_db = DynamoDBHelper(constants.VIDEOS_TABLE, constants.AWS_REGION)
subscriptions_db = DynamoDBHelper(constants.SUBSCRIPTIONS_TABLE, constants.AWS_REGION)
purchases_db = DynamoDBHelper(constants.PURCHASES_TABLE, constants.AWS_REGION)

thumbnail_cache: ExpiringStore = ExpiringStore(constants.THUMBNAIL_CACHE_TTL_SECONDS)


def cached_thumbnails(stream_id: str, now: float) -> Dict[str, str]:
    thumbnail_cache.purge_expired(now)
    thumbnails = {}
    for size in stream_utils.RESPONSIVE_THUMBNAIL_SIZES:
        key = thumbnail_cache_key(stream_id, size)
        url = thumbnail_cache.get(key, now)
        if url is None:
            dims = stream_utils.RESPONSIVE_THUMBNAIL_SIZES[size]
            url = stream_utils.thumbnail_url(stream_id, dims["width"], dims["height"])
            thumbnail_cache.set(key, url, now)
        thumbnails[size] = url
    return thumbnails


def describe_video(video: Dict[str, Any], now: float, r2_client=None,
                   r2_settings: Optional[object_storage.R2Settings] = None) -> Dict[str, Any]:
    file_path = video.get("file_path")
    media = {
        "id": video.get("id"),
        "name": video.get("name"),
        "size": video.get("size"),
        "uploadedByGuest": bool(video.get("uploaded_by_guest")),
        "guestName": video.get("guest_name"),
        "createdAt": video.get("created_at"),
    }
    if stream_utils.is_stream_path(file_path) or video.get("stream_video_id"):
        stream_id = video.get("stream_video_id") or stream_utils.extract_stream_id(file_path)
        media.update({
            "source": "stream",
            "thumbnails": cached_thumbnails(stream_id, now),
            "playbackUrl": stream_utils.playback_url(stream_id),
        })
    elif stream_utils.is_r2_path(file_path):
        key = video.get("r2_object_key") or file_path[len(stream_utils.R2_PREFIX):]
        media["source"] = "r2"
        if r2_client is not None:
            media["signedUrl"] = object_storage.presigned_get_url(r2_client, r2_settings, key)
    else:
        media["source"] = "unknown"
    return media


def _r2_access():
    try:
        settings = object_storage.R2Settings.from_env()
    except ConfigurationError:
        logger.warning("R2 is not configured; object-storage media will have no signed URLs")
        return None, None
    return object_storage.build_client(settings), settings


def list_project_media(project_id: str, now: float) -> List[Dict[str, Any]]:
    videos = videos_db.query(Key("project_id").eq(project_id), index_name=constants.PROJECT_VIDEOS_INDEX)
    r2_client, r2_settings = (None, None)
    if any(stream_utils.is_r2_path(v.get("file_path")) for v in videos):
        r2_client, r2_settings = _r2_access()
    return [describe_video(v, now, r2_client, r2_settings) for v in videos]


def lambda_handler(event, context):
    origin = get_request_origin(event)
    if is_preflight(event):
        return options_response(origin)

    try:
        path_params = event.get("pathParameters") or {}
        project_id = path_params.get("projectId") or parse_request_body(event).get("projectId")
        if not project_id:
            raise ValidationError("projectId is required")

        project = projects_db.get_item({"id": project_id})
        if not project:
            raise NotFoundError(f"Project {project_id} not found")

        user_id = get_caller_id(event)
        if not user_id or project.get("user_id") != user_id:
            raise AccessDeniedError("Access denied: Invalid project access")

        media = list_project_media(project_id, time.time())
        snapshot = entitlements.load_snapshot(user_id, subscriptions_db, purchases_db)
        download = entitlements.resolve("download_rights", project_id, snapshot)

        return success_response(
            {
                "projectId": project_id,
                "editedVideoUrl": project.get("edited_video_url"),
                "canDownload": download.has_access,
                "downloadUpgradeMessage": None if download.has_access else download.upgrade_message,
                "media": media,
            },
            message=f"Listed {len(media)} media items for {project_id}",
            origin=origin,
        )

    except Exception as e:
        logger.error(f"Error in project-media: {e}", exc_info=True)
        return exception_response(e, origin)
