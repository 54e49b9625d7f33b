import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import aioboto3
from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Attr, Key

import constants
import object_storage
from common_response_utils import exception_response, success_response
from dynamodb_helper import DynamoDBHelper
from exceptions import ConfigurationError

logger = Logger(service=f"{constants.SERVICE_NAME}-lifecycle-cleanup")

projects_db = DynamoDBHelper(constants.PROJECTS_TABLE, constants.AWS_REGION)
videos_db = DynamoDBHelper(constants.VIDEOS_TABLE, constants.AWS_REGION)
archived_db = DynamoDBHelper(constants.ARCHIVED_CONTENT_TABLE, constants.AWS_REGION)
notifications_db = DynamoDBHelper(constants.NOTIFICATIONS_TABLE, constants.AWS_REGION)

# (notification_type, days before expiry)
WARNING_WINDOWS = (
    ("final_warning", constants.FINAL_WARNING_DAYS),
    ("expiration_warning", constants.EXPIRATION_WARNING_DAYS),
)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Ignoring unparseable timestamp {value!r}")
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def archive_rows(project: Dict[str, Any], videos: List[Dict[str, Any]], now: datetime) -> List[Dict[str, Any]]:
    archived_at = now.isoformat()
    recovery_expires_at = (now + timedelta(days=constants.ARCHIVE_RECOVERY_DAYS)).isoformat()
    return [
        {
            "id": str(uuid.uuid4()),
            "project_id": project["id"],
            "user_id": project.get("user_id"),
            "video_id": video.get("id"),
            "content_type": "video",
            "r2_object_key": video.get("r2_object_key"),
            "stream_video_id": video.get("stream_video_id"),
            "archived_at": archived_at,
            "recovery_expires_at": recovery_expires_at,
        }
        for video in videos
    ]


def _archive_project(project: Dict[str, Any], now: datetime) -> None:
    videos = videos_db.query(Key("project_id").eq(project["id"]), index_name=constants.PROJECT_VIDEOS_INDEX)
    for row in archive_rows(project, videos, now):
        archived_db.put_item(row)
    projects_db.update_item({"id": project["id"]}, {"archived_at": now.isoformat()})


async def archive_expired_projects(now: datetime) -> int:
    expired = await asyncio.to_thread(
        projects_db.scan,
        Attr("expires_at").lte(now.isoformat()) & Attr("archived_at").not_exists(),
    )
    for project in expired:
        await asyncio.to_thread(_archive_project, project, now)
        logger.info(f"Archived project {project['id']}")
    return len(expired)


async def delete_r2_objects(keys: List[str], settings: object_storage.R2Settings) -> Dict[str, Optional[Exception]]:
    """Delete objects concurrently; maps each key to its error, or None on success."""
    session = aioboto3.Session()
    async with session.client("s3", **settings.client_kwargs()) as s3_client:
        results = await asyncio.gather(
            *(s3_client.delete_object(Bucket=settings.bucket, Key=key) for key in keys),
            return_exceptions=True,
        )
    return {key: result if isinstance(result, Exception) else None for key, result in zip(keys, results)}


async def purge_expired_archives(now: datetime, settings: Optional[object_storage.R2Settings] = None) -> int:
    due = await asyncio.to_thread(
        archived_db.scan,
        Attr("recovery_expires_at").lte(now.isoformat()) & Attr("deleted_at").not_exists(),
    )
    if not due:
        return 0

    keys = sorted({item["r2_object_key"] for item in due if item.get("r2_object_key")})
    errors: Dict[str, Optional[Exception]] = {}
    if keys:
        if settings is None:
            try:
                settings = object_storage.R2Settings.from_env()
            except ConfigurationError as e:
                logger.warning(f"Skipping R2 purge: {e}")
                return 0
        errors = await delete_r2_objects(keys, settings)

    purged = 0
    for item in due:
        key = item.get("r2_object_key")
        if key and errors.get(key) is not None:
            logger.error(f"Failed to delete R2 object {key}: {errors[key]}")
            continue
        await asyncio.to_thread(archived_db.update_item, {"id": item["id"]}, {"deleted_at": now.isoformat()})
        purged += 1
    logger.info(f"Purged {purged} of {len(due)} archived items")
    return purged


async def send_expiration_warnings(now: datetime) -> int:
    """Record at most one notification of each type per project."""
    horizon = now + timedelta(days=constants.EXPIRATION_WARNING_DAYS)
    expiring = await asyncio.to_thread(
        projects_db.scan,
        Attr("expires_at").lte(horizon.isoformat()) & Attr("archived_at").not_exists(),
    )

    sent = 0
    for project in expiring:
        expires_at = parse_timestamp(project.get("expires_at"))
        if expires_at is None:
            continue
        for notification_type, days in WARNING_WINDOWS:
            if expires_at > now + timedelta(days=days):
                continue
            created = await asyncio.to_thread(
                notifications_db.put_item_if_absent,
                {
                    "project_id": project["id"],
                    "notification_key": notification_type,
                    "notification_type": notification_type,
                    "user_id": project.get("user_id"),
                    "expires_at": project.get("expires_at"),
                    "created_at": now.isoformat(),
                },
                "notification_key",
            )
            if created:
                sent += 1
    return sent


async def run_cleanup(now: Optional[datetime] = None) -> Tuple[int, int, int]:
    now = now or datetime.now(timezone.utc)
    archived = await archive_expired_projects(now)
    purged = await purge_expired_archives(now)
    warnings = await send_expiration_warnings(now)
    return archived, purged, warnings


def lambda_handler(event, context):
    try:
        archived, purged, warnings = asyncio.run(run_cleanup())
        logger.info(f"Lifecycle cleanup: archived={archived}, purged={purged}, warnings={warnings}")
        return success_response(
            {
                "message": "Lifecycle cleanup completed",
                "archivedProjects": archived,
                "purgedItems": purged,
                "warningsSent": warnings,
            },
            message="Lifecycle cleanup completed",
        )
    except Exception as e:
        logger.error(f"Error in lifecycle-cleanup: {e}", exc_info=True)
        return exception_response(e)
