import json
import uuid
from datetime import datetime, timezone
from typing import List, Optional

import boto3
from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Key

import constants
import entitlements
from common_response_utils import (
    api_response,
    bad_request_response,
    exception_response,
    forbidden_response,
    get_request_origin,
    is_preflight,
    options_response,
    parse_request_body,
    resolve_user_id,
)
from dynamodb_helper import DynamoDBHelper
from exceptions import AccessDeniedError, NotFoundError, ValidationError
from request_schemas import ProcessingSettings, StartProcessingRequest

logger = Logger(service=f"{constants.SERVICE_NAME}-start-processing")

projects_db = DynamoDBHelper(constants.PROJECTS_TABLE, constants.AWS_REGION)
videos_db = DynamoDBHelper(constants.VIDEOS_TABLE, constants.AWS_REGION)
jobs_db = DynamoDBHelper(constants.PROCESSING_JOBS_TABLE, constants.AWS_REGION)
subscriptions_db = DynamoDBHelper(constants.SUBSCRIPTIONS_TABLE, constants.AWS_REGION)
purchases_db = DynamoDBHelper(constants.PURCHASES_TABLE, constants.AWS_REGION)

lambda_client = boto3.client("lambda", region_name=constants.AWS_REGION)

FREE_DURATIONS = ("30s",)
FREE_VIDEO_STYLES = ("romantic",)
QUALITY_FEATURES = {"hd": "hd_quality", "4k": "4k_quality"}


def gated_features(settings: ProcessingSettings) -> List[str]:
    """Features a set of processing settings asks for, strictest last."""
    features = []
    if settings.duration not in FREE_DURATIONS:
        features.append(f"duration_{settings.duration}")
    if settings.videoStyle not in FREE_VIDEO_STYLES:
        features.append("all_styles")
    if settings.quality in QUALITY_FEATURES:
        features.append(QUALITY_FEATURES[settings.quality])
    if settings.customMusicUrl:
        features.append("custom_music")
    if settings.includeBranding:
        features.append("custom_branding")
    if settings.priority:
        features.append("priority_processing")
    return features


def first_denied(project_id: str, snapshot: entitlements.SubscriptionSnapshot,
                 settings: ProcessingSettings) -> Optional[entitlements.FeatureAccess]:
    for feature in gated_features(settings):
        access = entitlements.resolve(feature, project_id, snapshot)
        if not access.has_access:
            logger.info(f"Processing setting {feature} denied at tier {access.tier.value}")
            return access
    return None


def create_job(project_id: str, user_id: str, settings: ProcessingSettings) -> dict:
    job = {
        "id": str(uuid.uuid4()),
        "project_id": project_id,
        "user_id": user_id,
        "status": "pending",
        "progress": 0,
        "settings": settings.model_dump(),
        "started_at": datetime.now(timezone.utc).isoformat(),
    }
    jobs_db.put_item(job)
    return job


def dispatch_worker(job: dict) -> None:
    payload = {"job_id": job["id"], "project_id": job["project_id"], "settings": job["settings"]}
    lambda_client.invoke(
        FunctionName=constants.PROCESSING_WORKER_FUNCTION,
        InvocationType="Event",
        Payload=json.dumps(payload).encode("utf-8"),
    )
    logger.info(f"Dispatched job {job['id']} to {constants.PROCESSING_WORKER_FUNCTION}")


def lambda_handler(event, context):
    origin = get_request_origin(event)
    if is_preflight(event):
        return options_response(origin)

    try:
        request = StartProcessingRequest.model_validate(parse_request_body(event))
        user_id = resolve_user_id(event, request.userId)
        if not user_id:
            return bad_request_response("Missing projectId or userId", origin=origin)

        project = projects_db.get_item({"id": request.projectId})
        if not project:
            raise NotFoundError(f"Project {request.projectId} not found")
        if project.get("user_id") != user_id:
            raise AccessDeniedError("Access denied: Invalid project access")

        snapshot = entitlements.load_snapshot(user_id, subscriptions_db, purchases_db)
        denied = first_denied(request.projectId, snapshot, request.settings)
        if denied:
            return forbidden_response(
                denied.upgrade_message,
                origin=origin,
                requiredTier=denied.required_tier.value,
                upgradeMessage=denied.upgrade_message,
            )

        videos = videos_db.query(Key("project_id").eq(request.projectId),
                                 index_name=constants.PROJECT_VIDEOS_INDEX, limit=1)
        if not videos:
            raise ValidationError("Upload at least one video before processing")

        job = create_job(request.projectId, user_id, request.settings)
        try:
            dispatch_worker(job)
        except Exception:
            jobs_db.update_item({"id": job["id"]}, {
                "status": "failed",
                "error_message": "Could not start the processing worker",
                "completed_at": datetime.now(timezone.utc).isoformat(),
            })
            raise

        return api_response(200, {"success": True, "jobId": job["id"], "status": job["status"]}, origin=origin)

    except Exception as e:
        logger.error(f"Error in start-processing: {e}", exc_info=True)
        return exception_response(e, origin)
