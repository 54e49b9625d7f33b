import os
import json
import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Key

import constants
from ai_service_helper import SERVICE_UNAVAILABLE_MESSAGE, AIServiceClient
from dynamodb_helper import DynamoDBHelper
from exceptions import ExternalServiceError

logger = Logger(service=f"{constants.SERVICE_NAME}-process-wedding-videos")

jobs_db = DynamoDBHelper(constants.PROCESSING_JOBS_TABLE, constants.AWS_REGION)
videos_db = DynamoDBHelper(constants.VIDEOS_TABLE, constants.AWS_REGION)
projects_db = DynamoDBHelper(constants.PROJECTS_TABLE, constants.AWS_REGION)

PAYLOAD_JSON = os.environ.get('PAYLOAD_JSON')

TIMEOUT_MESSAGE = "Timeout waiting for AI service response"
TERMINAL_STATUSES = ("completed", "failed")


def _parse_payload(event):
    body = event
    if isinstance(body, dict):
        return body
    if isinstance(body, str):
        try:
            return json.loads(body)
        except json.JSONDecodeError:
            return {}
    return {}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def readable_error(error: Exception) -> str:
    if isinstance(error, httpx.TransportError):
        return SERVICE_UNAVAILABLE_MESSAGE
    return str(error) or error.__class__.__name__


async def update_job_status(job_id: str, status: str, progress: Any = 0, detected_moments=None,
                            error_message: Optional[str] = None) -> None:
    updates: Dict[str, Any] = {
        "status": status,
        "progress": progress,
        "detected_moments": detected_moments or [],
        "updated_at": _now(),
    }
    if status == "completed":
        updates["completed_at"] = updates["updated_at"]
    if error_message:
        updates["error_message"] = error_message
    await asyncio.to_thread(jobs_db.update_item, {"id": job_id}, updates)


async def poll_job_status(ai: AIServiceClient, job_id: str, project_id: str, external_job_id: str) -> str:
    """Mirror the external job into our job row until it finishes or we give up."""
    for attempt in range(1, constants.AI_POLL_MAX_ATTEMPTS + 1):
        try:
            job_status = await ai.job_status(external_job_id)
        except (ExternalServiceError, httpx.HTTPError) as e:
            logger.warning(f"Polling attempt {attempt} for {external_job_id} failed: {e}")
        else:
            status = job_status.get("status") or "processing"
            await update_job_status(job_id, status, job_status.get("progress") or 0,
                                    job_status.get("detected_moments") or [],
                                    error_message=job_status.get("error") if status == "failed" else None)

            if status in TERMINAL_STATUSES:
                edited_video_url = job_status.get("edited_video_url")
                if status == "completed" and edited_video_url:
                    await asyncio.to_thread(projects_db.update_item, {"id": project_id},
                                            {"edited_video_url": edited_video_url, "updated_at": _now()})
                    logger.info(f"Stored edited video for project {project_id}")
                return status

        if attempt < constants.AI_POLL_MAX_ATTEMPTS:
            await asyncio.sleep(constants.AI_POLL_INTERVAL_SECONDS)

    await update_job_status(job_id, "failed", 0, [], TIMEOUT_MESSAGE)
    return "failed"


async def main(event=None, ai: Optional[AIServiceClient] = None) -> Dict[str, Any]:
    payload = _parse_payload(event if event is not None else PAYLOAD_JSON)
    job_id = payload.get("job_id")
    project_id = payload.get("project_id")
    settings = payload.get("settings") or {}

    if not job_id or not project_id:
        raise ValueError("Missing 'job_id' or 'project_id' in worker payload")

    logger.info(f"Processing job {job_id} for project {project_id}")
    ai = ai or AIServiceClient()

    try:
        async with ai:
            unhealthy = await ai.health_error()
            if unhealthy:
                await update_job_status(job_id, "failed", 0, [], unhealthy)
                return {"jobId": job_id, "status": "failed"}

            await update_job_status(job_id, "processing", 5, [])

            videos = await asyncio.to_thread(
                videos_db.query,
                Key("project_id").eq(project_id),
                constants.PROJECT_VIDEOS_INDEX,
            )
            logger.info(f"Processing {len(videos)} videos for project {project_id}")

            external_job_id = await ai.submit_project(project_id, videos, settings)
            logger.info(f"External AI job started: {external_job_id}")

            status = await poll_job_status(ai, job_id, project_id, external_job_id)
            logger.info(f"Job {job_id} finished with status {status}")
            return {"jobId": job_id, "status": status}

    except (ExternalServiceError, httpx.HTTPError) as e:
        logger.error(f"AI processing failed for job {job_id}: {e}", exc_info=True)
        await update_job_status(job_id, "failed", 0, [], readable_error(e))
        return {"jobId": job_id, "status": "failed"}

    except Exception as e:
        logger.error(f"Pipeline failed: {e}", exc_info=True)
        try:
            await update_job_status(job_id, "failed", 0, [], readable_error(e))
        except Exception as update_err:
            logger.error(f"CRITICAL: Failed to update job status to failed: {update_err}")
        raise


def lambda_handler(event, context):
    return asyncio.run(main(event))


if __name__ == '__main__':
    asyncio.run(main())
