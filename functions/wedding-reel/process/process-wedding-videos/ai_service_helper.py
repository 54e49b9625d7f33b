import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

import constants
from exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

SERVICE_UNAVAILABLE_MESSAGE = (
    "AI service is currently unavailable. This may be due to the service sleeping on free tier. "
    "Please try again in a few minutes."
)
SERVICE_NOT_RESPONDING_MESSAGE = (
    "AI service is not responding. It may be sleeping (free tier limitation). "
    "Please try again in a few minutes."
)

VIDEO_STYLE_MAP = {
    "romantic": "romantic",
    "cinematic": "cinematic",
    "upbeat": "modern",
    "elegant": "romantic",
    "vintage": "vintage",
    "modern": "modern",
}
DURATION_MAP = {
    "30s": "1_minute",
    "1min": "1_minute",
    "2min": "2_minutes",
    "3min": "3_minutes",
    "5min": "5_minutes",
}
CONTENT_FOCUS_MAP = {
    "ceremony": "main_event",
    "reception": "celebration",
    "emotional": "people",
    "candid": "people",
    "highlights": "balanced",
}
QUALITY_MAP = {"standard": "720p", "hd": "1080p", "4k": "4k"}

VIDEO_EXTENSIONS = (".mp4", ".mov")


def convert_decimals_to_native(obj):
    """Recursively converts Decimal objects to int or float."""
    if isinstance(obj, list):
        return [convert_decimals_to_native(i) for i in obj]
    if isinstance(obj, dict):
        return {k: convert_decimals_to_native(v) for k, v in obj.items()}
    if isinstance(obj, Decimal):
        return int(obj) if obj % 1 == 0 else float(obj)
    return obj


def map_video_style(style: Optional[str]) -> str:
    return VIDEO_STYLE_MAP.get(style, "romantic")


def map_duration(duration: Optional[str]) -> str:
    return DURATION_MAP.get(duration, "2_minutes")


def map_content_focus(focus: Optional[str]) -> str:
    return CONTENT_FOCUS_MAP.get(focus, "balanced")


def map_processing_settings(settings: Dict[str, Any]) -> Dict[str, Any]:
    """Translate stored job settings into the AI service's vocabulary."""
    custom_music = settings.get("customMusicUrl")
    return {
        "style": map_video_style(settings.get("videoStyle")),
        "duration": map_duration(settings.get("duration")),
        "contentFocus": map_content_focus(settings.get("contentFocus")),
        "videoQuality": QUALITY_MAP.get(settings.get("quality"), "720p"),
        "musicStyle": "none" if custom_music else (settings.get("musicStyle") or "romantic"),
        "customMusicUrl": custom_music or None,
        "aiEnhancement": True,
        "faceDetectionPriority": True,
        "emotionalMoments": settings.get("contentFocus") == "highlights",
    }


def map_media_files(videos: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    media = []
    for video in videos:
        name = (video.get("name") or "").lower()
        is_video = name.endswith(VIDEO_EXTENSIONS) or (video.get("content_type") or "").startswith("video/")
        media.append({
            "id": video.get("id"),
            "type": "video" if is_video else "image",
            "path": video.get("file_path") or "",
        })
    return media


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        raise ExternalServiceError(f"AI Service returned an unreadable response: {response.status_code}",
                                   status_code=response.status_code)
    if not isinstance(body, dict):
        raise ExternalServiceError("AI Service returned an unexpected response", status_code=response.status_code)
    return body


class AIServiceClient:
    """Async client for the external wedding AI editing service."""

    def __init__(self, base_url: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.client = httpx.AsyncClient(
            base_url=base_url or constants.AI_SERVICE_URL,
            headers={"Content-Type": "application/json"},
            timeout=constants.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self) -> "AIServiceClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.client.aclose()

    async def health_error(self) -> Optional[str]:
        """Return a readable reason when the service is unhealthy, else None."""
        try:
            response = await self.client.get("/health")
        except httpx.HTTPError as e:
            logger.warning(f"AI service health check failed: {e}")
            return SERVICE_UNAVAILABLE_MESSAGE
        if response.is_success:
            return None
        logger.warning(f"AI service health check returned {response.status_code}")
        return SERVICE_NOT_RESPONDING_MESSAGE

    async def submit_project(self, project_id: str, videos: List[Dict[str, Any]],
                             settings: Dict[str, Any]) -> str:
        payload = {
            "projectId": project_id,
            "videos": convert_decimals_to_native(videos),
            "media_files": map_media_files(videos),
            "processing_settings": map_processing_settings(settings),
        }
        response = await self.client.post("/process-wedding-videos", json=payload)
        if not response.is_success:
            raise ExternalServiceError(f"AI Service error: {response.status_code} - {response.text}",
                                       status_code=response.status_code)
        external_job_id = _json_body(response).get("jobId")
        if not external_job_id:
            raise ExternalServiceError("AI Service did not return a job id")
        return external_job_id

    async def job_status(self, external_job_id: str) -> Dict[str, Any]:
        response = await self.client.get(f"/job-status/{external_job_id}")
        if not response.is_success:
            raise ExternalServiceError(f"Failed to get job status: {response.status_code}",
                                       status_code=response.status_code)
        return _json_body(response)
