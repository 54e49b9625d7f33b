import re
from typing import Dict, Optional
from urllib.parse import urlencode

import constants

STREAM_PREFIX = "stream://"
R2_PREFIX = "r2://"

RESPONSIVE_THUMBNAIL_SIZES: Dict[str, Dict[str, int]] = {
    "mobile": {"width": 160, "height": 90},
    "tablet": {"width": 240, "height": 135},
    "desktop": {"width": 320, "height": 180},
    "original": {"width": 1280, "height": 720},
}

_IFRAME_ID = re.compile(r'iframe\.videodelivery\.net/([a-zA-Z0-9]+)')
_DELIVERY_ID = re.compile(r'videodelivery\.net/([a-zA-Z0-9]+)')
_NON_ALNUM = re.compile(r'[^a-zA-Z0-9]')


def extract_stream_id(value: str) -> str:
    """Pull the Stream uid out of a stream:// path or a delivery URL."""
    if not value:
        return ""
    if value.startswith(STREAM_PREFIX):
        return value[len(STREAM_PREFIX):]
    if "iframe.videodelivery.net" in value:
        match = _IFRAME_ID.search(value)
        return match.group(1) if match else ""
    if "videodelivery.net" in value:
        match = _DELIVERY_ID.search(value)
        return match.group(1) if match else ""
    return _NON_ALNUM.sub("", value)


def is_stream_path(file_path: Optional[str]) -> bool:
    if not file_path:
        return False
    return file_path.startswith(STREAM_PREFIX) or "videodelivery.net" in file_path


def is_r2_path(file_path: Optional[str]) -> bool:
    return bool(file_path) and file_path.startswith(R2_PREFIX)


def thumbnail_url(stream_id: str, width: int, height: int, time: str = "1s", fit: str = "scale-down") -> str:
    clean_id = _NON_ALNUM.sub("", stream_id)
    params = urlencode({"time": time, "width": width, "height": height, "fit": fit})
    return f"{constants.STREAM_DELIVERY_BASE}/{clean_id}/thumbnails/thumbnail.jpg?{params}"


def thumbnail_urls(stream_id: str) -> Dict[str, str]:
    return {
        size: thumbnail_url(stream_id, dims["width"], dims["height"])
        for size, dims in RESPONSIVE_THUMBNAIL_SIZES.items()
    }


def playback_url(stream_id: str) -> str:
    return f"{constants.STREAM_DELIVERY_BASE}/{_NON_ALNUM.sub('', stream_id)}/manifest/video.m3u8"
