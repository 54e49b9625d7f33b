import stream_utils


def test_extract_stream_id_from_paths_and_urls():
    assert stream_utils.extract_stream_id("stream://abc123") == "abc123"
    assert stream_utils.extract_stream_id("https://iframe.videodelivery.net/abc123?autoplay=1") == "abc123"
    assert stream_utils.extract_stream_id("https://videodelivery.net/abc123/manifest/video.m3u8") == "abc123"
    assert stream_utils.extract_stream_id("ab-c!1") == "abc1"
    assert stream_utils.extract_stream_id("") == ""


def test_path_detection():
    assert stream_utils.is_stream_path("stream://abc")
    assert not stream_utils.is_stream_path("r2://media/p1/a.mp4")
    assert stream_utils.is_r2_path("r2://media/p1/a.mp4")
    assert not stream_utils.is_r2_path(None)


def test_thumbnail_url():
    url = stream_utils.thumbnail_url("abc", 320, 180)
    assert url == "https://videodelivery.net/abc/thumbnails/thumbnail.jpg?time=1s&width=320&height=180&fit=scale-down"


def test_thumbnail_urls_cover_every_size():
    urls = stream_utils.thumbnail_urls("abc")
    assert set(urls) == {"mobile", "tablet", "desktop", "original"}
    assert "width=1280&height=720" in urls["original"]
