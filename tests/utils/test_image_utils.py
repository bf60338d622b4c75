from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import requests

from scanguard.detection.errors import DownloadFailure
from scanguard.util.image_utils import download_image_bytes, fetch_image_bytes, is_image_attachment

URL = "https://cdn.example.com/attachments/1/2/img.png"


def attachment(content_type=None, filename="file.bin"):
    return SimpleNamespace(content_type=content_type, filename=filename)


@pytest.mark.parametrize("content_type,filename,expected", [
    ("image/png", "a.png", True),
    ("image/jpeg", "a.jpg", True),
    ("image/gif", "a.gif", True),
    ("image/webp; charset=binary", "a.webp", True),
    ("image/heic", "a.heic", False),
    ("video/mp4", "a.png", False),
    (None, "photo.JPEG", True),
    (None, "notes.txt", False),
])
def test_is_image_attachment(content_type, filename, expected):
    assert is_image_attachment(attachment(content_type, filename)) is expected


def fake_response(chunks, headers=None, status_error=None):
    response = MagicMock()
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    response.headers = headers or {}
    response.iter_content.return_value = iter(chunks)
    if status_error is not None:
        response.raise_for_status.side_effect = status_error
    return response


def test_download_returns_bytes():
    with patch("scanguard.util.image_utils.requests.get", return_value=fake_response([b"ab", b"cd"])) as get:
        assert download_image_bytes(URL, max_bytes=10, timeout=3) == b"abcd"
    assert get.call_args.kwargs["stream"] is True
    assert get.call_args.kwargs["timeout"] == 3


def test_download_rejects_declared_oversize():
    response = fake_response([b"x"], headers={"Content-Length": "2048"})
    with patch("scanguard.util.image_utils.requests.get", return_value=response):
        with pytest.raises(DownloadFailure, match="limit is 1024"):
            download_image_bytes(URL, max_bytes=1024)
    response.iter_content.assert_not_called()


def test_download_rejects_streamed_oversize():
    with patch("scanguard.util.image_utils.requests.get", return_value=fake_response([b"x" * 6, b"x" * 6])):
        with pytest.raises(DownloadFailure):
            download_image_bytes(URL, max_bytes=10)


def test_download_wraps_http_errors():
    error = requests.HTTPError("404 Client Error")
    with patch("scanguard.util.image_utils.requests.get", return_value=fake_response([], status_error=error)):
        with pytest.raises(DownloadFailure) as excinfo:
            download_image_bytes(URL, max_bytes=10)
    assert excinfo.value.url == URL


def test_download_wraps_connection_errors():
    with patch("scanguard.util.image_utils.requests.get", side_effect=requests.ConnectionError("refused")):
        with pytest.raises(DownloadFailure, match="refused"):
            download_image_bytes(URL, max_bytes=10)


@pytest.mark.asyncio
async def test_fetch_image_bytes_runs_in_thread():
    with patch("scanguard.util.image_utils.requests.get", return_value=fake_response([b"png"])):
        assert await fetch_image_bytes(URL, max_bytes=10) == b"png"
