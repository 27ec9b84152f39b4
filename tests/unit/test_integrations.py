"""
Unit tests for the extraction service and Dropbox integrations.

HTTP calls are patched at requests; nothing leaves the process.

Run: pytest tests/unit/test_integrations.py -v
"""

import pytest
import requests
from unittest.mock import MagicMock, patch

from integrations.extraction_service import dispatch_document
from integrations.dropbox import to_direct_link, fetch_json
from exceptions import ExtractionDispatchError, DropboxFetchError


def _response(status: int = 200, json_data=None, json_error: Exception = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    if status >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(response=response)
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def extraction_settings():
    with patch("integrations.extraction_service.settings") as mock_settings:
        mock_settings.extraction_configured = True
        mock_settings.extraction_service_url = "https://extract.example.com/jobs"
        mock_settings.extraction_api_key = "secret"
        mock_settings.extraction_timeout_seconds = 5
        yield mock_settings


class TestDispatchDocument:
    """Tests for dispatch_document()"""

    def test_posts_file_and_key(self, extraction_settings):
        """Should send the file as multipart with the correlation key."""
        with patch("integrations.extraction_service.requests.post", return_value=_response(202)) as mock_post:
            dispatch_document("key-1", "invoice.pdf", b"%PDF", "application/pdf", callback_url="https://app/api/pending-import")

        kwargs = mock_post.call_args.kwargs
        assert mock_post.call_args.args[0] == "https://extract.example.com/jobs"
        assert kwargs["data"] == {"key": "key-1", "callback_url": "https://app/api/pending-import"}
        assert kwargs["files"]["file"] == ("invoice.pdf", b"%PDF", "application/pdf")
        assert kwargs["headers"]["Authorization"] == "Bearer secret"
        assert kwargs["timeout"] == 5

    def test_rejection_raises_dispatch_error(self, extraction_settings):
        """Should raise on a non-2xx answer."""
        with patch("integrations.extraction_service.requests.post", return_value=_response(500)):
            with pytest.raises(ExtractionDispatchError) as exc_info:
                dispatch_document("key-1", "invoice.pdf", b"%PDF", "application/pdf")

        assert exc_info.value.status_code == 503
        assert exc_info.value.details["status"] == 500

    def test_network_error_raises_dispatch_error(self, extraction_settings):
        with patch(
            "integrations.extraction_service.requests.post",
            side_effect=requests.exceptions.ConnectionError("refused")
        ):
            with pytest.raises(ExtractionDispatchError) as exc_info:
                dispatch_document("key-1", "invoice.pdf", b"%PDF", "application/pdf")

        assert "Failed to reach" in exc_info.value.message

    def test_not_configured(self):
        with patch("integrations.extraction_service.settings") as mock_settings:
            mock_settings.extraction_configured = False
            with patch("integrations.extraction_service.requests.post") as mock_post:
                with pytest.raises(ExtractionDispatchError):
                    dispatch_document("key-1", "invoice.pdf", b"%PDF", "application/pdf")

        mock_post.assert_not_called()


class TestToDirectLink:
    """Tests for to_direct_link()"""

    def test_share_link_rewritten(self):
        link = "https://www.dropbox.com/s/abc123/tx.json?dl=0"

        assert to_direct_link(link) == "https://dl.dropboxusercontent.com/s/abc123/tx.json"

    def test_download_flag_removed(self):
        link = "https://www.dropbox.com/s/abc123/tx.json?dl=1"

        assert to_direct_link(link) == "https://dl.dropboxusercontent.com/s/abc123/tx.json"

    def test_other_hosts_unchanged(self):
        assert to_direct_link(" https://example.com/tx.json?dl=0 ") == "https://example.com/tx.json?dl=0"


class TestFetchJSON:
    """Tests for fetch_json()"""

    def test_fetches_direct_link(self):
        rows = [{"date": "2024-01-05", "amount": 5}]

        with patch("integrations.dropbox.requests.get", return_value=_response(200, rows)) as mock_get:
            result = fetch_json("https://www.dropbox.com/s/abc/tx.json?dl=0")

        assert result == rows
        assert mock_get.call_args.args[0] == "https://dl.dropboxusercontent.com/s/abc/tx.json"

    def test_http_error(self):
        with patch("integrations.dropbox.requests.get", return_value=_response(404)):
            with pytest.raises(DropboxFetchError) as exc_info:
                fetch_json("https://www.dropbox.com/s/abc/tx.json")

        assert exc_info.value.status_code == 400
        assert exc_info.value.details["status"] == 404

    def test_invalid_json(self):
        response = _response(200, json_error=ValueError("Expecting value"))

        with patch("integrations.dropbox.requests.get", return_value=response):
            with pytest.raises(DropboxFetchError) as exc_info:
                fetch_json("https://www.dropbox.com/s/abc/tx.json")

        assert "not valid JSON" in exc_info.value.message

    def test_network_error(self):
        with patch("integrations.dropbox.requests.get", side_effect=requests.exceptions.Timeout("slow")):
            with pytest.raises(DropboxFetchError):
                fetch_json("https://www.dropbox.com/s/abc/tx.json")
