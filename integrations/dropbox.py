"""
Dropbox integration for JSON transaction exports.

Share links point at an HTML preview page; they are rewritten to the
direct-download host before fetching.
"""

from typing import Any
import requests
import structlog

from config import settings
from exceptions import DropboxFetchError

logger = structlog.get_logger(__name__)

SHARE_HOST = "www.dropbox.com"
DIRECT_HOST = "dl.dropboxusercontent.com"


def to_direct_link(link: str) -> str:
    """
    Convert a Dropbox share link to a direct download link.

    - "https://www.dropbox.com/s/abc/tx.json?dl=0"
      → "https://dl.dropboxusercontent.com/s/abc/tx.json"

    Links on other hosts are returned stripped but otherwise unchanged.
    """
    url = link.strip()
    if SHARE_HOST in url:
        url = url.replace(SHARE_HOST, DIRECT_HOST)
        url = url.replace("?dl=0", "").replace("?dl=1", "")
    return url


def fetch_json(link: str) -> Any:
    """
    Fetch and decode a JSON document from Dropbox.

    Args:
        link: Share link or direct link

    Returns:
        Decoded JSON (usually a list of transaction objects)

    Raises:
        DropboxFetchError: If the download fails or the body is not JSON
    """
    url = to_direct_link(link)

    try:
        logger.info("fetching_dropbox_json", url=url[:60])

        response = requests.get(url, timeout=settings.dropbox_timeout_seconds)
        response.raise_for_status()

    except requests.exceptions.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        logger.error("dropbox_fetch_rejected", status=status)
        raise DropboxFetchError(
            "Failed to fetch file from Dropbox",
            details={"status": status}
        ) from e

    except requests.exceptions.RequestException as e:
        logger.error("dropbox_fetch_failed", error=str(e))
        raise DropboxFetchError(f"Failed to fetch file from Dropbox: {str(e)}") from e

    try:
        return response.json()
    except ValueError as e:
        logger.error("dropbox_json_invalid", error=str(e))
        raise DropboxFetchError("Dropbox file is not valid JSON") from e
