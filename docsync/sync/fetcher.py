"""
Document export fetcher.

Downloads one export (document, format) from the document host and hands the
raw bytes back to the caller, which decides where they are written.
"""

from typing import Optional

import requests

from ..config import get_logger, DEFAULT_EXPORT_URL_TEMPLATE, DEFAULT_FETCH_TIMEOUT
from .config import ExportFormat
from .error_tracker import HTTPStatusError, TransportError

logger = get_logger(__name__)


class DocumentFetcher:
    """Fetches document exports over HTTPS."""

    def __init__(self, url_template: str = DEFAULT_EXPORT_URL_TEMPLATE, timeout: int = DEFAULT_FETCH_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.url_template = url_template
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': 'docsync/0.1',
            'Accept': '*/*',
        })

    def export_url(self, document_id: str, fmt: ExportFormat) -> str:
        return self.url_template.format(document_id=document_id, format=fmt.value)

    def fetch(self, document_id: str, fmt: ExportFormat) -> bytes:
        """
        Fetch the export of a document in the given format.

        Args:
            document_id: Document identifier assigned by the host
            fmt: Export format

        Returns:
            Raw response body

        Raises:
            HTTPStatusError: The host answered with a non-success status
            TransportError: No response was received
        """
        url = self.export_url(document_id, fmt)
        logger.info(f"Getting {url}")

        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise TransportError(
                f"Request for {url} failed: {e}",
                source_id=document_id,
                recovery_suggestion="Check network connectivity; the next run will retry"
            )

        if not 200 <= response.status_code < 300:
            raise HTTPStatusError(
                f"Unexpected status {response.status_code} {response.reason or ''}".rstrip() + f" for {url}",
                status_code=response.status_code,
                source_id=document_id,
                recovery_suggestion="Make sure the document is shared publicly and the id is correct"
            )

        content = response.content
        logger.debug(f"Fetched {len(content)} bytes from {url}")
        return content
