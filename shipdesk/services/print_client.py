"""
PrintNode Provider

Sends shipping labels (PDF URLs) and packing slips (base64 HTML) to the
packing-station printer. Printing is best-effort: nothing here raises to the
purchase flow, failures come back as PrintResult and are logged.
"""
import base64
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import httpx

from shipdesk.core.config import Settings
from shipdesk.core.exceptions import PrintJobError

logger = logging.getLogger(__name__)

PRINTJOBS_PATH = "/printjobs"

CONTENT_PDF_URI = "pdf_uri"
CONTENT_RAW_BASE64 = "raw_base64"


@dataclass
class PrintResult:
    success: bool
    title: str
    job_id: Optional[int] = None
    error: Optional[str] = None


class PrintNodeProvider:
    """PrintNode client. The API key is the basic-auth user name, password empty."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.api_key = settings.PRINTNODE_API_KEY
        self.printer_id = settings.PRINTNODE_PRINTER_ID
        self.base_url = settings.PRINTNODE_API_BASE.rstrip("/")
        self.source = settings.PRINT_SOURCE
        self.timeout = settings.PRINTNODE_TIMEOUT_SECONDS
        self._http_client = http_client

    @property
    def enabled(self) -> bool:
        return bool(self.api_key) and self.printer_id != 0

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._http_client

    async def close(self):
        """Explicit cleanup method."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def submit_job(self, title: str, content_type: str, content: str) -> Optional[int]:
        """
        Create a print job.

        Returns:
            PrintNode job id

        Raises:
            PrintJobError: on transport failure or any non-201 response
        """
        payload = {
            "printerId": self.printer_id,
            "title": title,
            "contentType": content_type,
            "content": content,
            "source": self.source,
        }
        http = await self._get_http_client()

        try:
            response = await http.post(
                f"{self.base_url}{PRINTJOBS_PATH}",
                json=payload,
                auth=httpx.BasicAuth(self.api_key, ""),
            )
        except httpx.RequestError as e:
            raise PrintJobError(f"PrintNode request failed: {e}", title=title) from e

        if response.status_code != 201:
            raise PrintJobError(
                f"PrintNode rejected print job: {response.text[:300]}",
                title=title,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError:
            return None

    async def _print(self, title: str, content_type: str, content: str) -> PrintResult:
        try:
            job_id = await self.submit_job(title, content_type, content)
        except PrintJobError as e:
            logger.error(f"Failed to print '{title}': {e.message}")
            return PrintResult(success=False, title=title, error=e.message)
        logger.info(f"'{title}' sent to printer, job ID: {job_id}")
        return PrintResult(success=True, title=title, job_id=job_id)

    async def print_labels(self, label_urls: Sequence[Optional[str]], customer_name: str) -> List[PrintResult]:
        """Send each label PDF to the printer in order."""
        if not self.enabled:
            logger.info(f"PrintNode not configured - skipping {len(label_urls)} label(s): {list(label_urls)}")
            return []

        results = []
        for number, url in enumerate(label_urls, start=1):
            title = f"Shipping Label {number} - {customer_name}"
            if not url:
                logger.warning(f"No label URL for package {number}, nothing to print")
                results.append(PrintResult(success=False, title=title, error="missing label URL"))
                continue
            results.append(await self._print(title, CONTENT_PDF_URI, url))

        printed = sum(1 for r in results if r.success)
        logger.info(f"{printed}/{len(results)} labels sent to printer")
        return results

    async def print_packing_slip(self, html: str, customer_name: str) -> PrintResult:
        """Send a rendered packing slip as a raw base64 document."""
        title = f"Packing Slip - {customer_name}"
        if not self.enabled:
            logger.info("PrintNode not configured - skipping packing slip print")
            return PrintResult(success=False, title=title, error="printing disabled")

        content = base64.b64encode(html.encode("utf-8")).decode("ascii")
        return await self._print(title, CONTENT_RAW_BASE64, content)
