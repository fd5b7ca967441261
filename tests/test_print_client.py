"""
Tests for the PrintNode provider.
"""
import base64
import json

import httpx
import pytest

from shipdesk.core.config import get_settings
from shipdesk.core.exceptions import PrintJobError
from shipdesk.services.print_client import PrintNodeProvider

PRINTNODE_BASE = "https://printnode.test"


def make_provider(handler, api_key="pn_key", printer_id=4242) -> PrintNodeProvider:
    settings = get_settings({
        "PRINTNODE_API_KEY": api_key,
        "PRINTNODE_PRINTER_ID": printer_id,
        "PRINTNODE_API_BASE": PRINTNODE_BASE,
        "PRINT_SOURCE": "El Wafaa Shipping",
    })
    return PrintNodeProvider(settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestPrintNodeProvider:
    """Test PrintNodeProvider."""

    def test_disabled_without_key_or_printer(self):
        assert not make_provider(lambda r: None, api_key="").enabled
        assert not make_provider(lambda r: None, printer_id=0).enabled
        assert make_provider(lambda r: None).enabled

    @pytest.mark.asyncio
    async def test_print_labels_sends_pdf_uri_jobs(self):
        jobs = []

        def handler(request: httpx.Request) -> httpx.Response:
            jobs.append((request, json.loads(request.content)))
            return httpx.Response(201, json=1000 + len(jobs))

        provider = make_provider(handler)
        results = await provider.print_labels(["https://labels.test/1.pdf", "https://labels.test/2.pdf"], "Jane Doe")

        assert [r.job_id for r in results] == [1001, 1002]
        assert all(r.success for r in results)

        request, body = jobs[1]
        assert str(request.url) == f"{PRINTNODE_BASE}/printjobs"
        expected_auth = "Basic " + base64.b64encode(b"pn_key:").decode()
        assert request.headers["Authorization"] == expected_auth
        assert body == {
            "printerId": 4242,
            "title": "Shipping Label 2 - Jane Doe",
            "contentType": "pdf_uri",
            "content": "https://labels.test/2.pdf",
            "source": "El Wafaa Shipping",
        }

    @pytest.mark.asyncio
    async def test_one_failed_label_does_not_stop_the_rest(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(400, text="printer offline")
            return httpx.Response(201, json=7)

        provider = make_provider(handler)
        results = await provider.print_labels(["u1", "u2"], "Jane Doe")

        assert [r.success for r in results] == [False, True]
        assert "printer offline" in results[0].error

    @pytest.mark.asyncio
    async def test_missing_label_url_is_skipped(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(201, json=1)

        provider = make_provider(handler)
        results = await provider.print_labels([None, "u2"], "Jane Doe")

        assert [r.success for r in results] == [False, True]
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_disabled_provider_prints_nothing(self):
        calls = []
        provider = make_provider(lambda r: calls.append(r), api_key="")

        assert await provider.print_labels(["u1"], "Jane Doe") == []
        slip = await provider.print_packing_slip("<html></html>", "Jane Doe")

        assert not slip.success
        assert calls == []

    @pytest.mark.asyncio
    async def test_packing_slip_sent_as_raw_base64(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json=55)

        provider = make_provider(handler)
        result = await provider.print_packing_slip("<p>Slip</p>", "Jane Doe")

        assert result.success
        assert result.title == "Packing Slip - Jane Doe"
        assert seen["body"]["contentType"] == "raw_base64"
        assert base64.b64decode(seen["body"]["content"]) == b"<p>Slip</p>"

    @pytest.mark.asyncio
    async def test_submit_job_raises_on_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("no route to host", request=request)

        provider = make_provider(handler)

        with pytest.raises(PrintJobError) as exc_info:
            await provider.submit_job("Label", "pdf_uri", "u1")

        assert exc_info.value.details["title"] == "Label"

    @pytest.mark.asyncio
    async def test_print_swallows_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("no route to host", request=request)

        provider = make_provider(handler)
        result = await provider.print_packing_slip("<p>Slip</p>", "Jane Doe")

        assert not result.success
        assert "no route to host" in result.error
