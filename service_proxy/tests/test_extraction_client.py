"""
Unit tests for the extraction client.
"""

import json

import httpx
import pytest

from shared.errors import ExtractionError
from service_proxy.app.adapters.extraction_client import ExtractionClient, extract_json_from_text
from service_proxy.app.enrichment.prompts import SYSTEM_PROMPT


API_URL = "https://llm.example.com/v1/chat/completions"


def completion(content):
    return {
        "id": "chatcmpl-1",
        "model": "test-model",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}],
        "usage": {"total_tokens": 42},
    }


class TestExtractJsonFromText:
    """Test cases for salvaging JSON from model output."""

    def test_plain_json(self):
        assert extract_json_from_text('{"header": {"source": "M2M"}}') == {"header": {"source": "M2M"}}

    def test_fenced_block(self):
        text = 'Here is the data:\n```json\n{"notes": "none"}\n```\nHope this helps.'

        assert extract_json_from_text(text) == {"notes": "none"}

    def test_first_brace_delimited_object(self):
        text = 'Sure! {"ai_summary": "A calm week on the Sun."} Let me know.'

        assert extract_json_from_text(text) == {"ai_summary": "A calm week on the Sun."}

    def test_unparseable_text_wrapped_raw(self):
        text = "The report describes two flares {but no data}."

        assert extract_json_from_text(text) == {"raw": text}

    @pytest.mark.parametrize("text", ["", "   \n"])
    def test_empty_output_is_failure(self, text):
        with pytest.raises(ExtractionError):
            extract_json_from_text(text)


class TestExtractionClient:
    """Test cases for ExtractionClient."""

    def make_client(self, handler):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return ExtractionClient(API_URL, "secret-key", "test-model", max_tokens=512, client=http_client)

    @pytest.mark.asyncio
    async def test_extract_success(self):
        """Test the request shape and the parsed result."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=completion('{"ai_summary": "calm"}'))

        client = self.make_client(handler)

        result = await client.extract("## Weekly Space Weather Summary")

        assert result == {"ai_summary": "calm"}
        sent = json.loads(requests[0].content)
        assert requests[0].headers["Authorization"] == "Bearer secret-key"
        assert sent["model"] == "test-model"
        assert sent["max_tokens"] == 512
        assert sent["temperature"] == 0.2
        assert sent["seed"] == 1
        assert sent["response_format"] == {"type": "json_object"}
        assert sent["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
        assert "## Weekly Space Weather Summary" in sent["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        client = self.make_client(lambda request: httpx.Response(429, json={"error": "rate limited"}))

        with pytest.raises(ExtractionError) as exc_info:
            await client.extract("report")

        assert exc_info.value.details["status_code"] == 429

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = self.make_client(handler)

        with pytest.raises(ExtractionError):
            await client.extract("report")

    @pytest.mark.asyncio
    async def test_malformed_completion_raises(self):
        client = self.make_client(lambda request: httpx.Response(200, json={"choices": []}))

        with pytest.raises(ExtractionError):
            await client.extract("report")

    @pytest.mark.asyncio
    async def test_empty_content_raises(self):
        client = self.make_client(lambda request: httpx.Response(200, json=completion(None)))

        with pytest.raises(ExtractionError):
            await client.extract("report")

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        client = ExtractionClient(API_URL, "key", "model", client=http_client)

        await client.close()

        assert not http_client.is_closed
        await http_client.aclose()
