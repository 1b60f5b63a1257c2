import httpx
import pytest

from lesson_tutor.exceptions import ToolExecutionError
from lesson_tutor.tools.web import (
    extract_text_from_html,
    fetch_web_content,
    format_search_results,
    perform_web_search,
)

SERP_PAYLOAD = {
    "answer_box": {"answer": "3", "link": "https://example.com/answer"},
    "organic_results": [
        {"title": "Linear equations", "link": "https://example.com/linear", "snippet": "Solve for x"},
        {"title": "No link"},
    ],
}


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_extract_text_drops_scripts_and_tags():
    html = "<html><script>var x = 1;</script><style>p{}</style><p>Hello   <b>world</b></p></html>"
    assert extract_text_from_html(html) == "Hello world"


def test_format_search_results_sections():
    text = format_search_results(SERP_PAYLOAD, "x+2=5", 5)

    assert text.startswith('🔍 Search results for "x+2=5"')
    assert "**Answer**: 3" in text
    assert "1. **Linear equations**" in text
    assert "Link: https://example.com/linear" in text
    assert "No link" not in text


def test_format_search_results_empty():
    assert format_search_results({}, "zzz", 5).startswith('No results found for "zzz"')


@pytest.mark.asyncio
async def test_search_calls_serpapi_with_clamped_count():
    seen = {}

    def handler(request):
        seen.update(request.url.params)
        return httpx.Response(200, json=SERP_PAYLOAD)

    async with _client(handler) as client:
        text = await perform_web_search("x+2=5", num_results=50, api_key="k", client=client)

    assert seen["engine"] == "google"
    assert seen["num"] == "10"
    assert seen["api_key"] == "k"
    assert "Linear equations" in text


@pytest.mark.asyncio
async def test_search_failure_degrades_to_fallback():
    async with _client(lambda request: httpx.Response(500)) as client:
        text = await perform_web_search("x", api_key="k", client=client)
    assert text.startswith("Search failed: API error")

    async with _client(lambda request: httpx.Response(200, json={"error": "Invalid key"})) as client:
        text = await perform_web_search("x", api_key="k", client=client)
    assert text.startswith("Search failed: API error")


@pytest.mark.asyncio
async def test_search_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    async with _client(handler) as client:
        text = await perform_web_search("x", api_key="k", client=client)

    assert text.startswith("Search failed: timeout")


@pytest.mark.asyncio
async def test_fetch_truncates_page_text():
    body = "<p>" + "a" * 5000 + "</p>"

    async with _client(lambda request: httpx.Response(200, html=body)) as client:
        text = await fetch_web_content("https://example.com/page", client=client)

    assert text.startswith("Content from https://example.com/page:")
    assert text.endswith("...")
    assert text.count("a") >= 4000


@pytest.mark.asyncio
async def test_fetch_rejects_bad_urls_and_content():
    with pytest.raises(ToolExecutionError):
        await fetch_web_content("ftp://example.com/file")

    async with _client(lambda request: httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"})) as client:
        with pytest.raises(ToolExecutionError, match="Unsupported content type"):
            await fetch_web_content("https://example.com/img.png", client=client)

    async with _client(lambda request: httpx.Response(404)) as client:
        with pytest.raises(ToolExecutionError):
            await fetch_web_content("https://example.com/missing", client=client)
