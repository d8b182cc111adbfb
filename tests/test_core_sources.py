"""
Tests for core.sources - citation URL discovery, page extraction and the
async crawl.

Downloads run against httpx.MockTransport, so no network is touched.
"""

import asyncio
import json

import httpx
import pytest

from webchat_relay.core.sources import (
    SourceCrawlOutput,
    clean_main_text,
    crawl_sources,
    extract_article,
    extract_urls,
    load_urls_from_file,
    write_crawl_output,
)
from webchat_relay.storage.error_log import list_error_events

ARTICLE_HTML = """
<html>
<head>
  <title>Fallback title</title>
  <meta property="og:title" content="Rate limits explained">
  <meta property="og:site_name" content="Example News">
  <meta name="author" content="A. Writer">
  <meta name="description" content="Why web chats throttle automation.">
  <script>var tracking = true;</script>
</head>
<body>
  <nav>Home | World | Tech</nav>
  <article>
    <h1>Rate limits explained</h1>
    <p>Web chats slow down clients that send too many prompts.[1]</p>
    <div class="ad-slot">Buy now, limited offer</div>
    <p>广告：限时优惠</p>
    <p>Cooldowns grow after repeated verification challenges.</p>
  </article>
  <footer>Copyright Example News</footer>
</body>
</html>
"""


def _html_response(body: str, status: int = 200) -> httpx.Response:
    return httpx.Response(status, headers={"content-type": "text/html; charset=utf-8"}, text=body)


def _crawl(handler, urls, **kwargs):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await crawl_sources(urls, client=client, retry_wait_s=0, **kwargs)

    return asyncio.run(run())


# ============================================================================
# URL discovery
# ============================================================================


class TestExtractUrls:
    def test_trailing_punctuation_and_duplicates(self):
        text = (
            "See [the post](https://example.com/post). "
            "Also https://example.com/post, and https://example.org/a?b=1;"
        )

        assert extract_urls(text) == ["https://example.com/post", "https://example.org/a?b=1"]

    def test_no_urls(self):
        assert extract_urls("nothing to see here") == []

    def test_load_from_markdown_file(self, tmp_path):
        answer = tmp_path / "response.md"
        answer.write_text(
            "AI Answer\n\nSources:\n1. https://example.com/a\n2. https://example.com/b\n",
            encoding="utf-8",
        )

        assert load_urls_from_file(answer) == ["https://example.com/a", "https://example.com/b"]


# ============================================================================
# Extraction
# ============================================================================


class TestCleanMainText:
    def test_noise_lines_removed_and_counted(self):
        text = "\n".join(
            [
                "Cooldowns grow after challenges.",
                "广告：限时优惠",
                "相关推荐",
                "扫码下载查看全文",
                "Cooldowns grow after challenges.",
                "Second paragraph, with punctuation.",
            ]
        )

        cleaned, removed = clean_main_text(text)

        assert cleaned == "Cooldowns grow after challenges.\nSecond paragraph, with punctuation."
        assert removed == 3

    def test_symbol_heavy_and_unpunctuated_lines(self):
        link_farm = " ".join(["tag"] * 20)
        text = f"Real sentence here.\na >>> ||| ### ***\n{link_farm}"

        cleaned, removed = clean_main_text(text)

        assert cleaned == "Real sentence here."
        assert removed == 2

    def test_citation_marks_and_spacing(self):
        cleaned, _ = clean_main_text("Limits apply[2]   to   bots[3-4].")
        assert cleaned == "Limits apply to bots."

    def test_max_chars(self):
        cleaned, _ = clean_main_text("One sentence here. " * 100, max_chars=40)
        assert len(cleaned) <= 40


class TestExtractArticle:
    def test_metadata_and_main_text(self):
        result = extract_article(ARTICLE_HTML, "https://example.com/limits")

        assert result.title == "Rate limits explained"
        assert result.site_name == "Example News"
        assert result.byline == "A. Writer"
        assert result.excerpt == "Why web chats throttle automation."
        assert result.content == (
            "Rate limits explained\n"
            "Web chats slow down clients that send too many prompts.\n"
            "Cooldowns grow after repeated verification challenges."
        )
        assert result.content_chars == len(result.content)
        assert result.removed_noise_lines == 1

    def test_body_fallback_and_title_tag(self):
        html = "<html><head><title> Plain page </title></head><body><p>Just text.</p></body></html>"

        result = extract_article(html, "https://example.com/plain")

        assert result.title == "Plain page"
        assert result.content == "Just text."
        assert result.site_name is None

    def test_empty_page(self):
        result = extract_article("<html><body></body></html>", "https://example.com/empty")

        assert result.content is None
        assert result.content_chars == 0


# ============================================================================
# Crawling
# ============================================================================


class TestCrawlSources:
    def test_success_and_failures_reported_per_item(self):
        def handler(request):
            if request.url.path == "/article":
                return _html_response(ARTICLE_HTML)
            if request.url.path == "/missing":
                return _html_response("gone", status=404)
            return httpx.Response(200, headers={"content-type": "application/pdf"}, content=b"%PDF")

        output = _crawl(
            handler,
            [
                "https://example.com/article",
                "https://example.com/missing",
                "https://example.com/paper.pdf",
            ],
        )

        assert (output.total, output.succeeded, output.failed) == (3, 1, 2)
        article, missing, pdf = output.items
        assert article.url == "https://example.com/article"
        assert article.final_url == "https://example.com/article"
        assert article.title == "Rate limits explained"
        assert missing.error == "HTTP 404"
        assert pdf.error == "Unsupported content type: application/pdf"

    def test_duplicate_urls_fetched_once(self):
        requests = []

        def handler(request):
            requests.append(str(request.url))
            return _html_response("<p>Hello there.</p>")

        output = _crawl(handler, ["https://example.com/a", "https://example.com/a)", " https://example.com/a "])

        assert output.total == 1
        assert requests == ["https://example.com/a"]

    def test_redirect_sets_final_url(self):
        def handler(request):
            if request.url.path == "/short":
                return httpx.Response(301, headers={"location": "https://example.com/long"})
            return _html_response("<p>Landed here.</p>")

        item = _crawl(handler, ["https://example.com/short"]).items[0]

        assert item.url == "https://example.com/short"
        assert item.final_url == "https://example.com/long"
        assert item.content == "Landed here."

    def test_connect_error_retried_then_reported(self, tmp_path):
        calls = []

        def handler(request):
            calls.append(request.url)
            raise httpx.ConnectError("Connection refused", request=request)

        log_path = tmp_path / "errors.jsonl"
        output = _crawl(handler, ["https://down.example.com/"], error_log_path=log_path)

        assert len(calls) == 2
        assert output.items[0].error == "ConnectError: Connection refused"

        event = list_error_events(log_path=log_path)[0]
        assert event.module == "sources"
        assert event.stage == "fetch_extract"
        assert event.url == "https://down.example.com/"

    def test_transient_connect_error_recovers(self):
        calls = []

        def handler(request):
            calls.append(request.url)
            if len(calls) == 1:
                raise httpx.ConnectError("Connection reset", request=request)
            return _html_response("<p>Second try worked.</p>")

        output = _crawl(handler, ["https://flaky.example.com/"])

        assert output.succeeded == 1
        assert output.items[0].content == "Second try worked."

    def test_empty_url_list(self):
        output = _crawl(lambda request: _html_response(""), [])
        assert (output.total, output.items) == (0, [])


def test_write_crawl_output_omits_empty_fields(tmp_path):
    output = SourceCrawlOutput(
        total=1, succeeded=0, failed=1, items=[{"url": "https://x.example", "error": "HTTP 500"}]
    )
    path = tmp_path / "out" / "sources.json"

    write_crawl_output(path, output)

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["items"] == [{"url": "https://x.example", "error": "HTTP 500"}]
    assert data["fetched_at"].startswith("20")


@pytest.mark.parametrize("concurrency", [1, 5])
def test_concurrency_keeps_input_order(concurrency):
    urls = [f"https://example.com/{n}" for n in range(6)]

    output = _crawl(
        lambda request: _html_response(f"<p>Page {request.url.path[1:]}.</p>"),
        urls,
        concurrency=concurrency,
    )

    assert [item.content for item in output.items] == [f"Page {n}." for n in range(6)]
