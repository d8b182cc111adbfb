"""
Citation source crawler for the `sources` command.

Answers from search-enabled destinations cite third-party pages. This module
downloads those pages over plain HTTP (no browser, no login) and reduces each
one to its main text so the citations can be read or fed back into a prompt:

    extract_urls -> crawl_sources (httpx, bounded concurrency)
        -> extract_article (BeautifulSoup) -> clean_main_text

A failed URL never fails the crawl: it is reported in the result with its
error message and recorded to error telemetry.
"""

import asyncio
import logging
import re
import time
from datetime import datetime
from pathlib import Path

import httpx
from bs4 import BeautifulSoup, Tag
from pydantic import BaseModel, Field

from webchat_relay.exceptions import SourceFetchError

from ..destinations.retry_config import FETCH_WAIT_SECONDS, create_fetch_retry_decorator
from ..storage.error_log import record_error_event
from ..storage.writer import write_json
from ..utils.time import utc_now

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 3
DEFAULT_FETCH_TIMEOUT_MS = 15_000
DEFAULT_MAX_CHARS = 8_000

REQUEST_HEADERS = {
    "user-agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}

HTML_CONTENT_TYPE = re.compile(r"text/html|application/xhtml\+xml", re.IGNORECASE)

URL_PATTERN = re.compile(r"https?://[^\s<>\"']+")
URL_TRAILING_PUNCTUATION = re.compile(r"[)\],.;]+$")

# Page furniture removed before the main text is located
BLOCK_SELECTORS = (
    "script",
    "style",
    "noscript",
    "iframe",
    "svg",
    "canvas",
    "header",
    "footer",
    "nav",
    "aside",
    '[role="banner"]',
    '[role="navigation"]',
    '[role="complementary"]',
    ".advertisement",
    ".ads",
    ".ad",
    ".banner",
    ".sponsor",
    ".sponsored",
    ".recommend",
    ".related",
    ".hot-news",
    ".popular",
    '[class*="ad-"]',
    '[class*="-ad"]',
    '[id*="ad-"]',
    '[id*="-ad"]',
)

BLOCK_TAGS = (
    "p",
    "div",
    "section",
    "li",
    "tr",
    "blockquote",
    "pre",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
)

MAIN_CONTENT_SELECTORS = ("article", "main", '[role="main"]')

NOISE_LINE_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^(广告|赞助|推广|商务合作|免责声明|版权声明)[:：]?\s*",
        r"(下载|打开|安装).{0,8}(APP|应用)",
        r"^(相关阅读|相关推荐|猜你喜欢|延伸阅读)[:：]?\s*",
        r"扫码.{0,8}(下载|关注|查看)",
        r"点击.{0,8}(更多|查看详情|展开全文)",
        r"责任编辑[:：]",
        r"来源[:：]\s*[^。]{0,30}$",
        r"(百度百科是免费编辑平台|无收费代编服务)",
        r"^(声明|详情)[:：]?$",
        r"^推荐菜[:：]?$",
    )
)

_CITATION_INDEX = re.compile(r"\[\d+(?:-\d+)?\]")
_WORD_CHAR = re.compile(r"[A-Za-z0-9一-龥]")
_SENTENCE_PUNCTUATION = re.compile(r"[，。！？；:：.!?,]")


class SourceExtraction(BaseModel):
    """Main text and metadata of one citation page, or why it failed."""

    url: str
    final_url: str | None = None
    title: str | None = None
    site_name: str | None = None
    byline: str | None = None
    excerpt: str | None = None
    content: str | None = None
    content_chars: int | None = None
    removed_noise_lines: int | None = None
    error: str | None = None


class SourceCrawlOutput(BaseModel):
    """Result of one crawl_sources() call."""

    fetched_at: datetime = Field(default_factory=utc_now)
    total: int
    succeeded: int
    failed: int
    items: list[SourceExtraction]

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


# ============================================================================
# URL discovery
# ============================================================================


def normalize_url(url: str) -> str:
    return URL_TRAILING_PUNCTUATION.sub("", url.strip())


def extract_urls(text: str) -> list[str]:
    """
    Find http(s) URLs in free text, deduplicated in order of appearance.

    Example:
        >>> extract_urls("See https://a.example/x). Also https://a.example/x.")
        ['https://a.example/x']
    """
    urls = (normalize_url(match) for match in URL_PATTERN.findall(text))
    return list(dict.fromkeys(url for url in urls if url))


def load_urls_from_file(path: str | Path) -> list[str]:
    return extract_urls(Path(path).read_text(encoding="utf-8"))


# ============================================================================
# Extraction
# ============================================================================


def clean_main_text(text: str, max_chars: int = DEFAULT_MAX_CHARS) -> tuple[str, int]:
    """
    Drop boilerplate lines from extracted page text.

    Removes ad/recommendation lines, lines that are mostly symbols, long lines
    without any punctuation (link farms, tag clouds) and consecutive
    duplicates. Citation indexes like "[3]" are stripped.

    Returns:
        (cleaned text truncated to max_chars, number of lines removed as noise)
    """
    kept: list[str] = []
    removed = 0
    previous = ""

    for raw in re.split(r"\r?\n", text):
        line = _CITATION_INDEX.sub("", raw.replace("\u00a0", " "))
        line = re.sub(r"[ \t]+", " ", line).strip()
        if not line:
            continue
        if any(pattern.search(line) for pattern in NOISE_LINE_PATTERNS):
            removed += 1
            continue
        word_chars = len(_WORD_CHAR.findall(line))
        if word_chars > 0 and len(line) - word_chars > word_chars * 0.8:
            removed += 1
            continue
        if len(line) >= 60 and not _SENTENCE_PUNCTUATION.search(line):
            removed += 1
            continue
        if line == previous:
            continue
        kept.append(line)
        previous = line

    return "\n".join(kept)[:max_chars].strip(), removed


def _meta_content(soup: BeautifulSoup, **attrs: str) -> str | None:
    tag = soup.find("meta", attrs=attrs)
    if not isinstance(tag, Tag):
        return None
    content = (tag.get("content") or "").strip()
    return content or None


def _remove_noise_nodes(soup: BeautifulSoup) -> None:
    for selector in BLOCK_SELECTORS:
        for node in soup.select(selector):
            # Class-substring selectors can hit the page wrapper itself
            if node.decomposed or node.name in ("html", "body"):
                continue
            node.decompose()


def _main_content(soup: BeautifulSoup) -> Tag:
    for selector in MAIN_CONTENT_SELECTORS:
        node = soup.select_one(selector)
        if node is not None and node.get_text(strip=True):
            return node
    return soup.body or soup


def extract_article(html: str, page_url: str, max_chars: int = DEFAULT_MAX_CHARS) -> SourceExtraction:
    """
    Reduce an HTML page to its title, metadata and cleaned main text.

    The main text comes from the first non-empty <article>, <main> or
    [role=main] element, falling back to <body>.
    """
    soup = BeautifulSoup(html, "html.parser")

    title = _meta_content(soup, property="og:title")
    if title is None and soup.title is not None:
        title = soup.title.get_text(strip=True) or None
    site_name = _meta_content(soup, property="og:site_name")
    byline = _meta_content(soup, name="author")
    excerpt = _meta_content(soup, name="description") or _meta_content(
        soup, property="og:description"
    )

    _remove_noise_nodes(soup)
    root = _main_content(soup)
    for br in root.find_all("br"):
        br.replace_with("\n")
    for block in root.find_all(list(BLOCK_TAGS)):
        block.insert_after("\n")

    content, removed = clean_main_text(root.get_text(), max_chars)
    return SourceExtraction(
        url=page_url,
        title=title,
        site_name=site_name,
        byline=byline,
        excerpt=excerpt,
        content=content or None,
        content_chars=len(content),
        removed_noise_lines=removed,
    )


# ============================================================================
# Crawling
# ============================================================================


async def _fetch_html(client: httpx.AsyncClient, url: str, timeout_s: float) -> tuple[str, str]:
    response = await client.get(
        url, headers=REQUEST_HEADERS, timeout=timeout_s, follow_redirects=True
    )
    if not response.is_success:
        raise SourceFetchError(f"HTTP {response.status_code}", url=url)

    content_type = response.headers.get("content-type", "")
    if not HTML_CONTENT_TYPE.search(content_type):
        raise SourceFetchError(
            f"Unsupported content type: {content_type or 'unknown'}", url=url
        )
    return str(response.url), response.text


def _describe(error: Exception) -> str:
    message = str(error)
    if isinstance(error, httpx.HTTPError):
        return f"{type(error).__name__}: {message}" if message else type(error).__name__
    return message or type(error).__name__


async def crawl_sources(
    urls: list[str],
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    timeout_ms: int = DEFAULT_FETCH_TIMEOUT_MS,
    max_chars: int = DEFAULT_MAX_CHARS,
    client: httpx.AsyncClient | None = None,
    retry_wait_s: float = FETCH_WAIT_SECONDS,
    error_log_path: Path | None = None,
) -> SourceCrawlOutput:
    """
    Fetch and extract every URL, at most `concurrency` at a time.

    Args:
        urls: Citation URLs (normalized and deduplicated here)
        concurrency: Maximum simultaneous downloads
        timeout_ms: Per-URL request timeout
        max_chars: Content cap per page
        client: Shared client (tests pass one with a mock transport); when
            omitted a client is created and closed here
        retry_wait_s: Base backoff between download retries
        error_log_path: Override for the error telemetry file

    Returns:
        SourceCrawlOutput with one item per unique URL, in input order
    """
    unique_urls = list(dict.fromkeys(url for url in map(normalize_url, urls) if url))
    semaphore = asyncio.Semaphore(max(1, concurrency))
    fetch = create_fetch_retry_decorator(wait_seconds=retry_wait_s)(_fetch_html)
    timeout_s = timeout_ms / 1000

    owns_client = client is None
    http = client or httpx.AsyncClient()

    async def _crawl_one(url: str) -> SourceExtraction:
        async with semaphore:
            started = time.monotonic()
            try:
                final_url, html = await fetch(http, url, timeout_s)
                extraction = extract_article(html, final_url, max_chars)
                return extraction.model_copy(update={"url": url, "final_url": final_url})
            except Exception as e:
                # One bad citation must not sink the rest of the crawl
                message = _describe(e)
                logger.warning(f"Could not extract {url}: {message}")
                record_error_event(
                    "sources",
                    "fetch_extract",
                    e,
                    message=message,
                    url=url,
                    duration_ms=round((time.monotonic() - started) * 1000),
                    log_path=error_log_path,
                )
                return SourceExtraction(url=url, error=message)

    try:
        items = await asyncio.gather(*(_crawl_one(url) for url in unique_urls))
    finally:
        if owns_client:
            await http.aclose()

    succeeded = sum(1 for item in items if item.error is None)
    logger.info(f"Extracted {succeeded}/{len(items)} source page(s)")
    return SourceCrawlOutput(
        total=len(items),
        succeeded=succeeded,
        failed=len(items) - succeeded,
        items=list(items),
    )


def write_crawl_output(path: str | Path, output: SourceCrawlOutput) -> None:
    write_json(path, output.to_dict())
