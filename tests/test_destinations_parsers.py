"""
Tests for the pure parsing helpers of the citation-heavy adapters.

DeepSeek picks an answer container by score, Yuanbao reads sources from a
conversation-detail payload and Doubao scores message blocks and turns
inline links into sources.
"""

from webchat_relay.destinations.deepseek import (
    extract_citation_ids,
    extract_source_count,
    pick_answer_text,
)
from webchat_relay.destinations.doubao import (
    links_to_sources,
    pick_message_block,
    score_message_block,
)
from webchat_relay.destinations.yuanbao import parse_conversation_sources

# ============================================================================
# DeepSeek
# ============================================================================


class TestDeepSeekPickAnswer:
    def test_prefers_container_with_prompt(self):
        candidates = [
            {"text": "unrelated container", "left": 300, "width": 700, "visible": True},
            {"text": "What is X?\nX is a letter.", "left": 300, "width": 700, "visible": True},
        ]
        assert pick_answer_text(candidates, "What is X?") == "What is X?\nX is a letter."

    def test_sidebar_container_loses(self):
        sidebar = {"text": "New chat\nToday\nhi\nold", "left": 300, "width": 700, "visible": True}
        answer = {"text": "hi\nHello there", "left": 300, "width": 700, "visible": True}
        assert pick_answer_text([sidebar, answer], "hi") == "hi\nHello there"

    def test_footer_fallback_without_prompt(self):
        candidates = [
            {"text": "short", "visible": True},
            {"text": "Answer\nAI-generated, for reference only", "visible": False},
        ]
        assert pick_answer_text(candidates, "missing prompt") == (
            "Answer\nAI-generated, for reference only"
        )

    def test_body_fallback(self):
        assert pick_answer_text([], "q", body_text="  whole   page ") == "whole page"


class TestDeepSeekMarkers:
    def test_citation_ids(self):
        assert extract_citation_ids("a[2] b[10] c\n-\n3\nd") == ["2", "3", "10"]

    def test_no_citations(self):
        assert extract_citation_ids("plain") == []

    def test_source_count(self):
        assert extract_source_count("Read 8 web pages\nanswer") == 8
        assert extract_source_count("answer") == 0


# ============================================================================
# Yuanbao
# ============================================================================


def _payload(*docs):
    return {"convs": [{"speechesV2": [{"content": [{"docs": list(docs)}, {"type": "text"}]}]}]}


class TestYuanbaoSources:
    def test_richer_duplicate_wins(self):
        payload = _payload(
            {"index": 1, "web_site_name": "Site A", "url": "https://a"},
            {"index": 1, "web_site_name": "Site A", "title": "T", "quote": "Q", "url": "https://a"},
            {"index": 2, "title": "B", "url": "https://b"},
            {"unrelated": "field"},
        )

        sources = parse_conversation_sources(payload)

        assert [s.url for s in sources] == ["https://a", "https://b"]
        assert sources[0].title == "T"
        assert sources[0].summary == "Q"
        assert sources[0].index == "1"

    def test_preferred_ids_filter(self):
        payload = _payload(
            {"index": 1, "url": "https://a"},
            {"index": 2, "url": "https://b"},
            {"title": "no index", "url": "https://c"},
        )
        sources = parse_conversation_sources(payload, ["2"])
        assert [s.url for s in sources] == ["https://b", "https://c"]

    def test_non_numeric_preferred_ids_ignored(self):
        payload = _payload({"index": 1, "url": "https://a"})
        assert len(parse_conversation_sources(payload, ["x"])) == 1

    def test_alternate_keys(self):
        payload = _payload({"idx": 4, "sourceName": "News", "docTitle": "Story", "href": "https://n"})
        source = parse_conversation_sources(payload)[0]
        assert (source.index, source.source, source.title, source.url) == ("4", "News", "Story", "https://n")

    def test_malformed_payloads(self):
        assert parse_conversation_sources(None) == []
        assert parse_conversation_sources({"convs": "nope"}) == []
        assert parse_conversation_sources({"convs": [1, {"speechesV2": [None]}]}) == []


# ============================================================================
# Doubao
# ============================================================================


def _block(text, **overrides):
    block = {"text": text, "className": "", "receive": True, "width": 500, "height": 80, "top": 100}
    block.update(overrides)
    return block


class TestDoubaoScoring:
    def test_rejections(self):
        assert score_message_block(_block("hi", receive=False, send=True), "") is None
        assert score_message_block(_block("hi", className="sidebar-item"), "") is None
        assert score_message_block(_block("hi", width=10), "") is None
        assert score_message_block(_block("prompt"), "prompt") is None
        assert score_message_block(_block("正在整理"), "") is None
        assert score_message_block(_block("请输入手机号"), "") is None

    def test_received_container_scores_high(self):
        plain = score_message_block(_block("answer", receive=False), "")
        received = score_message_block(_block("answer"), "")
        container = score_message_block(_block("answer", className="message-block-container"), "")
        assert plain < received < container

    def test_greeting_loses_to_answer(self):
        greeting = _block("你好，我是豆包，有什么可以帮你的吗", top=100)
        answer = _block("答案是 42", top=300)
        assert pick_message_block([greeting, answer], "问题") is answer

    def test_later_block_wins_ties(self):
        first, second = _block("same"), _block("same")
        assert pick_message_block([first, second], "") is second

    def test_no_candidates(self):
        assert pick_message_block([_block("")], "q") is None


class TestDoubaoLinks:
    def test_links_become_numbered_sources(self):
        links = [
            {"href": "https://www.example.com/a", "text": "Example A"},
            {"href": "https://www.example.com/a", "text": "duplicate"},
            {"href": "/relative/path", "text": "skipped"},
            {"href": "https://news.site.cn/b", "text": "L" * 200},
        ]

        sources = links_to_sources(links)

        assert [s.index for s in sources] == ["1", "2"]
        assert sources[0].source == "example.com"
        assert sources[0].title == "Example A"
        assert sources[1].source == "news.site.cn"
        assert len(sources[1].title) == 120
        assert sources[1].title.endswith("...")

    def test_capped_at_twenty(self):
        links = [{"href": f"https://s{i}.com/", "text": str(i)} for i in range(30)]
        assert len(links_to_sources(links)) == 20
