"""
Tests for destinations.dom - Playwright helpers against a minimal fake page.
"""

import pytest
from playwright.sync_api import Error as PlaywrightError

from webchat_relay.destinations import dom, grok
from webchat_relay.destinations.heuristics import DEFAULT_NOISE, DOUBAO_NOISE
from webchat_relay.exceptions import AdapterError


class FakeElement:
    def __init__(self, visible: bool = True):
        self.visible = visible
        self.files = None

    def is_visible(self) -> bool:
        return self.visible

    def set_input_files(self, files) -> None:
        self.files = files


class DomPage:
    """Page with a fixed selector -> element table."""

    def __init__(self, elements=None, url="https://chat.example.com/", fail_with=None):
        self.elements = elements or {}
        self.url = url
        self.fail_with = fail_with
        self.waits = []

    def query_selector(self, selector):
        if self.fail_with is not None:
            raise PlaywrightError(self.fail_with)
        return self.elements.get(selector)

    def wait_for_timeout(self, ms):
        self.waits.append(ms)

    def evaluate(self, script, arg=None):
        if self.fail_with is not None:
            raise PlaywrightError(self.fail_with)
        return {"script": script, "arg": arg}


class TestTranslatePlaywrightError:
    @pytest.mark.parametrize(
        ("message", "kind"),
        [
            ("Execution context was destroyed, most likely because of a navigation", "transient"),
            ("Target page, context or browser has been closed", "navigation_lost"),
            ("Timeout 30000ms exceeded waiting for locator", "selector_not_found"),
        ],
    )
    def test_kinds(self, message, kind):
        err = dom.translate_playwright_error(PlaywrightError(message), "gemini", "Snapshot")
        assert err.kind == kind
        assert err.destination == "gemini"
        assert str(err).startswith("Snapshot failed: ")


class TestVisibility:
    def test_first_visible_in_order(self):
        hidden, shown = FakeElement(False), FakeElement(True)
        page = DomPage({"#a": hidden, "#b": shown})
        assert dom.find_first_visible(page, ["#a", "#b"]) is shown

    def test_lookup_errors_are_misses(self):
        page = DomPage(fail_with="detached")
        assert dom.find_first_visible(page, ["#a"]) is None
        assert dom.any_visible(page, ["#a"]) is False


class TestDetectLogin:
    """Composer vs login affordance."""

    def test_login_button_wins_by_default(self):
        page = DomPage({"#composer": FakeElement(), "#login": FakeElement()})
        assert dom.detect_login(page, ["#composer"], ["#login"], timeout_s=0) is False

    def test_composer_wins_when_requested(self):
        page = DomPage({"#composer": FakeElement(), "#login": FakeElement()})
        assert dom.detect_login(page, ["#composer"], ["#login"], timeout_s=0, composer_wins=True)

    def test_composer_alone(self):
        page = DomPage({"#composer": FakeElement()})
        assert dom.detect_login(page, ["#composer"], ["#login"], timeout_s=0)

    def test_nothing_visible(self):
        page = DomPage()
        assert dom.detect_login(page, ["#composer"], ["#login"], timeout_s=0) is False


class TestBlockProbes:
    def test_verification_by_url(self):
        page = DomPage(url="https://chat.example.com/captcha")
        assert dom.verification_visible(page, DEFAULT_NOISE)

    def test_verification_by_widget(self):
        page = DomPage({'iframe[src*="captcha"]': FakeElement()})
        assert dom.verification_visible(page, DEFAULT_NOISE)

    def test_no_verification(self):
        assert not dom.verification_visible(DomPage(), DEFAULT_NOISE)

    def test_headless_blocked(self):
        page = DomPage(url="https://www.doubao.com/security/doubao-region-ban?x=1")
        assert dom.headless_blocked(page, DOUBAO_NOISE)
        assert not dom.headless_blocked(DomPage(), DOUBAO_NOISE)


class TestUploadAndEvaluate:
    def test_upload_sets_files_on_first_input(self, tmp_path):
        file_input = FakeElement(visible=False)
        page = DomPage({'input[type="file"]': file_input})
        path = tmp_path / "notes.txt"

        dom.upload_files(page, ["#missing", 'input[type="file"]'], [path], "claude")

        assert file_input.files == [str(path)]

    def test_upload_without_input(self, tmp_path):
        with pytest.raises(AdapterError, match="File input not found"):
            dom.upload_files(DomPage(), ['input[type="file"]'], [tmp_path / "a"], "claude")

    def test_evaluate_passes_through(self):
        assert dom.evaluate(DomPage(), "() => 1", 5, "chatgpt", "Snapshot") == {
            "script": "() => 1",
            "arg": 5,
        }

    def test_evaluate_translates_errors(self):
        page = DomPage(fail_with="Target closed")
        with pytest.raises(AdapterError) as exc_info:
            dom.evaluate(page, "() => 1", None, "chatgpt", "Snapshot")
        assert exc_info.value.kind == "navigation_lost"


class TextElement(FakeElement):
    def __init__(self, text: str):
        super().__init__()
        self.text = text

    def inner_text(self) -> str:
        return self.text


class TestGrokAdapter:
    """Grok has no streaming indicator and signs in through X."""

    def test_snapshot_reads_last_bubble(self):
        class BubblePage(DomPage):
            def query_selector_all(self, selector):
                assert selector == grok.RESPONSE_SELECTOR
                return [TextElement("Earlier answer"), TextElement("New answer")]

        snapshot = grok.GrokAdapter().snapshot_turn(BubblePage(), "ping")

        assert snapshot.answer_text == "New answer"
        assert snapshot.markers == frozenset({"turns:2"})
        assert not snapshot.is_streaming

    def test_x_sign_in_link_means_logged_out(self):
        page = DomPage(
            {
                grok.COMPOSER_SELECTORS[0]: FakeElement(),
                grok.LOGIN_SELECTORS[0]: FakeElement(),
            }
        )
        assert grok.GrokAdapter().is_logged_in(page) is False
