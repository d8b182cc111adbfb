"""
Per-destination noise and signal tables.

Scraped answer text picks up things that are not the answer: sidebar
history entries, footers, "Read 8 web pages" banners, the echoed prompt,
and interim status lines such as "正在搜索" shown before the real answer
streams in. Each destination gets a NoiseProfile describing these, so the
adapters stay free of inline phrase literals and the tables can be swapped
in tests.

Verification signatures (captcha URLs and challenge widgets) live here too.
"""

import re
from dataclasses import dataclass, field

from ..capture.snapshot import normalize_text

VERIFICATION_URL_MARKERS: tuple[str, ...] = ("captcha", "verify", "/security/")

VERIFICATION_SELECTORS: tuple[str, ...] = (
    "text=验证码",
    "text=人机验证",
    "text=请完成验证",
    "text=安全验证",
    "text=行为验证",
    "text=拖动滑块",
    "text=点击验证",
    "text=/verify you are human/i",
    "text=/security check/i",
    'iframe[src*="captcha"]',
    '[class*="captcha"]',
    '[id*="captcha"]',
)


def _patterns(*sources: str, flags: int = re.IGNORECASE) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(source, flags) for source in sources)


@dataclass(frozen=True)
class NoiseProfile:
    """
    Noise-filtering rules for one destination.

    Attributes:
        interim_patterns: Full-text matches that mean "not an answer yet"
        strip_patterns: Fragments removed wherever they appear
        cut_patterns: A match and everything after it is removed
            (footers, sidebar history dumped after the answer)
        verification_url_markers: URL substrings of challenge pages
        verification_selectors: Challenge widget selectors
        headless_block_url_markers: URL substrings of pages served only to
            headless or region-blocked clients
    """

    interim_patterns: tuple[re.Pattern, ...] = ()
    strip_patterns: tuple[re.Pattern, ...] = ()
    cut_patterns: tuple[re.Pattern, ...] = ()
    verification_url_markers: tuple[str, ...] = VERIFICATION_URL_MARKERS
    verification_selectors: tuple[str, ...] = VERIFICATION_SELECTORS
    headless_block_url_markers: tuple[str, ...] = field(default_factory=tuple)

    def is_interim(self, text: str) -> bool:
        """True if text is only a transient status line."""
        stripped = text.strip()
        if not stripped:
            return False
        return any(p.fullmatch(stripped) for p in self.interim_patterns)

    def strip_prompt_echo(self, text: str, prompt: str) -> str:
        """Drop everything up to and including the last echo of the prompt."""
        prompt = prompt.strip()
        if not prompt:
            return text
        idx = text.rfind(prompt)
        if idx < 0:
            return text
        return text[idx + len(prompt) :]

    def clean(self, text: str, prompt: str = "") -> str:
        """
        Remove prompt echo, stripped fragments and cut-off tails.

        Example:
            >>> DEEPSEEK_NOISE.clean("hi\\nRead 3 web pages\\nHello!\\nAI-generated, for reference only", "hi")
            'Hello!'
        """
        text = self.strip_prompt_echo(normalize_text(text), prompt).strip()
        for pattern in self.strip_patterns:
            text = pattern.sub("", text)
        for pattern in self.cut_patterns:
            text = pattern.sub("", text)
        return normalize_text(text)

    def is_verification_url(self, url: str) -> bool:
        lowered = url.lower()
        return any(marker in lowered for marker in self.verification_url_markers)

    def is_headless_block_url(self, url: str) -> bool:
        lowered = url.lower()
        return any(marker in lowered for marker in self.headless_block_url_markers)


GENERIC_INTERIM = (
    r"(?:thinking|searching(?: the web)?|reasoning|analyzing)\s*(?:\.{3}|…)?",
    r"(?:正在思考|思考中|正在搜索|搜索中)\s*(?:\.{3}|…)?",
)

DEFAULT_NOISE = NoiseProfile(interim_patterns=_patterns(*GENERIC_INTERIM))

CHATGPT_NOISE = NoiseProfile(
    interim_patterns=_patterns(
        *GENERIC_INTERIM,
        r"thought for \d+\s*(?:s|seconds?)",
    ),
    strip_patterns=_patterns(r"^ChatGPT said:\s*"),
)

GEMINI_NOISE = NoiseProfile(
    interim_patterns=_patterns(*GENERIC_INTERIM, r"show thinking"),
    strip_patterns=_patterns(r"^Gemini said\s*"),
)

CLAUDE_NOISE = NoiseProfile(
    interim_patterns=_patterns(*GENERIC_INTERIM),
    cut_patterns=_patterns(
        r"\n?Claude can make mistakes\.[\s\S]*$",
    ),
)

DEEPSEEK_NOISE = NoiseProfile(
    interim_patterns=_patterns(*GENERIC_INTERIM, r"searching \d+ web pages?"),
    strip_patterns=_patterns(
        r"^Read\s+\d+\s+web\s+pages\s*",
        # Citation superscripts rendered as "-\n3" runs
        r"-\s*\n\d+(?:\s*-\s*\n\d+)*",
    ),
    cut_patterns=_patterns(
        r"\n?\d+\s+web\s+pages?\b[\s\S]*$",
        r"\n?(?:DeepThink|深度思考)\s*\n(?:Search|搜索|联网搜索)\s*\nAI-generated, for reference only[\s\S]*$",
        r"\n?AI-generated, for reference only[\s\S]*$",
        r"\n?(?:Today|Yesterday|30 Days|New chat)\n[\s\S]*$",
    ),
)

GROK_NOISE = NoiseProfile(interim_patterns=_patterns(*GENERIC_INTERIM))

YUANBAO_NOISE = NoiseProfile(
    interim_patterns=_patterns(*GENERIC_INTERIM, r"正在(?:阅读|整理|搜索).{0,16}"),
)

DOUBAO_NOISE = NoiseProfile(
    interim_patterns=_patterns(
        *GENERIC_INTERIM,
        r"正在整理",
        r"生成中",
        r"找到\s*\d+\s*篇资料",
        r"分享参考\s*\d+",
        r"参考\s*\d+\s*篇资料",
    ),
    cut_patterns=_patterns(r"\n?(?:请输入手机号|扫码登录|受区域限制)[\s\S]*$"),
    headless_block_url_markers=("/security/doubao-region-ban",),
)

NOISE_PROFILES: dict[str, NoiseProfile] = {
    "chatgpt": CHATGPT_NOISE,
    "gemini": GEMINI_NOISE,
    "claude": CLAUDE_NOISE,
    "deepseek": DEEPSEEK_NOISE,
    "yuanbao": YUANBAO_NOISE,
    "doubao": DOUBAO_NOISE,
    "grok": GROK_NOISE,
}


def get_noise_profile(destination: str) -> NoiseProfile:
    return NOISE_PROFILES.get(destination, DEFAULT_NOISE)
