"""
Configuration schema models for webchat-relay.

This module defines the Pydantic model for validating and parsing the
user's config.yaml. The file is optional; every field has a default.

Models:
    BrowserSettings: Viewport and launch preferences for persistent contexts
    AppConfig: Root configuration model (validates entire YAML)
"""

from pydantic import BaseModel, field_validator

from .constants import DEFAULT_DESTINATION, DEFAULT_TIMEOUT_MS


class BrowserSettings(BaseModel):
    """
    Browser launch preferences.

    Attributes:
        viewport_width: Page viewport width in pixels
        viewport_height: Page viewport height in pixels
        channel: Optional Playwright browser channel (e.g. "chrome", "msedge").
            None uses the bundled Chromium.
    """

    viewport_width: int = 1280
    viewport_height: int = 900
    channel: str | None = None

    @field_validator("viewport_width", "viewport_height")
    @classmethod
    def validate_viewport(cls, v: int) -> int:
        """Validate viewport dimensions are sane."""
        if not 320 <= v <= 7680:
            raise ValueError("viewport dimensions must be between 320 and 7680 pixels")
        return v

    @field_validator("channel")
    @classmethod
    def validate_channel(cls, v: str | None) -> str | None:
        """Treat blank channel as unset."""
        if v is None or v.isspace() or not v:
            return None
        return v.strip()


class AppConfig(BaseModel):
    """
    Root configuration for webchat-relay (config.yaml).

    Attributes:
        default_destination: Destination used when `chat` gets no --destination
        default_timeout_ms: Capture timeout used when `chat` gets no --timeout
        headless: Launch browsers headless unless --headed is passed
        browser: Browser launch preferences
    """

    default_destination: str = DEFAULT_DESTINATION
    default_timeout_ms: int = DEFAULT_TIMEOUT_MS
    headless: bool = True
    browser: BrowserSettings = BrowserSettings()

    @field_validator("default_destination")
    @classmethod
    def validate_default_destination(cls, v: str) -> str:
        """Validate default_destination is non-empty and normalize case."""
        if not v or v.isspace():
            raise ValueError("default_destination cannot be empty")
        return v.strip().lower()

    @field_validator("default_timeout_ms")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        """
        Validate default_timeout_ms is positive and bounded.

        Anything under a few seconds can never observe a streamed answer;
        anything over an hour means a hung browser was left running.
        """
        if not 1_000 <= v <= 60 * 60 * 1000:
            raise ValueError("default_timeout_ms must be between 1000 and 3600000")
        return v
