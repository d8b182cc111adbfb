"""
Destination adapters for supported web chat front-ends.

Importing this package registers every built-in adapter with
DestinationRegistry.
"""

from . import chatgpt, claude, deepseek, doubao, gemini, grok, yuanbao  # noqa: F401
from .base import DestinationAdapter, DestinationConfig
from .heuristics import NoiseProfile, get_noise_profile
from .registry import DestinationRegistry

__all__ = [
    "DestinationAdapter",
    "DestinationConfig",
    "DestinationRegistry",
    "NoiseProfile",
    "get_noise_profile",
]
