"""
Entry point for running webchat-relay as a module.

Enables execution via:
    python -m webchat_relay [command] [options]

This is equivalent to running the installed CLI:
    webchat-relay [command] [options]

Examples:
    python -m webchat_relay --help
    python -m webchat_relay chat "Hello" -d claude
    python -m webchat_relay login gemini
"""

from webchat_relay.cli import app

if __name__ == "__main__":
    app()
