"""
File writing utilities for webchat-relay.

This module handles the low-level file I/O shared by the session store, the
risk guard's state file and the error log: JSON documents, JSONL appends and
plain text blobs.

Key features:
- UTF-8 encoding for all text files
- Pretty-printed JSON (indent=2)
- Atomic JSON replacement (write to a sibling temp file, then os.replace)
- Graceful error handling (permissions, disk full)

Example:
    >>> write_json("/tmp/risk/state.json", {"version": 1, "destinations": {}})
    >>> read_json("/tmp/risk/state.json")
    {'version': 1, 'destinations': {}}
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def ensure_directory(path: str | Path) -> Path:
    """
    Create a directory (and parents) if needed.

    Raises:
        PermissionError: If insufficient permissions to create directory
        OSError: If directory cannot be created (disk full, bad path)
    """
    dir_path = Path(path)
    try:
        dir_path.mkdir(parents=True, exist_ok=True)
        return dir_path
    except PermissionError as e:
        logger.error(f"Permission denied creating directory: {dir_path}", exc_info=True)
        raise PermissionError(
            f"Cannot create directory '{dir_path}': Permission denied. "
            f"Check directory permissions."
        ) from e
    except OSError as e:
        logger.error(f"Failed to create directory: {dir_path}", exc_info=True)
        raise OSError(
            f"Cannot create directory '{dir_path}': {e}. "
            f"Check disk space and permissions."
        ) from e


def write_json(filepath: str | Path, data: dict | list) -> None:
    """
    Write data to JSON file with UTF-8 encoding.

    The document is written to a temporary sibling and then moved into place,
    so readers see either the old or the new file, never a partial one.

    Args:
        filepath: Full path to JSON file to write
        data: Dictionary or list to serialize

    Raises:
        OSError: If file cannot be written (permissions, disk full)
        TypeError: If data is not JSON-serializable
    """
    path = Path(filepath)
    ensure_directory(path.parent)
    tmp_path = path.with_name(f"{path.name}.{os.getpid()}.tmp")

    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
        os.replace(tmp_path, path)
        logger.debug(f"Wrote JSON file: {path}")
    except TypeError as e:
        tmp_path.unlink(missing_ok=True)
        logger.error(f"Cannot serialize data to JSON: {e}", exc_info=True)
        raise TypeError(
            f"Cannot write JSON to '{path}': Data is not JSON-serializable. {e}"
        ) from e
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        logger.error(f"Failed to write JSON file: {path}", exc_info=True)
        raise OSError(
            f"Cannot write JSON file '{path}': {e}. Check disk space and permissions."
        ) from e


def read_json(filepath: str | Path) -> Any:
    """
    Read a JSON document.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not valid JSON
    """
    path = Path(filepath)
    with open(path, encoding="utf-8") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in '{path}': {e}") from e


def append_jsonl(filepath: str | Path, record: dict) -> None:
    """
    Append one JSON object as a line to a JSONL file.

    Raises:
        OSError: If file cannot be written
    """
    path = Path(filepath)
    ensure_directory(path.parent)
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(record, ensure_ascii=False))
        f.write("\n")


def write_text(filepath: str | Path, content: str) -> None:
    """
    Write a UTF-8 text blob (prompt bundles, captured responses).

    Raises:
        OSError: If file cannot be written (permissions, disk full)
    """
    path = Path(filepath)
    ensure_directory(path.parent)
    try:
        path.write_text(content, encoding="utf-8")
        logger.debug(f"Wrote text file: {path} ({len(content)} chars)")
    except OSError as e:
        logger.error(f"Failed to write text file: {path}", exc_info=True)
        raise OSError(
            f"Cannot write file '{path}': {e}. Check disk space and permissions."
        ) from e
