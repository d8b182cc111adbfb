"""
Prompt bundle builder and attachment resolution.

A bundle is one self-contained markdown document: the user's prompt followed
by "# Context Files (N)" and one fenced block per matched file. Secrets and
build output are never bundled.

Example:
    >>> build_bundle("Review this", ["src/**/*.py"], cwd=Path("/repo"))
    'Review this\\n\\n# Context Files (2)\\n\\n## src/a.py\\n...'
"""

import glob
import logging
from fnmatch import fnmatch
from pathlib import Path

from ..config.constants import MAX_BUNDLE_FILE_BYTES

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDES: tuple[str, ...] = (
    "node_modules/**",
    "dist/**",
    "build/**",
    ".git/**",
    ".venv/**",
    "__pycache__/**",
    "coverage/**",
    "*.tgz",
    ".DS_Store",
    # Secrets
    ".env*",
    "*.pem",
    "*.key",
    "**/id_rsa",
    "**/id_ed25519",
    "**/.credentials/**",
    "**/secrets/**",
)

GLOB_CHARS = set("*?[]{}")


def _normalize_pattern(pattern: str) -> str:
    # fnmatch's "*" already crosses "/", so "**" segments collapse to "*"
    return pattern.replace("**/", "").replace("/**", "/*")


def is_excluded(relative_path: str, excludes: tuple[str, ...] | list[str]) -> bool:
    """
    Check a POSIX relative path against exclude patterns.

    Patterns match the full path, any sub-path, or the file name.

    Example:
        >>> is_excluded("config/.env.local", DEFAULT_EXCLUDES)
        True
        >>> is_excluded("src/app.py", DEFAULT_EXCLUDES)
        False
    """
    name = relative_path.rsplit("/", 1)[-1]
    for pattern in excludes:
        normalized = _normalize_pattern(pattern)
        if (
            fnmatch(relative_path, normalized)
            or fnmatch(relative_path, f"*/{normalized}")
            or fnmatch(name, normalized)
        ):
            return True
    return False


def _expand(patterns: list[str], cwd: Path, excludes: list[str]) -> list[Path]:
    matched: set[Path] = set()
    for pattern in patterns:
        for hit in glob.glob(pattern, root_dir=cwd, recursive=True):
            path = (cwd / hit).resolve()
            if not path.is_file():
                continue
            relative = Path(hit).as_posix()
            if is_excluded(relative, excludes):
                logger.debug(f"Excluded from bundle: {relative}")
                continue
            matched.add(path)
    return sorted(matched)


def _relative(path: Path, cwd: Path) -> str:
    try:
        return path.relative_to(cwd.resolve()).as_posix()
    except ValueError:
        return path.as_posix()


def build_bundle(prompt: str, patterns: list[str] | None = None, cwd: Path | None = None) -> str:
    """
    Assemble the prompt and matching files into one markdown bundle.

    Args:
        prompt: User prompt, placed first verbatim
        patterns: Glob patterns relative to cwd; a leading "!" adds an exclude
        cwd: Base directory for patterns (defaults to the current directory)

    Returns:
        str: The bundle text submitted to the destination
    """
    cwd = cwd or Path.cwd()
    parts = [prompt, ""]

    if not patterns:
        return "\n".join(parts)

    includes = [p for p in patterns if not p.startswith("!")]
    excludes = list(DEFAULT_EXCLUDES) + [p[1:] for p in patterns if p.startswith("!")]

    files = _expand(includes, cwd, excludes)
    if not files:
        parts.append("> No files matched the provided patterns.\n")
        return "\n".join(parts)

    parts.append(f"# Context Files ({len(files)})\n")
    for path in files:
        relative = _relative(path, cwd)
        if path.stat().st_size > MAX_BUNDLE_FILE_BYTES:
            logger.warning(f"Skipping {relative}: larger than 1 MB")
            parts.append(f"## {relative} (SKIPPED: exceeds 1 MB)\n")
            continue

        content = path.read_text(encoding="utf-8", errors="replace")
        language = path.suffix.lstrip(".") or "txt"
        parts.append(f"## {relative}\n")
        parts.append(f"```{language}")
        parts.append(content)
        parts.append("```\n")

    logger.info(f"Bundled {len(files)} file(s) into prompt")
    return "\n".join(parts)


def resolve_attachments(patterns: list[str], cwd: Path | None = None) -> list[Path]:
    """
    Resolve --attach arguments (paths or globs) to absolute file paths.

    Directories are skipped with a warning. Duplicates are dropped.

    Raises:
        FileNotFoundError: If a literal path is missing or a glob matches nothing
    """
    cwd = cwd or Path.cwd()
    resolved: list[Path] = []

    for pattern in patterns:
        if GLOB_CHARS & set(pattern):
            hits = [
                (cwd / hit).resolve()
                for hit in sorted(glob.glob(pattern, root_dir=cwd, recursive=True))
            ]
            files = [p for p in hits if p.is_file()]
            if not files:
                raise FileNotFoundError(f"No files matched attachment pattern: {pattern}")
            resolved.extend(files)
            continue

        path = (cwd / pattern).expanduser().resolve()
        if not path.exists():
            raise FileNotFoundError(f"Attachment not found: {pattern}")
        if path.is_dir():
            logger.warning(f"Skipping directory attachment: {pattern}")
            continue
        resolved.append(path)

    return list(dict.fromkeys(resolved))
