#!/usr/bin/env python3
"""Filesystem-backed vault provider.

Serves tags and content for a directory of Markdown notes:
- Front-matter tags from a leading ``---`` YAML block (``tags``/``tag`` as a
  list or a comma/space separated string)
- Inline ``#tags`` from the note body, ignoring code fences and inline code
- File reads run in a worker thread so evaluations never block the event loop

Paths that escape the vault root are reported as not found.

Example:
    >>> vault = FilesystemVault("~/Notes")
    >>> await vault.get_tags("Projects/plan.md")
    TagLookup(status=<LookupStatus.FOUND: 'found'>, tags=frozenset({'#project'}))
"""

import asyncio
import re
from pathlib import Path
from typing import Any, Iterable, List, Optional, Set, Union

import yaml

from vaultgate.core.constants import Limits
from vaultgate.providers.base import ContentLookup, TagLookup, VaultProvider

MARKDOWN_SUFFIXES = {".md", ".markdown"}

# YAML front-matter between --- delimiters at the very start of the file
FRONTMATTER_PATTERN = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)

# A tag needs at least one non-digit character (#2024 is not a tag)
INLINE_TAG_PATTERN = re.compile(r"(?<![\w#/&])#([\w/-]*[^\W\d][\w/-]*)")

CODE_FENCE_PATTERN = re.compile(r"^(```|~~~).*?^\1[ \t]*$", re.DOTALL | re.MULTILINE)
INLINE_CODE_PATTERN = re.compile(r"`[^`\n]*`")


class FrontmatterError(ValueError):
    """Raised when a note's front-matter is not valid YAML."""


def split_frontmatter(text: str) -> tuple:
    """Split a note into its front-matter mapping and body.

    Returns:
        Tuple of (front-matter dict, body text)

    Raises:
        FrontmatterError: If the front-matter block is not valid YAML
    """
    match = FRONTMATTER_PATTERN.match(text)
    if not match:
        return {}, text

    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise FrontmatterError(f"Invalid front-matter: {e}") from e

    if not isinstance(data, dict):
        data = {}
    return data, text[match.end() :]


def frontmatter_tags(frontmatter: dict) -> List[str]:
    """Collect tags declared in front-matter."""
    raw: Any = frontmatter.get("tags", frontmatter.get("tag"))
    if raw is None:
        return []
    if isinstance(raw, str):
        values: Iterable[Any] = re.split(r"[,\s]+", raw)
    elif isinstance(raw, (list, tuple, set)):
        values = raw
    else:
        values = [raw]
    return [str(v).strip() for v in values if v is not None and str(v).strip()]


def inline_tags(body: str) -> List[str]:
    """Collect ``#tags`` written in the note body."""
    body = CODE_FENCE_PATTERN.sub("", body)
    body = INLINE_CODE_PATTERN.sub("", body)
    return INLINE_TAG_PATTERN.findall(body)


def extract_tags(text: str) -> Set[str]:
    """Extract front-matter and inline tags from note text.

    Raises:
        FrontmatterError: If the front-matter block is not valid YAML
    """
    frontmatter, body = split_frontmatter(text)
    return set(frontmatter_tags(frontmatter)) | set(inline_tags(body))


class FilesystemVault(VaultProvider):
    """Vault provider reading notes from a local directory."""

    def __init__(self, root: Union[str, Path], encoding: str = "utf-8"):
        """
        Initialize the provider.

        Args:
            root: Vault root directory
            encoding: Text encoding of notes
        """
        self.root = Path(root).expanduser().resolve()
        self.encoding = encoding

    def resolve(self, path: str) -> Optional[Path]:
        """
        Map a vault-relative path to a real path inside the root.

        Returns:
            Absolute path, or None if the path escapes the vault
        """
        candidate = (self.root / path.lstrip("/")).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            return None
        return candidate

    def _read_text(self, real_path: Path) -> str:
        if real_path.stat().st_size > Limits.MAX_CONTENT_SIZE:
            raise OSError(f"File exceeds content size limit: {real_path}")
        return real_path.read_text(encoding=self.encoding)

    def _tags_sync(self, path: str) -> TagLookup:
        real_path = self.resolve(path)
        if real_path is None or not real_path.exists():
            return TagLookup.not_found()

        # Folders and attachments carry no tag metadata
        if real_path.is_dir() or real_path.suffix.lower() not in MARKDOWN_SUFFIXES:
            return TagLookup.found(())

        try:
            return TagLookup.found(extract_tags(self._read_text(real_path)))
        except (OSError, UnicodeDecodeError, FrontmatterError):
            return TagLookup.unavailable()

    def _content_sync(self, path: str) -> ContentLookup:
        real_path = self.resolve(path)
        if real_path is None or not real_path.exists():
            return ContentLookup.not_found()

        if real_path.is_dir():
            return ContentLookup.ok("")

        try:
            return ContentLookup.ok(self._read_text(real_path))
        except (OSError, UnicodeDecodeError) as e:
            return ContentLookup.read_error(str(e))

    async def get_tags(self, path: str) -> TagLookup:
        return await asyncio.to_thread(self._tags_sync, path)

    async def read_content(self, path: str) -> ContentLookup:
        return await asyncio.to_thread(self._content_sync, path)

    def list_files(self, directory: str = "") -> List[str]:
        """
        List vault-relative paths of all files below ``directory``.

        Hidden directories such as ``.obsidian`` are skipped.
        """
        base = self.resolve(directory) if directory else self.root
        if base is None or not base.is_dir():
            return []

        files = []
        for real_path in sorted(base.rglob("*")):
            relative = real_path.relative_to(self.root)
            if any(part.startswith(".") for part in relative.parts[:-1]):
                continue
            if real_path.is_file():
                files.append(relative.as_posix())
        return files
