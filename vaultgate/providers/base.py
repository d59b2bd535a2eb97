"""
VaultGate Providers: Base Classes and Lookup Results.

This module defines the two capabilities the policy engine consumes from the
storage layer and the explicit result types they return:
- TagLookup: NOT_FOUND | UNAVAILABLE | FOUND(tags)
- ContentLookup: NOT_FOUND | FOUND(text) | UNAVAILABLE (read error)
- MetadataProvider / ContentProvider: abstract async providers
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional

from vaultgate.core.constants import LookupStatus
from vaultgate.core.validators import normalize_tag


@dataclass(frozen=True)
class TagLookup:
    """Result of fetching the tag set of a path.

    Tags are lower-cased and carry a leading ``#``.
    """

    status: LookupStatus
    tags: FrozenSet[str] = frozenset()

    @classmethod
    def found(cls, tags: Iterable[str]) -> "TagLookup":
        normalized = frozenset(t for t in (normalize_tag(tag) for tag in tags) if t)
        return cls(LookupStatus.FOUND, normalized)

    @classmethod
    def not_found(cls) -> "TagLookup":
        return cls(LookupStatus.NOT_FOUND)

    @classmethod
    def unavailable(cls) -> "TagLookup":
        return cls(LookupStatus.UNAVAILABLE)


@dataclass(frozen=True)
class ContentLookup:
    """Result of reading the text of a path.

    ``UNAVAILABLE`` means the file exists but could not be read; ``error``
    then describes why.
    """

    status: LookupStatus
    text: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, text: str) -> "ContentLookup":
        return cls(LookupStatus.FOUND, text=text)

    @classmethod
    def not_found(cls) -> "ContentLookup":
        return cls(LookupStatus.NOT_FOUND)

    @classmethod
    def read_error(cls, error: str = "") -> "ContentLookup":
        return cls(LookupStatus.UNAVAILABLE, error=error)


class MetadataProvider(ABC):
    """Supplies the tag set of a vault path."""

    @abstractmethod
    async def get_tags(self, path: str) -> TagLookup:
        """
        Fetch front-matter and inline tags for ``path``.

        Args:
            path: Vault-relative path

        Returns:
            TagLookup describing the outcome
        """
        pass


class ContentProvider(ABC):
    """Supplies the textual content of a vault path."""

    @abstractmethod
    async def read_content(self, path: str) -> ContentLookup:
        """
        Read the full text of ``path``.

        Args:
            path: Vault-relative path

        Returns:
            ContentLookup describing the outcome
        """
        pass


class VaultProvider(MetadataProvider, ContentProvider):
    """Convenience base for providers implementing both capabilities."""
