"""VaultGate metadata and content providers.

The policy engine depends only on the abstract providers in ``base``;
``FilesystemVault`` serves a local directory of Markdown notes.
"""

from .base import ContentLookup, ContentProvider, MetadataProvider, TagLookup, VaultProvider
from .filesystem import FilesystemVault, extract_tags

__all__ = [
    "TagLookup",
    "ContentLookup",
    "MetadataProvider",
    "ContentProvider",
    "VaultProvider",
    "FilesystemVault",
    "extract_tags",
]
