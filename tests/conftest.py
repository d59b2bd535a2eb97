"""Shared pytest fixtures for VaultGate tests."""
from pathlib import Path
from typing import Dict, Iterable, Optional

import pytest

from vaultgate.infrastructure.config_manager import set_global_config
from vaultgate.infrastructure.logger import set_global_logger
from vaultgate.providers.base import ContentLookup, TagLookup, VaultProvider
from vaultgate.rules.patterns import clear_pattern_cache


class FakeVault(VaultProvider):
    """In-memory provider with scriptable failures.

    A path exists if it has content or tags. Paths listed in ``unavailable``
    report unavailable metadata, paths in ``unreadable`` fail content reads,
    and paths in ``raising`` make both calls raise.
    """

    def __init__(
        self,
        notes: Optional[Dict[str, str]] = None,
        tags: Optional[Dict[str, Iterable[str]]] = None,
        unavailable: Iterable[str] = (),
        unreadable: Iterable[str] = (),
        raising: Iterable[str] = (),
    ):
        self.notes = dict(notes or {})
        self.tags = dict(tags or {})
        self.unavailable = set(unavailable)
        self.unreadable = set(unreadable)
        self.raising = set(raising)
        self.tag_calls = []
        self.content_calls = []

    def _exists(self, path: str) -> bool:
        return path in self.notes or path in self.tags or path in self.unavailable or path in self.unreadable

    async def get_tags(self, path: str) -> TagLookup:
        self.tag_calls.append(path)
        if path in self.raising:
            raise RuntimeError("metadata cache exploded")
        if path in self.unavailable:
            return TagLookup.unavailable()
        if not self._exists(path):
            return TagLookup.not_found()
        return TagLookup.found(self.tags.get(path, ()))

    async def read_content(self, path: str) -> ContentLookup:
        self.content_calls.append(path)
        if path in self.raising:
            raise RuntimeError("disk on fire")
        if path in self.unreadable:
            return ContentLookup.read_error("permission denied")
        if not self._exists(path):
            return ContentLookup.not_found()
        return ContentLookup.ok(self.notes.get(path, ""))


@pytest.fixture
def fake_vault():
    """Factory for in-memory vaults."""
    return FakeVault


@pytest.fixture
def vault_dir(tmp_path: Path) -> Path:
    """Create a vault directory with a few notes."""
    vault = tmp_path / "vault"
    vault.mkdir()

    (vault / "Public").mkdir()
    (vault / "Public" / "index.md").write_text("# Welcome\n\nNothing to hide.\n")

    (vault / "Private").mkdir()
    (vault / "Private" / "diary.md").write_text("---\ntags: [personal]\n---\nDear diary\n")

    (vault / "Projects").mkdir()
    (vault / "Projects" / "plan.md").write_text("---\ntags:\n  - project\n  - Draft\n---\nShip it #internal\n")
    (vault / "Projects" / "secrets.md").write_text("The password is hunter2\n")
    (vault / "Projects" / "shared.md").write_text("Reviewed #ai-allow\n")

    (vault / ".obsidian").mkdir()
    (vault / ".obsidian" / "app.json").write_text("{}")

    return vault


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset the global logger, config and pattern cache between tests."""
    set_global_logger(None)
    set_global_config(None)
    clear_pattern_cache()
    yield
    set_global_logger(None)
    set_global_config(None)
    clear_pattern_cache()
