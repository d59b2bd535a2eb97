"""VaultGate - rule-based access control for document vaults."""

from vaultgate.core.constants import VAULTGATE_VERSION as __version__

__all__ = ["__version__"]
