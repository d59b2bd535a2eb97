"""VaultGate Core - Shared constants and validation.

Import specific functions from submodules:
    from vaultgate.core import constants
    from vaultgate.core import validators
"""

from vaultgate.core import constants, validators

__all__ = [
    "constants",
    "validators",
]
