"""Git object store access."""

from .store import GitStore, Identity, IdentityError, StoreError, TreeEntry

__all__ = ["GitStore", "Identity", "IdentityError", "StoreError", "TreeEntry"]
