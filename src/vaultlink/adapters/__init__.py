"""Host adapters — storage and vault enumeration backends."""

from vaultlink.adapters.local_disk import LocalDiskAdapter

__all__ = [
    "LocalDiskAdapter",
]
