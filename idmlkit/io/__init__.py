"""I/O helpers for idmlkit."""

from .locks import PathLockRegistry, default_registry

__all__ = ["PathLockRegistry", "default_registry"]
