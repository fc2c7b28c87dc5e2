# packrepo/core/errors.py
from __future__ import annotations

__all__ = ["PackRepoError"]



class PackRepoError(Exception):
    """Base class for errors raised by packrepo."""
    pass
