"""
Provider adapters shipped with booksource.
"""

from .open_library import OpenLibraryProvider

__all__ = ["OpenLibraryProvider"]
