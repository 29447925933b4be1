"""File-based persistence."""

from .catalog import CatalogStore
from .filesystem import FileStorage
from .matrix_store import RouteMatrixStore

__all__ = ["CatalogStore", "FileStorage", "RouteMatrixStore"]
