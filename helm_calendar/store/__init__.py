"""Data sources implementing the ItemDataSource protocol."""

from .http_source import HttpItemSource
from .json_store import JsonItemStore

__all__ = ["HttpItemSource", "JsonItemStore"]
