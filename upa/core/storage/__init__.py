"""
Persistent Storage Module.

Provides JSON-file persistence for:
- Catalog and teams
- The current auction run and outstanding bids
- Game history
"""

from upa.core.storage.json_adapter import JSONFileAdapter
from upa.core.storage.storage_manager import StorageManager

__all__ = ["JSONFileAdapter", "StorageManager"]
