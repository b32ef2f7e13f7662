"""
Knowledge Keeper Common Module

Shared infrastructure for the Scribe (capture) and Retriever (chat) sides.
"""

from .config import KeeperConfig, load_config
from .store import KnowledgeStore, StoreError

__all__ = [
    "KeeperConfig",
    "load_config",
    "KnowledgeStore",
    "StoreError",
]
