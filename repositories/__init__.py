"""
Repository layer - abstracts persistence.

Usage:
    from repositories import FileBlobStore, ConversationStore

    store = ConversationStore(FileBlobStore(settings.storage.data_dir))
    conversation = store.load("conv-1700000000000-abc123xyz")
    store.save(conversation)

Backends are swappable: anything implementing BlobStore works.
"""

from .base import BlobStore, BlobExistsError, EntityStore
from .blob_store import FileBlobStore, MemoryBlobStore
from .conversations import ConversationStore, serialize_conversation, parse_conversation, parse_summary
from .entities import JsonEntityStore

__all__ = [
    "BlobStore",
    "BlobExistsError",
    "EntityStore",
    "FileBlobStore",
    "MemoryBlobStore",
    "ConversationStore",
    "serialize_conversation",
    "parse_conversation",
    "parse_summary",
    "JsonEntityStore",
]
