"""
Repository base classes - define the interface.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from models import Entity, EntityType, Relationship


class BlobExistsError(Exception):
    """create() found the key already present."""


class BlobStore(ABC):
    """Key-value byte storage. Keys are '/'-separated paths."""

    @abstractmethod
    def read(self, key: str) -> Optional[bytes]:
        """Get blob by key. None if missing."""
        pass

    @abstractmethod
    def write(self, key: str, data: bytes) -> None:
        """Create or overwrite."""
        pass

    @abstractmethod
    def create(self, key: str, data: bytes) -> None:
        """Create a new blob. Raises BlobExistsError if the key is taken."""
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    def remove(self, key: str) -> bool:
        """Delete blob. Returns True if deleted."""
        pass

    @abstractmethod
    def list(self, prefix: str = "") -> list[str]:
        """Keys under prefix, read from the backing store every call."""
        pass


class EntityStore(ABC):
    """
    Owner of graph entities.

    Deduplication is the store's decision: create_entity may hand back an
    existing entity instead of making a new one.
    """

    @abstractmethod
    def create_entity(self, entity_type: EntityType, properties: dict[str, Any]) -> Entity:
        pass

    @abstractmethod
    def get_entity(self, entity_id: str) -> Optional[Entity]:
        pass

    @abstractmethod
    def get_all_entities(self) -> list[Entity]:
        pass

    @abstractmethod
    def update_entity(self, entity_id: str, properties: dict[str, Any]) -> Optional[Entity]:
        """Merge properties into an entity. None if it does not exist."""
        pass

    @abstractmethod
    def add_relationship(self, source: Entity, target: Entity, label: str) -> Relationship:
        """Directed edge source -> target."""
        pass
