"""
JSON file entity store.

    entities.json
        {"entities": [...], "relationships": [...]}

Entities are deduplicated by type + normalized label: the id is a hash of
both, so creating the same entity twice returns the stored one with any
new properties merged in.
"""

import hashlib
import json
import threading
from pathlib import Path
from typing import Any, Optional

from models import Entity, EntityType, Relationship
from models.entity import entity_label
from .base import EntityStore


def entity_id(entity_type: EntityType, label: str) -> str:
    normalized = " ".join(label.lower().split())
    return hashlib.md5(f"{entity_type.value}:{normalized}".encode()).hexdigest()[:16]


class JsonEntityStore(EntityStore):
    """Entities and relationships in one JSON file, written atomically."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._lock = threading.Lock()
        self._entities: dict[str, Entity] = {}
        self._relationships: list[Relationship] = []
        self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            with open(self.path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            print(f"[WARN] Corrupt entity file {self.path}: {e}")
            return
        for raw in data.get("entities", []):
            entity = Entity.model_validate(raw)
            self._entities[entity.id] = entity
        self._relationships = [Relationship.model_validate(r) for r in data.get("relationships", [])]

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "entities": [e.model_dump(mode="json") for e in self._entities.values()],
            "relationships": [r.model_dump(mode="json") for r in self._relationships],
        }
        temp = self.path.with_suffix(".json.tmp")
        with open(temp, "w") as f:
            json.dump(data, f, indent=2)
        temp.replace(self.path)

    def create_entity(self, entity_type: EntityType, properties: dict[str, Any]) -> Entity:
        label = entity_label(entity_type, properties)
        new_id = entity_id(entity_type, label)
        with self._lock:
            existing = self._entities.get(new_id)
            if existing is not None:
                existing.properties.update({k: v for k, v in properties.items() if v not in (None, "")})
                self._flush()
                return existing

            entity = Entity(
                id=new_id,
                type=entity_type,
                label=label,
                properties=dict(properties),
                location_ref=f"{entity_type.value}/{label}",
            )
            self._entities[new_id] = entity
            self._flush()
            return entity

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        with self._lock:
            return self._entities.get(entity_id)

    def get_all_entities(self) -> list[Entity]:
        with self._lock:
            return list(self._entities.values())

    def update_entity(self, entity_id: str, properties: dict[str, Any]) -> Optional[Entity]:
        with self._lock:
            entity = self._entities.get(entity_id)
            if entity is None:
                return None
            entity.properties.update(properties)
            entity.label = entity_label(entity.type, entity.properties)
            self._flush()
            return entity

    def add_relationship(self, source: Entity, target: Entity, label: str) -> Relationship:
        relationship = Relationship(from_id=source.id, to_id=target.id, label=label)
        with self._lock:
            if relationship not in self._relationships:
                self._relationships.append(relationship)
                self._flush()
        return relationship

    def relationships(self) -> list[Relationship]:
        with self._lock:
            return list(self._relationships)
