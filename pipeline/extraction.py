"""
ExtractionPipeline - text in, entities and relationships out.

The remote extractor returns a list of operations. A `create` operation
carries entities plus connections that address those entities by their
position in the same operation. Positions are resolved against a local
list built while the operation is processed and thrown away after it:

    entities:    [A, <unknown type>, C]   ->  local: [A', None, C']
    connections: {from: 0, to: 2}         ->  A' -> C'
                 {from: 0, to: 1}         ->  skipped (None)
                 {from: 5, to: 0}         ->  skipped (out of range)

`update` and `connect` operations work on stored entities by id.
"""

import threading
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field, ValidationError

from models import CreatedEntityRef, Entity, EntityType, ExtractionOperation, validate_entity_name
from models.entity import LABEL_FIELDS
from remote import ErrorCategory, RemoteCaller, RemoteError
from remote.caller import RetryObserver
from repositories.base import EntityStore
from .chunking import chunk_text

ExtractFn = Callable[[str, list[Entity], float], dict]
ProgressCallback = Callable[[str, int], None]
ChunkCallback = Callable[[int, int], None]


class ExtractionResult(BaseModel):
    success: bool
    operations: list[ExtractionOperation] = Field(default_factory=list)
    created_entities: list[CreatedEntityRef] = Field(default_factory=list)
    updated_entities: int = 0
    connections_created: int = 0
    skipped_entities: int = 0
    error: Optional[str] = None
    error_category: Optional[str] = None
    original_text: Optional[str] = None  # Kept on failure so the caller can retry

    @classmethod
    def failure(cls, error: RemoteError, text: str) -> "ExtractionResult":
        return cls(
            success=False,
            error=error.user_message(),
            error_category=error.category.value,
            original_text=text,
        )


def parse_operations(raw: Any) -> list[ExtractionOperation]:
    """Validate each operation on its own; malformed ones are dropped."""
    if not isinstance(raw, list):
        return []
    operations = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            print(f"[Extraction] Operation {i} is not an object, skipping")
            continue
        try:
            operations.append(ExtractionOperation.model_validate(item))
        except ValidationError as e:
            print(f"[Extraction] Operation {i} ({item.get('action')}) malformed, skipping: {e.error_count()} errors")
    return operations


def _resolve(local: list[Optional[Entity]], index: int) -> Optional[Entity]:
    if 0 <= index < len(local):
        return local[index]
    return None


class ExtractionPipeline:
    """
    Handles:
    - Remote extraction through the long retry policy
    - Type and name validation, with None placeholders for rejected entities
    - Operation-local connection indices
    - Chunking of long inputs; later chunks see entities from earlier ones
    """

    def __init__(self, extract_fn: ExtractFn, store: EntityStore, caller: RemoteCaller,
                 max_chunk_chars: int = 8000, is_online: Callable[[], Optional[bool]] = None):
        self.extract_fn = extract_fn
        self.store = store
        self.caller = caller
        self.max_chunk_chars = max_chunk_chars
        self.is_online = is_online

    # === Remote step ===

    def extract(self, text: str, existing_entities: list[Entity],
                on_retry: Optional[RetryObserver] = None,
                cancel: Optional[threading.Event] = None) -> list[ExtractionOperation]:
        """One remote call. Raises RemoteError; an empty list is a valid answer."""
        payload = self.caller.call(
            lambda timeout: self.extract_fn(text, existing_entities, timeout),
            on_retry=on_retry,
            cancel=cancel,
        )
        if not isinstance(payload, dict):
            raise RemoteError("Extraction payload is not an object", ErrorCategory.VALIDATION)
        if not payload.get("success", "operations" in payload):
            raise RemoteError(str(payload.get("error") or "Extraction failed"), ErrorCategory.UNKNOWN)
        return parse_operations(payload.get("operations"))

    # === Commit step ===

    def _create_entity(self, descriptor, result: ExtractionResult) -> Optional[Entity]:
        entity_type = EntityType.parse(descriptor.type)
        if entity_type is None:
            print(f"[Extraction] Unknown entity type: {descriptor.type}")
            result.skipped_entities += 1
            return None

        label = descriptor.properties.get(LABEL_FIELDS[entity_type])
        validation = validate_entity_name(label, entity_type)
        if not validation.is_valid:
            print(f"[Extraction] Skipping {entity_type.value} \"{label}\": {validation.error}")
            result.skipped_entities += 1
            return None

        try:
            entity = self.store.create_entity(entity_type, descriptor.properties)
        except Exception as e:
            print(f"[Extraction] Failed to create {entity_type.value} \"{label}\": {e}")
            result.skipped_entities += 1
            return None

        result.created_entities.append(CreatedEntityRef(
            id=entity.id, type=entity.type.value, label=entity.label, location_ref=entity.location_ref
        ))
        return entity

    def _connect(self, source: Optional[Entity], target: Optional[Entity], label: str,
                 result: ExtractionResult) -> None:
        if source is None or target is None:
            return
        try:
            self.store.add_relationship(source, target, label)
            result.connections_created += 1
        except Exception as e:
            print(f"[Extraction] Failed to connect {source.label} -> {target.label}: {e}")

    def apply_operation(self, operation: ExtractionOperation, result: ExtractionResult) -> None:
        if operation.action == "create":
            local = [self._create_entity(d, result) for d in operation.entities]
            for conn in operation.connections:
                pair = conn.index_pair
                if pair is None:
                    print(f"[Extraction] Connection {conn.from_index!r} -> {conn.to_index!r} has no integer endpoints, skipping")
                    continue
                self._connect(_resolve(local, pair[0]), _resolve(local, pair[1]), conn.relationship, result)

        elif operation.action == "update":
            for update in operation.updates:
                try:
                    if self.store.update_entity(update.id, update.new_properties) is not None:
                        result.updated_entities += 1
                    else:
                        print(f"[Extraction] Update target not found: {update.id}")
                except Exception as e:
                    print(f"[Extraction] Failed to update {update.id}: {e}")

        elif operation.action == "connect":
            for conn in operation.new_connections:
                source = self.store.get_entity(conn.from_id)
                target = self.store.get_entity(conn.to_id)
                if source is None or target is None:
                    print(f"[Extraction] Cannot connect {conn.from_id} -> {conn.to_id}: entity not found")
                    continue
                self._connect(source, target, conn.relationship, result)

    def apply(self, operations: list[ExtractionOperation],
              result: Optional[ExtractionResult] = None) -> ExtractionResult:
        result = result or ExtractionResult(success=True)
        for operation in operations:
            self.apply_operation(operation, result)
            result.operations.append(operation)
        return result

    # === Full run ===

    def run(self, text: str, existing_entities: Optional[list[Entity]] = None,
            on_progress: Optional[ProgressCallback] = None,
            on_chunk: Optional[ChunkCallback] = None,
            on_retry: Optional[RetryObserver] = None,
            cancel: Optional[threading.Event] = None) -> ExtractionResult:
        """Extract and commit. Never raises for remote failures; see result.error."""

        def progress(message: str, percent: int) -> None:
            if on_progress:
                try:
                    on_progress(message, percent)
                except Exception as e:
                    print(f"[Extraction] Progress callback error: {e}")

        if self.is_online is not None and self.is_online() is False:
            return ExtractionResult.failure(
                RemoteError("AI API is offline", ErrorCategory.TRANSIENT_NETWORK), text
            )

        chunks = chunk_text(text, self.max_chunk_chars)
        result = ExtractionResult(success=True)
        known = list(existing_entities) if existing_entities is not None else self.store.get_all_entities()

        for index, chunk in enumerate(chunks):
            if on_chunk:
                try:
                    on_chunk(index, len(chunks))
                except Exception as e:
                    print(f"[Extraction] Chunk callback error: {e}")
            progress(f"Extracting entities ({index + 1}/{len(chunks)})...", 10 + 40 * index // len(chunks))

            try:
                operations = self.extract(chunk, known, on_retry=on_retry, cancel=cancel)
            except RemoteError as e:
                print(f"[Extraction] Chunk {index + 1}/{len(chunks)} failed: {e}")
                failed = ExtractionResult.failure(e, text)
                failed.operations = result.operations
                failed.created_entities = result.created_entities
                failed.connections_created = result.connections_created
                return failed

            progress(f"Creating entities ({index + 1}/{len(chunks)})...", 55 + 35 * (index + 1) // len(chunks))
            self.apply(operations, result)

            if index + 1 < len(chunks):
                known = self.store.get_all_entities()

        progress("Finalizing...", 98)
        print(f"[Extraction] {len(result.created_entities)} entities, "
              f"{result.connections_created} connections, {result.skipped_entities} skipped")
        return result
