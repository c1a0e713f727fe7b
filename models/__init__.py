"""
Domain models.

Design principles:
- Every record type defined once
- Validation at the boundary (pydantic)
- Backend-agnostic (repositories handle persistence)
"""

from .base import TimestampMixin, CamelModel
from .entity import (
    Entity,
    EntityType,
    Relationship,
    CreatedEntityRef,
    EntityDescriptor,
    ConnectionSpec,
    ExtractionOperation,
    validate_entity_name,
)
from .job import JobKind, JobStatus, JobProgress, JobHandle, JobEvent, JobEventType
from .conversation import Conversation, ConversationSummary, Message, ModeFlags, Mode, Role

__all__ = [
    # Base
    "TimestampMixin",
    "CamelModel",
    # Entity
    "Entity",
    "EntityType",
    "Relationship",
    "CreatedEntityRef",
    "EntityDescriptor",
    "ConnectionSpec",
    "ExtractionOperation",
    "validate_entity_name",
    # Job
    "JobKind",
    "JobStatus",
    "JobProgress",
    "JobHandle",
    "JobEvent",
    "JobEventType",
    # Conversation
    "Conversation",
    "ConversationSummary",
    "Message",
    "ModeFlags",
    "Mode",
    "Role",
]
