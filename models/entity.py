"""
Entities - graph nodes created from extracted text, and the extraction
operations that describe them.
"""

import re
from enum import Enum
from typing import Any, Literal, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from .base import CamelModel


class EntityType(str, Enum):
    """Supported entity types. Anything else is skipped on extraction."""
    PERSON = "Person"
    EVENT = "Event"
    LOCATION = "Location"
    COMPANY = "Company"
    EMAIL = "Email"
    PHONE = "Phone"
    USERNAME = "Username"
    VEHICLE = "Vehicle"
    WEBSITE = "Website"
    EVIDENCE = "Evidence"
    IMAGE = "Image"
    TEXT = "Text"

    @classmethod
    def parse(cls, value: Any) -> Optional["EntityType"]:
        """Exact-match lookup; None for unrecognized types."""
        if not isinstance(value, str):
            return None
        try:
            return cls(value)
        except ValueError:
            return None


# Property holding the display label, per type
LABEL_FIELDS: dict[EntityType, str] = {
    EntityType.PERSON: "full_name",
    EntityType.EVENT: "name",
    EntityType.LOCATION: "address",
    EntityType.COMPANY: "name",
    EntityType.EMAIL: "address",
    EntityType.PHONE: "number",
    EntityType.USERNAME: "username",
    EntityType.VEHICLE: "model",
    EntityType.WEBSITE: "title",
    EntityType.EVIDENCE: "name",
    EntityType.IMAGE: "title",
    EntityType.TEXT: "text",
}

PLACEHOLDER_NAMES = {
    "unknown", "n/a", "na", "none", "null", "nil", "unnamed", "untitled",
    "anonymous", "tbd", "todo", "placeholder", "example", "sample", "test",
    "not specified", "not available", "not provided", "redacted", "various",
}

GENERIC_NAMES: dict[EntityType, set[str]] = {
    EntityType.PERSON: {"person", "individual", "someone", "somebody", "user", "man", "woman",
                        "suspect", "victim", "author", "people", "he", "she", "they"},
    EntityType.COMPANY: {"company", "organization", "organisation", "corporation", "business",
                         "firm", "group", "entity", "vendor"},
    EntityType.LOCATION: {"location", "address", "place", "city", "country", "area", "region", "somewhere"},
    EntityType.EVENT: {"event", "meeting", "incident", "attack", "breach"},
    EntityType.EMAIL: {"email", "email address"},
    EntityType.PHONE: {"phone", "phone number", "number"},
    EntityType.USERNAME: {"username", "user", "account", "handle"},
    EntityType.VEHICLE: {"vehicle", "car", "truck"},
    EntityType.WEBSITE: {"website", "site", "web page", "page", "forum", "marketplace"},
    EntityType.EVIDENCE: {"evidence", "document", "file"},
    EntityType.IMAGE: {"image", "photo", "picture"},
    EntityType.TEXT: {"text", "note"},
}

_LEADING_QUALIFIERS = re.compile(r"^(the|a|an|some|unknown|unnamed|unidentified|another)\s+", re.IGNORECASE)
_BRACKETED = re.compile(r"^[\[<{(].*[\]>})]$")


class NameValidation(BaseModel):
    is_valid: bool
    error: Optional[str] = None


def validate_entity_name(name: Any, entity_type: EntityType) -> NameValidation:
    """
    Reject empty or placeholder-like labels.

    "Unknown person", "the company", "[name]" and bare type words are
    generic; anything else is accepted.
    """
    if not isinstance(name, str) or not name.strip():
        return NameValidation(is_valid=False, error="Name is empty")

    cleaned = " ".join(name.strip().split()).lower()
    if not re.search(r"\w", cleaned):
        return NameValidation(is_valid=False, error="Name has no letters or digits")
    if _BRACKETED.match(cleaned):
        return NameValidation(is_valid=False, error="Name is a template placeholder")
    if cleaned in PLACEHOLDER_NAMES:
        return NameValidation(is_valid=False, error=f'"{name}" is a placeholder')

    generic = GENERIC_NAMES.get(entity_type, set()) | {entity_type.value.lower()}
    stripped = _LEADING_QUALIFIERS.sub("", cleaned)
    if cleaned in generic or stripped in generic or stripped in PLACEHOLDER_NAMES:
        return NameValidation(is_valid=False, error=f'"{name}" is too generic for {entity_type.value}')

    return NameValidation(is_valid=True)


def entity_label(entity_type: EntityType, properties: dict) -> str:
    field = LABEL_FIELDS.get(entity_type)
    if field and properties.get(field):
        return str(properties[field])
    return entity_type.value


class Entity(BaseModel):
    """A graph node as owned by the entity store."""
    model_config = ConfigDict(extra="ignore")

    id: str
    type: EntityType
    label: str
    properties: dict[str, Any] = Field(default_factory=dict)
    location_ref: str = ""  # Opaque handle to where the store keeps it

    def context(self) -> dict:
        """Shape sent to the extractor as known-entity context."""
        return {"id": self.id, "type": self.type.value, "label": self.label, "properties": self.properties}


class Relationship(BaseModel):
    """Directed edge between two stored entities."""
    from_id: str
    to_id: str
    label: str


class CreatedEntityRef(CamelModel):
    """What a message remembers about an entity it created."""
    id: str
    type: str
    label: str
    location_ref: str = Field(default="", alias="filePath")


# === Extraction operations ===

class EntityDescriptor(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Any = None  # Unvalidated - resolved per entity when the operation is applied
    properties: dict[str, Any] = Field(default_factory=dict)

    @field_validator("properties", mode="before")
    @classmethod
    def _properties_or_empty(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}


class ConnectionSpec(BaseModel):
    """
    Connection inside a create operation, by position in that operation's entities.

    Endpoints are kept as received; `index_pair` is None when either one is
    not an integer, and the connection is then skipped on its own.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    from_index: Any = Field(default=None, alias="from")
    to_index: Any = Field(default=None, alias="to")
    relationship: str = "related_to"

    @field_validator("relationship", mode="before")
    @classmethod
    def _relationship_or_default(cls, value: Any) -> Any:
        return value if isinstance(value, str) and value.strip() else "related_to"

    @property
    def index_pair(self) -> Optional[tuple[int, int]]:
        ends = (self.from_index, self.to_index)
        if all(isinstance(end, int) and not isinstance(end, bool) for end in ends):
            return ends
        return None


class EntityUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    new_properties: dict[str, Any] = Field(default_factory=dict)


class GlobalConnection(BaseModel):
    """Connection between already-stored entities, by store id."""
    model_config = ConfigDict(extra="ignore")

    from_id: str
    to_id: str
    relationship: str = "related_to"


class ExtractionOperation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    action: Literal["create", "update", "connect"] = "create"
    entities: list[EntityDescriptor] = Field(default_factory=list)
    connections: list[ConnectionSpec] = Field(default_factory=list)
    updates: list[EntityUpdate] = Field(default_factory=list)
    new_connections: list[GlobalConnection] = Field(default_factory=list)

    @field_validator("entities", mode="before")
    @classmethod
    def _entities_keep_positions(cls, value: Any) -> Any:
        # Non-objects become typeless placeholders so later indices still line up
        if not isinstance(value, list):
            return []
        return [item if isinstance(item, dict) else {} for item in value]

    @field_validator("connections", mode="before")
    @classmethod
    def _connections_objects_only(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]
