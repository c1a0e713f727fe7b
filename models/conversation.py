"""
Conversation - the persisted chat record.
"""

import random
import string
import time
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field

from .base import CamelModel, TimestampMixin
from .entity import CreatedEntityRef
from .job import JobProgress


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Mode(str, Enum):
    """The four mutually exclusive main modes."""
    LOCAL_SEARCH = "local_search"
    DARK_WEB = "dark_web"
    REPORT_GENERATION = "report_generation"
    LEAK_SEARCH = "leak_search"


def now_millis() -> int:
    return int(time.time() * 1000)


class Message(CamelModel):
    """
    One chat message.

    History messages are never edited. The in-flight assistant message
    is held by the session as a turn until its job reaches a terminal state.
    """
    role: Role
    content: str = ""
    timestamp: int = Field(default_factory=now_millis)
    notes: Optional[list[Any]] = None
    job_id: Optional[str] = None
    status: Optional[str] = None
    progress: Optional[JobProgress] = None
    intermediate_results: Optional[list[str]] = None
    created_entities: Optional[list[CreatedEntityRef]] = None
    connections_created: Optional[int] = None
    report_file_ref: Optional[str] = Field(default=None, alias="reportFilePath")
    query: Optional[str] = None

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str = "", **kwargs) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, **kwargs)


class ModeFlags(BaseModel):
    local_search: bool = True
    dark_web: bool = False
    report_generation: bool = False
    leak_search: bool = False
    graph_generation: bool = False  # Independent of the main modes

    def select(self, mode: Mode) -> None:
        """Turn on exactly one main mode."""
        self.local_search = mode == Mode.LOCAL_SEARCH
        self.dark_web = mode == Mode.DARK_WEB
        self.report_generation = mode == Mode.REPORT_GENERATION
        self.leak_search = mode == Mode.LEAK_SEARCH

    @property
    def active_modes(self) -> list[Mode]:
        return [m for m in Mode if getattr(self, m.value)]

    @property
    def active_mode(self) -> Mode:
        """The selected main mode; local search when none or several are set."""
        active = self.active_modes
        return active[0] if len(active) == 1 else Mode.LOCAL_SEARCH


def generate_conversation_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"conv-{now_millis()}-{suffix}"


def generate_title(first_message: Optional[str] = None) -> str:
    if not first_message:
        return "New Conversation"
    title = first_message[:50]
    return title + "..." if len(title) < len(first_message) else title


class Conversation(TimestampMixin):
    id: str = Field(default_factory=generate_conversation_id)
    title: str = "New Conversation"
    modes: ModeFlags = Field(default_factory=ModeFlags)
    report_conversation_id: Optional[str] = None
    messages: list[Message] = Field(default_factory=list)

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @classmethod
    def start(cls, first_message: Optional[str] = None, mode: Mode = Mode.LOCAL_SEARCH,
              graph_generation: bool = False) -> "Conversation":
        conversation = cls(title=generate_title(first_message))
        conversation.modes.select(mode)
        conversation.modes.graph_generation = graph_generation
        return conversation


class ConversationSummary(BaseModel):
    """Header-only view used for listings."""
    id: str
    title: str
    created_at: int
    updated_at: int
    message_count: int
    modes: ModeFlags
    report_conversation_id: Optional[str] = None
