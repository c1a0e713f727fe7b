"""
Shared helpers for conversation routes.
"""

import threading
from typing import Callable, Optional

from flask import current_app

from models import Conversation
from models.base import to_millis
from repositories import ConversationStore
from session import ChatSession

SessionFactory = Callable[[Optional[Conversation]], ChatSession]


class SessionManager:
    """
    Open ChatSessions, one per conversation id.

    Requests take a hold on a session with get() or track() and give it
    back with release(). A session is closed and forgotten once nothing
    holds it and none of its polls are running; until then every request
    and poll for the conversation shares the same in-memory record.
    """

    def __init__(self, store: ConversationStore, factory: SessionFactory):
        self.store = store
        self.factory = factory
        self._lock = threading.Lock()
        self._sessions: dict[str, ChatSession] = {}
        self._holds: dict[str, int] = {}

    def open(self, conversation: Optional[Conversation] = None) -> ChatSession:
        """Build an untracked session; pass it to track() once it has a conversation."""
        return self.factory(conversation)

    def track(self, session: ChatSession) -> ChatSession:
        """Register a session and hold it. Returns the session already open for the id, if any."""
        conversation_id = session.conversation.id
        session.on_idle = self._evict_if_idle
        with self._lock:
            winner = self._sessions.setdefault(conversation_id, session)
            self._holds[conversation_id] = self._holds.get(conversation_id, 0) + 1
        if winner is not session:
            session.close()
        return winner

    def get(self, conversation_id: str) -> Optional[ChatSession]:
        """Held session for the id, loading the conversation if needed. None if unknown."""
        with self._lock:
            session = self._sessions.get(conversation_id)
            if session is not None:
                self._holds[conversation_id] = self._holds.get(conversation_id, 0) + 1
                return session

        conversation = self.store.load(conversation_id)
        if conversation is None:
            return None
        return self.track(self.open(conversation))

    def release(self, session: ChatSession) -> None:
        if session.conversation is None:
            return
        conversation_id = session.conversation.id
        with self._lock:
            held = self._holds.get(conversation_id, 0) - 1
            if held > 0:
                self._holds[conversation_id] = held
                return
            self._holds.pop(conversation_id, None)
        self._evict_if_idle(session)

    def _evict_if_idle(self, session: ChatSession) -> None:
        conversation_id = session.conversation.id
        with self._lock:
            if self._sessions.get(conversation_id) is not session:
                return
            if self._holds.get(conversation_id) or session.registry.active_jobs():
                return
            del self._sessions[conversation_id]
        print(f"[Sessions] Closed idle session for {conversation_id}")
        session.close()

    def peek(self, conversation_id: str) -> Optional[ChatSession]:
        with self._lock:
            return self._sessions.get(conversation_id)

    def open_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def drop(self, conversation_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(conversation_id, None)
            self._holds.pop(conversation_id, None)
        if session is not None:
            session.close()

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._holds.clear()
        for session in sessions:
            session.close()


def get_manager() -> SessionManager:
    return current_app.extensions["copilot_sessions"]


def conversation_record(conversation: Conversation) -> dict:
    """JSON shape of a full conversation."""
    return {
        "id": conversation.id,
        "title": conversation.title,
        "createdAt": to_millis(conversation.created_at),
        "updatedAt": to_millis(conversation.updated_at),
        "messageCount": conversation.message_count,
        "modes": conversation.modes.model_dump(),
        "reportConversationId": conversation.report_conversation_id,
        "messages": [m.to_record() for m in conversation.messages],
    }
