"""
ConversationStore - conversation records over a BlobStore.

Record format (one blob per conversation, `<folder>/<id>.md`):

    ---
    id: conv-1700000000000-abc123xyz
    title: Who owns example.com?
    createdAt: 1700000000000
    updatedAt: 1700000005000
    messageCount: 2
    localSearchMode: true
    darkWebMode: false
    graphGenerationMode: false
    reportGenerationMode: false
    osintSearchMode: false
    reportConversationId: abc        (only when set)
    ---
    ```json:messages
    [ ...messages, 2-space indent... ]
    ```

Older records may lack newer header keys; see _parse_modes for the
fallbacks.
"""

import json
import re
import threading
from typing import Optional

from pydantic import ValidationError

from models import Conversation, ConversationSummary, Message, ModeFlags
from models.base import from_millis, to_millis
from .base import BlobExistsError, BlobStore

_FRONTMATTER_RE = re.compile(r"^---\n([\s\S]*?)\n---")
_MESSAGES_RE = re.compile(r"```json:messages\n([\s\S]*?)\n```")


def _header_value(header: str, key: str) -> Optional[str]:
    match = re.search(rf"^{re.escape(key)}:[ \t]*(.*)$", header, re.MULTILINE)
    return match.group(1).strip() if match else None


def _header_int(header: str, key: str) -> int:
    try:
        return int(_header_value(header, key) or 0)
    except ValueError:
        return 0


def _parse_modes(header: str) -> ModeFlags:
    dark_web = _header_value(header, "darkWebMode") == "true"
    report = _header_value(header, "reportGenerationMode") == "true"
    graph = (_header_value(header, "graphGenerationMode") == "true"
             or _header_value(header, "entityGenerationMode") == "true")
    leak = _header_value(header, "osintSearchMode") == "true"

    local = _header_value(header, "localSearchMode")
    if local is None:
        local = _header_value(header, "lookupMode")
    local_search = (not dark_web and not report) if local is None else local == "true"

    return ModeFlags(
        local_search=local_search,
        dark_web=dark_web,
        report_generation=report,
        leak_search=leak,
        graph_generation=graph,
    )


def _flag(value: bool) -> str:
    return "true" if value else "false"


def serialize_conversation(conversation: Conversation) -> str:
    modes = conversation.modes
    lines = [
        "---",
        f"id: {conversation.id}",
        f"title: {' '.join(conversation.title.split())}",
        f"createdAt: {to_millis(conversation.created_at)}",
        f"updatedAt: {to_millis(conversation.updated_at)}",
        f"messageCount: {conversation.message_count}",
        f"localSearchMode: {_flag(modes.local_search)}",
        f"darkWebMode: {_flag(modes.dark_web)}",
        f"graphGenerationMode: {_flag(modes.graph_generation)}",
        f"reportGenerationMode: {_flag(modes.report_generation)}",
        f"osintSearchMode: {_flag(modes.leak_search)}",
    ]
    if conversation.report_conversation_id:
        lines.append(f"reportConversationId: {conversation.report_conversation_id}")
    lines += ["---", ""]

    messages = json.dumps([m.to_record() for m in conversation.messages], indent=2, ensure_ascii=False)
    return "\n".join(lines) + "\n".join(["```json:messages", messages, "```"])


def parse_summary(text: str, fallback_id: str = "unknown") -> Optional[ConversationSummary]:
    """Header fields only. None when the record has no header."""
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return None
    header = match.group(1)
    return ConversationSummary(
        id=_header_value(header, "id") or fallback_id,
        title=_header_value(header, "title") or "Untitled",
        created_at=_header_int(header, "createdAt"),
        updated_at=_header_int(header, "updatedAt"),
        message_count=_header_int(header, "messageCount"),
        modes=_parse_modes(header),
        report_conversation_id=_header_value(header, "reportConversationId") or None,
    )


def parse_conversation(text: str, fallback_id: str = "unknown") -> Optional[Conversation]:
    """Full record. None when the header or the message block is unreadable."""
    summary = parse_summary(text, fallback_id)
    if summary is None:
        return None

    messages = []
    match = _MESSAGES_RE.search(text)
    if match:
        try:
            raw = json.loads(match.group(1))
            messages = [Message.model_validate(m) for m in raw]
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            print(f"[ConversationStore] Corrupt message block in {summary.id}: {e}")
            return None

    return Conversation(
        id=summary.id,
        title=summary.title,
        created_at=from_millis(summary.created_at),
        updated_at=from_millis(summary.updated_at),
        modes=summary.modes,
        report_conversation_id=summary.report_conversation_id,
        messages=messages,
    )


class ConversationStore:
    """
    Conversation persistence with a single writer per store instance.

    A save() that arrives while a write is in flight records the newest
    snapshot and returns; the writing thread then writes that snapshot
    before it finishes. However many saves arrive during one write, the
    follow-up is a single write of the latest data.
    """

    def __init__(self, blobs: BlobStore, folder: str = "conversations"):
        self.blobs = blobs
        self.folder = folder.strip("/")
        self._lock = threading.Lock()
        self._write_done = threading.Condition(self._lock)
        self._save_in_progress = False
        self._pending: dict[str, Conversation] = {}
        self._writing: Optional[str] = None  # Id whose write is in flight
        self._writer: Optional[int] = None
        self.write_count = 0

    def _key(self, conversation_id: str) -> str:
        return f"{self.folder}/{conversation_id}.md"

    # === Writes ===

    def save(self, conversation: Conversation) -> None:
        conversation.touch()
        snapshot = conversation.model_copy(deep=True)

        with self._lock:
            self._pending[snapshot.id] = snapshot
            if self._save_in_progress:
                return
            self._save_in_progress = True
            self._writer = threading.get_ident()

        try:
            while True:
                with self._lock:
                    if not self._pending:
                        self._save_in_progress = False
                        self._writer = None
                        return
                    conversation_id = next(iter(self._pending))
                    latest = self._pending.pop(conversation_id)
                    self._writing = conversation_id
                try:
                    self._write(latest)
                except Exception:
                    with self._lock:
                        self._pending.setdefault(conversation_id, latest)
                    raise
                finally:
                    with self._lock:
                        self._writing = None
                        self._write_done.notify_all()
        except Exception:
            with self._lock:
                self._save_in_progress = False
                self._writer = None
            raise

    def _write(self, conversation: Conversation) -> None:
        key = self._key(conversation.id)
        data = serialize_conversation(conversation).encode("utf-8")
        self.write_count += 1

        if self.blobs.exists(key):
            self.blobs.write(key, data)
            return
        try:
            self.blobs.create(key, data)
        except BlobExistsError:
            print(f"[ConversationStore] {key} appeared during create, overwriting")
            self.blobs.write(key, data)

    def create(self, first_message: Optional[str] = None, **kwargs) -> Conversation:
        conversation = Conversation.start(first_message, **kwargs)
        self.save(conversation)
        return conversation

    def rename(self, conversation_id: str, title: str) -> bool:
        conversation = self.load(conversation_id)
        if conversation is None:
            return False
        conversation.title = title.strip() or conversation.title
        self.save(conversation)
        return True

    def delete(self, conversation_id: str) -> bool:
        """Remove a record. Waits out an in-flight write of the same id so it cannot land afterwards."""
        with self._lock:
            self._pending.pop(conversation_id, None)
            if self._writer != threading.get_ident():
                while self._writing == conversation_id:
                    self._write_done.wait()
            # Held through the remove so no new write of this id can start meanwhile
            removed = self.blobs.remove(self._key(conversation_id))
        if not removed:
            print(f"[ConversationStore] Nothing to delete for {conversation_id}")
        return removed

    # === Reads ===

    def load(self, conversation_id: str) -> Optional[Conversation]:
        raw = self.blobs.read(self._key(conversation_id))
        if raw is None:
            return None
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            print(f"[ConversationStore] Unreadable record {conversation_id}: {e}")
            return None
        return parse_conversation(text, conversation_id)

    def list(self) -> list[ConversationSummary]:
        """Every record in the folder, newest update first."""
        summaries = []
        for key in self.blobs.list(self.folder):
            if not key.endswith(".md"):
                continue
            fallback_id = key.rsplit("/", 1)[-1][:-len(".md")]
            raw = self.blobs.read(key)
            if raw is None:
                continue
            try:
                summary = parse_summary(raw.decode("utf-8"), fallback_id)
            except (UnicodeDecodeError, ValidationError) as e:
                print(f"[ConversationStore] Skipping corrupt record {key}: {e}")
                continue
            if summary is None:
                print(f"[ConversationStore] Skipping {key}: no header")
                continue
            summaries.append(summary)
        return sorted(summaries, key=lambda s: s.updated_at, reverse=True)

    def most_recent(self) -> Optional[Conversation]:
        summaries = self.list()
        if not summaries:
            return None
        return self.load(summaries[0].id)
