"""
ChatSession - one open conversation and the flows that run in it.

Every flow appends the user message to history, then builds its answer
on an in-flight assistant message (a "turn"). Turns are kept apart from
history and only appended to it once they reach a terminal state. A
persisted snapshot is history followed by the open turns in start order.

Jobs (report, dark web) are polled on background threads owned by the
session's PollRegistry; close() cancels them.
"""

import json
import threading
import time
import uuid
from typing import Any, Callable, Optional

from config import Settings
from models import (
    Conversation,
    JobEvent,
    JobEventType,
    JobHandle,
    JobKind,
    JobProgress,
    Message,
    Mode,
)
from pipeline import ExtractionPipeline, ExtractionResult
from remote import RemoteCaller, RemoteError, RetryNotice, RetryPolicy
from remote.api import CopilotApi
from repositories import ConversationStore, EntityStore, FileBlobStore, JsonEntityStore
from workers import JobPoller, PollRegistry

SYSTEM_PROMPT = (
    "You are an OSINT research assistant. Answer using the provided notes when they are relevant, "
    "cite note paths, and say plainly when the notes do not contain the answer."
)
MAX_NOTE_CHARS = 1500

UpdateCallback = Callable[[Message], None]


# === Rendering ===

def build_prompt(question: str, notes: Optional[list[dict]] = None) -> str:
    if not notes:
        return question
    text = f'User query: "{question}"\n\nHere are relevant notes:\n\n'
    for note in notes:
        text += f"--- Note: {note.get('path', 'untitled')} ---\n"
        if note.get("tags"):
            text += f"Tags: {', '.join(note['tags'])}\n"
        content = str(note.get("content", ""))
        if len(content) > MAX_NOTE_CHARS:
            content = content[:MAX_NOTE_CHARS] + "..."
        text += f"Content:\n{content}\n\n"
    return text


def format_darkweb_report(query: str, summary: dict) -> str:
    content = f"# Dark Web Investigation: {query}\n\n"
    if summary.get("summary"):
        content += f"## Summary\n\n{summary['summary']}\n\n"
    findings = summary.get("findings") or []
    if findings:
        content += f"## Key Findings ({len(findings)})\n\n"
        for i, finding in enumerate(findings, 1):
            content += f"### {i}. {finding.get('title') or 'Finding'}\n\n"
            if finding.get("url"):
                content += f"**URL:** {finding['url']}\n\n"
            if finding.get("snippet"):
                content += f"{finding['snippet']}\n\n"
    return content


def format_leak_results(query: str, result: dict) -> str:
    seconds = (result.get("execution_time_ms") or 0) / 1000
    content = "**Digital Footprint Results**\n\n"
    content += f"**Query:** {query}\n"
    content += f"{seconds:.1f}s | {result.get('total_results', 0)} result(s)\n\n"

    detected = result.get("detected_entities") or []
    content += "---\n\n### Detected Entities\n\n"
    if detected:
        for entity in detected:
            confidence = round((entity.get("confidence") or 0) * 100)
            content += f"- **{entity.get('type')}:** `{entity.get('value')}` ({confidence}% confidence)\n"
        content += "\n"
    else:
        content += "No searchable entities detected in your query.\n"
        content += "Try including an email, phone, name, or other identifier.\n\n"

    results = result.get("results") or []
    if results:
        content += "---\n\n### Results\n\n"
        for i, item in enumerate(results, 1):
            content += f"**Result {i}:**\n```json\n{json.dumps(item, indent=2, ensure_ascii=False)}\n```\n\n"
    elif detected:
        content += "---\n\n### Results\n\nNo results found.\n\n"

    if result.get("explanation"):
        content += f"---\n\n### Explanation\n\n{result['explanation']}\n"
    return content


def leak_results_text(query: str, result: dict) -> str:
    """Plain text of leak search results, for entity extraction."""
    text = f'Digital Footprint Results for query: "{query}"\n\n'
    detected = result.get("detected_entities") or []
    if detected:
        text += "Detected search entities:\n"
        for entity in detected:
            text += f"- {entity.get('type')}: {entity.get('value')}\n"
        text += "\n"
    results = result.get("results") or []
    if results:
        text += f"Found {result.get('total_results', len(results))} results:\n\n"
        for i, item in enumerate(results, 1):
            text += f"Result {i}:\n{json.dumps(item, indent=2, ensure_ascii=False)}\n\n"
    if result.get("explanation"):
        text += f"\nExplanation: {result['explanation']}\n"
    return text


def failure_content(title: str, label: str, request: str, error: str) -> str:
    return f"**{title} Failed**\n\n**{label}:** {request}\n\n**Error:** {error}"


class ChatSession:
    """
    Flow layer over one conversation.

    Handles:
    - Mode dispatch (local search Q&A, report, dark web, leak search, graph only)
    - In-flight turns, moved to history on terminal state
    - Persisting a snapshot after every state change
    - Graph generation on successful results when the conversation asks for it
    """

    def __init__(
        self,
        settings: Settings,
        api: CopilotApi,
        store: ConversationStore,
        entities: EntityStore,
        conversation: Optional[Conversation] = None,
        on_update: Optional[UpdateCallback] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        poll_sleep: Optional[Callable[[float], None]] = None,
    ):
        self.settings = settings
        self.api = api
        self.store = store
        self.entities = entities
        self.conversation = conversation
        self.on_update = on_update
        self.on_idle: Optional[Callable[["ChatSession"], None]] = None  # Called when the last poll ends
        self.registry = PollRegistry(name="Session")
        self.interactive = RemoteCaller(RetryPolicy(settings.interactive_retry), sleep=sleep,
                                        name="RemoteCaller:interactive")
        self.background = RemoteCaller(RetryPolicy(settings.background_retry), sleep=sleep,
                                       name="RemoteCaller:background")
        self.pipeline = ExtractionPipeline(
            api.extract_entities,
            entities,
            self.background,
            max_chunk_chars=settings.max_chunk_chars,
            is_online=lambda: api.online,
        )
        self._clock = clock
        self._poll_sleep = poll_sleep
        self._lock = threading.RLock()
        self._turns: dict[str, Message] = {}

    # === Conversation state ===

    def ensure_conversation(self, first_message: Optional[str] = None) -> Conversation:
        if self.conversation is None:
            self.conversation = Conversation.start(first_message)
            print(f"[Session] New conversation {self.conversation.id}")
        return self.conversation

    def snapshot(self) -> Conversation:
        with self._lock:
            messages = list(self.conversation.messages) + list(self._turns.values())
            return self.conversation.model_copy(update={"messages": messages})

    def persist(self) -> None:
        with self._lock:
            if self.conversation is None:
                return
            try:
                self.store.save(self.snapshot())
            except OSError as e:
                print(f"[Session] Failed to save conversation {self.conversation.id}: {e}")

    def _notify(self, message: Message) -> None:
        if self.on_update:
            try:
                self.on_update(message)
            except Exception as e:
                print(f"[Session] Update callback error: {e}")

    def _open_turn(self, message: Message) -> str:
        turn_id = message.job_id or uuid.uuid4().hex
        with self._lock:
            self._turns[turn_id] = message
            self.persist()
        self._notify(message)
        return turn_id

    def _update_turn(self, turn_id: str, **changes: Any) -> Optional[Message]:
        with self._lock:
            message = self._turns.get(turn_id)
            if message is None:
                return None
            for key, value in changes.items():
                setattr(message, key, value)
            self.persist()
        self._notify(message)
        return message

    def _close_turn(self, turn_id: str) -> Optional[Message]:
        with self._lock:
            message = self._turns.pop(turn_id, None)
            if message is None:
                return None
            message.progress = None
            self.conversation.messages.append(message)
            self.persist()
        self._notify(message)
        return message

    def _fail_turn(self, turn_id: str, title: str, label: str, request: str, error: RemoteError) -> Message:
        print(f"[Session] {title} failed ({error.category.value}): {error}")
        self._update_turn(
            turn_id,
            content=failure_content(title, label, request, error.user_message()),
            status="failed",
        )
        return self._close_turn(turn_id)

    def pending_turns(self) -> list[Message]:
        with self._lock:
            return list(self._turns.values())

    # === Entry point ===

    def send(self, text: str, notes: Optional[list[dict]] = None) -> Message:
        """Record the user message and run the conversation's active mode."""
        with self._lock:
            conversation = self.ensure_conversation(text)
            conversation.messages.append(Message.user(text))
            self.persist()
            modes = conversation.modes

        if not modes.active_modes and modes.graph_generation:
            return self.extract_graph(text)
        mode = modes.active_mode
        if mode == Mode.REPORT_GENERATION:
            return self.generate_report(text)
        if mode == Mode.DARK_WEB:
            return self.investigate_darkweb(text)
        if mode == Mode.LEAK_SEARCH:
            return self.leak_search(text)
        return self.ask(text, notes)

    def _retry_progress(self, turn_id: str, percent: int) -> Callable[[RetryNotice], None]:
        def on_retry(notice: RetryNotice) -> None:
            self._update_turn(turn_id, progress=JobProgress(message=notice.describe(), percent=percent))
        return on_retry

    # === Graph generation ===

    def _generate_graph(self, turn_id: str, text: str) -> Optional[ExtractionResult]:
        def on_progress(message: str, percent: int) -> None:
            self._update_turn(turn_id, progress=JobProgress(message=message, percent=percent))

        result = self.pipeline.run(text, on_progress=on_progress)
        with self._lock:
            message = self._turns.get(turn_id)
            if message is None:
                return result
            if result.success:
                message.created_entities = result.created_entities
                message.connections_created = result.connections_created
                message.content += (
                    f"\n\n---\n\n**Graph Generation:** {len(result.created_entities)} entities, "
                    f"{result.connections_created} connections"
                )
            else:
                message.content += f"\n\nGraph generation failed: {result.error}"
        return result

    def _finish_success(self, turn_id: str, graph_text: Optional[str]) -> Message:
        if graph_text and self.conversation.modes.graph_generation:
            self._generate_graph(turn_id, graph_text)
        return self._close_turn(turn_id)

    # === Flows ===

    def ask(self, question: str, notes: Optional[list[dict]] = None) -> Message:
        self.ensure_conversation(question)
        turn_id = self._open_turn(Message.assistant(
            "Thinking...", notes=notes or None, progress=JobProgress(message="Sending question...", percent=10)
        ))
        try:
            self.api.require_key()
            messages = [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(question, notes)},
            ]
            answer = self.interactive.call(
                lambda t: self.api.chat(messages, self.settings.api.chat_model, t),
                on_retry=self._retry_progress(turn_id, 30),
            )
        except RemoteError as e:
            return self._fail_turn(turn_id, "Answer", "Question", question, e)

        self._update_turn(turn_id, content=answer, status="completed")
        return self._finish_success(turn_id, answer)

    def leak_search(self, query: str) -> Message:
        self.ensure_conversation(query)
        turn_id = self._open_turn(Message.assistant(
            "Searching OSINT databases...", query=query,
            progress=JobProgress(message="Searching OSINT databases...", percent=50),
        ))
        api_settings = self.settings.api
        try:
            self.api.require_key()
            result = self.background.call(
                lambda t: self.api.leak_search(
                    query, t,
                    country=api_settings.leak_search_country,
                    max_providers=api_settings.leak_search_max_providers,
                    parallel=api_settings.leak_search_parallel,
                ),
                on_retry=self._retry_progress(turn_id, 40),
            )
        except RemoteError as e:
            return self._fail_turn(turn_id, "Digital Footprint", "Query", query, e)

        self._update_turn(turn_id, content=format_leak_results(query, result), status="completed")
        graph_text = leak_results_text(query, result) if result.get("results") else None
        return self._finish_success(turn_id, graph_text)

    def extract_graph(self, text: str) -> Message:
        self.ensure_conversation(text)
        preview = text[:200] + ("..." if len(text) > 200 else "")
        turn_id = self._open_turn(Message.assistant(
            "Extracting entities...", progress=JobProgress(message="Analyzing text...", percent=10)
        ))
        try:
            self.api.require_key()
        except RemoteError as e:
            return self._fail_turn(turn_id, "Graph Generation", "Input", preview, e)

        self._update_turn(turn_id, content=f"**Graph Generation**\n\n**Input:** {preview}")
        result = self._generate_graph(turn_id, text)
        if result is not None and not result.success:
            self._update_turn(turn_id, status="failed")
        else:
            self._update_turn(turn_id, status="completed")
        return self._close_turn(turn_id)

    # === Job flows ===

    def _start_job(self, kind: JobKind, job_id: str, request: str, fetch_result: Callable[[float], str],
                   title: str, label: str, correlation_id: Optional[str] = None) -> Message:
        polling = self.settings.polling
        budget = polling.report_budget if kind == JobKind.REPORT else polling.darkweb_budget
        handle = JobHandle(id=job_id, kind=kind, elapsed_budget=budget, correlation_id=correlation_id)

        message = Message.assistant(
            f"{title} in progress...",
            job_id=job_id,
            status="processing",
            query=request,
            progress=JobProgress(message="Job submitted", percent=20),
        )
        turn_id = self._open_turn(message)

        poller = JobPoller(
            handle,
            fetch_status=lambda t: self.api.get_job_status(kind, job_id, t),
            fetch_result=fetch_result,
            caller=self.background,
            fetch_ready_content=self.api.get_conversation_response if kind == JobKind.REPORT else None,
            max_consecutive_errors=polling.max_consecutive_errors,
            clock=self._clock,
            sleep=self._poll_sleep,
        )

        def on_event(event: JobEvent) -> None:
            self._on_job_event(turn_id, handle, event, title, label, request)

        def on_done(terminal: Optional[JobEvent]) -> None:
            if terminal is None:
                self._update_turn(turn_id, content=f"{title} cancelled.", status="cancelled")
                self._close_turn(turn_id)
            if self.on_idle is not None and not self.registry.active_jobs():
                self.on_idle(self)

        self.registry.start(poller, on_event, on_done)
        return message

    def _on_job_event(self, turn_id: str, handle: JobHandle, event: JobEvent,
                      title: str, label: str, request: str) -> None:
        if event.type in (JobEventType.PROGRESS, JobEventType.RETRY):
            self._update_turn(
                turn_id,
                content=f"{title} in progress...\n\n{event.message}",
                status=event.status.value,
                progress=event.progress,
                intermediate_results=event.intermediate_results or None,
            )
            return

        if event.type == JobEventType.COMPLETED:
            with self._lock:
                if handle.correlation_id and not self.conversation.report_conversation_id:
                    self.conversation.report_conversation_id = handle.correlation_id
            self._update_turn(
                turn_id,
                content=f"**{title} Complete**\n\n**{label}:** {request}\n\n---\n\n{event.content}",
                status="completed",
                report_file_ref=event.filename,
                intermediate_results=event.intermediate_results or None,
            )
            self._finish_success(turn_id, event.content)
            return

        status = "timeout" if event.type == JobEventType.TIMED_OUT else "failed"
        self._update_turn(
            turn_id,
            content=failure_content(title, label, request, event.message),
            status=status,
        )
        self._close_turn(turn_id)

    def generate_report(self, description: str) -> Message:
        """Submit a report job. Returns the in-flight message; polling continues in the background."""
        params = {"description": description, "vault_context": "", "force_new_report": True}
        with self._lock:
            self.ensure_conversation(description)
            correlation_id = self.conversation.report_conversation_id
        if correlation_id:
            params["conversation_id"] = correlation_id

        try:
            self.api.require_key()
            submitted = self.interactive.call(lambda t: self.api.submit_job(JobKind.REPORT, params, t))
        except RemoteError as e:
            turn_id = self._open_turn(Message.assistant("Requesting report generation..."))
            return self._fail_turn(turn_id, "Report Generation", "Request", description, e)

        job_id = submitted["job_id"]
        if submitted.get("conversation_id") and not correlation_id:
            correlation_id = submitted["conversation_id"]
            with self._lock:
                self.conversation.report_conversation_id = correlation_id
        print(f"[Session] Report job {job_id} started")

        return self._start_job(
            JobKind.REPORT, job_id, description,
            fetch_result=lambda t: self.api.download_report(job_id, t),
            title="Report Generation", label="Request", correlation_id=correlation_id,
        )

    def investigate_darkweb(self, query: str) -> Message:
        """Submit a dark web investigation. Returns the in-flight message."""
        self.ensure_conversation(query)
        params = {
            "query": query,
            "model": self.settings.api.darkweb_model,
            "threads": self.settings.api.darkweb_threads,
        }
        try:
            self.api.require_key()
            submitted = self.interactive.call(lambda t: self.api.submit_job(JobKind.DARKWEB, params, t))
        except RemoteError as e:
            turn_id = self._open_turn(Message.assistant("Starting dark web investigation..."))
            return self._fail_turn(turn_id, "Dark Web Investigation", "Query", query, e)

        job_id = submitted["job_id"]
        print(f"[Session] Dark web job {job_id} started")
        return self._start_job(
            JobKind.DARKWEB, job_id, query,
            fetch_result=lambda t: format_darkweb_report(query, self.api.get_darkweb_summary(job_id, t)),
            title="Dark Web Investigation", label="Query",
        )

    # === Lifecycle ===

    def cancel(self, job_id: str) -> bool:
        return self.registry.cancel(job_id)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> bool:
        return self.registry.join(job_id, timeout)

    def close(self) -> None:
        """Cancel every running poll this session started."""
        cancelled = self.registry.cancel_all()
        if cancelled:
            print(f"[Session] Closed with {cancelled} poll(s) cancelled")


def open_session(settings: Settings, conversation_id: Optional[str] = None,
                 on_update: Optional[UpdateCallback] = None) -> ChatSession:
    """Build a session over the configured storage. Loads the conversation when an id is given."""
    store = ConversationStore(FileBlobStore(settings.storage.data_dir))
    entities = JsonEntityStore(settings.storage.entities_file)
    api = CopilotApi(settings.api.base_url, settings.api.api_key)
    conversation = store.load(conversation_id) if conversation_id else None
    return ChatSession(settings, api, store, entities, conversation=conversation, on_update=on_update)
