"""
CopilotApi - HTTP client for the OSINT Copilot service.

Each method performs exactly one request with the timeout it is given and
raises HttpStatusError on non-2xx. Retrying is the caller's job
(RemoteCaller), so every method is safe to wrap in `lambda t: ...`.
"""

from typing import Any, Optional

import requests

from models import Entity, JobKind
from .content import extract_markdown, last_assistant_message
from .errors import ErrorCategory, HttpStatusError, RemoteError

CONVERSATION_ENDPOINTS = [
    "/api/conversation/{id}/messages",
    "/api/conversations/{id}/messages",
    "/api/chat/conversation/{id}",
    "/api/conversation/{id}",
]


class CopilotApi:
    """Thin request layer. One instance per configured service."""

    def __init__(self, base_url: str, api_key: str = "", session: requests.Session = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.online: Optional[bool] = None
        self._http = session or requests.Session()

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def require_key(self) -> None:
        if not self.api_key:
            raise RemoteError(
                "License key required for AI features. Please configure your license key in settings.",
                ErrorCategory.AUTH_FAILURE,
            )

    def _request(self, method: str, path: str, timeout: float, json_body: dict = None) -> requests.Response:
        response = self._http.request(
            method,
            f"{self.base_url}{path}",
            headers=self._headers(),
            json=json_body,
            timeout=timeout,
        )
        if not 200 <= response.status_code < 300:
            raise HttpStatusError(response.status_code, response.text or "")
        return response

    def _json(self, response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(f"Malformed JSON from server: {e}", ErrorCategory.VALIDATION) from e

    # === Health ===

    def check_health(self, timeout: float = 10.0) -> Optional[dict]:
        """GET /health, falling back to GET /. Sets `online`."""
        for path in ("/health", "/"):
            try:
                data = self._json(self._request("GET", path, timeout))
                self.online = True
                return data if isinstance(data, dict) else {"status": "ok"}
            except (requests.RequestException, RemoteError):
                continue
        self.online = False
        print("[CopilotApi] AI API unavailable - entity generation from text will not work")
        return None

    # === Jobs ===

    def submit_job(self, kind: JobKind, params: dict, timeout: float) -> dict:
        """Start a job. Returns the raw payload; it must carry job_id."""
        if kind == JobKind.REPORT:
            data = self._json(self._request("POST", "/api/generate-report", timeout, params))
        else:
            data = self._json(self._request("POST", "/api/darkweb/investigate", timeout, params))
        if not isinstance(data, dict) or not data.get("job_id"):
            raise RemoteError("No job_id received from server", ErrorCategory.VALIDATION)
        return data

    def get_job_status(self, kind: JobKind, job_id: str, timeout: float) -> dict:
        if kind == JobKind.REPORT:
            path = f"/api/report-status/{job_id}"
        else:
            path = f"/api/darkweb/status/{job_id}"
        data = self._json(self._request("GET", path, timeout))
        if not isinstance(data, dict):
            raise RemoteError("Status payload is not an object", ErrorCategory.VALIDATION)
        return data

    def download_report(self, job_id: str, timeout: float) -> str:
        """Report markdown; JSON-wrapped payloads are unwrapped."""
        response = self._request("GET", f"/api/download-report/{job_id}/md", timeout)
        return extract_markdown(response.text or "")

    def get_darkweb_summary(self, job_id: str, timeout: float) -> dict:
        clean_id = job_id[len("darkweb_"):] if job_id.startswith("darkweb_") else job_id
        data = self._json(self._request("GET", f"/api/darkweb/summary/{clean_id}", timeout))
        return data if isinstance(data, dict) else {}

    def get_conversation_response(self, conversation_id: str, timeout: float) -> str:
        """Last assistant message of a server-side conversation, trying each known endpoint."""
        for template in CONVERSATION_ENDPOINTS:
            path = template.format(id=conversation_id)
            try:
                data = self._json(self._request("GET", path, timeout))
            except (requests.RequestException, RemoteError) as e:
                print(f"[CopilotApi] {path} unavailable: {e}")
                continue
            content = last_assistant_message(data)
            if content:
                return content
        raise RemoteError(
            "Response is ready but no content was found for conversation " + conversation_id,
            ErrorCategory.NOT_FOUND,
        )

    # === Extraction, chat, leak search ===

    def extract_entities(self, text: str, existing_entities: list[Entity], timeout: float,
                         reference_time: Optional[str] = None) -> dict:
        body = {
            "text": text,
            "existing_entities": [e.context() for e in existing_entities],
            "reference_time": reference_time,
        }
        data = self._json(self._request("POST", "/api/process-text", timeout, body))
        if not isinstance(data, dict):
            raise RemoteError("Extraction payload is not an object", ErrorCategory.VALIDATION)
        return data

    def chat(self, messages: list[dict], model: str, timeout: float) -> str:
        body = {"model": model, "messages": messages, "stream": False}
        data = self._json(self._request("POST", "/api/chat/completion", timeout, body))
        if not isinstance(data, dict):
            return "No answer received."
        choices = data.get("choices") or [{}]
        first = choices[0] if isinstance(choices[0], dict) else {}
        content = (first.get("message") or {}).get("content") or first.get("text")
        if not content:
            content = data.get("content")
        return content or "No answer received."

    def leak_search(self, query: str, timeout: float, country: Optional[str] = None,
                    max_providers: int = 5, parallel: bool = True) -> dict:
        body = {"query": query, "country": country, "max_providers": max_providers, "parallel": parallel}
        data = self._json(self._request("POST", "/api/ai-search", timeout, body))
        return data if isinstance(data, dict) else {}
