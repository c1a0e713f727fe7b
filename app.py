#!/usr/bin/env python3
"""
OSINT Copilot Web Interface

Flask app exposing conversations and their running jobs.
"""

import atexit
from typing import Optional

from flask import Flask, jsonify

from config import Settings, load_settings
from models import Conversation
from remote.api import CopilotApi
from repositories import ConversationStore, FileBlobStore, JsonEntityStore
from routes import conversations_bp
from routes.helpers import SessionFactory, SessionManager
from session import ChatSession


def default_factory(settings: Settings, store: ConversationStore) -> SessionFactory:
    """Sessions sharing one store, one entity file and one API client."""
    api = CopilotApi(settings.api.base_url, settings.api.api_key)
    entities = JsonEntityStore(settings.storage.entities_file)

    def factory(conversation: Optional[Conversation]) -> ChatSession:
        return ChatSession(settings, api, store, entities, conversation=conversation)

    return factory


def create_app(settings: Optional[Settings] = None, store: Optional[ConversationStore] = None,
               session_factory: Optional[SessionFactory] = None) -> Flask:
    settings = settings or load_settings()
    store = store or ConversationStore(FileBlobStore(settings.storage.data_dir))
    manager = SessionManager(store, session_factory or default_factory(settings, store))

    flask_app = Flask(__name__)
    flask_app.extensions["copilot_sessions"] = manager
    flask_app.register_blueprint(conversations_bp)

    @flask_app.route("/health")
    def health():
        return jsonify({"status": "ok", "api_key_configured": settings.has_api_key})

    atexit.register(manager.close_all)
    return flask_app


if __name__ == "__main__":
    app = create_app()
    print("\n" + "="*60)
    print("  OSINT Copilot Web Interface")
    print("="*60)
    print("  API at http://localhost:5001/api/conversations")
    print("="*60 + "\n")
    app.run(debug=True, port=5001)
