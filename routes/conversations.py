"""
Conversation API routes.

Listing and reads go straight to the store; anything that runs a flow or
touches running jobs goes through the conversation's open session.
"""

from flask import jsonify, request
from . import conversations_bp
from .helpers import conversation_record, get_manager
from models import Mode


def _apply_modes(session, data: dict):
    """Optional mode switch carried on a request. Returns an error response or None."""
    modes = session.conversation.modes
    if data.get("mode"):
        try:
            modes.select(Mode(data["mode"]))
        except ValueError:
            valid = ", ".join(m.value for m in Mode)
            return jsonify({"error": f"Unknown mode: {data['mode']}. Valid: {valid}"}), 400
    if "graph_generation" in data:
        modes.graph_generation = bool(data["graph_generation"])
    return None


@conversations_bp.route("/api/conversations")
def list_conversations():
    """List conversations, most recently updated first."""
    manager = get_manager()
    return jsonify([s.model_dump() for s in manager.store.list()])


@conversations_bp.route("/api/conversations", methods=["POST"])
def create_conversation():
    """Start a conversation; runs the first message when one is given."""
    data = request.json or {}
    text = (data.get("message") or "").strip()

    manager = get_manager()
    session = manager.open()
    session.ensure_conversation(text or None)
    session = manager.track(session)
    try:
        error = _apply_modes(session, data)
        if error:
            return error

        if not text:
            session.persist()
            return jsonify(conversation_record(session.snapshot())), 201

        message = session.send(text, data.get("notes"))
        return jsonify({
            "conversation": conversation_record(session.snapshot()),
            "message": message.to_record(),
        }), 201
    finally:
        manager.release(session)


@conversations_bp.route("/api/conversations/<conversation_id>")
def get_conversation(conversation_id):
    """Full conversation, including in-flight messages of an open session."""
    manager = get_manager()
    session = manager.peek(conversation_id)
    if session is not None:
        return jsonify(conversation_record(session.snapshot()))

    conversation = manager.store.load(conversation_id)
    if conversation is None:
        return jsonify({"error": "Not found"}), 404
    return jsonify(conversation_record(conversation))


@conversations_bp.route("/api/conversations/<conversation_id>", methods=["DELETE"])
def delete_conversation(conversation_id):
    """Delete a conversation, cancelling its running jobs first."""
    manager = get_manager()
    manager.drop(conversation_id)
    if not manager.store.delete(conversation_id):
        return jsonify({"error": "Not found"}), 404
    return jsonify({"deleted": conversation_id})


@conversations_bp.route("/api/conversations/<conversation_id>", methods=["PATCH"])
def rename_conversation(conversation_id):
    """Rename a conversation."""
    data = request.json or {}
    title = (data.get("title") or "").strip()
    if not title:
        return jsonify({"error": "Title required"}), 400

    manager = get_manager()
    session = manager.peek(conversation_id)
    if session is not None:
        session.conversation.title = title
        session.persist()
        return jsonify(conversation_record(session.snapshot()))

    if not manager.store.rename(conversation_id, title):
        return jsonify({"error": "Not found"}), 404
    return jsonify(conversation_record(manager.store.load(conversation_id)))


@conversations_bp.route("/api/conversations/<conversation_id>/messages", methods=["POST"])
def send_message(conversation_id):
    """Run one turn in the conversation's active mode."""
    data = request.json or {}
    text = (data.get("message") or "").strip()
    if not text:
        return jsonify({"error": "Message required"}), 400

    manager = get_manager()
    session = manager.get(conversation_id)
    if session is None:
        return jsonify({"error": "Not found"}), 404

    try:
        error = _apply_modes(session, data)
        if error:
            return error

        message = session.send(text, data.get("notes"))
        return jsonify({
            "message": message.to_record(),
            "pending": [m.to_record() for m in session.pending_turns()],
        })
    finally:
        manager.release(session)


@conversations_bp.route("/api/conversations/<conversation_id>/cancel", methods=["POST"])
def cancel_jobs(conversation_id):
    """Cancel one running job (job_id in body) or all of the conversation's jobs."""
    data = request.json or {}
    manager = get_manager()
    session = manager.peek(conversation_id)
    if session is None:
        return jsonify({"cancelled": 0})

    job_id = data.get("job_id")
    if job_id:
        return jsonify({"cancelled": 1 if session.cancel(job_id) else 0})
    return jsonify({"cancelled": session.registry.cancel_all()})
