"""Chat API routes - one request/response turn per call."""

import asyncio
from flask import Blueprint, request, jsonify, current_app

chat_bp = Blueprint("chat", __name__)


@chat_bp.route("/chat", methods=["POST"])
def chat():
    """Answer a user message given the client-held conversation history."""
    data = request.get_json(silent=True) or {}
    message = data.get("message") or ""
    history = data.get("conversationHistory") or []

    if not isinstance(message, str) or not message.strip():
        return jsonify({"error": "Message cannot be empty"}), 400
    if not isinstance(history, list):
        return jsonify({"error": "conversationHistory must be a list of strings"}), 400

    orchestrator = current_app.config["orchestrator"]
    response = _run_async(orchestrator.get_chat_response(message.strip(), history))
    return jsonify({"response": response})


@chat_bp.route("/chat/status", methods=["GET"])
def chat_status():
    """Report whether the completion backend is configured."""
    orchestrator = current_app.config["orchestrator"]
    return jsonify({"configured": orchestrator.is_configured()})


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()
