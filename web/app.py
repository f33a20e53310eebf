"""Flask application factory for the expense assistant API."""

from flask import Flask
from flask_cors import CORS

from assistant.config import AssistantConfig
from assistant.orchestrator import ChatOrchestrator
from expenses.store import SqliteExpenseStore


def create_app(config: AssistantConfig, orchestrator: ChatOrchestrator | None = None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    CORS(app)

    if orchestrator is None:
        store = SqliteExpenseStore(config.store.db_path, seed_demo_data=config.store.seed_demo_data)
        orchestrator = ChatOrchestrator(config, store)

    # Shared state
    app.config["assistant_config"] = config
    app.config["orchestrator"] = orchestrator

    # Register blueprints
    from web.routes.chat import chat_bp
    from web.routes.metrics import metrics_bp

    app.register_blueprint(chat_bp, url_prefix="/api")
    app.register_blueprint(metrics_bp, url_prefix="/api")

    return app
