import os
import threading
from datetime import datetime

from flask import Flask, jsonify, request
from flask_cors import CORS

from docindex.config import Config
from docindex.modules.rag_service import RagService
from docindex.utils import (
    RetrievalEngineError,
    configure_logging,
    handle_api_error,
    log_error,
    parse_top_k,
    register_error_handlers,
    validate_documents_payload,
)

configure_logging(getattr(Config, "LOG_LEVEL", "INFO"))

app = Flask(__name__)

# CORS configuration
CORS(
    app,
    origins=getattr(Config, "CORS_ORIGINS", ["*"]),
    methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

# Secret key for sessions
app.config["SECRET_KEY"] = getattr(Config, "FLASK_SECRET_KEY", "") or os.getenv("FLASK_SECRET_KEY", "dev-secret")

# Register standardized error handlers
register_error_handlers(app)

# One retrieval engine per process; index-mutating calls are serialized inside it
rag_service = RagService()

# Ingests run one at a time; each gets its own cancellation signal, which
# POST /cancel sets only while that ingest is running
_ingest_lock = threading.Lock()
_state_lock = threading.Lock()
_running_cancel = None


def request_cancel():
    """Signal the running ingest to stop. Returns False when nothing is running."""
    with _state_lock:
        if _running_cancel is None:
            return False
        _running_cancel.set()
        return True


def _run_ingest(documents, reset):
    global _running_cancel
    with _ingest_lock:
        if reset:
            rag_service.clear()

        progress = []
        cancel_event = threading.Event()
        with _state_lock:
            _running_cancel = cancel_event
        try:
            report = rag_service.add_documents(documents, on_progress=progress.append, cancel_event=cancel_event)
        finally:
            with _state_lock:
                _running_cancel = None
        return report, progress


@app.route("/health", methods=["GET"])
def health_check():
    """Health check and status endpoint."""
    try:
        stats = rag_service.get_stats()
        total_chunks = int(stats.get("total_chunks", 0) or 0)
        return jsonify({
            "status": "healthy",
            "index_loaded": total_chunks > 0,
            "total_chunks": total_chunks,
            "embedding_provider": stats.get("embedding_provider"),
            "timestamp": datetime.now().isoformat()
        }), 200
    except Exception as e:
        log_error(e, {"endpoint": "/health"})
        return jsonify({"status": "unhealthy", "error": str(e)}), 500


@app.route("/ingest", methods=["POST"])
def ingest_documents():
    """Index documents: validate request, optionally reset the index, chunk, embed and commit."""
    try:
        # 1. Validate request
        if not request.is_json:
            return jsonify({"error": "Content-Type must be application/json"}), 400

        data = request.get_json(silent=True) or {}
        documents, error = validate_documents_payload(data.get("documents"))
        if error:
            return jsonify({"error": error}), 400

        # 2. Optionally start a fresh index generation, then chunk, embed and commit
        report, progress = _run_ingest(documents, bool(data.get("reset", False)))

        return jsonify({
            "status": "cancelled" if report.cancelled else "success",
            "report": report.to_dict(),
            "progress": progress,
            "total_chunks": rag_service.store.count(),
        }), 200
    except RetrievalEngineError:
        # Rendered by the registered engine error handlers
        raise
    except Exception as e:
        log_error(e, {"endpoint": "/ingest"})
        return jsonify(handle_api_error(e)), 500


@app.route("/query", methods=["POST"])
def query():
    """Retrieve the most relevant chunks for a question, with a prompt-ready context block."""
    try:
        if not request.is_json:
            return jsonify({"error": "Content-Type must be application/json"}), 400

        data = request.get_json(silent=True) or {}
        top_k = parse_top_k(data.get("top_k"), default=rag_service.retriever.top_k)
        if top_k is None:
            return jsonify({"error": "top_k must be an integer between 1 and 50"}), 400

        results = rag_service.retrieve(data.get("query", ""), top_k=top_k)

        return jsonify({
            "results": [r.to_dict() for r in results],
            "context": rag_service.format_context(results),
            "total_chunks": rag_service.store.count(),
            "timestamp": datetime.now().isoformat()
        }), 200
    except RetrievalEngineError:
        raise
    except Exception as e:
        log_error(e, {"endpoint": "/query"})
        return jsonify(handle_api_error(e)), 500


@app.route("/cancel", methods=["POST"])
def cancel_ingest():
    """Ask a running ingest to stop after its in-flight batches."""
    if not request_cancel():
        return jsonify({"status": "idle", "message": "No ingest is running"}), 200
    return jsonify({"status": "success", "message": "Cancellation requested"}), 200


@app.route("/clear", methods=["POST"])
def clear_index():
    """Discard every indexed chunk."""
    try:
        rag_service.clear()
        return jsonify({
            "status": "success",
            "message": "Index cleared"
        }), 200
    except Exception as e:
        log_error(e, {"endpoint": "/clear"})
        return jsonify({"error": str(e)}), 500


@app.route("/stats", methods=["GET"])
def get_stats():
    """Get detailed statistics for the index and engine configuration."""
    try:
        return jsonify({
            "index": rag_service.get_stats(),
            "sources": rag_service.store.sources(),
            "timestamp": datetime.now().isoformat()
        }), 200
    except Exception as e:
        log_error(e, {"endpoint": "/stats"})
        return jsonify({"error": str(e)}), 500


if __name__ == "__main__":
    port = int(getattr(Config, "PORT", 5000))
    app.run(host="0.0.0.0", port=port)
