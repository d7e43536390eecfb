"""Quart HTTP API for the textbook assistant.

Endpoints:
- POST /api/chat    answer a question from the indexed textbook
- POST /api/ingest  ingest documents, clear the index, or report stats
- GET  /health/live, /health/ready

Run with ``hypercorn "tutor.main:create_app()"``.
"""
import logging
from pathlib import Path
from typing import Literal, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from quart import Quart, jsonify, request

from tutor import config
from tutor.engine import RAGEngine

logger = structlog.get_logger()


def configure_logging(level: str = None) -> None:
    """Configure structlog for JSON output at ``level`` (default from config)."""
    level_name = (level or config.LOG_LEVEL).upper()
    logging.basicConfig(format="%(message)s", level=getattr(logging, level_name, logging.INFO))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


class ChatOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    top_k: Optional[int] = Field(None, alias="topK", ge=1, le=50)
    temperature: Optional[float] = Field(None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(None, alias="maxTokens", ge=1, le=8000)


class ChatRequest(BaseModel):
    message: str
    options: ChatOptions = Field(default_factory=ChatOptions)


class IngestRequest(BaseModel):
    action: Literal["ingest", "clear", "stats"]
    filepath: Optional[str] = None


def _stats_payload(stats: dict) -> dict:
    return {
        "totalVectors": stats["total_vectors"],
        "dimensions": stats["dimensions"],
        "memoryUsageMB": stats["approx_memory_usage_mb"],
    }


def _resolve_document(filepath: str, notes_dir: Path) -> Optional[Path]:
    """Resolve ``filepath`` inside ``notes_dir``; None if it escapes it."""
    root = notes_dir.resolve()
    candidate = (root / filepath).resolve()
    if candidate != root and root not in candidate.parents:
        return None
    return candidate


def create_app(engine: Optional[RAGEngine] = None, notes_dir: Optional[Path] = None) -> Quart:
    """Create the Quart app around ``engine`` (built from config if omitted)."""
    engine = engine or RAGEngine.from_config()
    notes_dir = Path(notes_dir or config.NOTES_DIR)

    app = Quart(__name__)

    @app.before_serving
    async def load_snapshot():
        try:
            await engine.load()
        except (OSError, ValueError) as e:
            logger.error("snapshot_load_failed", error=str(e), path=str(engine.snapshot_path))

    @app.route("/api/chat", methods=["POST"])
    async def chat():
        """Answer a question.

        Expects JSON body:
        {
            "message": "user question",
            "options": {"topK": 5, "temperature": 0.7, "maxTokens": 1000}
        }
        """
        data = await request.get_json(silent=True)
        try:
            payload = ChatRequest.model_validate(data or {})
        except ValidationError as e:
            logger.warning("invalid_chat_request", errors=e.error_count())
            return jsonify({"success": False, "error": "Message is required and must be a non-empty string"}), 400

        message = payload.message.strip()
        if not message:
            return jsonify({"success": False, "error": "Message is required and must be a non-empty string"}), 400
        if len(message) > config.MAX_MESSAGE_LENGTH:
            return jsonify({
                "success": False,
                "error": f"Message too long (max {config.MAX_MESSAGE_LENGTH} characters)",
            }), 400

        logger.info("chat_request_received", message_length=len(message), message_preview=message[:50])

        options = payload.options
        try:
            response = await engine.ask(
                message,
                top_k=options.top_k,
                temperature=options.temperature if options.temperature is not None else 0.7,
                max_tokens=options.max_tokens or 1000,
            )
        except Exception as e:
            logger.error("chat_endpoint_error", error=str(e), error_type=type(e).__name__)
            return jsonify({"success": False, "error": str(e) or "Internal server error"}), 500

        logger.info(
            "chat_response_sent",
            answer_length=len(response.answer),
            retrieved_chunks=response.retrieved_chunks,
        )

        return jsonify({"success": True, **response.to_dict()})

    @app.route("/api/ingest", methods=["POST"])
    async def ingest():
        """Ingest documents, clear the index or report its stats.

        Expects JSON body:
        {
            "action": "ingest" | "clear" | "stats",
            "filepath": "optional/path/relative/to/notes.md"
        }
        """
        data = await request.get_json(silent=True)
        try:
            payload = IngestRequest.model_validate(data or {})
        except ValidationError:
            return jsonify({
                "success": False,
                "error": 'Invalid action. Use "ingest", "clear", or "stats"',
            }), 400

        if payload.action == "clear":
            engine.clear()
            await engine.save()
            return jsonify({
                "success": True,
                "message": "Vector store cleared successfully",
                "stats": _stats_payload(engine.stats()),
            })

        if payload.action == "stats":
            return jsonify({"success": True, "stats": _stats_payload(engine.stats())})

        try:
            if payload.filepath:
                path = _resolve_document(payload.filepath, notes_dir)
                if path is None or not path.is_file():
                    return jsonify({"success": False, "error": f"File not found: {payload.filepath}"}), 400
                result = await engine.pipeline.ingest_file(path, payload.filepath)
                summary = {
                    "files_processed": 1,
                    "chunks_processed": result.chunks_processed,
                    "vectors_stored": result.vectors_stored,
                }
            else:
                summary = await engine.ingest_directory(notes_dir)

            await engine.save()
        except Exception as e:
            logger.error("ingest_endpoint_error", error=str(e), error_type=type(e).__name__)
            return jsonify({"success": False, "error": str(e) or "Internal server error"}), 500

        return jsonify({
            "success": True,
            "message": f"Successfully ingested {summary['files_processed']} documents",
            "stats": {
                "filesProcessed": summary["files_processed"],
                "chunksProcessed": summary["chunks_processed"],
                "vectorsStored": summary["vectors_stored"],
                **_stats_payload(engine.stats()),
            },
        })

    @app.route("/health/ready")
    async def health_ready():
        """Readiness probe - reports index size."""
        stats = engine.stats()
        return jsonify({
            "status": "healthy",
            "total_vectors": stats["total_vectors"],
            "dimensions": stats["dimensions"],
        }), 200

    @app.route("/health/live")
    async def health_live():
        """Liveness probe - check if app is running."""
        return jsonify({"status": "alive"}), 200

    @app.errorhandler(404)
    async def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    async def internal_error(error):
        logger.error("internal_server_error", error=str(error))
        return jsonify({"success": False, "error": "Internal server error"}), 500

    return app


if __name__ == "__main__":
    configure_logging()
    create_app().run(host="0.0.0.0", port=5000, debug=True)
