"""Main Quart application for docqa."""
import asyncio
import io
import time
import uuid
from datetime import datetime, timezone

from quart import Quart, request, jsonify
from pypdf.errors import PdfReadError
import structlog

from docqa import config
from docqa.llm_client import chat_client
from docqa.logging_config import configure_logging
from docqa.rag.errors import EmbeddingFailure, EmptyDocument, SynthesisFailure
from docqa.rag.pdf import extract_text_per_page, join_pages
from docqa.rag.retriever import GENERAL_CORPUS, Retriever
from docqa.rag.store import VectorStore, check_document_id
from docqa.rag.synthesizer import AnswerSynthesizer
from docqa.rag.topics import TopicSuggester


configure_logging()

logger = structlog.get_logger()

# Initialize Quart app
app = Quart(__name__)
app.config["MAX_CONTENT_LENGTH"] = config.MAX_UPLOAD_BYTES

# Initialize RAG services
vector_store = VectorStore()
retriever = Retriever(vector_store, default_corpus=GENERAL_CORPUS)
synthesizer = AnswerSynthesizer(retriever)
topic_suggester = TopicSuggester(retriever)


async def _read_upload():
    """Return (file_name, text, page_count, page_starts) from the request.

    Returns an error response tuple instead when the payload is unusable.
    """
    if request.is_json:
        data = await request.get_json()
        file_name = (data or {}).get("fileName")
        text = (data or {}).get("textContent")

        if not file_name or not text:
            return None, (jsonify({"error": "fileName and textContent are required"}), 400)

        return (file_name, text, int(data.get("pageCount") or 0), None), None

    files = await request.files
    upload_file = files.get("pdf")

    if upload_file is None:
        return None, (jsonify({"error": "No PDF file provided"}), 400)

    if not (upload_file.filename or "").lower().endswith(".pdf"):
        return None, (jsonify({"error": "File must be a PDF"}), 400)

    pdf_bytes = upload_file.read()

    try:
        pages = await asyncio.to_thread(extract_text_per_page, io.BytesIO(pdf_bytes))
    except (PdfReadError, ValueError) as e:
        logger.error("pdf_parse_error", error=str(e), file_name=upload_file.filename)
        return None, (
            jsonify({"error": "Failed to parse PDF file. Ensure file is not corrupted."}),
            400,
        )

    text, page_starts = join_pages(pages)
    file_name = f"{int(time.time() * 1000)}-{upload_file.filename}"
    return (file_name, text, len(pages), page_starts), None


@app.route("/api/upload", methods=["POST"])
async def upload():
    """Index an uploaded document.

    Accepts either a multipart form with a ``pdf`` file field, or JSON:
    {
        "fileName": "report.pdf",
        "textContent": "pre-extracted text",
        "pageCount": 3
    }

    Returns JSON:
    {
        "success": true,
        "storeId": "uuid",
        "fileName": "...",
        "pages": 3,
        "chunks": 12,
        "message": "..."
    }
    """
    try:
        payload, error_response = await _read_upload()
        if error_response is not None:
            return error_response

        file_name, text, page_count, page_starts = payload

        if not text.strip():
            return jsonify({"error": "PDF contains no extractable text"}), 400

        store_id = str(uuid.uuid4())
        summary = await vector_store.create_index(
            store_id,
            text,
            file_name,
            page_count=page_count,
            page_starts=page_starts,
        )

        logger.info(
            "document_uploaded",
            store_id=store_id,
            file_name=file_name,
            chunk_count=summary.chunk_count,
        )

        return jsonify({
            "success": True,
            "storeId": store_id,
            "fileName": file_name,
            "pages": summary.page_count,
            "chunks": summary.chunk_count,
            "message": "Document processed successfully",
        })

    except EmptyDocument as e:
        return jsonify({"error": e.message}), 400
    except EmbeddingFailure as e:
        logger.error("upload_embedding_failed", error=e.message, cause=str(e.cause))
        return jsonify({"error": e.message}), 502
    except Exception as e:
        logger.error("upload_error", error=str(e), error_type=type(e).__name__)
        return jsonify({"error": "Upload failed"}), 500


@app.route("/api/upload", methods=["GET"])
async def list_stores():
    """List ids of all indexed documents."""
    try:
        stores = sorted(await vector_store.list_indexes())
        return jsonify({"success": True, "stores": stores, "count": len(stores)})

    except Exception as e:
        logger.error("stores_list_error", error=str(e))
        return jsonify({"error": "Failed to fetch stores"}), 500


@app.route("/api/stores/<store_id>", methods=["GET"])
async def get_store(store_id: str):
    """Return the metadata record for one indexed document."""
    try:
        check_document_id(store_id)
    except ValueError:
        return jsonify({"error": "Store not found"}), 404

    metadata = await vector_store.get_metadata(store_id)
    if metadata is None:
        return jsonify({"error": "Store not found"}), 404

    return jsonify({"storeId": store_id, **metadata.model_dump(mode="json", by_alias=True)})


@app.route("/api/stores/<store_id>", methods=["DELETE"])
async def delete_store(store_id: str):
    """Delete an indexed document.

    Returns:
        204 No Content if successful
        404 Not Found if the store doesn't exist
    """
    try:
        check_document_id(store_id)
    except ValueError:
        return jsonify({"error": "Store not found"}), 404

    try:
        if await vector_store.delete_index(store_id):
            return "", 204
        return jsonify({"error": "Store not found"}), 404

    except Exception as e:
        logger.error("store_delete_error", error=str(e), store_id=store_id)
        return jsonify({"error": "Failed to delete store"}), 500


@app.route("/api/chat", methods=["POST"])
async def chat():
    """Answer a question, optionally grounded in an indexed document.

    Expects JSON body:
    {
        "input": "user question",
        "storeId": "optional-store-id"  // general chat if omitted
    }

    Returns JSON:
    {
        "answer": "...",
        "citations": [{"text": "...", "source": "...", "chunkIndex": 0}],
        "confidence": "high" | "medium" | "low",
        "timestamp": "ISO-8601"
    }
    """
    data = await request.get_json(silent=True)

    question = (data or {}).get("input")
    if not question or not isinstance(question, str) or not question.strip():
        return jsonify({
            "error": "Invalid input: 'input' field is required and must be a string"
        }), 400

    if len(question) > config.MAX_QUESTION_LENGTH:
        return jsonify({
            "error": f"Input too long (max {config.MAX_QUESTION_LENGTH} characters)"
        }), 400

    store_id = data.get("storeId") or None

    logger.info(
        "chat_request_received",
        store_id=store_id,
        question_length=len(question),
    )

    try:
        response = await synthesizer.suggest_answer(question.strip(), store_id)

    except SynthesisFailure as e:
        logger.error("chat_synthesis_failed", error=e.message, cause=str(e.cause))
        return jsonify({"error": e.message}), 502
    except Exception as e:
        logger.error("chat_endpoint_error", error=str(e), error_type=type(e).__name__)
        return jsonify({
            "error": "An error occurred processing your request. Please try again."
        }), 500

    return jsonify({
        **response.to_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


@app.route("/api/topics", methods=["POST"])
async def topics():
    """Suggest follow-up questions for an indexed document.

    Expects JSON body: {"storeId": "store-id"}
    """
    data = await request.get_json(silent=True)
    store_id = (data or {}).get("storeId")

    if not store_id:
        return jsonify({"error": "storeId is required"}), 400

    suggested = await topic_suggester.suggest_topics(store_id)
    return jsonify({"success": True, "topics": suggested})


@app.route("/health/ready")
async def health_ready():
    """Readiness probe - check if the LLM provider is reachable."""
    checks = {
        "status": "healthy",
        "provider": False,
        "models": False,
    }

    try:
        models = await chat_client.list_models()
        checks["provider"] = True

        if config.CHAT_MODEL in models:
            checks["models"] = True
        else:
            checks["status"] = "unhealthy"
            checks["error"] = f"Missing chat model: {config.CHAT_MODEL}"

        status_code = 200 if checks["status"] == "healthy" else 503
        return jsonify(checks), status_code

    except Exception as e:
        logger.error("health_check_failed", error=str(e))
        checks["status"] = "unhealthy"
        checks["error"] = str(e)
        return jsonify(checks), 503


@app.route("/health/live")
async def health_live():
    """Liveness probe - check if app is running."""
    return jsonify({"status": "alive"}), 200


@app.errorhandler(404)
async def not_found(error):
    """Handle 404 errors."""
    return jsonify({"error": "Not found"}), 404


@app.errorhandler(413)
async def too_large(error):
    """Handle oversize uploads."""
    return jsonify({"error": "File too large"}), 413


@app.errorhandler(500)
async def internal_error(error):
    """Handle 500 errors."""
    logger.error("internal_server_error", error=str(error))
    return jsonify({"error": "Internal server error"}), 500


def run() -> None:
    """Serve the app with hypercorn."""
    from hypercorn.asyncio import serve
    from hypercorn.config import Config

    hypercorn_config = Config()
    hypercorn_config.bind = [f"{config.HOST}:{config.PORT}"]
    asyncio.run(serve(app, hypercorn_config))


if __name__ == "__main__":
    run()
