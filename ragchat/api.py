"""FastAPI application exposing upload, chat and collection endpoints."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse

from ragchat.config import config
from ragchat.errors import (
    CollectionNotFoundError,
    IngestionError,
    InputValidationError,
    RAGChatError,
)
from ragchat.models import SourceInput, SourceType
from ragchat.schemas import (
    BatchItemPayload,
    BatchUploadResponse,
    ChatRequest,
    ChatResponse,
    CollectionPayload,
    CollectionsResponse,
    DeleteCollectionRequest,
    MessageResponse,
    SessionSourcePayload,
    SessionSourcesResponse,
    SourcePayload,
    UploadResponse,
)
from ragchat.services import RAGServices, build_services

logger = config.get_logger(__name__)

CHAT_FAILURE = "Failed to generate response"
UPLOAD_FAILURE = "Failed to process document"
EXTENSION_SOURCE_TYPES = {
    ".pdf": SourceType.PDF,
    ".docx": SourceType.DOCX,
    ".csv": SourceType.CSV,
    ".json": SourceType.JSON,
    ".txt": SourceType.TEXT,
    ".md": SourceType.TEXT,
}


def get_services(request: Request) -> RAGServices:
    return request.app.state.services


ServicesDep = Annotated[RAGServices, Depends(get_services)]


def _error(status_code: int, **payload: object) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, **payload})


def _read_upload(upload: UploadFile | None) -> tuple[bytes | None, str | None, str | None]:
    if upload is None:
        return None, None, None
    return upload.file.read(), upload.filename, upload.content_type


def build_source_input(
    source_type: str,
    *,
    text: str | None = None,
    url: str | None = None,
    upload: UploadFile | None = None,
) -> SourceInput:
    """Translate form fields into a SourceInput.

    Returns:
        The submission for the ingestion pipeline.

    Raises:
        InputValidationError: If the document type is unknown.
    """
    try:
        kind = SourceType(source_type.strip().lower())
    except ValueError:
        msg = "Invalid document type"
        raise InputValidationError(msg) from None

    if kind in {SourceType.URL, SourceType.YOUTUBE}:
        return SourceInput(source_type=kind, text=url or text)

    data, filename, mime_type = _read_upload(upload)
    if kind == SourceType.TEXT and data is None:
        return SourceInput(source_type=kind, text=text)
    return SourceInput(source_type=kind, data=data, filename=filename, mime_type=mime_type)


def source_type_for_filename(filename: str | None) -> SourceType:
    """Pick the source type of a batch upload from its extension.

    Raises:
        InputValidationError: If the extension is not supported.
    """
    suffix = ""
    if filename and "." in filename:
        suffix = "." + filename.rsplit(".", 1)[1].lower()
    try:
        return EXTENSION_SOURCE_TYPES[suffix]
    except KeyError:
        msg = f"Unsupported file type: {filename or 'unknown'}"
        raise InputValidationError(msg) from None


def create_app(services: RAGServices | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        services: Pre-built services; built from config on startup if None.

    Returns:
        The configured application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "services", None) is None:
            config.setup_logging()
            config.validate()
            app.state.services = build_services()
        yield

    app = FastAPI(title="RAGChat", version="0.1.0", lifespan=lifespan)
    app.state.services = services

    @app.get("/health", tags=["admin"])
    def health() -> dict[str, bool]:
        """Simple liveness check."""
        return {"ok": True}

    @app.post("/api/documents/upload", response_model=UploadResponse, tags=["documents"])
    def upload_document(
        services: ServicesDep,
        source_type: Annotated[str, Form(alias="type")] = "",
        session_id: Annotated[str | None, Form()] = None,
        text: Annotated[str | None, Form()] = None,
        url: Annotated[str | None, Form()] = None,
        file: Annotated[UploadFile | None, File()] = None,
    ) -> UploadResponse | JSONResponse:
        try:
            source = build_source_input(source_type, text=text, url=url, upload=file)
            result = services.pipeline.ingest(source, session_id=session_id or None)
        except (InputValidationError, IngestionError) as exc:
            logger.warning("Document upload rejected: %s", exc)
            return _error(400, message=str(exc))
        except Exception:
            logger.exception("Document upload error")
            return _error(500, message=UPLOAD_FAILURE)

        return UploadResponse(
            success=True,
            collection_id=result.collection_id,
            document_count=result.chunk_count,
            message=f"Successfully processed {result.chunk_count} document chunks",
        )

    @app.post(
        "/api/documents/batch", response_model=BatchUploadResponse, tags=["documents"]
    )
    def upload_batch(
        services: ServicesDep,
        files: Annotated[list[UploadFile], File()],
        session_id: Annotated[str | None, Form()] = None,
    ) -> BatchUploadResponse:
        payloads: list[BatchItemPayload | None] = [None] * len(files)
        sources: list[SourceInput] = []
        positions: list[int] = []
        for position, upload in enumerate(files):
            try:
                kind = source_type_for_filename(upload.filename)
            except InputValidationError as exc:
                payloads[position] = BatchItemPayload(
                    source=upload.filename or "upload", success=False, message=str(exc)
                )
                continue
            data, filename, mime_type = _read_upload(upload)
            sources.append(
                SourceInput(
                    source_type=kind, data=data, filename=filename, mime_type=mime_type
                )
            )
            positions.append(position)

        items = services.pipeline.ingest_batch(sources, session_id=session_id or None)
        for position, item in zip(positions, items, strict=True):
            if item.result is not None:
                payloads[position] = BatchItemPayload(
                    source=item.source,
                    success=True,
                    collection_id=item.result.collection_id,
                    document_count=item.result.chunk_count,
                    message=(
                        f"Successfully processed {item.result.chunk_count} "
                        "document chunks"
                    ),
                )
            else:
                payloads[position] = BatchItemPayload(
                    source=item.source, success=False, message=item.error or UPLOAD_FAILURE
                )

        results = [payload for payload in payloads if payload is not None]
        return BatchUploadResponse(
            success=all(payload.success for payload in results), results=results
        )

    @app.post("/api/chat", response_model=ChatResponse, tags=["chat"])
    def chat(request: ChatRequest, services: ServicesDep) -> ChatResponse | JSONResponse:
        collection_ids = request.target_collections()
        if not collection_ids and request.session_id:
            collection_ids = services.tracker.collection_ids(request.session_id)

        if not request.message.strip() or not collection_ids:
            return _error(
                400, error="Message and collection ID are required", response=""
            )

        try:
            answer = services.conversation.answer_question(
                request.message,
                collection_ids,
                [message.to_turn() for message in request.conversation_history],
                use_hyde=request.use_hyde,
            )
        except InputValidationError as exc:
            return _error(400, error=str(exc), response="")
        except RAGChatError:
            logger.exception("Chat error")
            return _error(500, error=CHAT_FAILURE, response="")
        except Exception:
            logger.exception("Unexpected chat error")
            return _error(500, error=CHAT_FAILURE, response="")

        return ChatResponse(
            success=True,
            response=answer.answer,
            sources=[SourcePayload.from_snippet(snippet) for snippet in answer.sources],
            hyde_query=answer.hypothetical_answer,
        )

    @app.get("/api/collections", response_model=CollectionsResponse, tags=["collections"])
    def list_collections(services: ServicesDep) -> CollectionsResponse | JSONResponse:
        try:
            collections = services.pipeline.list_collections()
        except Exception:
            logger.exception("Error listing collections")
            return _error(500, error="Failed to fetch collections")
        return CollectionsResponse(
            success=True,
            collections=[CollectionPayload.from_info(info) for info in collections],
        )

    @app.delete("/api/collections", response_model=MessageResponse, tags=["collections"])
    def delete_collection(
        request: DeleteCollectionRequest, services: ServicesDep
    ) -> MessageResponse | JSONResponse:
        if not request.collection_id:
            return _error(400, error="Collection ID is required")
        try:
            services.pipeline.delete_source(
                request.collection_id, session_id=request.session_id
            )
        except CollectionNotFoundError as exc:
            return _error(404, error=str(exc))
        except Exception:
            logger.exception("Error deleting collection %s", request.collection_id)
            return _error(500, error="Failed to delete collection")
        return MessageResponse(success=True, message="Collection deleted successfully")

    @app.get(
        "/api/sessions/{session_id}/sources",
        response_model=SessionSourcesResponse,
        tags=["sessions"],
    )
    def session_sources(session_id: str, services: ServicesDep) -> SessionSourcesResponse:
        tracker = services.tracker
        return SessionSourcesResponse(
            success=True,
            session_id=session_id,
            sources=[
                SessionSourcePayload.from_record(record)
                for record in tracker.sources(session_id)
            ],
            remaining=tracker.remaining(session_id),
        )

    return app
