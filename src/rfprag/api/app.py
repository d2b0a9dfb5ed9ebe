"""FastAPI application exposing RfpRAG services."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from collections import OrderedDict
from typing import List, Sequence
from uuid import uuid4

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile, status
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.concurrency import run_in_threadpool

from rfprag.api.schemas import (
    AnswerEditRequest,
    KnowledgebaseSummary,
    RfpProcessingResultModel,
    RfpQuestionModel,
)
from rfprag.config import Settings, get_settings
from rfprag.embeddings import build_embedding_backend
from rfprag.errors import (
    EmbeddingFailureError,
    EmptyKnowledgebaseError,
    ExtractionError,
    NoTextExtractedError,
    RfpRagError,
    UnsupportedFileTypeError,
)
from rfprag.export import export_file_stem, to_csv, to_json
from rfprag.ingestion import KnowledgebaseIngestor, LangChainTextExtractor, TextChunker
from rfprag.knowledge import JsonFileKnowledgeStore, KnowledgeStore
from rfprag.metrics.observability import bind_correlation_id, clear_correlation_id, configure_logging, get_logger
from rfprag.models import RfpProcessingResult, RfpQuestion
from rfprag.services.pipeline import ProcessingCoordinator, build_coordinator, ensure_knowledgebase_ready


@dataclass
class ResultRegistry:
    """Process-local store of finished runs so answers can be edited and exported.

    Holds at most ``max_results`` runs; adding past the cap evicts the oldest.
    """

    max_results: int = 100
    _results: OrderedDict[str, RfpProcessingResult] = field(default_factory=OrderedDict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def add(self, result: RfpProcessingResult) -> None:
        with self._lock:
            self._results[result.id] = result
            self._results.move_to_end(result.id)
            while len(self._results) > max(self.max_results, 1):
                self._results.popitem(last=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def get(self, result_id: str) -> RfpProcessingResult | None:
        with self._lock:
            return self._results.get(result_id)


@dataclass(frozen=True)
class AppDependencies:
    store: KnowledgeStore
    ingestor: KnowledgebaseIngestor
    coordinator: ProcessingCoordinator
    results: ResultRegistry = field(default_factory=ResultRegistry)


def _build_dependencies(settings: Settings) -> AppDependencies:
    extractor = LangChainTextExtractor()
    embedder = build_embedding_backend(settings)
    ingestor = KnowledgebaseIngestor(extractor, embedder, TextChunker(settings.chunk_size))
    coordinator = build_coordinator(settings, extractor=extractor, embedder=embedder)
    store = JsonFileKnowledgeStore(settings.knowledgebase_path)
    return AppDependencies(
        store=store,
        ingestor=ingestor,
        coordinator=coordinator,
        results=ResultRegistry(max_results=settings.max_cached_results),
    )


_ERROR_STATUS = (
    (EmptyKnowledgebaseError, status.HTTP_409_CONFLICT),
    (UnsupportedFileTypeError, status.HTTP_415_UNSUPPORTED_MEDIA_TYPE),
    (NoTextExtractedError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ExtractionError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (EmbeddingFailureError, status.HTTP_502_BAD_GATEWAY),
)


def create_app(*, settings: Settings | None = None, dependencies: AppDependencies | None = None) -> FastAPI:
    settings = settings or get_settings()
    deps = dependencies or _build_dependencies(settings)

    configure_logging()
    logger = get_logger("api")
    app = FastAPI(title="RfpRAG API", version="0.1.0")
    app.state.dependencies = deps

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Request-ID", uuid4().hex)
        request.state.correlation_id = correlation_id
        bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    @app.exception_handler(RfpRagError)
    async def handle_domain_error(request: Request, exc: RfpRagError) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", uuid4().hex)
        code = next((code for kind, code in _ERROR_STATUS if isinstance(exc, kind)), status.HTTP_500_INTERNAL_SERVER_ERROR)
        logger.error("request.error", correlation_id=correlation_id, error_type=exc.__class__.__name__, detail=str(exc))
        return JSONResponse(status_code=code, content={"detail": str(exc), "correlation_id": correlation_id})

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", uuid4().hex)
        logger.error("unhandled.error", correlation_id=correlation_id, detail=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal Server Error", "correlation_id": correlation_id},
        )

    def get_dependencies(request: Request) -> AppDependencies:
        return request.app.state.dependencies

    def get_store(dep: AppDependencies = Depends(get_dependencies)) -> KnowledgeStore:
        return dep.store

    def get_result(result_id: str, dep: AppDependencies = Depends(get_dependencies)) -> RfpProcessingResult:
        result = dep.results.get(result_id)
        if result is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown result")
        return result

    def get_question(question_id: str, result: RfpProcessingResult = Depends(get_result)) -> RfpQuestion:
        question = result.find_question(question_id)
        if question is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown question")
        return question

    async def read_upload(upload: UploadFile) -> tuple[str, bytes]:
        filename = upload.filename or f"upload-{uuid4().hex}"
        suffix = Path(filename).suffix.lower()
        if suffix not in settings.allowed_extensions_tuple:
            await upload.close()
            raise HTTPException(
                status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
                detail=f"Unsupported file type: {suffix or 'unknown'}",
            )
        limit = settings.max_upload_size_mb * 1024 * 1024
        buffer = bytearray()
        while True:
            chunk = await upload.read(1024 * 1024)
            if not chunk:
                break
            buffer.extend(chunk)
            if len(buffer) > limit:
                await upload.close()
                raise HTTPException(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    detail=f"File too large (>{settings.max_upload_size_mb}MB): {filename}",
                )
        await upload.close()
        if not buffer:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"File is empty: {filename}")
        return filename, bytes(buffer)

    @app.get("/knowledgebase", response_model=KnowledgebaseSummary)
    async def knowledgebase_summary(store: KnowledgeStore = Depends(get_store)) -> KnowledgebaseSummary:
        return KnowledgebaseSummary.from_domain(store.load())

    @app.post("/knowledgebase/documents", response_model=KnowledgebaseSummary, status_code=status.HTTP_201_CREATED)
    async def add_documents(
        files: Sequence[UploadFile] = File(...),
        dep: AppDependencies = Depends(get_dependencies),
    ) -> KnowledgebaseSummary:
        if not files:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No files provided")
        uploads: List[tuple[str, bytes]] = [await read_upload(upload) for upload in files]
        for filename, data in uploads:
            item = await run_in_threadpool(dep.ingestor.ingest, data, file_name=filename)
            dep.store.upsert_by_file_name(item)
        return KnowledgebaseSummary.from_domain(dep.store.load())

    @app.delete("/knowledgebase/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def remove_document(item_id: str, store: KnowledgeStore = Depends(get_store)) -> Response:
        if not store.remove_by_id(item_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown knowledgebase item")
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.delete("/knowledgebase", status_code=status.HTTP_204_NO_CONTENT)
    async def clear_knowledgebase(store: KnowledgeStore = Depends(get_store)) -> Response:
        store.clear()
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/rfp", response_model=RfpProcessingResultModel)
    async def process_rfp(
        file: UploadFile = File(...),
        dep: AppDependencies = Depends(get_dependencies),
    ) -> RfpProcessingResultModel:
        filename, data = await read_upload(file)
        knowledgebase = ensure_knowledgebase_ready(dep.store.load())
        result = await run_in_threadpool(dep.coordinator.process, data, filename, knowledgebase)
        dep.results.add(result)
        logger.info(
            "rfp.processed",
            result_id=result.id,
            status=result.processing_status.value,
            question_count=len(result.questions),
        )
        return RfpProcessingResultModel.from_domain(result)

    @app.get("/rfp/{result_id}", response_model=RfpProcessingResultModel)
    async def get_rfp_result(result: RfpProcessingResult = Depends(get_result)) -> RfpProcessingResultModel:
        return RfpProcessingResultModel.from_domain(result)

    @app.put("/rfp/{result_id}/questions/{question_id}/answer", response_model=RfpQuestionModel)
    async def edit_answer(payload: AnswerEditRequest, question: RfpQuestion = Depends(get_question)) -> RfpQuestionModel:
        question.edit_answer(payload.answer)
        return RfpQuestionModel.from_domain(question)

    @app.post("/rfp/{result_id}/questions/{question_id}/reset", response_model=RfpQuestionModel)
    async def reset_answer(question: RfpQuestion = Depends(get_question)) -> RfpQuestionModel:
        question.reset_answer()
        return RfpQuestionModel.from_domain(question)

    @app.get("/rfp/{result_id}/export.json")
    async def export_json(result: RfpProcessingResult = Depends(get_result)) -> Response:
        return Response(
            content=to_json(result),
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{export_file_stem(result)}.json"'},
        )

    @app.get("/rfp/{result_id}/export.csv")
    async def export_csv(result: RfpProcessingResult = Depends(get_result)) -> Response:
        return Response(
            content=to_csv(result),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{export_file_stem(result)}.csv"'},
        )

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        from rfprag import __version__

        return {"status": "ok", "version": __version__, "environment": settings.environment}

    @app.head("/healthz")
    async def healthcheck_head() -> Response:
        return Response(status_code=status.HTTP_200_OK)

    @app.get("/livez")
    async def liveness() -> dict[str, str]:
        return {"status": "alive"}

    @app.get("/healthz/ready")
    async def readiness(store: KnowledgeStore = Depends(get_store)) -> dict[str, str]:
        knowledgebase = store.load()
        return {"status": "ready", "items": str(len(knowledgebase.items))}

    return app


app = create_app()
