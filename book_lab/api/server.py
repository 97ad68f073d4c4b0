"""
FastAPI server for Book Lab.
"""

from typing import Dict, List

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from book_lab import __version__
from book_lab.api.models import (
    BackupRequest, BookCreate, BookUpdate, ChapterCreate, ChapterGenerate,
    ChapterReorder, ChapterRequest, ChapterUpdate, ExportRequest, ExportResponse,
    MessageResponse, NoteCreate, NotesProcess, NoteUpdate, OnboardingRequest,
    OnboardingStatus, OutlineRegenerate, OutlineRequest, RefineRequest,
    SettingResponse, SettingValue, TextRequest, TextResponse, TopicCreate,
    TopicsResponse,
)
from book_lab.core.exceptions import (
    ConstraintViolationError, ExportError, GatewayError, MissingCredentialError,
    NotConfiguredError, NotFoundError, PipelineError,
    SecretDecodeError,
)
from book_lab.db.models import BookRead, ChapterRead, NoteRead, TopicRead
from book_lab.db.store import SENSITIVE_SETTING_KEYS
from book_lab.services.onboarding import complete_onboarding, is_onboarding_complete
from book_lab.services.pipeline import ProcessNotesResult
from book_lab.services.service_factory import Services


# Settings whose change requires rebuilding the gateway
PROVIDER_SETTING_KEYS = {"llm_provider", "openai_api_key", "openai_model", "ollama_url", "ollama_model"}

MASKED_VALUE = "********"


def _error(status_code: int, exc: Exception, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc), **extra})


def _root_cause(exc: BaseException) -> BaseException:
    while isinstance(exc, PipelineError):
        exc = exc.cause
    return exc


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error(404, exc)

    @app.exception_handler(ConstraintViolationError)
    async def constraint_handler(request: Request, exc: ConstraintViolationError):
        return _error(409, exc)

    @app.exception_handler(GatewayError)
    async def gateway_handler(request: Request, exc: GatewayError):
        if isinstance(exc, (NotConfiguredError, MissingCredentialError)):
            return _error(409, exc)
        return _error(502, exc)

    @app.exception_handler(PipelineError)
    async def pipeline_handler(request: Request, exc: PipelineError):
        extra = {}
        results = getattr(exc, "results", None)
        if results:
            extra["results"] = [r.model_dump() for r in results]
        if isinstance(_root_cause(exc), (NotConfiguredError, MissingCredentialError)):
            return _error(409, exc, **extra)
        return _error(502, exc, **extra)

    @app.exception_handler(SecretDecodeError)
    async def secret_handler(request: Request, exc: SecretDecodeError):
        return _error(500, exc)

    @app.exception_handler(ExportError)
    async def export_handler(request: Request, exc: ExportError):
        return _error(400, exc)

    @app.exception_handler(FileNotFoundError)
    async def file_not_found_handler(request: Request, exc: FileNotFoundError):
        return _error(404, exc)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _error(400, exc)


def create_app(services: Services) -> FastAPI:
    """Create the FastAPI app bound to a service container."""
    settings = services.settings

    app = FastAPI(
        title="Book Lab API",
        description="Notes, topics, outlines and chapters for writing books",
        version=__version__,
        docs_url="/docs" if settings.api.enable_docs else None,
        redoc_url="/redoc" if settings.api.enable_docs else None,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.api.cors_origins] or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_exception_handlers(app)

    store = services.store

    @app.get("/", response_model=Dict[str, str])
    def root():
        """Root endpoint."""
        return {"message": "Welcome to Book Lab API!", "version": __version__}

    # Books

    @app.get("/books", response_model=List[BookRead])
    def list_books():
        return store.list_books()

    @app.post("/books", response_model=BookRead, status_code=201)
    def create_book(body: BookCreate):
        author = body.author or store.get_setting("author_name")
        return store.create_book(body.title, description=body.description, author=author)

    @app.get("/books/{book_id}", response_model=BookRead)
    def get_book(book_id: int):
        return store.get_book(book_id)

    @app.put("/books/{book_id}", response_model=BookRead)
    def update_book(book_id: int, body: BookUpdate):
        return store.update_book(book_id, **body.model_dump(exclude_unset=True))

    @app.delete("/books/{book_id}", response_model=MessageResponse)
    def delete_book(book_id: int):
        store.delete_book(book_id)
        return {"message": f"Book {book_id} deleted"}

    @app.post("/books/{book_id}/export", response_model=ExportResponse)
    def export_book(book_id: int, body: ExportRequest):
        result = services.exporter.export_book(book_id, output_dir=body.output_dir, fmt=body.format)
        return result.model_dump()

    # Chapters

    @app.get("/books/{book_id}/chapters", response_model=List[ChapterRead])
    def list_chapters(book_id: int):
        return store.list_chapters(book_id)

    @app.post("/books/{book_id}/chapters", response_model=ChapterRead, status_code=201)
    def create_chapter(book_id: int, body: ChapterCreate):
        return services.chapters.create_chapter(book_id, body.title, topic_id=body.topic_id)

    @app.put("/books/{book_id}/chapters/reorder", response_model=List[ChapterRead])
    def reorder_chapters(book_id: int, body: ChapterReorder):
        return store.reorder_chapters(book_id, body.chapter_ids)

    @app.get("/chapters/{chapter_id}", response_model=ChapterRead)
    def get_chapter(chapter_id: int):
        return store.get_chapter(chapter_id)

    @app.put("/chapters/{chapter_id}", response_model=ChapterRead)
    def update_chapter(chapter_id: int, body: ChapterUpdate):
        changes = body.model_dump(exclude_unset=True)
        if changes.get("status") is not None:
            changes["status"] = changes["status"].value
        return store.update_chapter(chapter_id, **changes)

    @app.delete("/chapters/{chapter_id}", response_model=MessageResponse)
    def delete_chapter(chapter_id: int):
        store.delete_chapter(chapter_id)
        return {"message": f"Chapter {chapter_id} deleted"}

    @app.post("/chapters/{chapter_id}/approve-outline", response_model=ChapterRead)
    def approve_outline(chapter_id: int):
        return services.chapters.approve_outline(chapter_id)

    @app.post("/chapters/{chapter_id}/outline/regenerate", response_model=ChapterRead)
    def regenerate_outline(chapter_id: int, body: OutlineRegenerate):
        return services.chapters.regenerate_outline(chapter_id, body.topic_id)

    @app.post("/chapters/{chapter_id}/outline/refine", response_model=ChapterRead)
    def refine_chapter_outline(chapter_id: int, body: TextRequest):
        return services.chapters.refine_outline(chapter_id, body.text)

    @app.post("/chapters/{chapter_id}/generate", response_model=ChapterRead)
    def generate_chapter_content(chapter_id: int, body: ChapterGenerate):
        return services.chapters.write_chapter(chapter_id, note_ids=body.note_ids, topic_ids=body.topic_ids)

    @app.post("/chapters/{chapter_id}/refine", response_model=ChapterRead)
    def refine_chapter_content(chapter_id: int, body: TextRequest):
        return services.chapters.refine_content(chapter_id, body.text)

    # Notes

    @app.get("/notes", response_model=List[NoteRead])
    def list_notes():
        return store.list_notes()

    @app.post("/notes", response_model=NoteRead, status_code=201)
    def create_note(body: NoteCreate):
        return store.create_note(body.content)

    @app.post("/notes/process", response_model=ProcessNotesResult)
    def process_notes(body: NotesProcess):
        return services.pipeline.process_notes(body.text)

    @app.get("/notes/{note_id}", response_model=NoteRead)
    def get_note(note_id: int):
        return store.get_note(note_id)

    @app.put("/notes/{note_id}", response_model=NoteRead)
    def update_note(note_id: int, body: NoteUpdate):
        return store.update_note(note_id, body.content)

    @app.delete("/notes/{note_id}", response_model=MessageResponse)
    def delete_note(note_id: int):
        store.delete_note(note_id)
        return {"message": f"Note {note_id} deleted"}

    @app.put("/notes/{note_id}/topics/{topic_id}", response_model=NoteRead)
    def link_note(note_id: int, topic_id: int):
        store.link_note_to_topic(note_id, topic_id)
        return store.get_note(note_id)

    @app.delete("/notes/{note_id}/topics/{topic_id}", response_model=NoteRead)
    def unlink_note(note_id: int, topic_id: int):
        store.unlink_note_from_topic(note_id, topic_id)
        return store.get_note(note_id)

    # Topics

    @app.get("/topics", response_model=List[TopicRead])
    def list_topics():
        return store.list_topics()

    @app.post("/topics", response_model=TopicRead)
    def create_topic(body: TopicCreate):
        return store.create_topic(body.name)

    @app.get("/topics/{topic_id}/notes", response_model=List[NoteRead])
    def topic_notes(topic_id: int):
        return store.get_notes_by_topic(topic_id)

    @app.delete("/topics/{topic_id}", response_model=MessageResponse)
    def delete_topic(topic_id: int):
        store.delete_topic(topic_id)
        return {"message": f"Topic {topic_id} deleted"}

    # Direct pipeline calls

    @app.post("/ai/extract-topics", response_model=TopicsResponse)
    def extract_topics(body: TextRequest):
        return {"topics": services.pipeline.extract_topics(body.text)}

    @app.post("/ai/generate-outline", response_model=TextResponse)
    def generate_outline(body: OutlineRequest):
        return {"text": services.pipeline.generate_outline(body.topic, body.notes)}

    @app.post("/ai/refine-outline", response_model=TextResponse)
    def refine_outline(body: RefineRequest):
        return {"text": services.pipeline.refine_outline(body.text, body.instructions)}

    @app.post("/ai/generate-chapter", response_model=TextResponse)
    def generate_chapter(body: ChapterRequest):
        return {"text": services.pipeline.generate_chapter(body.outline, body.notes)}

    @app.post("/ai/refine-content", response_model=TextResponse)
    def refine_content(body: RefineRequest):
        return {"text": services.pipeline.refine_content(body.text, body.instructions)}

    # Settings and onboarding

    @app.get("/settings/{key}", response_model=SettingResponse)
    def get_setting(key: str):
        value = store.get_setting(key)
        if key in SENSITIVE_SETTING_KEYS and value:
            value = MASKED_VALUE
        return {"key": key, "value": value}

    @app.put("/settings/{key}", response_model=SettingResponse)
    def set_setting(key: str, body: SettingValue):
        store.set_setting(key, body.value)
        if key in PROVIDER_SETTING_KEYS:
            services.reconfigure()
        value = MASKED_VALUE if key in SENSITIVE_SETTING_KEYS and body.value else body.value
        return {"key": key, "value": value}

    @app.get("/onboarding", response_model=OnboardingStatus)
    def onboarding_status():
        return {"complete": is_onboarding_complete(store), "provider": store.get_setting("llm_provider")}

    @app.post("/onboarding", response_model=OnboardingStatus)
    def onboarding(body: OnboardingRequest):
        complete_onboarding(
            store,
            body.provider.value,
            api_key=body.api_key,
            ollama_url=body.ollama_url,
            ollama_model=body.ollama_model,
            author_name=body.author_name,
        )
        services.reconfigure()
        return {"complete": True, "provider": body.provider.value}

    # Backup

    @app.post("/backup/export", response_model=MessageResponse)
    def backup_export(body: BackupRequest):
        path = services.database.backup_to(body.path)
        return {"message": f"Backup created: {path}"}

    @app.post("/backup/import", response_model=MessageResponse)
    def backup_import(body: BackupRequest):
        services.database.restore_from(body.path)
        services.reconfigure()
        return {"message": f"Backup restored from: {body.path}"}

    logger.info("Book Lab API created")
    return app


def start(services: Services):
    """Start the FastAPI server."""
    settings = services.settings
    app = create_app(services)

    uvicorn.run(
        app,
        host=settings.api.host,
        port=settings.api.port,
        log_level=settings.log.level.lower(),
    )
