"""
Service wiring for Book Lab.

Everything is built explicitly from a ``Settings`` object and handed around in
a ``Services`` container. No singletons or global state are maintained.
"""

from typing import Optional

from dotenv import load_dotenv
from loguru import logger

from book_lab.core.config import Settings
from book_lab.core.secret_codec import SecretCodec
from book_lab.db.database import Database
from book_lab.db.store import Store
from book_lab.services.autosave import ChapterAutoSaver
from book_lab.services.chapters import ChapterService
from book_lab.services.export import PdfExporter
from book_lab.services.gateway import ModelGateway, UnconfiguredGateway, create_gateway
from book_lab.services.pipeline import ContentPipeline


def create_database(settings: Settings) -> Database:
    """Create the database for the configured URL and make sure the tables exist."""
    database = Database(settings.db.url, echo=settings.db.echo)
    database.create_db_and_tables()
    return database


def build_gateway(store: Store, settings: Settings) -> ModelGateway:
    """
    Create the gateway for the stored provider choice.

    A gateway that cannot be built never stops the application; generation
    calls fail with ``NotConfiguredError`` until the provider is fixed.
    """
    try:
        return create_gateway(store, settings.llm)
    except Exception as e:
        logger.warning(f"Failed to initialize LLM provider: {e}")
        return UnconfiguredGateway(f"LLM provider could not be initialized: {e}")


class Services:
    """The application's collaborators, built once per process."""

    def __init__(self, settings: Settings, database: Database):
        self.settings = settings
        self.database = database
        self.store = Store(database, SecretCodec())
        self.gateway = build_gateway(self.store, settings)
        self.pipeline = ContentPipeline(self.gateway, self.store, settings.pipeline)
        self.chapters = ChapterService(self.store, self.pipeline)
        self.exporter = PdfExporter(self.store, settings.export)

    def reconfigure(self) -> ModelGateway:
        """Rebuild the gateway after the provider settings changed."""
        self.gateway = build_gateway(self.store, self.settings)
        self.pipeline.gateway = self.gateway
        logger.info(f"LLM gateway reconfigured: {type(self.gateway).__name__}")
        return self.gateway

    def create_autosaver(self, on_saved=None) -> ChapterAutoSaver:
        return ChapterAutoSaver(self.store, delay=self.settings.autosave.delay_seconds, on_saved=on_saved)

    def close(self) -> None:
        self.database.dispose()


def create_services(settings: Optional[Settings] = None, database: Optional[Database] = None) -> Services:
    """
    Create the service container.

    Args:
        settings: Application settings. Defaults to environment/.env values.
        database: An existing database. If None, one is created from ``settings.db``.

    Returns:
        A new Services instance.
    """
    load_dotenv()
    settings = settings or Settings()
    if database is None:
        database = create_database(settings)
    else:
        database.create_db_and_tables()
    return Services(settings, database)
