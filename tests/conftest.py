"""
Shared fixtures for the Book Lab tests.
"""

from typing import List, Optional

import pytest

from book_lab.core.config import PipelineConfig, Settings
from book_lab.core.secret_codec import SecretCodec
from book_lab.db.database import Database
from book_lab.db.store import Store
from book_lab.services.gateway import ModelGateway
from book_lab.services.pipeline import ContentPipeline


class FakeGateway(ModelGateway):
    """Gateway double that records calls and replays scripted responses.

    Each entry in ``responses`` is returned (or raised, if it is an exception)
    by one call, in order. Once they run out, ``default`` is returned.
    """

    provider = "fake"

    def __init__(self, responses: Optional[List] = None, default: str = "response"):
        self.responses = list(responses or [])
        self.default = default
        self.calls = []

    def complete(self, messages, temperature=0.7, max_tokens=1000):
        self.calls.append({"messages": messages, "temperature": temperature, "max_tokens": max_tokens})
        if self.responses:
            response = self.responses.pop(0)
        else:
            response = self.default
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture(scope="session")
def codec():
    # Key derivation is slow enough to share one codec per run
    return SecretCodec()


@pytest.fixture
def database():
    db = Database("sqlite://")
    db.create_db_and_tables()
    yield db
    db.dispose()


@pytest.fixture
def store(database, codec):
    return Store(database, codec)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def pipeline(gateway, store):
    return ContentPipeline(gateway, store, PipelineConfig())


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db={"url": "sqlite://"},
        log={"path": str(tmp_path / "logs")},
        export={"output_dir": str(tmp_path / "exports")},
    )


@pytest.fixture
def book(store):
    return store.create_book("Test Book", description="A book for tests", author="A. Writer")
