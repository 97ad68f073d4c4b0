"""
Database models for Book Lab.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import Column, ForeignKey, Integer
from sqlmodel import Field, Relationship, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChapterStatus(str, Enum):
    """Workflow tag set by explicit user actions."""
    DRAFT = "draft"
    OUTLINE = "outline"
    COMPLETE = "complete"


class NoteTopicLink(SQLModel, table=True):
    """Link table between Note and Topic."""

    __tablename__ = "notes_topics"

    note_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("notes.id", ondelete="CASCADE"), primary_key=True, index=True),
    )
    topic_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("topics.id", ondelete="CASCADE"), primary_key=True, index=True),
    )


class Topic(SQLModel, table=True):
    """Topic model."""

    __tablename__ = "topics"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True, max_length=255)
    created_at: datetime = Field(default_factory=utcnow)

    # Relationships
    notes: List["Note"] = Relationship(
        back_populates="topics",
        link_model=NoteTopicLink,
        sa_relationship_kwargs={"passive_deletes": True},
    )


class Note(SQLModel, table=True):
    """Note model: one pasted paragraph."""

    __tablename__ = "notes"

    id: Optional[int] = Field(default=None, primary_key=True)
    content: str
    created_at: datetime = Field(default_factory=utcnow, index=True)

    # Relationships
    topics: List[Topic] = Relationship(
        back_populates="notes",
        link_model=NoteTopicLink,
        sa_relationship_kwargs={"passive_deletes": True},
    )


class Book(SQLModel, table=True):
    """Book model."""

    __tablename__ = "books"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(max_length=255)
    description: Optional[str] = Field(default=None)
    author: Optional[str] = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, index=True)

    # Relationships
    chapters: List["Chapter"] = Relationship(
        back_populates="book",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "passive_deletes": True,
            "order_by": "Chapter.chapter_number",
        },
    )


class Chapter(SQLModel, table=True):
    """Chapter model."""

    __tablename__ = "chapters"

    id: Optional[int] = Field(default=None, primary_key=True)
    book_id: int = Field(
        sa_column=Column(Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True),
    )
    title: str = Field(max_length=255)
    chapter_number: int
    outline: Optional[str] = Field(default=None)
    content: Optional[str] = Field(default=None)
    status: str = Field(default=ChapterStatus.DRAFT.value, max_length=50)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Relationships
    book: Optional[Book] = Relationship(back_populates="chapters")


class Setting(SQLModel, table=True):
    """Key/value application setting."""

    __tablename__ = "settings"

    key: str = Field(primary_key=True, max_length=255)
    value: Optional[str] = Field(default=None)


# Read models returned by the store

class BookRead(SQLModel):
    id: int
    title: str
    description: Optional[str] = None
    author: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    chapter_count: int = 0
    word_count: int = 0


class ChapterRead(SQLModel):
    id: int
    book_id: int
    title: str
    chapter_number: int
    outline: Optional[str] = None
    content: Optional[str] = None
    status: str
    created_at: datetime
    updated_at: datetime


class NoteRead(SQLModel):
    id: int
    content: str
    created_at: datetime
    topics: List[str] = []
    topic_ids: List[int] = []


class TopicRead(SQLModel):
    id: int
    name: str
    created_at: datetime
    note_count: int = 0
